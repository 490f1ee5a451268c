"""
JSON formatters for application and audit logs
"""
import json
import logging
from datetime import datetime

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

SERVICE_NAME = configs.APP_NAME


class BaseJSONFormatter(logging.Formatter):

    def __init__(self):
        super().__init__()
        self.application_environment = configs.APPLICATION_ENVIRONMENT

    def base_entry(self, record) -> dict:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line_number': record.lineno,
            'environment': self.application_environment,
            'service': SERVICE_NAME,
        }
        if record.exc_info:
            entry['exception'] = str(record.exc_info[1])
        return entry

    def format(self, record):
        log_entry = self.base_entry(record)
        log_entry['message'] = record.getMessage()
        self.add_extra_fields(log_entry, record)
        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def add_extra_fields(self, log_entry, record):
        pass


class AppLogsJSONFormatter(BaseJSONFormatter):
    def add_extra_fields(self, log_entry, record):
        log_entry['request_id'] = getattr(record, 'request_id', '')
        log_entry['client_id'] = getattr(record, 'client_id', '')
        log_entry['order_id'] = getattr(record, 'order_id', '')
        log_entry['promotion_code'] = getattr(record, 'promotion_code', '')


class AuditLogsJSONFormatter(BaseJSONFormatter):
    """Audit records carry their payload in ``extra``; the message text is dropped."""

    def format(self, record):
        log_entry = self.base_entry(record)
        self.add_extra_fields(log_entry, record)
        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def add_extra_fields(self, log_entry, record):
        log_entry['request_id'] = getattr(record, 'request_id', '')
        log_entry['duration'] = getattr(record, 'duration', 0.0)
        log_entry['hostname'] = getattr(record, 'hostname', '')
        log_entry['app_name'] = getattr(record, 'app_name', '')
        log_entry['version'] = getattr(record, 'version', '')

        request_data = getattr(record, 'request', None)
        response_data = getattr(record, 'response', None)
        log_entry['request'] = json.dumps(request_data, ensure_ascii=False, default=str) if request_data else ''
        log_entry['response'] = json.dumps(response_data, ensure_ascii=False, default=str) if response_data else ''

        log_entry['request_method'] = getattr(record, 'request_method', '')
        log_entry['request_path'] = getattr(record, 'request_path', '')
        log_entry['status_code'] = getattr(record, 'status_code', 0)
        log_entry['module_name'] = getattr(record, 'module_name', '')
        log_entry['client_id'] = getattr(record, 'client_id', '')
        log_entry['order_id'] = getattr(record, 'order_id', '')
        log_entry['promotion_code'] = getattr(record, 'promotion_code', '')
        if getattr(record, 'exception', None):
            log_entry['exception'] = record.exception
