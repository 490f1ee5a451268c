"""
Log handlers: buffered Kinesis Firehose shipping with a local JSON file fallback.
"""
import logging
import os
import time
from logging.handlers import MemoryHandler

import boto3
from botocore.config import Config

from promo_service.logging.config import LoggingConfig
from promo_service.logging.formatters import AppLogsJSONFormatter, AuditLogsJSONFormatter


class FireHoseHandler(logging.Handler):
    """Sends pre-formatted batches to a Firehose delivery stream."""

    def __init__(self, stream_name: str):
        super().__init__()
        self.stream_name = stream_name
        self.retry_count = LoggingConfig.FIREHOSE_RETRY_COUNT
        self.retry_delay = LoggingConfig.FIREHOSE_RETRY_DELAY
        self.client = boto3.client(
            "firehose",
            region_name=LoggingConfig.FIREHOSE_REGION_NAME,
            aws_access_key_id=LoggingConfig.FIREHOSE_ACCESS_KEY_ID,
            aws_secret_access_key=LoggingConfig.FIREHOSE_SECRET_ACCESS_KEY,
            config=Config(connect_timeout=10, read_timeout=30, retries={"max_attempts": 2}),
        )

    def emit(self, record):
        self.put_batch([{"Data": self.format(record)}])

    def put_batch(self, records) -> bool:
        if not records:
            return True

        for attempt in range(self.retry_count):
            try:
                response = self.client.put_record_batch(DeliveryStreamName=self.stream_name, Records=records)
                if response.get("FailedPutCount", 0) == 0:
                    return True
            except Exception:
                # a failing log sink must never break the request path
                if attempt == self.retry_count - 1:
                    return False
            if attempt < self.retry_count - 1:
                time.sleep(self.retry_delay * (2 ** attempt))
        return False


class BufferedFirehoseHandler(MemoryHandler):
    """Collects records and ships them when the buffer is full or stale."""

    def __init__(self, stream_name: str, capacity: int, formatter: logging.Formatter):
        self.firehose = FireHoseHandler(stream_name)
        super().__init__(capacity=capacity, target=self.firehose)
        self.buffer_timeout = LoggingConfig.LOG_BUFFER_TIMEOUT
        self.last_flush = time.time()
        self.setFormatter(formatter)
        self.firehose.setFormatter(formatter)

    def shouldFlush(self, record):
        stale = time.time() - self.last_flush >= self.buffer_timeout
        return stale or len(self.buffer) >= self.capacity

    def flush(self):
        self.acquire()
        try:
            if self.buffer:
                self.firehose.put_batch([{"Data": self.format(record)} for record in self.buffer])
                self.buffer.clear()
            self.last_flush = time.time()
        finally:
            self.release()


_handlers = {}


def get_local_file_handler(name: str = 'app'):
    os.makedirs(LoggingConfig.LOG_DIR, exist_ok=True)
    handler = logging.FileHandler(os.path.join(LoggingConfig.LOG_DIR, f'{name}.log'))
    handler.setFormatter(AuditLogsJSONFormatter() if name.startswith('audit') else AppLogsJSONFormatter())
    return handler


def get_app_handler():
    if not LoggingConfig.FIREHOSE_ENABLED:
        return get_local_file_handler('app')
    if 'app' not in _handlers:
        stream = LoggingConfig.APP_LOGS_STREAM_NAME or 'atelier-promotions-app-logs'
        _handlers['app'] = BufferedFirehoseHandler(stream, LoggingConfig.APP_LOGS_CAPACITY, AppLogsJSONFormatter())
    return _handlers['app']


def get_audit_handler():
    if not LoggingConfig.FIREHOSE_ENABLED:
        return get_local_file_handler('audit_logs')
    if 'audit' not in _handlers:
        stream = LoggingConfig.AUDIT_LOGS_STREAM_NAME or 'atelier-promotions-audit-logs'
        _handlers['audit'] = BufferedFirehoseHandler(stream, LoggingConfig.AUDIT_LOGS_CAPACITY, AuditLogsJSONFormatter())
    return _handlers['audit']


def flush_all_handlers():
    for handler in _handlers.values():
        handler.flush()
