"""
Logging configuration for the promotions service.
Local JSON files by default, Firehose shipping when enabled.
"""

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()


class LoggingConfig:
    """Logging switches and Firehose credentials resolved from the environment."""

    LOG_DIR = configs.LOG_DIR
    FIREHOSE_ENABLED = configs.FIREHOSE_ENABLED
    AUDIT_LOGGING_ENABLED = configs.AUDIT_LOGGING_ENABLED
    CAPTURE_RESPONSE_BODY = configs.CAPTURE_RESPONSE_BODY

    APP_LOGS_STREAM_NAME = configs.APP_LOGS_STREAM_NAME
    AUDIT_LOGS_STREAM_NAME = configs.AUDIT_LOGS_STREAM_NAME
    LOG_BUFFER_TIMEOUT = configs.LOG_BUFFER_TIMEOUT

    APP_LOGS_CAPACITY = configs.APP_LOGS_CAPACITY
    AUDIT_LOGS_CAPACITY = configs.AUDIT_LOGS_CAPACITY

    FIREHOSE_REGION_NAME = configs.FIREHOSE_REGION_NAME
    FIREHOSE_ACCESS_KEY_ID = configs.FIREHOSE_ACCESS_KEY_ID
    FIREHOSE_SECRET_ACCESS_KEY = configs.FIREHOSE_SECRET_ACCESS_KEY
    FIREHOSE_RETRY_COUNT = configs.FIREHOSE_RETRY_COUNT
    FIREHOSE_RETRY_DELAY = configs.FIREHOSE_RETRY_DELAY

    @classmethod
    def is_valid_config(cls):
        if cls.FIREHOSE_ENABLED and not (cls.FIREHOSE_ACCESS_KEY_ID and cls.FIREHOSE_SECRET_ACCESS_KEY):
            return False, "Firehose credentials not configured"
        return True, "Configuration is valid"
