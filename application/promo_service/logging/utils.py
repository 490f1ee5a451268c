"""
Logger factories for the promotions service
"""
import atexit
import logging

from promo_service.logging.config import LoggingConfig
from promo_service.logging.handlers import get_app_handler, get_audit_handler, get_local_file_handler, flush_all_handlers
from promo_service.logging.filters import RequestContextFilter, BusinessContextFilter
from promo_service.logging.slack_handler import slack_handler


def get_app_logger(name: str = "promo_service"):
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    # one shared handler when shipping, a file per module otherwise
    handler = get_app_handler() if LoggingConfig.FIREHOSE_ENABLED else get_local_file_handler(name.replace('.', '_'))
    handler.addFilter(RequestContextFilter())
    handler.addFilter(BusinessContextFilter())
    logger.addHandler(handler)
    logger.addHandler(slack_handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def get_audit_logger():
    logger = logging.getLogger("promo_service.audit")
    if logger.handlers:
        return logger

    handler = get_audit_handler()
    handler.addFilter(RequestContextFilter())
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def initialize_logging():
    is_valid, message = LoggingConfig.is_valid_config()
    logger = get_app_logger("promo_service.logging")
    if not is_valid:
        logger.warning(f"logging_config_invalid | reason={message}")
    atexit.register(flush_all_handlers)
    logger.info("logging_initialized")
