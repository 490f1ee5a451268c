"""
Logging filters injecting request and checkout context
"""
import logging
from promo_service.middlewares.request_context import request_context


class RequestContextFilter(logging.Filter):
    def filter(self, record):
        record.request_id = request_context.request_id or ''
        record.request_method = request_context.request_method or ''
        record.request_path = request_context.request_path or ''
        return True


class BusinessContextFilter(logging.Filter):
    def filter(self, record):
        record.client_id = request_context.client_id or ''
        record.order_id = request_context.order_id or ''
        record.promotion_code = request_context.promotion_code or ''
        return True
