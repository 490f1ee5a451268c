"""
Audit middleware: one structured record per request on the audit logger.
"""
import json
import socket
import time
from datetime import datetime

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from promo_service.logging.utils import get_app_logger, get_audit_logger
from promo_service.logging.config import LoggingConfig
from promo_service.middlewares.request_context import create_request_id, request_context, clear_request_context

# settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

MASKED_HEADERS = ('authorization', 'cookie', 'x-api-key')


class AuditMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_paths: list[str] | None = None):
        super().__init__(app)
        self.logger = get_app_logger('promo_service.logging')
        self.exclude_audit_paths = exclude_paths or ['/health', '/docs', '/redoc', '/openapi.json']
        self.hostname = socket.gethostname()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = create_request_id()
        start_time = time.time()
        timestamp = datetime.now().isoformat()

        request_context.request_method = request.method
        request_context.request_path = request.url.path

        should_audit = LoggingConfig.AUDIT_LOGGING_ENABLED and not any(
            request.url.path.startswith(p) for p in self.exclude_audit_paths
        )
        body_bytes = await request.body() if should_audit else b''

        try:
            response = await call_next(request)
            duration = (time.time() - start_time) * 1000
            response.headers['X-Request-ID'] = request_id
            if should_audit:
                get_audit_logger().info("Audit log", extra=self._build_audit_data(request, response, body_bytes, duration, request_id, timestamp))
            return response
        except Exception as exc:
            duration = (time.time() - start_time) * 1000
            self.logger.error(
                f"request_exception | method={request.method} path={request.url.path} exception={exc.__class__.__name__} duration_ms={duration:.0f}",
                exc_info=True,
            )
            if should_audit:
                audit_data = self._build_audit_data(request, Response(status_code=500), body_bytes, duration, request_id, timestamp)
                audit_data['exception'] = exc.__class__.__name__
                get_audit_logger().info("Audit log (exception)", extra=audit_data)
            raise
        finally:
            clear_request_context()

    @staticmethod
    def _mask_headers(headers) -> dict:
        return {k: ('****' if k.lower() in MASKED_HEADERS else v) for k, v in headers.items()}

    @staticmethod
    def _parse_body(request: Request, body_bytes: bytes):
        if not body_bytes:
            return {}
        text = body_bytes.decode('utf-8', errors='replace')
        if 'application/json' in request.headers.get('content-type', ''):
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text[:1000]
        return text[:1000]

    def _build_audit_data(self, request: Request, response: Response, body_bytes: bytes, duration: float, request_id: str, timestamp: str) -> dict:
        status = response.status_code
        response_data = ''
        # streamed responses cannot be read here; only buffered error bodies are captured
        if LoggingConfig.CAPTURE_RESPONSE_BODY and not 200 <= status < 300 and getattr(response, 'body', None):
            response_data = response.body.decode('utf-8', errors='replace')[:1000]

        return {
            'duration': round(duration, 2),
            'hostname': self.hostname,
            'app_name': configs.APP_NAME,
            'version': configs.APP_VERSION,
            'module_name': request_context.module_name,
            'request': {
                "GET": dict(request.query_params),
                "BODY": self._parse_body(request, body_bytes),
                "HEADERS": self._mask_headers(request.headers),
            },
            'request_id': request_id,
            'request_method': request.method,
            'request_path': request.url.path,
            'response': response_data,
            'status_code': status,
            'timestamp': timestamp,
            'client_id': request_context.client_id,
            'order_id': request_context.order_id,
            'promotion_code': request_context.promotion_code,
        }
