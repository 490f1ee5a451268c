"""
Request context shared with log filters through a ContextVar
"""
from contextvars import ContextVar
import uuid


class RequestContext:
    def __init__(self):
        self.request_id: str | None = None
        self.request_method: str | None = None
        self.request_path: str | None = None
        self.module_name: str | None = None
        self.client_id: str | None = None
        self.order_id: str | None = None
        self.promotion_code: str | None = None


_request_context_var: ContextVar[RequestContext] = ContextVar("request_context", default=RequestContext())


class _RequestContextProxy:
    def __getattr__(self, name):
        return getattr(_request_context_var.get(), name)

    def __setattr__(self, name, value):
        setattr(_request_context_var.get(), name, value)


request_context = _RequestContextProxy()


def set_request_context(ctx: RequestContext):
    _request_context_var.set(ctx)


def clear_request_context():
    _request_context_var.set(RequestContext())


def create_request_id() -> str:
    # fresh context per request so values never leak between requests
    set_request_context(RequestContext())
    rid = str(uuid.uuid4())
    request_context.request_id = rid
    return rid
