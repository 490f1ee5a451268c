"""
Duplicate redeem guard.

Two identical redeem calls for the same code and order arriving together get
one pass; the other receives 409 while the lock lives. The database keeps
redemptions idempotent on its own, this only spares it the contention. When
Redis is unreachable the request goes through.

Each lock carries a per-request token and is released only while it still
holds that token, so a request that outlives the TTL leaves the next holder's
lock in place.
"""

import json
import uuid
from typing import Callable, Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from promo_service.connections.redis_wrapper import RedisJSONWrapper, redemption_lock_key
from promo_service.core.constants import PromotionErrorCode
from promo_service.config.settings import PromoConfigs
from promo_service.logging.utils import get_app_logger

logger = get_app_logger("promo_service.redemption_lock_middleware")
configs = PromoConfigs()


class RedemptionLockMiddleware(BaseHTTPMiddleware):

    protected_suffix = "/promotions/redeem"

    def __init__(self, app):
        super().__init__(app)
        self.lock_ttl = configs.REDEMPTION_LOCK_TTL_SECONDS
        logger.info(f"redemption_lock_initialized | ttl={self.lock_ttl}s")

    def should_apply_lock(self, request: Request) -> bool:
        return request.method == "POST" and request.url.path.endswith(self.protected_suffix)

    @staticmethod
    def extract_lock_key(body: bytes) -> Optional[str]:
        try:
            payload = json.loads(body.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"redemption_lock_unreadable_payload | error={e}")
            return None
        if not isinstance(payload, dict) or not payload.get("code") or not payload.get("order_id"):
            return None
        return redemption_lock_key(payload["code"], payload["order_id"])

    @staticmethod
    def build_lock_data(request: Request) -> dict:
        return {
            "token": uuid.uuid4().hex,
            "endpoint": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

    def try_acquire_lock(self, redis_client: RedisJSONWrapper, lock_key: str, lock_data: dict) -> Optional[bool]:
        """SET NX EX. None when Redis failed and the request proceeds unlocked."""
        try:
            acquired = redis_client.set_if_not_exists_with_ttl(lock_key, lock_data, self.lock_ttl)
        except Exception as e:
            logger.error(f"redemption_lock_error | key={lock_key} error={e} | allowing request")
            return None

        if acquired:
            logger.info(f"redemption_lock_acquired | key={lock_key} ttl={self.lock_ttl}s")
        else:
            logger.warning(f"redemption_lock_exists | key={lock_key}")
        return acquired

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not configs.REDEMPTION_LOCK_ENABLED or not self.should_apply_lock(request):
            return await call_next(request)

        body = await request.body()
        lock_key = self.extract_lock_key(body)
        redis_client = None
        if lock_key:
            redis_client = RedisJSONWrapper(database=configs.REDIS_CACHE_DB)
            if not redis_client.connected:
                logger.error("redemption_lock_redis_unavailable | allowing request")
                redis_client = None

        lock_data = self.build_lock_data(request)
        acquired = self.try_acquire_lock(redis_client, lock_key, lock_data) if redis_client else None
        if acquired is False:
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={
                    "error_code": PromotionErrorCode.REDEMPTION_CONFLICT,
                    "message": "A redemption for this order is already in progress. Please retry shortly.",
                    "retry_after_seconds": self.lock_ttl,
                },
            )

        # Restore body for downstream processing
        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        request._receive = receive
        try:
            return await call_next(request)
        finally:
            if acquired:
                self.release_lock(redis_client, lock_key, lock_data)

    @staticmethod
    def release_lock(redis_client: RedisJSONWrapper, lock_key: str, lock_data: dict):
        # the TTL still bounds a lock we fail to delete
        try:
            if not redis_client.delete_if_matches(lock_key, lock_data):
                logger.warning(f"redemption_lock_expired_before_release | key={lock_key}")
        except Exception as e:
            logger.error(f"redemption_lock_release_error | key={lock_key} error={e}")
