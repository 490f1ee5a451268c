from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import httpx

from promo_service.logging.utils import get_app_logger
from promo_service.config.settings import PromoConfigs

logger = get_app_logger("promo_service.admin_token_middleware")
configs = PromoConfigs()


def extract_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    header = header_value.strip()
    if header[:7].lower() == "bearer ":
        return header[7:].strip() or None
    return header or None


async def verify_token(token: str) -> bool:
    """Ask the auth service whether ``token`` is a valid back-office token."""
    auth_service_url = configs.AUTH_SERVICE_URL
    if not auth_service_url.endswith("/"):
        auth_service_url += "/"
    validation_url = f"{auth_service_url}api/check-token/"

    async with httpx.AsyncClient() as client:
        response = await client.get(validation_url, params={"token": token}, timeout=configs.AUTH_TIMEOUT)

    logger.info(f"token_validation_response | status={response.status_code} url={validation_url}")
    if response.status_code != 200:
        logger.warning(f"token_validation_failed | status={response.status_code} response={response.text[:200]}")
        return False
    return bool(response.json().get("valid", False))


class AdminTokenMiddleware(BaseHTTPMiddleware):

    include_path_start = "/admin/v1"

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or not request.url.path.startswith(self.include_path_start):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            logger.warning("token_missing_authorization_header")
            return JSONResponse(status_code=401, content={"message": "Token is required"})

        try:
            valid = await verify_token(token)
        except httpx.RequestError as e:
            logger.warning(f"token_validation_request_error | error={e}")
            return JSONResponse(status_code=401, content={"message": "Token validation failed"})

        if not valid:
            logger.warning(f"token_invalid | path={request.url.path}")
            return JSONResponse(status_code=401, content={"message": "Invalid token"})

        return await call_next(request)
