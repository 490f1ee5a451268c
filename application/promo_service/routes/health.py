from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from promo_service.connections.database import get_db_session

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

router = APIRouter()


@router.get("/health")
def health_check():
    details = {
        "status": "healthy",
        "version": configs.APP_VERSION,
        "service": configs.APP_NAME,
    }
    return JSONResponse(content=details)


@router.get("/health/db")
def database_health_check():
    with get_db_session(read_only=True) as db:
        db.execute(text("SELECT 1"))
    return JSONResponse(content={"status": "healthy", "database": "reachable"})
