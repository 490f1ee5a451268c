from contextlib import asynccontextmanager
from dotenv import load_dotenv

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

# Initialize Sentry (must be done early, before other imports)
from promo_service.config.sentry import init_sentry
init_sentry()

from promo_service.logging.utils import initialize_logging, get_app_logger
from promo_service.connections.database import close_db_pool, create_tables
from promo_service.middlewares.logging_middleware import AuditMiddleware

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

# Initialize structured logging
initialize_logging()
logger = get_app_logger('promo_service.main')

# DEBUG=false means production
DEBUG = configs.DEBUG

logger.info(f"Running in {'debug' if DEBUG else 'production'} mode")


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info(f"Starting {configs.APP_NAME}")
    if configs.AUTO_CREATE_TABLES:
        create_tables()
    yield
    logger.info(f"Shutting down {configs.APP_NAME}")
    close_db_pool()

# Disable docs in production (when DEBUG=false)
docs_url = "/docs" if DEBUG else None
redoc_url = "/redoc" if DEBUG else None

app = FastAPI(
    title="Atelier Promotions",
    version=configs.APP_VERSION,
    lifespan=lifespan,
    docs_url=docs_url,
    redoc_url=redoc_url
)

if configs.ALLOWED_ORIGINS:
    origins = [origin.strip() for origin in configs.ALLOWED_ORIGINS.split(",")]
else:
    origins = ["*"]

# Duplicate redeem guard (innermost, runs after auth)
from promo_service.middlewares.redemption_lock import RedemptionLockMiddleware
app.add_middleware(RedemptionLockMiddleware)

# Back-office token validation
from promo_service.middlewares.admin_token import AdminTokenMiddleware
app.add_middleware(AdminTokenMiddleware)

# Request/Audit logging middleware
app.add_middleware(AuditMiddleware)

logger.info(f"Configuring CORS with allowed origins: {origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register custom exception handlers
from promo_service.middlewares.handlers import register_exception_handlers
register_exception_handlers(app)


# Routes
from promo_service.routes.shop import shop_router
from promo_service.routes.admin import admin_router
from promo_service.routes.health import router as health_router

app.include_router(shop_router, prefix="/shop/v1")
app.include_router(admin_router, prefix="/admin/v1")
app.include_router(health_router, tags=["health"])
