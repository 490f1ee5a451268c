import os
import tempfile
from datetime import timedelta
from decimal import Decimal

_tmp_dir = tempfile.mkdtemp(prefix="promo_service_tests_")
_db_url = f"sqlite:///{os.path.join(_tmp_dir, 'promotions.db')}"

# must be set before any promo_service import reads the configuration
os.environ["DATABASE_URL"] = _db_url
os.environ["DATABASE_READ_URL"] = _db_url
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["REDEMPTION_LOCK_ENABLED"] = "false"
os.environ["LOG_DIR"] = os.path.join(_tmp_dir, "logs")
os.environ["DEBUG"] = "true"
os.environ["SENTRY_ENABLED"] = "false"
os.environ["FIREHOSE_ENABLED"] = "false"
os.environ["SLACK_ALERTS_ENABLED"] = "false"
os.environ["AUDIT_LOGGING_ENABLED"] = "true"
os.environ["DEFAULT_SHIPPING_FEE"] = "2000"
os.environ["SHOP_TIMEZONE"] = "Africa/Dakar"

import pytest
from fastapi.testclient import TestClient

from promo_service.connections.database import Base, engine, get_db_session
from promo_service.core.constants import PromotionKind
from promo_service.models.promotions import Promotion
from promo_service.utils.datetime_helpers import utc_now

ADMIN_TOKEN = "admin-token"


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_promotion():
    """Insert a promotion straight into the database, bypassing admin validation."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        now = utc_now()
        scope = overrides.pop("scope", None)
        fields = {
            "name": f"Promotion {counter['n']}",
            "code": f"PROMO{counter['n']}",
            "description": "Seasonal discount",
            "kind": PromotionKind.PERCENTAGE,
            "value": Decimal("10"),
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=30),
            "is_active": True,
            "per_client_max_uses": 1,
            "current_uses": 0,
            "orders_count": 0,
            "revenue_generated": Decimal("0"),
        }
        fields.update(overrides)
        with get_db_session() as db:
            promotion = Promotion(**fields)
            if scope is not None:
                promotion.scope = scope
            db.add(promotion)
            db.flush()
            db.refresh(promotion)
        return promotion

    return _make


@pytest.fixture
def fetch_promotion():
    def _fetch(promotion_id: int) -> Promotion:
        with get_db_session(read_only=True) as db:
            return db.get(Promotion, promotion_id)

    return _fetch


@pytest.fixture
def client(monkeypatch):
    from promo_service.middlewares import admin_token

    async def fake_verify_token(token: str) -> bool:
        return token == ADMIN_TOKEN

    monkeypatch.setattr(admin_token, "verify_token", fake_verify_token)

    from promo_service.main import app
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
