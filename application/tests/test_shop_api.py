from datetime import timedelta
from decimal import Decimal

from promo_service.core.constants import PromotionKind, TargetAudience
from promo_service.middlewares import redemption_lock
from promo_service.utils.datetime_helpers import utc_now

VALIDATE = "/shop/v1/promotions/validate"
REDEEM = "/shop/v1/promotions/redeem"


def money(value) -> Decimal:
    return Decimal(str(value))


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/health/db").status_code == 200


def test_validate_eligible_code(client, make_promotion):
    make_promotion(code="RENTREE10", value=Decimal("10"), min_order_amount=Decimal("5000"))

    response = client.post(VALIDATE, json={"code": "RENTREE10", "order_amount": "20000"})

    assert response.status_code == 200
    body = response.json()
    assert body["eligible"] is True
    assert body["status"] == "active"
    assert money(body["discount"]) == Decimal("2000")
    assert money(body["new_total"]) == Decimal("18000")
    assert body["promotion"]["code"] == "RENTREE10"
    assert body["promotion"]["value_formatted"] == "10%"


def test_validate_unknown_code(client):
    body = client.post(VALIDATE, json={"code": "NOPE", "order_amount": "20000"}).json()

    assert body["eligible"] is False
    assert body["status"] == "not_found"
    assert body["reason_code"] == "PROMO_NOT_FOUND"
    assert money(body["discount"]) == Decimal("0")
    assert money(body["new_total"]) == Decimal("20000")
    assert body["promotion"] is None


def test_validate_audience_mismatch(client, make_promotion):
    make_promotion(code="NOUVEAU", target_audience=TargetAudience.NEW)

    body = client.post(VALIDATE, json={"code": "NOUVEAU", "order_amount": "20000", "client": {"is_first_order": False}}).json()

    assert body["eligible"] is False
    assert body["reason_code"] == "AUDIENCE_MISMATCH"
    assert body["errors"][0]["field"] == "client.classification"


def test_validate_free_shipping_with_custom_fee(client, make_promotion):
    make_promotion(code="LIVRAISON", kind=PromotionKind.FREE_SHIPPING, value=Decimal("0"))

    body = client.post(VALIDATE, json={"code": "LIVRAISON", "order_amount": "20000", "shipping_fee": "3000"}).json()

    assert money(body["discount"]) == Decimal("3000")
    assert body["promotion"]["value_formatted"] == "Free shipping"


def test_validate_rejects_negative_amount(client):
    assert client.post(VALIDATE, json={"code": "X", "order_amount": "-5"}).status_code == 422


def test_validate_refuses_sub_cent_amounts(client, make_promotion):
    make_promotion(code="FIX", kind=PromotionKind.FIXED_AMOUNT, value=Decimal("3000"))

    response = client.post(VALIDATE, json={"code": "FIX", "order_amount": "0.005"})

    assert response.status_code == 422


def test_validate_over_long_code_is_not_found(client):
    response = client.post(VALIDATE, json={"code": "X" * 21, "order_amount": "20000"})

    assert response.status_code == 200
    body = response.json()
    assert body["eligible"] is False
    assert body["status"] == "not_found"
    assert money(body["new_total"]) == Decimal("20000")


def test_redeem_with_other_code_on_same_order_is_a_conflict(client, make_promotion):
    make_promotion(code="AAA")
    make_promotion(code="BBB")
    client.post(REDEEM, json={"code": "AAA", "order_id": "CMD-9", "order_amount": "10000"})

    response = client.post(REDEEM, json={"code": "BBB", "order_id": "CMD-9", "order_amount": "10000"})

    assert response.status_code == 409
    assert response.json()["error_code"] == "REDEMPTION_CONFLICT"


def test_redeem_then_redeem_again(client, make_promotion, fetch_promotion):
    promotion = make_promotion(code="TABASKI", value=Decimal("15"))
    payload = {"code": "TABASKI", "order_id": "CMD-2026-0001", "order_amount": "40000", "client": {"client_id": "c-9"}}

    first = client.post(REDEEM, json=payload)
    second = client.post(REDEEM, json=payload)

    assert first.status_code == 200
    assert first.json()["already_redeemed"] is False
    assert money(first.json()["discount"]) == Decimal("6000")
    assert second.status_code == 200
    assert second.json()["already_redeemed"] is True
    assert second.json()["redemption_id"] == first.json()["redemption_id"]
    assert fetch_promotion(promotion.id).current_uses == 1


def test_redeem_rejection_is_a_conflict(client, make_promotion):
    now = utc_now()
    make_promotion(code="FINI", start_date=now - timedelta(days=5), end_date=now - timedelta(days=1))

    response = client.post(REDEEM, json={"code": "FINI", "order_id": "CMD-1", "order_amount": "10000"})

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "PROMO_EXPIRED"
    assert body["details"]["status"] == "expired"


def test_active_listing_shows_visible_running_promotions(client, make_promotion):
    now = utc_now()
    make_promotion(code="VISIBLE")
    make_promotion(code="HIDDEN", show_on_site=False)
    make_promotion(code="OFF", is_active=False)
    make_promotion(code="LATER", start_date=now + timedelta(days=2), end_date=now + timedelta(days=9))
    make_promotion(code="USED", global_max_uses=2, current_uses=2)

    body = client.get("/shop/v1/promotions/active").json()

    assert [promotion["code"] for promotion in body] == ["VISIBLE"]


class _FakeRedis:
    held = {}

    def __init__(self, connected=True, **kwargs):
        self.connected = connected

    def set_if_not_exists_with_ttl(self, key, data, ttl_seconds):
        if key in self.held:
            return False
        self.held[key] = dict(data)
        return True

    def delete_if_matches(self, key, data):
        if self.held.get(key) != data:
            return False
        del self.held[key]
        return True


def test_redeem_in_flight_for_same_order_is_refused(client, make_promotion, monkeypatch):
    make_promotion(code="LOCK")
    monkeypatch.setattr(redemption_lock.configs, "REDEMPTION_LOCK_ENABLED", True)
    monkeypatch.setattr(redemption_lock, "RedisJSONWrapper", _FakeRedis)
    _FakeRedis.held = {redemption_lock.redemption_lock_key("LOCK", "CMD-1"): {"token": "other"}}

    response = client.post(REDEEM, json={"code": "LOCK", "order_id": "CMD-1", "order_amount": "10000"})

    assert response.status_code == 409
    assert response.json()["error_code"] == "REDEMPTION_CONFLICT"


def test_redeem_lock_is_released_after_request(client, make_promotion, monkeypatch):
    make_promotion(code="LOCK")
    monkeypatch.setattr(redemption_lock.configs, "REDEMPTION_LOCK_ENABLED", True)
    monkeypatch.setattr(redemption_lock, "RedisJSONWrapper", _FakeRedis)
    _FakeRedis.held = {}

    response = client.post(REDEEM, json={"code": "LOCK", "order_id": "CMD-1", "order_amount": "10000"})

    assert response.status_code == 200
    assert _FakeRedis.held == {}


def test_redeem_goes_through_when_redis_is_down(client, make_promotion, monkeypatch):
    make_promotion(code="LOCK")
    monkeypatch.setattr(redemption_lock.configs, "REDEMPTION_LOCK_ENABLED", True)
    monkeypatch.setattr(redemption_lock, "RedisJSONWrapper", lambda **kwargs: _FakeRedis(connected=False))

    response = client.post(REDEEM, json={"code": "LOCK", "order_id": "CMD-1", "order_amount": "10000"})

    assert response.status_code == 200


def test_redeem_lock_taken_over_after_expiry_is_left_alone():
    lock_key = redemption_lock.redemption_lock_key("LOCK", "CMD-1")
    _FakeRedis.held = {lock_key: {"token": "next-holder"}}
    stale = {"token": "expired-holder", "endpoint": REDEEM, "client_ip": None}

    redemption_lock.RedemptionLockMiddleware.release_lock(_FakeRedis(), lock_key, stale)

    assert _FakeRedis.held == {lock_key: {"token": "next-holder"}}
