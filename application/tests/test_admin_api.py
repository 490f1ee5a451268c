import re
from datetime import timedelta
from decimal import Decimal

from promo_service.core.constants import PromotionKind
from promo_service.dto.promotions import ClientContext
from promo_service.services.redemption_service import RedemptionService
from promo_service.utils.datetime_helpers import utc_now

BASE = "/admin/v1/promotions"


def create_payload(**overrides):
    start = utc_now() + timedelta(days=1)
    data = {
        "name": "Soldes d'été",
        "description": "Summer sale on the whole catalogue",
        "kind": "percentage",
        "value": "20",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=30)).isoformat(),
        "global_max_uses": 100,
        "display_color": "#ef4444",
    }
    data.update(overrides)
    return data


def test_admin_routes_require_a_token(client):
    assert client.get(BASE).status_code == 401
    assert client.get(BASE, headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_create_generates_code_from_name(client, admin_headers):
    response = client.post(BASE, json=create_payload(), headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert re.fullmatch(r"SOLDE\d{2}", body["code"])
    assert body["status"] == "scheduled"
    assert body["current_uses"] == 0
    assert body["value_formatted"] == "20%"
    assert body["usage_rate"] == 0
    assert body["scope"] == {"kind": "all_products"}


def test_create_with_taken_code_conflicts(client, admin_headers, make_promotion):
    make_promotion(code="ETE2026")

    response = client.post(BASE, json=create_payload(code="ETE2026"), headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "DUPLICATE_CODE"


def test_create_rejects_invalid_promotion(client, admin_headers):
    response = client.post(BASE, json=create_payload(kind="free_shipping", value="10"), headers=admin_headers)

    assert response.status_code == 422
    assert "value of 0" in response.json()["message"]


def test_show_returns_detailed_view(client, admin_headers, make_promotion):
    promotion = make_promotion(code="DETAIL", global_max_uses=4, current_uses=1, valid_weekdays=[5, 6])

    body = client.get(f"{BASE}/{promotion.id}", headers=admin_headers).json()

    assert body["status"] == "active"
    assert body["usage_rate"] == 25.0
    assert body["weekday_labels"] == ["Friday", "Saturday"]
    assert body["days_left"] >= 29


def test_show_unknown_promotion(client, admin_headers):
    response = client.get(f"{BASE}/999", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["error_code"] == "PROMO_NOT_FOUND"


def test_partial_update(client, admin_headers, make_promotion):
    promotion = make_promotion(code="EDIT", value=Decimal("10"))

    response = client.put(f"{BASE}/{promotion.id}", json={"value": "25", "scope": {"kind": "categories", "ids": [3]}}, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert Decimal(str(body["value"])) == Decimal("25")
    assert body["scope"] == {"kind": "categories", "ids": [3]}
    assert body["code"] == "EDIT"


def test_update_checks_merged_state(client, admin_headers, make_promotion):
    promotion = make_promotion(code="EDIT", kind=PromotionKind.PERCENTAGE, value=Decimal("10"))

    response = client.put(f"{BASE}/{promotion.id}", json={"kind": "free_shipping"}, headers=admin_headers)

    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_PROMOTION"


def test_update_keeps_running_promotion_start_date(client, admin_headers, make_promotion):
    # started yesterday: the past start date must not block other edits
    promotion = make_promotion(code="RUNNING")

    response = client.put(f"{BASE}/{promotion.id}", json={"name": "Running sale"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["name"] == "Running sale"


def test_toggle_status(client, admin_headers, make_promotion):
    promotion = make_promotion(code="TOGGLE")

    body = client.post(f"{BASE}/{promotion.id}/toggle-status", headers=admin_headers).json()
    assert body["is_active"] is False
    assert body["status"] == "inactive"

    body = client.post(f"{BASE}/{promotion.id}/toggle-status", headers=admin_headers).json()
    assert body["is_active"] is True


def test_duplicate_resets_counters(client, admin_headers, make_promotion):
    promotion = make_promotion(name="Tabaski", code="TABASKI", current_uses=7, orders_count=7, revenue_generated=Decimal("14000"))

    response = client.post(f"{BASE}/{promotion.id}/duplicate", headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Tabaski (Copy)"
    assert body["code"] != "TABASKI"
    assert body["is_active"] is False
    assert body["current_uses"] == 0
    assert body["orders_count"] == 0
    assert Decimal(str(body["revenue_generated"])) == Decimal("0")


def test_soft_delete_hides_promotion(client, admin_headers, make_promotion):
    promotion = make_promotion(code="BYE")
    RedemptionService().redeem("BYE", "ORD-1", Decimal("10000"), ClientContext(client_id="c-1"))

    assert client.delete(f"{BASE}/{promotion.id}", headers=admin_headers).status_code == 200
    assert client.get(f"{BASE}/{promotion.id}", headers=admin_headers).status_code == 404

    validation = client.post("/shop/v1/promotions/validate", json={"code": "BYE", "order_amount": "10000"}).json()
    assert validation["status"] == "not_found"


def test_list_filters_and_pagination(client, admin_headers, make_promotion):
    now = utc_now()
    make_promotion(name="Tabaski robes", code="TABASKI")
    make_promotion(name="Korité", code="KORITE", is_active=False)
    make_promotion(name="Rentrée", code="RENTREE", start_date=now - timedelta(days=20), end_date=now - timedelta(days=5))
    make_promotion(name="Noël", code="NOEL", start_date=now + timedelta(days=10), end_date=now + timedelta(days=20))

    def codes(**params):
        body = client.get(BASE, params=params, headers=admin_headers).json()
        return sorted(item["code"] for item in body["data"])

    assert codes(search="tabaski") == ["TABASKI"]
    assert codes(status="active") == ["TABASKI"]
    assert codes(status="inactive") == ["KORITE"]
    assert codes(status="expired") == ["RENTREE"]
    assert codes(status="scheduled") == ["NOEL"]

    page = client.get(BASE, params={"per_page": 3, "page": 2, "sort": "code", "direction": "asc"}, headers=admin_headers).json()
    assert page["pagination"] == {"page": 2, "per_page": 3, "total": 4, "last_page": 2}
    assert [item["code"] for item in page["data"]] == ["TABASKI"]


def test_list_rejects_unknown_sort(client, admin_headers):
    assert client.get(BASE, params={"sort": "password"}, headers=admin_headers).status_code == 422


def test_stats(client, admin_headers, make_promotion):
    make_promotion(code="POPULAIRE", kind=PromotionKind.FIXED_AMOUNT, value=Decimal("1000"), per_client_max_uses=5)
    make_promotion(code="CALME")
    service = RedemptionService()
    for i in range(3):
        service.redeem("POPULAIRE", f"ORD-{i}", Decimal("10000"))

    stats = client.get(f"{BASE}/stats", headers=admin_headers).json()

    assert stats["total"] == 2
    assert stats["active"] == 2
    assert stats["total_uses"] == 3
    assert Decimal(str(stats["total_revenue"])) == Decimal("3000")
    assert stats["most_used"]["code"] == "POPULAIRE"
    assert stats["most_profitable"]["code"] == "POPULAIRE"
    assert stats["by_kind"] == {"percentage": 1, "fixed_amount": 1, "free_shipping": 0}
    assert stats["average_uses"] == 1.5


def test_options(client, admin_headers):
    options = client.get(f"{BASE}/options", headers=admin_headers).json()

    assert [kind["value"] for kind in options["kinds"]] == ["percentage", "fixed_amount", "free_shipping"]
    assert {"value": 0, "label": "Sunday"} in options["weekdays"]
    assert len(options["colors"]) == 7
