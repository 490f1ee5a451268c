from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from promo_service.core.constants import PromotionStatus
from promo_service.promotions.status import derive_status

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def promotion(**overrides):
    fields = {
        "is_active": True,
        "deleted_at": None,
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=1),
        "global_max_uses": None,
        "current_uses": 0,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_missing_promotion_is_not_found():
    assert derive_status(None, NOW) == PromotionStatus.NOT_FOUND


def test_soft_deleted_promotion_is_not_found():
    assert derive_status(promotion(deleted_at=NOW), NOW) == PromotionStatus.NOT_FOUND


def test_running_promotion_is_active():
    assert derive_status(promotion(), NOW) == PromotionStatus.ACTIVE


@pytest.mark.parametrize("overrides, expected", [
    # inactive wins over every date and usage condition
    ({"is_active": False, "end_date": NOW - timedelta(days=2), "global_max_uses": 1, "current_uses": 1}, PromotionStatus.INACTIVE),
    ({"start_date": NOW + timedelta(hours=1), "end_date": NOW + timedelta(days=3), "global_max_uses": 1, "current_uses": 1}, PromotionStatus.SCHEDULED),
    ({"start_date": NOW - timedelta(days=3), "end_date": NOW - timedelta(days=1), "global_max_uses": 1, "current_uses": 1}, PromotionStatus.EXPIRED),
    ({"global_max_uses": 5, "current_uses": 5}, PromotionStatus.EXHAUSTED),
    ({"global_max_uses": 5, "current_uses": 4}, PromotionStatus.ACTIVE),
])
def test_status_precedence(overrides, expected):
    assert derive_status(promotion(**overrides), NOW) == expected


def test_window_bounds_are_inclusive():
    assert derive_status(promotion(start_date=NOW), NOW) == PromotionStatus.ACTIVE
    assert derive_status(promotion(end_date=NOW), NOW) == PromotionStatus.ACTIVE
    assert derive_status(promotion(end_date=NOW), NOW + timedelta(seconds=1)) == PromotionStatus.EXPIRED


def test_naive_datetimes_are_read_as_utc():
    naive = promotion(start_date=(NOW - timedelta(days=1)).replace(tzinfo=None), end_date=(NOW + timedelta(days=1)).replace(tzinfo=None))
    assert derive_status(naive, NOW) == PromotionStatus.ACTIVE


def test_every_flag_combination_yields_exactly_one_status():
    for is_active in (True, False):
        for start_offset in (-2, 1):
            for end_offset in (-1, 2):
                for current_uses in (0, 3):
                    p = promotion(
                        is_active=is_active,
                        start_date=NOW + timedelta(days=start_offset),
                        end_date=NOW + timedelta(days=end_offset),
                        global_max_uses=3,
                        current_uses=current_uses,
                    )
                    first = derive_status(p, NOW)
                    assert isinstance(first, PromotionStatus)
                    assert derive_status(p, NOW) == first
