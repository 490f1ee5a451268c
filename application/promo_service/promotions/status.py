from datetime import datetime
from typing import Optional

from promo_service.core.constants import PromotionStatus
from promo_service.utils.datetime_helpers import as_utc, utc_now


def is_exhausted(promotion) -> bool:
    return promotion.global_max_uses is not None and (promotion.current_uses or 0) >= promotion.global_max_uses


def derive_status(promotion, timestamp: Optional[datetime] = None) -> PromotionStatus:
    """Lifecycle status of a promotion at ``timestamp``; first matching rule wins."""
    if promotion is None or promotion.deleted_at is not None:
        return PromotionStatus.NOT_FOUND
    if not promotion.is_active:
        return PromotionStatus.INACTIVE

    ts = as_utc(timestamp or utc_now())
    if ts < as_utc(promotion.start_date):
        return PromotionStatus.SCHEDULED
    if ts > as_utc(promotion.end_date):
        return PromotionStatus.EXPIRED
    if is_exhausted(promotion):
        return PromotionStatus.EXHAUSTED
    return PromotionStatus.ACTIVE
