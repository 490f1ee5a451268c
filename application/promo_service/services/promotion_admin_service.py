"""
Back-office operations on promotions.
"""

import math
import random
import re
import unicodedata
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from promo_service.core.constants import (
    AUDIENCE_LABELS,
    DISPLAY_COLORS,
    KIND_LABELS,
    WEEKDAY_LABELS,
    PromotionKind,
    PromotionLimits,
    PromotionStatus,
    TargetAudience,
)
from promo_service.core.exceptions import DuplicatePromotionCodeError, PromotionNotFoundError, PromotionValidationError
from promo_service.dto.promotions import PromotionCreate, PromotionListQuery, PromotionUpdate
from promo_service.models.promotions import Promotion
from promo_service.promotions.status import derive_status
from promo_service.repository.promotions import PromotionsRepository
from promo_service.utils.datetime_helpers import SHOP_TZ, as_utc, days_left, format_date, shop_today, utc_now
from promo_service.utils.formatting import format_money, format_value

from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.promotion_admin_service")

# Fields an admin may write; counters are owned by redemption
EDITABLE_FIELDS = (
    "name", "code", "description", "image", "kind", "value", "min_order_amount", "max_discount",
    "start_date", "end_date", "is_active", "global_max_uses", "per_client_max_uses", "target_audience",
    "valid_weekdays", "stackable", "first_order_only", "show_on_site", "notify_whatsapp", "notify_email",
    "display_color",
)

COPY_SUFFIX = " (Copy)"


def code_prefix(name: str) -> str:
    """'Soldes d'été 2024' -> 'SOLDE'"""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    prefix = re.sub(r"[^A-Za-z0-9]", "", ascii_name)[:PromotionLimits.CODE_PREFIX_LENGTH].upper()
    return prefix or "PROMO"


def format_promotion(promotion: Promotion, now: Optional[datetime] = None, detailed: bool = False) -> Dict:
    now = now or utc_now()
    status = derive_status(promotion, now)
    kind = PromotionKind(promotion.kind)
    audience = TargetAudience(promotion.target_audience)

    data = {
        "id": promotion.id,
        "name": promotion.name,
        "code": promotion.code,
        "description": promotion.description,
        "image": promotion.image,
        "kind": kind.value,
        "kind_label": KIND_LABELS[kind],
        "value": promotion.value,
        "value_formatted": format_value(kind, promotion.value),
        "min_order_amount": promotion.min_order_amount,
        "max_discount": promotion.max_discount,
        "start_date": as_utc(promotion.start_date),
        "end_date": as_utc(promotion.end_date),
        "start_date_formatted": format_date(promotion.start_date),
        "end_date_formatted": format_date(promotion.end_date),
        "is_active": promotion.is_active,
        "status": status.value,
        "status_label": status.label,
        "global_max_uses": promotion.global_max_uses,
        "per_client_max_uses": promotion.per_client_max_uses,
        "current_uses": promotion.current_uses,
        "target_audience": audience.value,
        "target_audience_label": AUDIENCE_LABELS[audience],
        "scope": promotion.scope.to_dict(),
        "valid_weekdays": promotion.valid_weekdays or [],
        "stackable": promotion.stackable,
        "first_order_only": promotion.first_order_only,
        "show_on_site": promotion.show_on_site,
        "notify_whatsapp": promotion.notify_whatsapp,
        "notify_email": promotion.notify_email,
        "display_color": promotion.display_color,
        "revenue_generated": promotion.revenue_generated,
        "revenue_generated_formatted": format_money(promotion.revenue_generated),
        "orders_count": promotion.orders_count,
        "days_left": days_left(promotion.end_date, now) if status in (PromotionStatus.ACTIVE, PromotionStatus.SCHEDULED) else 0,
        "created_at": as_utc(promotion.created_at),
        "updated_at": as_utc(promotion.updated_at),
    }

    if detailed:
        usage_rate = None
        if promotion.global_max_uses:
            usage_rate = round(promotion.current_uses / promotion.global_max_uses * 100, 1)
        data["usage_rate"] = usage_rate
        data["weekday_labels"] = [WEEKDAY_LABELS[day] for day in sorted(promotion.valid_weekdays or [])]
    return data


class PromotionAdminService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = PromotionsRepository(db)

    def get_or_404(self, promotion_id: int) -> Promotion:
        promotion = self.repository.get_by_id(promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(f"Promotion {promotion_id} not found")
        return promotion

    def generate_unique_code(self, name: str) -> str:
        prefix = code_prefix(name)
        attempts = 0
        while True:
            # widen the suffix once the two-digit space looks crowded
            suffix = random.randint(10, 99) if attempts < 20 else random.randint(100, 9999)
            code = f"{prefix}{suffix}"
            if not self.repository.code_exists(code):
                return code
            attempts += 1

    def ensure_code_available(self, code: str, exclude_id: Optional[int] = None):
        if self.repository.code_exists(code, exclude_id):
            raise DuplicatePromotionCodeError(f"Promotion code '{code}' is already taken", details={"code": code})

    def list_promotions(self, query: PromotionListQuery) -> Dict:
        now = utc_now()
        promotions, total = self.repository.list_promotions(query, now)
        return {
            "data": [format_promotion(promotion, now) for promotion in promotions],
            "pagination": {
                "page": query.page,
                "per_page": query.per_page,
                "total": total,
                "last_page": max(1, math.ceil(total / query.per_page)),
            },
        }

    def get_promotion(self, promotion_id: int) -> Dict:
        return format_promotion(self.get_or_404(promotion_id), detailed=True)

    def create_promotion(self, payload: PromotionCreate) -> Dict:
        data = payload.model_dump(exclude={"scope"})
        if data["code"]:
            self.ensure_code_available(data["code"])
        else:
            data["code"] = self.generate_unique_code(payload.name)

        data["start_date"] = as_utc(data["start_date"])
        data["end_date"] = as_utc(data["end_date"])
        promotion = Promotion(**data, current_uses=0, orders_count=0, revenue_generated=Decimal("0"))
        promotion.scope = payload.scope.to_scope()

        self.db.add(promotion)
        self.db.commit()
        self.db.refresh(promotion)
        logger.info(f"promotion_created | promotion_id={promotion.id} code={promotion.code} kind={promotion.kind.value}")
        return format_promotion(promotion, detailed=True)

    def update_promotion(self, promotion_id: int, payload: PromotionUpdate) -> Dict:
        promotion = self.get_or_404(promotion_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("code", "") is None:
            changes.pop("code")

        # Rules span several fields, so check the merged state
        merged = {field: getattr(promotion, field) for field in EDITABLE_FIELDS}
        merged["scope"] = promotion.scope.to_dict()
        merged.update(changes)
        try:
            validated = PromotionCreate.model_validate(merged, context={"is_update": True})
        except ValidationError as e:
            messages = [error["msg"].removeprefix("Value error, ") for error in e.errors()]
            logger.info(f"promotion_update_invalid | promotion_id={promotion_id} errors={messages}")
            raise PromotionValidationError(messages[0], details={"errors": messages})

        if validated.code and validated.code != promotion.code:
            self.ensure_code_available(validated.code, exclude_id=promotion.id)

        for field in EDITABLE_FIELDS:
            if field in changes:
                value = getattr(validated, field)
                if field in ("start_date", "end_date"):
                    value = as_utc(value)
                setattr(promotion, field, value)
        if "scope" in changes:
            promotion.scope = validated.scope.to_scope()

        self.db.commit()
        self.db.refresh(promotion)
        logger.info(f"promotion_updated | promotion_id={promotion.id} fields={sorted(changes)}")
        return format_promotion(promotion, detailed=True)

    def delete_promotion(self, promotion_id: int) -> Dict:
        promotion = self.get_or_404(promotion_id)
        promotion.deleted_at = utc_now()
        promotion.is_active = False
        self.db.commit()
        logger.info(f"promotion_deleted | promotion_id={promotion.id} code={promotion.code} current_uses={promotion.current_uses}")
        return {"message": "Promotion deleted", "id": promotion.id}

    def toggle_status(self, promotion_id: int) -> Dict:
        promotion = self.get_or_404(promotion_id)
        promotion.is_active = not promotion.is_active
        self.db.commit()
        self.db.refresh(promotion)
        logger.info(f"promotion_toggled | promotion_id={promotion.id} is_active={promotion.is_active}")
        return format_promotion(promotion)

    def duplicate_promotion(self, promotion_id: int) -> Dict:
        source = self.get_or_404(promotion_id)

        name = source.name[:PromotionLimits.NAME_MAX_LENGTH - len(COPY_SUFFIX)] + COPY_SUFFIX
        tomorrow = shop_today() + timedelta(days=1)
        start = datetime.combine(tomorrow, time.min, tzinfo=SHOP_TZ)

        copy = Promotion(**{field: getattr(source, field) for field in EDITABLE_FIELDS})
        copy.scope = source.scope
        copy.name = name
        copy.code = self.generate_unique_code(name)
        copy.is_active = False
        copy.start_date = as_utc(start)
        copy.end_date = as_utc(start + timedelta(days=30))
        copy.current_uses = 0
        copy.orders_count = 0
        copy.revenue_generated = Decimal("0")

        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)
        logger.info(f"promotion_duplicated | source_id={source.id} promotion_id={copy.id} code={copy.code}")
        return format_promotion(copy, detailed=True)

    def get_stats(self) -> Dict:
        stats = self.repository.get_stats(utc_now())
        most_used = stats.pop("most_used")
        most_profitable = stats.pop("most_profitable")
        stats["total_revenue_formatted"] = format_money(stats["total_revenue"])
        stats["most_used"] = {
            "id": most_used.id, "name": most_used.name, "code": most_used.code, "current_uses": most_used.current_uses,
        } if most_used else None
        stats["most_profitable"] = {
            "id": most_profitable.id, "name": most_profitable.name, "code": most_profitable.code,
            "revenue_generated": most_profitable.revenue_generated,
        } if most_profitable else None
        return stats

    @staticmethod
    def get_options() -> Dict:
        return {
            "kinds": [{"value": kind.value, "label": label} for kind, label in KIND_LABELS.items()],
            "audiences": [{"value": audience.value, "label": label} for audience, label in AUDIENCE_LABELS.items()],
            "weekdays": [{"value": day, "label": label} for day, label in WEEKDAY_LABELS.items()],
            "colors": [{"value": color, "label": label} for color, label in DISPLAY_COLORS.items()],
        }

    def list_visible(self) -> List[Dict]:
        """Storefront listing: running, visible and not exhausted."""
        now = utc_now()
        return [
            {
                "code": promotion.code,
                "name": promotion.name,
                "description": promotion.description,
                "image": promotion.image,
                "kind": PromotionKind(promotion.kind).value,
                "value_formatted": format_value(promotion.kind, promotion.value),
                "min_order_amount": promotion.min_order_amount,
                "end_date": as_utc(promotion.end_date),
                "days_left": days_left(promotion.end_date, now),
                "display_color": promotion.display_color,
            }
            for promotion in self.repository.list_visible(now)
        ]
