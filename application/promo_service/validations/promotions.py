from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from promo_service.core.constants import AUDIENCE_CLASSIFICATIONS, WEEKDAY_LABELS, PromotionErrorCode, TargetAudience
from promo_service.promotions.eligibility import AllProducts, eligible_items
from promo_service.utils.datetime_helpers import shop_weekday

from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.promotions_validator")


class PromotionEligibilityValidator:
    """Order and client checks for an Active promotion.

    Every failing check appends one error; the order of ``validate_all`` is the
    order rejections are reported in.
    """

    def __init__(self, promotion, order_amount: Decimal, client, prior_uses: int, timestamp: datetime, items: Optional[list] = None):
        self.promotion = promotion
        self.order_amount = order_amount
        self.client = client
        self.prior_uses = prior_uses
        self.timestamp = timestamp
        self.items = items
        self.errors = []

    def validate_min_order(self):
        minimum = self.promotion.min_order_amount
        if minimum is not None and self.order_amount < Decimal(str(minimum)):
            logger.info(f"Minimum order not met | code={self.promotion.code} min_order_amount={minimum} order_amount={self.order_amount}")
            self.errors.append({"code": PromotionErrorCode.BELOW_MINIMUM, "field": "order_amount", "message": f"Minimum order amount of {minimum} not met", "details": {"required": str(minimum), "provided": str(self.order_amount)}})

    def validate_audience(self):
        audience = TargetAudience(self.promotion.target_audience)
        if audience == TargetAudience.ALL:
            return
        if audience == TargetAudience.NEW:
            allowed = self.client.is_first_order
        else:
            allowed = self.client.classification in AUDIENCE_CLASSIFICATIONS[audience]
        if not allowed:
            classification = self.client.classification.value if self.client.classification else None
            logger.info(f"Audience mismatch | code={self.promotion.code} audience={audience.value} classification={classification}")
            self.errors.append({"code": PromotionErrorCode.AUDIENCE_MISMATCH, "field": "client.classification", "message": "This promotion is reserved for another group of clients", "details": {"audience": audience.value, "classification": classification}})

    def validate_weekday(self):
        weekdays = self.promotion.valid_weekdays
        if not weekdays:
            return
        today = shop_weekday(self.timestamp)
        if today not in weekdays:
            logger.info(f"Weekday restricted | code={self.promotion.code} weekday={today} valid_weekdays={weekdays}")
            allowed = ", ".join(WEEKDAY_LABELS[day] for day in sorted(weekdays))
            self.errors.append({"code": PromotionErrorCode.WEEKDAY_RESTRICTED, "field": "timestamp", "message": f"This promotion is only valid on: {allowed}", "details": {"weekday": today, "valid_weekdays": sorted(weekdays)}})

    def validate_per_client_limit(self):
        limit = self.promotion.per_client_max_uses
        if limit is not None and self.prior_uses >= limit:
            logger.info(f"Per client limit reached | code={self.promotion.code} client_id={self.client.client_id} prior_uses={self.prior_uses} limit={limit}")
            self.errors.append({"code": PromotionErrorCode.PER_CLIENT_LIMIT_REACHED, "field": "client.prior_uses", "message": "You have already used this promotion the maximum number of times", "details": {"prior_uses": self.prior_uses, "limit": limit}})

    def validate_first_order(self):
        if self.promotion.first_order_only and not self.client.is_first_order:
            logger.info(f"First order only | code={self.promotion.code} client_id={self.client.client_id}")
            self.errors.append({"code": PromotionErrorCode.FIRST_ORDER_ONLY, "field": "client.is_first_order", "message": "This promotion is only valid on a first order"})

    def validate_scope(self):
        scope = self.promotion.scope
        if self.items is None or isinstance(scope, AllProducts):
            return
        if not eligible_items(scope, self.items):
            logger.info(f"No item in scope | code={self.promotion.code} scope={scope.to_dict()}")
            self.errors.append({"code": PromotionErrorCode.NOT_IN_SCOPE, "field": "items", "message": "None of the ordered products is eligible for this promotion", "details": scope.to_dict()})

    def validate_all(self) -> List[dict]:
        self.validate_min_order()
        self.validate_audience()
        self.validate_weekday()
        self.validate_per_client_limit()
        self.validate_first_order()
        self.validate_scope()
        return self.errors
