from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from typing import Dict, List, Optional

# Repository
from promo_service.repository.promotions import PromotionsRepository

# Validations
from promo_service.validations.promotions import PromotionEligibilityValidator

# Constants
from promo_service.core.constants import MONEY_QUANTUM, STATUS_ERROR_CODES, STATUS_MESSAGES, PromotionKind, PromotionStatus

# DTOs
from promo_service.dto.promotions import ClientContext

# Helpers
from promo_service.promotions.eligibility import eligible_amount
from promo_service.promotions.status import derive_status
from promo_service.utils.datetime_helpers import as_utc, utc_now
from promo_service.utils.formatting import format_value, quantize_money

# Strategies
from promo_service.promotions.strategy.percentage import PercentageStrategy
from promo_service.promotions.strategy.fixed_amount import FixedAmountStrategy
from promo_service.promotions.strategy.free_shipping import FreeShippingStrategy

STRATEGIES = {
    PromotionKind.PERCENTAGE: PercentageStrategy(),
    PromotionKind.FIXED_AMOUNT: FixedAmountStrategy(),
    PromotionKind.FREE_SHIPPING: FreeShippingStrategy(),
}

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

# Logging
from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.promotions_engine")

ZERO = Decimal("0.00")


@dataclass
class EligibilityResult:
    status: PromotionStatus
    promotion: Optional[object] = None
    errors: List[Dict] = field(default_factory=list)
    discount: Decimal = ZERO

    @property
    def eligible(self) -> bool:
        return self.status == PromotionStatus.ACTIVE and not self.errors

    @property
    def reason(self) -> Optional[str]:
        return self.errors[0]["message"] if self.errors else None

    @property
    def reason_code(self) -> Optional[str]:
        return self.errors[0]["code"] if self.errors else None


def compute_discount(promotion, order_amount: Decimal, shipping_fee: Optional[Decimal] = None) -> Decimal:
    """Discount granted on ``order_amount``.

    The raw amount from the kind's strategy is capped by ``max_discount`` and
    clamped into [0, order_amount]. Rounding to the cent never lifts the
    discount above the order amount, whatever precision the amount carries.
    """
    order_amount = Decimal(str(order_amount))
    if shipping_fee is None:
        shipping_fee = Decimal(configs.DEFAULT_SHIPPING_FEE)

    strategy = STRATEGIES[PromotionKind(promotion.kind)]
    discount = strategy.compute_discount(promotion, order_amount, Decimal(str(shipping_fee)))

    if promotion.max_discount is not None:
        discount = min(discount, Decimal(str(promotion.max_discount)))
    discount = quantize_money(max(Decimal("0"), min(discount, order_amount)))
    ceiling = max(ZERO, order_amount.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN))
    return min(discount, ceiling)


class PromotionEngine:
    """Resolves a code against an order and a client."""

    def __init__(self, repository: PromotionsRepository):
        self.repository = repository

    def resolve(self, code: str, order_amount: Decimal, client: Optional[ClientContext] = None, timestamp: Optional[datetime] = None, items: Optional[list] = None, shipping_fee: Optional[Decimal] = None) -> EligibilityResult:
        """Status first, then the order and client checks.

        Rejections are returned, never raised.
        """
        client = client or ClientContext()
        timestamp = as_utc(timestamp or utc_now())
        order_amount = Decimal(str(order_amount))

        promotion = self.repository.get_by_code(code)
        status = derive_status(promotion, timestamp)
        if status != PromotionStatus.ACTIVE:
            logger.info(f"resolve_rejected | code={code} status={status.value}")
            return EligibilityResult(
                status=status,
                promotion=promotion if status != PromotionStatus.NOT_FOUND else None,
                errors=[{"code": STATUS_ERROR_CODES[status], "field": "code", "message": STATUS_MESSAGES[status]}],
            )

        prior_uses = self.prior_uses(promotion, client)
        validator = PromotionEligibilityValidator(promotion, order_amount, client, prior_uses, timestamp, items)
        errors = validator.validate_all()
        if errors:
            logger.info(f"resolve_rejected | code={code} client_id={client.client_id} reason_code={errors[0]['code']} errors={len(errors)}")
            return EligibilityResult(status=status, promotion=promotion, errors=errors)

        if PromotionKind(promotion.kind) == PromotionKind.FREE_SHIPPING:
            base_amount = order_amount
        else:
            base_amount = eligible_amount(promotion.scope, order_amount, items)
        discount = compute_discount(promotion, base_amount, shipping_fee)
        logger.info(f"resolve_eligible | code={code} client_id={client.client_id} order_amount={order_amount} discount={discount}")
        return EligibilityResult(status=status, promotion=promotion, discount=discount)

    def prior_uses(self, promotion, client: ClientContext) -> int:
        if client.prior_uses is not None:
            return client.prior_uses
        if client.client_id:
            return self.repository.count_client_redemptions(promotion.id, client.client_id)
        return 0

    def validate(self, code: str, order_amount: Decimal, client: Optional[ClientContext] = None, timestamp: Optional[datetime] = None, items: Optional[list] = None, shipping_fee: Optional[Decimal] = None) -> Dict:
        """Read-only preview of what redeeming ``code`` would grant."""
        order_amount = Decimal(str(order_amount))
        result = self.resolve(code, order_amount, client, timestamp, items, shipping_fee)
        return self.build_response(result, order_amount)

    @staticmethod
    def build_response(result: EligibilityResult, order_amount: Decimal) -> Dict:
        discount = result.discount if result.eligible else ZERO
        response = {
            "eligible": result.eligible,
            "status": result.status,
            "reason": result.reason,
            "reason_code": result.reason_code,
            "errors": result.errors,
            "discount": discount,
            "new_total": quantize_money(order_amount - discount),
            "promotion": None,
        }

        promotion = result.promotion
        if promotion is not None:
            response["promotion"] = {
                "id": promotion.id,
                "code": promotion.code,
                "name": promotion.name,
                "kind": promotion.kind,
                "value": promotion.value,
                "value_formatted": format_value(promotion.kind, promotion.value),
                "min_order_amount": promotion.min_order_amount,
                "max_discount": promotion.max_discount,
                "end_date": as_utc(promotion.end_date),
            }
        return response
