from decimal import Decimal
from .base import BasePromotionStrategy


class FixedAmountStrategy(BasePromotionStrategy):
    def compute_discount(self, promotion, order_amount: Decimal, shipping_fee: Decimal) -> Decimal:
        return min(Decimal(str(promotion.value or 0)), order_amount)
