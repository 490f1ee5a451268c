from decimal import Decimal
from .base import BasePromotionStrategy


class PercentageStrategy(BasePromotionStrategy):
    def compute_discount(self, promotion, order_amount: Decimal, shipping_fee: Decimal) -> Decimal:
        percentage = Decimal(str(promotion.value or 0))
        return (order_amount * percentage) / 100
