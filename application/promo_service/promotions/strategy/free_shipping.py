from decimal import Decimal
from .base import BasePromotionStrategy


class FreeShippingStrategy(BasePromotionStrategy):
    # The promotion value is always 0, the discount is the delivery fee itself
    def compute_discount(self, promotion, order_amount: Decimal, shipping_fee: Decimal) -> Decimal:
        return shipping_fee
