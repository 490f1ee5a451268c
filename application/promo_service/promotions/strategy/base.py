from abc import ABC, abstractmethod
from decimal import Decimal


class BasePromotionStrategy(ABC):
    @abstractmethod
    def compute_discount(self, promotion, order_amount: Decimal, shipping_fee: Decimal) -> Decimal:
        """Raw discount before the max-discount cap and the order-amount clamp."""
        pass
