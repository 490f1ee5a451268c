from decimal import Decimal, ROUND_HALF_UP

from promo_service.core.constants import MONEY_QUANTUM, PromotionKind

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()


def quantize_money(amount) -> Decimal:
    return Decimal(str(amount)).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def format_money(amount) -> str:
    """5000 -> '5 000 FCFA'"""
    whole = Decimal(str(amount or 0)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{int(whole):,}".replace(",", " ") + f" {configs.CURRENCY}"


def format_value(kind, value) -> str:
    kind = PromotionKind(kind)
    if kind == PromotionKind.PERCENTAGE:
        return f"{Decimal(str(value)).normalize():f}%"
    if kind == PromotionKind.FIXED_AMOUNT:
        return format_money(value)
    return "Free shipping"
