"""
Product eligibility scope of a promotion.

A promotion applies to every product, to a list of categories, or to a list of
products. The scope is stored as ``scope_kind`` + ``scope_ids`` and rebuilt here.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from promo_service.core.constants import ScopeKind


@dataclass(frozen=True)
class EligibilityScope:
    kind = ScopeKind.ALL_PRODUCTS

    def matches(self, item) -> bool:
        return True

    def to_columns(self) -> Tuple[ScopeKind, Optional[List[int]]]:
        return self.kind, None

    def to_dict(self) -> dict:
        return {"kind": self.kind.value}

    @staticmethod
    def from_columns(kind, ids) -> "EligibilityScope":
        kind = ScopeKind(kind) if kind else ScopeKind.ALL_PRODUCTS
        if kind == ScopeKind.CATEGORIES:
            return CategoryList(tuple(ids or ()))
        if kind == ScopeKind.PRODUCTS:
            return ProductList(tuple(ids or ()))
        return AllProducts()


@dataclass(frozen=True)
class AllProducts(EligibilityScope):
    pass


@dataclass(frozen=True)
class _IdList(EligibilityScope):
    ids: Tuple[int, ...] = field(default_factory=tuple)

    def to_columns(self):
        return self.kind, list(self.ids)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "ids": list(self.ids)}


@dataclass(frozen=True)
class CategoryList(_IdList):
    kind = ScopeKind.CATEGORIES

    def matches(self, item) -> bool:
        return item.category_id is not None and item.category_id in self.ids


@dataclass(frozen=True)
class ProductList(_IdList):
    kind = ScopeKind.PRODUCTS

    def matches(self, item) -> bool:
        return item.product_id in self.ids


def eligible_items(scope: EligibilityScope, items: Iterable) -> list:
    return [item for item in items if scope.matches(item)]


def eligible_amount(scope: EligibilityScope, order_amount: Decimal, items: Optional[Iterable] = None) -> Decimal:
    """Subtotal the discount is computed on.

    Without items the whole order amount is eligible. With items, only the
    in-scope lines count, never more than the order amount.
    """
    if items is None or isinstance(scope, AllProducts):
        return order_amount
    subtotal = sum((Decimal(str(item.amount)) for item in eligible_items(scope, items)), Decimal("0"))
    return min(subtotal, order_amount)
