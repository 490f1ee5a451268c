from datetime import datetime, timedelta
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationInfo, model_validator

from promo_service.core.constants import (
    ClientClassification,
    PromotionKind,
    PromotionLimits,
    PromotionStatus,
    TargetAudience,
)
from promo_service.promotions.eligibility import AllProducts, CategoryList, EligibilityScope, ProductList
from promo_service.utils.datetime_helpers import as_utc, shop_today

COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"
CODE_PATTERN = r"^[A-Za-z0-9]+$"

Money = Annotated[Decimal, Field(ge=0, le=PromotionLimits.MAX_ORDER_AMOUNT, decimal_places=2)]
Weekday = Annotated[int, Field(ge=0, le=6, description="0 = Sunday ... 6 = Saturday")]


# --- Eligibility scope (tagged by ``kind``) ---

class AllProductsScope(BaseModel):
    kind: Literal["all_products"] = "all_products"

    def to_scope(self) -> EligibilityScope:
        return AllProducts()


class CategoryScope(BaseModel):
    kind: Literal["categories"]
    ids: List[int] = Field(..., min_length=1, description="Eligible category ids")

    def to_scope(self) -> EligibilityScope:
        return CategoryList(tuple(self.ids))


class ProductScope(BaseModel):
    kind: Literal["products"]
    ids: List[int] = Field(..., min_length=1, description="Eligible product ids")

    def to_scope(self) -> EligibilityScope:
        return ProductList(tuple(self.ids))


ScopeInput = Annotated[Union[AllProductsScope, CategoryScope, ProductScope], Field(discriminator="kind")]


# --- Admin payloads ---

class PromotionCreate(BaseModel):
    """Promotion as submitted from the back office"""
    name: str = Field(..., min_length=PromotionLimits.NAME_MIN_LENGTH, max_length=PromotionLimits.NAME_MAX_LENGTH)
    code: Optional[str] = Field(None, max_length=PromotionLimits.CODE_MAX_LENGTH, pattern=CODE_PATTERN, description="Generated from the name when empty")
    description: str = Field(..., min_length=1, max_length=PromotionLimits.DESCRIPTION_MAX_LENGTH)
    image: Optional[str] = Field(None, max_length=255, description="Image path or URL")

    kind: PromotionKind
    value: Decimal = Field(..., ge=0, decimal_places=2)
    min_order_amount: Optional[Money] = None
    max_discount: Optional[Money] = None

    start_date: datetime
    end_date: datetime
    is_active: bool = True

    global_max_uses: Optional[int] = Field(None, ge=1, le=PromotionLimits.MAX_GLOBAL_USES)
    per_client_max_uses: int = Field(1, ge=1, le=PromotionLimits.MAX_PER_CLIENT_USES)

    target_audience: TargetAudience = TargetAudience.ALL
    scope: ScopeInput = Field(default_factory=AllProductsScope)
    valid_weekdays: Optional[List[Weekday]] = None

    stackable: bool = False
    first_order_only: bool = False
    show_on_site: bool = True
    notify_whatsapp: bool = False
    notify_email: bool = False
    display_color: Optional[str] = Field(None, pattern=COLOR_PATTERN)

    @model_validator(mode="after")
    def check_business_rules(self, info: ValidationInfo):
        is_update = bool(info.context and info.context.get("is_update"))
        start, end = as_utc(self.start_date), as_utc(self.end_date)

        if end <= start:
            raise ValueError("end_date must be after start_date")
        if end - start > timedelta(days=PromotionLimits.MAX_DURATION_DAYS):
            raise ValueError(f"A promotion cannot last more than {PromotionLimits.MAX_DURATION_DAYS} days")
        if not is_update and shop_today(start) < shop_today():
            raise ValueError("start_date cannot be in the past")

        if self.kind == PromotionKind.PERCENTAGE and self.value > PromotionLimits.MAX_PERCENTAGE:
            raise ValueError("A percentage discount cannot exceed 100%")
        if self.kind == PromotionKind.FIXED_AMOUNT:
            if self.value > PromotionLimits.MAX_FIXED_AMOUNT:
                raise ValueError("A fixed discount cannot exceed 1,000,000")
            if self.max_discount is not None and self.min_order_amount is not None and self.max_discount > self.min_order_amount:
                raise ValueError("max_discount cannot exceed min_order_amount for a fixed discount")
        if self.kind == PromotionKind.FREE_SHIPPING and self.value != 0:
            raise ValueError("A free shipping promotion must have a value of 0")

        if self.global_max_uses is not None and self.per_client_max_uses > self.global_max_uses:
            raise ValueError("per_client_max_uses cannot exceed global_max_uses")

        if self.first_order_only and self.target_audience not in (TargetAudience.ALL, TargetAudience.NEW):
            raise ValueError("first_order_only is only allowed for 'all' or 'new' audiences")

        if self.valid_weekdays:
            if len(set(self.valid_weekdays)) == 7:
                raise ValueError("Leave valid_weekdays empty to allow every day")
            self.valid_weekdays = sorted(set(self.valid_weekdays))
        return self


class PromotionUpdate(BaseModel):
    """Partial update; unset fields keep their stored value"""
    name: Optional[str] = Field(None, min_length=PromotionLimits.NAME_MIN_LENGTH, max_length=PromotionLimits.NAME_MAX_LENGTH)
    code: Optional[str] = Field(None, max_length=PromotionLimits.CODE_MAX_LENGTH, pattern=CODE_PATTERN)
    description: Optional[str] = Field(None, min_length=1, max_length=PromotionLimits.DESCRIPTION_MAX_LENGTH)
    image: Optional[str] = Field(None, max_length=255)
    kind: Optional[PromotionKind] = None
    value: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    min_order_amount: Optional[Money] = None
    max_discount: Optional[Money] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    global_max_uses: Optional[int] = Field(None, ge=1, le=PromotionLimits.MAX_GLOBAL_USES)
    per_client_max_uses: Optional[int] = Field(None, ge=1, le=PromotionLimits.MAX_PER_CLIENT_USES)
    target_audience: Optional[TargetAudience] = None
    scope: Optional[ScopeInput] = None
    valid_weekdays: Optional[List[Weekday]] = None
    stackable: Optional[bool] = None
    first_order_only: Optional[bool] = None
    show_on_site: Optional[bool] = None
    notify_whatsapp: Optional[bool] = None
    notify_email: Optional[bool] = None
    display_color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


class PromotionListQuery(BaseModel):
    search: Optional[str] = None
    status: Optional[Literal["active", "inactive", "expired", "scheduled"]] = None
    kind: Optional[PromotionKind] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    sort: Literal["name", "code", "kind", "value", "start_date", "end_date", "current_uses", "created_at"] = "created_at"
    direction: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    per_page: int = Field(15, ge=1, le=100)


# --- Checkout payloads ---

class ClientContext(BaseModel):
    """What the client subsystem knows about the buyer"""
    client_id: Optional[str] = Field(None, max_length=50)
    classification: Optional[ClientClassification] = None
    is_first_order: bool = False
    prior_uses: Optional[int] = Field(None, ge=0, description="Prior uses of this code; counted from redemptions when omitted")


class OrderItem(BaseModel):
    product_id: int
    category_id: Optional[int] = None
    amount: Decimal = Field(..., ge=0, decimal_places=2, description="Line total")


class ValidateCodeRequest(BaseModel):
    # unknown codes of any length resolve to NOT_FOUND
    code: str = Field(..., min_length=1)
    order_amount: Decimal = Field(..., ge=0, decimal_places=2)
    client: ClientContext = Field(default_factory=ClientContext)
    items: Optional[List[OrderItem]] = None
    shipping_fee: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Overrides the default delivery fee")
    timestamp: Optional[datetime] = None


class RedeemRequest(ValidateCodeRequest):
    order_id: str = Field(..., min_length=1, max_length=50)


class PromotionSummary(BaseModel):
    id: int
    code: Optional[str]
    name: str
    kind: PromotionKind
    value: Decimal
    value_formatted: str
    min_order_amount: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    end_date: datetime


class ValidationErrorItem(BaseModel):
    code: str
    field: Optional[str] = None
    message: str
    details: Optional[dict] = None


class ValidateCodeResponse(BaseModel):
    eligible: bool
    status: PromotionStatus
    reason: Optional[str] = None
    reason_code: Optional[str] = None
    errors: List[ValidationErrorItem] = Field(default_factory=list)
    discount: Decimal
    new_total: Decimal
    promotion: Optional[PromotionSummary] = None


class RedeemResponse(BaseModel):
    redemption_id: int
    promotion_id: int
    code: str
    order_id: str
    client_id: Optional[str] = None
    order_amount: Decimal
    discount: Decimal
    new_total: Decimal
    already_redeemed: bool = False
