from decimal import Decimal
from enum import Enum


class PromotionKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_SHIPPING = "free_shipping"


class TargetAudience(str, Enum):
    ALL = "all"
    NEW = "new"
    VIP = "vip"
    REGULARS = "regulars"


class ClientClassification(str, Enum):
    """Client segments as maintained by the client subsystem."""
    NEW = "new"
    OCCASIONAL = "occasional"
    REGULAR = "regular"
    LOYAL = "loyal"
    VIP = "vip"
    INACTIVE = "inactive"


# Segments a targeted promotion accepts; NEW is decided on the first-order flag instead
AUDIENCE_CLASSIFICATIONS = {
    TargetAudience.VIP: {ClientClassification.VIP},
    TargetAudience.REGULARS: {ClientClassification.REGULAR, ClientClassification.LOYAL},
}


class ScopeKind(str, Enum):
    ALL_PRODUCTS = "all_products"
    CATEGORIES = "categories"
    PRODUCTS = "products"


class PromotionStatus(str, Enum):
    """Derived lifecycle state, never stored."""
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    SCHEDULED = "scheduled"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    ACTIVE = "active"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS = {
    PromotionStatus.NOT_FOUND: "Not found",
    PromotionStatus.INACTIVE: "Inactive",
    PromotionStatus.SCHEDULED: "Scheduled",
    PromotionStatus.EXPIRED: "Expired",
    PromotionStatus.EXHAUSTED: "Exhausted",
    PromotionStatus.ACTIVE: "Active",
}


class PromotionErrorCode:
    NOT_FOUND = "PROMO_NOT_FOUND"
    INACTIVE = "PROMO_INACTIVE"
    SCHEDULED = "PROMO_NOT_STARTED"
    EXPIRED = "PROMO_EXPIRED"
    EXHAUSTED = "PROMO_EXHAUSTED"
    BELOW_MINIMUM = "MIN_ORDER_NOT_MET"
    AUDIENCE_MISMATCH = "AUDIENCE_MISMATCH"
    WEEKDAY_RESTRICTED = "WEEKDAY_RESTRICTED"
    PER_CLIENT_LIMIT_REACHED = "PER_CLIENT_LIMIT_REACHED"
    FIRST_ORDER_ONLY = "FIRST_ORDER_ONLY"
    NOT_IN_SCOPE = "NOT_IN_SCOPE"
    DUPLICATE_CODE = "DUPLICATE_CODE"
    REDEMPTION_CONFLICT = "REDEMPTION_CONFLICT"


STATUS_ERROR_CODES = {
    PromotionStatus.NOT_FOUND: PromotionErrorCode.NOT_FOUND,
    PromotionStatus.INACTIVE: PromotionErrorCode.INACTIVE,
    PromotionStatus.SCHEDULED: PromotionErrorCode.SCHEDULED,
    PromotionStatus.EXPIRED: PromotionErrorCode.EXPIRED,
    PromotionStatus.EXHAUSTED: PromotionErrorCode.EXHAUSTED,
}

STATUS_MESSAGES = {
    PromotionStatus.NOT_FOUND: "Promotion code is invalid",
    PromotionStatus.INACTIVE: "Promotion code is not active",
    PromotionStatus.SCHEDULED: "Promotion has not started yet",
    PromotionStatus.EXPIRED: "Promotion code has expired",
    PromotionStatus.EXHAUSTED: "Promotion code has reached its usage limit",
}


class PromotionLimits:
    NAME_MIN_LENGTH = 3
    NAME_MAX_LENGTH = 100
    CODE_MAX_LENGTH = 20
    DESCRIPTION_MAX_LENGTH = 1000
    MAX_PERCENTAGE = Decimal("100")
    MAX_FIXED_AMOUNT = Decimal("1000000")
    MAX_ORDER_AMOUNT = Decimal("10000000")
    MAX_GLOBAL_USES = 100000
    MAX_PER_CLIENT_USES = 100
    MAX_DURATION_DAYS = 365
    CODE_PREFIX_LENGTH = 5


# 0 = Sunday ... 6 = Saturday
WEEKDAY_LABELS = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    0: "Sunday",
}

KIND_LABELS = {
    PromotionKind.PERCENTAGE: "Percentage (%)",
    PromotionKind.FIXED_AMOUNT: "Fixed amount",
    PromotionKind.FREE_SHIPPING: "Free shipping",
}

AUDIENCE_LABELS = {
    TargetAudience.ALL: "All clients",
    TargetAudience.NEW: "New clients",
    TargetAudience.VIP: "VIP clients",
    TargetAudience.REGULARS: "Regular clients",
}

DISPLAY_COLORS = {
    "#ef4444": "Red",
    "#f97316": "Orange",
    "#eab308": "Yellow",
    "#22c55e": "Green",
    "#3b82f6": "Blue",
    "#8b5cf6": "Violet",
    "#ec4899": "Pink",
}

MONEY_QUANTUM = Decimal("0.01")
