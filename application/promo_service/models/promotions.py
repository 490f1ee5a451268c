"""
SQLAlchemy ORM models for promotions and their redemption ledger.
"""

from sqlalchemy import Column, Integer, String, DECIMAL, TIMESTAMP, ForeignKey, Index, Enum, Boolean, Text, JSON
from sqlalchemy.orm import relationship

from promo_service.core.constants import PromotionKind, TargetAudience, ScopeKind
from promo_service.models.common import CommonModel
from promo_service.promotions.eligibility import EligibilityScope


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Promotion(CommonModel):
    """
    Admin-owned discount rule. Lifecycle status is derived from the clock,
    the active flag and the usage counter, never stored.
    """
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), unique=True, nullable=True, index=True)
    description = Column(Text, nullable=False)
    image = Column(String(255), nullable=True)

    kind = Column(Enum(PromotionKind, name="promotion_kind_enum", values_callable=_enum_values), nullable=False)
    value = Column(DECIMAL(10, 2), nullable=False)
    min_order_amount = Column(DECIMAL(10, 2), nullable=True)
    max_discount = Column(DECIMAL(10, 2), nullable=True)

    start_date = Column(TIMESTAMP(timezone=True), nullable=False)
    end_date = Column(TIMESTAMP(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    global_max_uses = Column(Integer, nullable=True)
    per_client_max_uses = Column(Integer, nullable=False, default=1, server_default="1")
    current_uses = Column(Integer, nullable=False, default=0, server_default="0")

    target_audience = Column(
        Enum(TargetAudience, name="target_audience_enum", values_callable=_enum_values),
        nullable=False,
        default=TargetAudience.ALL,
    )
    scope_kind = Column(
        Enum(ScopeKind, name="scope_kind_enum", values_callable=_enum_values),
        nullable=False,
        default=ScopeKind.ALL_PRODUCTS,
    )
    scope_ids = Column(JSON, nullable=True)
    valid_weekdays = Column(JSON, nullable=True)

    stackable = Column(Boolean, nullable=False, default=False)
    first_order_only = Column(Boolean, nullable=False, default=False)

    show_on_site = Column(Boolean, nullable=False, default=True)
    notify_whatsapp = Column(Boolean, nullable=False, default=False)
    notify_email = Column(Boolean, nullable=False, default=False)
    display_color = Column(String(7), nullable=True)

    revenue_generated = Column(DECIMAL(12, 2), nullable=False, default=0, server_default="0")
    orders_count = Column(Integer, nullable=False, default=0, server_default="0")

    deleted_at = Column(TIMESTAMP(timezone=True), nullable=True)

    redemptions = relationship("PromotionRedemption", back_populates="promotion", lazy="select")

    __table_args__ = (
        Index('idx_promotions_active_window', 'is_active', 'start_date', 'end_date'),
        Index('idx_promotions_audience_active', 'target_audience', 'is_active'),
    )

    @property
    def scope(self) -> EligibilityScope:
        return EligibilityScope.from_columns(self.scope_kind, self.scope_ids)

    @scope.setter
    def scope(self, value: EligibilityScope):
        self.scope_kind, self.scope_ids = value.to_columns()

    def __repr__(self):
        return f"<Promotion(id={self.id}, code='{self.code}', kind={self.kind}, uses={self.current_uses}/{self.global_max_uses})>"


class PromotionRedemption(CommonModel):
    """One consumed use of a promotion, tied 1:1 to a confirmed order."""
    __tablename__ = "promotion_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    order_id = Column(String(50), nullable=False, unique=True)
    client_id = Column(String(50), nullable=True, index=True)
    order_amount = Column(DECIMAL(12, 2), nullable=False)
    discount_amount = Column(DECIMAL(12, 2), nullable=False, default=0, server_default="0")

    promotion = relationship("Promotion", back_populates="redemptions")

    __table_args__ = (
        Index('idx_redemptions_promotion_client', 'promotion_id', 'client_id'),
    )

    def __repr__(self):
        return f"<PromotionRedemption(id={self.id}, promotion_id={self.promotion_id}, order_id='{self.order_id}')>"
