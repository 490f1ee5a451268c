from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from promo_service.core.constants import PromotionKind
from promo_service.dto.promotions import PromotionListQuery
from promo_service.models.promotions import Promotion, PromotionRedemption

from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.promotions_repository")


def not_exhausted():
    return or_(Promotion.global_max_uses.is_(None), Promotion.current_uses < Promotion.global_max_uses)


def locked_by_code(code: str):
    """Promotion row for ``code`` selected FOR UPDATE.

    Holding the row lock until commit makes redeems of one promotion take
    turns, so a client's prior uses are counted after any concurrent redeem
    of the same code has committed.
    """
    return (
        select(Promotion)
        .where(Promotion.code == code, Promotion.deleted_at.is_(None))
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def running_at(now: datetime):
    return and_(Promotion.is_active.is_(True), Promotion.start_date <= now, Promotion.end_date >= now)


class PromotionsRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_code(self, code: str) -> Optional[Promotion]:
        """Case-sensitive lookup, soft-deleted promotions excluded."""
        try:
            stmt = select(Promotion).where(Promotion.code == code, Promotion.deleted_at.is_(None))
            promotion = self.session.execute(stmt).scalar_one_or_none()
            logger.info(f"get_by_code_result | code={code} found={promotion is not None}")
            return promotion
        except Exception as e:
            logger.error(f"get_by_code_error | code={code} error={e}", exc_info=True)
            raise

    def lock_for_redemption(self, code: str) -> Optional[Promotion]:
        try:
            promotion = self.session.execute(locked_by_code(code)).scalar_one_or_none()
            logger.info(f"lock_for_redemption_result | code={code} locked={promotion is not None}")
            return promotion
        except Exception as e:
            logger.error(f"lock_for_redemption_error | code={code} error={e}", exc_info=True)
            raise

    def get_by_id(self, promotion_id: int) -> Optional[Promotion]:
        try:
            stmt = select(Promotion).where(Promotion.id == promotion_id, Promotion.deleted_at.is_(None))
            return self.session.execute(stmt).scalar_one_or_none()
        except Exception as e:
            logger.error(f"get_by_id_error | promotion_id={promotion_id} error={e}", exc_info=True)
            raise

    def code_exists(self, code: str, exclude_id: Optional[int] = None) -> bool:
        # soft-deleted rows still hold their code
        try:
            stmt = select(func.count(Promotion.id)).where(Promotion.code == code)
            if exclude_id is not None:
                stmt = stmt.where(Promotion.id != exclude_id)
            return self.session.execute(stmt).scalar_one() > 0
        except Exception as e:
            logger.error(f"code_exists_error | code={code} error={e}", exc_info=True)
            raise

    def count_client_redemptions(self, promotion_id: int, client_id: str) -> int:
        try:
            stmt = select(func.count(PromotionRedemption.id)).where(
                PromotionRedemption.promotion_id == promotion_id,
                PromotionRedemption.client_id == client_id,
            )
            count = self.session.execute(stmt).scalar_one()
            logger.info(f"count_client_redemptions_result | promotion_id={promotion_id} client_id={client_id} count={count}")
            return count
        except Exception as e:
            logger.error(f"count_client_redemptions_error | promotion_id={promotion_id} client_id={client_id} error={e}", exc_info=True)
            raise

    def get_redemption_by_order(self, order_id: str) -> Optional[PromotionRedemption]:
        try:
            stmt = select(PromotionRedemption).where(PromotionRedemption.order_id == order_id)
            return self.session.execute(stmt).scalar_one_or_none()
        except Exception as e:
            logger.error(f"get_redemption_by_order_error | order_id={order_id} error={e}", exc_info=True)
            raise

    def consume_use(self, promotion_id: int, discount: Decimal) -> bool:
        """
        Take one use of the promotion in a single conditional UPDATE.

        The limit is checked by the database in the same statement that
        increments the counter, so concurrent redeems can never overshoot
        ``global_max_uses``. Returns False when no use was left.
        """
        try:
            stmt = (
                update(Promotion)
                .where(
                    Promotion.id == promotion_id,
                    Promotion.deleted_at.is_(None),
                    Promotion.is_active.is_(True),
                    not_exhausted(),
                )
                .values(
                    current_uses=Promotion.current_uses + 1,
                    orders_count=Promotion.orders_count + 1,
                    revenue_generated=Promotion.revenue_generated + discount,
                )
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            consumed = result.rowcount == 1
            logger.info(f"consume_use_result | promotion_id={promotion_id} consumed={consumed}")
            return consumed
        except Exception as e:
            logger.error(f"consume_use_error | promotion_id={promotion_id} error={e}", exc_info=True)
            raise

    def add_redemption(self, promotion_id: int, order_id: str, client_id: Optional[str], order_amount: Decimal, discount: Decimal) -> PromotionRedemption:
        try:
            redemption = PromotionRedemption(
                promotion_id=promotion_id,
                order_id=order_id,
                client_id=client_id,
                order_amount=order_amount,
                discount_amount=discount,
            )
            self.session.add(redemption)
            self.session.flush()
            logger.info(f"add_redemption_result | promotion_id={promotion_id} order_id={order_id} redemption_id={redemption.id}")
            return redemption
        except Exception as e:
            logger.error(f"add_redemption_error | promotion_id={promotion_id} order_id={order_id} error={e}", exc_info=True)
            raise

    def list_promotions(self, query: PromotionListQuery, now: datetime) -> Tuple[List[Promotion], int]:
        try:
            conditions = [Promotion.deleted_at.is_(None)]

            if query.search:
                pattern = f"%{query.search}%"
                conditions.append(or_(
                    Promotion.name.ilike(pattern),
                    Promotion.code.ilike(pattern),
                    Promotion.description.ilike(pattern),
                ))

            if query.status == "active":
                conditions.extend([running_at(now), not_exhausted()])
            elif query.status == "inactive":
                conditions.append(Promotion.is_active.is_(False))
            elif query.status == "expired":
                conditions.append(Promotion.end_date < now)
            elif query.status == "scheduled":
                conditions.append(Promotion.start_date > now)

            if query.kind:
                conditions.append(Promotion.kind == query.kind)
            if query.created_from:
                conditions.append(Promotion.created_at >= query.created_from)
            if query.created_to:
                conditions.append(Promotion.created_at <= query.created_to)

            total = self.session.execute(select(func.count(Promotion.id)).where(*conditions)).scalar_one()

            sort_column = getattr(Promotion, query.sort)
            order_by = sort_column.asc() if query.direction == "asc" else sort_column.desc()
            stmt = (
                select(Promotion)
                .where(*conditions)
                .order_by(order_by, Promotion.id.desc())
                .offset((query.page - 1) * query.per_page)
                .limit(query.per_page)
            )
            promotions = list(self.session.execute(stmt).scalars().all())
            logger.info(f"list_promotions_result | status={query.status} search={query.search} total={total} page={query.page}")
            return promotions, total
        except Exception as e:
            logger.error(f"list_promotions_error | error={e}", exc_info=True)
            raise

    def list_visible(self, now: datetime) -> List[Promotion]:
        try:
            stmt = (
                select(Promotion)
                .where(
                    Promotion.deleted_at.is_(None),
                    Promotion.show_on_site.is_(True),
                    running_at(now),
                    not_exhausted(),
                )
                .order_by(Promotion.end_date.asc())
            )
            return list(self.session.execute(stmt).scalars().all())
        except Exception as e:
            logger.error(f"list_visible_error | error={e}", exc_info=True)
            raise

    def get_stats(self, now: datetime) -> Dict:
        try:
            live = Promotion.deleted_at.is_(None)

            def count(*conditions) -> int:
                return self.session.execute(select(func.count(Promotion.id)).where(live, *conditions)).scalar_one()

            totals = self.session.execute(
                select(
                    func.coalesce(func.sum(Promotion.revenue_generated), 0),
                    func.coalesce(func.sum(Promotion.current_uses), 0),
                    func.avg(Promotion.current_uses),
                ).where(live)
            ).one()

            most_used = self.session.execute(
                select(Promotion).where(live, Promotion.current_uses > 0).order_by(Promotion.current_uses.desc(), Promotion.id).limit(1)
            ).scalar_one_or_none()
            most_profitable = self.session.execute(
                select(Promotion).where(live, Promotion.revenue_generated > 0).order_by(Promotion.revenue_generated.desc(), Promotion.id).limit(1)
            ).scalar_one_or_none()

            by_kind = {kind.value: count(Promotion.kind == kind) for kind in PromotionKind}

            stats = {
                "total": count(),
                "active": count(running_at(now), not_exhausted()),
                "expired": count(Promotion.end_date < now),
                "scheduled": count(Promotion.start_date > now),
                "total_revenue": Decimal(str(totals[0])),
                "total_uses": int(totals[1]),
                "average_uses": round(float(totals[2] or 0), 2),
                "most_used": most_used,
                "most_profitable": most_profitable,
                "by_kind": by_kind,
            }
            logger.info(f"get_stats_result | total={stats['total']} active={stats['active']}")
            return stats
        except Exception as e:
            logger.error(f"get_stats_error | error={e}", exc_info=True)
            raise
