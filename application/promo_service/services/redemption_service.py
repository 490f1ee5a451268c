"""
Redeem: consume one use of a promotion for a confirmed order.

Runs in the caller's transaction when a session is given (flush only, the
caller commits or rolls back), otherwise in its own transaction with retry on
transient database errors. Redeeming the same order twice with the same code
is a no-op that returns the first redemption; another code on that order is
refused with REDEMPTION_CONFLICT.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from promo_service.config.sentry import add_breadcrumb
from promo_service.connections.database import get_db_session
from promo_service.core.constants import PromotionErrorCode, PromotionStatus, STATUS_MESSAGES
from promo_service.core.exceptions import RedemptionRejected
from promo_service.dto.promotions import ClientContext
from promo_service.promotions.engine import PromotionEngine
from promo_service.repository.promotions import PromotionsRepository
from promo_service.services.concurrency import run_with_retry
from promo_service.utils.formatting import quantize_money

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.redemption_service")


class RedemptionService:

    def redeem(self, code: str, order_id: str, order_amount: Decimal, client: Optional[ClientContext] = None, items: Optional[list] = None, timestamp: Optional[datetime] = None, shipping_fee: Optional[Decimal] = None, session: Optional[Session] = None) -> Dict:
        client = client or ClientContext()
        order_amount = Decimal(str(order_amount))

        def _run(db: Session) -> Dict:
            return self._redeem_in_session(db, code, order_id, order_amount, client, items, timestamp, shipping_fee)

        if session is not None:
            return _run(session)

        def _own_transaction() -> Dict:
            with get_db_session() as db:
                return _run(db)

        return run_with_retry(_own_transaction, attempts=configs.REDEMPTION_RETRY_ATTEMPTS)

    def _redeem_in_session(self, db: Session, code: str, order_id: str, order_amount: Decimal, client: ClientContext, items: Optional[list], timestamp: Optional[datetime], shipping_fee: Optional[Decimal]) -> Dict:
        repository = PromotionsRepository(db)

        # Serializes redeems of this code until commit; prior uses and the
        # order's redemption are read after any concurrent redeem committed.
        repository.lock_for_redemption(code)

        existing = repository.get_redemption_by_order(order_id)
        if existing is not None:
            self.ensure_same_code(existing, code, order_id)
            logger.info(f"redeem_already_redeemed | code={code} order_id={order_id} redemption_id={existing.id}")
            return self.build_response(existing, already_redeemed=True)

        engine = PromotionEngine(repository)
        result = engine.resolve(code, order_amount, client, timestamp, items, shipping_fee)
        if not result.eligible:
            logger.info(f"redeem_rejected | code={code} order_id={order_id} reason_code={result.reason_code}")
            raise RedemptionRejected(result.reason, error_code=result.reason_code, details={"status": result.status.value, "errors": result.errors})

        promotion = result.promotion
        try:
            with db.begin_nested():
                if not repository.consume_use(promotion.id, result.discount):
                    raise RedemptionRejected(STATUS_MESSAGES[PromotionStatus.EXHAUSTED], error_code=PromotionErrorCode.EXHAUSTED, details={"status": PromotionStatus.EXHAUSTED.value})
                redemption = repository.add_redemption(promotion.id, order_id, client.client_id, order_amount, result.discount)
        except IntegrityError:
            # Another transaction redeemed this order first
            winner = repository.get_redemption_by_order(order_id)
            if winner is None:
                raise
            self.ensure_same_code(winner, code, order_id)
            logger.info(f"redeem_lost_race | code={code} order_id={order_id} redemption_id={winner.id}")
            return self.build_response(winner, already_redeemed=True)

        db.refresh(promotion)
        add_breadcrumb(
            message=f"Promotion {code} redeemed for order {order_id}",
            category="redemption",
            data={"promotion_id": promotion.id, "discount": str(result.discount)},
        )
        logger.info(f"redeem_success | code={code} order_id={order_id} client_id={client.client_id} discount={result.discount} current_uses={promotion.current_uses}")
        return self.build_response(redemption, already_redeemed=False)

    @staticmethod
    def ensure_same_code(redemption, code: str, order_id: str):
        """An order carries one promotion; another code on it is refused."""
        if redemption.promotion.code == code:
            return
        logger.warning(f"redeem_order_has_other_code | order_id={order_id} code={code} redeemed_code={redemption.promotion.code}")
        raise RedemptionRejected(
            f"Order {order_id} was already redeemed with another promotion code",
            error_code=PromotionErrorCode.REDEMPTION_CONFLICT,
            details={"order_id": order_id, "redeemed_code": redemption.promotion.code},
        )

    @staticmethod
    def build_response(redemption, already_redeemed: bool) -> Dict:
        order_amount = Decimal(str(redemption.order_amount))
        discount = quantize_money(redemption.discount_amount)
        return {
            "redemption_id": redemption.id,
            "promotion_id": redemption.promotion_id,
            "code": redemption.promotion.code,
            "order_id": redemption.order_id,
            "client_id": redemption.client_id,
            "order_amount": order_amount,
            "discount": discount,
            "new_total": quantize_money(order_amount - discount),
            "already_redeemed": already_redeemed,
        }
