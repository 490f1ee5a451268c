import threading
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql

from promo_service.connections.database import SessionLocal, get_db_session
from promo_service.core.constants import PromotionErrorCode
from promo_service.core.exceptions import RedemptionRejected
from promo_service.dto.promotions import ClientContext
from promo_service.models.promotions import PromotionRedemption
from promo_service.repository.promotions import locked_by_code
from promo_service.services.redemption_service import RedemptionService


def redemption_count(promotion_id: int) -> int:
    with get_db_session(read_only=True) as db:
        return db.execute(select(func.count(PromotionRedemption.id)).where(PromotionRedemption.promotion_id == promotion_id)).scalar_one()


def test_redeem_consumes_one_use(make_promotion, fetch_promotion):
    promotion = make_promotion(code="TABASKI", value=Decimal("10"))

    result = RedemptionService().redeem("TABASKI", "ORD-1", Decimal("20000"), ClientContext(client_id="c-1"))

    assert result["already_redeemed"] is False
    assert result["discount"] == Decimal("2000.00")
    assert result["new_total"] == Decimal("18000.00")
    stored = fetch_promotion(promotion.id)
    assert stored.current_uses == 1
    assert stored.orders_count == 1
    assert stored.revenue_generated == Decimal("2000.00")
    assert redemption_count(promotion.id) == 1


def test_redeem_is_idempotent_per_order(make_promotion, fetch_promotion):
    promotion = make_promotion(code="TABASKI", per_client_max_uses=5)
    service = RedemptionService()

    first = service.redeem("TABASKI", "ORD-1", Decimal("20000"), ClientContext(client_id="c-1"))
    second = service.redeem("TABASKI", "ORD-1", Decimal("20000"), ClientContext(client_id="c-1"))

    assert second["already_redeemed"] is True
    assert second["redemption_id"] == first["redemption_id"]
    assert second["discount"] == first["discount"]
    assert fetch_promotion(promotion.id).current_uses == 1


def test_redeem_with_other_code_on_redeemed_order_is_refused(make_promotion, fetch_promotion):
    first = make_promotion(code="AAA")
    second = make_promotion(code="BBB")
    service = RedemptionService()
    service.redeem("AAA", "ORD-1", Decimal("10000"), ClientContext(client_id="c-1"))

    with pytest.raises(RedemptionRejected) as exc_info:
        service.redeem("BBB", "ORD-1", Decimal("10000"), ClientContext(client_id="c-1"))

    assert exc_info.value.error_code == PromotionErrorCode.REDEMPTION_CONFLICT
    assert exc_info.value.status_code == 409
    assert exc_info.value.details["redeemed_code"] == "AAA"
    assert fetch_promotion(first.id).current_uses == 1
    assert fetch_promotion(second.id).current_uses == 0
    assert redemption_count(second.id) == 0


def test_redeem_rejects_ineligible_order(make_promotion, fetch_promotion):
    promotion = make_promotion(code="MIN", min_order_amount=Decimal("5000"))

    with pytest.raises(RedemptionRejected) as exc_info:
        RedemptionService().redeem("MIN", "ORD-1", Decimal("1000"))

    assert exc_info.value.error_code == PromotionErrorCode.BELOW_MINIMUM
    assert exc_info.value.status_code == 409
    assert fetch_promotion(promotion.id).current_uses == 0
    assert redemption_count(promotion.id) == 0


def test_redeem_rejects_when_exhausted(make_promotion):
    make_promotion(code="SEUL", global_max_uses=1)
    service = RedemptionService()
    service.redeem("SEUL", "ORD-1", Decimal("10000"))

    with pytest.raises(RedemptionRejected) as exc_info:
        service.redeem("SEUL", "ORD-2", Decimal("10000"))

    assert exc_info.value.error_code == PromotionErrorCode.EXHAUSTED


def test_per_client_uses_are_counted_from_redemptions(make_promotion):
    make_promotion(code="UNEFOIS", per_client_max_uses=1)
    service = RedemptionService()
    service.redeem("UNEFOIS", "ORD-1", Decimal("10000"), ClientContext(client_id="c-1"))

    with pytest.raises(RedemptionRejected) as exc_info:
        service.redeem("UNEFOIS", "ORD-2", Decimal("10000"), ClientContext(client_id="c-1"))
    assert exc_info.value.error_code == PromotionErrorCode.PER_CLIENT_LIMIT_REACHED

    # another client is unaffected
    assert service.redeem("UNEFOIS", "ORD-3", Decimal("10000"), ClientContext(client_id="c-2"))["already_redeemed"] is False


def test_caller_transaction_rollback_undoes_redemption(make_promotion, fetch_promotion):
    promotion = make_promotion(code="ROLLBACK")

    db = SessionLocal()
    try:
        result = RedemptionService().redeem("ROLLBACK", "ORD-1", Decimal("10000"), session=db)
        assert result["already_redeemed"] is False
        db.rollback()
    finally:
        db.close()

    assert fetch_promotion(promotion.id).current_uses == 0
    assert redemption_count(promotion.id) == 0


def test_caller_transaction_commit_keeps_redemption(make_promotion, fetch_promotion):
    promotion = make_promotion(code="COMMIT")

    db = SessionLocal()
    try:
        RedemptionService().redeem("COMMIT", "ORD-1", Decimal("10000"), session=db)
        db.commit()
    finally:
        db.close()

    assert fetch_promotion(promotion.id).current_uses == 1
    assert redemption_count(promotion.id) == 1


def run_concurrently(target, count: int):
    barrier = threading.Barrier(count)
    outcomes = [None] * count

    def worker(index):
        barrier.wait()
        try:
            outcomes[index] = target(index)
        except RedemptionRejected as exc:
            outcomes[index] = exc

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def test_concurrent_redeems_never_exceed_global_limit(make_promotion, fetch_promotion):
    promotion = make_promotion(code="FLASH", global_max_uses=1)
    service = RedemptionService()

    outcomes = run_concurrently(
        lambda i: service.redeem("FLASH", f"ORD-{i}", Decimal("10000"), ClientContext(client_id=f"c-{i}")),
        count=8,
    )

    successes = [outcome for outcome in outcomes if isinstance(outcome, dict)]
    rejections = [outcome for outcome in outcomes if isinstance(outcome, RedemptionRejected)]
    assert len(successes) == 1
    assert len(rejections) == 7
    assert all(rejection.error_code == PromotionErrorCode.EXHAUSTED for rejection in rejections)
    assert fetch_promotion(promotion.id).current_uses == 1
    assert redemption_count(promotion.id) == 1


def test_concurrent_redeems_of_same_order_consume_once(make_promotion, fetch_promotion):
    promotion = make_promotion(code="MEME", per_client_max_uses=10)
    service = RedemptionService()

    outcomes = run_concurrently(
        lambda i: service.redeem("MEME", "ORD-SHARED", Decimal("10000"), ClientContext(client_id="c-1")),
        count=5,
    )

    assert all(isinstance(outcome, dict) for outcome in outcomes)
    assert len({outcome["redemption_id"] for outcome in outcomes}) == 1
    assert sum(1 for outcome in outcomes if not outcome["already_redeemed"]) == 1
    assert fetch_promotion(promotion.id).current_uses == 1


def test_concurrent_redeems_by_one_client_respect_per_client_limit(make_promotion, fetch_promotion):
    promotion = make_promotion(code="PERSO", per_client_max_uses=1)
    service = RedemptionService()

    outcomes = run_concurrently(
        lambda i: service.redeem("PERSO", f"ORD-{i}", Decimal("10000"), ClientContext(client_id="c-1")),
        count=6,
    )

    successes = [outcome for outcome in outcomes if isinstance(outcome, dict)]
    rejections = [outcome for outcome in outcomes if isinstance(outcome, RedemptionRejected)]
    assert len(successes) == 1
    assert all(rejection.error_code == PromotionErrorCode.PER_CLIENT_LIMIT_REACHED for rejection in rejections)
    assert fetch_promotion(promotion.id).current_uses == 1
    assert redemption_count(promotion.id) == 1


def test_redeem_locks_the_promotion_row_on_postgres():
    sql = str(locked_by_code("PERSO").compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql
    assert "promotions.deleted_at IS NULL" in sql
