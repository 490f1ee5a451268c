from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

# Database
from promo_service.connections.database import get_read_db

# DTOs
from promo_service.dto.promotions import ValidateCodeRequest, ValidateCodeResponse, RedeemRequest, RedeemResponse

# Services
from promo_service.promotions.engine import PromotionEngine
from promo_service.repository.promotions import PromotionsRepository
from promo_service.services.redemption_service import RedemptionService
from promo_service.services.promotion_admin_service import PromotionAdminService

# Request context
from promo_service.middlewares.request_context import request_context

shop_router = APIRouter(prefix="/promotions", tags=["shop-promotions"])


@shop_router.post("/validate", response_model=ValidateCodeResponse)
def validate_code(request: ValidateCodeRequest, db: Session = Depends(get_read_db)):
    """ Preview the discount a code grants on an order, without consuming it """
    request_context.module_name = 'shop_promotions'
    request_context.promotion_code = request.code
    request_context.client_id = request.client.client_id

    engine = PromotionEngine(PromotionsRepository(db))
    return engine.validate(request.code, request.order_amount, request.client, request.timestamp, request.items, request.shipping_fee)


@shop_router.post("/redeem", response_model=RedeemResponse)
def redeem_code(request: RedeemRequest):
    """ Consume one use of a code for a confirmed order; repeat calls return the first redemption """
    request_context.module_name = 'shop_promotions'
    request_context.promotion_code = request.code
    request_context.client_id = request.client.client_id
    request_context.order_id = request.order_id

    return RedemptionService().redeem(
        request.code,
        request.order_id,
        request.order_amount,
        client=request.client,
        items=request.items,
        timestamp=request.timestamp,
        shipping_fee=request.shipping_fee,
    )


@shop_router.get("/active")
def list_active_promotions(db: Session = Depends(get_read_db)):
    """ Promotions currently shown on the storefront """
    return PromotionAdminService(db).list_visible()
