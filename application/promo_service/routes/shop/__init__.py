from fastapi import APIRouter
from promo_service.routes.shop.promotions import shop_router as promotions_router

shop_router = APIRouter(tags=["shop"])
shop_router.include_router(promotions_router)
