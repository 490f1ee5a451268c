from fastapi import APIRouter
from promo_service.routes.admin.promotions import admin_router as promotions_router

admin_router = APIRouter(tags=["admin"])
admin_router.include_router(promotions_router)
