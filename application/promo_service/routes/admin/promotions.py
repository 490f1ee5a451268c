from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

# Database
from promo_service.connections.database import get_db, get_read_db

# DTOs
from promo_service.dto.promotions import PromotionCreate, PromotionUpdate, PromotionListQuery

# Services
from promo_service.services.promotion_admin_service import PromotionAdminService

# Request context
from promo_service.middlewares.request_context import request_context

admin_router = APIRouter(prefix="/promotions", tags=["admin-promotions"])


@admin_router.get("")
def list_promotions(query: PromotionListQuery = Depends(), db: Session = Depends(get_read_db)):
    """ Paginated list with search, status, kind and creation date filters """
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).list_promotions(query)


@admin_router.post("", status_code=201)
def create_promotion(payload: PromotionCreate, db: Session = Depends(get_db)):
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).create_promotion(payload)


@admin_router.get("/stats")
def promotion_stats(db: Session = Depends(get_read_db)):
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).get_stats()


@admin_router.get("/options")
def promotion_options():
    """ Choices for the promotion form """
    return PromotionAdminService.get_options()


@admin_router.get("/{promotion_id}")
def get_promotion(promotion_id: int, db: Session = Depends(get_read_db)):
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).get_promotion(promotion_id)


@admin_router.put("/{promotion_id}")
def update_promotion(promotion_id: int, payload: PromotionUpdate, db: Session = Depends(get_db)):
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).update_promotion(promotion_id, payload)


@admin_router.delete("/{promotion_id}")
def delete_promotion(promotion_id: int, db: Session = Depends(get_db)):
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).delete_promotion(promotion_id)


@admin_router.post("/{promotion_id}/toggle-status")
def toggle_promotion_status(promotion_id: int, db: Session = Depends(get_db)):
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).toggle_status(promotion_id)


@admin_router.post("/{promotion_id}/duplicate", status_code=201)
def duplicate_promotion(promotion_id: int, db: Session = Depends(get_db)):
    request_context.module_name = 'admin_promotions'
    return PromotionAdminService(db).duplicate_promotion(promotion_id)
