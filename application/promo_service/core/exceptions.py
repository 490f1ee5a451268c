from promo_service.core.constants import PromotionErrorCode


class PromotionError(Exception):
    """Base class for promotion service errors surfaced to API callers."""

    status_code = 400
    error_code = "PROMOTION_ERROR"

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error_code": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class PromotionNotFoundError(PromotionError):
    status_code = 404
    error_code = PromotionErrorCode.NOT_FOUND


class DuplicatePromotionCodeError(PromotionError):
    status_code = 409
    error_code = PromotionErrorCode.DUPLICATE_CODE


class RedemptionRejected(PromotionError):
    """Redeem refused: the promotion is no longer redeemable for this order.

    Raised inside the confirmation transaction so the caller rolls it back.
    """
    status_code = 409


class PromotionValidationError(PromotionError):
    """Promotion fields break a business rule once merged with the stored state."""
    status_code = 422
    error_code = "INVALID_PROMOTION"
