# app/core/errors.py
"""
Operational errors raised by the fulfillment services and their HTTP rendering.

Every error carries a stable ``code`` the client can switch on and a
``category`` that tells it what to do next:

- validation     -> fix the request and retry
- authorization  -> not allowed, state unchanged
- temporal       -> the world moved on, re-fetch current state
- conflict       -> a terminal (or otherwise incompatible) state was reached
- not_found      -> unknown order/supplier
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

RETRY_GUIDANCE = {
    "validation": "fix_request",
    "temporal": "refetch",
    "conflict": "refetch",
}

HTTP_ERROR_CODES = {
    401: ("UNAUTHENTICATED", "authorization"),
    403: ("FORBIDDEN", "authorization"),
    404: ("NOT_FOUND", "not_found"),
    405: ("METHOD_NOT_ALLOWED", None),
}


class FulfillmentError(Exception):
    """Base class for expected, client-facing errors"""

    code = "FULFILLMENT_ERROR"
    category = "conflict"
    http_status = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category,
            "details": self.details,
            "retry": RETRY_GUIDANCE.get(self.category),
        }


# ----------------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------------

class ValidationFailed(FulfillmentError):
    code = "VALIDATION_FAILED"
    category = "validation"
    http_status = 422
    default_message = "Request payload is invalid"


class InvalidSlot(ValidationFailed):
    code = "INVALID_SLOT"
    default_message = "Slot id is malformed"


# ----------------------------------------------------------------------------
# Authorization
# ----------------------------------------------------------------------------

class WrongPhoneConfirmation(FulfillmentError):
    code = "WRONG_PHONE_CONFIRMATION"
    category = "authorization"
    http_status = 403
    default_message = "Only the buyer who placed this order can perform this action"


class NotOrderSupplier(FulfillmentError):
    code = "NOT_ORDER_SUPPLIER"
    category = "authorization"
    http_status = 403
    default_message = "Only the order's supplier can perform this action"


# ----------------------------------------------------------------------------
# Temporal
# ----------------------------------------------------------------------------

class SlotNoLongerAvailable(FulfillmentError):
    code = "SLOT_NO_LONGER_AVAILABLE"
    category = "temporal"
    http_status = 409
    default_message = "The selected slot is no longer available, please pick another one"


class ConfirmationWindowExpired(FulfillmentError):
    code = "CONFIRMATION_WINDOW_EXPIRED"
    category = "temporal"
    http_status = 410
    default_message = "The confirmation window has closed and the order was completed automatically"

    def __init__(self, message: Optional[str] = None, **details: Any):
        details.setdefault("informational", True)
        super().__init__(message, **details)


class OfferExpired(FulfillmentError):
    code = "OFFER_EXPIRED"
    category = "temporal"
    http_status = 410
    default_message = "The proposed window has already started and can no longer be accepted"


# ----------------------------------------------------------------------------
# State conflicts
# ----------------------------------------------------------------------------

class OrderNotDisputable(FulfillmentError):
    code = "ORDER_NOT_DISPUTABLE"
    category = "conflict"
    http_status = 409
    default_message = "Order can only be disputed while it is awaiting delivery confirmation"


class InvalidOrderTransition(FulfillmentError):
    code = "INVALID_ORDER_TRANSITION"
    category = "conflict"
    http_status = 409
    default_message = "Order is not in a state that allows this action"


# ----------------------------------------------------------------------------
# Lookups
# ----------------------------------------------------------------------------

class OrderNotFound(FulfillmentError):
    code = "ORDER_NOT_FOUND"
    category = "not_found"
    http_status = 404
    default_message = "Order not found"


class SupplierNotFound(FulfillmentError):
    code = "SUPPLIER_NOT_FOUND"
    category = "not_found"
    http_status = 404
    default_message = "Supplier not found"


def error_response(status_code: int, error: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def register_exception_handlers(app: FastAPI) -> None:
    """Translate service exceptions into the API error envelope"""

    @app.exception_handler(FulfillmentError)
    async def fulfillment_error_handler(request: Request, exc: FulfillmentError):
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        log = logger.info if exc.category == "temporal" else logger.warning
        log(f"{exc.code} on {request.method} {request.url.path} [{correlation_id}]: {exc.message}")
        return error_response(exc.http_status, exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code, category = HTTP_ERROR_CODES.get(exc.status_code, ("HTTP_ERROR", None))
        response = error_response(exc.status_code, {
            "code": code,
            "message": str(exc.detail),
            "category": category,
            "details": {},
            "retry": None,
        })
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = ValidationFailed(errors=[
            {"field": ".".join(str(p) for p in e.get("loc", ())), "reason": e.get("msg")}
            for e in exc.errors()
        ])
        return error_response(error.http_status, error.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        logger.exception(
            f"Unhandled error on {request.method} {request.url.path} [{correlation_id}]: {exc}"
        )
        return error_response(500, {
            "code": "INTERNAL_ERROR",
            "message": "Something went wrong, please try again later",
            "category": "fatal",
            "details": {"correlation_id": correlation_id},
            "retry": None,
        })
