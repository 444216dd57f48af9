# ============================================================================
# FILE: app/api/v1/orders.py
# Buyer order endpoints - thin HTTP layer, services raise typed errors
# ============================================================================
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.dependencies import Principal, get_current_principal, get_now
from app.config.database import get_db
from app.core.errors import OrderNotFound
from app.models.order import Actor, Order
from app.schemas.order import CreateOrderRequest, DisputeRequest, WindowProposalRequest
from app.services.dispute.dispute_service import DisputeService
from app.services.order.order_lifecycle_service import OrderStateMachine
from app.services.order.order_service import OrderService
from app.services.order.window_assignment_service import WindowAssignmentService
from app.utils.text_processing import normalize_phone

router = APIRouter(prefix="/orders", tags=["Orders"])


def _order_response(order: Order, now: datetime, **extra) -> dict:
    return {"success": True, "data": order.to_dict(now=now), **extra}


def _load_visible_order(db: Session, order_id: UUID, principal: Principal) -> Order:
    """Buyer (by account or phone) or the order's supplier; anyone else gets 404"""
    order = OrderStateMachine.get_order(db, order_id)
    is_buyer = principal.user_id == order.buyer_id or (
        principal.phone and normalize_phone(principal.phone) == normalize_phone(order.buyer_phone)
    )
    is_supplier = principal.supplier_id is not None and principal.supplier_id == str(order.supplier_id)
    if not (is_buyer or is_supplier):
        raise OrderNotFound(order_id=str(order_id))
    return order


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
        request: CreateOrderRequest,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """
    Place an order with a chosen slot (windowSlotId) or a negotiable window.

    A slot taken since it was listed fails with SLOT_NO_LONGER_AVAILABLE and
    nothing is created.
    """
    order = OrderService.create_order(
        db,
        supplier_id=request.supplier_id,
        buyer_id=principal.user_id,
        buyer_phone=principal.phone,
        items=request.items_payload(),
        pickup_or_delivery=request.pickup_or_delivery,
        window_slot_id=request.window_slot_id,
        negotiable_note=request.negotiable_preference_note,
        buyer_utc_offset_minutes=request.tz_offset_minutes,
        now=now,
    )
    return _order_response(order, now)


@router.get("/{order_id}")
async def get_order(
        order_id: UUID,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Order with its derived confirmationDeadline and secondsRemaining"""
    order = _load_visible_order(db, order_id, principal)
    OrderStateMachine.expire_if_due(db, order, now)
    return _order_response(order, now)


@router.get("/{order_id}/history")
async def get_order_history(
        order_id: UUID,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db)
):
    order = _load_visible_order(db, order_id, principal)
    return {
        "success": True,
        "data": [entry.to_dict() for entry in OrderStateMachine.history(db, order.id)],
    }


# ========== CONFIRMATION WINDOW ==========

@router.post("/{order_id}/confirm")
async def confirm_delivery(
        order_id: UUID,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Buyer confirms receipt; repeating the call is harmless"""
    order = OrderStateMachine.get_order(db, order_id)
    order = OrderStateMachine.confirm_delivery(db, order, principal.phone, now=now)
    return _order_response(order, now)


@router.post("/{order_id}/dispute", status_code=status.HTTP_201_CREATED)
async def dispute_order(
        order_id: UUID,
        request: DisputeRequest,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Report a problem with the delivery before the confirmation deadline"""
    order = OrderStateMachine.get_order(db, order_id)
    dispute = DisputeService.file_dispute(
        db,
        order,
        caller_phone=principal.phone,
        issue_category=request.issue_category,
        description=request.description,
        photos=request.photos,
        now=now,
    )
    return _order_response(order, now, dispute=dispute.to_dict())


@router.post("/{order_id}/confirm-pickup")
async def confirm_pickup(
        order_id: UUID,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Buyer collected a pickup order; starts the confirmation window"""
    order = OrderStateMachine.get_order(db, order_id)
    order = OrderStateMachine.mark_delivered(
        db, order, Actor.BUYER, now=now, caller_phone=principal.phone, notes="Picked up by buyer"
    )
    return _order_response(order, now)


# ========== WINDOW PROPOSALS ==========

@router.post("/{order_id}/accept-window")
async def accept_window(
        order_id: UUID,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    order = OrderStateMachine.get_order(db, order_id)
    OrderStateMachine.ensure_buyer(order, principal.phone)
    order = WindowAssignmentService.accept_proposal(db, order, Actor.BUYER, now=now)
    return _order_response(order, now)


@router.post("/{order_id}/reject-window")
async def reject_window(
        order_id: UUID,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    order = OrderStateMachine.get_order(db, order_id)
    OrderStateMachine.ensure_buyer(order, principal.phone)
    order = WindowAssignmentService.reject_proposal(db, order, Actor.BUYER)
    return _order_response(order, now)


@router.post("/{order_id}/counter-propose-window")
async def counter_propose_window(
        order_id: UUID,
        request: WindowProposalRequest,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Buyer suggests a different window for a negotiable order"""
    order = OrderStateMachine.get_order(db, order_id)
    OrderStateMachine.ensure_buyer(order, principal.phone)
    order = WindowAssignmentService.propose_window(
        db, order, request.window_start, request.window_end, Actor.BUYER, now=now
    )
    return _order_response(order, now)
