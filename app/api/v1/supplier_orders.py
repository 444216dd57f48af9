# ============================================================================
# FILE: app/api/v1/supplier_orders.py
# Supplier-side order actions (JWT with supplier_id claim required)
# ============================================================================
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import Principal, get_now, require_supplier
from app.config.database import get_db
from app.models.order import Actor
from app.schemas.order import DeliveryProofRequest, WindowProposalRequest
from app.services.order.order_lifecycle_service import DeliveryProof, OrderStateMachine
from app.services.order.window_assignment_service import WindowAssignmentService

router = APIRouter(prefix="/supplier/orders", tags=["Supplier Orders"])


@router.post("/{order_id}/propose-window")
async def propose_window(
        order_id: UUID,
        request: WindowProposalRequest,
        principal: Principal = Depends(require_supplier),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Offer a concrete window for a negotiable order"""
    order = OrderStateMachine.get_order(db, order_id)
    OrderStateMachine.ensure_supplier(order, principal.supplier_id)
    order = WindowAssignmentService.propose_window(
        db, order, request.window_start, request.window_end, Actor.SUPPLIER, now=now
    )
    return {"success": True, "data": order.to_dict(now=now)}


@router.post("/{order_id}/accept-window")
async def accept_counter_proposal(
        order_id: UUID,
        principal: Principal = Depends(require_supplier),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Accept the buyer's counter-proposal"""
    order = OrderStateMachine.get_order(db, order_id)
    OrderStateMachine.ensure_supplier(order, principal.supplier_id)
    order = WindowAssignmentService.accept_proposal(db, order, Actor.SUPPLIER, now=now)
    return {"success": True, "data": order.to_dict(now=now)}


@router.post("/{order_id}/dispatch")
async def dispatch_order(
        order_id: UUID,
        principal: Principal = Depends(require_supplier),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    order = OrderStateMachine.get_order(db, order_id)
    order = OrderStateMachine.mark_dispatched(db, order, principal.supplier_id, now=now)
    return {"success": True, "data": order.to_dict(now=now)}


@router.post("/{order_id}/mark-delivered")
async def mark_delivered(
        order_id: UUID,
        request: Optional[DeliveryProofRequest] = None,
        principal: Principal = Depends(require_supplier),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Record delivery; the buyer then has the confirmation window to respond"""
    request = request or DeliveryProofRequest()
    order = OrderStateMachine.get_order(db, order_id)
    order = OrderStateMachine.mark_delivered(
        db, order, Actor.SUPPLIER, now=now,
        supplier_id=principal.supplier_id,
        notes=request.notes,
        proof=DeliveryProof(
            delivered_at=request.delivered_at,
            photos=request.photos,
            quantities_delivered=request.quantities_payload(),
            is_partial=request.is_partial,
            driver_name=request.driver_name,
            vehicle_info=request.vehicle_info,
        ),
    )
    return {"success": True, "data": order.to_dict(now=now)}
