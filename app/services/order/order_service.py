# ============================================================================
# app/services/order/order_service.py
# ============================================================================
"""Service for placing orders"""
import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import SupplierNotFound, ValidationFailed
from app.models.order import Actor, FulfillmentMethod, Order, OrderStatus, WindowMode
from app.models.supplier import Supplier
from app.services.order.order_lifecycle_service import OrderStateMachine
from app.services.order.window_assignment_service import WindowAssignmentService
from app.utils.text_processing import normalize_phone
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


def generate_order_number(now: datetime) -> str:
    """Human-readable order number, e.g. ORD-20240101-7F3A9C"""
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


class OrderService:
    """Handles order creation"""

    @staticmethod
    def create_order(
            db: Session,
            supplier_id,
            buyer_id: str,
            buyer_phone: str,
            items: List[Dict[str, Any]],
            pickup_or_delivery: str,
            window_slot_id: Optional[str] = None,
            negotiable_note: Optional[str] = None,
            buyer_utc_offset_minutes: int = 0,
            now: Optional[datetime] = None
    ) -> Order:
        """
        Create an order and attach its window.

        With a slot id the order ends up ``window_confirmed``; without one it
        stays ``created`` with a negotiable window. The insert and the slot
        booking share one transaction: if the slot was taken in the meantime
        nothing is persisted and SlotNoLongerAvailable propagates so the buyer
        can pick again.
        """
        now = as_utc(now or utcnow())

        supplier = db.query(Supplier).filter_by(id=supplier_id).first()
        if not supplier or not supplier.is_active:
            raise SupplierNotFound(supplier_id=str(supplier_id))
        if pickup_or_delivery not in {m.value for m in FulfillmentMethod}:
            raise ValidationFailed(
                "pickupOrDelivery must be 'pickup' or 'delivery'", field="pickupOrDelivery"
            )
        if not items:
            raise ValidationFailed("Order must contain at least one item", field="items")
        if not normalize_phone(buyer_phone):
            raise ValidationFailed("Buyer phone is required", field="buyerPhone")

        order = Order(
            order_number=generate_order_number(now),
            supplier_id=supplier.id,
            buyer_id=buyer_id,
            buyer_phone=normalize_phone(buyer_phone),
            items=items,
            pickup_or_delivery=pickup_or_delivery,
            window_mode=WindowMode.UNASSIGNED.value,
            status=OrderStatus.CREATED.value,
            created_at=now,
            updated_at=now,
        )
        db.add(order)
        db.flush()
        OrderStateMachine.record_history(db, order.id, None, OrderStatus.CREATED.value, Actor.BUYER, now)

        try:
            order = WindowAssignmentService.assign_window(
                db, order, window_slot_id,
                buyer_utc_offset_minutes=buyer_utc_offset_minutes,
                negotiable_note=negotiable_note,
                now=now,
            )
        except Exception:
            db.rollback()
            raise

        logger.info(f"🛒 Order {order.order_number} created for supplier {supplier.id} ({order.window_mode} window)")
        return order
