# ============================================================================
# app/services/order/window_assignment_service.py
# ============================================================================
"""Attaches a delivery/pickup window to an order"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.errors import (
    InvalidOrderTransition,
    OfferExpired,
    SlotNoLongerAvailable,
    ValidationFailed,
)
from app.models.order import Actor, Order, OrderStatus, ProposalStatus, WindowMode
from app.models.supplier import SupplierSchedulingProfile
from app.services.availability.availability_service import SlotAvailabilityService, parse_slot_id
from app.services.order.order_lifecycle_service import OrderStateMachine
from app.utils.text_processing import clean_note
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class WindowAssignmentService:
    """Fixed slots, negotiable placeholders and window proposals"""

    @staticmethod
    def _ensure_assignable(order: Order) -> None:
        if order.status != OrderStatus.CREATED.value or order.window_mode == WindowMode.FIXED.value:
            raise InvalidOrderTransition(
                "A window can only be assigned to a newly created order without a fixed window",
                order_id=str(order.id), status=order.status, window_mode=order.window_mode,
            )

    @staticmethod
    def assign_window(
            db: Session,
            order: Order,
            slot_id: Optional[str],
            buyer_utc_offset_minutes: int = 0,
            negotiable_note: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Order:
        """
        Fix the chosen slot on the order, or mark it negotiable when no slot is given.

        A slot is re-validated against the live listing and current bookings,
        so a slot taken between listing and selection fails with
        SlotNoLongerAvailable.
        """
        WindowAssignmentService._ensure_assignable(order)
        now = as_utc(now or utcnow())

        if not slot_id:
            return WindowAssignmentService.mark_negotiable(db, order, negotiable_note)

        start, _ = parse_slot_id(slot_id)
        slot = SlotAvailabilityService.find_slot(
            db, order.supplier_id, slot_id, now, buyer_utc_offset_minutes
        )
        if slot is None:
            raise SlotNoLongerAvailable(slot_id=slot_id, reason="not_offered")

        # Serialise capacity checks per supplier; a no-op lock on SQLite
        profile = db.query(SupplierSchedulingProfile).filter(
            SupplierSchedulingProfile.supplier_id == order.supplier_id
        ).with_for_update().first()
        capacity = (profile.slot_capacity if profile else None) or get_settings().DEFAULT_SLOT_CAPACITY

        booked = SlotAvailabilityService.count_bookings(
            db, order.supplier_id, slot.start, slot.end, exclude_order_id=order.id
        ).get(slot.start, 0)
        if booked >= capacity:
            db.rollback()
            logger.info(f"Slot {slot_id} for supplier {order.supplier_id} is full ({booked}/{capacity})")
            raise SlotNoLongerAvailable(slot_id=slot_id, reason="capacity_reached")

        order = OrderStateMachine.confirm_window(
            db, order, Actor.BUYER, now=now, notes=f"Slot {slot_id}",
            values={
                Order.window_mode: WindowMode.FIXED.value,
                Order.window_start: slot.start,
                Order.window_end: slot.end,
                Order.negotiable_note: None,
            },
        )
        logger.info(f"📅 Order {order.order_number} booked slot {start.isoformat()} ({booked + 1}/{capacity})")
        return order

    @staticmethod
    def mark_negotiable(db: Session, order: Order, negotiable_note: Optional[str] = None) -> Order:
        """Supplier will propose a time; the buyer's note is stored as-is"""
        note = clean_note(negotiable_note)
        max_length = get_settings().NEGOTIABLE_NOTE_MAX_LENGTH
        if note and len(note) > max_length:
            raise ValidationFailed(
                f"Preference note must be at most {max_length} characters",
                field="negotiablePreferenceNote", max_length=max_length,
            )

        order.window_mode = WindowMode.NEGOTIABLE.value
        order.window_start = None
        order.window_end = None
        order.negotiable_note = note
        db.commit()
        db.refresh(order)

        logger.info(f"Order {order.order_number} set to negotiable window")
        return order

    # ------------------------------------------------------------------
    # Proposals for negotiable orders
    # ------------------------------------------------------------------

    @staticmethod
    def propose_window(
            db: Session,
            order: Order,
            start: datetime,
            end: datetime,
            proposed_by: Actor,
            now: Optional[datetime] = None
    ) -> Order:
        """Supplier proposal or buyer counter-proposal of a concrete window"""
        now = as_utc(now or utcnow())
        start, end = as_utc(start), as_utc(end)

        if order.window_mode != WindowMode.NEGOTIABLE.value or order.status != OrderStatus.CREATED.value:
            raise InvalidOrderTransition(
                "Windows can only be proposed for negotiable orders awaiting scheduling",
                order_id=str(order.id), status=order.status, window_mode=order.window_mode,
            )
        if start >= end:
            raise ValidationFailed("Window start must be before its end", field="windowStart")
        if start <= now:
            raise ValidationFailed("Proposed window must start in the future", field="windowStart")

        order.proposed_window_start = start
        order.proposed_window_end = end
        order.proposed_by = proposed_by.value
        order.proposal_status = ProposalStatus.PENDING.value
        db.commit()
        db.refresh(order)

        logger.info(f"Order {order.order_number}: {proposed_by.value} proposed {start.isoformat()} - {end.isoformat()}")
        return order

    @staticmethod
    def _pending_proposal_from_other_party(order: Order, acting: Actor) -> None:
        if order.proposal_status != ProposalStatus.PENDING.value or not order.proposed_window_start:
            raise InvalidOrderTransition("No pending window proposal", order_id=str(order.id))
        if order.proposed_by == acting.value:
            raise InvalidOrderTransition(
                f"No pending {'supplier' if acting == Actor.BUYER else 'buyer'} proposal to answer",
                order_id=str(order.id),
            )

    @staticmethod
    def accept_proposal(db: Session, order: Order, accepted_by: Actor, now: Optional[datetime] = None) -> Order:
        """Fix the proposed window and move the order to window_confirmed"""
        now = as_utc(now or utcnow())
        WindowAssignmentService._pending_proposal_from_other_party(order, accepted_by)

        start = as_utc(order.proposed_window_start)
        end = as_utc(order.proposed_window_end)
        if start <= now:
            raise OfferExpired(order_id=str(order.id), proposed_window_start=start.isoformat())

        return OrderStateMachine.confirm_window(
            db, order, accepted_by, now=now, notes=f"Accepted {order.proposed_by} proposal",
            values={
                Order.window_mode: WindowMode.FIXED.value,
                Order.window_start: start,
                Order.window_end: end,
                Order.proposal_status: ProposalStatus.ACCEPTED.value,
            },
        )

    @staticmethod
    def reject_proposal(db: Session, order: Order, rejected_by: Actor) -> Order:
        WindowAssignmentService._pending_proposal_from_other_party(order, rejected_by)

        order.proposal_status = ProposalStatus.REJECTED.value
        db.commit()
        db.refresh(order)

        logger.info(f"Order {order.order_number}: {rejected_by.value} rejected the window proposal")
        return order
