# ============================================================================
# app/services/order/order_lifecycle_service.py
# ============================================================================
"""
Canonical order status and its guarded transitions.

    created -> window_confirmed -> in_transit -> delivered -> completed
        \\________________________/                    \\--> disputed

Every transition is a conditional UPDATE keyed on the status the caller
observed, so two actors acting on a stale copy cannot both win. The terminal
step out of ``delivered`` is additionally keyed on ``resolution = 'pending'``;
buyer confirmation, buyer dispute and the expiry sweep all race on that one
column and exactly one of them moves it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.errors import (
    ConfirmationWindowExpired,
    InvalidOrderTransition,
    NotOrderSupplier,
    OrderNotFound,
    ValidationFailed,
    WrongPhoneConfirmation,
)
from app.models.order import (
    Actor,
    DeliveryEvent,
    FulfillmentMethod,
    Order,
    OrderStatus,
    OrderStatusHistory,
    Resolution,
)
from app.utils.text_processing import normalize_phone
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.CREATED.value: {OrderStatus.WINDOW_CONFIRMED.value, OrderStatus.IN_TRANSIT.value},
    OrderStatus.WINDOW_CONFIRMED.value: {OrderStatus.IN_TRANSIT.value},
    OrderStatus.IN_TRANSIT.value: {OrderStatus.DELIVERED.value},
    OrderStatus.DELIVERED.value: {OrderStatus.COMPLETED.value, OrderStatus.DISPUTED.value},
    OrderStatus.COMPLETED.value: set(),
    OrderStatus.DISPUTED.value: set(),
}


def confirmation_window() -> timedelta:
    return timedelta(hours=get_settings().CONFIRMATION_WINDOW_HOURS)


@dataclass
class DeliveryProof:
    delivered_at: Optional[datetime] = None
    photos: List[str] = field(default_factory=list)
    quantities_delivered: List[Dict[str, Any]] = field(default_factory=list)
    is_partial: bool = False
    driver_name: Optional[str] = None
    vehicle_info: Optional[str] = None


class OrderStateMachine:
    """Validates and applies order status transitions"""

    # ------------------------------------------------------------------
    # Lookups and guards
    # ------------------------------------------------------------------

    @staticmethod
    def get_order(db: Session, order_id) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise OrderNotFound(order_id=str(order_id))
        return order

    @staticmethod
    def ensure_buyer(order: Order, caller_phone: Optional[str]) -> None:
        """Only the phone that placed the order may act as its buyer"""
        if not caller_phone or normalize_phone(caller_phone) != normalize_phone(order.buyer_phone):
            logger.warning(f"Rejected buyer action on order {order.order_number}: phone mismatch")
            raise WrongPhoneConfirmation(order_id=str(order.id))

    @staticmethod
    def ensure_supplier(order: Order, supplier_id) -> None:
        if supplier_id is None or str(supplier_id) != str(order.supplier_id):
            raise NotOrderSupplier(order_id=str(order.id))

    # ------------------------------------------------------------------
    # Deadline derivations (never stored)
    # ------------------------------------------------------------------

    @staticmethod
    def confirmation_deadline(order: Order) -> Optional[datetime]:
        return order.confirmation_deadline

    @staticmethod
    def is_expired(order: Order, now: datetime) -> bool:
        deadline = order.confirmation_deadline
        return deadline is not None and as_utc(now) >= deadline

    @staticmethod
    def seconds_remaining(order: Order, now: datetime) -> Optional[int]:
        return order.seconds_remaining(now)

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @staticmethod
    def _compare_and_set(db: Session, order_id, conditions: Iterable, values: Dict[Any, Any]) -> bool:
        """Single conditional UPDATE; True when this caller's write landed"""
        query = db.query(Order).filter(Order.id == order_id)
        for condition in conditions:
            query = query.filter(condition)
        return query.update(values, synchronize_session=False) == 1

    @staticmethod
    def record_history(
            db: Session,
            order_id,
            old_status: Optional[str],
            new_status: str,
            actor: Actor,
            now: datetime,
            notes: Optional[str] = None
    ) -> None:
        db.add(OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor=actor.value,
            notes=notes,
            created_at=now,
        ))

    @staticmethod
    def transition(
            db: Session,
            order: Order,
            to_status: OrderStatus,
            actor: Actor,
            now: Optional[datetime] = None,
            values: Optional[Dict[Any, Any]] = None,
            notes: Optional[str] = None,
            extra: Iterable = ()
    ) -> Order:
        """Apply a non-terminal transition from the status the caller observed"""
        from_status = order.status
        if to_status.value not in ALLOWED_TRANSITIONS.get(from_status, set()):
            raise InvalidOrderTransition(
                order_id=str(order.id), status=from_status, requested=to_status.value
            )

        now = as_utc(now or utcnow())
        payload = {Order.status: to_status.value, Order.updated_at: now}
        payload.update(values or {})

        if not OrderStateMachine._compare_and_set(db, order.id, [Order.status == from_status], payload):
            db.rollback()
            db.refresh(order)
            raise InvalidOrderTransition(
                order_id=str(order.id), status=order.status, requested=to_status.value
            )

        OrderStateMachine.record_history(db, order.id, from_status, to_status.value, actor, now, notes)
        for obj in extra:
            db.add(obj)
        db.commit()
        db.refresh(order)

        logger.info(f"✅ Order {order.order_number} transitioned: {from_status} → {to_status.value} ({actor.value})")
        return order

    @staticmethod
    def _resolve(
            db: Session,
            order: Order,
            to_status: OrderStatus,
            resolution: Resolution,
            actor: Actor,
            now: datetime,
            values: Dict[Any, Any],
            conditions: Iterable = (),
            extra: Iterable = (),
            notes: Optional[str] = None
    ) -> bool:
        """Terminal compare-and-set out of delivered/pending; False if someone else won"""
        payload = {
            Order.status: to_status.value,
            Order.resolution: resolution.value,
            Order.updated_at: now,
        }
        payload.update(values)

        guard: List = [
            Order.status == OrderStatus.DELIVERED.value,
            Order.resolution == Resolution.PENDING.value,
        ]
        guard.extend(conditions)

        if not OrderStateMachine._compare_and_set(db, order.id, guard, payload):
            db.rollback()
            db.refresh(order)
            logger.info(
                f"Order {order.order_number}: {actor.value} lost the resolution race "
                f"(now {order.status}/{order.resolution})"
            )
            return False

        OrderStateMachine.record_history(
            db, order.id, OrderStatus.DELIVERED.value, to_status.value, actor, now, notes
        )
        for obj in extra:
            db.add(obj)
        db.commit()
        db.refresh(order)

        logger.info(
            f"✅ Order {order.order_number} transitioned: delivered → {to_status.value} ({actor.value})"
        )
        return True

    # ------------------------------------------------------------------
    # Fulfillment events
    # ------------------------------------------------------------------

    @staticmethod
    def confirm_window(
            db: Session,
            order: Order,
            actor: Actor,
            values: Dict[Any, Any],
            now: Optional[datetime] = None,
            notes: Optional[str] = None
    ) -> Order:
        """created -> window_confirmed once a concrete window is fixed"""
        return OrderStateMachine.transition(
            db, order, OrderStatus.WINDOW_CONFIRMED, actor, now=now, values=values, notes=notes
        )

    @staticmethod
    def mark_dispatched(db: Session, order: Order, supplier_id, now: Optional[datetime] = None) -> Order:
        """Supplier hands the order to the driver (or readies it for pickup)"""
        OrderStateMachine.ensure_supplier(order, supplier_id)
        now = as_utc(now or utcnow())
        return OrderStateMachine.transition(
            db, order, OrderStatus.IN_TRANSIT, Actor.SUPPLIER, now=now,
            values={Order.dispatched_at: now},
        )

    @staticmethod
    def mark_delivered(
            db: Session,
            order: Order,
            actor: Actor,
            now: Optional[datetime] = None,
            supplier_id=None,
            caller_phone: Optional[str] = None,
            notes: Optional[str] = None,
            proof: Optional[DeliveryProof] = None
    ) -> Order:
        """
        in_transit -> delivered. Stamps delivered_at, which starts the
        confirmation clock, and stores the delivery event in the same
        transaction.

        Suppliers record proof of delivery; for pickup orders the buyer
        confirms the pickup themselves. A supplied delivery time may be
        backdated (driver logged it offline) but never lies in the future.
        """
        if actor == Actor.BUYER:
            OrderStateMachine.ensure_buyer(order, caller_phone)
            if order.pickup_or_delivery != FulfillmentMethod.PICKUP.value:
                raise InvalidOrderTransition(
                    "Only pickup orders can be marked as picked up by the buyer",
                    order_id=str(order.id), status=order.status,
                )
        else:
            OrderStateMachine.ensure_supplier(order, supplier_id)

        now = as_utc(now or utcnow())
        proof = proof or DeliveryProof()
        delivered_at = OrderStateMachine._validate_proof(order, proof, now)

        event = DeliveryEvent(
            order_id=order.id,
            recorded_by=actor.value,
            delivered_at=delivered_at,
            photos=list(proof.photos),
            quantities_delivered=list(proof.quantities_delivered),
            is_partial=proof.is_partial,
            notes=notes,
            driver_name=proof.driver_name,
            vehicle_info=proof.vehicle_info,
            created_at=now,
        )
        order = OrderStateMachine.transition(
            db, order, OrderStatus.DELIVERED, actor, now=now, notes=notes,
            values={Order.delivered_at: delivered_at, Order.resolution: Resolution.PENDING.value},
            extra=[event],
        )
        if proof.is_partial:
            logger.warning(f"⚠️ Order {order.order_number} delivered partially")
        return order

    @staticmethod
    def _validate_proof(order: Order, proof: DeliveryProof, now: datetime) -> datetime:
        """Checks the proof payload; returns the delivered_at to stamp"""
        max_photos = get_settings().DELIVERY_PROOF_MAX_PHOTOS
        if len(proof.photos) > max_photos:
            raise ValidationFailed(
                f"Maximum {max_photos} delivery photos allowed",
                field="photos", max_photos=max_photos,
            )

        if proof.delivered_at is None:
            return now
        delivered_at = as_utc(proof.delivered_at)
        if delivered_at > now:
            raise ValidationFailed("Delivery time cannot be in the future", field="deliveredAt")
        if order.dispatched_at is not None and delivered_at < as_utc(order.dispatched_at):
            raise ValidationFailed("Delivery time cannot precede dispatch", field="deliveredAt")
        if delivered_at <= now - confirmation_window():
            raise ValidationFailed(
                "Delivery time is older than the confirmation window", field="deliveredAt"
            )
        return delivered_at

    # ------------------------------------------------------------------
    # Confirmation window
    # ------------------------------------------------------------------

    @staticmethod
    def auto_complete(db: Session, order_id, now: Optional[datetime] = None) -> bool:
        """
        System completion once the deadline has passed. Safe to call any number
        of times from any number of workers; returns True only for the call
        that actually completed the order.
        """
        now = as_utc(now or utcnow())
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            return False
        if order.status != OrderStatus.DELIVERED.value or order.resolution != Resolution.PENDING.value:
            return False
        if not OrderStateMachine.is_expired(order, now):
            return False

        return OrderStateMachine._resolve(
            db, order, OrderStatus.COMPLETED, Resolution.CONFIRMED, Actor.SYSTEM, now,
            values={Order.completed_at: now, Order.completed_by: Actor.SYSTEM.value},
            conditions=[Order.delivered_at <= now - confirmation_window()],
            notes="Confirmation window elapsed",
        )

    @staticmethod
    def expire_if_due(db: Session, order: Order, now: datetime) -> None:
        """Apply an overdue auto-completion before serving a buyer action"""
        if (
            order.status == OrderStatus.DELIVERED.value
            and order.resolution == Resolution.PENDING.value
            and OrderStateMachine.is_expired(order, now)
        ):
            OrderStateMachine.auto_complete(db, order.id, now)
            db.refresh(order)

    @staticmethod
    def confirm_delivery(db: Session, order: Order, caller_phone: Optional[str], now: Optional[datetime] = None) -> Order:
        """
        Buyer confirms receipt: delivered -> completed.

        Repeating the call after a successful confirmation returns the order
        unchanged. If the window already closed, raises
        ConfirmationWindowExpired; if a dispute landed first, raises
        InvalidOrderTransition.
        """
        OrderStateMachine.ensure_buyer(order, caller_phone)
        now = as_utc(now or utcnow())
        OrderStateMachine.expire_if_due(db, order, now)

        if order.status == OrderStatus.DELIVERED.value and order.resolution == Resolution.PENDING.value:
            won = OrderStateMachine._resolve(
                db, order, OrderStatus.COMPLETED, Resolution.CONFIRMED, Actor.BUYER, now,
                values={
                    Order.confirmed_at: now,
                    Order.completed_at: now,
                    Order.completed_by: Actor.BUYER.value,
                },
                conditions=[Order.delivered_at > now - confirmation_window()],
            )
            if won:
                return order

        return OrderStateMachine._settled_confirmation(order)

    @staticmethod
    def _settled_confirmation(order: Order) -> Order:
        if order.status == OrderStatus.COMPLETED.value:
            if order.completed_by == Actor.BUYER.value:
                logger.info(f"Order {order.order_number} already confirmed by buyer, nothing to do")
                return order
            raise ConfirmationWindowExpired(
                order_id=str(order.id),
                completed_at=as_utc(order.completed_at).isoformat() if order.completed_at else None,
            )
        if order.status == OrderStatus.DISPUTED.value:
            raise InvalidOrderTransition(
                "Order has already been disputed", order_id=str(order.id), status=order.status
            )
        raise InvalidOrderTransition(
            "Order must be delivered before it can be confirmed",
            order_id=str(order.id), status=order.status,
        )

    @staticmethod
    def record_dispute(db: Session, order: Order, dispute, now: datetime) -> bool:
        """delivered -> disputed, inserting the dispute row in the same transaction"""
        return OrderStateMachine._resolve(
            db, order, OrderStatus.DISPUTED, Resolution.DISPUTED, Actor.BUYER, now,
            values={},
            conditions=[Order.delivered_at > now - confirmation_window()],
            extra=[dispute],
            notes=f"Dispute: {dispute.issue_category}",
        )

    @staticmethod
    def history(db: Session, order_id) -> List[OrderStatusHistory]:
        return db.query(OrderStatusHistory).filter(
            OrderStatusHistory.order_id == order_id
        ).order_by(OrderStatusHistory.id.asc()).all()
