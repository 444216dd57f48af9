# ===== app/models/order.py =====
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text, Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.models.base import Base
from app.config.settings import get_settings
from app.utils.time_utils import as_utc
import enum
import uuid


class OrderStatus(str, enum.Enum):
    CREATED = "created"
    WINDOW_CONFIRMED = "window_confirmed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    DISPUTED = "disputed"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED.value, OrderStatus.DISPUTED.value})


class Resolution(str, enum.Enum):
    """Outcome of the confirmation window; null until the order is delivered"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISPUTED = "disputed"


class WindowMode(str, enum.Enum):
    UNASSIGNED = "unassigned"
    FIXED = "fixed"
    NEGOTIABLE = "negotiable"


class FulfillmentMethod(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class Actor(str, enum.Enum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    SYSTEM = "system"


class ProposalStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DisputeCategory(str, enum.Enum):
    QUANTITY_MISMATCH = "quantity_mismatch"
    QUALITY_ISSUE = "quality_issue"
    SPECIFICATION_MISMATCH = "specification_mismatch"
    DAMAGE = "damage"
    LATE_DELIVERY = "late_delivery"
    WRONG_ITEM = "wrong_item"
    OTHER = "other"


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "status IN ('created', 'window_confirmed', 'in_transit', 'delivered', 'completed', 'disputed')",
            name="ck_orders_status",
        ),
        CheckConstraint(
            "resolution IS NULL OR resolution IN ('pending', 'confirmed', 'disputed')",
            name="ck_orders_resolution",
        ),
        # A window is either fully fixed or absent
        CheckConstraint(
            "(window_mode = 'fixed') = (window_start IS NOT NULL AND window_end IS NOT NULL)",
            name="ck_orders_fixed_window",
        ),
        CheckConstraint(
            "NOT (confirmed_at IS NOT NULL AND resolution = 'disputed')",
            name="ck_orders_single_resolution",
        ),
        Index("ix_orders_supplier_window", "supplier_id", "window_start"),
        Index("ix_orders_status_delivered_at", "status", "delivered_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_number = Column(String(50), unique=True, nullable=False)

    # References
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id"), nullable=False)
    buyer_id = Column(String(100), nullable=False)
    buyer_phone = Column(String(20), nullable=False)

    # Order details
    items = Column(JSON, default=list)
    pickup_or_delivery = Column(String(20), nullable=False)

    # Window assignment
    window_mode = Column(String(20), nullable=False, default=WindowMode.UNASSIGNED.value)
    window_start = Column(DateTime(timezone=True), nullable=True)
    window_end = Column(DateTime(timezone=True), nullable=True)
    negotiable_note = Column(Text, nullable=True)

    # Window proposals for negotiable orders
    proposed_window_start = Column(DateTime(timezone=True), nullable=True)
    proposed_window_end = Column(DateTime(timezone=True), nullable=True)
    proposed_by = Column(String(20), nullable=True)  # supplier, buyer
    proposal_status = Column(String(20), nullable=True)  # pending, accepted, rejected

    # Lifecycle
    status = Column(String(30), nullable=False, default=OrderStatus.CREATED.value)
    resolution = Column(String(20), nullable=True)
    completed_by = Column(String(20), nullable=True)  # buyer, system

    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    dispute = relationship("OrderDispute", back_populates="order", uselist=False)
    delivery_event = relationship("DeliveryEvent", back_populates="order", uselist=False)
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", order_by="OrderStatusHistory.id"
    )

    def __repr__(self):
        return f"<Order(id={self.id}, number={self.order_number}, status={self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def confirmation_deadline(self) -> Optional[datetime]:
        """delivered_at + confirmation window, recomputed on every read"""
        if self.delivered_at is None:
            return None
        hours = get_settings().CONFIRMATION_WINDOW_HOURS
        return as_utc(self.delivered_at) + timedelta(hours=hours)

    def seconds_remaining(self, now: datetime) -> Optional[int]:
        """Countdown shown to the buyer; None once the order has left delivered"""
        deadline = self.confirmation_deadline
        if deadline is None or self.status != OrderStatus.DELIVERED.value:
            return None
        return max(0, int((deadline - as_utc(now)).total_seconds()))

    def to_dict(self, now: Optional[datetime] = None):
        """Convert to dictionary for API responses"""
        deadline = self.confirmation_deadline
        seconds_remaining = self.seconds_remaining(now) if now is not None else None

        def iso(value):
            value = as_utc(value)
            return value.isoformat() if value else None

        return {
            "id": str(self.id),
            "orderNumber": self.order_number,
            "supplierId": str(self.supplier_id),
            "buyerId": self.buyer_id,
            "items": self.items or [],
            "pickupOrDelivery": self.pickup_or_delivery,
            "window": {
                "mode": self.window_mode,
                "start": iso(self.window_start),
                "end": iso(self.window_end),
                "negotiableNote": self.negotiable_note,
            },
            "proposal": {
                "start": iso(self.proposed_window_start),
                "end": iso(self.proposed_window_end),
                "proposedBy": self.proposed_by,
                "status": self.proposal_status,
            } if self.proposal_status else None,
            "status": self.status,
            "resolution": self.resolution,
            "completedBy": self.completed_by,
            "dispatchedAt": iso(self.dispatched_at),
            "deliveredAt": iso(self.delivered_at),
            "confirmedAt": iso(self.confirmed_at),
            "completedAt": iso(self.completed_at),
            "confirmationDeadline": iso(deadline),
            "secondsRemaining": seconds_remaining,
            "deliveryEvent": self.delivery_event.to_dict() if self.delivery_event else None,
            "dispute": self.dispute.to_dict() if self.dispute else None,
            "createdAt": iso(self.created_at),
        }


class OrderDispute(Base):
    __tablename__ = "order_disputes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, unique=True)
    buyer_phone = Column(String(20), nullable=False)

    issue_category = Column(String(40), nullable=False)
    description = Column(Text, nullable=False)
    photos = Column(JSON, default=list)  # opaque upload references, max 5

    created_at = Column(DateTime(timezone=True), nullable=False)

    order = relationship("Order", back_populates="dispute")

    def to_dict(self):
        return {
            "id": str(self.id),
            "issueCategory": self.issue_category,
            "description": self.description,
            "photos": self.photos or [],
            "createdAt": as_utc(self.created_at).isoformat() if self.created_at else None,
        }


class DeliveryEvent(Base):
    """Proof of delivery (or buyer pickup) recorded with the in_transit -> delivered transition"""
    __tablename__ = "delivery_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, unique=True)
    recorded_by = Column(String(20), nullable=False)  # supplier, buyer

    delivered_at = Column(DateTime(timezone=True), nullable=False)
    photos = Column(JSON, default=list)  # opaque upload references
    quantities_delivered = Column(JSON, default=list)  # [{productId, quantity, unit}]
    is_partial = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    driver_name = Column(String(255), nullable=True)
    vehicle_info = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    order = relationship("Order", back_populates="delivery_event")

    def to_dict(self):
        return {
            "id": str(self.id),
            "recordedBy": self.recorded_by,
            "deliveredAt": as_utc(self.delivered_at).isoformat() if self.delivered_at else None,
            "photos": self.photos or [],
            "quantitiesDelivered": self.quantities_delivered or [],
            "isPartial": bool(self.is_partial),
            "notes": self.notes,
            "driverName": self.driver_name,
            "vehicleInfo": self.vehicle_info,
        }


class OrderStatusHistory(Base):
    """Audit trail, one row per applied transition"""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    old_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=False)
    actor = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    order = relationship("Order", back_populates="status_history")

    def to_dict(self):
        return {
            "oldStatus": self.old_status,
            "newStatus": self.new_status,
            "actor": self.actor,
            "notes": self.notes,
            "createdAt": as_utc(self.created_at).isoformat() if self.created_at else None,
        }
