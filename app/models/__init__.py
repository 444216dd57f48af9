# app/models/__init__.py
from .base import Base
from .supplier import Supplier, SupplierSchedulingProfile, SupplierOperatingHours, SupplierBlackoutDate
from .order import (
    Order,
    OrderDispute,
    DeliveryEvent,
    OrderStatusHistory,
    OrderStatus,
    Resolution,
    WindowMode,
    FulfillmentMethod,
    Actor,
    ProposalStatus,
    DisputeCategory,
    TERMINAL_STATUSES,
)

__all__ = [
    "Base",
    "Supplier",
    "SupplierSchedulingProfile",
    "SupplierOperatingHours",
    "SupplierBlackoutDate",
    "Order",
    "OrderDispute",
    "DeliveryEvent",
    "OrderStatusHistory",
    "OrderStatus",
    "Resolution",
    "WindowMode",
    "FulfillmentMethod",
    "Actor",
    "ProposalStatus",
    "DisputeCategory",
    "TERMINAL_STATUSES",
]
