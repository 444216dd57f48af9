# app/schemas/__init__.py
from .order import (
    CreateOrderRequest,
    DeliveredQuantity,
    DeliveryProofRequest,
    DisputeRequest,
    OrderItem,
    WindowProposalRequest,
)
