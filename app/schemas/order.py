# app/schemas/order.py
"""
Pydantic schemas for the order fulfillment endpoints
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.time_utils import MAX_UTC_OFFSET_MINUTES


class CamelModel(BaseModel):
    """Accepts both camelCase (wire) and snake_case field names"""
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Request Schemas
# ============================================================================

class OrderItem(CamelModel):
    """One line of the order; extra keys (sku, price, ...) are kept as sent"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    product_id: str = Field(..., alias="productId", min_length=1)
    name: Optional[str] = None
    quantity: float = Field(..., gt=0)
    unit: Optional[str] = None


class CreateOrderRequest(CamelModel):
    supplier_id: UUID = Field(..., alias="supplierId")
    items: List[OrderItem] = Field(..., min_length=1)
    pickup_or_delivery: str = Field(..., alias="pickupOrDelivery")
    window_slot_id: Optional[str] = Field(None, alias="windowSlotId")
    negotiable_preference_note: Optional[str] = Field(None, alias="negotiablePreferenceNote")
    tz_offset_minutes: int = Field(
        0,
        alias="tzOffsetMinutes",
        ge=-MAX_UTC_OFFSET_MINUTES,
        le=MAX_UTC_OFFSET_MINUTES,
        description="Buyer's offset from UTC in minutes, positive east of Greenwich",
    )

    def items_payload(self) -> List[Dict[str, Any]]:
        return [item.model_dump(by_alias=True, exclude_none=True) for item in self.items]


class DisputeRequest(CamelModel):
    issue_category: str = Field(..., alias="issueCategory")
    description: str
    photos: List[str] = Field(default_factory=list, description="Uploaded photo references")


class WindowProposalRequest(CamelModel):
    window_start: datetime = Field(..., alias="windowStart")
    window_end: datetime = Field(..., alias="windowEnd")

    @field_validator("window_start", "window_end")
    @classmethod
    def require_timezone(cls, v):
        if v.tzinfo is None:
            raise ValueError("Timestamp must include a UTC offset")
        return v


class DeliveredQuantity(CamelModel):
    product_id: Optional[str] = Field(None, alias="productId")
    name: Optional[str] = None
    quantity: float = Field(..., ge=0)
    unit: Optional[str] = None


class DeliveryProofRequest(CamelModel):
    """Driver proof of delivery; every field is optional"""
    notes: Optional[str] = Field(None, max_length=1000)
    photos: List[str] = Field(default_factory=list, description="Uploaded photo references")
    quantities_delivered: List[DeliveredQuantity] = Field(default_factory=list, alias="quantitiesDelivered")
    is_partial: bool = Field(False, alias="isPartial")
    driver_name: Optional[str] = Field(None, alias="driverName", max_length=255)
    vehicle_info: Optional[str] = Field(None, alias="vehicleInfo", max_length=255)
    delivered_at: Optional[datetime] = Field(
        None,
        alias="deliveredAt",
        description="When the goods were handed over; defaults to the time of the request",
    )

    @field_validator("delivered_at")
    @classmethod
    def require_timezone(cls, v):
        if v is not None and v.tzinfo is None:
            raise ValueError("Timestamp must include a UTC offset")
        return v

    def quantities_payload(self) -> List[Dict[str, Any]]:
        return [q.model_dump(by_alias=True, exclude_none=True) for q in self.quantities_delivered]
