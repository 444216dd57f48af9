# ============================================================================
# FILE: app/api/v1/suppliers.py
# Public supplier scheduling endpoints
# ============================================================================
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.dependencies import get_now
from app.config.database import get_db
from app.services.availability.availability_service import SlotAvailabilityService
from app.utils.time_utils import MAX_UTC_OFFSET_MINUTES

router = APIRouter(prefix="/suppliers", tags=["Suppliers"])


@router.get("/{supplier_id}/available-windows")
async def get_available_windows(
        supplier_id: UUID,
        tz_offset_minutes: int = Query(
            0,
            ge=-MAX_UTC_OFFSET_MINUTES,
            le=MAX_UTC_OFFSET_MINUTES,
            description="Buyer's offset from UTC in minutes (UTC+4 = 240)",
        ),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """
    Bookable delivery/pickup windows for the next days.

    Full slots are listed with available=false so the buyer sees them as taken.
    """
    windows = SlotAvailabilityService.compute_available_windows(
        db, supplier_id, now, tz_offset_minutes
    )
    return {"success": True, "data": windows.to_dict()}
