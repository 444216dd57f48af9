# ===== app/services/availability/availability_service.py =====
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.errors import InvalidSlot, SupplierNotFound
from app.models.order import Order, WindowMode
from app.models.supplier import (
    Supplier,
    SupplierBlackoutDate,
    SupplierOperatingHours,
    SupplierSchedulingProfile,
)
from app.utils.time_utils import as_utc, fixed_offset_zone, resolve_zone

logger = logging.getLogger(__name__)

SLOT_ID_PATTERN = re.compile(r"^(\d{8}T\d{4})Z-(\d{1,4})$")
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class SchedulingRules:
    """Snapshot of a supplier's scheduling configuration"""
    timezone: Optional[str]
    same_day_cutoff: Optional[time]
    min_lead_time_hours: int
    slot_duration_minutes: int
    slot_capacity: int
    horizon_days: int
    operating_hours: Dict[int, Tuple[time, time]]
    blackout_dates: FrozenSet[date] = frozenset()


@dataclass(frozen=True)
class Slot:
    slot_id: str
    start: datetime
    end: datetime
    available: bool

    def to_dict(self):
        return {
            "id": self.slot_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "available": self.available,
        }


@dataclass
class DaySlots:
    date: date
    label: str
    slots: List[Slot] = field(default_factory=list)

    def to_dict(self):
        return {
            "date": self.date.isoformat(),
            "label": self.label,
            "slots": [slot.to_dict() for slot in self.slots],
        }


@dataclass
class AvailableWindows:
    same_day_cutoff: Optional[str]
    current_time: datetime
    is_same_day_available: bool
    days: List[DaySlots] = field(default_factory=list)

    def to_dict(self):
        return {
            "sameDayCutoff": self.same_day_cutoff,
            "currentTime": self.current_time.isoformat(),
            "isSameDayAvailable": self.is_same_day_available,
            "days": [day.to_dict() for day in self.days],
        }


def make_slot_id(start: datetime, duration_minutes: int) -> str:
    return f"{as_utc(start):%Y%m%dT%H%M}Z-{duration_minutes}"


def parse_slot_id(slot_id: str) -> Tuple[datetime, int]:
    """Decode a slot id back into its UTC start and duration"""
    match = SLOT_ID_PATTERN.match(slot_id or "")
    if not match:
        raise InvalidSlot(slot_id=slot_id)
    try:
        start = datetime.strptime(match.group(1), "%Y%m%dT%H%M").replace(tzinfo=timezone.utc)
    except ValueError:
        raise InvalidSlot(slot_id=slot_id)
    duration = int(match.group(2))
    if duration <= 0:
        raise InvalidSlot(slot_id=slot_id)
    return start, duration


def _day_label(day_offset: int, day: date) -> str:
    if day_offset == 0:
        return "Today"
    if day_offset == 1:
        return "Tomorrow"
    return f"{WEEKDAYS[day.weekday()]}, {day:%b} {day.day}"


class SlotAvailabilityService:
    """Computes the delivery/pickup slots a supplier can offer right now"""

    @staticmethod
    def load_rules(db: Session, supplier_id) -> Optional[SchedulingRules]:
        """Read the supplier's scheduling rules; None when no active profile exists"""
        supplier = db.query(Supplier).filter_by(id=supplier_id).first()
        if not supplier or not supplier.is_active:
            raise SupplierNotFound(supplier_id=str(supplier_id))

        profile = db.query(SupplierSchedulingProfile).filter_by(supplier_id=supplier_id).first()
        if not profile or not profile.is_active:
            logger.info(f"No active scheduling profile for supplier {supplier_id}")
            return None

        hours = db.query(SupplierOperatingHours).filter(
            SupplierOperatingHours.supplier_id == supplier_id,
            SupplierOperatingHours.is_closed.is_(False),
        ).all()

        blackouts = db.query(SupplierBlackoutDate.date).filter(
            SupplierBlackoutDate.supplier_id == supplier_id
        ).all()

        settings = get_settings()
        return SchedulingRules(
            timezone=supplier.timezone,
            same_day_cutoff=profile.same_day_cutoff,
            min_lead_time_hours=profile.min_lead_time_hours or 0,
            slot_duration_minutes=profile.slot_duration_minutes or settings.DEFAULT_SLOT_DURATION_MINUTES,
            slot_capacity=profile.slot_capacity or settings.DEFAULT_SLOT_CAPACITY,
            horizon_days=(
                profile.horizon_days if profile.horizon_days is not None
                else settings.DEFAULT_SLOT_HORIZON_DAYS
            ),
            operating_hours={h.day_of_week: (h.open_time, h.close_time) for h in hours},
            blackout_dates=frozenset(row[0] for row in blackouts),
        )

    @staticmethod
    def count_bookings(
            db: Session,
            supplier_id,
            window_start: datetime,
            window_end: datetime,
            exclude_order_id=None
    ) -> Dict[datetime, int]:
        """Fixed-window bookings per slot start in [window_start, window_end)"""
        query = db.query(Order.window_start, func.count(Order.id)).filter(
            Order.supplier_id == supplier_id,
            Order.window_mode == WindowMode.FIXED.value,
            Order.window_start >= window_start,
            Order.window_start < window_end,
        )
        if exclude_order_id is not None:
            query = query.filter(Order.id != exclude_order_id)

        counts: Dict[datetime, int] = {}
        for start, count in query.group_by(Order.window_start).all():
            key = as_utc(start)
            counts[key] = counts.get(key, 0) + count
        return counts

    @staticmethod
    def build_days(
            rules: SchedulingRules,
            reference_instant: datetime,
            buyer_utc_offset_minutes: int,
            bookings: Optional[Dict[datetime, int]] = None
    ) -> AvailableWindows:
        """
        Tile the supplier's operating hours into slots for the booking horizon.

        The buyer's offset only decides which local day is "today" and
        whether the same-day cutoff has passed; slot instants come from the
        supplier's own timezone.
        """
        bookings = bookings or {}
        now = as_utc(reference_instant)
        buyer_now = now.astimezone(fixed_offset_zone(buyer_utc_offset_minutes))
        buyer_today = buyer_now.date()
        supplier_zone = resolve_zone(rules.timezone, get_settings().DEFAULT_SUPPLIER_TIMEZONE)

        same_day_open = (
            rules.same_day_cutoff is None
            or buyer_now.time() < rules.same_day_cutoff
        )
        earliest_start = now + timedelta(hours=rules.min_lead_time_hours)
        step = timedelta(minutes=rules.slot_duration_minutes)

        days: List[DaySlots] = []
        for day_offset in range(0 if same_day_open else 1, rules.horizon_days + 1):
            day = buyer_today + timedelta(days=day_offset)
            if day in rules.blackout_dates:
                continue
            hours = rules.operating_hours.get(day.weekday())
            if hours is None:
                continue

            open_time, close_time = hours
            cursor = datetime.combine(day, open_time, tzinfo=supplier_zone)
            closing = datetime.combine(day, close_time, tzinfo=supplier_zone)

            slots: List[Slot] = []
            while cursor + step <= closing:
                start = cursor.astimezone(timezone.utc)
                cursor += step
                if start < earliest_start:
                    continue
                slots.append(Slot(
                    slot_id=make_slot_id(start, rules.slot_duration_minutes),
                    start=start,
                    end=start + step,
                    available=bookings.get(start, 0) < rules.slot_capacity,
                ))

            if slots:
                days.append(DaySlots(date=day, label=_day_label(day_offset, day), slots=slots))

        return AvailableWindows(
            same_day_cutoff=rules.same_day_cutoff.strftime("%H:%M") if rules.same_day_cutoff else None,
            current_time=now,
            is_same_day_available=bool(days) and days[0].date == buyer_today,
            days=days,
        )

    @staticmethod
    def compute_available_windows(
            db: Session,
            supplier_id,
            reference_instant: datetime,
            buyer_utc_offset_minutes: int = 0
    ) -> AvailableWindows:
        """Bookable days and slots for a supplier; empty when it has no rules"""
        now = as_utc(reference_instant)
        rules = SlotAvailabilityService.load_rules(db, supplier_id)
        if rules is None:
            return AvailableWindows(
                same_day_cutoff=None,
                current_time=now,
                is_same_day_available=False,
                days=[],
            )

        bookings = SlotAvailabilityService.count_bookings(
            db,
            supplier_id,
            now,
            now + timedelta(days=rules.horizon_days + 2),
        )
        windows = SlotAvailabilityService.build_days(rules, now, buyer_utc_offset_minutes, bookings)

        logger.debug(
            f"Computed {sum(len(d.slots) for d in windows.days)} slots over "
            f"{len(windows.days)} days for supplier {supplier_id}"
        )
        return windows

    @staticmethod
    def find_slot(
            db: Session,
            supplier_id,
            slot_id: str,
            reference_instant: datetime,
            buyer_utc_offset_minutes: int = 0
    ) -> Optional[Slot]:
        """Look a slot up in the listing the buyer would see right now"""
        parse_slot_id(slot_id)
        windows = SlotAvailabilityService.compute_available_windows(
            db, supplier_id, reference_instant, buyer_utc_offset_minutes
        )
        for day in windows.days:
            for slot in day.slots:
                if slot.slot_id == slot_id:
                    return slot
        return None
