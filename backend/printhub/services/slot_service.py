"""
Slot Service for PrintHub

Turns a shop's operating hours and slot settings into bookable time slots and
keeps the per-slot capacity counters.
"""

import uuid
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, case, delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from printhub.core.exceptions import SlotUnavailableError, ValidationError, NotFoundError
from printhub.models import DayOfWeek, OperatingHours, PublicShopDirectory, ShopSettings, TimeSlot
import logging

logger = logging.getLogger(__name__)

MAX_SLOTS_PER_DAY = 200

SLOT_DURATION_RANGE = (5, 120)
MAX_JOBS_RANGE = (1, 50)
ADVANCE_DAYS_RANGE = (1, 365)

DEFAULT_SHOP_SETTINGS = {
    "slot_duration_minutes": 10,
    "max_jobs_per_slot": 5,
    "advance_booking_days": 7,
    "auto_accept_bookings": False,
}

WEEK = [day for day in DayOfWeek]


# =============================================================================
# PURE HELPERS
# =============================================================================

def parse_time(value: str) -> datetime:
    """'09:30' or '09:30:00' -> datetime on a fixed reference day."""
    try:
        hours, minutes = str(value).split(":")[:2]
        return datetime(2000, 1, 1, int(hours), int(minutes))
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid time: {value}", field="time")


def generate_slot_times(
    open_time: str,
    close_time: str,
    duration_minutes: int,
    max_slots: int = MAX_SLOTS_PER_DAY
) -> List[str]:
    """
    Slot start times covering [open_time, close_time).

    09:00-18:00 with 30 minute slots gives 18 slots, 09:00 through 17:30.
    """
    start = parse_time(open_time)
    end = parse_time(close_time)
    if start >= end:
        raise ValidationError("Open time must be before close time", field="open_time")
    if duration_minutes <= 0:
        raise ValidationError("Slot duration must be positive", field="slot_duration_minutes")

    step = timedelta(minutes=duration_minutes)
    times = []
    current = start
    while current < end and len(times) < max_slots:
        times.append(current.strftime("%H:%M"))
        current += step
    return times


def _clamp(value, bounds, default) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 0
    if not number:
        number = default
    low, high = bounds
    return max(low, min(high, number))


def clamp_shop_settings(raw: Optional[dict]) -> dict:
    """Bring submitted slot settings into their allowed ranges."""
    raw = raw or {}
    return {
        "slot_duration_minutes": _clamp(
            raw.get("slot_duration_minutes"), SLOT_DURATION_RANGE,
            DEFAULT_SHOP_SETTINGS["slot_duration_minutes"]
        ),
        "max_jobs_per_slot": _clamp(
            raw.get("max_jobs_per_slot"), MAX_JOBS_RANGE,
            DEFAULT_SHOP_SETTINGS["max_jobs_per_slot"]
        ),
        "advance_booking_days": _clamp(
            raw.get("advance_booking_days"), ADVANCE_DAYS_RANGE,
            DEFAULT_SHOP_SETTINGS["advance_booking_days"]
        ),
        "auto_accept_bookings": bool(raw.get("auto_accept_bookings", False)),
    }


def day_of_week(slot_date: date) -> DayOfWeek:
    return DayOfWeek(slot_date.strftime("%A").lower())


def default_hours(day: DayOfWeek) -> dict:
    weekend = day in (DayOfWeek.SATURDAY, DayOfWeek.SUNDAY)
    return {"day_of_week": day.value, "open_time": "09:00", "close_time": "18:00", "is_open": not weekend}


def business_hours_json(hours: List[dict]) -> dict:
    """Operating-hours rows -> the public listing's business_hours blob."""
    return {
        h["day_of_week"]: {"open": h["open_time"], "close": h["close_time"], "isOpen": bool(h["is_open"])}
        for h in hours
    }


def slot_to_dict(slot: TimeSlot) -> dict:
    return {
        "id": str(slot.id),
        "shop_owner_id": str(slot.shop_owner_id),
        "slot_date": slot.slot_date.isoformat(),
        "slot_time": slot.slot_time,
        "current_bookings": slot.current_bookings,
        "max_capacity": slot.max_capacity,
        "is_available": slot.is_available,
    }


# =============================================================================
# SETTINGS AND HOURS
# =============================================================================

async def get_shop_settings(db: AsyncSession, shop_owner_id: uuid.UUID) -> dict:
    result = await db.execute(select(ShopSettings).where(ShopSettings.shop_owner_id == shop_owner_id))
    row = result.scalars().first()
    if not row:
        return dict(DEFAULT_SHOP_SETTINGS)
    return clamp_shop_settings({
        "slot_duration_minutes": row.slot_duration_minutes,
        "max_jobs_per_slot": row.max_jobs_per_slot,
        "advance_booking_days": row.advance_booking_days,
        "auto_accept_bookings": row.auto_accept_bookings,
    })


async def get_operating_hours(db: AsyncSession, shop_owner_id: uuid.UUID, fill_defaults: bool = True) -> List[dict]:
    result = await db.execute(select(OperatingHours).where(OperatingHours.shop_owner_id == shop_owner_id))
    saved = {DayOfWeek(row.day_of_week): row for row in result.scalars().all()}

    hours = []
    for day in WEEK:
        row = saved.get(day)
        if row:
            hours.append({
                "day_of_week": day.value,
                "open_time": row.open_time[:5],
                "close_time": row.close_time[:5],
                "is_open": bool(row.is_open),
            })
        elif fill_defaults:
            hours.append(default_hours(day))
    return hours


def _normalize_hours(hours: List[dict]) -> List[dict]:
    normalized = []
    for h in hours:
        try:
            day = DayOfWeek(str(h.get("day_of_week", "")).lower())
        except ValueError:
            raise ValidationError(f"Invalid day: {h.get('day_of_week')}", field="day_of_week")
        is_open = bool(h.get("is_open"))
        open_time = (h.get("open_time") or "09:00")[:5] if is_open else "09:00"
        close_time = (h.get("close_time") or "17:00")[:5] if is_open else "17:00"
        if is_open and parse_time(open_time) >= parse_time(close_time):
            raise ValidationError(
                f"Invalid operating hours for {day.value}: open time must be before close time",
                field="operating_hours"
            )
        normalized.append({
            "day_of_week": day.value, "open_time": open_time, "close_time": close_time, "is_open": is_open
        })
    return normalized


async def save_slot_config(
    db: AsyncSession,
    shop_owner_id: uuid.UUID,
    raw_settings: Optional[dict],
    hours: Optional[List[dict]]
) -> dict:
    """
    Save slot settings and the weekly operating hours together, and copy the
    hours into the public listing's business_hours.
    """
    clean_settings = clamp_shop_settings(raw_settings)

    result = await db.execute(select(ShopSettings).where(ShopSettings.shop_owner_id == shop_owner_id))
    row = result.scalars().first()
    if row:
        for key, value in clean_settings.items():
            setattr(row, key, value)
    else:
        db.add(ShopSettings(shop_owner_id=shop_owner_id, **clean_settings))

    saved_hours = None
    if hours is not None:
        saved_hours = _normalize_hours(hours)
        await db.execute(delete(OperatingHours).where(OperatingHours.shop_owner_id == shop_owner_id))
        db.add_all([
            OperatingHours(
                shop_owner_id=shop_owner_id,
                day_of_week=DayOfWeek(h["day_of_week"]),
                open_time=h["open_time"],
                close_time=h["close_time"],
                is_open=h["is_open"],
            )
            for h in saved_hours
        ])

        listing = (await db.execute(
            select(PublicShopDirectory).where(PublicShopDirectory.shop_owner_id == shop_owner_id)
        )).scalars().first()
        if listing:
            listing.business_hours = business_hours_json(saved_hours)

    await db.commit()
    logger.info(f"Saved slot configuration for shop {shop_owner_id}")

    return {
        "settings": clean_settings,
        "operating_hours": saved_hours if saved_hours is not None else await get_operating_hours(db, shop_owner_id),
    }


# =============================================================================
# SLOT GENERATION
# =============================================================================

async def generate_slots_for_date(
    db: AsyncSession,
    shop_owner_id: uuid.UUID,
    slot_date: date,
    today: Optional[date] = None
) -> List[TimeSlot]:
    """
    Replace the shop's slots for one date with a fresh set built from that
    day's operating hours.
    """
    today = today or datetime.utcnow().date()
    if slot_date < today:
        raise ValidationError("Cannot generate slots for past dates", field="slot_date")

    day = day_of_week(slot_date)
    result = await db.execute(
        select(OperatingHours).where(
            OperatingHours.shop_owner_id == shop_owner_id,
            OperatingHours.day_of_week == day,
        )
    )
    hours = result.scalars().first()
    if not hours or not hours.is_open:
        raise ValidationError(f"Shop is closed on {day.value}s", field="slot_date")
    if not hours.open_time or not hours.close_time:
        raise ValidationError(f"Operating hours not set for {day.value}", field="operating_hours")

    shop_settings = await get_shop_settings(db, shop_owner_id)
    times = generate_slot_times(hours.open_time, hours.close_time, shop_settings["slot_duration_minutes"])
    if not times:
        raise ValidationError("No time slots could be generated with current settings")

    slots = [
        TimeSlot(
            shop_owner_id=shop_owner_id,
            slot_date=slot_date,
            slot_time=slot_time,
            current_bookings=0,
            max_capacity=shop_settings["max_jobs_per_slot"],
            is_available=True,
        )
        for slot_time in times
    ]

    await db.execute(
        delete(TimeSlot).where(TimeSlot.shop_owner_id == shop_owner_id, TimeSlot.slot_date == slot_date)
    )
    db.add_all(slots)
    await db.commit()

    logger.info(f"Generated {len(slots)} time slots for {shop_owner_id} on {slot_date}")
    return slots


async def list_slots(
    db: AsyncSession,
    shop_owner_id: uuid.UUID,
    slot_date: date,
    available_only: bool = False
) -> List[TimeSlot]:
    query = select(TimeSlot).where(TimeSlot.shop_owner_id == shop_owner_id, TimeSlot.slot_date == slot_date)
    if available_only:
        query = query.where(TimeSlot.is_available.is_(True))
    result = await db.execute(query.order_by(TimeSlot.slot_time))
    return list(result.scalars().all())


async def get_slot(db: AsyncSession, slot_id: uuid.UUID) -> TimeSlot:
    result = await db.execute(
        select(TimeSlot).where(TimeSlot.id == slot_id).execution_options(populate_existing=True)
    )
    slot = result.scalars().first()
    if not slot:
        raise NotFoundError("Time slot", slot_id)
    return slot


# =============================================================================
# CAPACITY
# =============================================================================

async def reserve_slot(db: AsyncSession, slot_id: uuid.UUID) -> TimeSlot:
    """
    Take one place in a slot with a single conditional UPDATE, so two
    customers can never both get the last place.

    Does not commit; the caller owns the transaction.
    """
    result = await db.execute(
        update(TimeSlot)
        .where(and_(
            TimeSlot.id == slot_id,
            TimeSlot.current_bookings < TimeSlot.max_capacity,
            TimeSlot.is_available.is_(True),
        ))
        .values(
            current_bookings=TimeSlot.current_bookings + 1,
            is_available=case(
                (TimeSlot.current_bookings + 1 >= TimeSlot.max_capacity, False),
                else_=True,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await get_slot(db, slot_id)  # 404 when the slot does not exist at all
        raise SlotUnavailableError(slot_id)
    return await get_slot(db, slot_id)


async def release_slot(db: AsyncSession, slot_id: uuid.UUID):
    """Give a place back after a cancellation. Does not commit."""
    await db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot_id, TimeSlot.current_bookings > 0)
        .values(current_bookings=TimeSlot.current_bookings - 1, is_available=True)
        .execution_options(synchronize_session=False)
    )
