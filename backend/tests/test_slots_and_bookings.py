import uuid
from datetime import date, timedelta

import pytest

from printhub.core.exceptions import (
    ConflictError, NotFoundError, PermissionDeniedError, SlotUnavailableError, ValidationError
)
from printhub.models import Booking, BookingStatus, PrintJob, PublicShopDirectory, TimeSlot
from printhub.services import booking_service, slot_service

MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 13)
TODAY = date(2030, 1, 1)


# =============================================================================
# SLOT TIMES
# =============================================================================

def test_slot_times_cover_half_open_interval():
    times = slot_service.generate_slot_times("09:00", "18:00", 30)
    assert len(times) == 18
    assert times[0] == "09:00"
    assert times[-1] == "17:30"


def test_partial_last_slot_is_still_offered():
    assert slot_service.generate_slot_times("09:00", "09:25", 10) == ["09:00", "09:10", "09:20"]


def test_slot_times_are_capped():
    assert len(slot_service.generate_slot_times("00:00", "23:59", 5)) == slot_service.MAX_SLOTS_PER_DAY


def test_open_must_be_before_close():
    with pytest.raises(ValidationError):
        slot_service.generate_slot_times("18:00", "09:00", 30)
    with pytest.raises(ValidationError):
        slot_service.generate_slot_times("09:00", "09:00", 30)


def test_settings_are_clamped():
    assert slot_service.clamp_shop_settings({
        "slot_duration_minutes": 1, "max_jobs_per_slot": 500, "advance_booking_days": 0,
    }) == {
        "slot_duration_minutes": 5, "max_jobs_per_slot": 50, "advance_booking_days": 7,
        "auto_accept_bookings": False,
    }
    assert slot_service.clamp_shop_settings({"slot_duration_minutes": "abc"})["slot_duration_minutes"] == 10


def test_day_of_week():
    assert slot_service.day_of_week(MONDAY).value == "monday"


# =============================================================================
# CONFIG AND GENERATION
# =============================================================================

WEEKDAY_HOURS = [
    {"day_of_week": "monday", "open_time": "09:00", "close_time": "12:00", "is_open": True},
    {"day_of_week": "sunday", "is_open": False},
]


async def _configure(db, owner_id, capacity=2, duration=60):
    return await slot_service.save_slot_config(
        db, owner_id,
        {"slot_duration_minutes": duration, "max_jobs_per_slot": capacity, "advance_booking_days": 14},
        WEEKDAY_HOURS,
    )


async def test_save_config_updates_listing_business_hours(db, owner):
    db.add(PublicShopDirectory(shop_owner_id=owner.id, shop_name="Rahim Print Shop"))
    await db.commit()

    saved = await _configure(db, owner.id)
    assert saved["settings"]["max_jobs_per_slot"] == 2

    listing = (await db.execute(
        PublicShopDirectory.__table__.select().where(PublicShopDirectory.shop_owner_id == owner.id)
    )).first()
    assert listing.business_hours["monday"] == {"open": "09:00", "close": "12:00", "isOpen": True}
    assert listing.business_hours["sunday"]["isOpen"] is False


async def test_invalid_hours_are_rejected(db, owner):
    with pytest.raises(ValidationError):
        await slot_service.save_slot_config(db, owner.id, {}, [
            {"day_of_week": "monday", "open_time": "17:00", "close_time": "09:00", "is_open": True}
        ])


async def test_generate_slots_replaces_the_day(db, owner):
    await _configure(db, owner.id)

    slots = await slot_service.generate_slots_for_date(db, owner.id, MONDAY, today=TODAY)
    assert [s.slot_time for s in slots] == ["09:00", "10:00", "11:00"]
    assert all(s.max_capacity == 2 and s.current_bookings == 0 for s in slots)

    await slot_service.generate_slots_for_date(db, owner.id, MONDAY, today=TODAY)
    assert len(await slot_service.list_slots(db, owner.id, MONDAY)) == 3


async def test_generate_rejects_closed_and_past_days(db, owner):
    await _configure(db, owner.id)
    with pytest.raises(ValidationError):
        await slot_service.generate_slots_for_date(db, owner.id, SUNDAY, today=TODAY)
    with pytest.raises(ValidationError):
        await slot_service.generate_slots_for_date(db, owner.id, MONDAY, today=MONDAY + timedelta(days=1))


# =============================================================================
# CAPACITY
# =============================================================================

async def _slot(db, owner_id, capacity=2):
    slot = TimeSlot(
        shop_owner_id=owner_id, slot_date=MONDAY, slot_time="09:00",
        current_bookings=0, max_capacity=capacity, is_available=True,
    )
    db.add(slot)
    await db.commit()
    return slot


async def test_reserve_until_full(db, owner):
    slot = await _slot(db, owner.id, capacity=2)

    first = await slot_service.reserve_slot(db, slot.id)
    assert first.current_bookings == 1 and first.is_available
    second = await slot_service.reserve_slot(db, slot.id)
    assert second.current_bookings == 2 and not second.is_available

    with pytest.raises(SlotUnavailableError):
        await slot_service.reserve_slot(db, slot.id)
    assert (await slot_service.get_slot(db, slot.id)).current_bookings == 2


async def test_reserve_unknown_slot_is_not_found(db):
    with pytest.raises(NotFoundError):
        await slot_service.reserve_slot(db, uuid.uuid4())


async def test_release_reopens_slot(db, owner):
    slot = await _slot(db, owner.id, capacity=1)
    await slot_service.reserve_slot(db, slot.id)
    await slot_service.release_slot(db, slot.id)
    slot = await slot_service.get_slot(db, slot.id)
    assert slot.current_bookings == 0 and slot.is_available


# =============================================================================
# BOOKINGS
# =============================================================================

async def _listing(db, owner_id):
    listing = PublicShopDirectory(shop_owner_id=owner_id, shop_name="Rahim Print Shop", is_active=True)
    db.add(listing)
    await db.commit()
    return listing


async def test_booking_writes_slot_booking_and_jobs_together(db, owner, customer, fake_redis):
    listing = await _listing(db, owner.id)
    slot = await _slot(db, owner.id, capacity=2)

    result = await booking_service.create_booking(
        db, customer, listing.id, slot.id,
        customer_info={"name": "Karim", "notes": "Pick up at 9"},
        files=[{"name": "a.pdf", "pages": 3}, {"name": "b.pdf", "pages": 1}],
        print_settings={"colorType": "color", "copies": 1},
    )

    booking = result["booking"]
    assert booking["status"] == "confirmed"
    assert booking["slot_time"] == "09:00"
    assert len(result["print_jobs"]) == 2
    assert booking["print_job_id"] == result["print_jobs"][0]["id"]
    assert result["print_jobs"][0]["notes"].startswith(f"Booking ID: {booking['id']}")
    assert result["print_jobs"][0]["total_cost"] == 30.0

    assert (await slot_service.get_slot(db, slot.id)).current_bookings == 1
    tables = [channel.split(":")[1] for channel, _ in fake_redis.published]
    assert tables == ["print_jobs", "print_jobs", "bookings"]


async def test_full_slot_leaves_nothing_behind(db, owner, customer):
    listing = await _listing(db, owner.id)
    slot = await _slot(db, owner.id, capacity=1)
    await booking_service.create_booking(db, customer, listing.id, slot.id)

    with pytest.raises(SlotUnavailableError):
        await booking_service.create_booking(
            db, customer, listing.id, slot.id, files=[{"name": "late.pdf", "pages": 1}]
        )

    bookings = (await db.execute(Booking.__table__.select())).all()
    jobs = (await db.execute(PrintJob.__table__.select())).all()
    assert len(bookings) == 1
    assert jobs == []


async def test_slot_from_another_shop_is_rejected(db, owner, customer):
    listing = await _listing(db, owner.id)
    foreign = await _slot(db, uuid.uuid4())

    with pytest.raises(ValidationError):
        await booking_service.create_booking(db, customer, listing.id, foreign.id)
    assert (await slot_service.get_slot(db, foreign.id)).current_bookings == 0


async def test_customer_cancel_releases_slot(db, owner, customer):
    listing = await _listing(db, owner.id)
    slot = await _slot(db, owner.id, capacity=1)
    created = await booking_service.create_booking(db, customer, listing.id, slot.id)
    booking_id = uuid.UUID(created["booking"]["id"])

    booking = await booking_service.cancel_booking(db, booking_id, customer)
    assert booking.status == BookingStatus.CANCELLED
    slot = await slot_service.get_slot(db, slot.id)
    assert slot.current_bookings == 0 and slot.is_available

    with pytest.raises(ConflictError):
        await booking_service.update_booking_status(db, booking_id, BookingStatus.COMPLETED, owner)


async def test_customer_cannot_complete_booking(db, owner, customer):
    listing = await _listing(db, owner.id)
    slot = await _slot(db, owner.id)
    created = await booking_service.create_booking(db, customer, listing.id, slot.id)

    with pytest.raises(PermissionDeniedError):
        await booking_service.update_booking_status(
            db, uuid.UUID(created["booking"]["id"]), BookingStatus.COMPLETED, customer
        )
