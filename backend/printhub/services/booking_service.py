"""
Booking Service for PrintHub

A booking takes a place in a time slot and optionally carries the customer's
documents as print jobs. The slot reservation, the booking row, its jobs and
the link back to the first job are written in one transaction.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from printhub.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError, ConflictError
from printhub.core.security import CurrentUser
from printhub.models import Booking, BookingStatus, PublicShopDirectory
from printhub.services import job_service, pricing_service, realtime_service, slot_service
import logging

logger = logging.getLogger(__name__)

TABLE = "bookings"


def booking_to_dict(booking: Booking) -> dict:
    status = booking.status.value if isinstance(booking.status, BookingStatus) else booking.status
    return {
        "id": str(booking.id),
        "shop_owner_id": str(booking.shop_owner_id),
        "customer_id": str(booking.customer_id) if booking.customer_id else None,
        "customer_name": booking.customer_name,
        "customer_email": booking.customer_email,
        "time_slot_id": str(booking.time_slot_id) if booking.time_slot_id else None,
        "slot_date": booking.slot_date.isoformat() if booking.slot_date else None,
        "slot_time": booking.slot_time,
        "status": status,
        "notes": booking.notes,
        "print_job_id": str(booking.print_job_id) if booking.print_job_id else None,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
    }


def parse_booking_status(value) -> BookingStatus:
    try:
        return BookingStatus(str(value).lower())
    except ValueError:
        raise ValidationError(f"Invalid booking status: {value}", field="status")


async def create_booking(
    db: AsyncSession,
    customer: CurrentUser,
    shop_id: uuid.UUID,
    time_slot_id: uuid.UUID,
    customer_info: Optional[dict] = None,
    files: Optional[List[dict]] = None,
    print_settings: Optional[dict] = None,
) -> dict:
    """
    Book a slot at a listed shop.

    Args:
        shop_id: Public directory id of the shop
        customer_info: name, email, phone, notes
        files: Uploaded documents ({name, url, size, pages}); one job each

    Returns:
        {"booking": {...}, "print_jobs": [...]}
    """
    customer_info = customer_info or {}
    files = files or []

    listing = (await db.execute(
        select(PublicShopDirectory).where(
            PublicShopDirectory.id == shop_id,
            PublicShopDirectory.is_active.is_(True),
        )
    )).scalars().first()
    if not listing:
        raise NotFoundError("Shop", shop_id)

    settings_for_jobs = job_service.normalize_print_settings(print_settings) if files else None
    rules = await pricing_service.get_pricing_rules(db, listing.shop_owner_id) if files else []

    try:
        slot = await slot_service.reserve_slot(db, time_slot_id)
        if slot.shop_owner_id != listing.shop_owner_id:
            raise ValidationError("Time slot does not belong to this shop", field="time_slot_id")

        name = customer_info.get("name") or customer.full_name or None
        email = customer_info.get("email") or customer.email

        booking = Booking(
            id=uuid.uuid4(),
            shop_owner_id=listing.shop_owner_id,
            customer_id=customer.id,
            customer_name=name,
            customer_email=email,
            time_slot_id=slot.id,
            slot_date=slot.slot_date,
            slot_time=slot.slot_time,
            notes=customer_info.get("notes"),
            status=BookingStatus.CONFIRMED,
        )
        db.add(booking)

        jobs = [
            job_service.build_print_job(
                listing.shop_owner_id,
                customer.id,
                f,
                settings_for_jobs,
                rules,
                customer_name=name,
                customer_email=email,
                notes=f"Booking ID: {booking.id} - {job_service.describe_settings(settings_for_jobs)}",
            )
            for f in files
        ]
        db.add_all(jobs)
        if jobs:
            booking.print_job_id = jobs[0].id

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Booking {booking.id} confirmed for {slot.slot_date} {slot.slot_time} "
        f"with {len(jobs)} print jobs"
    )

    for job in jobs:
        await realtime_service.publish_change(
            realtime_service.INSERT, job_service.TABLE, job.shop_owner_id, new=job_service.job_to_dict(job)
        )
    await realtime_service.publish_change(
        realtime_service.INSERT, TABLE, booking.shop_owner_id, new=booking_to_dict(booking)
    )

    return {
        "booking": booking_to_dict(booking),
        "print_jobs": [job_service.job_to_dict(job) for job in jobs],
    }


async def list_customer_bookings(
    db: AsyncSession,
    customer_id: uuid.UUID,
    status: Optional[BookingStatus] = None
) -> List[dict]:
    query = select(Booking).where(Booking.customer_id == customer_id)
    if status:
        query = query.where(Booking.status == status)
    result = await db.execute(query.order_by(Booking.slot_date.desc(), Booking.slot_time.desc()))
    return [booking_to_dict(b) for b in result.scalars().all()]


async def list_shop_bookings(
    db: AsyncSession,
    shop_owner_id: uuid.UUID,
    status: Optional[BookingStatus] = None
) -> List[dict]:
    query = select(Booking).where(Booking.shop_owner_id == shop_owner_id)
    if status:
        query = query.where(Booking.status == status)
    result = await db.execute(query.order_by(Booking.created_at.desc()))
    return [booking_to_dict(b) for b in result.scalars().all()]


async def get_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalars().first()
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


async def update_booking_status(
    db: AsyncSession,
    booking_id: uuid.UUID,
    new_status: BookingStatus,
    user: CurrentUser
) -> Booking:
    """
    Shop owners complete or cancel bookings; customers may only cancel their
    own. Cancelling gives the slot place back.
    """
    booking = await get_booking(db, booking_id)

    is_owner = booking.shop_owner_id == user.id
    is_customer = booking.customer_id == user.id
    if not (is_owner or (is_customer and new_status == BookingStatus.CANCELLED)):
        raise PermissionDeniedError("You cannot change this booking")

    current = BookingStatus(booking.status)
    if current == new_status:
        return booking
    if current != BookingStatus.CONFIRMED:
        raise ConflictError(f"Booking is already {current.value}")

    booking.status = new_status
    booking.updated_at = datetime.utcnow()
    if new_status == BookingStatus.CANCELLED and booking.time_slot_id:
        await slot_service.release_slot(db, booking.time_slot_id)

    await db.commit()
    logger.info(f"Booking {booking_id}: {current.value} -> {new_status.value}")

    await realtime_service.publish_change(
        realtime_service.UPDATE, TABLE, booking.shop_owner_id,
        new=booking_to_dict(booking), old={"id": str(booking.id), "status": current.value}
    )
    return booking


async def cancel_booking(db: AsyncSession, booking_id: uuid.UUID, user: CurrentUser) -> Booking:
    return await update_booking_status(db, booking_id, BookingStatus.CANCELLED, user)
