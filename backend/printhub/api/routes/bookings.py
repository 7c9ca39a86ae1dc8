"""
Bookings API for PrintHub
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import logging

from printhub.core.database import get_db
from printhub.core.exceptions import PrintHubError
from printhub.core.security import CurrentUser, get_current_user, require_shop_owner
from printhub.schemas import CreateBookingRequest
from printhub.services import booking_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _status(value: Optional[str]):
    if not value or value == "all":
        return None
    return booking_service.parse_booking_status(value)


@router.post("", status_code=201)
async def create_booking(
    body: CreateBookingRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    """
    Book a slot. The slot place, booking and print jobs are saved together
    or not at all; a full slot returns 409.
    """
    try:
        return await booking_service.create_booking(
            db,
            user,
            body.shop_id,
            body.time_slot_id,
            customer_info=body.customer_info.model_dump(),
            files=[f.model_dump() for f in body.files],
            print_settings=body.print_settings.model_dump(),
        )
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error creating booking: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/mine")
async def my_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    bookings = await booking_service.list_customer_bookings(db, user.id, _status(status_filter))
    return {"bookings": bookings, "total": len(bookings)}


@router.get("/shop")
async def shop_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    bookings = await booking_service.list_shop_bookings(db, user.id, _status(status_filter))
    return {"bookings": bookings, "total": len(bookings)}


@router.put("/{booking_id}/status")
async def update_booking_status(
    booking_id: UUID,
    status_update: str = Query(..., alias="status"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    try:
        new_status = booking_service.parse_booking_status(status_update)
        booking = await booking_service.update_booking_status(db, booking_id, new_status, user)
        return {"status": "success", "booking": booking_service.booking_to_dict(booking)}
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error updating booking {booking_id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    try:
        booking = await booking_service.cancel_booking(db, booking_id, user)
        return {"status": "success", "booking": booking_service.booking_to_dict(booking)}
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error cancelling booking {booking_id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")
