"""
Slot configuration and availability API for PrintHub
"""

from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging

from printhub.core.database import get_db
from printhub.core.exceptions import PrintHubError
from printhub.core.security import CurrentUser, require_shop_owner
from printhub.schemas import GenerateSlotsRequest, SlotConfigRequest
from printhub.services import slot_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/config")
async def get_slot_config(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    return {
        "settings": await slot_service.get_shop_settings(db, user.id),
        "operating_hours": await slot_service.get_operating_hours(db, user.id),
    }


@router.put("/config")
async def save_slot_config(
    body: SlotConfigRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """
    Save slot settings (clamped into range) and the weekly hours.
    """
    try:
        hours = [h.model_dump() for h in body.operating_hours] if body.operating_hours is not None else None
        return await slot_service.save_slot_config(db, user.id, body.settings, hours)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error saving slot config for {user.id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/generate")
async def generate_slots(
    body: GenerateSlotsRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """Replace the slots for one date."""
    try:
        slots = await slot_service.generate_slots_for_date(db, user.id, body.slot_date)
        return {
            "slot_date": body.slot_date.isoformat(),
            "count": len(slots),
            "slots": [slot_service.slot_to_dict(s) for s in slots],
        }
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error generating slots for {user.id} on {body.slot_date}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("")
async def list_slots(
    shop_owner_id: UUID,
    slot_date: date = Query(..., alias="date"),
    available_only: bool = Query(True),
    db: AsyncSession = Depends(get_db)
):
    slots = await slot_service.list_slots(db, shop_owner_id, slot_date, available_only)
    return {"slots": [slot_service.slot_to_dict(s) for s in slots]}
