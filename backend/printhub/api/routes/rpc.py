"""
Named remote procedures, invoked as POST /rpc/{name} with keyword arguments
in the JSON body.
"""

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging

from printhub.core.database import get_db
from printhub.core.exceptions import NotFoundError, PermissionDeniedError, PrintHubError, ValidationError
from printhub.core.security import CurrentUser, get_current_user
from printhub.services import profile_service, shop_service

router = APIRouter()
logger = logging.getLogger(__name__)


async def _upsert_print_queue_settings(db: AsyncSession, user: CurrentUser, params: dict):
    if not user.is_shop_owner:
        raise PermissionDeniedError("Shop owner access required")
    try:
        shop_id = UUID(str(params.get("p_shop_id")))
    except ValueError:
        raise ValidationError("p_shop_id must be a UUID", field="p_shop_id")
    return await shop_service.upsert_print_queue_settings(
        db,
        user,
        p_shop_id=shop_id,
        p_auto_accept=params.get("p_auto_accept", False),
        p_notification_enabled=params.get("p_notification_enabled", True),
        p_queue_limit=params.get("p_queue_limit", 10),
    )


async def _update_owner_name(db: AsyncSession, user: CurrentUser, params: dict):
    profile = await profile_service.update_owner_name(db, user, params.get("new_owner_name"))
    return profile_service.profile_to_dict(profile)


PROCEDURES = {
    "upsert_print_queue_settings": _upsert_print_queue_settings,
    "update_owner_name": _update_owner_name,
}


@router.post("/{name}")
async def call_procedure(
    name: str,
    params: dict = Body(default={}),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    procedure = PROCEDURES.get(name)
    if procedure is None:
        raise NotFoundError("Procedure", name)

    try:
        return await procedure(db, user, params)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Procedure {name} failed: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")
