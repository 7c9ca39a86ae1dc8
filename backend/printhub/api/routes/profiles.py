"""
Profile API for PrintHub
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from printhub.core.database import get_db
from printhub.core.exceptions import PrintHubError
from printhub.core.security import CurrentUser, get_current_user
from printhub.schemas import ProfileUpdateRequest
from printhub.services import profile_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/me")
async def get_my_profile(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    """
    Called after every sign-in; creates the profile (and a starter shop for
    shop owners) the first time.
    """
    try:
        profile = await profile_service.ensure_profile(db, user)
        data = profile_service.profile_to_dict(profile)
        data.update({"email": user.email, "user_type": user.user_type})
        return data
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error loading profile for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put("/me")
async def update_my_profile(
    body: ProfileUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    profile = await profile_service.update_profile(db, user, body.model_dump(exclude_unset=True))
    return profile_service.profile_to_dict(profile)


@router.post("/me/avatar")
async def upload_avatar(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    try:
        content = await file.read()
        profile = await profile_service.upload_avatar(db, user, file.filename, content)
        return profile_service.profile_to_dict(profile)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error uploading avatar for {user.id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")
