"""
File cleanup API for PrintHub

Manual trigger and reporting for the expiry sweep that also runs in the
background.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from printhub.core.database import get_db
from printhub.core.security import CurrentUser, require_shop_owner
from printhub.services import expiry_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/run")
async def run_cleanup(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """
    Delete every expired file now.

    Returns:
        {"deleted_count": int, "errors": [...]}
    """
    logger.info(f"Manual cleanup requested by {user.id}")
    return await expiry_service.perform_cleanup(db)


@router.get("/stats")
async def cleanup_stats(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    try:
        return await expiry_service.get_cleanup_stats(db)
    except Exception as e:
        logger.error(f"Error getting cleanup stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/expired")
async def expired_files(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    files = await expiry_service.get_expired_files(db)
    return {"files": [expiry_service.describe_file(f) for f in files], "total": len(files)}


@router.get("/expiring")
async def expiring_files(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """Files that expire within the next two hours."""
    files = await expiry_service.get_expiring_files(db)
    return {"files": [expiry_service.describe_file(f) for f in files], "total": len(files)}
