"""
Shops API for PrintHub

Public:
- Directory search for the find-shops page
- Single listing for the booking page

Shop owner (/me):
- Shop profile (private + public record), stats, visibility repair
- Settings page: pricing rules, equipment, notifications
- Customers who have ordered from the shop
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import logging

from printhub.core.database import get_db
from printhub.core.exceptions import PrintHubError
from printhub.core.security import CurrentUser, require_shop_owner
from printhub.schemas import ShopProfileRequest, ShopSettingsRequest
from printhub.services import profile_service, shop_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def search_shops(
    q: Optional[str] = None,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    max_distance: Optional[float] = Query(None, gt=0),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    sort_by: str = Query("distance", pattern="^(distance|rating|name)$"),
    db: AsyncSession = Depends(get_db)
):
    try:
        shops = await shop_service.search_shops(
            db, q or "", lat, lng, max_distance_km=max_distance, min_rating=min_rating, sort_by=sort_by
        )
        return {"shops": shops, "total": len(shops)}
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error searching shops: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


# =============================================================================
# OWNER ENDPOINTS
# =============================================================================

@router.get("/me/profile")
async def get_my_shop(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    return await shop_service.get_shop_profile(db, user.id)


@router.put("/me/profile")
async def save_my_shop(
    body: ShopProfileRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    try:
        return await shop_service.save_shop_profile(db, user.id, body.model_dump(exclude_unset=True))
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error saving shop profile for {user.id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/me/stats")
async def my_shop_stats(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    return await shop_service.shop_profile_stats(db, user.id)


@router.get("/me/sync")
async def check_sync(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    return await shop_service.ShopSyncChecker(db, user.id).check_sync_status()


@router.post("/me/sync")
async def fix_sync(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """Create or re-activate the public listing so customers can find the shop."""
    try:
        return await shop_service.ShopSyncChecker(db, user.id).fix_sync_issues()
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error fixing sync issues for {user.id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/me/settings")
async def get_my_settings(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    return await shop_service.get_shop_settings_page(db, user.id)


@router.put("/me/settings")
async def save_my_settings(
    body: ShopSettingsRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    try:
        payload = body.model_dump(exclude_unset=True)
        if body.shop is not None:
            payload["shop"] = body.shop.model_dump(exclude_unset=True)
        return await shop_service.save_shop_settings(db, user.id, payload)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error saving settings for {user.id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/me/customers")
async def my_customers(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    customers = await profile_service.list_shop_customers(db, user.id)
    return {"customers": customers, "total": len(customers)}


@router.get("/{shop_id}")
async def get_shop(shop_id: UUID, db: AsyncSession = Depends(get_db)):
    return await shop_service.get_listing(db, shop_id)
