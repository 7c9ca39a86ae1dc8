"""
Profile Service for PrintHub

One profile per auth identity, created on first sign-in. Shop owners also get
a starter shop record so the owner pages have something to edit.
"""

import os
import uuid
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from printhub.core.config import get_settings
from printhub.core.exceptions import NotFoundError, ValidationError
from printhub.core.security import CurrentUser
from printhub.models import PrintJob, Profile, ShopInfo
from printhub.services import storage_service
import logging

settings = get_settings()
logger = logging.getLogger(__name__)

AVATAR_URL_TTL_SECONDS = 60 * 60 * 24 * 365
MAX_AVATAR_BYTES = 5 * 1024 * 1024
EDITABLE_FIELDS = ("full_name", "phone")


def resolve_avatar_url(path_or_url: Optional[str]) -> str:
    """Stored avatar value -> displayable URL. Absolute URLs pass through unchanged."""
    if not path_or_url:
        return ""
    if path_or_url.startswith(("http://", "https://", "data:")):
        return path_or_url
    return storage_service.create_signed_url(settings.AVATAR_BUCKET, path_or_url, AVATAR_URL_TTL_SECONDS)


def profile_to_dict(profile: Profile) -> dict:
    return {
        "id": str(profile.id),
        "user_id": str(profile.user_id),
        "full_name": profile.full_name,
        "phone": profile.phone,
        "avatar_url": profile.avatar_url,
        "avatar_display_url": resolve_avatar_url(profile.avatar_url),
    }


async def _get(db: AsyncSession, user_id: uuid.UUID) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.user_id == user_id))
    return result.scalars().first()


async def ensure_profile(db: AsyncSession, user: CurrentUser) -> Profile:
    """
    Create the caller's profile on first sign-in. A concurrent duplicate
    insert is ignored; for shop owners a default shop record is created too.
    """
    profile = await _get(db, user.id)
    if not profile:
        db.add(Profile(user_id=user.id, full_name=user.full_name))
        try:
            await db.commit()
            logger.info(f"Created profile for {user.id}")
        except IntegrityError:
            await db.rollback()
            logger.info(f"Profile for {user.id} already exists")
        profile = await _get(db, user.id)

    if user.is_shop_owner:
        result = await db.execute(select(ShopInfo).where(ShopInfo.shop_owner_id == user.id))
        if not result.scalars().first():
            db.add(ShopInfo(
                shop_owner_id=user.id,
                shop_name=f"{user.full_name or 'My'} Print Shop",
                email_address=user.email,
            ))
            try:
                await db.commit()
                logger.info(f"Created default shop for {user.id}")
            except IntegrityError:
                await db.rollback()

    return profile


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> Profile:
    profile = await _get(db, user_id)
    if not profile:
        raise NotFoundError("Profile", user_id)
    return profile


async def update_profile(db: AsyncSession, user: CurrentUser, data: dict) -> Profile:
    profile = await ensure_profile(db, user)
    for field_name in EDITABLE_FIELDS:
        if field_name in data:
            setattr(profile, field_name, (data[field_name] or "").strip() or None)
    await db.commit()
    return profile


async def update_owner_name(db: AsyncSession, user: CurrentUser, new_owner_name: str) -> Profile:
    """Named procedure: rename the calling owner."""
    name = (new_owner_name or "").strip()
    if not name:
        raise ValidationError("Owner name is required", field="new_owner_name")
    profile = await ensure_profile(db, user)
    profile.full_name = name
    await db.commit()
    logger.info(f"Owner name updated for {user.id}")
    return profile


async def upload_avatar(db: AsyncSession, user: CurrentUser, filename: str, content: bytes) -> Profile:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in storage_service.AVATAR_EXTENSIONS:
        raise ValidationError("Avatar must be an image", field="file")
    if len(content) > MAX_AVATAR_BYTES:
        raise ValidationError("Avatar must be 5MB or smaller", field="file")

    path = await storage_service.upload(settings.AVATAR_BUCKET, f"{user.id}/avatar{ext}", content)
    profile = await ensure_profile(db, user)
    profile.avatar_url = path
    await db.commit()
    return profile


# =============================================================================
# SHOP CUSTOMERS
# =============================================================================

async def list_shop_customers(db: AsyncSession, shop_owner_id: uuid.UUID) -> List[dict]:
    """One row per customer who has ordered from the shop, most recent first."""
    jobs = (await db.execute(
        select(PrintJob).where(PrintJob.shop_owner_id == shop_owner_id, PrintJob.customer_id.isnot(None))
    )).scalars().all()

    customer_ids = list({job.customer_id for job in jobs})
    profiles = {}
    if customer_ids:
        rows = await db.execute(select(Profile).where(Profile.user_id.in_(customer_ids)))
        profiles = {p.user_id: p for p in rows.scalars().all()}

    customers = {}
    for job in jobs:
        entry = customers.get(job.customer_id)
        if entry is None:
            profile = profiles.get(job.customer_id)
            entry = customers[job.customer_id] = {
                "user_id": str(job.customer_id),
                "full_name": (profile.full_name if profile else None) or job.customer_name or "Unknown Customer",
                "email": job.customer_email,
                "phone": (profile.phone if profile else None) or "",
                "avatar_url": resolve_avatar_url(profile.avatar_url if profile else None),
                "total_orders": 0,
                "total_spent": 0.0,
                "last_order_date": job.created_at,
            }
        entry["total_orders"] += 1
        entry["total_spent"] = round(entry["total_spent"] + float(job.total_cost or 0), 2)
        if job.created_at and (entry["last_order_date"] is None or job.created_at > entry["last_order_date"]):
            entry["last_order_date"] = job.created_at

    result = sorted(
        customers.values(),
        key=lambda c: c["last_order_date"].isoformat() if c["last_order_date"] else "",
        reverse=True,
    )
    for entry in result:
        entry["last_order_date"] = entry["last_order_date"].isoformat() if entry["last_order_date"] else None
    return result
