"""
Shop Service for PrintHub

Each shop lives in two rows keyed by shop_owner_id:
- shop_info: private contact details, visible to the owner only
- public_shop_directory: the listing customers search and book from

Writes touching fields of both go through save_shop_profile so the two rows
are updated in one transaction. ShopSyncChecker repairs listings that went
missing or inactive.
"""

import math
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from printhub.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from printhub.core.security import CurrentUser
from printhub.models import (
    Booking, BookingStatus, Equipment, NotificationSettings, PrintJob,
    PrintQueueSettings, Profile, PublicShopDirectory, ServiceType, ShopInfo
)
from printhub.services import pricing_service
import logging

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
DEFAULT_RATING = 4.5
UNKNOWN_DISTANCE = 999

PRIVATE_FIELDS = ("shop_name", "description", "address", "phone_number", "email_address", "website_url", "logo_url")
PUBLIC_FIELDS = ("shop_name", "description", "address", "website_url", "logo_url")

NOTIFICATION_FIELDS = (
    "email_notifications", "sms_notifications", "new_order_notifications",
    "order_completion_notifications", "low_supplies_notifications",
    "equipment_maintenance_notifications", "daily_summary_notifications",
)


# =============================================================================
# DIRECTORY SEARCH
# =============================================================================

def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km, rounded to one decimal."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 1)


def listing_to_dict(listing: PublicShopDirectory, owner_name: Optional[str] = None) -> dict:
    return {
        "id": str(listing.id),
        "shop_owner_id": str(listing.shop_owner_id),
        "name": listing.shop_name,
        "owner_name": owner_name or "Shop Owner",
        "address": listing.address or "Address not provided",
        "description": listing.description or "Professional printing services",
        "website_url": listing.website_url,
        "logo_url": listing.logo_url,
        "rating": listing.rating if listing.rating is not None else DEFAULT_RATING,
        "total_reviews": listing.total_reviews or 0,
        "services": listing.services_offered or ["Printing Services"],
        "business_hours": listing.business_hours,
        "coordinates": (
            [listing.latitude, listing.longitude]
            if listing.latitude is not None and listing.longitude is not None else None
        ),
        "is_active": bool(listing.is_active),
    }


def filter_and_sort_shops(
    shops: List[dict],
    query: str = "",
    min_rating: Optional[float] = None,
    max_distance_km: Optional[float] = None,
    sort_by: str = "distance",
) -> List[dict]:
    needle = (query or "").lower()

    def matches(shop: dict) -> bool:
        if needle and not (
            needle in shop["name"].lower()
            or needle in shop["owner_name"].lower()
            or needle in shop["address"].lower()
            or any(needle in service.lower() for service in shop["services"])
        ):
            return False
        if min_rating is not None and shop["rating"] < min_rating:
            return False
        if max_distance_km is not None and shop.get("distance") is not None:
            return shop["distance"] <= max_distance_km
        return True

    result = [shop for shop in shops if matches(shop)]

    if sort_by == "rating":
        result.sort(key=lambda s: s["rating"], reverse=True)
    elif sort_by == "name":
        result.sort(key=lambda s: s["name"].lower())
    elif sort_by == "distance":
        result.sort(key=lambda s: s["distance"] if s.get("distance") is not None else UNKNOWN_DISTANCE)
    return result


async def search_shops(
    db: AsyncSession,
    query: str = "",
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    max_distance_km: Optional[float] = None,
    min_rating: Optional[float] = None,
    sort_by: str = "distance",
) -> List[dict]:
    """
    Active listings for the find-shops page, with owner names and, when the
    caller's location is known, the distance to each shop.
    """
    result = await db.execute(
        select(PublicShopDirectory).where(PublicShopDirectory.is_active.is_(True))
    )
    listings = result.scalars().all()

    owner_ids = list({listing.shop_owner_id for listing in listings})
    owner_names = {}
    if owner_ids:
        try:
            rows = await db.execute(
                select(Profile.user_id, Profile.full_name).where(Profile.user_id.in_(owner_ids))
            )
            owner_names = {row.user_id: row.full_name for row in rows}
        except Exception as e:
            logger.warning(f"Could not fetch owner profiles: {e}")

    shops = []
    for listing in listings:
        shop = listing_to_dict(listing, owner_names.get(listing.shop_owner_id))
        has_location = latitude is not None and longitude is not None
        if has_location and shop["coordinates"]:
            shop["distance"] = haversine_km(latitude, longitude, *shop["coordinates"])
        else:
            shop["distance"] = None
        shops.append(shop)

    logger.info(f"Found {len(shops)} active shops")
    return filter_and_sort_shops(
        shops,
        query=query,
        min_rating=min_rating,
        max_distance_km=max_distance_km if latitude is not None else None,
        sort_by=sort_by,
    )


async def get_listing(db: AsyncSession, shop_id: uuid.UUID) -> dict:
    """Public view of one shop for the booking page. Contact details stay private."""
    result = await db.execute(
        select(PublicShopDirectory).where(
            PublicShopDirectory.id == shop_id,
            PublicShopDirectory.is_active.is_(True),
        )
    )
    listing = result.scalars().first()
    if not listing:
        raise NotFoundError("Shop", shop_id)

    shop = listing_to_dict(listing)
    shop["phone_number"] = "Available after booking"
    shop["email_address"] = "Contact via platform"
    return shop


# =============================================================================
# SHOP PROFILE (dual record)
# =============================================================================

async def _private(db: AsyncSession, owner_id: uuid.UUID) -> Optional[ShopInfo]:
    result = await db.execute(select(ShopInfo).where(ShopInfo.shop_owner_id == owner_id))
    return result.scalars().first()


async def _public(db: AsyncSession, owner_id: uuid.UUID) -> Optional[PublicShopDirectory]:
    result = await db.execute(
        select(PublicShopDirectory).where(PublicShopDirectory.shop_owner_id == owner_id)
    )
    return result.scalars().first()


async def get_shop_profile(db: AsyncSession, owner_id: uuid.UUID) -> dict:
    """Merged view; public values win for shared fields, contact fields come from private."""
    private = await _private(db, owner_id)
    public = await _public(db, owner_id)

    def pick(field_name):
        return (getattr(public, field_name, None) if public else None) or \
               (getattr(private, field_name, None) if private else None) or ""

    return {
        "shop_name": pick("shop_name"),
        "description": pick("description"),
        "address": pick("address"),
        "website_url": pick("website_url"),
        "logo_url": pick("logo_url"),
        "phone_number": (private.phone_number if private else None) or "",
        "email_address": (private.email_address if private else None) or "",
        "business_hours": public.business_hours if public else None,
        "is_listed": bool(public and public.is_active),
    }


async def save_shop_profile(db: AsyncSession, owner_id: uuid.UUID, data: dict) -> dict:
    """Upsert shop_info and public_shop_directory together and keep the listing active."""
    if not (data.get("shop_name") or "").strip():
        raise ValidationError("Shop name is required", field="shop_name")

    private = await _private(db, owner_id)
    if not private:
        private = ShopInfo(shop_owner_id=owner_id, shop_name=data["shop_name"])
        db.add(private)
    for field_name in PRIVATE_FIELDS:
        if field_name in data:
            setattr(private, field_name, data[field_name])

    public = await _public(db, owner_id)
    if not public:
        public = PublicShopDirectory(shop_owner_id=owner_id, shop_name=data["shop_name"])
        db.add(public)
    for field_name in PUBLIC_FIELDS:
        if field_name in data:
            setattr(public, field_name, data[field_name])
    for field_name in ("latitude", "longitude", "services_offered"):
        if data.get(field_name) is not None:
            setattr(public, field_name, data[field_name])
    public.is_active = True

    await db.commit()
    logger.info(f"Saved shop profile for {owner_id}")
    return await get_shop_profile(db, owner_id)


async def shop_profile_stats(db: AsyncSession, owner_id: uuid.UUID, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    jobs = (await db.execute(select(PrintJob).where(PrintJob.shop_owner_id == owner_id))).scalars().all()
    bookings = (await db.execute(select(Booking).where(Booking.shop_owner_id == owner_id))).scalars().all()
    public = await _public(db, owner_id)

    customers = {j.customer_id for j in jobs if j.customer_id} | {b.customer_id for b in bookings if b.customer_id}

    this_month = (now.year, now.month)
    last_month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
    current = sum(1 for j in jobs if j.created_at and (j.created_at.year, j.created_at.month) == this_month)
    previous = sum(1 for j in jobs if j.created_at and (j.created_at.year, j.created_at.month) == last_month)

    return {
        "total_orders": len(jobs),
        "total_revenue": round(sum(float(j.total_cost or 0) for j in jobs), 2),
        "total_customers": len(customers),
        "active_bookings": sum(1 for b in bookings if BookingStatus(b.status) == BookingStatus.CONFIRMED),
        "average_rating": public.rating if public and public.rating is not None else DEFAULT_RATING,
        "monthly_growth": round((current - previous) / previous * 100, 1) if previous else 0,
    }


class ShopSyncChecker:
    """Detects and repairs a shop that customers cannot find."""

    def __init__(self, db: AsyncSession, owner_id: uuid.UUID):
        self.db = db
        self.owner_id = owner_id

    async def check_sync_status(self) -> dict:
        private = await _private(self.db, self.owner_id)
        public = await _public(self.db, self.owner_id)
        status = {
            "has_private_data": private is not None,
            "has_public_data": public is not None,
            "is_active": bool(public and public.is_active),
            "shop_name": (private.shop_name if private else None)
                         or (public.shop_name if public else None)
                         or "Unknown Shop",
        }
        status["needs_fix"] = (
            (status["has_private_data"] and not status["has_public_data"])
            or (status["has_public_data"] and not status["is_active"])
        )
        return status

    async def fix_sync_issues(self) -> dict:
        status = await self.check_sync_status()
        actions = []

        if status["has_private_data"] and not status["has_public_data"]:
            private = await _private(self.db, self.owner_id)
            self.db.add(PublicShopDirectory(
                shop_owner_id=self.owner_id,
                shop_name=private.shop_name,
                description=private.description or "Quality printing services",
                address=private.address or "Address not set",
                website_url=private.website_url,
                logo_url=private.logo_url,
                is_active=True,
            ))
            actions.append("created_public_listing")
        elif status["has_public_data"] and not status["is_active"]:
            public = await _public(self.db, self.owner_id)
            public.is_active = True
            actions.append("activated_listing")

        if actions:
            await self.db.commit()
            logger.info(f"Shop sync for {self.owner_id}: {', '.join(actions)}")

        result = await self.check_sync_status()
        result["actions"] = actions
        return result


# =============================================================================
# SHOP SETTINGS PAGE
# =============================================================================

def equipment_to_dict(item: Equipment) -> dict:
    return {
        "id": str(item.id),
        "equipment_name": item.equipment_name,
        "equipment_type": item.equipment_type,
        "brand": item.brand,
        "model": item.model,
        "capabilities": item.capabilities,
        "status": item.status,
        "last_maintenance": item.last_maintenance.isoformat() if item.last_maintenance else None,
        "next_maintenance": item.next_maintenance.isoformat() if item.next_maintenance else None,
    }


def _validate_rules(rules: List[dict]) -> List[dict]:
    allowed = {t.value for t in ServiceType}
    clean = []
    for rule in rules:
        if rule.get("service_type") not in allowed:
            raise ValidationError(f"Unknown service type: {rule.get('service_type')}", field="service_type")
        item = {"service_type": rule["service_type"]}
        for key in ("price_per_page", "color_multiplier", "minimum_charge", "bulk_discount_percentage"):
            if rule.get(key) is not None:
                if float(rule[key]) < 0:
                    raise ValidationError(f"{key} cannot be negative", field=key)
                item[key] = float(rule[key])
        if rule.get("bulk_discount_threshold") is not None:
            item["bulk_discount_threshold"] = int(rule["bulk_discount_threshold"])
        clean.append(item)
    return clean


async def get_notification_settings(db: AsyncSession, owner_id: uuid.UUID) -> dict:
    result = await db.execute(select(NotificationSettings).where(NotificationSettings.shop_owner_id == owner_id))
    row = result.scalars().first()
    if not row:
        return {name: name in ("email_notifications", "new_order_notifications", "order_completion_notifications")
                for name in NOTIFICATION_FIELDS}
    return {name: bool(getattr(row, name)) for name in NOTIFICATION_FIELDS}


async def get_shop_settings_page(db: AsyncSession, owner_id: uuid.UUID) -> dict:
    equipment = (await db.execute(
        select(Equipment).where(Equipment.shop_owner_id == owner_id).order_by(Equipment.equipment_name)
    )).scalars().all()
    rules = await pricing_service.get_pricing_rules(db, owner_id)
    return {
        "shop": await get_shop_profile(db, owner_id),
        "pricing_rules": [rule.to_dict() for rule in rules],
        "equipment": [equipment_to_dict(item) for item in equipment],
        "notifications": await get_notification_settings(db, owner_id),
        "print_queue": await get_print_queue_settings(db, owner_id),
    }


async def save_shop_settings(db: AsyncSession, owner_id: uuid.UUID, payload: dict) -> dict:
    """
    Save the settings page. Sections missing from the payload are left alone;
    pricing rules and equipment present in it replace what is stored.
    """
    if payload.get("shop") is not None:
        await save_shop_profile(db, owner_id, payload["shop"])

    if payload.get("pricing_rules") is not None:
        await pricing_service.replace_pricing_rules(db, owner_id, _validate_rules(payload["pricing_rules"]))

    if payload.get("notifications") is not None:
        result = await db.execute(select(NotificationSettings).where(NotificationSettings.shop_owner_id == owner_id))
        row = result.scalars().first()
        if not row:
            row = NotificationSettings(shop_owner_id=owner_id)
            db.add(row)
        for name in NOTIFICATION_FIELDS:
            if name in payload["notifications"]:
                setattr(row, name, bool(payload["notifications"][name]))

    if payload.get("equipment") is not None:
        await db.execute(delete(Equipment).where(Equipment.shop_owner_id == owner_id))
        for item in payload["equipment"]:
            if not item.get("equipment_name") or not item.get("equipment_type"):
                raise ValidationError("Equipment needs a name and type", field="equipment")
            db.add(Equipment(
                shop_owner_id=owner_id,
                equipment_name=item["equipment_name"],
                equipment_type=item["equipment_type"],
                brand=item.get("brand"),
                model=item.get("model"),
                capabilities=item.get("capabilities"),
                status=item.get("status") or "active",
            ))

    await db.commit()
    logger.info(f"Saved shop settings for {owner_id}")
    return await get_shop_settings_page(db, owner_id)


# =============================================================================
# REMOTE PROCEDURES
# =============================================================================

async def get_print_queue_settings(db: AsyncSession, shop_id: uuid.UUID) -> dict:
    result = await db.execute(select(PrintQueueSettings).where(PrintQueueSettings.shop_id == shop_id))
    row = result.scalars().first()
    if not row:
        return {"auto_accept": False, "notification_enabled": True, "queue_limit": 10}
    return {
        "auto_accept": bool(row.auto_accept),
        "notification_enabled": bool(row.notification_enabled),
        "queue_limit": row.queue_limit,
    }


async def upsert_print_queue_settings(
    db: AsyncSession,
    user: CurrentUser,
    p_shop_id: uuid.UUID,
    p_auto_accept: bool,
    p_notification_enabled: bool,
    p_queue_limit: int,
) -> dict:
    if p_shop_id != user.id:
        raise PermissionDeniedError("You can only change your own queue settings")
    if p_queue_limit is None or int(p_queue_limit) < 1:
        raise ValidationError("Queue limit must be at least 1", field="p_queue_limit")

    result = await db.execute(select(PrintQueueSettings).where(PrintQueueSettings.shop_id == p_shop_id))
    row = result.scalars().first()
    if not row:
        row = PrintQueueSettings(shop_id=p_shop_id)
        db.add(row)
    row.auto_accept = bool(p_auto_accept)
    row.notification_enabled = bool(p_notification_enabled)
    row.queue_limit = int(p_queue_limit)

    await db.commit()
    logger.info(f"Print queue settings saved for {p_shop_id}")
    return await get_print_queue_settings(db, p_shop_id)
