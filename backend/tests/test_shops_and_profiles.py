import uuid

import pytest

from printhub.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from printhub.models import PrintJob, PrintJobStatus, Profile, PublicShopDirectory, ShopInfo
from printhub.services import pricing_service, profile_service, shop_service


def test_haversine_dhaka_to_chittagong():
    assert shop_service.haversine_km(23.8103, 90.4125, 22.3569, 91.7832) == pytest.approx(213.0, abs=3)
    assert shop_service.haversine_km(23.8, 90.4, 23.8, 90.4) == 0.0


def _shop(name, rating=None, distance=None, services=("Printing Services",), owner="Owner", address="Dhaka"):
    return {
        "name": name, "owner_name": owner, "address": address, "rating": rating if rating is not None else 4.5,
        "services": list(services), "distance": distance,
    }


def test_filter_and_sort_shops():
    shops = [
        _shop("Zed Prints", rating=3.9, distance=4.0),
        _shop("Alpha Copy", rating=4.8, distance=None, services=["Binding"]),
        _shop("Mid Print", rating=4.2, distance=1.5),
    ]

    by_distance = [s["name"] for s in shop_service.filter_and_sort_shops(shops)]
    assert by_distance == ["Mid Print", "Zed Prints", "Alpha Copy"]

    by_rating = [s["name"] for s in shop_service.filter_and_sort_shops(shops, sort_by="rating")]
    assert by_rating == ["Alpha Copy", "Mid Print", "Zed Prints"]

    assert [s["name"] for s in shop_service.filter_and_sort_shops(shops, query="binding")] == ["Alpha Copy"]
    assert len(shop_service.filter_and_sort_shops(shops, min_rating=4.0)) == 2

    near = [s["name"] for s in shop_service.filter_and_sort_shops(shops, max_distance_km=2)]
    assert near == ["Mid Print", "Alpha Copy"]


async def test_search_computes_distance_and_defaults(db):
    db.add_all([
        PublicShopDirectory(shop_owner_id=uuid.uuid4(), shop_name="Near", latitude=23.81, longitude=90.41, is_active=True),
        PublicShopDirectory(shop_owner_id=uuid.uuid4(), shop_name="Hidden", is_active=False),
        PublicShopDirectory(shop_owner_id=uuid.uuid4(), shop_name="Unplaced", is_active=True),
    ])
    await db.commit()

    shops = await shop_service.search_shops(db, latitude=23.80, longitude=90.40)
    assert [s["name"] for s in shops] == ["Near", "Unplaced"]
    assert shops[0]["distance"] == pytest.approx(1.5, abs=0.2)
    assert shops[1]["distance"] is None
    assert shops[1]["rating"] == 4.5
    assert shops[1]["services"] == ["Printing Services"]


async def test_profile_save_writes_both_records(db, owner):
    await shop_service.save_shop_profile(db, owner.id, {
        "shop_name": "Rahim Prints", "address": "Mirpur 10", "phone_number": "01700000000",
        "email_address": "shop@example.com",
    })

    profile = await shop_service.get_shop_profile(db, owner.id)
    assert profile["shop_name"] == "Rahim Prints"
    assert profile["phone_number"] == "01700000000"
    assert profile["is_listed"] is True

    shops = await shop_service.search_shops(db)
    listing = await shop_service.get_listing(db, uuid.UUID(shops[0]["id"]))
    assert listing["address"] == "Mirpur 10"
    assert listing["phone_number"] == "Available after booking"


async def test_profile_requires_name(db, owner):
    with pytest.raises(ValidationError):
        await shop_service.save_shop_profile(db, owner.id, {"shop_name": "  "})


async def test_unknown_listing_is_not_found(db):
    with pytest.raises(NotFoundError):
        await shop_service.get_listing(db, uuid.uuid4())


async def test_sync_checker_creates_missing_listing(db, owner):
    db.add(ShopInfo(shop_owner_id=owner.id, shop_name="Private Only"))
    await db.commit()

    checker = shop_service.ShopSyncChecker(db, owner.id)
    status = await checker.check_sync_status()
    assert status["needs_fix"] is True

    fixed = await checker.fix_sync_issues()
    assert fixed["actions"] == ["created_public_listing"]
    assert fixed["needs_fix"] is False
    assert fixed["is_active"] is True


async def test_sync_checker_reactivates_listing(db, owner):
    db.add(PublicShopDirectory(shop_owner_id=owner.id, shop_name="Dormant", is_active=False))
    await db.commit()

    fixed = await shop_service.ShopSyncChecker(db, owner.id).fix_sync_issues()
    assert fixed["actions"] == ["activated_listing"]


async def test_settings_page_replaces_pricing_rules(db, owner):
    page = await shop_service.save_shop_settings(db, owner.id, {
        "pricing_rules": [{"service_type": "black_white", "price_per_page": 1.5, "minimum_charge": 1}],
        "notifications": {"sms_notifications": True},
        "equipment": [{"equipment_name": "HP LaserJet", "equipment_type": "printer"}],
    })
    assert [r["service_type"] for r in page["pricing_rules"]] == ["black_white"]
    assert page["pricing_rules"][0]["price_per_page"] == 1.5
    assert page["notifications"]["sms_notifications"] is True
    assert page["equipment"][0]["status"] == "active"

    rules = await pricing_service.get_pricing_rules(db, owner.id)
    assert rules[0].price_per_page == 1.5


async def test_settings_page_rejects_negative_prices(db, owner):
    with pytest.raises(ValidationError):
        await shop_service.save_shop_settings(db, owner.id, {
            "pricing_rules": [{"service_type": "color", "price_per_page": -1}],
        })


async def test_print_queue_settings_only_for_own_shop(db, owner):
    saved = await shop_service.upsert_print_queue_settings(db, owner, owner.id, True, False, 25)
    assert saved == {"auto_accept": True, "notification_enabled": False, "queue_limit": 25}

    with pytest.raises(PermissionDeniedError):
        await shop_service.upsert_print_queue_settings(db, owner, uuid.uuid4(), True, True, 5)


async def test_profile_stats(db, owner, customer):
    db.add_all([
        PrintJob(shop_owner_id=owner.id, customer_id=customer.id, file_name="a.pdf", total_cost=12.5,
                 status=PrintJobStatus.COMPLETED),
        PrintJob(shop_owner_id=owner.id, customer_id=customer.id, file_name="b.pdf", total_cost=7.5,
                 status=PrintJobStatus.PENDING),
    ])
    await db.commit()

    stats = await shop_service.shop_profile_stats(db, owner.id)
    assert stats["total_orders"] == 2
    assert stats["total_revenue"] == 20.0
    assert stats["total_customers"] == 1
    assert stats["average_rating"] == 4.5


# =============================================================================
# PROFILES
# =============================================================================

async def test_first_sign_in_creates_profile_and_starter_shop(db, owner):
    profile = await profile_service.ensure_profile(db, owner)
    assert profile.full_name == "Rahim"

    again = await profile_service.ensure_profile(db, owner)
    assert again.id == profile.id

    shop = await shop_service.get_shop_profile(db, owner.id)
    assert shop["shop_name"] == "Rahim Print Shop"
    assert shop["email_address"] == "owner@example.com"


async def test_customer_gets_no_shop(db, customer):
    await profile_service.ensure_profile(db, customer)
    shop = await shop_service.get_shop_profile(db, customer.id)
    assert shop["shop_name"] == ""


async def test_update_owner_name(db, owner):
    profile = await profile_service.update_owner_name(db, owner, "  Rahim Uddin ")
    assert profile.full_name == "Rahim Uddin"
    with pytest.raises(ValidationError):
        await profile_service.update_owner_name(db, owner, "")


async def test_avatar_upload_is_validated_and_signed(db, customer):
    with pytest.raises(ValidationError):
        await profile_service.upload_avatar(db, customer, "cv.pdf", b"data")

    profile = await profile_service.upload_avatar(db, customer, "me.PNG", b"\x89PNG")
    assert profile.avatar_url == f"{customer.id}/avatar.png"
    data = profile_service.profile_to_dict(profile)
    assert f"/files/avatars/{customer.id}/avatar.png?expires=" in data["avatar_display_url"]


def test_absolute_avatar_urls_pass_through():
    assert profile_service.resolve_avatar_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"
    assert profile_service.resolve_avatar_url(None) == ""


async def test_shop_customers_are_aggregated(db, owner, customer):
    db.add(Profile(user_id=customer.id, full_name="Karim Ahmed", phone="01800000000"))
    db.add_all([
        PrintJob(shop_owner_id=owner.id, customer_id=customer.id, file_name="a.pdf", total_cost=10,
                 status=PrintJobStatus.COMPLETED),
        PrintJob(shop_owner_id=owner.id, customer_id=customer.id, file_name="b.pdf", total_cost=5.25,
                 status=PrintJobStatus.PENDING),
    ])
    await db.commit()

    customers = await profile_service.list_shop_customers(db, owner.id)
    assert len(customers) == 1
    assert customers[0]["full_name"] == "Karim Ahmed"
    assert customers[0]["total_orders"] == 2
    assert customers[0]["total_spent"] == 15.25
