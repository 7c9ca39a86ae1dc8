import uuid
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from printhub.models import PrintJob

from tests.conftest import auth_headers, make_token


async def _upload(client, customer, name="My Notes.pdf", content=b"%PDF-1.4 /Type /Page /Type /Page /Type /Pages"):
    response = await client.post(
        "/api/v1/uploads",
        files=[("files", (name, content, "application/pdf"))],
        headers=auth_headers(customer),
    )
    assert response.status_code == 201, response.text
    return response.json()["files"][0]


async def test_requests_without_token_are_rejected(client):
    response = await client.get("/api/v1/print-jobs")
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


async def test_expired_token_is_rejected(client, owner):
    headers = {"Authorization": f"Bearer {make_token(owner, expires_in=-60)}"}
    response = await client.get("/api/v1/print-jobs", headers=headers)
    assert response.status_code == 401


async def test_customers_cannot_open_the_print_queue(client, customer):
    response = await client.get("/api/v1/print-jobs", headers=auth_headers(customer))
    assert response.status_code == 403


async def test_upload_submit_and_work_the_queue(client, owner, customer):
    uploaded = await _upload(client, customer)
    assert uploaded["name"].endswith("-My_Notes.pdf")
    assert uploaded["pages"] == 2

    response = await client.post(
        "/api/v1/print-jobs",
        json={
            "shop_owner_id": str(owner.id),
            "files": [{"name": uploaded["name"], "url": uploaded["url"], "size": uploaded["size"], "pages": 2}],
            "print_settings": {"colorType": "blackwhite", "copies": 2},
        },
        headers=auth_headers(customer),
    )
    assert response.status_code == 201, response.text
    job = response.json()["jobs"][0]
    assert job["total_cost"] == 8.0

    queue = (await client.get("/api/v1/print-jobs", headers=auth_headers(owner))).json()
    assert queue["total"] == 1

    response = await client.put(
        f"/api/v1/print-jobs/{job['id']}/status", params={"status": "printing"}, headers=auth_headers(owner)
    )
    assert response.json()["job"]["status"] == "printing"

    response = await client.put(
        f"/api/v1/print-jobs/{job['id']}/status", params={"status": "queued"}, headers=auth_headers(owner)
    )
    assert response.status_code == 409

    printed = (await client.post(
        f"/api/v1/print-jobs/{job['id']}/direct-print", headers=auth_headers(owner)
    )).json()
    assert printed["job"]["status"] == "completed"

    url = urlsplit(printed["file_url"])
    response = await client.get(f"{url.path}?{url.query}")
    assert response.status_code == 200
    assert response.content.startswith(b"%PDF")

    mine = (await client.get("/api/v1/print-jobs/mine", headers=auth_headers(customer))).json()
    assert mine["jobs"][0]["status"] == "completed"


async def test_unsupported_upload_is_rejected(client, customer):
    response = await client.post(
        "/api/v1/uploads",
        files=[("files", ("run.exe", b"MZ", "application/octet-stream"))],
        headers=auth_headers(customer),
    )
    assert response.status_code == 422
    assert response.json()["field"] == "file"


async def test_tampered_signature_is_forbidden(client, customer):
    uploaded = await _upload(client, customer)
    url = urlsplit(uploaded["url"])
    response = await client.get(url.path, params={"expires": 9999999999, "signature": "0" * 64})
    assert response.status_code == 403


async def test_expired_upload_answers_gone(client, owner, customer, session_factory):
    uploaded = await _upload(client, customer)
    async with session_factory() as db:
        db.add(PrintJob(
            shop_owner_id=owner.id,
            customer_id=customer.id,
            file_name=uploaded["name"],
            created_at=datetime.utcnow() - timedelta(hours=25),
        ))
        await db.commit()

    url = urlsplit(uploaded["url"])
    response = await client.get(f"{url.path}?{url.query}")
    assert response.status_code == 410
    assert response.json()["detail"] == "File has expired"


async def test_quote_uses_default_rules(client):
    response = await client.post("/api/v1/pricing/quote", json={
        "files": [{"name": "a.pdf", "pages": 10}, {"name": "b.pdf", "pages": 1}],
        "print_settings": {"colorType": "color", "copies": 1},
    })
    body = response.json()
    assert body["total_cost"] == 110.0
    assert [f["cost"] for f in body["files"]] == [100.0, 10.0]
    assert body["formatted"] == "৳110.00"


async def test_slot_booking_flow(client, owner, customer):
    headers = auth_headers(owner)
    await client.put("/api/v1/shops/me/profile", json={"shop_name": "Rahim Prints"}, headers=headers)
    await client.put("/api/v1/slots/config", json={
        "settings": {"slot_duration_minutes": 60, "max_jobs_per_slot": 1},
        "operating_hours": [
            {"day_of_week": day, "open_time": "10:00", "close_time": "12:00", "is_open": True}
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
        ],
    }, headers=headers)

    day = (datetime.utcnow() + timedelta(days=1)).date().isoformat()
    generated = (await client.post("/api/v1/slots/generate", json={"slot_date": day}, headers=headers)).json()
    assert generated["count"] == 2

    shop = (await client.get("/api/v1/shops", params={"q": "rahim"})).json()["shops"][0]
    slots = (await client.get("/api/v1/slots", params={"shop_owner_id": str(owner.id), "date": day})).json()["slots"]
    slot_id = slots[0]["id"]

    body = {"shop_id": shop["id"], "time_slot_id": slot_id, "customer_info": {"name": "Karim"}}
    first = await client.post("/api/v1/bookings", json=body, headers=auth_headers(customer))
    assert first.status_code == 201, first.text
    second = await client.post("/api/v1/bookings", json=body, headers=auth_headers(customer))
    assert second.status_code == 409

    open_slots = (await client.get(
        "/api/v1/slots", params={"shop_owner_id": str(owner.id), "date": day}
    )).json()["slots"]
    assert [s["slot_time"] for s in open_slots] == ["11:00"]

    shop_bookings = (await client.get("/api/v1/bookings/shop", headers=headers)).json()
    assert shop_bookings["total"] == 1


async def test_rpc_upsert_print_queue_settings(client, owner):
    response = await client.post(
        "/api/v1/rpc/upsert_print_queue_settings",
        json={"p_shop_id": str(owner.id), "p_auto_accept": True, "p_notification_enabled": True, "p_queue_limit": 15},
        headers=auth_headers(owner),
    )
    assert response.json() == {"auto_accept": True, "notification_enabled": True, "queue_limit": 15}

    response = await client.post(
        "/api/v1/rpc/upsert_print_queue_settings",
        json={"p_shop_id": str(uuid.uuid4()), "p_queue_limit": 5},
        headers=auth_headers(owner),
    )
    assert response.status_code == 403

    response = await client.post("/api/v1/rpc/nope", json={}, headers=auth_headers(owner))
    assert response.status_code == 404


async def test_rpc_update_owner_name(client, owner):
    response = await client.post(
        "/api/v1/rpc/update_owner_name", json={"new_owner_name": "Rahim Uddin"}, headers=auth_headers(owner)
    )
    assert response.json()["full_name"] == "Rahim Uddin"


async def test_analytics_export_is_csv(client, owner):
    response = await client.get("/api/v1/analytics/export", params={"period": "month"}, headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "shop-analytics-30-days.csv" in response.headers["content-disposition"]
    assert response.text.splitlines()[1].startswith("Total Revenue,৳0.00")


async def test_navigation_resolve(client, owner):
    response = await client.get("/api/v1/navigation/resolve", params={"path": "/portal"}, headers=auth_headers(owner))
    assert response.json()["redirect"] == "/print-queue"

    response = await client.get("/api/v1/navigation/resolve", params={"path": "/portal"})
    assert response.json()["redirect"] == "/auth"


async def test_cleanup_stats_endpoint(client, owner):
    response = await client.get("/api/v1/cleanup/stats", headers=auth_headers(owner))
    assert response.json() == {"total_files": 0, "expired_files": 0, "expiring_files": 0, "last_run": None}
