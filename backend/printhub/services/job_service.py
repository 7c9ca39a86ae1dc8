"""
Print Job Service for PrintHub

Handles the print job lifecycle:
pending -> queued -> printing -> completed, with cancelled reachable from any
non-terminal state. Every write is published on the owner's realtime channel
so open print queues stay current.
"""

import re
import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from printhub.core.config import get_settings
from printhub.core.exceptions import (
    InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError, FileExpiredError
)
from printhub.core.security import CurrentUser
from printhub.models import PrintJob, PrintJobStatus, Profile
from printhub.services import expiry_service, pricing_service, realtime_service, storage_service
import logging

settings = get_settings()
logger = logging.getLogger(__name__)

TABLE = "print_jobs"

ACTIVE_STATUSES = {PrintJobStatus.PENDING, PrintJobStatus.QUEUED, PrintJobStatus.PRINTING}
TERMINAL_STATUSES = {PrintJobStatus.COMPLETED, PrintJobStatus.CANCELLED}

TRANSITIONS: Dict[PrintJobStatus, set] = {
    PrintJobStatus.PENDING: {
        PrintJobStatus.QUEUED, PrintJobStatus.PRINTING,
        PrintJobStatus.COMPLETED, PrintJobStatus.CANCELLED,
    },
    PrintJobStatus.QUEUED: {
        PrintJobStatus.PRINTING, PrintJobStatus.COMPLETED, PrintJobStatus.CANCELLED,
    },
    PrintJobStatus.PRINTING: {PrintJobStatus.COMPLETED, PrintJobStatus.CANCELLED},
    PrintJobStatus.COMPLETED: set(),
    PrintJobStatus.CANCELLED: set(),
}

DEFAULT_PRINT_SETTINGS = {
    "paperSize": "A4",
    "colorType": "blackwhite",
    "paperQuality": "standard",
    "copies": 1,
}


# =============================================================================
# STATE MACHINE
# =============================================================================

def parse_status(value) -> PrintJobStatus:
    try:
        return PrintJobStatus(str(value).lower())
    except ValueError:
        raise ValidationError(f"Invalid status: {value}", field="status")


def can_transition(current: PrintJobStatus, new_status: PrintJobStatus) -> bool:
    return new_status in TRANSITIONS.get(current, set())


def apply_status(job: PrintJob, new_status: PrintJobStatus, now: Optional[datetime] = None) -> PrintJob:
    """
    Move a job to a new status and stamp the matching timestamp column.

    Setting the status a job already has is a no-op. Anything not listed in
    TRANSITIONS raises InvalidTransitionError.
    """
    now = now or datetime.utcnow()
    current = PrintJobStatus(job.status)

    if current == new_status:
        return job
    if not can_transition(current, new_status):
        raise InvalidTransitionError(current.value, new_status.value)

    job.status = new_status
    if new_status == PrintJobStatus.PRINTING:
        job.started_at = now
    elif new_status == PrintJobStatus.COMPLETED:
        job.completed_at = now
        if job.started_at:
            job.actual_duration = max(1, round((now - job.started_at).total_seconds() / 60))
    elif new_status == PrintJobStatus.CANCELLED:
        job.cancelled_at = now
    return job


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def job_to_dict(job: PrintJob, customer_phone: Optional[str] = None) -> dict:
    status = job.status.value if isinstance(job.status, PrintJobStatus) else job.status
    data = {
        "id": str(job.id),
        "shop_owner_id": str(job.shop_owner_id),
        "customer_id": str(job.customer_id) if job.customer_id else None,
        "customer_name": job.customer_name,
        "customer_email": job.customer_email,
        "customer_phone": customer_phone,
        "file_name": job.file_name,
        "file_url": job.file_url,
        "file_size": job.file_size,
        "pages": job.pages,
        "copies": job.copies,
        "color_pages": job.color_pages,
        "print_settings": job.print_settings,
        "total_cost": float(job.total_cost or 0),
        "status": status,
        "priority": job.priority,
        "estimated_duration": job.estimated_duration,
        "actual_duration": job.actual_duration,
        "notes": job.notes,
        "submitted_at": _iso(job.submitted_at),
        "started_at": _iso(job.started_at),
        "completed_at": _iso(job.completed_at),
        "cancelled_at": _iso(job.cancelled_at),
        "created_at": _iso(job.created_at),
        "updated_at": _iso(job.updated_at),
    }
    if job.created_at:
        data["expiry"] = expiry_service.get_time_until_expiry(job.created_at)
    return data


async def _publish(event_type: str, job: PrintJob, old: Optional[dict] = None):
    await realtime_service.publish_change(
        event_type, TABLE, job.shop_owner_id, new=job_to_dict(job), old=old
    )


# =============================================================================
# QUERIES
# =============================================================================

async def _customer_phones(db: AsyncSession, customer_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, str]:
    customer_ids = list({cid for cid in customer_ids if cid})
    if not customer_ids:
        return {}
    try:
        result = await db.execute(
            select(Profile.user_id, Profile.phone).where(Profile.user_id.in_(customer_ids))
        )
        return {row.user_id: row.phone for row in result if row.phone}
    except Exception as e:
        # Phones only feed the search box; the queue still loads without them
        logger.warning(f"Failed to fetch customer phones: {e}")
        return {}


async def list_shop_jobs(
    db: AsyncSession,
    shop_owner_id: uuid.UUID,
    status: Optional[PrintJobStatus] = None
) -> List[dict]:
    """Shop queue, newest submission first, with customer phone numbers attached."""
    query = select(PrintJob).where(PrintJob.shop_owner_id == shop_owner_id)
    if status:
        query = query.where(PrintJob.status == status)
    query = query.order_by(PrintJob.submitted_at.desc())

    result = await db.execute(query)
    jobs = result.scalars().all()
    phones = await _customer_phones(db, (job.customer_id for job in jobs))
    return [job_to_dict(job, phones.get(job.customer_id)) for job in jobs]


async def list_customer_jobs(
    db: AsyncSession,
    customer_id: uuid.UUID,
    status: Optional[PrintJobStatus] = None
) -> List[dict]:
    query = select(PrintJob).where(PrintJob.customer_id == customer_id)
    if status:
        query = query.where(PrintJob.status == status)
    result = await db.execute(query.order_by(PrintJob.created_at.desc()))
    return [job_to_dict(job) for job in result.scalars().all()]


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> PrintJob:
    result = await db.execute(select(PrintJob).where(PrintJob.id == job_id))
    job = result.scalars().first()
    if not job:
        raise NotFoundError("Print job", job_id)
    return job


def _check_access(job: PrintJob, user: CurrentUser, allow_customer: bool = False):
    if job.shop_owner_id == user.id:
        return
    if allow_customer and job.customer_id == user.id:
        return
    raise PermissionDeniedError("You do not have access to this print job")


async def get_job_for_user(db: AsyncSession, job_id: uuid.UUID, user: CurrentUser) -> PrintJob:
    job = await get_job(db, job_id)
    _check_access(job, user, allow_customer=True)
    return job


# =============================================================================
# TRANSITIONS
# =============================================================================

async def update_job_status(
    db: AsyncSession,
    job_id: uuid.UUID,
    new_status: PrintJobStatus,
    user: CurrentUser
) -> PrintJob:
    job = await get_job(db, job_id)
    _check_access(job, user)

    old_status = PrintJobStatus(job.status)
    old = {"id": str(job.id), "status": old_status.value}
    apply_status(job, new_status)

    await db.commit()
    await db.refresh(job)

    logger.info(f"Job {job_id}: {old_status.value} -> {new_status.value}")
    await _publish(realtime_service.UPDATE, job, old=old)
    return job


async def cancel_job(db: AsyncSession, job_id: uuid.UUID, user: CurrentUser) -> PrintJob:
    """Shop owners cancel anything active; customers only their own pending jobs."""
    job = await get_job(db, job_id)
    _check_access(job, user, allow_customer=True)

    if job.shop_owner_id != user.id and PrintJobStatus(job.status) != PrintJobStatus.PENDING:
        raise PermissionDeniedError("Only pending jobs can be cancelled by the customer")

    old = {"id": str(job.id), "status": PrintJobStatus(job.status).value}
    apply_status(job, PrintJobStatus.CANCELLED)
    await db.commit()
    await db.refresh(job)

    logger.info(f"Job {job_id} cancelled by {user.id}")
    await _publish(realtime_service.UPDATE, job, old=old)
    return job


def file_access_url(job: PrintJob, now: Optional[datetime] = None) -> str:
    """
    Fresh signed URL for a job's document.

    Raises FileExpiredError once the retention window has passed.
    """
    if job.created_at and expiry_service.is_file_expired(job.created_at, now):
        raise FileExpiredError(job.file_name)

    if job.customer_id and job.file_name:
        return storage_service.create_signed_url(
            settings.UPLOADS_BUCKET,
            storage_service.job_object_path(job.customer_id, job.file_name),
        )
    if job.file_url:
        return job.file_url
    raise NotFoundError("File", job.file_name)


async def direct_print(db: AsyncSession, job_id: uuid.UUID, user: CurrentUser) -> dict:
    """
    Hand the document to the shop for printing.

    The job is marked completed as soon as the file URL is issued; the shop
    confirms the physical print outside the system.
    """
    job = await get_job(db, job_id)
    _check_access(job, user)

    file_url = file_access_url(job)
    old = {"id": str(job.id), "status": PrintJobStatus(job.status).value}
    apply_status(job, PrintJobStatus.COMPLETED)
    await db.commit()
    await db.refresh(job)

    logger.info(f"Direct print issued for job {job_id}")
    await _publish(realtime_service.UPDATE, job, old=old)
    return {"job": job_to_dict(job), "file_url": file_url}


async def bulk_print(db: AsyncSession, job_ids: List[uuid.UUID], user: CurrentUser) -> dict:
    """
    Direct-print several jobs. Each job succeeds or fails on its own.

    Returns:
        {"succeeded": int, "failed": int, "results": [...], "errors": [...]}
    """
    if not job_ids:
        raise ValidationError("No jobs selected", field="job_ids")

    results, errors = [], []
    for job_id in job_ids:
        try:
            results.append(await direct_print(db, job_id, user))
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to print job {job_id}: {e}")
            errors.append({"job_id": str(job_id), "error": getattr(e, "message", str(e))})

    logger.info(f"Bulk print: {len(results)} succeeded, {len(errors)} failed")
    return {
        "succeeded": len(results),
        "failed": len(errors),
        "results": results,
        "errors": errors,
    }


# =============================================================================
# SUBMISSION
# =============================================================================

def normalize_print_settings(print_settings: Optional[dict]) -> dict:
    merged = {**DEFAULT_PRINT_SETTINGS, **(print_settings or {})}
    try:
        merged["copies"] = int(merged.get("copies") or 1)
    except (TypeError, ValueError):
        raise ValidationError("Copies must be a number", field="copies")
    if merged["copies"] < 1:
        raise ValidationError("Copies must be at least 1", field="copies")
    if merged["colorType"] not in ("color", "blackwhite"):
        raise ValidationError(f"Invalid color type: {merged['colorType']}", field="colorType")
    if merged["paperQuality"] not in ("standard", "premium"):
        raise ValidationError(f"Invalid paper quality: {merged['paperQuality']}", field="paperQuality")
    return merged


def build_print_job(
    shop_owner_id: uuid.UUID,
    customer_id: Optional[uuid.UUID],
    file: dict,
    print_settings: dict,
    rules: List[pricing_service.PricingRuleData],
    customer_name: Optional[str] = None,
    customer_email: Optional[str] = None,
    notes: Optional[str] = None,
) -> PrintJob:
    """Unsaved PrintJob for one uploaded file, priced with the shop's rules."""
    if not file.get("name"):
        raise ValidationError("Each file needs a name", field="files")

    pages = int(file.get("pages") or 1)
    details = pricing_service.PrintJobDetails(
        pages=pages,
        copies=print_settings["copies"],
        color_type=print_settings["colorType"],
        paper_quality=print_settings["paperQuality"],
    )
    cost = pricing_service.calculate_multiple_files_cost([{"pages": pages}], details, rules)

    return PrintJob(
        id=uuid.uuid4(),
        shop_owner_id=shop_owner_id,
        customer_id=customer_id,
        customer_name=customer_name,
        customer_email=customer_email,
        file_name=file["name"],
        file_url=file.get("url"),
        file_size=file.get("size"),
        pages=pages,
        copies=print_settings["copies"],
        color_pages=pages if print_settings["colorType"] == "color" else 0,
        total_cost=Decimal(str(cost)),
        status=PrintJobStatus.PENDING,
        print_settings=print_settings,
        notes=notes,
        submitted_at=datetime.utcnow(),
    )


def describe_settings(print_settings: dict) -> str:
    color = "Color" if print_settings.get("colorType") == "color" else "B&W"
    return f"{print_settings.get('paperSize', 'A4')}, {color}"


async def create_print_jobs(
    db: AsyncSession,
    customer: CurrentUser,
    shop_owner_id: uuid.UUID,
    files: List[dict],
    print_settings: Optional[dict] = None,
    customer_name: Optional[str] = None,
    customer_email: Optional[str] = None,
    notes: Optional[str] = None,
) -> List[PrintJob]:
    """Submit uploaded files straight into a shop's queue, one job per file."""
    if not files:
        raise ValidationError("Please upload at least one file", field="files")

    print_settings = normalize_print_settings(print_settings)
    rules = await pricing_service.get_pricing_rules(db, shop_owner_id)

    jobs = [
        build_print_job(
            shop_owner_id,
            customer.id,
            f,
            print_settings,
            rules,
            customer_name=customer_name or customer.full_name or None,
            customer_email=customer_email or customer.email,
            notes=notes or describe_settings(print_settings),
        )
        for f in files
    ]
    db.add_all(jobs)
    await db.commit()

    for job in jobs:
        await db.refresh(job)
        await _publish(realtime_service.INSERT, job)

    logger.info(f"Created {len(jobs)} print jobs for shop {shop_owner_id}")
    return jobs


# =============================================================================
# QUEUE VIEW HELPERS
# =============================================================================

_PHONE_SUFFIX = re.compile(r"^\d{2}$")


def filter_jobs(jobs: List[dict], query: str = "", tab: str = "all") -> List[dict]:
    """
    Search box + status tab of the print queue.

    Matches file name, customer name or email, the 6-character id prefix,
    notes, or, when the query is exactly two digits, the last two digits of
    the customer's phone.
    """
    q = (query or "").strip()
    needle = q.lower()
    phone_search = bool(_PHONE_SUFFIX.match(q))

    def matches(job: dict) -> bool:
        if not needle:
            return True
        phone = job.get("customer_phone") or ""
        if phone_search and phone and phone[-2:] == q:
            return True
        return any(
            needle in (value or "").lower()
            for value in (
                job.get("file_name"),
                job.get("customer_name"),
                job.get("customer_email"),
                (job.get("id") or "")[:6],
                job.get("notes"),
            )
        )

    return [
        job for job in jobs
        if matches(job) and (tab in (None, "", "all") or job.get("status") == tab)
    ]


def queue_stats(jobs: Iterable[PrintJob], today: Optional[date] = None) -> dict:
    """Counters shown above the print queue."""
    today = today or datetime.utcnow().date()
    jobs = list(jobs)

    def status_of(job):
        return PrintJobStatus(job.status)

    def pages_of(job):
        return (job.pages or 1) * (job.copies or 1)

    active = [j for j in jobs if status_of(j) in ACTIVE_STATUSES]
    completed_today = [
        j for j in jobs
        if status_of(j) == PrintJobStatus.COMPLETED and j.completed_at and j.completed_at.date() == today
    ]
    timed = [j for j in jobs if status_of(j) == PrintJobStatus.COMPLETED and j.actual_duration]

    return {
        "total_jobs": len(jobs),
        "active_jobs": len(active),
        "queue_length": sum(1 for j in jobs if status_of(j) == PrintJobStatus.QUEUED),
        "completed_today": len(completed_today),
        "pages_today": sum(pages_of(j) for j in completed_today),
        "active_pages": sum(pages_of(j) for j in active),
        "revenue_today": round(sum(float(j.total_cost or 0) for j in completed_today), 2),
        "average_duration": round(sum(j.actual_duration for j in timed) / len(timed), 1) if timed else 0,
    }


async def get_queue_stats(db: AsyncSession, shop_owner_id: uuid.UUID) -> dict:
    result = await db.execute(select(PrintJob).where(PrintJob.shop_owner_id == shop_owner_id))
    return queue_stats(result.scalars().all())
