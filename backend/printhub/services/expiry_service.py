"""
File Expiry Service for PrintHub

Uploaded documents are kept for a fixed retention window (24 hours by
default). The same predicate drives the background sweep, the file access
checks and the countdown badges returned to clients, so all three always
agree on what "expired" means.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from printhub.core.config import get_settings
from printhub.core.database import AsyncSessionLocal
from printhub.core.redis_client import get_redis_client
from printhub.models import PrintJob
from printhub.services import realtime_service, storage_service

settings = get_settings()
logger = logging.getLogger(__name__)

LAST_RUN_KEY = "expiry_sweep:last_run"
EXPIRING_SOON_HOURS = 2


def retention() -> timedelta:
    return timedelta(hours=settings.FILE_RETENTION_HOURS)


# =============================================================================
# PREDICATES
# =============================================================================

def expires_at(created_at: datetime) -> datetime:
    return created_at + retention()


def is_file_expired(created_at: datetime, now: Optional[datetime] = None) -> bool:
    """True once the full retention window has elapsed (boundary inclusive)."""
    now = now or datetime.utcnow()
    return now - created_at >= retention()


def get_time_until_expiry(created_at: datetime, now: Optional[datetime] = None) -> dict:
    """
    Countdown for UI badges.

    Returns:
        {"expired": bool, "time_left": "5h 12m" | "42m" | "Expired", "hours_left": int}
    """
    now = now or datetime.utcnow()
    time_left = expires_at(created_at) - now
    seconds_left = time_left.total_seconds()

    if seconds_left <= 0:
        return {"expired": True, "time_left": "Expired", "hours_left": 0}

    hours_left = int(seconds_left // 3600)
    minutes_left = int((seconds_left % 3600) // 60)

    if hours_left > 0:
        label = f"{hours_left}h {minutes_left}m"
    else:
        label = f"{minutes_left}m"

    return {"expired": False, "time_left": label, "hours_left": max(0, hours_left)}


def describe_file(job: PrintJob, now: Optional[datetime] = None) -> dict:
    return {
        "id": str(job.id),
        "customer_id": str(job.customer_id) if job.customer_id else None,
        "file_name": job.file_name,
        "file_url": job.file_url,
        "created_at": job.created_at.isoformat(),
        "expires_at": expires_at(job.created_at).isoformat(),
        "time_until_expiry": get_time_until_expiry(job.created_at, now)["time_left"],
    }


# =============================================================================
# QUERIES
# =============================================================================

async def get_expired_files(db: AsyncSession, now: Optional[datetime] = None) -> List[PrintJob]:
    now = now or datetime.utcnow()
    result = await db.execute(
        select(PrintJob).where(PrintJob.created_at <= now - retention())
    )
    return list(result.scalars().all())


async def get_expiring_files(db: AsyncSession, now: Optional[datetime] = None) -> List[PrintJob]:
    """Files that will expire within the next two hours."""
    now = now or datetime.utcnow()
    cutoff = now - retention()
    soon = now - (retention() - timedelta(hours=EXPIRING_SOON_HOURS))
    result = await db.execute(
        select(PrintJob).where(PrintJob.created_at > cutoff, PrintJob.created_at <= soon)
    )
    return list(result.scalars().all())


async def get_last_run() -> Optional[str]:
    try:
        return await get_redis_client().get(LAST_RUN_KEY)
    except Exception as e:
        logger.warning(f"Could not read sweep marker: {e}")
        return None


async def _record_last_run(when: datetime):
    try:
        await get_redis_client().set(LAST_RUN_KEY, when.isoformat())
    except Exception as e:
        logger.warning(f"Could not record sweep marker: {e}")


async def get_cleanup_stats(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    total = (await db.execute(select(func.count(PrintJob.id)))).scalar() or 0
    expired = await get_expired_files(db, now)
    expiring = await get_expiring_files(db, now)
    return {
        "total_files": total,
        "expired_files": len(expired),
        "expiring_files": len(expiring),
        "last_run": await get_last_run(),
    }


# =============================================================================
# SWEEP
# =============================================================================

async def _delete_storage_object(job: PrintJob):
    if not (job.customer_id and job.file_name):
        return
    path = storage_service.job_object_path(job.customer_id, job.file_name)
    try:
        await storage_service.remove(settings.UPLOADS_BUCKET, path)
    except Exception as e:
        # Row deletion still goes ahead
        logger.warning(f"Storage deletion warning for {path}: {e}")


async def perform_cleanup(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """
    Delete every expired print job and its stored file.

    Each row is deleted on its own; failures are collected and the sweep
    moves on to the next row.

    Returns:
        {"deleted_count": int, "errors": [str]}
    """
    now = now or datetime.utcnow()
    errors: List[str] = []
    deleted_count = 0

    logger.info("Starting file cleanup process...")
    try:
        expired = await get_expired_files(db, now)
    except Exception as e:
        logger.error(f"Cleanup process failed: {e}", exc_info=True)
        return {"deleted_count": 0, "errors": [f"Cleanup process failed: {e}"]}

    logger.info(f"Found {len(expired)} expired files to clean up")

    for job in expired:
        job_id, owner_id, file_name = job.id, job.shop_owner_id, job.file_name
        try:
            await _delete_storage_object(job)
            await db.delete(job)
            await db.commit()
            deleted_count += 1
            logger.info(f"Deleted: {file_name} ({job_id})")
            await realtime_service.publish_change(
                realtime_service.DELETE, "print_jobs", owner_id, old={"id": str(job_id)}
            )
        except Exception as e:
            await db.rollback()
            message = f"Failed to delete {file_name}: {e}"
            errors.append(message)
            logger.error(message)

    await _record_last_run(now)
    logger.info(f"Cleanup completed: {deleted_count} files deleted, {len(errors)} errors")
    return {"deleted_count": deleted_count, "errors": errors}


class ExpirySweeper:
    """
    Background task running the cleanup at startup and then on a fixed
    interval for the life of the process.
    """

    def __init__(self, interval_minutes: Optional[int] = None, session_factory=None):
        self.interval_minutes = interval_minutes or settings.EXPIRY_SWEEP_INTERVAL_MINUTES
        self.session_factory = session_factory or AsyncSessionLocal
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            logger.info("Cleanup sweeper already running")
            return
        logger.info(f"Starting automatic file cleanup every {self.interval_minutes} minutes")
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Automatic file cleanup stopped")

    async def run_once(self) -> dict:
        async with self.session_factory() as db:
            return await perform_cleanup(db)

    async def _loop(self):
        while True:
            try:
                result = await self.run_once()
                if result["errors"]:
                    logger.warning(f"Scheduled cleanup finished with {len(result['errors'])} errors")
            except Exception as e:
                logger.error(f"Scheduled cleanup failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_minutes * 60)


sweeper = ExpirySweeper()
