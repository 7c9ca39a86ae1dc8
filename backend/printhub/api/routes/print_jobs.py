"""
Print Jobs API for PrintHub

Endpoints used by:
1. Shop console / print queue page - list, transition, direct print
2. Customers - submit files to a shop, follow their own jobs
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import logging

from printhub.core.database import get_db
from printhub.core.exceptions import PrintHubError
from printhub.core.security import CurrentUser, get_current_user, require_shop_owner
from printhub.schemas import BulkPrintRequest, CreatePrintJobsRequest
from printhub.services import job_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_print_jobs(
    q: Optional[str] = Query(None, description="File, customer, id prefix, notes or last 2 phone digits"),
    tab: str = Query("all"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """
    The shop's print queue, newest submission first.
    """
    try:
        jobs = await job_service.list_shop_jobs(db, user.id)
        filtered = job_service.filter_jobs(jobs, q or "", tab)
        return {"jobs": filtered, "total": len(filtered)}

    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error listing jobs for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/stats")
async def get_queue_stats(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    try:
        return await job_service.get_queue_stats(db, user.id)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error computing queue stats for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/mine")
async def list_my_print_jobs(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    """Customer print history."""
    try:
        status = job_service.parse_status(status_filter) if status_filter and status_filter != "all" else None
        jobs = await job_service.list_customer_jobs(db, user.id, status)
        return {"jobs": jobs, "total": len(jobs)}
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error listing customer jobs for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("", status_code=201)
async def submit_print_jobs(
    body: CreatePrintJobsRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    """
    Send uploaded files straight to a shop's queue, one job per file.
    """
    try:
        jobs = await job_service.create_print_jobs(
            db,
            user,
            body.shop_owner_id,
            [f.model_dump() for f in body.files],
            body.print_settings.model_dump(),
            customer_name=body.customer_name,
            customer_email=body.customer_email,
            notes=body.notes,
        )
        return {
            "jobs": [job_service.job_to_dict(job) for job in jobs],
            "total_cost": round(sum(float(job.total_cost) for job in jobs), 2),
        }
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error creating print jobs: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/bulk-print")
async def bulk_print(
    body: BulkPrintRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """Direct-print several jobs; reports how many succeeded and failed."""
    try:
        return await job_service.bulk_print(db, body.job_ids, user)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error in bulk print: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{job_id}")
async def get_print_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    try:
        job = await job_service.get_job_for_user(db, job_id, user)
        return job_service.job_to_dict(job)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error fetching job {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put("/{job_id}/status")
async def update_print_job_status(
    job_id: UUID,
    status_update: str = Query(..., alias="status"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """
    Move a job through the queue:
    - queued: accepted
    - printing: on the printer (stamps started_at)
    - completed / cancelled: terminal
    """
    try:
        new_status = job_service.parse_status(status_update)
        job = await job_service.update_job_status(db, job_id, new_status, user)
        return {"status": "success", "job": job_service.job_to_dict(job)}

    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error updating job {job_id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{job_id}/cancel")
async def cancel_print_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    try:
        job = await job_service.cancel_job(db, job_id, user)
        return {"status": "success", "job": job_service.job_to_dict(job)}
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error cancelling job {job_id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{job_id}/direct-print")
async def direct_print(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_shop_owner)
):
    """
    Issue a signed file URL for printing and mark the job completed.
    """
    try:
        return await job_service.direct_print(db, job_id, user)
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error printing job {job_id}: {e}", exc_info=True)
        await db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{job_id}/file")
async def get_print_job_file(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user)
):
    """Signed URL for viewing the document. 410 once the file has expired."""
    try:
        job = await job_service.get_job_for_user(db, job_id, user)
        return {"file_name": job.file_name, "file_url": job_service.file_access_url(job)}
    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error opening file for job {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")
