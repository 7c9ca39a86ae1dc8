"""
File Serving Routes for PrintHub

Serves stored objects behind signed URLs for:
1. Shop owners opening or printing a customer's document
2. Avatars shown in headers and customer lists
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import os
import uuid
import logging

from printhub.core.config import get_settings
from printhub.core.database import get_db
from printhub.core.exceptions import FileExpiredError, PrintHubError
from printhub.models import PrintJob
from printhub.services import expiry_service, storage_service

router = APIRouter()
logger = logging.getLogger(__name__)
settings = get_settings()


async def _check_not_expired(db: AsyncSession, path: str):
    """Uploads past the retention window answer 410 even if the sweep has not run yet."""
    customer, _, file_name = path.partition("/")
    try:
        customer_id = uuid.UUID(customer)
    except ValueError:
        return

    result = await db.execute(
        select(PrintJob.created_at).where(PrintJob.customer_id == customer_id, PrintJob.file_name == file_name)
    )
    created_at = result.scalars().first()
    if created_at and expiry_service.is_file_expired(created_at):
        raise FileExpiredError(file_name)


@router.get("/{bucket}/{file_path:path}")
async def serve_file(
    bucket: str,
    file_path: str = Path(..., description="Object key inside the bucket"),
    expires: int = Query(...),
    signature: str = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """
    Serve a stored object.

    Args:
        bucket: user-uploads or avatars
        file_path: Object key, e.g. <customer_id>/<file name>
        expires, signature: From create_signed_url
    """
    try:
        storage_service.verify_signature(bucket, file_path, expires, signature)
        full_path = storage_service.resolve_path(bucket, file_path)

        if bucket == settings.UPLOADS_BUCKET:
            await _check_not_expired(db, storage_service.clean_object_path(file_path))

        if not os.path.isfile(full_path):
            logger.warning(f"File not found: {bucket}/{file_path}")
            raise HTTPException(status_code=404, detail="File not found")

        logger.info(f"Serving file: {bucket}/{file_path}")
        return FileResponse(
            path=full_path,
            media_type=storage_service.get_content_type(full_path),
            filename=os.path.basename(full_path)
        )

    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Error serving file {bucket}/{file_path}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")
