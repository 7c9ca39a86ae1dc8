"""
Document upload for PrintHub

Files land in the uploads bucket under the customer's folder and are kept for
the retention window only.
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from typing import List
import logging

from printhub.core.config import get_settings
from printhub.core.exceptions import PrintHubError, ValidationError
from printhub.core.security import CurrentUser, get_current_user
from printhub.services import storage_service

router = APIRouter()
logger = logging.getLogger(__name__)
settings = get_settings()

CHUNK_SIZE = 1024 * 1024


async def _read_within_limit(file: UploadFile) -> bytes:
    """Read an upload in chunks, stopping as soon as it passes the size limit."""
    max_bytes = settings.MAX_UPLOAD_BYTES
    storage_service.validate_upload(file.filename, file.size or 0, max_bytes)

    content = bytearray()
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        content.extend(chunk)
        if len(content) > max_bytes:
            storage_service.validate_upload(file.filename, len(content), max_bytes)
    return bytes(content)


@router.post("", status_code=201)
async def upload_documents(
    files: List[UploadFile] = File(...),
    user: CurrentUser = Depends(get_current_user)
):
    """
    Store documents for printing.

    Returns one entry per file with the stored name, a signed URL and a page
    estimate, ready to pass to print job submission or booking.
    """
    if not files:
        raise ValidationError("Please select at least one file", field="files")

    uploaded = []
    try:
        for file in files:
            content = await _read_within_limit(file)
            ext = storage_service.validate_upload(file.filename, len(content))
            object_name = storage_service.generate_object_name(file.filename)
            path = storage_service.job_object_path(user.id, object_name)

            await storage_service.upload(settings.UPLOADS_BUCKET, path, content)
            uploaded.append({
                "name": object_name,
                "original_name": file.filename,
                "path": path,
                "url": storage_service.create_signed_url(settings.UPLOADS_BUCKET, path),
                "size": len(content),
                "pages": storage_service.estimate_pages(ext, content),
            })

        logger.info(f"User {user.id} uploaded {len(uploaded)} files")
        return {"files": uploaded}

    except (HTTPException, PrintHubError):
        raise
    except Exception as e:
        logger.error(f"Upload failed for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Upload failed")
