"""
Storage Service for PrintHub

Bucket-style object storage on the local filesystem:
- user-uploads/<customer_id>/<file>  documents submitted for printing
- avatars/<user_id>/<file>           profile pictures

Objects are read through time-limited signed URLs served by the /files route.
"""

import os
import re
import time
import hmac
import hashlib
import uuid
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import quote

import aiofiles
import aiofiles.os

from printhub.core.config import get_settings
from printhub.core.exceptions import ValidationError, NotFoundError, PermissionDeniedError
import logging

settings = get_settings()
logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}
AVATAR_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


# =============================================================================
# PATHS
# =============================================================================

def clean_object_path(path: str) -> str:
    """Normalize an object key and reject anything that could leave the bucket."""
    safe_path = PurePosixPath(path.replace("\\", "/")).as_posix().lstrip("./")
    if not safe_path or ".." in safe_path.split("/") or safe_path.startswith("/"):
        raise ValidationError("Invalid file path", field="path")
    return safe_path


def resolve_path(bucket: str, path: str) -> str:
    """Absolute filesystem path for an object, guaranteed inside the bucket."""
    if bucket not in (settings.UPLOADS_BUCKET, settings.AVATAR_BUCKET):
        raise NotFoundError("Bucket", bucket)

    bucket_root = os.path.normpath(os.path.abspath(os.path.join(settings.FILE_STORAGE_PATH, bucket)))
    full_path = os.path.normpath(os.path.join(bucket_root, clean_object_path(path)))
    if not full_path.startswith(bucket_root + os.sep):
        logger.warning(f"Path escape attempt: {bucket}/{path}")
        raise ValidationError("Invalid file path", field="path")
    return full_path


def job_object_path(customer_id, file_name: str) -> str:
    return f"{customer_id}/{file_name}"


def get_content_type(file_path: str) -> str:
    ext = os.path.splitext(file_path)[1].lower()
    return ALLOWED_CONTENT_TYPES.get(ext, "application/octet-stream")


# =============================================================================
# UPLOAD / DELETE
# =============================================================================

def validate_upload(filename: str, size: int, max_bytes: Optional[int] = None) -> str:
    """
    Client-facing upload checks: size limit and supported document types.

    Returns:
        Lower-cased file extension
    """
    max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES
    ext = os.path.splitext(filename or "")[1].lower()

    if size > max_bytes:
        raise ValidationError(
            f"{filename} exceeds the {max_bytes // (1024 * 1024)}MB limit", field="file"
        )
    if ext not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(f"{filename} is not a supported file type", field="file")
    return ext


def generate_object_name(filename: str) -> str:
    """'My Notes.pdf' -> '1718000000000-My_Notes.pdf' (unique per upload, still readable)"""
    base = os.path.basename((filename or "").replace("\\", "/")).strip().replace(" ", "_")
    if not base or base.startswith("."):
        base = f"{uuid.uuid4().hex[:9]}{os.path.splitext(base)[1]}"
    return f"{int(time.time() * 1000)}-{base}"


_PDF_PAGE = re.compile(rb"/Type\s*/Page(?![a-zA-Z])")


def estimate_pages(ext: str, content: bytes) -> int:
    """Page objects in a PDF; every other supported type counts as one page."""
    if ext == ".pdf":
        return max(1, len(_PDF_PAGE.findall(content)))
    return 1


async def upload(bucket: str, path: str, content: bytes) -> str:
    """Write an object, creating parent folders. Returns the object key."""
    full_path = resolve_path(bucket, path)
    os.makedirs(os.path.dirname(full_path), exist_ok=True)

    async with aiofiles.open(full_path, mode="wb") as f:
        await f.write(content)

    logger.info(f"Stored {bucket}/{path} ({len(content)} bytes)")
    return clean_object_path(path)


async def remove(bucket: str, path: str):
    full_path = resolve_path(bucket, path)
    if not os.path.isfile(full_path):
        raise NotFoundError("Object", f"{bucket}/{path}")
    await aiofiles.os.remove(full_path)
    logger.info(f"Removed {bucket}/{path}")


# =============================================================================
# SIGNED URLS
# =============================================================================

def _signature(bucket: str, path: str, expires: int) -> str:
    message = f"{bucket}/{path}:{expires}".encode()
    return hmac.new(settings.STORAGE_SIGNING_KEY.encode(), message, hashlib.sha256).hexdigest()


def create_signed_url(bucket: str, path: str, expires_in: Optional[int] = None) -> str:
    path = clean_object_path(path)
    expires = int(time.time()) + (expires_in or settings.SIGNED_URL_TTL_SECONDS)
    signature = _signature(bucket, path, expires)
    return (
        f"{settings.BACKEND_PUBLIC_URL}/files/{bucket}/{quote(path)}"
        f"?expires={expires}&signature={signature}"
    )


def verify_signature(bucket: str, path: str, expires: int, signature: str, now: Optional[float] = None):
    now = now if now is not None else time.time()
    expected = _signature(bucket, clean_object_path(path), expires)
    if not hmac.compare_digest(expected, signature or ""):
        raise PermissionDeniedError("Invalid file signature")
    if expires < now:
        raise PermissionDeniedError("Signed URL has expired")
