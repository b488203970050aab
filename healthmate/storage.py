# healthmate/storage.py
import logging
import os
import secrets
import time
from typing import Optional

from fastapi import UploadFile

from . import config
from .errors import ValidationError, PayloadTooLarge

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads/"


def is_allowed_type(content_type: Optional[str]) -> bool:
    ct = (content_type or "").lower()
    return ct.startswith("image/") or ct == "application/pdf"


def _unique_name(prefix: str, original: str) -> str:
    ext = os.path.splitext(original or "")[1].lower()
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def path_for(url: str) -> str:
    """Map a public /uploads/... URL back to its location under UPLOAD_DIR."""
    rel = url[len(URL_PREFIX):] if url.startswith(URL_PREFIX) else url.lstrip("/")
    return os.path.join(config.UPLOAD_DIR, *rel.split("/"))


async def save_upload(upload: UploadFile, subdir: str, max_bytes: int, prefix: str) -> str:
    if not is_allowed_type(upload.content_type):
        raise ValidationError("Only image files (JPG, PNG) and PDF files are allowed")
    content = await upload.read(max_bytes + 1)
    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > max_bytes:
        raise PayloadTooLarge(f"File too large (max {max_bytes // (1024 * 1024)}MB)")

    directory = os.path.join(config.UPLOAD_DIR, subdir)
    os.makedirs(directory, exist_ok=True)
    name = _unique_name(prefix, upload.filename)
    with open(os.path.join(directory, name), "wb") as f:
        f.write(content)
    return f"{URL_PREFIX}{subdir}/{name}"


def remove_file(url: Optional[str]) -> None:
    if not url:
        return
    path = path_for(url)
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Failed to delete file {path}: {e}")
