"""Storage for user-supplied attachments."""

import asyncio
import re
import uuid
from pathlib import Path

from fastapi import UploadFile

from helpdesk.core import settings
from helpdesk.core.logging import get_logger

logger = get_logger("uploads")

UPLOAD_URL_PREFIX = "/uploads"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class UploadTooLargeError(Exception):
    pass


def _safe_filename(filename: str | None) -> str:
    name = Path(filename or "file").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._") or "file"
    return name[-100:]


async def save_upload(upload: UploadFile, subdir: str) -> str:
    """Write an uploaded file under the upload directory.

    Returns the public URL path of the stored file.

    Raises:
        UploadTooLargeError: If the file exceeds the configured size limit.
    """
    content = await upload.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise UploadTooLargeError(
            f"File exceeds the maximum size of {settings.max_upload_bytes} bytes"
        )

    stored_name = f"{uuid.uuid4().hex}_{_safe_filename(upload.filename)}"
    target_dir = Path(settings.upload_dir) / subdir
    target = target_dir / stored_name

    def _write() -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    await asyncio.to_thread(_write)
    logger.info(f"Stored upload {subdir}/{stored_name} ({len(content)} bytes)")
    return f"{UPLOAD_URL_PREFIX}/{subdir}/{stored_name}"


def delete_upload(url_path: str | None) -> None:
    """Remove a stored file by its public URL path; missing files are ignored."""
    if not url_path or not url_path.startswith(f"{UPLOAD_URL_PREFIX}/"):
        return
    relative = url_path[len(UPLOAD_URL_PREFIX) + 1 :]
    root = Path(settings.upload_dir).resolve()
    target = (root / relative).resolve()
    if not target.is_relative_to(root):
        logger.warning(f"Refusing to delete upload outside upload dir: {url_path}")
        return
    try:
        target.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete upload {url_path}: {e}")
