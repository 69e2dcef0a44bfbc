"""
Raw upload archive: every accepted CSV is kept on disk under
``<UPLOAD_DIR>/<YYYY-MM-DD>/<filename>``.
"""
from datetime import date
from pathlib import Path, PurePath
from typing import Optional

from tollvault.core.config import settings
from tollvault.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FILENAME = "upload.csv"


def safe_filename(filename: Optional[str]) -> str:
    """Last path component only; Windows separators count too"""
    name = PurePath((filename or "").replace("\\", "/")).name
    if name in ("", ".", ".."):
        return DEFAULT_FILENAME
    return name


def archive_upload(
    content: bytes,
    filename: Optional[str],
    batch_date: date,
    base_dir: Optional[str] = None,
) -> Path:
    """Write ``content`` to the archive, overwriting a same-day file of the same name"""
    target_dir = Path(base_dir or settings.UPLOAD_DIR) / batch_date.isoformat()
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / safe_filename(filename)
    target.write_bytes(content)
    logger.info(
        "Upload archived",
        extra_data={"path": str(target), "size_bytes": len(content)},
    )
    return target
