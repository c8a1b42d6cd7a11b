"""Keep a copy of every imported upload under the backup directory."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


def _safe_name(filename: str) -> str:
    name = Path((filename or '').replace('\\', '/')).name.strip()
    return name or "upload"


def archive_upload(
    content: bytes,
    filename: str,
    backup_dir: Union[str, Path],
    timestamp: Optional[float] = None,
) -> Path:
    """Write ``content`` as ``<epoch-millis>_<filename>`` inside ``backup_dir`` and return the path.

    The directory is created when missing. A numeric suffix is added if the
    name is already taken, so repeated uploads of one filename never overwrite
    each other.
    """
    directory = Path(backup_dir)
    directory.mkdir(parents=True, exist_ok=True)

    millis = int((timestamp if timestamp is not None else time.time()) * 1000)
    base_name = f"{millis}_{_safe_name(filename)}"
    target = directory / base_name
    attempt = 1
    while target.exists():
        stem, dot, suffix = base_name.rpartition('.')
        target = directory / (f"{stem}_{attempt}.{suffix}" if dot else f"{base_name}_{attempt}")
        attempt += 1

    target.write_bytes(content)
    logger.info("Archived upload %s to %s", filename, target)
    return target
