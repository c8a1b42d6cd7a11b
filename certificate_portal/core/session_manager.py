"""Uploads parked between the mapping request and the mapped re-submission.

An upload with no recognisable registration column is kept here under a
random id so the follow-up request can name the id instead of re-sending the
file. Entries expire after ``PENDING_UPLOAD_TTL_SECONDS``; expired entries are
dropped whenever an upload is parked or looked up, so abandoned uploads do not
accumulate.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Dict

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

PENDING_UPLOAD_TTL_SECONDS = 30 * 60

_clock = time.monotonic


@dataclass(frozen=True)
class PendingUpload:
    filename: str
    content: bytes
    parked_at: float


_pending_uploads: Dict[str, PendingUpload] = {}
_lock = threading.Lock()


def _evict_expired(now: float) -> None:
    expired = [
        upload_id
        for upload_id, upload in _pending_uploads.items()
        if now - upload.parked_at >= PENDING_UPLOAD_TTL_SECONDS
    ]
    for upload_id in expired:
        del _pending_uploads[upload_id]
    if expired:
        logger.info("Discarded %d expired pending upload(s)", len(expired))


def park_upload(filename: str, content: bytes) -> str:
    """Keep ``content`` until it is mapped or expires; return its session id."""
    upload_id = str(uuid.uuid4())
    with _lock:
        now = _clock()
        _evict_expired(now)
        _pending_uploads[upload_id] = PendingUpload(filename=filename, content=content, parked_at=now)
    return upload_id


def require_upload(session_id: str) -> PendingUpload:
    """Return the parked upload or raise 404 when it is unknown or expired."""
    with _lock:
        _evict_expired(_clock())
        upload = _pending_uploads.get(session_id)
    if upload is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Upload session not found or expired",
        )
    return upload


def discard_upload(session_id: str) -> None:
    with _lock:
        _pending_uploads.pop(session_id, None)


def pending_count() -> int:
    with _lock:
        return len(_pending_uploads)
