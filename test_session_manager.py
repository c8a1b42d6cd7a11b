import pytest
from fastapi import HTTPException

from certificate_portal.core import session_manager


@pytest.fixture
def now(monkeypatch):
    """Empty pending-upload registry driven by a hand-cranked clock."""
    current = [1000.0]
    monkeypatch.setattr(session_manager, "_pending_uploads", {})
    monkeypatch.setattr(session_manager, "_clock", lambda: current[0])
    return current


def test_parked_upload_is_returned_until_discarded(now):
    upload_id = session_manager.park_upload("certs.csv", b"Full Name,ID\nAnn,S-1\n")

    pending = session_manager.require_upload(upload_id)
    assert pending.filename == "certs.csv"
    assert pending.content == b"Full Name,ID\nAnn,S-1\n"

    session_manager.discard_upload(upload_id)
    with pytest.raises(HTTPException) as excinfo:
        session_manager.require_upload(upload_id)
    assert excinfo.value.status_code == 404


def test_upload_expires_after_ttl(now):
    upload_id = session_manager.park_upload("certs.csv", b"ID\n1\n")

    now[0] += session_manager.PENDING_UPLOAD_TTL_SECONDS - 1
    assert session_manager.require_upload(upload_id).filename == "certs.csv"

    now[0] += 1
    with pytest.raises(HTTPException) as excinfo:
        session_manager.require_upload(upload_id)
    assert excinfo.value.status_code == 404
    assert session_manager.pending_count() == 0


def test_parking_drops_abandoned_uploads(now):
    for _ in range(3):
        session_manager.park_upload("old.csv", b"x" * 1024)

    now[0] += session_manager.PENDING_UPLOAD_TTL_SECONDS
    fresh = session_manager.park_upload("new.csv", b"ID\n1\n")

    assert session_manager.pending_count() == 1
    assert session_manager.require_upload(fresh).filename == "new.csv"


def test_discarding_an_unknown_upload_is_harmless(now):
    session_manager.discard_upload("missing")

    assert session_manager.pending_count() == 0
