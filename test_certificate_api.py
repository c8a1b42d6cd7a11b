import json

import pytest
from fastapi.testclient import TestClient

from certificate_portal.core import session_manager
from certificate_portal.core.config import Settings
from certificate_portal.services.certificate_store import StoredRecord
from certificate_portal.services.certificate_fields import extract_certificate_fields
from main import create_app

ADMIN = ("admin", "admin123")


@pytest.fixture
def client(memory_store, backup_dir):
    app = create_app(Settings(backup_dir=str(backup_dir)), store=memory_store)
    with TestClient(app) as test_client:
        yield test_client


def _upload(client, content, filename="certs.csv", auth=ADMIN):
    return client.post("/api/upload", files={"file": (filename, content, "text/csv")}, auth=auth)


def test_upload_requires_admin_credentials(client):
    assert _upload(client, b"Reg No\nR1\n", auth=None).status_code == 401
    assert _upload(client, b"Reg No\nR1\n", auth=("admin", "wrong")).status_code == 401


def test_upload_imports_rows(client, memory_store):
    response = _upload(client, b"Name,Reg No,Grade\nA,X1,B+\n,,C\n")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["imported"] == 1
    assert body["errors"] == [{"row": 3, "error": "Missing registration number"}]
    assert memory_store.find_by_registration_no("x1").data["Grade"] == "B+"


def test_upload_rejects_unsupported_extension(client):
    response = _upload(client, b"%PDF-1.4", filename="certs.pdf")

    assert response.status_code == 400


def test_upload_rejects_oversized_file(memory_store, backup_dir):
    app = create_app(Settings(backup_dir=str(backup_dir), max_upload_bytes=8), store=memory_store)
    with TestClient(app) as small_client:
        response = _upload(small_client, b"Reg No\nR1\nR2\nR3\n")

    assert response.status_code == 413


def test_corrupt_workbook_is_a_bad_request(client):
    response = _upload(client, b"not a workbook", filename="certs.xlsx")

    assert response.status_code == 400


def test_two_phase_upload_with_session(client, memory_store):
    first = _upload(client, b"Full Name,ID\nAnn,S-1\n")

    body = first.json()
    assert body["requiresMapping"] is True
    assert body["headers"] == ["Full Name", "ID"]
    assert body["sampleRow"] == {"Full Name": "Ann", "ID": "S-1"}
    assert body["totalRows"] == 1
    assert memory_store.count() == 0

    second = client.post(
        "/api/upload/mapping",
        data={
            "session_id": body["session_id"],
            "column_mapping": json.dumps({"registrationNo": "ID", "studentName": "Full Name"}),
        },
        auth=ADMIN,
    )

    assert second.status_code == 200
    assert second.json()["imported"] == 1
    assert memory_store.find_by_registration_no("s-1").data["studentName"] == "Ann"


def test_mapping_upload_with_file(client, memory_store):
    response = client.post(
        "/api/upload/mapping",
        files={"file": ("certs.csv", b"Full Name,ID\nAnn,S-1\n", "text/csv")},
        data={"column_mapping": json.dumps({"registrationNo": "ID"})},
        auth=ADMIN,
    )

    assert response.status_code == 200
    assert memory_store.count() == 1


@pytest.mark.parametrize("mapping", ['{"studentName": "Full Name"}', '["ID"]', "not json"])
def test_mapping_upload_requires_registration_mapping(client, mapping):
    response = client.post(
        "/api/upload/mapping",
        files={"file": ("certs.csv", b"Full Name,ID\nAnn,S-1\n", "text/csv")},
        data={"column_mapping": mapping},
        auth=ADMIN,
    )

    assert response.status_code == 400


def test_mapping_upload_without_file_or_session(client):
    response = client.post(
        "/api/upload/mapping",
        data={"column_mapping": json.dumps({"registrationNo": "ID"})},
        auth=ADMIN,
    )

    assert response.status_code == 400


def test_mapping_upload_with_unknown_session(client):
    response = client.post(
        "/api/upload/mapping",
        data={"session_id": "missing", "column_mapping": json.dumps({"registrationNo": "ID"})},
        auth=ADMIN,
    )

    assert response.status_code == 404


def test_mapping_after_pending_upload_expired_is_not_found(client, memory_store, monkeypatch):
    now = [0.0]
    monkeypatch.setattr(session_manager, "_pending_uploads", {})
    monkeypatch.setattr(session_manager, "_clock", lambda: now[0])
    session_id = _upload(client, b"Full Name,ID\nAnn,S-1\n").json()["session_id"]

    now[0] += session_manager.PENDING_UPLOAD_TTL_SECONDS + 1
    response = client.post(
        "/api/upload/mapping",
        data={"session_id": session_id, "column_mapping": json.dumps({"registrationNo": "ID"})},
        auth=ADMIN,
    )

    assert response.status_code == 404
    assert memory_store.count() == 0
    assert session_manager.pending_count() == 0


def test_record_timestamps_are_utc_with_offset(client, memory_store):
    memory_store.upsert_one("REG123", {"Name": "A"})

    created = client.get("/api/record", params={"reg_no": "reg123"}).json()["record"]["createdAt"]

    assert created.endswith("+00:00")


def test_lookup_requires_registration_number(client):
    assert client.get("/api/record").status_code == 400
    assert client.get("/api/record", params={"reg_no": "   "}).status_code == 400


def test_lookup_not_found(client):
    response = client.get("/api/record", params={"reg_no": "NONEXISTENT123"})

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "No record found for this registration number"
    assert response.json()["detail"]["suggestion"]


def test_lookup_is_case_insensitive_and_trimmed(client, memory_store):
    memory_store.upsert_one("REG123", {"Student Name": "John Doe", "City": "Kano"})

    response = client.get("/api/record", params={"reg_no": "  reg123  "})

    assert response.status_code == 200
    body = response.json()
    assert body["record"]["registrationNo"] == "REG123"
    assert body["record"]["data"] == {"Student Name": "John Doe", "City": "Kano"}
    assert body["certificate"]["studentName"] == "John Doe"
    assert body["certificate"]["additionalFields"] == {"City": "Kano"}


def test_get_record_by_id(client, memory_store):
    record = memory_store.upsert_one("REG123", {"Name": "A"})

    assert client.get(f"/api/record/{record.id}").json()["record"]["registrationNo"] == "REG123"
    assert client.get("/api/record/9999").status_code == 404


def test_list_records_is_admin_only_and_newest_first(client, memory_store):
    for key in ("A", "B", "C"):
        memory_store.upsert_one(key, {})

    assert client.get("/api/records").status_code == 401

    body = client.get("/api/records", params={"limit": 2}, auth=ADMIN).json()
    assert body["count"] == 2
    assert body["total"] == 3
    assert set(body["records"][0]) == {"id", "registrationNo", "createdAt"}


def test_certificate_fields_prefer_mapped_names_and_list_original_extras():
    record = StoredRecord(
        id=1,
        registration_no="R9",
        data={
            "studentName": "Bob",
            "grade": "A",
            "_original": {"ID": "R9", "Full Name": "Bob", "Grade": "A", "City": "Jos"},
        },
        created_at=None,
    )

    fields = extract_certificate_fields(record)

    assert fields.fields["studentName"] == "Bob"
    assert fields.fields["registrationNo"] == "R9"
    assert fields.fields["courseName"] == ""
    assert fields.additional_fields == {"ID": "R9", "Full Name": "Bob", "City": "Jos"}
