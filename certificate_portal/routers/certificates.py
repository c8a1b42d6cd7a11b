"""API router for certificate uploads and lookups."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile

from certificate_portal.core import session_manager
from certificate_portal.core.errors import MappingError, ParseError, StoreError
from certificate_portal.core.security import require_admin
from certificate_portal.services.certificate_fields import extract_certificate_fields
from certificate_portal.services.certificate_import_service import (
    CertificateImporter,
    IngestResult,
    MappingRequired,
)
from certificate_portal.services.certificate_store import CertificateStore
from certificate_portal.services.column_resolver import REGISTRATION_FIELD

router = APIRouter(prefix="/api", tags=["certificates"])
logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".csv", ".tsv", ".xlsx", ".xls")


def get_store(request: Request) -> CertificateStore:
    return request.app.state.certificate_store


def get_importer(request: Request) -> CertificateImporter:
    return request.app.state.certificate_importer


async def _read_upload(request: Request, file: UploadFile) -> bytes:
    if not file.filename or not file.filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Only Excel (.xlsx, .xls) and CSV files are allowed")
    content = await file.read()
    if len(content) > request.app.state.settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="Uploaded file is too large")
    return content


def _parse_column_mapping(raw: str) -> Dict[str, str]:
    try:
        mapping = json.loads(raw)
    except ValueError as exc:
        raise MappingError("Column mapping must be a JSON object") from exc
    if not isinstance(mapping, dict):
        raise MappingError("Column mapping must be a JSON object")
    cleaned = {str(target): str(source) for target, source in mapping.items() if source not in (None, '')}
    if not cleaned.get(REGISTRATION_FIELD):
        raise MappingError("Registration number column mapping is required")
    return cleaned


async def _run_ingest(
    importer: CertificateImporter,
    content: bytes,
    filename: str,
    column_mapping: Optional[Dict[str, str]] = None,
) -> IngestResult:
    try:
        return await asyncio.to_thread(importer.ingest, content, filename, column_mapping)
    except ParseError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except StoreError as exc:
        logger.error("Upload of %s failed: %s", filename, exc)
        raise HTTPException(status_code=500, detail=exc.message) from exc


@router.post("/upload")
async def upload_certificates(
    request: Request,
    file: UploadFile = File(...),
    importer: CertificateImporter = Depends(get_importer),
    _admin: str = Depends(require_admin),
):
    content = await _read_upload(request, file)
    result = await _run_ingest(importer, content, file.filename)
    payload = result.to_payload()

    if isinstance(result, MappingRequired):
        payload["session_id"] = session_manager.park_upload(file.filename, content)
    return payload


@router.post("/upload/mapping")
async def upload_certificates_with_mapping(
    request: Request,
    column_mapping: str = Form(...),
    file: Optional[UploadFile] = File(None),
    session_id: Optional[str] = Form(None),
    importer: CertificateImporter = Depends(get_importer),
    _admin: str = Depends(require_admin),
):
    try:
        mapping = _parse_column_mapping(column_mapping)
    except MappingError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    if file is not None:
        content = await _read_upload(request, file)
        filename = file.filename
    elif session_id:
        pending = session_manager.require_upload(session_id)
        content = pending.content
        filename = pending.filename
    else:
        raise HTTPException(status_code=400, detail="No file uploaded")

    result = await _run_ingest(importer, content, filename, mapping)
    if session_id:
        session_manager.discard_upload(session_id)
    return result.to_payload()


@router.get("/record")
async def lookup_record(
    reg_no: Optional[str] = Query(None),
    store: CertificateStore = Depends(get_store),
) -> Dict[str, Any]:
    if not reg_no or not reg_no.strip():
        raise HTTPException(status_code=400, detail="Registration number is required")

    try:
        record = await asyncio.to_thread(store.find_by_registration_no, reg_no.strip())
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc

    if record is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "No record found for this registration number",
                "suggestion": "Please double-check the registration number and try again.",
            },
        )
    return {
        "success": True,
        "record": record.to_dict(),
        "certificate": extract_certificate_fields(record).to_dict(),
    }


@router.get("/record/{record_id}")
async def get_record(record_id: str, store: CertificateStore = Depends(get_store)) -> Dict[str, Any]:
    try:
        record = await asyncio.to_thread(store.find_by_id, record_id)
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"success": True, "record": record.to_dict()}


@router.get("/records")
async def list_records(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    store: CertificateStore = Depends(get_store),
    _admin: str = Depends(require_admin),
) -> Dict[str, Any]:
    limit = limit or request.app.state.settings.records_default_limit
    try:
        records = await asyncio.to_thread(store.list_recent, limit)
        total = await asyncio.to_thread(store.count)
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc
    return {
        "success": True,
        "count": len(records),
        "total": total,
        "records": [record.to_summary() for record in records],
    }
