"""Service helpers for the certificate upload workflow.

An upload either comes back as a :class:`MappingRequired` (no registration
column could be found and no mapping was supplied) or gets imported in one
batch and reported as an :class:`ImportSummary`.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from certificate_portal.services import tabular_parser
from certificate_portal.services.certificate_store import BatchResult, CertificateStore
from certificate_portal.services.column_resolver import resolve_registration_column
from certificate_portal.services.record_normalizer import RowError, normalize_rows
from certificate_portal.services.upload_archive import archive_upload

logger = logging.getLogger(__name__)


@dataclass
class MappingRequired:
    headers: List[str]
    sample_row: Dict[str, Any]
    total_rows: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "requiresMapping": True,
            "headers": self.headers,
            "sampleRow": self.sample_row,
            "totalRows": self.total_rows,
        }


@dataclass
class ImportSummary:
    imported: int
    inserted: int = 0
    updated: int = 0
    errors: List[RowError] = field(default_factory=list)
    archive_path: Optional[Path] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": True,
            "imported": self.imported,
            "inserted": self.inserted,
            "updated": self.updated,
            "message": f"Successfully imported {self.imported} certificates",
        }
        if self.errors:
            payload["errors"] = [error.to_dict() for error in self.errors]
        return payload


IngestResult = Union[MappingRequired, ImportSummary]


class CertificateImporter:
    """Drive parse -> resolve -> normalize -> store -> archive for one upload."""

    def __init__(self, store: CertificateStore, archive_dir: Union[str, Path]):
        self.store = store
        self.archive_dir = Path(archive_dir)

    def ingest(
        self,
        content: bytes,
        filename: str,
        column_mapping: Optional[Mapping[str, str]] = None,
        declared_format: Optional[str] = None,
    ) -> IngestResult:
        start_time = time.perf_counter()
        sheet = tabular_parser.parse(content, declared_format or filename)
        logger.info("Parsed %s (%d rows)", filename, len(sheet.rows))

        registration_column = None
        if column_mapping is None:
            registration_column = resolve_registration_column(sheet.headers)
            if registration_column is None and sheet.rows:
                logger.info("No registration column found in %s; requesting mapping", filename)
                return MappingRequired(
                    headers=sheet.headers,
                    sample_row=sheet.rows[0],
                    total_rows=len(sheet.rows),
                )

        batch = normalize_rows(
            sheet.rows,
            sheet.headers,
            registration_column=registration_column,
            column_mapping=column_mapping,
        )

        result = BatchResult()
        if batch.records:
            result = self.store.upsert_batch(batch.records)

        archive_path = None
        try:
            archive_path = archive_upload(content, filename, self.archive_dir)
        except OSError as exc:
            logger.warning("Could not archive upload %s: %s", filename, exc)

        logger.info(
            "Imported %d certificates from %s (%d new, %d updated, %d rejected) in %.3fs",
            len(batch.records),
            filename,
            result.inserted_count,
            result.updated_count,
            len(batch.errors),
            time.perf_counter() - start_time,
        )
        return ImportSummary(
            imported=len(batch.records),
            inserted=result.inserted_count,
            updated=result.updated_count,
            errors=batch.errors,
            archive_path=archive_path,
        )
