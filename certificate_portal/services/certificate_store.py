"""Upsert-based storage for certificate records keyed by registration number.

Writes are keyed by the exact (trimmed) registration number; reads compare the
Unicode case-folded key, so ``"ab-1"`` finds ``"AB-1"`` and ``"école-1"`` finds
``"ÉCOLE-1"``. The memory store hands out copies, never its live records. When two stored keys differ
only by case, lookups return the one with the lowest id.
"""
from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from certificate_portal.core.errors import StoreError
from certificate_portal.models.database import Certificate

logger = logging.getLogger(__name__)

IN_QUERY_CHUNK_SIZE = 900


@dataclass
class StoredRecord:
    id: Any
    registration_no: str
    data: Dict[str, Any]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "registrationNo": self.registration_no,
            "data": self.data,
            "createdAt": _isoformat(self.created_at),
        }

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "registrationNo": self.registration_no,
            "createdAt": _isoformat(self.created_at),
        }


@dataclass
class BatchResult:
    inserted_count: int = 0
    updated_count: int = 0

    @property
    def count(self) -> int:
        return self.inserted_count + self.updated_count


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    """Serialize a stored naive-UTC timestamp with an explicit +00:00 offset."""
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


def _lookup_key(registration_no: str) -> str:
    return registration_no.strip().casefold()


def _clean_key(registration_no: Any) -> str:
    key = str(registration_no).strip() if registration_no is not None else ''
    if not key:
        raise StoreError("Registration number is required")
    return key


def _latest_by_key(records: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
    """Collapse ``records`` so the last entry per key wins.

    Entries are objects with ``registration_no`` and ``data`` attributes or
    mappings shaped ``{"registrationNo": ..., "data": ...}``.
    """
    latest: Dict[str, Dict[str, Any]] = {}
    for record in records:
        if isinstance(record, Mapping):
            registration_no, data = record.get("registrationNo"), record.get("data") or {}
        else:
            registration_no, data = record.registration_no, record.data
        latest[_clean_key(registration_no)] = dict(data)
    return latest


def _chunked(values: Iterable[str], size: int = IN_QUERY_CHUNK_SIZE) -> Iterable[List[str]]:
    """Yield successive chunks of strings to keep SQL IN clauses small."""
    chunk: List[str] = []
    for value in values:
        chunk.append(value)
        if len(chunk) == size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def _parse_id(record_id: Any) -> Optional[int]:
    try:
        return int(record_id)
    except (TypeError, ValueError):
        return None


class CertificateStore(ABC):
    """Contract shared by every storage backend."""

    @abstractmethod
    def upsert_one(self, registration_no: str, data: Mapping[str, Any]) -> StoredRecord:
        """Insert or replace the record stored under ``registration_no``."""

    @abstractmethod
    def upsert_batch(self, records: Iterable[Any]) -> BatchResult:
        """Upsert every record as one operation and report inserted vs updated keys."""

    @abstractmethod
    def find_by_registration_no(self, query: str) -> Optional[StoredRecord]:
        """Case-insensitive, whitespace-trimmed exact lookup."""

    @abstractmethod
    def find_by_id(self, record_id: Any) -> Optional[StoredRecord]:
        ...

    @abstractmethod
    def list_recent(self, limit: int) -> List[StoredRecord]:
        """Most recently written records first."""

    @abstractmethod
    def count(self) -> int:
        ...


class SqlCertificateStore(CertificateStore):
    """Store backed by the ``certificates`` table through a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_record(row: Certificate) -> StoredRecord:
        return StoredRecord(
            id=row.id,
            registration_no=row.registration_no,
            data=row.data,
            created_at=row.created_at,
        )

    @staticmethod
    def _dialect_insert(db: Session):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
            return insert
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
            return insert
        return None

    def _write(self, db: Session, key: str, data: Dict[str, Any], timestamp: datetime) -> None:
        insert = self._dialect_insert(db)
        if insert is not None:
            stmt = insert(Certificate).values(
                registration_no=key,
                registration_key=_lookup_key(key),
                data=data,
                created_at=timestamp,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["registration_no"],
                set_={
                    "registration_key": stmt.excluded["registration_key"],
                    "data": stmt.excluded["data"],
                    "created_at": stmt.excluded["created_at"],
                },
            )
            db.execute(stmt)
            return

        existing = db.query(Certificate).filter(Certificate.registration_no == key).first()
        if existing:
            existing.data = data
            existing.created_at = timestamp
        else:
            db.add(Certificate(
                registration_no=key,
                registration_key=_lookup_key(key),
                data=data,
                created_at=timestamp,
            ))
        db.flush()

    def _existing_keys(self, db: Session, keys: Iterable[str]) -> Set[str]:
        found: Set[str] = set()
        for chunk in _chunked(keys):
            rows = db.query(Certificate.registration_no).filter(Certificate.registration_no.in_(chunk)).all()
            found.update(row[0] for row in rows)
        return found

    def upsert_one(self, registration_no: str, data: Mapping[str, Any]) -> StoredRecord:
        key = _clean_key(registration_no)
        db = self._session_factory()
        try:
            self._write(db, key, dict(data), _utcnow())
            db.commit()
            row = db.query(Certificate).filter(Certificate.registration_no == key).one()
            return self._to_record(row)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to upsert certificate %s: %s", key, exc)
            raise StoreError(f"Failed to insert certificate: {exc}") from exc
        finally:
            db.close()

    def upsert_batch(self, records: Iterable[Any]) -> BatchResult:
        latest = _latest_by_key(records)
        if not latest:
            return BatchResult()

        timestamp = _utcnow()
        db = self._session_factory()
        try:
            existing = self._existing_keys(db, latest.keys())
            for key, data in latest.items():
                self._write(db, key, data, timestamp)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Batch upsert of %d certificates failed: %s", len(latest), exc)
            raise StoreError(f"Failed to batch insert certificates: {exc}") from exc
        finally:
            db.close()

        inserted = len(latest.keys() - existing)
        return BatchResult(inserted_count=inserted, updated_count=len(latest) - inserted)

    def find_by_registration_no(self, query: str) -> Optional[StoredRecord]:
        needle = _lookup_key(query or '')
        if not needle:
            return None
        db = self._session_factory()
        try:
            row = (
                db.query(Certificate)
                .filter(Certificate.registration_key == needle)
                .order_by(Certificate.id.asc())
                .first()
            )
            return self._to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to find certificate: {exc}") from exc
        finally:
            db.close()

    def find_by_id(self, record_id: Any) -> Optional[StoredRecord]:
        pk = _parse_id(record_id)
        if pk is None:
            return None
        db = self._session_factory()
        try:
            row = db.get(Certificate, pk)
            return self._to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to get certificate: {exc}") from exc
        finally:
            db.close()

    def list_recent(self, limit: int) -> List[StoredRecord]:
        if limit <= 0:
            return []
        db = self._session_factory()
        try:
            rows = (
                db.query(Certificate)
                .order_by(Certificate.created_at.desc(), Certificate.id.desc())
                .limit(limit)
                .all()
            )
            return [self._to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to get certificates: {exc}") from exc
        finally:
            db.close()

    def count(self) -> int:
        db = self._session_factory()
        try:
            return db.query(func.count(Certificate.id)).scalar() or 0
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to count certificates: {exc}") from exc
        finally:
            db.close()


class MemoryCertificateStore(CertificateStore):
    """Process-local store with the same semantics as :class:`SqlCertificateStore`."""

    def __init__(self):
        self._records: Dict[str, StoredRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _write(self, key: str, data: Dict[str, Any], timestamp: datetime) -> StoredRecord:
        existing = self._records.get(key)
        if existing:
            record_id = existing.id
        else:
            record_id = self._next_id
            self._next_id += 1
        record = StoredRecord(id=record_id, registration_no=key, data=copy.deepcopy(data), created_at=timestamp)
        self._records[key] = record
        return record

    def upsert_one(self, registration_no: str, data: Mapping[str, Any]) -> StoredRecord:
        key = _clean_key(registration_no)
        with self._lock:
            return copy.deepcopy(self._write(key, dict(data), _utcnow()))

    def upsert_batch(self, records: Iterable[Any]) -> BatchResult:
        latest = _latest_by_key(records)
        timestamp = _utcnow()
        result = BatchResult()
        with self._lock:
            for key, data in latest.items():
                if key in self._records:
                    result.updated_count += 1
                else:
                    result.inserted_count += 1
                self._write(key, data, timestamp)
        return result

    def find_by_registration_no(self, query: str) -> Optional[StoredRecord]:
        needle = _lookup_key(query or '')
        if not needle:
            return None
        with self._lock:
            matches = [record for key, record in self._records.items() if _lookup_key(key) == needle]
        return copy.deepcopy(min(matches, key=lambda record: record.id)) if matches else None

    def find_by_id(self, record_id: Any) -> Optional[StoredRecord]:
        pk = _parse_id(record_id)
        with self._lock:
            for record in self._records.values():
                if record.id == pk:
                    return copy.deepcopy(record)
        return None

    def list_recent(self, limit: int) -> List[StoredRecord]:
        if limit <= 0:
            return []
        with self._lock:
            records = copy.deepcopy(list(self._records.values()))
        records.sort(key=lambda record: (record.created_at, record.id), reverse=True)
        return records[:limit]

    def count(self) -> int:
        with self._lock:
            return len(self._records)
