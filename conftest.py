"""Shared pytest fixtures.

The project root is put on ``sys.path`` so the test modules living next to
``main.py`` can import ``certificate_portal`` without an install.
"""
import io
import sys
from pathlib import Path

import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from certificate_portal.models.database import build_engine, build_session_factory
from certificate_portal.services.certificate_store import MemoryCertificateStore, SqlCertificateStore


def make_csv(text: str) -> bytes:
    return text.encode("utf-8")


def make_xlsx(frame: pd.DataFrame) -> bytes:
    buffer = io.BytesIO()
    frame.to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


@pytest.fixture
def sql_store():
    engine = build_engine("sqlite:///:memory:")
    yield SqlCertificateStore(build_session_factory(engine))
    engine.dispose()


@pytest.fixture
def memory_store():
    return MemoryCertificateStore()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Run a test against both store implementations."""
    if request.param == "memory":
        return request.getfixturevalue("memory_store")
    return request.getfixturevalue("sql_store")


@pytest.fixture
def backup_dir(tmp_path):
    return tmp_path / "backups"
