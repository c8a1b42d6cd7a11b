"""Runtime settings read from the environment (and an optional .env file)."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite:///./certificates.db"
DEFAULT_BACKUP_DIR = "./backups"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_RECORDS_LIMIT = 10


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    backup_dir: str = DEFAULT_BACKUP_DIR
    admin_username: str = "admin"
    admin_password: str = "admin123"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    records_default_limit: int = DEFAULT_RECORDS_LIMIT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
            backup_dir=os.getenv("BACKUP_DIR") or DEFAULT_BACKUP_DIR,
            admin_username=os.getenv("ADMIN_USERNAME", "admin"),
            admin_password=os.getenv("ADMIN_PASSWORD", "admin123"),
            max_upload_bytes=max(1, _int(os.getenv("MAX_UPLOAD_BYTES"), DEFAULT_MAX_UPLOAD_BYTES)),
            records_default_limit=max(1, _int(os.getenv("RECORDS_DEFAULT_LIMIT"), DEFAULT_RECORDS_LIMIT)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
