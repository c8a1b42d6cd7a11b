"""
Certificate Portal FastAPI Application
Bulk certificate upload and registration-number lookup
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI
import uvicorn

from certificate_portal.core.config import Settings
from certificate_portal.models.database import build_engine, build_session_factory
from certificate_portal.routers.certificates import router as certificates_router
from certificate_portal.services.certificate_import_service import CertificateImporter
from certificate_portal.services.certificate_store import CertificateStore, SqlCertificateStore


def create_app(settings: Optional[Settings] = None, store: Optional[CertificateStore] = None) -> FastAPI:
    """Build the application; ``store`` overrides the SQL store built from ``settings``."""
    settings = settings or Settings.from_env()
    if store is None:
        store = SqlCertificateStore(build_session_factory(build_engine(settings.database_url)))

    app = FastAPI(title="Certificate Portal")
    app.state.settings = settings
    app.state.certificate_store = store
    app.state.certificate_importer = CertificateImporter(store, settings.backup_dir)
    app.include_router(certificates_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    app_settings = Settings.from_env()
    configure_logging(app_settings.log_level)
    port = int(os.getenv("PORT", "5000"))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=os.getenv("UVICORN_RELOAD", "0") == "1"
    )
