import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from certificate_portal.core.config import Settings
from certificate_portal.models.database import build_engine, build_session_factory
from certificate_portal.services.certificate_store import SqlCertificateStore

limit = int(sys.argv[1]) if len(sys.argv) > 1 else 10

settings = Settings.from_env()
store = SqlCertificateStore(build_session_factory(build_engine(settings.database_url)))

print(f"Total certificates: {store.count()}")
for record in store.list_recent(limit):
    print(f"[{record.id}] {record.registration_no} ({record.created_at:%Y-%m-%d %H:%M:%S})")
    print(json.dumps(record.data, indent=2, ensure_ascii=False))
