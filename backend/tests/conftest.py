import os

# Must run before backend.config is imported so the startup check passes.
os.environ.setdefault("TICKETDESK_SESSION_SECRET", "test-session-secret-7f3a91c2d4e85b6a0c1d2e3f")
os.environ.setdefault("TICKETDESK_ADMIN_USERNAME", "admin")
os.environ.setdefault("TICKETDESK_ADMIN_PASSWORD", "door-staff-test-password")
# TestClient talks plain http; Secure cookies would never be sent back.
os.environ.setdefault("TICKETDESK_COOKIE_SECURE", "false")

import pytest  # noqa: E402

import backend.config as config  # noqa: E402
import backend.routers.core as core  # noqa: E402
import database.db as db  # noqa: E402


@pytest.fixture()
def test_db(tmp_path, monkeypatch):
    test_db_path = tmp_path / "ticketdesk_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db_path)
    monkeypatch.setattr(db, "DB_PATH", test_db_path)
    monkeypatch.setattr(core, "DB_PATH", test_db_path)

    db.create_tables()
    return test_db_path
