import hashlib
import hmac
import json
import secrets
import sqlite3
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal, TypedDict

from backend.config import (
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    DB_PATH,
    DB_TIMEOUT_SECONDS,
)


PASSWORD_HASH_ALGO = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 120_000
TICKET_ID_BYTES = 4
TICKET_ID_ATTEMPTS = 5

RegistrationStatus = Literal["active", "checked-in", "revoked"]


class RegistrationValidationError(ValueError):
    """Raised when a registration payload breaks a field rule."""


class FormValidationError(ValueError):
    """Raised when an event form payload breaks a field rule."""


class Registration(TypedDict):
    id: str
    name: str
    email: str
    phone: str | None
    organization: str | None
    group_size: int
    form_id: int | None
    has_qr: bool
    qr_code_data: str | None
    scans: int
    max_scans: int
    status: RegistrationStatus
    created_at: str


class EventForm(TypedDict):
    id: int
    title: str
    description: str | None
    event_date: str | None
    location: str | None
    max_group_size: int
    fields: list[str]
    is_published: bool
    created_at: str
    updated_at: str


class RegistrationStats(TypedDict):
    total_registrations: int
    qr_codes_generated: int
    total_entries: int
    active_registrations: int


REGISTRATION_COLUMNS = """
    id, name, email, phone, organization, group_size, form_id,
    has_qr, qr_code_data, scans, max_scans, status, created_at
"""
EVENT_FORM_COLUMNS = """
    id, title, description, event_date, location, max_group_size,
    fields_json, is_published, created_at, updated_at
"""
EVENT_FORM_UPDATABLE = {"title", "description", "event_date", "location", "max_group_size", "fields"}


def _hash_password(password: str, *, salt: str | None = None) -> str:
    salt_value = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        PASSWORD_HASH_ITERATIONS,
    ).hex()
    return f"{PASSWORD_HASH_ALGO}${PASSWORD_HASH_ITERATIONS}${salt_value}${digest}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, rounds_text, salt_value, expected_digest = password_hash.split("$", 3)
        rounds = int(rounds_text)
    except (ValueError, TypeError):
        return False

    if algo != PASSWORD_HASH_ALGO or rounds <= 0:
        return False

    candidate_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        rounds,
    ).hex()
    return hmac.compare_digest(candidate_digest, expected_digest)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def connect_db():
    conn = sqlite3.connect(str(DB_PATH), timeout=DB_TIMEOUT_SECONDS, check_same_thread=False)
    # needed for ON DELETE SET NULL on registrations.form_id
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _ensure_default_admin(cursor: sqlite3.Cursor) -> None:
    username = (ADMIN_USERNAME or "").strip()
    password = (ADMIN_PASSWORD or "").strip()
    if not username or not password:
        return

    cursor.execute(
        """
        SELECT id
        FROM admin_users
        WHERE username = ? COLLATE NOCASE
        """,
        (username,),
    )
    if cursor.fetchone():
        return

    cursor.execute(
        """
        INSERT INTO admin_users (username, password_hash)
        VALUES (?, ?)
        """,
        (username, _hash_password(password)),
    )


def create_tables():
    conn = connect_db()
    cursor = conn.cursor()

    cursor.execute(
        """
    CREATE TABLE IF NOT EXISTS admin_users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE COLLATE NOCASE,
        password_hash TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """
    )

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS event_forms (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        event_date TEXT,
        location TEXT,
        max_group_size INTEGER NOT NULL DEFAULT 1 CHECK (max_group_size >= 1),
        fields_json TEXT NOT NULL DEFAULT '[]',
        is_published INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """)

    # At most one published form; publish_event_form clears the old one first.
    cursor.execute("""
    CREATE UNIQUE INDEX IF NOT EXISTS idx_event_forms_single_published
    ON event_forms (is_published)
    WHERE is_published = 1
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS registrations (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        phone TEXT,
        organization TEXT,
        group_size INTEGER NOT NULL CHECK (group_size >= 1),
        form_id INTEGER REFERENCES event_forms(id) ON DELETE SET NULL,
        has_qr INTEGER NOT NULL DEFAULT 0,
        qr_code_data TEXT,
        scans INTEGER NOT NULL DEFAULT 0,
        max_scans INTEGER NOT NULL CHECK (max_scans >= 1),
        status TEXT NOT NULL DEFAULT 'active'
            CHECK (status IN ('active', 'checked-in', 'revoked')),
        created_at TEXT NOT NULL,
        CHECK (scans >= 0 AND scans <= max_scans),
        CHECK (has_qr = 1 OR qr_code_data IS NULL)
    )
    """)

    cursor.execute("""
    CREATE INDEX IF NOT EXISTS idx_registrations_form_created
    ON registrations (form_id, created_at)
    """)

    _ensure_default_admin(cursor)

    conn.commit()
    conn.close()


# -----------------------------
# Admin users
# -----------------------------
def verify_admin_credentials(username: str, password: str) -> dict | None:
    clean_username = username.strip()
    clean_password = password.strip()
    if not clean_username or not clean_password:
        return None

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, username, password_hash
        FROM admin_users
        WHERE username = ? COLLATE NOCASE
        """,
        (clean_username,),
    )
    row = cur.fetchone()
    conn.close()

    if not row:
        return None

    admin_id, saved_username, password_hash = row
    if not _verify_password(clean_password, password_hash):
        return None

    return {"id": admin_id, "username": saved_username}


# -----------------------------
# Registrations
# -----------------------------
def _row_to_registration(row: tuple) -> Registration:
    (
        reg_id,
        name,
        email,
        phone,
        organization,
        group_size,
        form_id,
        has_qr,
        qr_code_data,
        scans,
        max_scans,
        status,
        created_at,
    ) = row
    return {
        "id": str(reg_id),
        "name": str(name),
        "email": str(email),
        "phone": phone,
        "organization": organization,
        "group_size": int(group_size),
        "form_id": int(form_id) if form_id is not None else None,
        "has_qr": has_qr == 1,
        "qr_code_data": qr_code_data,
        "scans": int(scans or 0),
        "max_scans": int(max_scans),
        "status": status,
        "created_at": str(created_at),
    }


def _require_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise RegistrationValidationError(f"{field} must be an integer >= 1.")
    return value


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def create_registration(
    *,
    name: str,
    email: str,
    group_size: int = 1,
    phone: str | None = None,
    organization: str | None = None,
    form_id: int | None = None,
    max_scans: int | None = None,
) -> Registration:
    """
    Insert a registration with a fresh ticket id, no QR and zero scans.

    `max_scans` defaults to `group_size` so every member of a group gets in once.
    """
    clean_name = (name or "").strip()
    clean_email = (email or "").strip()
    if not clean_name:
        raise RegistrationValidationError("name is required.")
    if not clean_email:
        raise RegistrationValidationError("email is required.")
    group_size = _require_positive_int(group_size, "group_size")
    max_scans = _require_positive_int(group_size if max_scans is None else max_scans, "max_scans")

    conn = connect_db()
    cur = conn.cursor()
    try:
        for _ in range(TICKET_ID_ATTEMPTS):
            ticket_id = secrets.token_hex(TICKET_ID_BYTES).upper()
            try:
                cur.execute(
                    """
                    INSERT INTO registrations (
                        id, name, email, phone, organization, group_size,
                        form_id, max_scans, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        ticket_id,
                        clean_name,
                        clean_email,
                        _clean_optional(phone),
                        _clean_optional(organization),
                        group_size,
                        form_id,
                        max_scans,
                        _utc_now(),
                    ),
                )
            except sqlite3.IntegrityError:
                # either a ticket id collision or an unknown form_id
                cur.execute("SELECT 1 FROM registrations WHERE id = ?", (ticket_id,))
                if cur.fetchone():
                    continue
                raise RegistrationValidationError("form_id does not reference an existing form.")
            conn.commit()
            cur.execute(f"SELECT {REGISTRATION_COLUMNS} FROM registrations WHERE id = ?", (ticket_id,))
            return _row_to_registration(cur.fetchone())
        raise RuntimeError("Could not allocate a unique ticket id.")
    finally:
        conn.close()


def get_registration(reg_id: str, *, conn: sqlite3.Connection | None = None) -> Registration | None:
    owns_conn = conn is None
    active_conn = conn or connect_db()
    try:
        cur = active_conn.cursor()
        cur.execute(
            f"""
            SELECT {REGISTRATION_COLUMNS}
            FROM registrations
            WHERE id = ?
            """,
            (reg_id,),
        )
        row = cur.fetchone()
        return _row_to_registration(row) if row else None
    finally:
        if owns_conn:
            active_conn.close()


def get_all_registrations() -> list[Registration]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"""
        SELECT {REGISTRATION_COLUMNS}
        FROM registrations
        ORDER BY created_at DESC, rowid DESC
    """)
    rows = cur.fetchall()
    conn.close()
    return [_row_to_registration(r) for r in rows]


def get_registrations_by_form_id(form_id: int) -> list[Registration]:
    """
    Registrations for a form, plus every legacy registration without a form.

    Legacy rows predate forms and stay visible in every form's report.
    """
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {REGISTRATION_COLUMNS}
        FROM registrations
        WHERE form_id = ? OR form_id IS NULL
        ORDER BY created_at DESC, rowid DESC
        """,
        (form_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [_row_to_registration(r) for r in rows]


def _aggregate_stats(cur: sqlite3.Cursor, where_sql: str = "1=1", params: tuple = ()) -> RegistrationStats:
    cur.execute(
        f"""
        SELECT
            COUNT(1) AS total_registrations,
            SUM(CASE WHEN has_qr = 1 THEN 1 ELSE 0 END) AS qr_codes_generated,
            SUM(scans) AS total_entries,
            SUM(CASE WHEN status IN ('active', 'checked-in') THEN 1 ELSE 0 END) AS active_registrations
        FROM registrations
        WHERE {where_sql}
        """,
        params,
    )
    row = cur.fetchone()
    return {
        "total_registrations": int(row[0] or 0) if row else 0,
        "qr_codes_generated": int(row[1] or 0) if row else 0,
        "total_entries": int(row[2] or 0) if row else 0,
        "active_registrations": int(row[3] or 0) if row else 0,
    }


def get_form_stats(form_id: int) -> RegistrationStats:
    conn = connect_db()
    try:
        return _aggregate_stats(conn.cursor(), "form_id = ? OR form_id IS NULL", (form_id,))
    finally:
        conn.close()


def get_registration_stats() -> RegistrationStats:
    conn = connect_db()
    try:
        return _aggregate_stats(conn.cursor())
    finally:
        conn.close()


def set_registration_qr(reg_id: str, qr_code_data: str) -> bool:
    """Bind QR data to a registration that has none yet; False otherwise."""
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE registrations
        SET qr_code_data = ?, has_qr = 1
        WHERE id = ? AND has_qr = 0
        """,
        (qr_code_data, reg_id),
    )
    updated = cur.rowcount > 0
    conn.commit()
    conn.close()
    return updated


def set_registration_revoked(reg_id: str) -> bool:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("UPDATE registrations SET status = 'revoked' WHERE id = ?", (reg_id,))
    updated = cur.rowcount > 0
    conn.commit()
    conn.close()
    return updated


def delete_registration(reg_id: str) -> bool:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("DELETE FROM registrations WHERE id = ?", (reg_id,))
    deleted = cur.rowcount > 0
    conn.commit()
    conn.close()
    return deleted


# -----------------------------
# Event forms
# -----------------------------
def _row_to_event_form(row: tuple) -> EventForm:
    (
        form_id,
        title,
        description,
        event_date,
        location,
        max_group_size,
        fields_json,
        is_published,
        created_at,
        updated_at,
    ) = row
    try:
        fields = json.loads(fields_json or "[]")
    except json.JSONDecodeError:
        fields = []
    return {
        "id": int(form_id),
        "title": str(title),
        "description": description,
        "event_date": event_date,
        "location": location,
        "max_group_size": int(max_group_size),
        "fields": [str(f) for f in fields] if isinstance(fields, list) else [],
        "is_published": is_published == 1,
        "created_at": str(created_at),
        "updated_at": str(updated_at),
    }


def _clean_form_values(values: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(values) - EVENT_FORM_UPDATABLE
    if unknown:
        raise FormValidationError(f"Unknown form fields: {', '.join(sorted(unknown))}.")

    out: dict[str, Any] = {}
    if "title" in values:
        title = (values["title"] or "").strip()
        if not title:
            raise FormValidationError("title is required.")
        out["title"] = title
    for key in ("description", "event_date", "location"):
        if key in values:
            out[key] = _clean_optional(values[key])
    if "max_group_size" in values:
        size = values["max_group_size"]
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise FormValidationError("max_group_size must be an integer >= 1.")
        out["max_group_size"] = size
    if "fields" in values:
        fields = values["fields"] or []
        if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
            raise FormValidationError("fields must be a list of strings.")
        out["fields_json"] = json.dumps([f.strip() for f in fields if f.strip()])
    return out


def create_event_form(
    *,
    title: str,
    description: str | None = None,
    event_date: str | None = None,
    location: str | None = None,
    max_group_size: int = 1,
    fields: list[str] | None = None,
) -> EventForm:
    values = _clean_form_values(
        {
            "title": title,
            "description": description,
            "event_date": event_date,
            "location": location,
            "max_group_size": max_group_size,
            "fields": fields or [],
        }
    )
    now = _utc_now()

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO event_forms (
            title, description, event_date, location, max_group_size,
            fields_json, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            values["title"],
            values["description"],
            values["event_date"],
            values["location"],
            values["max_group_size"],
            values["fields_json"],
            now,
            now,
        ),
    )
    form_id = int(cur.lastrowid)
    conn.commit()
    cur.execute(f"SELECT {EVENT_FORM_COLUMNS} FROM event_forms WHERE id = ?", (form_id,))
    row = cur.fetchone()
    conn.close()
    return _row_to_event_form(row)


def get_event_form(form_id: int, *, conn: sqlite3.Connection | None = None) -> EventForm | None:
    owns_conn = conn is None
    active_conn = conn or connect_db()
    try:
        cur = active_conn.cursor()
        cur.execute(
            f"""
            SELECT {EVENT_FORM_COLUMNS}
            FROM event_forms
            WHERE id = ?
            """,
            (form_id,),
        )
        row = cur.fetchone()
        return _row_to_event_form(row) if row else None
    finally:
        if owns_conn:
            active_conn.close()


def get_all_event_forms() -> list[EventForm]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"""
        SELECT {EVENT_FORM_COLUMNS}
        FROM event_forms
        ORDER BY created_at DESC, id DESC
    """)
    rows = cur.fetchall()
    conn.close()
    return [_row_to_event_form(r) for r in rows]


def update_event_form(form_id: int, changes: Mapping[str, Any]) -> bool:
    """Apply a partial update; False when no form has this id."""
    values = _clean_form_values(changes)
    values["updated_at"] = _utc_now()
    assignments = ", ".join(f"{column} = ?" for column in values)

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"UPDATE event_forms SET {assignments} WHERE id = ?",
        (*values.values(), form_id),
    )
    updated = cur.rowcount > 0
    conn.commit()
    conn.close()
    return updated


def publish_event_form(form_id: int) -> bool:
    """Publish one form and unpublish every other, in a single transaction."""
    conn = connect_db()
    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
        cur.execute("SELECT 1 FROM event_forms WHERE id = ?", (form_id,))
        if not cur.fetchone():
            conn.rollback()
            return False
        now = _utc_now()
        cur.execute(
            """
            UPDATE event_forms
            SET is_published = 0, updated_at = ?
            WHERE is_published = 1 AND id <> ?
            """,
            (now, form_id),
        )
        cur.execute(
            "UPDATE event_forms SET is_published = 1, updated_at = ? WHERE id = ?",
            (now, form_id),
        )
        conn.commit()
        return True
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()


def unpublish_event_form(form_id: int) -> bool:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        "UPDATE event_forms SET is_published = 0, updated_at = ? WHERE id = ?",
        (_utc_now(), form_id),
    )
    updated = cur.rowcount > 0
    conn.commit()
    conn.close()
    return updated


def get_published_form() -> EventForm | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"""
        SELECT {EVENT_FORM_COLUMNS}
        FROM event_forms
        WHERE is_published = 1
        ORDER BY updated_at DESC
        LIMIT 1
    """)
    row = cur.fetchone()
    conn.close()
    return _row_to_event_form(row) if row else None


def delete_event_form(form_id: int) -> bool:
    """Delete a form; its registrations keep existing with form_id set to NULL."""
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("DELETE FROM event_forms WHERE id = ?", (form_id,))
    deleted = cur.rowcount > 0
    conn.commit()
    conn.close()
    return deleted

