import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

DB_PATH = Path(os.getenv("TICKETDESK_DB_PATH", BASE_DIR / "database" / "ticketdesk.db"))
DB_TIMEOUT_SECONDS = float(os.getenv("TICKETDESK_DB_TIMEOUT_SECONDS", "5"))

INSECURE_SESSION_SECRETS = {
    "ticketdesk-session-secret-change-me",
    "change-me",
    "changeme",
    "secret",
    "dev-secret-key",
}
INSECURE_ADMIN_PASSWORDS = {"admin", "admin123", "password", "changeme"}
MIN_SESSION_SECRET_LENGTH = 32

SESSION_SECRET = os.getenv("TICKETDESK_SESSION_SECRET", "ticketdesk-session-secret-change-me").strip()
ADMIN_USERNAME = os.getenv("TICKETDESK_ADMIN_USERNAME", "admin").strip() or "admin"
ADMIN_PASSWORD = os.getenv("TICKETDESK_ADMIN_PASSWORD", "admin123").strip()
AUTH_TOKEN_TTL_SECONDS = int(os.getenv("TICKETDESK_AUTH_TOKEN_TTL_SECONDS", "43200"))


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_samesite(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized in {"lax", "strict", "none"}:
        return normalized
    return "lax"


def _parse_log_level(value: str | None) -> str:
    normalized = (value or "").strip().upper()
    if normalized in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        return normalized
    return "INFO"


SESSION_COOKIE_NAME = os.getenv("TICKETDESK_SESSION_COOKIE_NAME", "ticketdesk_session").strip() or "ticketdesk_session"
COOKIE_SECURE = _parse_bool(os.getenv("TICKETDESK_COOKIE_SECURE"), True)
COOKIE_SAMESITE = _parse_samesite(os.getenv("TICKETDESK_COOKIE_SAMESITE"))

CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("TICKETDESK_CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://127.0.0.1:5173"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("TICKETDESK_CORS_ALLOW_METHODS"),
    ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("TICKETDESK_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("TICKETDESK_CORS_ALLOW_CREDENTIALS"), True)
ENABLE_DEBUG_ENDPOINTS = _parse_bool(os.getenv("TICKETDESK_ENABLE_DEBUG_ENDPOINTS"), False)

LOG_LEVEL = _parse_log_level(os.getenv("TICKETDESK_LOG_LEVEL"))
HOST = os.getenv("TICKETDESK_HOST", "127.0.0.1").strip() or "127.0.0.1"
PORT = int(os.getenv("TICKETDESK_PORT", "8000"))


def validate_startup_config() -> list[str]:
    """
    Return every configuration problem that must stop the process from serving.

    An empty list means the service may start.
    """
    violations: list[str] = []

    if not SESSION_SECRET:
        violations.append("TICKETDESK_SESSION_SECRET is not set.")
    elif SESSION_SECRET.lower() in INSECURE_SESSION_SECRETS:
        violations.append("TICKETDESK_SESSION_SECRET uses a known insecure default.")
    elif len(SESSION_SECRET) < MIN_SESSION_SECRET_LENGTH:
        violations.append(
            f"TICKETDESK_SESSION_SECRET must be at least {MIN_SESSION_SECRET_LENGTH} characters."
        )

    if not ADMIN_PASSWORD:
        violations.append("TICKETDESK_ADMIN_PASSWORD is not set.")
    elif ADMIN_PASSWORD.lower() in INSECURE_ADMIN_PASSWORDS:
        violations.append("TICKETDESK_ADMIN_PASSWORD uses a known insecure default.")

    # Browsers drop SameSite=None cookies that are not also Secure.
    if COOKIE_SAMESITE == "none" and not COOKIE_SECURE:
        violations.append("TICKETDESK_COOKIE_SAMESITE=none requires TICKETDESK_COOKIE_SECURE=true.")

    if AUTH_TOKEN_TTL_SECONDS <= 0:
        violations.append("TICKETDESK_AUTH_TOKEN_TTL_SECONDS must be positive.")

    return violations
