import base64
import hmac
from io import BytesIO

import qrcode

from backend.security import sign_value

PAYLOAD_PREFIX = "TICKET"
SIGNATURE_LENGTH = 16


def _ticket_signature(ticket_id: str) -> str:
    return sign_value(f"{PAYLOAD_PREFIX}:{ticket_id}")[:SIGNATURE_LENGTH]


def build_ticket_payload(ticket_id: str) -> str:
    return f"{PAYLOAD_PREFIX}:{ticket_id}:{_ticket_signature(ticket_id)}"


def parse_ticket_payload(raw: str) -> str | None:
    """
    Extract the ticket id from scanned QR text.

    A bare id like "69B83920" is accepted as typed at the door. A
    "TICKET:<id>:<sig>" payload must carry a valid signature.
    """
    value = (raw or "").strip()
    if not value:
        return None

    if not value.startswith(f"{PAYLOAD_PREFIX}:"):
        return value.upper() if ":" not in value else None

    parts = value.split(":")
    if len(parts) != 3 or not parts[1]:
        return None
    ticket_id, signature = parts[1].upper(), parts[2]
    if not hmac.compare_digest(signature, _ticket_signature(ticket_id)):
        return None
    return ticket_id


def render_qr_data_url(payload: str) -> str:
    img = qrcode.make(payload)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
