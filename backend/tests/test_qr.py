import base64

from backend.services.qr import build_ticket_payload, parse_ticket_payload, render_qr_data_url


def test_payload_parses_back_to_ticket_id():
    payload = build_ticket_payload("69B83920")
    assert payload.startswith("TICKET:69B83920:")
    assert parse_ticket_payload(payload) == "69B83920"
    assert parse_ticket_payload(f"  {payload}\n") == "69B83920"


def test_bare_ticket_id_is_accepted():
    assert parse_ticket_payload("69b83920") == "69B83920"


def test_tampered_payload_is_rejected():
    payload = build_ticket_payload("69B83920")
    forged = payload.replace("69B83920", "11111111")
    assert parse_ticket_payload(forged) is None
    assert parse_ticket_payload("TICKET:69B83920") is None
    assert parse_ticket_payload("TICKET::abc") is None
    assert parse_ticket_payload("OTHER:69B83920:abc") is None
    assert parse_ticket_payload("   ") is None


def test_render_qr_data_url_is_png():
    url = render_qr_data_url(build_ticket_payload("69B83920"))
    prefix = "data:image/png;base64,"
    assert url.startswith(prefix)
    raw = base64.b64decode(url[len(prefix):])
    assert raw.startswith(b"\x89PNG")
