from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.logger import get_logger
from backend.security import require_session
from backend.services import tickets
from backend.services.qr import build_ticket_payload, parse_ticket_payload, render_qr_data_url
from database.db import (
    RegistrationValidationError,
    create_registration,
    get_all_registrations,
    get_event_form,
    get_published_form,
    get_registration,
)

router = APIRouter()
admin = APIRouter(dependencies=[Depends(require_session)])
log = get_logger("registrations")


class RegistrationCreate(BaseModel):
    name: str
    email: str
    phone: str | None = None
    organization: str | None = None
    group_size: int = Field(default=1, ge=1)
    form_id: int | None = None


class AdminRegistrationCreate(RegistrationCreate):
    max_scans: int | None = Field(default=None, ge=1)


class ScanRequest(BaseModel):
    ticket_data: str


def _require_registration(reg_id: str):
    registration = get_registration(reg_id)
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found.")
    return registration


@router.post("/register", status_code=201)
def public_register(payload: RegistrationCreate):
    if payload.form_id is None:
        form = get_published_form()
    else:
        form = get_event_form(payload.form_id)

    if not form:
        raise HTTPException(status_code=404, detail="No form is accepting registrations.")
    if not form["is_published"]:
        raise HTTPException(status_code=400, detail="Form is not accepting registrations.")
    if payload.group_size > form["max_group_size"]:
        raise HTTPException(
            status_code=400,
            detail=f"Group size cannot exceed {form['max_group_size']}.",
        )

    data = payload.model_dump()
    data["form_id"] = form["id"]
    try:
        registration = create_registration(**data)
    except RegistrationValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    log.info("Registration %s created for form %d", registration["id"], form["id"])
    return registration


@admin.post("/registrations", status_code=201)
def admin_register(payload: AdminRegistrationCreate):
    try:
        return create_registration(**payload.model_dump())
    except RegistrationValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@admin.get("/registrations")
def list_registrations():
    return get_all_registrations()


@admin.get("/registrations/{reg_id}")
def registration_detail(reg_id: str):
    return _require_registration(reg_id)


@admin.delete("/registrations/{reg_id}")
def delete_registration(reg_id: str):
    if not tickets.delete_registration(reg_id):
        raise HTTPException(status_code=404, detail="Registration not found.")
    return {"ok": True}


@admin.post("/registrations/{reg_id}/qr")
def issue_qr(reg_id: str):
    registration = _require_registration(reg_id)
    if registration["has_qr"]:
        raise HTTPException(status_code=409, detail="QR code already generated.")

    payload = build_ticket_payload(registration["id"])
    if not tickets.generate_qr_code(registration["id"], payload):
        # Lost a race with another issuer; the first payload stays bound.
        raise HTTPException(status_code=409, detail="QR code already generated.")

    return {
        "registration": get_registration(reg_id),
        "qr_code_data": payload,
        "qr_image": render_qr_data_url(payload),
    }


@admin.get("/registrations/{reg_id}/qr")
def show_qr(reg_id: str):
    registration = _require_registration(reg_id)
    if not registration["has_qr"] or not registration["qr_code_data"]:
        raise HTTPException(status_code=404, detail="QR code not generated.")
    return {
        "qr_code_data": registration["qr_code_data"],
        "qr_image": render_qr_data_url(registration["qr_code_data"]),
    }


@admin.post("/registrations/{reg_id}/revoke")
def revoke_registration(reg_id: str):
    if not tickets.revoke_qr_code(reg_id):
        raise HTTPException(status_code=404, detail="Registration not found.")
    return get_registration(reg_id)


@admin.get("/stats")
def stats():
    return tickets.get_stats()


@admin.post("/scan")
def scan_ticket(payload: ScanRequest):
    ticket_id = parse_ticket_payload(payload.ticket_data)
    if not ticket_id:
        raise HTTPException(status_code=400, detail="Unreadable ticket data.")
    result = tickets.verify_and_scan(ticket_id)
    if "registration" not in result:
        raise HTTPException(status_code=404, detail=result["message"])
    return result
