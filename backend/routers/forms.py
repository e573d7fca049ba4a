from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.logger import get_logger
from backend.security import require_session
from database.db import (
    FormValidationError,
    create_event_form,
    delete_event_form,
    get_all_event_forms,
    get_event_form,
    get_form_stats,
    get_published_form,
    get_registrations_by_form_id,
    publish_event_form,
    unpublish_event_form,
    update_event_form,
)

router = APIRouter()
admin = APIRouter(dependencies=[Depends(require_session)])
log = get_logger("forms")


class EventFormCreate(BaseModel):
    title: str
    description: str | None = None
    event_date: str | None = None
    location: str | None = None
    max_group_size: int = Field(default=1, ge=1)
    fields: list[str] = Field(default_factory=list)


class EventFormUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    event_date: str | None = None
    location: str | None = None
    max_group_size: int | None = Field(default=None, ge=1)
    fields: list[str] | None = None


def _require_form(form_id: int):
    form = get_event_form(form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found.")
    return form


@router.get("/forms/published")
def published_form():
    form = get_published_form()
    if not form:
        raise HTTPException(status_code=404, detail="No form is currently published.")
    return form


@admin.get("/forms")
def list_forms():
    return get_all_event_forms()


@admin.post("/forms", status_code=201)
def create_form(payload: EventFormCreate):
    try:
        return create_event_form(**payload.model_dump())
    except FormValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@admin.get("/forms/{form_id}")
def form_detail(form_id: int):
    return _require_form(form_id)


@admin.put("/forms/{form_id}")
def update_form(form_id: int, payload: EventFormUpdate):
    changes = payload.model_dump(exclude_unset=True)
    try:
        updated = update_event_form(form_id, changes)
    except FormValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not updated:
        raise HTTPException(status_code=404, detail="Form not found.")
    return get_event_form(form_id)


@admin.delete("/forms/{form_id}")
def delete_form(form_id: int):
    if not delete_event_form(form_id):
        raise HTTPException(status_code=404, detail="Form not found.")
    log.info("Form %d deleted", form_id)
    return {"ok": True}


@admin.post("/forms/{form_id}/publish")
def publish_form(form_id: int):
    if not publish_event_form(form_id):
        raise HTTPException(status_code=404, detail="Form not found.")
    log.info("Form %d published", form_id)
    return get_event_form(form_id)


@admin.post("/forms/{form_id}/unpublish")
def unpublish_form(form_id: int):
    if not unpublish_event_form(form_id):
        raise HTTPException(status_code=404, detail="Form not found.")
    log.info("Form %d unpublished", form_id)
    return get_event_form(form_id)


@admin.get("/forms/{form_id}/registrations")
def form_registrations(form_id: int):
    _require_form(form_id)
    return get_registrations_by_form_id(form_id)


@admin.get("/forms/{form_id}/stats")
def form_stats(form_id: int):
    _require_form(form_id)
    return get_form_stats(form_id)
