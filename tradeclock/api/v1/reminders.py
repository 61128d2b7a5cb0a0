"""
Reminders API endpoints
"""
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tradeclock.api.deps import get_db, get_current_user_id
from tradeclock.application.reminders_service import RemindersService, ReminderValidationError
from tradeclock.config import get_settings
from tradeclock.domain.policy import estimate_daily_triggers, policy_warnings
from tradeclock.domain.recurrence import DEFAULT_MAX_OCCURRENCES, expand_occurrences


router = APIRouter(prefix="/api/v1/reminders", tags=["reminders"])


# === Request models ===

class PreviewRequest(BaseModel):
    reminders: list[Any] = Field(default_factory=list)
    recurrence: dict[str, Any] | None = None


class OccurrencesRequest(BaseModel):
    eventKey: str
    rangeStartMs: int
    rangeEndMs: int
    maxOccurrences: int = DEFAULT_MAX_OCCURRENCES


class TriggerRequest(BaseModel):
    triggerId: str
    eventKey: str | None = None
    channel: str = "inApp"
    occurrenceEpochMs: int | None = None
    minutesBefore: int | None = None
    sentAtMs: int | None = None


# === Helpers ===

def _service(request: Request, db: Session) -> RemindersService:
    return RemindersService(db, feed=getattr(request.app.state, "reminder_feed", None))


def _payload_recurrence(payload: dict[str, Any]) -> Any:
    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    return metadata.get("recurrence") or payload.get("recurrence")


# === Endpoints ===

@router.get("/")
def list_reminders(
    request: Request,
    enabled_only: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    records = _service(request, db).list_for_user(user_id, enabled_only=enabled_only)
    return {"reminders": [r.to_document() for r in records]}


@router.put("/")
def upsert_reminder(
    request: Request,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Create or update a reminder; warnings are advisory and never block the save."""
    warnings = policy_warnings(
        payload.get("reminders"),
        _payload_recurrence(payload),
        get_settings().DAILY_REMINDER_CAP,
    )
    try:
        event_key = _service(request, db).upsert(user_id, payload)
    except ReminderValidationError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    return {"eventKey": event_key, "warnings": warnings}


@router.post("/preview")
def preview_policy(req: PreviewRequest):
    """Warnings + estimated daily triggers for a reminder configuration (nothing is saved)."""
    return {
        "warnings": policy_warnings(req.reminders, req.recurrence, get_settings().DAILY_REMINDER_CAP),
        "estimatedDailyTriggers": estimate_daily_triggers(req.reminders, req.recurrence),
    }


@router.post("/occurrences")
def list_occurrences(
    request: Request,
    req: OccurrencesRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    record = _service(request, db).get(user_id, req.eventKey)
    if record is None:
        raise HTTPException(status_code=404, detail="Reminder not found")

    occurrences = expand_occurrences(record, req.rangeStartMs, req.rangeEndMs, req.maxOccurrences)
    return {
        "eventKey": record.event_key,
        "occurrences": [
            {"occurrenceEpochMs": o.occurrence_epoch_ms, "occurrenceKey": o.occurrence_key}
            for o in occurrences
        ],
    }


@router.post("/triggers")
def record_trigger(
    request: Request,
    req: TriggerRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Mark an in-app / browser reminder as fired so other tabs and devices skip it."""
    recorded = _service(request, db).record_trigger(user_id, req.triggerId, req.model_dump(exclude={"triggerId"}))
    return {"recorded": recorded}


@router.delete("/series/{series_id}")
def delete_series_reminders(
    series_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Remove every reminder attached to a deleted custom event."""
    return {"deleted": _service(request, db).delete_for_series(user_id, series_id)}


@router.get("/{event_key:path}")
def get_reminder(
    event_key: str,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    record = _service(request, db).get(user_id, event_key)
    if record is None:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return record.to_document()


@router.delete("/{event_key:path}")
def delete_reminder(
    event_key: str,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    if not _service(request, db).delete(user_id, event_key):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"success": True}
