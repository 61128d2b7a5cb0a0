"""
Web Push subscription API endpoints.
"""
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel

from tradeclock.api.deps import get_db, get_optional_user_id
from tradeclock.application.push_service import push_capability, send_push_to_user
from tradeclock.config import get_settings
from tradeclock.domain.permissions import permission_message
from tradeclock.infrastructure.db.models import PushSubscription

router = APIRouter(prefix="/api/push", tags=["push"])


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class SubscribeRequest(BaseModel):
    endpoint: str
    keys: PushKeys


@router.get("/status")
def push_status(request: Request, db: Session = Depends(get_db)):
    """Whether push can reach the current user, with copy for the UI."""
    outcome = push_capability(db, get_optional_user_id(request))
    return {
        "status": outcome.value,
        "message": permission_message(outcome),
        "vapidPublicKey": get_settings().VAPID_PUBLIC_KEY,
    }


@router.post("/subscribe")
def subscribe(body: SubscribeRequest, request: Request, db: Session = Depends(get_db)):
    user_id = get_optional_user_id(request)
    if not user_id:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)

    existing = db.query(PushSubscription).filter(
        PushSubscription.endpoint == body.endpoint
    ).first()

    if existing:
        existing.user_id = user_id
        existing.p256dh = body.keys.p256dh
        existing.auth = body.keys.auth
    else:
        db.add(PushSubscription(
            user_id=user_id,
            endpoint=body.endpoint,
            p256dh=body.keys.p256dh,
            auth=body.keys.auth,
        ))

    db.commit()
    return {"success": True}


@router.delete("/unsubscribe")
def unsubscribe(body: SubscribeRequest, request: Request, db: Session = Depends(get_db)):
    user_id = get_optional_user_id(request)
    if not user_id:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)

    deleted = db.query(PushSubscription).filter(
        PushSubscription.endpoint == body.endpoint,
        PushSubscription.user_id == user_id,
    ).delete()
    db.commit()

    return {"success": True, "deleted": deleted}


@router.post("/test")
def test_push(request: Request, db: Session = Depends(get_db)):
    """Send a test push to verify the setup."""
    user_id = get_optional_user_id(request)
    if not user_id:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)

    sent = send_push_to_user(db, user_id, {
        "title": "TradeClock",
        "body": "Push reminders are working!",
        "url": "/calendar",
    })
    return {"success": True, "sent": sent}
