"""
Web Push notification service.

Sends push notifications via pywebpush and manages stale subscriptions.
"""
import json
import logging

from pywebpush import webpush, WebPushException
from sqlalchemy.orm import Session

from tradeclock.config import get_settings
from tradeclock.domain.permissions import PushPermission
from tradeclock.infrastructure.db.models import PushSubscription

logger = logging.getLogger(__name__)


def _raw_private_key(value: str) -> str:
    # .env may store PEM with literal \n or real newlines depending on quoting
    if "\\n" in value:
        value = value.replace("\\n", "\n")
    # pywebpush accepts either a PEM string or a raw base64url key
    if "BEGIN" in value:
        lines = [line.strip() for line in value.strip().splitlines()
                 if line.strip() and not line.strip().startswith("-----")]
        value = "".join(lines)
    return value


def push_capability(db: Session, user_id: int | None) -> PushPermission:
    """Server-side view of whether push can reach this user."""
    if not user_id:
        return PushPermission.AUTH_REQUIRED
    settings = get_settings()
    if not settings.VAPID_PRIVATE_KEY or not settings.VAPID_PUBLIC_KEY:
        return PushPermission.MISSING_VAPID
    has_sub = db.query(PushSubscription).filter(PushSubscription.user_id == user_id).first()
    return PushPermission.GRANTED if has_sub else PushPermission.TOKEN_PENDING


def send_web_push(db: Session, subscription: PushSubscription, payload: dict) -> bool:
    """
    Send a push notification to a single subscription.

    payload format:
        {"title": "...", "body": "...", "url": "/calendar", "tag": "...", "data": {...}}

    Returns True on success, False on failure.
    Automatically deletes stale subscriptions (410/404).
    """
    settings = get_settings()
    if not settings.VAPID_PRIVATE_KEY or not settings.VAPID_PUBLIC_KEY:
        logger.warning("VAPID keys not configured, skipping push")
        return False

    subscription_info = {
        "endpoint": subscription.endpoint,
        "keys": {
            "p256dh": subscription.p256dh,
            "auth": subscription.auth,
        },
    }

    try:
        webpush(
            subscription_info=subscription_info,
            data=json.dumps(payload, ensure_ascii=False),
            vapid_private_key=_raw_private_key(settings.VAPID_PRIVATE_KEY),
            vapid_claims={"sub": settings.VAPID_MAILTO},
        )
        return True
    except WebPushException as e:
        status_code = e.response.status_code if e.response is not None else 0
        if status_code in (404, 410):
            logger.info("Subscription expired (HTTP %d), removing: %s", status_code, subscription.endpoint[:60])
            db.query(PushSubscription).filter(PushSubscription.id == subscription.id).delete()
            db.commit()
        else:
            logger.error("WebPush error (HTTP %d): %s", status_code, e)
        return False


def send_push_to_user(db: Session, user_id: int, payload: dict) -> int:
    """
    Send push notification to all subscriptions of a user.

    Returns the number of successful deliveries.
    """
    subs = db.query(PushSubscription).filter(PushSubscription.user_id == user_id).all()
    if not subs:
        return 0

    sent = 0
    for sub in subs:
        if send_web_push(db, sub, payload):
            sent += 1
    return sent
