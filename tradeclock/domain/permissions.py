"""Notification-permission outcomes and their user-facing copy."""
from enum import Enum


class BrowserPermission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DISMISSED = "dismissed"
    UNSUPPORTED = "unsupported"


class PushPermission(str, Enum):
    GRANTED = "granted"
    AUTH_REQUIRED = "auth-required"
    PERMISSION_DEFAULT = "permission-default"
    MISSING_VAPID = "missing-vapid"
    TOKEN_PENDING = "token-pending"
    ERROR = "error"


_MESSAGES = {
    BrowserPermission.GRANTED: "Browser notifications are enabled.",
    BrowserPermission.DENIED: "Browser notifications are blocked. Allow them in your browser settings to get alerts.",
    BrowserPermission.DISMISSED: "Browser notifications were not enabled. You can try again any time.",
    BrowserPermission.UNSUPPORTED: "This browser does not support notifications.",
    PushPermission.GRANTED: "Push notifications are enabled on this device.",
    PushPermission.AUTH_REQUIRED: "Sign in to receive push notifications.",
    PushPermission.PERMISSION_DEFAULT: "Allow notifications when prompted to receive push reminders.",
    PushPermission.MISSING_VAPID: "Push notifications are not configured on the server.",
    PushPermission.TOKEN_PENDING: "This device is still registering for push notifications.",
    PushPermission.ERROR: "Push notifications could not be enabled. Please try again.",
}


def permission_message(outcome: BrowserPermission | PushPermission | str) -> str:
    """Copy for a permission outcome; unknown values get the generic error copy."""
    if isinstance(outcome, (BrowserPermission, PushPermission)):
        return _MESSAGES[outcome]
    for enum_cls in (BrowserPermission, PushPermission):
        try:
            return _MESSAGES[enum_cls(outcome)]
        except ValueError:
            continue
    return _MESSAGES[PushPermission.ERROR]
