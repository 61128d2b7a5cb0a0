"""Tests for notification-permission outcomes"""
from tradeclock.domain.permissions import BrowserPermission, PushPermission, permission_message


def test_enum_values_are_wire_strings():
    assert PushPermission.MISSING_VAPID == "missing-vapid"
    assert BrowserPermission("dismissed") is BrowserPermission.DISMISSED


def test_message_for_enum_and_string():
    assert permission_message(PushPermission.AUTH_REQUIRED) == "Sign in to receive push notifications."
    assert permission_message("token-pending") == permission_message(PushPermission.TOKEN_PENDING)


def test_unknown_outcome_gets_error_copy():
    assert permission_message("weird") == permission_message(PushPermission.ERROR)
