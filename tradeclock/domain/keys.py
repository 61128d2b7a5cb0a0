"""
Stable key derivation for reminders.

- event key:  one concrete occurrence ("source:id", "source:name-ccy-date", ...)
- series key: a recurring template, shared by every occurrence
- trigger id: one (occurrence, lead time, channel) firing

Keys are plain strings and must be byte-identical for logically equal input,
whichever alias fields the source happened to populate.
"""
import base64
import binascii
from typing import Any

from tradeclock.domain.identity import (
    EventIdentity,
    first_populated,
    normalize_key,
    resolve_identity,
)


TITLE_FIELDS = (
    "title", "name", "Name", "canonicalName", "eventTitle", "eventName", "headline",
)
IMPACT_FIELDS = ("impact", "strength", "strengthValue")
CATEGORY_FIELDS = ("category", "Category")
CURRENCY_FIELDS = ("currency", "Currency")
TIMEZONE_FIELDS = ("timezone", "tz", "Timezone")
SOURCE_FIELDS = ("source", "Source", "eventSource")

DEFAULT_TITLE = "Event reminder"
UNKNOWN_SOURCE = "unknown"


def resolve_title(event: Any) -> str:
    return str(first_populated(event, TITLE_FIELDS) or DEFAULT_TITLE)


def resolve_impact(event: Any) -> str:
    impact = first_populated(event, IMPACT_FIELDS)
    if impact is None:
        cache = first_populated(event, ("_displayCache",))
        if isinstance(cache, dict):
            impact = cache.get("strengthValue")
    return str(impact) if impact else "unknown"


def resolve_category(event: Any) -> str | None:
    value = first_populated(event, CATEGORY_FIELDS)
    return str(value) if value is not None else None


def resolve_currency(event: Any) -> str | None:
    value = first_populated(event, CURRENCY_FIELDS)
    return str(value) if value is not None else None


def resolve_source(event: Any, default: str = UNKNOWN_SOURCE) -> str:
    value = first_populated(event, SOURCE_FIELDS)
    return str(value) if value else default


def build_event_key(
    identity: EventIdentity,
    source: str | None,
    epoch_ms: int | None = None,
    fallback_title: str | None = None,
) -> str:
    """
    Build the key of one concrete event occurrence.

    Precedence: source id, same-event composite (name-currency-date),
    primary name, then normalized title with the epoch as a last resort.
    """
    source = source or UNKNOWN_SOURCE
    if identity.event_id:
        return f"{source}:{identity.event_id}"
    if identity.composite_key:
        return f"{source}:{identity.composite_key}"
    if identity.primary_name_key:
        return f"{source}:{identity.primary_name_key}"
    title = normalize_key(fallback_title) or "event"
    if isinstance(epoch_ms, int) and not isinstance(epoch_ms, bool) and epoch_ms:
        return f"{source}:{title}:{epoch_ms}"
    return f"{source}:{title}"


def build_series_key(
    identity: EventIdentity,
    source: str | None,
    currency: str | None = None,
    impact: str | None = None,
    category: str | None = None,
) -> str:
    """
    Build the template-level key: source:series:name:currency:impact:category.

    Deliberately ignores the date so every occurrence of a recurring
    definition collapses onto one key.
    """
    name_key = identity.primary_name_key or "event"
    currency_key = normalize_key(currency) or identity.currency_key or "na"
    impact_key = normalize_key(impact) or "unknown"
    category_key = normalize_key(category) or "na"
    return f"{source or UNKNOWN_SOURCE}:series:{name_key}:{currency_key}:{impact_key}:{category_key}"


def event_key_for(event: Any, source: str | None = None, epoch_ms: int | None = None) -> str:
    """Convenience: resolve the identity of a raw event and build its event key."""
    return build_event_key(
        resolve_identity(event),
        source or resolve_source(event),
        epoch_ms,
        resolve_title(event),
    )


def series_key_for(event: Any, source: str | None = None) -> str:
    """Convenience: resolve the identity of a raw event and build its series key."""
    return build_series_key(
        resolve_identity(event),
        source or resolve_source(event),
        currency=resolve_currency(event),
        impact=resolve_impact(event),
        category=resolve_category(event),
    )


def build_trigger_id(event_key: str, occurrence_epoch_ms: int, minutes_before: int, channel: str) -> str:
    return f"{event_key}__{occurrence_epoch_ms}__{minutes_before}__{channel}"


def encode_doc_id(key: str) -> str:
    """base64url (no padding) encoding so keys containing '/' are safe row ids."""
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii").rstrip("=")


def decode_doc_id(doc_id: str) -> str:
    """Reverse of encode_doc_id. Ids that are not valid base64url are returned unchanged."""
    padded = doc_id + "=" * (-len(doc_id) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return doc_id
