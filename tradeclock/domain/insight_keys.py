"""
Canonical insight keys.

Blog posts, activity-log entries and user event notes are linked to the
calendar through a flat list of prefixed string keys:

- event:{slug}                 canonical economic-event slug
- currency:{CODE}              canonical currency code
- eventCurrency:{slug}_{CODE}  event x currency combination
- post:{postId}                blog post reference
- eventNameKey:{slug}          unmapped event names
- eventIdentity:{composite}    same-event identity of a calendar event

All functions are pure and return de-duplicated lists in insertion order.
"""
import re
from typing import Any, Iterable

from tradeclock.domain.identity import EventIdentity


BLOG_ECONOMIC_EVENTS = (
    "nfp", "fomc", "cpi", "ppi", "rba", "ecb", "boe", "boj", "snb", "rbnz",
    "china-gdp", "china-pmi", "eurozone-gdp", "eurozone-pmi", "uk-gdp", "uk-pmi",
    "japan-gdp", "japan-pmi", "canada-gdp", "ism-pmi", "unemployment",
    "retail-sales", "housing-starts", "consumer-sentiment", "oil-inventory",
)

BLOG_CURRENCIES = (
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD", "CNY",
    "SGD", "HKD", "INR", "MXN", "BRL", "KRW", "SEK", "NOK",
)

VISIBILITY_BY_TYPE = {
    "event_rescheduled": "public",
    "event_cancelled": "public",
    "event_reinstated": "public",
    "event_created": "public",
    "event_deleted": "public",
    "event_updated": "public",
    "blog_published": "public",
    "canonical_event_updated": "public",
    "blog_created": "internal",
    "blog_updated": "internal",
    "blog_deleted": "internal",
    "sync_completed": "internal",
    "sync_failed": "internal",
    "gpt_upload": "internal",
    "event_description_created": "internal",
    "event_description_updated": "internal",
    "event_description_deleted": "internal",
    "blog_author_created": "internal",
    "blog_author_updated": "internal",
    "blog_author_deleted": "internal",
    "events_exported": "internal",
    "user_signup": "admin",
    "settings_changed": "admin",
}


def normalize_slug(value: Any) -> str:
    """'Non-Farm Payroll' -> 'non-farm-payroll', 'china_gdp' -> 'china-gdp'."""
    if not value or not isinstance(value, str):
        return ""
    slug = value.lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = slug.replace("_", "-")
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def find_canonical_slug(event_name: Any) -> str | None:
    """Exact slug match first, then the first slug that contains / is contained in the name."""
    normalized = normalize_slug(event_name)
    if not normalized:
        return None
    if normalized in BLOG_ECONOMIC_EVENTS:
        return normalized
    for slug in BLOG_ECONOMIC_EVENTS:
        if slug in normalized or normalized in slug:
            return slug
    return None


def _canonical_currency(code: Any) -> str | None:
    if not code or not isinstance(code, str):
        return None
    upper = code.strip().upper()
    return upper if upper in BLOG_CURRENCIES else None


def deduplicate_keys(keys: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(keys))


def filter_keys_by_prefix(keys: Iterable[str], prefix: str) -> list[str]:
    return [key for key in keys if key.startswith(prefix)]


def _tag_keys(event_tags: Iterable[Any], currency_tags: Iterable[Any]) -> list[str]:
    event_tags = list(event_tags)
    currency_tags = list(currency_tags)
    keys: list[str] = []
    for tag in event_tags:
        normalized = normalize_slug(tag)
        if normalized in BLOG_ECONOMIC_EVENTS:
            keys.append(f"event:{normalized}")
        elif normalized:
            keys.append(f"eventNameKey:{normalized}")
    for code in currency_tags:
        currency = _canonical_currency(code)
        if currency:
            keys.append(f"currency:{currency}")
    for tag in event_tags:
        normalized = normalize_slug(tag)
        if normalized not in BLOG_ECONOMIC_EVENTS:
            continue
        for code in currency_tags:
            currency = _canonical_currency(code)
            if currency:
                keys.append(f"eventCurrency:{normalized}_{currency}")
    return keys


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def compute_blog_insight_keys(post: dict[str, Any]) -> list[str]:
    keys: list[str] = []
    if post.get("id"):
        keys.append(f"post:{post['id']}")
    keys.extend(_tag_keys(_as_list(post.get("eventTags")), _as_list(post.get("currencyTags"))))
    return deduplicate_keys(keys)


def compute_activity_insight_keys(activity_type: str, metadata: dict[str, Any] | None = None) -> list[str]:
    metadata = metadata or {}
    keys: list[str] = []
    if metadata.get("postId"):
        keys.append(f"post:{metadata['postId']}")

    event_tags = _as_list(metadata.get("eventTags"))
    currency_tags = _as_list(metadata.get("currencyTags"))
    keys.extend(_tag_keys(event_tags, []))
    keys.extend(_tag_keys([], currency_tags))

    event_slug = None
    event_name = metadata.get("eventName")
    if event_name:
        event_slug = find_canonical_slug(event_name)
        if event_slug:
            keys.append(f"event:{event_slug}")
        elif normalize_slug(event_name):
            keys.append(f"eventNameKey:{normalize_slug(event_name)}")

    currency = _canonical_currency(metadata.get("currencyCode") or metadata.get("currency"))
    if currency:
        keys.append(f"currency:{currency}")
    if event_slug and currency:
        keys.append(f"eventCurrency:{event_slug}_{currency}")

    keys.extend(filter_keys_by_prefix(_tag_keys(event_tags, currency_tags), "eventCurrency:"))
    return deduplicate_keys(keys)


def compute_note_insight_keys(note: dict[str, Any]) -> list[str]:
    keys: list[str] = []
    event_norm = normalize_slug(note.get("primaryNameKey"))
    currency = _canonical_currency(note.get("currencyKey"))
    if event_norm in BLOG_ECONOMIC_EVENTS:
        keys.append(f"event:{event_norm}")
    elif event_norm:
        keys.append(f"eventNameKey:{event_norm}")
    if currency:
        keys.append(f"currency:{currency}")
    if event_norm in BLOG_ECONOMIC_EVENTS and currency:
        keys.append(f"eventCurrency:{event_norm}_{currency}")
    return deduplicate_keys(keys)


def compute_identity_insight_keys(identity: EventIdentity) -> list[str]:
    """Insight keys of a resolved calendar event; empty for an unresolved identity."""
    if not identity.is_resolved:
        return []
    keys = compute_note_insight_keys({
        "primaryNameKey": identity.primary_name_key,
        "currencyKey": identity.currency_key,
    })
    composite = identity.composite_key or identity.event_id
    if composite:
        keys.append(f"eventIdentity:{composite}")
    return deduplicate_keys(keys)


def determine_activity_visibility(activity_type: str) -> str:
    """public / internal / admin; unknown types default to internal."""
    return VISIBILITY_BY_TYPE.get(activity_type, "internal")
