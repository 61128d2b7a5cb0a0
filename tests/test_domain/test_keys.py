"""Tests for event / series / trigger key derivation"""
from tradeclock.domain.identity import resolve_identity
from tradeclock.domain.keys import (
    build_event_key,
    build_series_key,
    build_trigger_id,
    decode_doc_id,
    encode_doc_id,
    event_key_for,
    resolve_impact,
    resolve_title,
    series_key_for,
)


NFP = {"name": "NFP", "currency": "USD", "impact": "High", "date": "2026-02-06T13:30:00Z"}


class TestEventKey:
    def test_source_id_first(self):
        assert event_key_for({"id": 42, "name": "NFP"}, "ff") == "ff:42"

    def test_composite_identity(self):
        assert event_key_for(NFP, "ff") == "ff:nfp-usd-2026-02-06"

    def test_deterministic_across_alias_spellings(self):
        variant = {"Name": "nfp ", "Currency": "usd", "epochMs": 1770384600000}
        assert event_key_for(variant, "ff") == event_key_for(NFP, "ff")

    def test_stable_after_reschedule(self):
        rescheduled = {**NFP, "originalDatetimeUtc": "2026-02-06T13:30:00Z", "date": "2026-02-09T13:30:00Z"}
        assert event_key_for(rescheduled, "ff") == event_key_for(NFP, "ff")

    def test_name_only(self):
        assert event_key_for({"name": "Fed Speech"}, "ff") == "ff:fed speech"

    def test_title_and_epoch_fallback(self):
        empty = resolve_identity({})
        assert build_event_key(empty, "ff", 1700000000000, "Something") == "ff:something:1700000000000"
        assert build_event_key(empty, "ff") == "ff:event"
        assert build_event_key(empty, None) == "unknown:event"

    def test_source_from_event(self):
        assert event_key_for({"id": "7", "source": "investing"}) == "investing:7"


class TestSeriesKey:
    def test_segments(self):
        event = {"name": "CPI", "currency": "USD", "impact": "High", "category": "Inflation"}
        assert series_key_for(event, "ff") == "ff:series:cpi:usd:high:inflation"

    def test_defaults(self):
        assert build_series_key(resolve_identity({}), None) == "unknown:series:event:na:unknown:na"

    def test_ignores_date(self):
        march = {**NFP, "date": "2026-03-06T13:30:00Z"}
        assert series_key_for(march, "ff") == series_key_for(NFP, "ff")
        assert event_key_for(march, "ff") != event_key_for(NFP, "ff")


class TestResolvers:
    def test_title_default(self):
        assert resolve_title({}) == "Event reminder"
        assert resolve_title({"eventTitle": "GDP q/q"}) == "GDP q/q"

    def test_impact_from_display_cache(self):
        assert resolve_impact({"_displayCache": {"strengthValue": "Medium"}}) == "Medium"
        assert resolve_impact({}) == "unknown"


class TestTriggerAndDocIds:
    def test_trigger_id(self):
        assert build_trigger_id("ff:42", 1770384600000, 15, "push") == "ff:42__1770384600000__15__push"

    def test_doc_id_is_url_safe(self):
        key = "custom:rate/decision?x=1"
        doc_id = encode_doc_id(key)
        assert "/" not in doc_id
        assert "=" not in doc_id
        assert decode_doc_id(doc_id) == key

    def test_doc_id_unicode(self):
        key = "ff:zinsentscheidung-eur-2026-02-05 €"
        assert decode_doc_id(encode_doc_id(key)) == key

    def test_decode_invalid_returns_input(self):
        assert decode_doc_id("____") == "____"
