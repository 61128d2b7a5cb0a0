"""Tests for insight key computation"""
from tradeclock.domain.identity import resolve_identity
from tradeclock.domain.insight_keys import (
    compute_activity_insight_keys,
    compute_blog_insight_keys,
    compute_identity_insight_keys,
    compute_note_insight_keys,
    deduplicate_keys,
    determine_activity_visibility,
    filter_keys_by_prefix,
    find_canonical_slug,
    normalize_slug,
)


class TestSlugs:
    def test_normalize_slug(self):
        assert normalize_slug("Non-Farm Payroll") == "non-farm-payroll"
        assert normalize_slug("china_gdp") == "china-gdp"
        assert normalize_slug("  CPI (m/m) ") == "cpi-mm"
        assert normalize_slug(None) == ""

    def test_find_canonical_slug(self):
        assert find_canonical_slug("NFP") == "nfp"
        assert find_canonical_slug("CPI m/m") == "cpi"
        assert find_canonical_slug("Trade Balance") is None
        assert find_canonical_slug("") is None


class TestComputeKeys:
    def test_blog_post(self):
        post = {"id": "p1", "eventTags": ["NFP"], "currencyTags": ["usd", "xyz"]}
        assert compute_blog_insight_keys(post) == [
            "post:p1", "event:nfp", "currency:USD", "eventCurrency:nfp_USD",
        ]

    def test_blog_post_unmapped_tag(self):
        assert compute_blog_insight_keys({"eventTags": ["Trade Balance"]}) == ["eventNameKey:trade-balance"]

    def test_note(self):
        assert compute_note_insight_keys({"primaryNameKey": "nfp", "currencyKey": "usd"}) == [
            "event:nfp", "currency:USD", "eventCurrency:nfp_USD",
        ]

    def test_activity(self):
        keys = compute_activity_insight_keys("event_rescheduled", {"eventName": "FOMC Statement", "currency": "usd"})
        assert keys == ["event:fomc", "currency:USD", "eventCurrency:fomc_USD"]

    def test_identity(self):
        identity = resolve_identity({"name": "NFP", "currency": "USD", "date": "2026-02-06T13:30:00Z"})
        assert compute_identity_insight_keys(identity) == [
            "event:nfp", "currency:USD", "eventCurrency:nfp_USD", "eventIdentity:nfp-usd-2026-02-06",
        ]

    def test_unresolved_identity_has_no_keys(self):
        assert compute_identity_insight_keys(resolve_identity({"currency": "USD"})) == []


class TestHelpers:
    def test_deduplicate_keeps_order(self):
        assert deduplicate_keys(["b", "a", "b"]) == ["b", "a"]

    def test_filter_by_prefix(self):
        keys = ["event:nfp", "currency:USD", "event:cpi"]
        assert filter_keys_by_prefix(keys, "event:") == ["event:nfp", "event:cpi"]

    def test_activity_visibility(self):
        assert determine_activity_visibility("event_rescheduled") == "public"
        assert determine_activity_visibility("sync_failed") == "internal"
        assert determine_activity_visibility("user_signup") == "admin"
        assert determine_activity_visibility("something_new") == "internal"
