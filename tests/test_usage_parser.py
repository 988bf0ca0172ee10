"""Tests for turning usage responses into snapshots."""

from multicodex.core.models import LimitsOutcome, OutcomeKind, UsageSnapshot, UsageWindow

NOW = 1_700_000_000


def body(primary=None, secondary=None, review=None, credits=None):
    data = {"rate_limit": {}}
    if primary is not None:
        data["rate_limit"]["primary_window"] = primary
    if secondary is not None:
        data["rate_limit"]["secondary_window"] = secondary
    if review is not None:
        data["code_review_rate_limit"] = {"primary_window": review}
    if credits is not None:
        data["credits"] = credits
    return data


def test_headers_win_over_body_percent():
    snapshot = UsageSnapshot.from_usage_response(
        {"X-Codex-Primary-Used-Percent": "25"},
        body(primary={"used_percent": 10, "limit_window_seconds": 18000, "reset_at": NOW + 60}),
        now=NOW,
    )

    assert snapshot.primary.used_percent == 25.0
    assert snapshot.primary.window_duration_mins == 300
    assert snapshot.primary.resets_at == NOW + 60


def test_body_percent_used_without_headers():
    snapshot = UsageSnapshot.from_usage_response(
        {},
        body(
            primary={"used_percent": 10, "limit_window_seconds": 18000},
            secondary={"used_percent": 40, "limit_window_seconds": 604800},
        ),
        now=NOW,
    )

    assert snapshot.primary.used_percent == 10.0
    assert snapshot.secondary.used_percent == 40.0
    assert snapshot.secondary.window_duration_mins == 10080


def test_code_review_window_backs_missing_secondary():
    snapshot = UsageSnapshot.from_usage_response(
        {},
        body(primary={"used_percent": 5}, review={"used_percent": 70, "limit_window_seconds": 604800}),
        now=NOW,
    )

    assert snapshot.secondary.used_percent == 70.0
    assert snapshot.secondary.window_duration_mins == 10080


def test_duration_is_rounded_to_minutes_with_floor_of_one():
    snapshot = UsageSnapshot.from_usage_response(
        {},
        body(primary={"used_percent": 1, "limit_window_seconds": 20}, secondary={"used_percent": 1, "limit_window_seconds": 89}),
        now=NOW,
    )

    assert snapshot.primary.window_duration_mins == 1
    assert snapshot.secondary.window_duration_mins == 1


def test_missing_duration_defaults_to_known_windows():
    snapshot = UsageSnapshot.from_usage_response({}, body(primary={"used_percent": 1}, secondary={"used_percent": 2}), now=NOW)

    assert snapshot.primary.window_duration_mins == 300
    assert snapshot.secondary.window_duration_mins == 10080


def test_reset_after_seconds_is_relative_to_now():
    snapshot = UsageSnapshot.from_usage_response({}, body(primary={"used_percent": 1, "reset_after_seconds": 120}), now=NOW)

    assert snapshot.primary.resets_at == NOW + 120


def test_reset_at_takes_precedence_over_reset_after():
    snapshot = UsageSnapshot.from_usage_response(
        {}, body(primary={"used_percent": 1, "reset_at": NOW + 5, "reset_after_seconds": 999}), now=NOW
    )

    assert snapshot.primary.resets_at == NOW + 5


def test_credits_balance_header_and_body_flags():
    snapshot = UsageSnapshot.from_usage_response(
        {"x-codex-credits-balance": "25.0"},
        body(credits={"has_credits": True, "unlimited": False, "balance": 3}),
        now=NOW,
    )

    assert snapshot.credits.balance == "25"
    assert snapshot.credits.has_credits is True
    assert snapshot.credits.unlimited is False


def test_no_credit_information_means_no_credits():
    snapshot = UsageSnapshot.from_usage_response({}, body(primary={"used_percent": 1}), now=NOW)

    assert snapshot.credits is None


def test_camel_case_round_trip_through_cache_shape():
    snapshot = UsageSnapshot.from_usage_response(
        {"x-codex-primary-used-percent": "12.5"}, body(primary={"limit_window_seconds": 18000}), now=NOW
    )

    restored = UsageSnapshot.from_dict(snapshot.to_dict())

    assert restored == snapshot
    assert snapshot.to_dict()["primary"]["usedPercent"] == 12.5


def test_pick_windows_matches_by_duration_even_when_swapped():
    weekly = UsageWindow(used_percent=50, window_duration_mins=10080)
    five = UsageWindow(used_percent=10, window_duration_mins=300)

    assert UsageSnapshot(primary=weekly, secondary=five).pick_windows() == (five, weekly)


def test_pick_windows_falls_back_to_position():
    primary = UsageWindow(used_percent=1, window_duration_mins=60)
    secondary = UsageWindow(used_percent=2, window_duration_mins=1440)

    assert UsageSnapshot(primary=primary, secondary=secondary).pick_windows() == (primary, secondary)
    assert UsageSnapshot().pick_windows() == (None, None)


def test_failed_outcome_combines_both_errors():
    outcome = LimitsOutcome.failed("work", api_error="HTTP 500", rpc_error="Codex RPC timed out")

    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.error == "API failed (HTTP 500); RPC fallback failed (Codex RPC timed out)"
    assert LimitsOutcome.failed("work", api_error="boom").error == "boom"
