"""Tests for detection rules — threshold boundaries, severities, toggles, bad config."""

import pytest

from detector.aggregator import aggregate
from detector.config import DetectionConfig, GeoFencePolicy
from detector.models import LogEntry, Outcome, RuleType, Severity
from detector.rules import ALL_RULES
from detector.rules.anomaly_rate import AnomalyRate
from detector.rules.brute_force import BruteForce
from detector.rules.credential_stuffing import CredentialStuffing
from detector.rules.geo_fence import GeoFence, calendar_day
from detector.rules.rate_limit import RateLimit
from detector.rules.suspicious_account import SuspiciousAccount

NOW = 1_700_000_000.0


def _entry(address="10.0.0.5", account="alice", failed=True, age_seconds=30,
           country="United States"):
    return LogEntry(
        timestamp=NOW - age_seconds,
        source_address=address,
        account=account,
        outcome=Outcome.FAILED if failed else Outcome.SUCCESS,
        country=country,
    )


def _run(rule, entries, config=None):
    config = config or DetectionConfig()
    snap = aggregate(entries, NOW, config.effective_window_minutes())
    return rule.evaluate(snap.by_address, snap.by_account, entries, config, NOW)


# ---------------------------------------------------------------------------
# BruteForce
# ---------------------------------------------------------------------------

class TestBruteForce:
    def setup_method(self):
        self.rule = BruteForce()
        self.config = DetectionConfig(brute_force_threshold=5)

    def test_threshold_failures_fire_once(self):
        alerts = _run(self.rule, [_entry() for _ in range(5)], self.config)
        assert len(alerts) == 1
        assert alerts[0].key == "10.0.0.5"
        assert alerts[0].id == "brute_force:10.0.0.5"

    def test_one_below_threshold_does_not_fire(self):
        assert _run(self.rule, [_entry() for _ in range(4)], self.config) == []

    def test_successes_do_not_count(self):
        entries = [_entry() for _ in range(4)] + [_entry(failed=False) for _ in range(5)]
        assert _run(self.rule, entries, self.config) == []

    def test_severity_medium_up_to_double_threshold(self):
        alerts = _run(self.rule, [_entry() for _ in range(10)], self.config)
        assert alerts[0].severity == Severity.MEDIUM

    def test_severity_high_above_double_threshold(self):
        alerts = _run(self.rule, [_entry() for _ in range(11)], self.config)
        assert alerts[0].severity == Severity.HIGH

    def test_details(self):
        entries = ([_entry(account=f"u{i}") for i in range(5)]
                   + [_entry(failed=False)])
        details = _run(self.rule, entries, self.config)[0].details
        assert details["failed_attempts"] == 5
        assert details["total_attempts"] == 6
        assert details["distinct_accounts"] == 6

    def test_failures_outside_window_ignored(self):
        entries = [_entry(age_seconds=6 * 60) for _ in range(10)]
        assert _run(self.rule, entries, self.config) == []

    @pytest.mark.parametrize("threshold", [0, -3, None, "5"])
    def test_invalid_threshold_skips_rule(self, threshold):
        config = DetectionConfig(brute_force_threshold=threshold)
        assert _run(self.rule, [_entry() for _ in range(20)], config) == []


# ---------------------------------------------------------------------------
# CredentialStuffing
# ---------------------------------------------------------------------------

class TestCredentialStuffing:
    def setup_method(self):
        self.rule = CredentialStuffing()

    def test_three_accounts_with_failure_fires(self):
        entries = [_entry(account="a"), _entry(account="b", failed=False),
                   _entry(account="c", failed=False)]
        alerts = _run(self.rule, entries)
        assert len(alerts) == 1
        assert alerts[0].severity == Severity.MEDIUM
        assert alerts[0].details["accounts"] == ["a", "b", "c"]

    def test_two_accounts_does_not_fire(self):
        entries = [_entry(account="a"), _entry(account="b")] * 5
        assert _run(self.rule, entries) == []

    def test_all_successes_does_not_fire(self):
        entries = [_entry(account=a, failed=False) for a in "abcd"]
        assert _run(self.rule, entries) == []


# ---------------------------------------------------------------------------
# SuspiciousAccount
# ---------------------------------------------------------------------------

class TestSuspiciousAccount:
    def setup_method(self):
        self.rule = SuspiciousAccount()

    def test_failed_root_login_fires(self):
        entries = [_entry(address="203.45.0.9", account="root"),
                   _entry(address="156.80.1.1", account="root")]
        alerts = _run(self.rule, entries)
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.key == "root"
        assert alert.severity == Severity.LOW
        assert alert.details["address"] == "156.80.1.1"
        assert alert.details["distinct_addresses"] == 2

    def test_successful_only_does_not_fire(self):
        assert _run(self.rule, [_entry(account="root", failed=False)]) == []

    def test_unlisted_account_does_not_fire(self):
        assert _run(self.rule, [_entry(account="alice")]) == []

    def test_custom_account_list(self):
        config = DetectionConfig(suspicious_accounts={"oracle"})
        alerts = _run(self.rule, [_entry(account="oracle"), _entry(account="root")], config)
        assert [a.key for a in alerts] == ["oracle"]


# ---------------------------------------------------------------------------
# RateLimit
# ---------------------------------------------------------------------------

class TestRateLimit:
    def setup_method(self):
        self.rule = RateLimit()

    def test_volume_fires_regardless_of_outcome(self):
        config = DetectionConfig(rate_limit_threshold=10)
        entries = [_entry(failed=False) for _ in range(10)]
        alerts = _run(self.rule, entries, config)
        assert len(alerts) == 1
        assert alerts[0].severity == Severity.MEDIUM
        assert alerts[0].details["total_attempts"] == 10

    def test_below_threshold_does_not_fire(self):
        config = DetectionConfig(rate_limit_threshold=10)
        assert _run(self.rule, [_entry() for _ in range(9)], config) == []

    def test_toggle(self):
        assert self.rule.enabled(DetectionConfig())
        assert not self.rule.enabled(DetectionConfig(enable_rate_limiting=False))


# ---------------------------------------------------------------------------
# AnomalyRate
# ---------------------------------------------------------------------------

class TestAnomalyRate:
    def setup_method(self):
        self.rule = AnomalyRate()
        self.config = DetectionConfig(anomaly_min_attempts=3,
                                      anomaly_failure_rate_threshold=0.8)

    def test_two_attempts_never_fire(self):
        """Below the minimum sample, even 100% failure is not an anomaly."""
        assert _run(self.rule, [_entry(), _entry()], self.config) == []

    def test_exactly_at_rate_threshold_fires(self):
        entries = [_entry() for _ in range(4)] + [_entry(failed=False)]
        alerts = _run(self.rule, entries, self.config)
        assert len(alerts) == 1
        assert alerts[0].severity == Severity.HIGH
        assert alerts[0].details["failure_rate"] == 0.8

    def test_below_rate_threshold_does_not_fire(self):
        entries = [_entry() for _ in range(3)] + [_entry(failed=False)] * 2
        assert _run(self.rule, entries, self.config) == []

    @pytest.mark.parametrize("rate", [0, 1.5, -0.2])
    def test_invalid_rate_skips_rule(self, rate):
        config = DetectionConfig(anomaly_failure_rate_threshold=rate)
        assert _run(self.rule, [_entry() for _ in range(10)], config) == []

    def test_empty_aggregates(self):
        assert _run(self.rule, [], self.config) == []


# ---------------------------------------------------------------------------
# GeoFence
# ---------------------------------------------------------------------------

class TestGeoFence:
    def setup_method(self):
        self.rule = GeoFence()
        self.config = DetectionConfig(
            geo_fence=GeoFencePolicy.allow({"United States"}),
        )

    def test_country_outside_allow_list_fires(self):
        alerts = _run(self.rule, [_entry(country="Germany")], self.config)
        assert len(alerts) == 1
        assert alerts[0].severity == Severity.HIGH
        assert alerts[0].details["country"] == "Germany"

    def test_allowed_country_not_flagged(self):
        assert _run(self.rule, [_entry(country="United States")], self.config) == []

    def test_one_alert_per_account_country_day(self):
        entries = [_entry(country="Germany", address=f"91.236.0.{i}") for i in range(6)]
        alerts = _run(self.rule, entries, self.config)
        assert len(alerts) == 1
        day = calendar_day(NOW)
        assert alerts[0].key == f"alice|Germany|{day}"
        assert alerts[0].details["attempts"] == 6
        assert len(alerts[0].details["addresses"]) == 6

    def test_different_accounts_get_separate_alerts(self):
        entries = [_entry(country="Germany", account="alice"),
                   _entry(country="Germany", account="bob")]
        assert len(_run(self.rule, entries, self.config)) == 2

    def test_deny_list_mode(self):
        config = DetectionConfig(geo_fence=GeoFencePolicy.deny({"Russia"}))
        entries = [_entry(country="Russia"), _entry(country="Germany", account="bob")]
        alerts = _run(self.rule, entries, config)
        assert [a.details["country"] for a in alerts] == ["Russia"]

    def test_unknown_country_in_deny_mode_follows_flag(self):
        quiet = DetectionConfig(geo_fence=GeoFencePolicy.deny({"Russia"}))
        loud = DetectionConfig(
            geo_fence=GeoFencePolicy.deny({"Russia"}, alert_on_unknown=True),
        )
        entries = [_entry(country="Unknown")]
        assert _run(self.rule, entries, quiet) == []
        assert len(_run(self.rule, entries, loud)) == 1

    def test_entries_outside_window_ignored(self):
        entries = [_entry(country="Germany", age_seconds=3600)]
        assert _run(self.rule, entries, self.config) == []

    def test_toggle(self):
        assert not self.rule.enabled(DetectionConfig(enable_geo_detection=False))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestAllRules:
    def test_evaluation_order(self):
        assert [r.rule_type for r in ALL_RULES] == [
            RuleType.BRUTE_FORCE,
            RuleType.CREDENTIAL_STUFFING,
            RuleType.SUSPICIOUS_ACCOUNT,
            RuleType.RATE_LIMIT,
            RuleType.ANOMALY_RATE,
            RuleType.GEO_FENCE,
        ]

    def test_rule_ids_match_rule_types(self):
        for rule in ALL_RULES:
            assert rule.id == rule.rule_type.value


class TestCalendarDay:
    def test_utc_date(self):
        assert calendar_day(NOW) == "2023-11-14"

    @pytest.mark.parametrize("ts", [NOW * 1000, float("nan"), None])
    def test_no_calendar_date(self, ts):
        assert calendar_day(ts) is None
