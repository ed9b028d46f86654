"""Tests for alert reconciliation — dedup, expiry boundary, idempotence."""

from detector.lifecycle import newly_published, reconcile
from detector.models import Alert, RuleType, Severity

T = 1_700_000_000.0
RETENTION = 60


def _alert(key="10.0.0.5", rule_type=RuleType.BRUTE_FORCE, created_at=T):
    return Alert.candidate(rule_type, key, Severity.MEDIUM, "test", created_at,
                           failed_attempts=5)


class TestDedup:
    def test_new_candidate_is_published(self):
        result = reconcile([], [_alert()], T, RETENTION)
        assert len(result) == 1

    def test_repeat_candidate_dropped_without_refresh(self):
        first = reconcile([], [_alert()], T, RETENTION)
        later = T + 10 * 60
        second = reconcile(first, [_alert(created_at=later)], later, RETENTION)
        assert len(second) == 1
        assert second[0].created_at == T

    def test_duplicates_within_one_batch_collapse(self):
        result = reconcile([], [_alert(), _alert()], T, RETENTION)
        assert len(result) == 1

    def test_same_key_different_rule_is_distinct(self):
        result = reconcile(
            [], [_alert(), _alert(rule_type=RuleType.RATE_LIMIT)], T, RETENTION,
        )
        assert len(result) == 2

    def test_survivors_precede_new_alerts(self):
        existing = reconcile([], [_alert("a")], T, RETENTION)
        result = reconcile(existing, [_alert("b"), _alert("a")], T + 60, RETENTION)
        assert [a.key for a in result] == ["a", "b"]


class TestIdempotence:
    def test_reconcile_twice_is_identical(self):
        candidates = [_alert("a"), _alert("b", RuleType.GEO_FENCE)]
        once = reconcile([], candidates, T, RETENTION)
        twice = reconcile(once, candidates, T, RETENTION)
        assert twice == once
        assert [a.to_dict() for a in twice] == [a.to_dict() for a in once]


class TestExpiry:
    def setup_method(self):
        self.alerts = reconcile([], [_alert()], T, RETENTION)

    def test_present_one_minute_before_horizon(self):
        now = T + (RETENTION - 1) * 60
        assert len(reconcile(self.alerts, [], now, RETENTION)) == 1

    def test_present_exactly_at_horizon(self):
        now = T + RETENTION * 60
        assert len(reconcile(self.alerts, [], now, RETENTION)) == 1

    def test_absent_one_minute_after_horizon(self):
        now = T + (RETENTION + 1) * 60
        assert reconcile(self.alerts, [], now, RETENTION) == ()

    def test_expired_alert_is_replaced_by_fresh_candidate(self):
        now = T + (RETENTION + 1) * 60
        result = reconcile(self.alerts, [_alert(created_at=now)], now, RETENTION)
        assert len(result) == 1
        assert result[0].created_at == now


class TestNewlyPublished:
    def test_only_new_alerts_returned(self):
        before = reconcile([], [_alert("a")], T, RETENTION)
        after = reconcile(before, [_alert("a"), _alert("b")], T, RETENTION)
        assert [a.key for a in newly_published(before, after)] == ["b"]

    def test_reraised_alert_counts_as_new(self):
        before = reconcile([], [_alert()], T, RETENTION)
        now = T + (RETENTION + 1) * 60
        after = reconcile(before, [_alert(created_at=now)], now, RETENTION)
        assert len(newly_published(before, after)) == 1
