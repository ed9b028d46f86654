"""Brute force — repeated failed logins from one source address.

Fires when an address reaches brute_force_threshold failures inside the
window.  More than twice the threshold is escalated to high severity.
"""

from detector.models import Alert, RuleType, Severity
from detector.rules import Rule, positive


class BruteForce(Rule):
    id = "brute_force"
    name = "Brute Force Attack"
    rule_type = RuleType.BRUTE_FORCE

    def evaluate(self, by_address, by_account, entries, config, now):
        threshold = config.brute_force_threshold
        if not positive(threshold):
            return []

        alerts = []
        for address in sorted(by_address):
            window = by_address[address]
            if window.failed_attempts < threshold:
                continue
            severity = (Severity.HIGH if window.failed_attempts > 2 * threshold
                        else Severity.MEDIUM)
            alerts.append(Alert.candidate(
                self.rule_type, address, severity,
                f"{window.failed_attempts} failed login attempts in "
                f"{config.effective_window_minutes():g} minutes",
                now,
                failed_attempts=window.failed_attempts,
                total_attempts=window.total_attempts,
                distinct_accounts=len(window.distinct_accounts),
            ))
        return alerts
