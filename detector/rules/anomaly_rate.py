"""Anomaly rate — an address whose attempts are overwhelmingly failures.

Requires anomaly_min_attempts in the window before the ratio means
anything; two failures out of two is not a pattern.
"""

from detector.models import Alert, RuleType, Severity
from detector.rules import Rule, positive


class AnomalyRate(Rule):
    id = "anomaly_rate"
    name = "Anomaly Detection"
    rule_type = RuleType.ANOMALY_RATE

    def enabled(self, config):
        return config.enable_anomaly_detection

    def evaluate(self, by_address, by_account, entries, config, now):
        min_attempts = config.anomaly_min_attempts
        rate_threshold = config.anomaly_failure_rate_threshold
        if not positive(min_attempts) or not positive(rate_threshold) or rate_threshold > 1:
            return []

        alerts = []
        for address in sorted(by_address):
            window = by_address[address]
            total = window.total_attempts
            if total <= 0 or total < min_attempts:
                continue
            rate = window.failed_attempts / total
            if rate < rate_threshold:
                continue
            alerts.append(Alert.candidate(
                self.rule_type, address, Severity.HIGH,
                f"Unusual failure rate ({rate * 100:.1f}%) detected",
                now,
                failure_rate=round(rate, 3),
                total_attempts=total,
                failed_attempts=window.failed_attempts,
            ))
        return alerts
