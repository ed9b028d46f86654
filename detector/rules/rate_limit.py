"""Rate limit — raw connection volume from one address.

Counts successes and failures alike: a scripted client hammering the SSH
port is noteworthy even if it eventually gets in.
"""

from detector.models import Alert, RuleType, Severity
from detector.rules import Rule, positive


class RateLimit(Rule):
    id = "rate_limit"
    name = "Rate Limit Violation"
    rule_type = RuleType.RATE_LIMIT

    def enabled(self, config):
        return config.enable_rate_limiting

    def evaluate(self, by_address, by_account, entries, config, now):
        threshold = config.rate_limit_threshold
        if not positive(threshold):
            return []

        window_minutes = config.effective_window_minutes()
        alerts = []
        for address in sorted(by_address):
            window = by_address[address]
            if window.total_attempts < threshold:
                continue
            alerts.append(Alert.candidate(
                self.rule_type, address, Severity.MEDIUM,
                f"Excessive connection attempts ({window.total_attempts}) "
                f"in {window_minutes:g} minutes",
                now,
                total_attempts=window.total_attempts,
                time_window_minutes=window_minutes,
            ))
        return alerts
