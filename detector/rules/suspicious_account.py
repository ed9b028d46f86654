"""Suspicious account — failed logins against privileged or default names.

Accounts like root, admin or pi are the first thing scanners try.  Any
failure against one of config.suspicious_accounts is worth a low-severity
alert, keyed by account so a distributed probe raises one alert, not one
per address.
"""

from detector.models import Alert, RuleType, Severity
from detector.rules import Rule


class SuspiciousAccount(Rule):
    id = "suspicious_account"
    name = "Suspicious Account"
    rule_type = RuleType.SUSPICIOUS_ACCOUNT

    def evaluate(self, by_address, by_account, entries, config, now):
        alerts = []
        for account in sorted(config.suspicious_accounts or ()):
            window = by_account.get(account)
            if window is None or window.failed_attempts <= 0:
                continue
            addresses = sorted(window.distinct_addresses)
            alerts.append(Alert.candidate(
                self.rule_type, account, Severity.LOW,
                f"Login attempts with privileged account: {account}",
                now,
                account=account,
                address=addresses[0],
                total_attempts=window.total_attempts,
                failed_attempts=window.failed_attempts,
                distinct_addresses=len(addresses),
            ))
        return alerts
