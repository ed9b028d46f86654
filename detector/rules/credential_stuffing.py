"""Credential stuffing — one source trying many distinct accounts.

Three or more accounts from one address, with at least one failure, looks
like automated enumeration rather than a single user mistyping a password.
"""

from detector.models import Alert, RuleType, Severity
from detector.rules import Rule

MIN_DISTINCT_ACCOUNTS = 3


class CredentialStuffing(Rule):
    id = "credential_stuffing"
    name = "Credential Stuffing"
    rule_type = RuleType.CREDENTIAL_STUFFING

    def evaluate(self, by_address, by_account, entries, config, now):
        alerts = []
        for address in sorted(by_address):
            window = by_address[address]
            n_accounts = len(window.distinct_accounts)
            if n_accounts < MIN_DISTINCT_ACCOUNTS or window.failed_attempts <= 0:
                continue
            alerts.append(Alert.candidate(
                self.rule_type, address, Severity.MEDIUM,
                f"Multiple account attempts ({n_accounts} accounts) from single address",
                now,
                accounts=sorted(window.distinct_accounts),
                total_attempts=window.total_attempts,
                failed_attempts=window.failed_attempts,
            ))
        return alerts
