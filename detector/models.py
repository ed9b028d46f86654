"""Core records: authentication log entries and the alerts derived from them.

LogEntry is an immutable fact produced by ingestion.  Alert is the engine's
output unit.  Both are frozen dataclasses so a published snapshot can be
handed to readers without copying.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

UNKNOWN_COUNTRY = "Unknown"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RuleType(str, Enum):
    BRUTE_FORCE = "brute_force"
    CREDENTIAL_STUFFING = "credential_stuffing"
    SUSPICIOUS_ACCOUNT = "suspicious_account"
    RATE_LIMIT = "rate_limit"
    ANOMALY_RATE = "anomaly_rate"
    GEO_FENCE = "geo_fence"


# Wire aliases: the dashboard-era CSV schema used ip/user/status.
_ADDRESS_FIELDS = ("source_address", "ip", "src_ip")
_ACCOUNT_FIELDS = ("account", "user", "username")
_OUTCOME_FIELDS = ("outcome", "status", "result")


# Outside this range no calendar date exists for the value (epoch
# milliseconds, for one, land past year 9999).
_MIN_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc).timestamp()
_MAX_TIMESTAMP = datetime.max.replace(tzinfo=timezone.utc).timestamp()


def usable_timestamp(value) -> bool:
    """True for a finite epoch-seconds number within the calendar range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    return math.isfinite(value) and _MIN_TIMESTAMP < value < _MAX_TIMESTAMP


def parse_timestamp(value) -> float | None:
    """Epoch seconds from a number or ISO-8601 string, None if unparseable.

    Naive ISO strings are read as UTC.  Numbers outside the calendar range
    (NaN, infinities, epoch milliseconds) are unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if usable_timestamp(value) else None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _first(data: dict, names: tuple[str, ...]):
    for name in names:
        value = data.get(name)
        if value not in (None, ""):
            return value
    return None


def parse_outcome(value) -> Outcome:
    text = str(value).strip().lower()
    if text in ("success", "accepted", "ok"):
        return Outcome.SUCCESS
    if text in ("failed", "failure", "invalid_user"):
        return Outcome.FAILED
    raise ValueError(f"unknown outcome: {value!r}")


@dataclass(frozen=True)
class LogEntry:
    timestamp: float | None
    source_address: str
    account: str
    outcome: Outcome
    port: int = 22
    country: str = UNKNOWN_COUNTRY

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED

    @classmethod
    def from_dict(cls, data: dict) -> "LogEntry":
        """Build an entry from a wire record.

        A bad timestamp is kept as None so the aggregator can exclude it;
        a record without address, account or outcome is rejected with
        ValueError.
        """
        address = _first(data, _ADDRESS_FIELDS)
        account = _first(data, _ACCOUNT_FIELDS)
        outcome = _first(data, _OUTCOME_FIELDS)
        if address is None:
            raise ValueError("record has no source address")
        if account is None:
            raise ValueError("record has no account")
        if outcome is None:
            raise ValueError("record has no outcome")

        try:
            port = int(data.get("port") or 22)
        except (TypeError, ValueError):
            port = 22

        return cls(
            timestamp=parse_timestamp(data.get("timestamp")),
            source_address=str(address),
            account=str(account),
            outcome=parse_outcome(outcome),
            port=port,
            country=str(data.get("country") or UNKNOWN_COUNTRY),
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "source_address": self.source_address,
            "account": self.account,
            "outcome": self.outcome.value,
            "port": self.port,
            "country": self.country,
        }


def alert_id(rule_type: RuleType, key: str) -> str:
    return f"{rule_type.value}:{key}"


@dataclass(frozen=True)
class Alert:
    id: str
    rule_type: RuleType
    key: str
    severity: Severity
    description: str
    created_at: float
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def candidate(cls, rule_type: RuleType, key: str, severity: Severity,
                  description: str, now: float, **details) -> "Alert":
        """Candidate alert with an id derived from rule type and key."""
        return cls(
            id=alert_id(rule_type, key),
            rule_type=rule_type,
            key=key,
            severity=severity,
            description=description,
            created_at=now,
            details=details,
        )

    @property
    def identity(self) -> tuple[RuleType, str]:
        return (self.rule_type, self.key)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rule_type": self.rule_type.value,
            "key": self.key,
            "severity": self.severity.value,
            "description": self.description,
            "created_at": self.created_at,
            "details": dict(self.details),
        }
