"""Trailing-window aggregation of authentication attempts.

Each tick rebuilds the per-address and per-account counters from scratch
over the entries whose age is within the lookback window.  Nothing carries
over between ticks: as ``now`` advances, old entries simply stop
qualifying, and a bulk-replaced entry collection needs no special handling.

An entry is in the window iff ``(now - timestamp) <= window`` (minutes).
Future timestamps have negative age and are included.  Entries with a
missing, non-numeric or out-of-calendar-range timestamp are treated as
very old and excluded.
"""

from typing import Iterable, NamedTuple

from detector.models import LogEntry, usable_timestamp


class AggregateWindow:
    __slots__ = ("total_attempts", "failed_attempts", "distinct_accounts",
                 "distinct_addresses", "last_seen")

    def __init__(self):
        self.total_attempts = 0
        self.failed_attempts = 0
        self.distinct_accounts: set[str] = set()
        self.distinct_addresses: set[str] = set()
        self.last_seen: float | None = None

    def add(self, entry: LogEntry) -> None:
        self.total_attempts += 1
        if entry.failed:
            self.failed_attempts += 1
        self.distinct_accounts.add(entry.account)
        self.distinct_addresses.add(entry.source_address)
        if self.last_seen is None or entry.timestamp > self.last_seen:
            self.last_seen = entry.timestamp

    @property
    def failure_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.failed_attempts / self.total_attempts

    def __repr__(self) -> str:
        return (f"AggregateWindow(total={self.total_attempts}, "
                f"failed={self.failed_attempts}, "
                f"accounts={len(self.distinct_accounts)}, "
                f"addresses={len(self.distinct_addresses)})")


class Snapshot(NamedTuple):
    by_address: dict[str, AggregateWindow]
    by_account: dict[str, AggregateWindow]


def entry_age_minutes(entry: LogEntry, now: float) -> float | None:
    ts = entry.timestamp
    if not usable_timestamp(ts):
        return None
    return (now - ts) / 60.0


def in_window(entry: LogEntry, now: float, window_minutes: float) -> bool:
    age = entry_age_minutes(entry, now)
    return age is not None and age <= window_minutes


def aggregate(entries: Iterable[LogEntry], now: float,
              window_minutes: float) -> Snapshot:
    """Per-address and per-account counters for entries inside the window."""
    by_address: dict[str, AggregateWindow] = {}
    by_account: dict[str, AggregateWindow] = {}

    for entry in entries:
        if not in_window(entry, now, window_minutes):
            continue
        addr = by_address.get(entry.source_address)
        if addr is None:
            addr = by_address[entry.source_address] = AggregateWindow()
        addr.add(entry)

        acct = by_account.get(entry.account)
        if acct is None:
            acct = by_account[entry.account] = AggregateWindow()
        acct.add(entry)

    return Snapshot(by_address, by_account)
