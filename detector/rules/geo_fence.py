"""Geo fence — logins from countries outside the configured policy.

Evaluated over raw entries, because aggregation drops the country.  One
candidate per (account, country, UTC calendar day): an attacker retrying
from the same region all day raises one alert, not one per attempt.

Entries reach this rule with their country already resolved by the engine;
anything the resolver could not place arrives as "Unknown" and is judged by
the policy's unknown handling.
"""

from datetime import datetime, timezone

from detector.aggregator import in_window
from detector.models import UNKNOWN_COUNTRY, Alert, RuleType, Severity
from detector.rules import Rule


def calendar_day(timestamp: float) -> str | None:
    """UTC date of a timestamp, None if it has no calendar date."""
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")
    except (OverflowError, ValueError, OSError, TypeError):
        return None


def geo_key(account: str, country: str, day: str) -> str:
    return f"{account}|{country}|{day}"


class GeoFence(Rule):
    id = "geo_fence"
    name = "Geo-fencing Violation"
    rule_type = RuleType.GEO_FENCE

    def enabled(self, config):
        return config.enable_geo_detection

    def evaluate(self, by_address, by_account, entries, config, now):
        policy = config.geo_fence
        window_minutes = config.effective_window_minutes()

        groups: dict[str, dict] = {}
        for entry in entries:
            if not in_window(entry, now, window_minutes):
                continue
            country = entry.country or UNKNOWN_COUNTRY
            if not policy.violates(country):
                continue
            day = calendar_day(entry.timestamp)
            if day is None:
                continue
            key = geo_key(entry.account, country, day)
            group = groups.get(key)
            if group is None:
                group = groups[key] = {
                    "account": entry.account,
                    "country": country,
                    "day": day,
                    "addresses": set(),
                    "attempts": 0,
                    "successful": 0,
                }
            group["addresses"].add(entry.source_address)
            group["attempts"] += 1
            if not entry.failed:
                group["successful"] += 1

        alerts = []
        for key in sorted(groups):
            g = groups[key]
            if g["country"] == UNKNOWN_COUNTRY:
                description = f"Login attempts for {g['account']} from unknown location"
            else:
                description = (f"Login attempts for {g['account']} from restricted "
                               f"country: {g['country']}")
            alerts.append(Alert.candidate(
                self.rule_type, key, Severity.HIGH, description, now,
                account=g["account"],
                country=g["country"],
                day=g["day"],
                addresses=sorted(g["addresses"]),
                attempts=g["attempts"],
                successful_logins=g["successful"],
            ))
        return alerts
