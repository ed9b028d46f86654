"""Detection engine — one tick of aggregate -> evaluate -> reconcile.

Pure business logic, no Kafka dependency.  The scheduler owns the
EngineState and passes it in and out of run(); nothing here is global.

Tick steps:
  1. Snapshot the config (the caller hands in a copy) and report any values
     that will be clamped or cause a rule to be skipped.
  2. Geo-enrich: entries whose country is missing or "Unknown" get the
     resolver's answer, resolved once per distinct address.
  3. Aggregate the in-window entries per address and per account.
  4. Run every enabled rule.  A rule that raises is recorded and skipped;
     the others still run.
  5. Reconcile the candidates with the previous tick's alerts.
"""

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from detector.aggregator import AggregateWindow, aggregate, in_window
from detector.config import DetectionConfig
from detector.diagnostics import DiagnosticLog
from detector.geo import GeoResolver
from detector.lifecycle import reconcile
from detector.models import UNKNOWN_COUNTRY, Alert, LogEntry
from detector.rules import ALL_RULES, Rule

logger = logging.getLogger(__name__)


def _empty() -> Mapping:
    return MappingProxyType({})


class TickCancelled(Exception):
    """Raised when shutdown is requested part-way through a tick."""


@dataclass(frozen=True)
class EngineState:
    """Published result of a tick. Readers may hold on to it freely."""

    alerts: tuple[Alert, ...] = ()
    tick: int = 0
    evaluated_at: float | None = None
    by_address: Mapping[str, AggregateWindow] = field(default_factory=_empty)
    by_account: Mapping[str, AggregateWindow] = field(default_factory=_empty)
    failed_rules: tuple[str, ...] = ()

    def alerts_by_rule(self) -> dict[str, list[Alert]]:
        grouped: dict[str, list[Alert]] = {}
        for alert in self.alerts:
            grouped.setdefault(alert.rule_type.value, []).append(alert)
        return grouped


class DetectionEngine:

    def __init__(self, rules: list[Rule] | None = None,
                 geo_resolver: GeoResolver | None = None,
                 diagnostics: DiagnosticLog | None = None):
        self.rules = rules if rules is not None else ALL_RULES
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self.geo_resolver = geo_resolver

    def run(self, state: EngineState, entries: Iterable[LogEntry],
            config: DetectionConfig, now: float | None = None,
            should_stop: Callable[[], bool] | None = None) -> EngineState:
        """Run one tick and return the next published state."""
        now = time.time() if now is None else now

        for name, message in config.problems():
            self.diagnostics.config_problem(name, message)
        window_minutes = config.effective_window_minutes()
        retention_minutes = config.effective_retention_minutes()

        entries = list(entries)
        if self.geo_resolver is not None:
            entries = self._enrich(entries, now, window_minutes, should_stop)

        snapshot = aggregate(entries, now, window_minutes)

        candidates: list[Alert] = []
        failed: list[str] = []
        for rule in self.rules:
            try:
                if not rule.enabled(config):
                    continue
                candidates.extend(rule.evaluate(
                    snapshot.by_address, snapshot.by_account, entries, config, now,
                ))
            except Exception as e:
                self.diagnostics.evaluator_failure(rule.id, e)
                failed.append(rule.id)

        alerts = reconcile(state.alerts, candidates, now, retention_minutes)
        logger.debug("tick %d: %d entries, %d candidates, %d active alerts",
                     state.tick + 1, len(entries), len(candidates), len(alerts))

        return EngineState(
            alerts=alerts,
            tick=state.tick + 1,
            evaluated_at=now,
            by_address=MappingProxyType(snapshot.by_address),
            by_account=MappingProxyType(snapshot.by_account),
            failed_rules=tuple(failed),
        )

    def _enrich(self, entries: list[LogEntry], now: float, window_minutes: float,
                should_stop: Callable[[], bool] | None) -> list[LogEntry]:
        """Fill in unknown countries; one resolve() per distinct address."""
        pending = {e.source_address for e in entries
                   if (not e.country or e.country == UNKNOWN_COUNTRY)
                   and in_window(e, now, window_minutes)}
        if not pending:
            return entries

        resolved: dict[str, str] = {}
        for address in sorted(pending):
            if should_stop is not None and should_stop():
                raise TickCancelled("stop requested during geo resolution")
            resolved[address] = self.geo_resolver.resolve(address).country

        enriched = []
        for e in entries:
            country = resolved.get(e.source_address)
            if country and (not e.country or e.country == UNKNOWN_COUNTRY):
                e = dataclasses.replace(e, country=country)
            enriched.append(e)
        return enriched
