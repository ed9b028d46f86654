"""Diagnostics for the detection pipeline.

Nothing in the pipeline is allowed to crash the scheduler, so failures are
recorded here instead of propagating.  Four categories:

  - data:        malformed log records (bad timestamp, missing fields)
  - resolution:  geo lookup failures, degraded to "Unknown"
  - config:      thresholds out of range, rule skipped or value clamped
  - evaluator:   a rule raised; the other rules still ran

Every diagnostic also goes to the standard logging module at a level that
matches its severity.  The in-memory record keeps only the most recent
entries so a noisy input stream cannot grow it without bound.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DATA = "data"
RESOLUTION = "resolution"
CONFIG = "config"
EVALUATOR = "evaluator"

_MAX_DIAGNOSTICS = 100

_LOG_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}


@dataclass(frozen=True)
class Diagnostic:
    category: str
    message: str
    severity: str
    context: str
    timestamp: float


class DiagnosticLog:

    def __init__(self, max_entries: int = _MAX_DIAGNOSTICS):
        self._entries: deque[Diagnostic] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, category: str, message: str, severity: str = "medium",
               context: str = "") -> Diagnostic:
        diag = Diagnostic(category, message, severity, context, time.time())
        with self._lock:
            self._entries.append(diag)
        level = _LOG_LEVELS.get(severity, logging.WARNING)
        if context:
            logger.log(level, "[%s] [%s] %s", category, context, message)
        else:
            logger.log(level, "[%s] %s", category, message)
        return diag

    def geo_failure(self, address: str, error: Exception) -> Diagnostic:
        return self.record(
            RESOLUTION,
            f"geolocation failed for {address}: {error}",
            severity="low",
            context=address,
        )

    def evaluator_failure(self, rule_id: str, error: Exception) -> Diagnostic:
        return self.record(
            EVALUATOR,
            f"rule raised {type(error).__name__}: {error}",
            severity="high",
            context=rule_id,
        )

    def config_problem(self, field: str, message: str) -> Diagnostic:
        return self.record(CONFIG, message, severity="medium", context=field)

    def entries(self) -> list[Diagnostic]:
        with self._lock:
            return list(self._entries)

    def by_category(self, category: str) -> list[Diagnostic]:
        return [d for d in self.entries() if d.category == category]

    def stats(self) -> dict:
        by_category: dict[str, int] = {}
        by_severity: dict[str, int] = {}
        for d in self.entries():
            by_category[d.category] = by_category.get(d.category, 0) + 1
            by_severity[d.severity] = by_severity.get(d.severity, 0) + 1
        return {
            "total": sum(by_category.values()),
            "by_category": by_category,
            "by_severity": by_severity,
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
