"""Scheduler — drives the detection pipeline on a timer and on demand.

Two states, IDLE and TICKING.  The timer thread calls tick() every
``interval`` seconds; a bulk import calls trigger(), which goes through the
same tick() path, so both converge on one alert set.

Only one tick runs at a time.  If tick() is called while another tick is in
flight it does not wait and does not overlap: it marks a re-run as pending
and returns False, and the in-flight tick runs the pipeline once more
before going back to IDLE.  Each tick reconciles against the state the
previous tick published.

stop() cancels the timer wait and joins the thread, letting an in-flight
tick finish.  A tick that is still resolving addresses when stop() is
called is abandoned and its partial result discarded.
"""

import logging
import threading
import time
from typing import Callable, Iterable

from detector.config import DetectionConfig
from detector.engine import DetectionEngine, EngineState, TickCancelled
from detector.models import Alert, LogEntry

logger = logging.getLogger(__name__)

IDLE = "idle"
TICKING = "ticking"

DEFAULT_INTERVAL_SECONDS = 10.0


class Scheduler:

    def __init__(
        self,
        engine: DetectionEngine,
        entries_source: Callable[[], Iterable[LogEntry]],
        config_source: Callable[[], DetectionConfig],
        interval: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
        on_publish: Callable[[EngineState, EngineState], object] | None = None,
    ):
        self.engine = engine
        self.entries_source = entries_source
        self.config_source = config_source
        self.interval = interval
        self.clock = clock
        self.on_publish = on_publish

        self._state = EngineState()
        self._status = IDLE
        self._pending = False
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    @property
    def alerts(self) -> tuple[Alert, ...]:
        return self.state.alerts

    @property
    def status(self) -> str:
        with self._lock:
            return self._status

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="detection-scheduler", daemon=True,
        )
        self._thread.start()
        logger.info("scheduler started, interval=%.1fs", self.interval)

    def stop(self, timeout: float | None = None) -> bool:
        """Stop the timer. Returns True if the thread exited within timeout."""
        self._stop.set()
        if self._thread is None:
            return True
        self._thread.join(timeout)
        stopped = not self._thread.is_alive()
        if stopped:
            logger.info("scheduler stopped after tick %d", self.state.tick)
        return stopped

    def trigger(self) -> bool:
        """Out-of-band tick for bulk data arrival."""
        logger.debug("bulk trigger")
        return self.tick()

    def tick(self) -> bool:
        """Run the pipeline now. False if another tick was in flight or stopped."""
        if self._stop.is_set():
            return False
        with self._lock:
            if self._status == TICKING:
                self._pending = True
                return False
            self._status = TICKING

        try:
            while True:
                self._run_pipeline()
                with self._lock:
                    if not self._pending or self._stop.is_set():
                        return True
                    self._pending = False
        finally:
            with self._lock:
                self._pending = False
                self._status = IDLE

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.tick()

    def _run_pipeline(self) -> None:
        previous = self.state
        try:
            config = self.config_source()
            entries = self.entries_source()
            current = self.engine.run(
                previous, entries, config, now=self.clock(),
                should_stop=self._stop.is_set,
            )
        except TickCancelled:
            logger.info("tick abandoned on shutdown; partial result discarded")
            return
        except Exception:
            # Worst acceptable outcome: this tick produced nothing.
            logger.exception("detection tick failed; keeping previous alerts")
            return

        with self._lock:
            self._state = current

        if self.on_publish is not None:
            try:
                self.on_publish(previous, current)
            except Exception:
                logger.exception("publish callback failed")
