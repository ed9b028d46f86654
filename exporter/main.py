"""Prometheus metrics exporter — consumes Kafka auth events and alerts.

Subscribes to both auth-events and alerts, updating Prometheus counters and
gauges as messages arrive.  These back the dashboard panels: attempts by
outcome, failures by country and port, alert counts by rule and severity,
and distinct sources/accounts seen.

Usage:
    python -m exporter.main
    python -m exporter.main --bootstrap-servers kafka-1:29092 --port 9090
"""

import argparse
import json
import signal
import sys
import time
from collections import OrderedDict

from confluent_kafka import Consumer, KafkaError
from prometheus_client import Counter, Gauge, start_http_server

from detector.models import Outcome, parse_outcome

# ---------------------------------------------------------------------------
# Authentication metrics
# ---------------------------------------------------------------------------
auth_attempts_total = Counter(
    "authwatch_auth_attempts_total",
    "Authentication attempts by outcome",
    ["outcome"],
)
auth_attempts_by_country = Counter(
    "authwatch_auth_attempts_by_country_total",
    "Authentication attempts by source country and outcome",
    ["country", "outcome"],
)
auth_attempts_by_port = Counter(
    "authwatch_auth_attempts_by_port_total",
    "Authentication attempts by destination port",
    ["port"],
)
unique_sources = Gauge(
    "authwatch_unique_source_addresses",
    "Distinct source addresses among the most recently seen",
)
unique_accounts = Gauge(
    "authwatch_unique_accounts",
    "Distinct accounts among the most recently seen",
)
success_rate = Gauge(
    "authwatch_login_success_rate",
    "Fraction of attempts that succeeded since exporter start",
)

# ---------------------------------------------------------------------------
# Alert metrics
# ---------------------------------------------------------------------------
alerts_total = Counter(
    "authwatch_alerts_total",
    "Published detection alerts",
    ["rule_type", "severity"],
)

# ---------------------------------------------------------------------------
# Throughput
# ---------------------------------------------------------------------------
events_per_second = Gauge(
    "authwatch_events_per_second",
    "Current event processing rate",
)
export_errors_total = Counter(
    "authwatch_export_errors_total",
    "JSON parse or Kafka consumer errors in the exporter",
)

running = True

# Label cardinality for addresses/accounts is unbounded, so they are
# counted here instead of being used as metric labels.  Only the most
# recently seen keys are kept.
_MAX_TRACKED_KEYS = 100_000


class _RecentKeys:
    """Distinct keys, capped at maxlen; the least recently seen go first."""

    def __init__(self, maxlen: int = _MAX_TRACKED_KEYS):
        self.maxlen = maxlen
        self._keys: OrderedDict[str, None] = OrderedDict()

    def add(self, key: str) -> None:
        self._keys[key] = None
        self._keys.move_to_end(key)
        if len(self._keys) > self.maxlen:
            self._keys.popitem(last=False)

    def __contains__(self, key) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


_seen_sources = _RecentKeys()
_seen_accounts = _RecentKeys()
_totals = {"attempts": 0, "success": 0}


def _shutdown(sig, frame):
    global running
    print("\nShutting down exporter...")
    running = False


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)


# ---------------------------------------------------------------------------
# Metric updaters
# ---------------------------------------------------------------------------

def _outcome_label(event: dict) -> str:
    """Outcome normalised the way the detector reads it, or "unknown"."""
    raw = event.get("outcome") or event.get("status") or event.get("result")
    try:
        return parse_outcome(raw).value
    except ValueError:
        return "unknown"


def _process_auth_event(event: dict):
    """Update Prometheus metrics for one authentication record."""
    outcome = _outcome_label(event)
    country = event.get("country") or "Unknown"
    port = str(event.get("port", 22))

    auth_attempts_total.labels(outcome=outcome).inc()
    auth_attempts_by_country.labels(country=country, outcome=outcome).inc()
    auth_attempts_by_port.labels(port=port).inc()

    address = event.get("source_address") or event.get("ip") or event.get("src_ip")
    account = event.get("account") or event.get("user") or event.get("username")
    if address:
        _seen_sources.add(str(address))
        unique_sources.set(len(_seen_sources))
    if account:
        _seen_accounts.add(str(account))
        unique_accounts.set(len(_seen_accounts))

    _totals["attempts"] += 1
    if outcome == Outcome.SUCCESS.value:
        _totals["success"] += 1
    success_rate.set(_totals["success"] / _totals["attempts"])


def _process_auth_message(data: dict):
    # Bulk imports wrap their records in "entries".
    if "entries" in data:
        for record in data.get("entries") or []:
            if isinstance(record, dict):
                _process_auth_event(record)
    else:
        _process_auth_event(data)


def _process_alert(alert: dict):
    """Update Prometheus metrics for a published detection alert."""
    rule_type = alert.get("rule_type", "unknown")
    severity = alert.get("severity", "unknown")
    alerts_total.labels(rule_type=rule_type, severity=severity).inc()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Prometheus metrics exporter")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--auth-topic", default="auth-events")
    parser.add_argument("--alerts-topic", default="alerts")
    parser.add_argument(
        "--port", type=int, default=9090, help="Prometheus metrics HTTP port",
    )
    args = parser.parse_args()

    start_http_server(args.port)
    print(f"Prometheus metrics server started on :{args.port}")

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": "metrics-exporter",
        "auto.offset.reset": "latest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.auth_topic, args.alerts_topic])

    count = 0
    window_start = time.time()
    window_count = 0

    print(f"Exporter consuming from {args.auth_topic} + {args.alerts_topic} ...")

    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                export_errors_total.inc()
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            try:
                data = json.loads(msg.value().decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                export_errors_total.inc()
                continue
            if not isinstance(data, dict):
                export_errors_total.inc()
                continue

            topic = msg.topic()
            if topic == args.auth_topic:
                _process_auth_message(data)
            elif topic == args.alerts_topic:
                _process_alert(data)

            count += 1
            window_count += 1

            now = time.time()
            elapsed = now - window_start
            if elapsed >= 1.0:
                events_per_second.set(window_count / elapsed)
                window_start = now
                window_count = 0

            if count % 5000 == 0:
                print(f"  ... {count} messages exported to metrics")
    finally:
        consumer.close()
        print(f"Exporter done. {count} messages processed.")


if __name__ == "__main__":
    main()
