"""Detection service — reads auth events, ticks the engine, publishes alerts.

Consumes SSH authentication records from the auth-events topic into an
in-memory LogStore.  The scheduler re-evaluates every --interval seconds
and whenever a bulk import lands; each newly published alert is produced
to the alerts topic.

A message is either one log record:

    {"timestamp": 1700000000.0, "source_address": "203.45.1.9",
     "account": "root", "outcome": "failed", "port": 22, "country": "China"}

or a bulk import:

    {"mode": "replace", "entries": [ ...records... ]}

Send SIGHUP to reload --config.  The consumer loop picks the request up
between polls; the new config applies from the next tick after that.

Usage:
    python -m detector.main
    python -m detector.main --bootstrap-servers kafka-1:29092 --config detection.yml
"""

import argparse
import json
import logging
import signal
import sys

from confluent_kafka import Consumer, Producer, KafkaError
from confluent_kafka.admin import AdminClient, NewTopic
import yaml

from detector.config import ConfigStore, DetectionConfig, load_config
from detector.diagnostics import DATA, DiagnosticLog
from detector.engine import DetectionEngine
from detector.geo import PrefixGeoResolver
from detector.lifecycle import newly_published
from detector.models import LogEntry
from detector.scheduler import DEFAULT_INTERVAL_SECONDS, Scheduler
from detector.store import APPEND, REPLACE, LogStore

running = True
reload_requested = False


def _shutdown(sig, frame):
    global running
    print("\nShutting down detection service...")
    running = False


def _request_reload(sig, frame):
    # Only flag it: the handler can interrupt a tick that holds the config lock.
    global reload_requested
    reload_requested = True


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)
if hasattr(signal, "SIGHUP"):
    signal.signal(signal.SIGHUP, _request_reload)


def reload_config(path, config_store: ConfigStore) -> bool:
    """Re-read the YAML config into the store; keep the previous one on error."""
    try:
        config_store.set(load_config(path))
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Config reload failed, keeping previous config: {e}", file=sys.stderr)
        return False
    print(f"Reloaded config from {path}")
    return True


def _ensure_topic(bootstrap_servers, topic):
    """Create the output topic if it doesn't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    fs = admin.create_topics([NewTopic(topic, num_partitions=3, replication_factor=3)])
    for t, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{t}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{t}' already exists")
            else:
                raise


def parse_message(payload: dict, diagnostics: DiagnosticLog) -> tuple[str, list[LogEntry]]:
    """Split a message into (mode, entries); bad records are recorded and skipped."""
    if "entries" in payload:
        mode = payload.get("mode", APPEND)
        records = payload["entries"]
        if mode not in (APPEND, REPLACE) or not isinstance(records, list):
            diagnostics.record(DATA, f"rejected bulk message, mode={mode!r}",
                               severity="low")
            return APPEND, []
    else:
        mode = APPEND
        records = [payload]

    entries = []
    for record in records:
        try:
            entry = LogEntry.from_dict(record)
        except (ValueError, TypeError, AttributeError) as e:
            diagnostics.record(DATA, f"rejected record: {e}", severity="low")
            continue
        if entry.timestamp is None:
            # Kept, but the window never includes it.
            diagnostics.record(
                DATA, f"unparseable timestamp {record.get('timestamp')!r}",
                severity="low", context=entry.source_address,
            )
        entries.append(entry)
    return mode, entries


def main():
    global reload_requested
    parser = argparse.ArgumentParser(description="SSH authentication detection service")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--input-topic", default="auth-events")
    parser.add_argument("--output-topic", default="alerts")
    parser.add_argument("--group-id", default="detection-engine")
    parser.add_argument("--config", default=None, help="YAML detection config")
    parser.add_argument("--interval", type=float, default=DEFAULT_INTERVAL_SECONDS,
                        help="Seconds between scheduled ticks")
    parser.add_argument("--max-entries", type=int, default=100_000,
                        help="Entries kept in memory")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    config = load_config(args.config) if args.config else DetectionConfig()
    config_store = ConfigStore(config)

    _ensure_topic(args.bootstrap_servers, args.output_topic)

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": args.group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.input_topic])

    producer = Producer({"bootstrap.servers": args.bootstrap_servers})

    diagnostics = DiagnosticLog()
    engine = DetectionEngine(
        geo_resolver=PrefixGeoResolver(diagnostics), diagnostics=diagnostics,
    )
    store = LogStore(max_entries=args.max_entries)
    alerts_produced = 0

    def _publish(previous, current):
        nonlocal alerts_produced
        for alert in newly_published(previous.alerts, current.alerts):
            producer.produce(
                args.output_topic,
                key=alert.key.encode("utf-8"),
                value=json.dumps(alert.to_dict()).encode("utf-8"),
            )
            alerts_produced += 1
            print(f"ALERT  rule={alert.rule_type.value:<20s} "
                  f"severity={alert.severity.value:<8s} key={alert.key}")
        producer.poll(0)

    scheduler = Scheduler(
        engine, store.snapshot, config_store.get,
        interval=args.interval, on_publish=_publish,
    )
    store.subscribe(scheduler.trigger)
    scheduler.start()

    consumed = 0
    print(f"Detection service started  input={args.input_topic}  "
          f"output={args.output_topic}  rules={len(engine.rules)}  "
          f"interval={args.interval:g}s")

    try:
        while running:
            if reload_requested:
                reload_requested = False
                if args.config:
                    reload_config(args.config, config_store)

            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            try:
                payload = json.loads(msg.value().decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                diagnostics.record(DATA, "undecodable message", severity="low")
                continue
            if not isinstance(payload, dict):
                diagnostics.record(DATA, "message is not a JSON object", severity="low")
                continue

            mode, entries = parse_message(payload, diagnostics)
            store.add(entries, mode)
            consumed += len(entries)

            if consumed and consumed % 500 == 0:
                print(f"  ... {consumed} entries consumed, "
                      f"{len(scheduler.alerts)} active alerts")
    finally:
        scheduler.stop(timeout=args.interval)
        producer.flush()
        consumer.close()
        print(f"Done. {consumed} entries consumed, {alerts_produced} alerts produced.")


if __name__ == "__main__":
    main()
