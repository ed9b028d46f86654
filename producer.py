"""Synthetic SSH authentication traffic generator.

Simulates sshd login attempts from a pool of source profiles: ordinary
users who occasionally mistype a password, brute forcers hammering one
account, credential stuffers cycling through account names, and logins
from outside the allowed regions.  Addresses are drawn from the ranges the
detector's built-in geo table knows, so country enrichment has something
to work with.

Usage:
    python producer.py
    python producer.py --normal 20 --brute-forcers 2 --stuffers 1 --roamers 1
    python producer.py --eps 20 --topic auth-events
    python producer.py --bulk 500      # one bulk-replace import, then exit
"""

import argparse
import json
import random
import signal
import time
from dataclasses import dataclass

from confluent_kafka import Producer
from confluent_kafka.admin import AdminClient, NewTopic

PRIVILEGED_ACCOUNTS = ["root", "admin", "test", "guest", "ubuntu", "pi"]
STAFF_ACCOUNTS = ["alice", "bob", "carol", "dave", "erin", "frank", "grace"]
STUFFING_ACCOUNTS = PRIVILEGED_ACCOUNTS + ["oracle", "postgres", "git", "deploy",
                                           "jenkins", "ftp", "user", "support"]

# (country, address prefix) pairs known to the detector's prefix resolver.
ALLOWED_REGIONS = [
    ("United States", "8.8."),
    ("United Kingdom", "89.124."),
    ("Germany", "91.236."),
    ("India", "103.90."),
]
HOSTILE_REGIONS = [
    ("China", "203.46."),
    ("Russia", "156.80."),
    ("Brazil", "45.70."),
    ("Netherlands", "185.220."),
    ("South Korea", "61.177."),
]

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down generator...")
    running = False


signal.signal(signal.SIGINT, _shutdown)   # Ctrl+C (local dev)
signal.signal(signal.SIGTERM, _shutdown)  # docker stop / k8s pod termination


# ---------------------------------------------------------------------------
# Source profiles
# ---------------------------------------------------------------------------

@dataclass
class Source:
    address: str
    country: str
    role: str  # normal | brute_forcer | stuffer | roamer
    events_per_min: float
    failure_rate: float
    accounts: list


def _address(prefix: str) -> str:
    octets = 4 - prefix.count(".")
    return prefix + ".".join(str(random.randint(1, 254)) for _ in range(octets))


def _create_sources(n_normal, n_brute, n_stuffers, n_roamers):
    """Build the source pool. Each source keeps one address for its lifetime."""
    sources = []

    # --- Normal users: low rate, own account, rare typos ---
    for _ in range(n_normal):
        country, prefix = random.choice(ALLOWED_REGIONS)
        sources.append(Source(
            address=_address(prefix), country=country, role="normal",
            events_per_min=random.uniform(0.5, 3),
            failure_rate=random.uniform(0.02, 0.15),
            accounts=[random.choice(STAFF_ACCOUNTS)],
        ))

    # --- Brute forcers: fast, nearly always failing, privileged names ---
    for _ in range(n_brute):
        country, prefix = random.choice(HOSTILE_REGIONS)
        sources.append(Source(
            address=_address(prefix), country=country, role="brute_forcer",
            events_per_min=random.uniform(20, 60),
            failure_rate=0.98,
            accounts=random.sample(PRIVILEGED_ACCOUNTS, 2),
        ))

    # --- Credential stuffers: moderate rate, many account names ---
    for _ in range(n_stuffers):
        country, prefix = random.choice(HOSTILE_REGIONS + ALLOWED_REGIONS)
        sources.append(Source(
            address=_address(prefix), country=country, role="stuffer",
            events_per_min=random.uniform(8, 20),
            failure_rate=0.9,
            accounts=STUFFING_ACCOUNTS,
        ))

    # --- Roamers: staff accounts logging in from outside allowed regions ---
    for _ in range(n_roamers):
        country, prefix = random.choice(HOSTILE_REGIONS)
        sources.append(Source(
            address=_address(prefix), country=country, role="roamer",
            events_per_min=random.uniform(0.5, 2),
            failure_rate=0.1,
            accounts=[random.choice(STAFF_ACCOUNTS)],
        ))

    return sources


# ---------------------------------------------------------------------------
# Event generation
# ---------------------------------------------------------------------------

def _make_event(source: Source, ts: float | None = None) -> dict:
    """One authentication record for a source, following its profile."""
    failed = random.random() < source.failure_rate
    return {
        "timestamp": time.time() if ts is None else ts,
        "source_address": source.address,
        "account": random.choice(source.accounts),
        "outcome": "failed" if failed else "success",
        "port": 22,
        "country": source.country,
    }


def _ensure_topics(bootstrap_servers, topics):
    """Create Kafka topics if they don't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    new_topics = [NewTopic(t, num_partitions=3, replication_factor=3) for t in topics]
    fs = admin.create_topics(new_topics)
    for topic, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{topic}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{topic}' already exists")
            else:
                raise


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="SSH auth traffic generator")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="auth-events")
    parser.add_argument("--normal", type=int, default=10)
    parser.add_argument("--brute-forcers", type=int, default=1)
    parser.add_argument("--stuffers", type=int, default=1)
    parser.add_argument("--roamers", type=int, default=1)
    parser.add_argument("--eps", type=float, default=5, help="Target events/sec")
    parser.add_argument(
        "--bulk", type=int, default=0,
        help="Send one bulk-replace import of N entries spread over the last "
             "10 minutes, then exit",
    )
    args = parser.parse_args()

    sources = _create_sources(
        args.normal, args.brute_forcers, args.stuffers, args.roamers,
    )
    weights = [s.events_per_min for s in sources]

    print(f"Generating to topic '{args.topic}'")
    print(f"Sources: {len(sources)} total")
    for s in sources:
        print(f"  {s.address:<16s} {s.role:<13s} ~{s.events_per_min:>5.1f} epm  "
              f"country={s.country}")

    _ensure_topics(args.bootstrap_servers, [args.topic])

    producer = Producer({
        "bootstrap.servers": args.bootstrap_servers,
        "acks": "all",
        "client.id": "auth-event-generator",
    })

    if args.bulk:
        now = time.time()
        entries = [
            _make_event(random.choices(sources, weights=weights, k=1)[0],
                        ts=now - random.uniform(0, 600))
            for _ in range(args.bulk)
        ]
        entries.sort(key=lambda e: e["timestamp"])
        producer.produce(
            topic=args.topic,
            key=b"bulk-import",
            value=json.dumps({"mode": "replace", "entries": entries}),
        )
        producer.flush()
        print(f"Done. Bulk import of {len(entries)} entries produced.")
        return

    count = 0
    delay = 1.0 / args.eps

    while running:
        source = random.choices(sources, weights=weights, k=1)[0]
        event = _make_event(source)

        producer.produce(
            topic=args.topic,
            key=event["source_address"].encode(),
            value=json.dumps(event),
        )
        producer.poll(0)

        count += 1
        if count % 500 == 0:
            print(f"  ... {count} events produced")

        time.sleep(delay)

    producer.flush()
    print(f"Done. {count} events produced.")


if __name__ == "__main__":
    main()
