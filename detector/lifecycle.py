"""Alert lifecycle: expiry and deduplication of candidate alerts.

An alert's identity is (rule_type, key).  While an alert with a given
identity is active, later candidates with the same identity are dropped;
the active alert keeps its original created_at.  Once an alert is older
than the retention horizon it is evicted, and the next matching candidate
is published as a fresh alert.

reconcile() is idempotent: the same candidates at the same instant give
the same alert set.
"""

from typing import Iterable

from detector.models import Alert


def alert_identity(alert: Alert) -> tuple:
    return alert.identity


def expired(alert: Alert, now: float, retention_minutes: float) -> bool:
    return (now - alert.created_at) / 60.0 > retention_minutes


def reconcile(existing: Iterable[Alert], candidates: Iterable[Alert],
              now: float, retention_minutes: float) -> tuple[Alert, ...]:
    """Merge candidates into the active alert set.

    Survivors keep their order; newly published alerts follow in candidate
    order.
    """
    survivors = [a for a in existing if not expired(a, now, retention_minutes)]
    active = {alert_identity(a) for a in survivors}

    published = []
    for candidate in candidates:
        identity = alert_identity(candidate)
        if identity in active:
            continue
        active.add(identity)
        published.append(candidate)

    return tuple(survivors + published)


def newly_published(previous: Iterable[Alert],
                    current: Iterable[Alert]) -> list[Alert]:
    """Alerts in ``current`` that were not published in ``previous``.

    Compared on (id, created_at) so an expired alert that is re-raised in
    the same tick counts as new.
    """
    seen = {(a.id, a.created_at) for a in previous}
    return [a for a in current if (a.id, a.created_at) not in seen]
