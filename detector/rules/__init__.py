# Detection rules as Python classes, one file per rule.
#
# Every rule is a pure function of one tick's inputs: the per-address and
# per-account aggregates, the raw entries (only GeoFence needs them, since
# aggregation discards the country), the config snapshot, and "now".  Rules
# keep no state between ticks; deduplication across ticks is the lifecycle
# manager's job, not theirs.
#
# ALL_RULES order is fixed so that a tick's candidate list, and therefore
# the published alert order, is reproducible.

from detector.aggregator import AggregateWindow
from detector.config import DetectionConfig
from detector.models import Alert, LogEntry, RuleType


class Rule:
    """Base detection rule. Subclass and implement evaluate()."""

    id: str
    name: str
    rule_type: RuleType

    def enabled(self, config: DetectionConfig) -> bool:
        """Operator toggle. Rules without a toggle are always on."""
        return True

    def evaluate(
        self,
        by_address: dict[str, AggregateWindow],
        by_account: dict[str, AggregateWindow],
        entries: list[LogEntry],
        config: DetectionConfig,
        now: float,
    ) -> list[Alert]:
        """Return zero or more candidate alerts for this tick."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def positive(value) -> bool:
    """True for a usable count threshold (a positive, non-bool number)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


from detector.rules.brute_force import BruteForce
from detector.rules.credential_stuffing import CredentialStuffing
from detector.rules.suspicious_account import SuspiciousAccount
from detector.rules.rate_limit import RateLimit
from detector.rules.anomaly_rate import AnomalyRate
from detector.rules.geo_fence import GeoFence

ALL_RULES = [
    BruteForce(),
    CredentialStuffing(),
    SuspiciousAccount(),
    RateLimit(),
    AnomalyRate(),
    GeoFence(),
]
