"""Detection configuration: thresholds, toggles, and the geo-fence policy.

DetectionConfig is edited by an operator while the engine runs.  The engine
never reads the live object directly: ConfigStore.get() hands out a copy at
the start of each tick, so an edit made mid-tick applies from the next tick.

Configs can be loaded from YAML:

    brute_force_threshold: 5
    time_window_minutes: 5
    suspicious_accounts: [admin, root, test]
    rate_limit_threshold: 10
    anomaly_min_attempts: 3
    anomaly_failure_rate_threshold: 0.8
    alert_retention_minutes: 60
    geo_fence:
      mode: allow            # or: deny
      countries: [United States, Germany]
      alert_on_unknown: true
"""

import copy
import threading
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

import yaml

ALLOW = "allow"
DENY = "deny"

DEFAULT_SUSPICIOUS_ACCOUNTS = frozenset(
    {"admin", "root", "test", "guest", "ubuntu", "pi"}
)
DEFAULT_ALLOWED_COUNTRIES = frozenset(
    {"United States", "United Kingdom", "Germany", "India"}
)
DEFAULT_WINDOW_MINUTES = 5
DEFAULT_RETENTION_MINUTES = 60


@dataclass(frozen=True)
class GeoFencePolicy:
    """Allow-list or deny-list of source countries.

    The mode field makes the two lists mutually exclusive.  In allow mode
    any country not listed is restricted, "Unknown" included.  In deny mode
    "Unknown" is restricted only when alert_on_unknown is set.
    """

    mode: str = ALLOW
    countries: frozenset = DEFAULT_ALLOWED_COUNTRIES
    alert_on_unknown: bool = True

    def __post_init__(self):
        if self.mode not in (ALLOW, DENY):
            raise ValueError(f"geo_fence mode must be 'allow' or 'deny', got {self.mode!r}")
        object.__setattr__(self, "countries", frozenset(self.countries))

    @classmethod
    def allow(cls, countries, alert_on_unknown: bool = True) -> "GeoFencePolicy":
        return cls(ALLOW, frozenset(countries), alert_on_unknown)

    @classmethod
    def deny(cls, countries, alert_on_unknown: bool = False) -> "GeoFencePolicy":
        return cls(DENY, frozenset(countries), alert_on_unknown)

    def violates(self, country: str | None) -> bool:
        unknown = not country or country == "Unknown"
        if self.mode == ALLOW:
            return unknown or country not in self.countries
        if unknown:
            return self.alert_on_unknown
        return country in self.countries


@dataclass
class DetectionConfig:
    brute_force_threshold: int = 5
    time_window_minutes: float = DEFAULT_WINDOW_MINUTES
    suspicious_accounts: frozenset = DEFAULT_SUSPICIOUS_ACCOUNTS
    rate_limit_threshold: int = 10
    anomaly_min_attempts: int = 3
    anomaly_failure_rate_threshold: float = 0.8
    alert_retention_minutes: float = DEFAULT_RETENTION_MINUTES
    geo_fence: GeoFencePolicy = field(default_factory=GeoFencePolicy)
    enable_rate_limiting: bool = True
    enable_anomaly_detection: bool = True
    enable_geo_detection: bool = True

    def __post_init__(self):
        self.suspicious_accounts = frozenset(self.suspicious_accounts)

    @property
    def allowed_countries(self) -> frozenset:
        """Countries accepted by the geo fence; empty in deny mode."""
        return self.geo_fence.countries if self.geo_fence.mode == ALLOW else frozenset()

    def effective_window_minutes(self) -> float:
        if _is_number(self.time_window_minutes) and self.time_window_minutes > 0:
            return float(self.time_window_minutes)
        return DEFAULT_WINDOW_MINUTES

    def effective_retention_minutes(self) -> float:
        if _is_number(self.alert_retention_minutes) and self.alert_retention_minutes > 0:
            return float(self.alert_retention_minutes)
        return DEFAULT_RETENTION_MINUTES

    def problems(self) -> list[tuple[str, str]]:
        """(field, message) pairs for values the engine will clamp or skip."""
        found = []
        for name in ("brute_force_threshold", "rate_limit_threshold",
                     "anomaly_min_attempts"):
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                found.append((name, f"{name}={value!r} is not positive; rule skipped"))
        rate = self.anomaly_failure_rate_threshold
        if not _is_number(rate) or not 0 < rate <= 1:
            found.append((
                "anomaly_failure_rate_threshold",
                f"anomaly_failure_rate_threshold={rate!r} is outside (0, 1]; rule skipped",
            ))
        if self.effective_window_minutes() != self.time_window_minutes:
            found.append((
                "time_window_minutes",
                f"time_window_minutes={self.time_window_minutes!r} is not positive; "
                f"using {DEFAULT_WINDOW_MINUTES}",
            ))
        if self.effective_retention_minutes() != self.alert_retention_minutes:
            found.append((
                "alert_retention_minutes",
                f"alert_retention_minutes={self.alert_retention_minutes!r} is not "
                f"positive; using {DEFAULT_RETENTION_MINUTES}",
            ))
        return found


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigStore:
    """Holds the operator-editable config; hands out per-tick copies."""

    def __init__(self, config: DetectionConfig | None = None):
        self._config = config or DetectionConfig()
        self._lock = threading.Lock()

    def get(self) -> DetectionConfig:
        with self._lock:
            return copy.deepcopy(self._config)

    def update(self, **changes) -> DetectionConfig:
        with self._lock:
            self._config = replace(self._config, **changes)
            return copy.deepcopy(self._config)

    def set(self, config: DetectionConfig) -> None:
        with self._lock:
            self._config = copy.deepcopy(config)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

_FIELD_NAMES = {f.name for f in fields(DetectionConfig)}
_GEO_FIELDS = ("mode", "countries", "alert_on_unknown")


def load_config(path: str | Path) -> DetectionConfig:
    """Parse and validate a YAML config file."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return config_from_dict(data, source=path.name)


def config_from_dict(data: dict, source: str = "config") -> DetectionConfig:
    if not isinstance(data, dict):
        raise ValueError(f"{source}: top level must be a mapping")

    for key in data:
        if key not in _FIELD_NAMES:
            raise ValueError(f"{source}: unknown field '{key}'")

    values = dict(data)
    if "suspicious_accounts" in values:
        values["suspicious_accounts"] = frozenset(
            _string_list(values["suspicious_accounts"], "suspicious_accounts", source)
        )
    if "geo_fence" in values:
        values["geo_fence"] = _parse_geo_fence(values["geo_fence"], source)

    for name in ("enable_rate_limiting", "enable_anomaly_detection",
                 "enable_geo_detection"):
        if name in values and not isinstance(values[name], bool):
            raise ValueError(f"{source}: '{name}' must be true or false")

    return DetectionConfig(**values)


def _parse_geo_fence(raw, source: str) -> GeoFencePolicy:
    if not isinstance(raw, dict):
        raise ValueError(f"{source}: 'geo_fence' must be a mapping")
    for key in raw:
        if key not in _GEO_FIELDS:
            raise ValueError(f"{source}: unknown geo_fence field '{key}'")
    mode = raw.get("mode", ALLOW)
    countries = _string_list(raw.get("countries", []), "geo_fence.countries", source)
    alert_on_unknown = raw.get("alert_on_unknown", mode == ALLOW)
    if not isinstance(alert_on_unknown, bool):
        raise ValueError(f"{source}: 'geo_fence.alert_on_unknown' must be true or false")
    try:
        return GeoFencePolicy(mode, frozenset(countries), alert_on_unknown)
    except ValueError as e:
        raise ValueError(f"{source}: {e}") from e


def _string_list(value, name: str, source: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{source}: '{name}' must be a list of strings")
    return value
