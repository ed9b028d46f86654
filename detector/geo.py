"""Best-effort geolocation of source addresses.

GeoResolver is the boundary the engine talks to.  resolve() never raises:
whatever goes wrong inside lookup() degrades to UNKNOWN_LOCATION and is
recorded as a low-severity diagnostic.  Results, including degraded ones,
are cached per address, since the answer for an address does not change
between ticks.

PrefixGeoResolver is a small built-in table, enough for demos and tests.
It is not a geo-IP database: anything it does not recognise is "Unknown".
Subclass GeoResolver and override lookup() to plug in a real provider.
"""

import ipaddress
import threading
from typing import Iterable, NamedTuple

from detector.diagnostics import DiagnosticLog
from detector.models import UNKNOWN_COUNTRY


class GeoLocation(NamedTuple):
    country: str
    country_code: str
    city: str
    flag: str


UNKNOWN_LOCATION = GeoLocation(UNKNOWN_COUNTRY, "XX", "Unknown", "🏴")
LOCAL_NETWORK = GeoLocation("Local Network", "LOCAL", "Internal", "🏠")


class GeoResolver:

    def __init__(self, diagnostics: DiagnosticLog | None = None):
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self._cache: dict[str, GeoLocation] = {}
        self._lock = threading.Lock()

    def lookup(self, address: str) -> GeoLocation:
        """Provider-specific resolution. May raise."""
        raise NotImplementedError

    def resolve(self, address: str) -> GeoLocation:
        with self._lock:
            cached = self._cache.get(address)
        if cached is not None:
            return cached

        try:
            location = self.lookup(address)
            if not isinstance(location, GeoLocation):
                raise TypeError(f"lookup returned {type(location).__name__}")
        except Exception as e:
            self.diagnostics.geo_failure(address, e)
            location = UNKNOWN_LOCATION

        with self._lock:
            self._cache[address] = location
        return location

    def resolve_many(self, addresses: Iterable[str]) -> dict[str, GeoLocation]:
        return {addr: self.resolve(addr) for addr in set(addresses)}

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()


# (country, code, city, flag) -> first-two-octet prefixes
_PREFIX_TABLE = [
    (GeoLocation("China", "CN", "Beijing", "🇨🇳"),
     [f"203.{n}." for n in range(45, 60)]),
    (GeoLocation("Russia", "RU", "Moscow", "🇷🇺"),
     [f"156.{n}." for n in range(78, 92)]),
    (GeoLocation("Germany", "DE", "Berlin", "🇩🇪"),
     [f"91.{n}." for n in range(234, 248)]),
    (GeoLocation("Brazil", "BR", "São Paulo", "🇧🇷"),
     [f"45.{n}." for n in range(67, 81)]),
    (GeoLocation("France", "FR", "Paris", "🇫🇷"),
     [f"178.{n}." for n in range(234, 246)]),
    (GeoLocation("Canada", "CA", "Toronto", "🇨🇦"),
     [f"67.{n}." for n in range(89, 100)]),
    (GeoLocation("United Kingdom", "GB", "London", "🇬🇧"),
     [f"89.{n}." for n in range(123, 133)]),
    (GeoLocation("Australia", "AU", "Sydney", "🇦🇺"),
     [f"123.{n}." for n in range(45, 55)]),
    (GeoLocation("India", "IN", "Mumbai", "🇮🇳"),
     [f"103.{n}." for n in range(89, 99)]),
    (GeoLocation("Argentina", "AR", "Buenos Aires", "🇦🇷"),
     [f"190.{n}." for n in range(2, 12)]),
    (GeoLocation("South Korea", "KR", "Seoul", "🇰🇷"),
     [f"61.{n}." for n in range(177, 187)]),
    (GeoLocation("Netherlands", "NL", "Amsterdam", "🇳🇱"),
     [f"185.{n}." for n in range(220, 230)]),
    (GeoLocation("United States", "US", "New York", "🇺🇸"),
     [f"{n}." for n in (3, 4, 8, 12, 13, 15, 16, 17, 18)]),
]


class PrefixGeoResolver(GeoResolver):

    def __init__(self, diagnostics: DiagnosticLog | None = None,
                 table: list[tuple[GeoLocation, list[str]]] | None = None):
        super().__init__(diagnostics)
        self._table = table if table is not None else _PREFIX_TABLE

    def lookup(self, address: str) -> GeoLocation:
        ip = ipaddress.ip_address(address.strip())  # ValueError on garbage
        if ip.is_private or ip.is_loopback or ip.is_link_local:
            return LOCAL_NETWORK
        text = str(ip)
        for location, prefixes in self._table:
            for prefix in prefixes:
                if text.startswith(prefix):
                    return location
        return UNKNOWN_LOCATION
