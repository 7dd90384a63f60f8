"""
Discovery data structures and models
"""

import ipaddress
import json
from collections import Counter
from typing import Any, Dict, FrozenSet, Iterable, List, Optional
from dataclasses import dataclass, field

DEFAULT_HTTP_PORT = 80

@dataclass(frozen=True, order=True)
class NetworkAddress:
    """IPv4 host plus port (80 unless stated)"""
    host: str
    port: int = DEFAULT_HTTP_PORT

    def __post_init__(self):
        try:
            ipaddress.IPv4Address(self.host)
        except ValueError as e:
            raise ValueError(f"Not an IPv4 address: {self.host!r}") from e
        if not 0 < int(self.port) < 65536:
            raise ValueError(f"Port out of range: {self.port}")

    @classmethod
    def parse(cls, value: str, default_port: int = DEFAULT_HTTP_PORT) -> "NetworkAddress":
        """Parse 'a.b.c.d' or 'a.b.c.d:port'"""
        value = value.strip()
        if ':' in value:
            host, port = value.rsplit(':', 1)
            try:
                return cls(host, int(port))
            except ValueError as e:
                raise ValueError(f"Invalid address: {value!r}") from e
        return cls(value, default_port)

    @property
    def prefix(self) -> str:
        return self.host.rsplit('.', 1)[0]

    @property
    def base_url(self) -> str:
        return f"http://{self}"

    def url(self, path: str) -> str:
        if not path.startswith('/'):
            path = '/' + path
        return f"{self.base_url}{path}"

    def __str__(self) -> str:
        if self.port == DEFAULT_HTTP_PORT:
            return self.host
        return f"{self.host}:{self.port}"

@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one reachability probe"""
    address: NetworkAddress
    transport_reachable: bool
    http_ok: bool = False
    latency: Optional[float] = None

@dataclass(frozen=True)
class HttpResponse:
    """Body of a successful HTTP probe"""
    status: int
    body: str
    latency: float

    def json(self) -> Optional[Any]:
        """Parsed body, or None when it is not valid JSON"""
        try:
            return json.loads(self.body)
        except ValueError:
            return None

def _str_field(payload: Dict, key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""

def _int_field(payload: Dict, key: str) -> int:
    value = payload.get(key)
    # bool is an int subclass; never accept it as a number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)

def _bool_field(payload: Dict, key: str) -> bool:
    value = payload.get(key)
    return value if isinstance(value, bool) else False

@dataclass(frozen=True)
class DeviceRecord:
    """Represents a confirmed device; absent fields keep their defaults"""
    address: NetworkAddress
    device_name: str = ""
    firmware_version: str = ""
    uptime_seconds: int = 0
    free_heap_bytes: int = 0
    wifi_rssi: int = 0
    led_state: bool = False
    relay_state: bool = False
    analog_value: int = 0
    endpoints: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_status(cls, address: NetworkAddress, payload: Any, endpoints: Iterable[str] = ()) -> "DeviceRecord":
        """Build from an /api/status payload, ignoring missing or mistyped fields"""
        if not isinstance(payload, dict):
            payload = {}
        return cls(
            address=address,
            device_name=_str_field(payload, 'device_name'),
            firmware_version=_str_field(payload, 'version'),
            uptime_seconds=_int_field(payload, 'uptime'),
            free_heap_bytes=_int_field(payload, 'free_heap'),
            wifi_rssi=_int_field(payload, 'wifi_rssi'),
            led_state=_bool_field(payload, 'led_state'),
            relay_state=_bool_field(payload, 'relay_state'),
            analog_value=_int_field(payload, 'analog_value'),
            endpoints=frozenset(endpoints),
        )

@dataclass
class ScanStats:
    """Probe counters for one scan, passed explicitly to the scanner"""
    probes_by_tier: Counter = field(default_factory=Counter)
    transport_hits: int = 0
    identity_confirmations: int = 0
    identity_rejections: int = 0

    def record_probe(self, tier: str) -> None:
        self.probes_by_tier[tier] += 1

    @property
    def total_probes(self) -> int:
        return sum(self.probes_by_tier.values())

@dataclass
class TierResult:
    """Results from a single scan tier"""
    tier: str
    addresses_probed: int
    confirmed: List[NetworkAddress]
    duration_seconds: float
    budget_expired: bool = False

@dataclass
class DiscoveryResult:
    """Results from a discovery run"""
    confirmed: List[NetworkAddress]
    tiers: List[TierResult]
    prefixes: List[str]
    duration_seconds: float
    stats: ScanStats

    @property
    def found(self) -> bool:
        return bool(self.confirmed)
