"""
Ordered candidate-address generation for each scan tier
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import DEFAULT_HTTP_PORT, NetworkAddress

logger = logging.getLogger(__name__)

DEFAULT_LIKELY_HOST_PARTS = (238, 200, 201, 100, 101, 150, 180, 120)
DEFAULT_PRIORITY_RANGES = ((100, 150), (200, 254))

class CandidateProvider:
    """Base provider - subclasses return ordered addresses per tier"""

    def known(self, prefixes: Sequence[str], explicit: Sequence[NetworkAddress] = ()) -> List[NetworkAddress]:
        raise NotImplementedError

    def priority(self, prefixes: Sequence[str]) -> List[NetworkAddress]:
        raise NotImplementedError

    def comprehensive(self, prefixes: Sequence[str]) -> List[NetworkAddress]:
        raise NotImplementedError


class DefaultCandidateProvider(CandidateProvider):
    """Known addresses and DHCP-shaped host ranges from configuration"""

    def __init__(self, known_addresses: Iterable[str] = (),
                 likely_host_parts: Iterable[int] = DEFAULT_LIKELY_HOST_PARTS,
                 priority_ranges: Iterable[Tuple[int, int]] = DEFAULT_PRIORITY_RANGES,
                 port: int = DEFAULT_HTTP_PORT):
        self.port = port
        self.known_addresses = []
        for value in known_addresses:
            try:
                self.known_addresses.append(NetworkAddress.parse(str(value), port))
            except ValueError:
                logger.warning(f"Ignoring invalid known address: {value}")
        self.likely_host_parts = [int(part) for part in likely_host_parts]
        self.priority_ranges = [(int(start), int(end)) for start, end in priority_ranges]

    @classmethod
    def from_config(cls, network_config: Dict) -> "DefaultCandidateProvider":
        return cls(
            known_addresses=network_config.get('known_addresses', []),
            likely_host_parts=network_config.get('likely_host_parts', DEFAULT_LIKELY_HOST_PARTS),
            priority_ranges=network_config.get('priority_ranges', DEFAULT_PRIORITY_RANGES),
            port=network_config.get('port', DEFAULT_HTTP_PORT),
        )

    def _host(self, prefix: str, host_part: int) -> NetworkAddress:
        return NetworkAddress(f"{prefix}.{host_part}", self.port)

    def known(self, prefixes: Sequence[str], explicit: Sequence[NetworkAddress] = ()) -> List[NetworkAddress]:
        candidates = list(explicit) + self.known_addresses
        for prefix in prefixes:
            candidates.extend(self._host(prefix, part) for part in self.likely_host_parts)
        return _unique(candidates)

    def priority(self, prefixes: Sequence[str]) -> List[NetworkAddress]:
        candidates = []
        for prefix in prefixes:
            for start, end in self.priority_ranges:
                candidates.extend(self._host(prefix, part) for part in range(start, end + 1))
        return _unique(candidates)

    def comprehensive(self, prefixes: Sequence[str]) -> List[NetworkAddress]:
        candidates = []
        for prefix in prefixes:
            candidates.extend(self._host(prefix, part) for part in range(1, 255))
        return candidates


class StaticCandidateProvider(CandidateProvider):
    """Fixed address lists, independent of detected prefixes"""

    def __init__(self, known: Sequence[NetworkAddress] = (), priority: Sequence[NetworkAddress] = (),
                 comprehensive: Optional[Sequence[NetworkAddress]] = None):
        self._known = list(known)
        self._priority = list(priority)
        self._comprehensive = list(comprehensive or [])

    def known(self, prefixes, explicit=()):
        return _unique(list(explicit) + self._known)

    def priority(self, prefixes):
        return list(self._priority)

    def comprehensive(self, prefixes):
        return list(self._comprehensive)


def _unique(addresses: Iterable[NetworkAddress]) -> List[NetworkAddress]:
    seen = set()
    ordered = []
    for address in addresses:
        if address not in seen:
            seen.add(address)
            ordered.append(address)
    return ordered
