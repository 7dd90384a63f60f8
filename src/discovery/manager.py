"""
Tiered network scanner with early exit
Tiers run in order (known -> priority -> comprehensive), each with its own
per-probe timeouts and wall-clock budget. A candidate passes only when the
TCP connect succeeds AND the firmware identity is confirmed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from exceptions import DeployerError
from .address_space import AddressSpaceResolver
from .candidates import CandidateProvider, DefaultCandidateProvider
from .identifier import DeviceIdentifier
from .models import DEFAULT_HTTP_PORT, DiscoveryResult, NetworkAddress, ScanStats, TierResult
from .network_discovery import ProbeEngine

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class ScanTier:
    name: str
    probe_timeout: float
    http_timeout: float
    budget_seconds: float

TIER_ORDER = ('known', 'priority', 'comprehensive')

class NetworkScanner:
    """Main discovery service for ESP8266 boards on the local network"""

    def __init__(self, config: Dict, probe_engine: Optional[ProbeEngine] = None,
                 identifier: Optional[DeviceIdentifier] = None,
                 resolver: Optional[AddressSpaceResolver] = None,
                 candidates: Optional[CandidateProvider] = None):
        self.config = config
        self.port = config.get('port', DEFAULT_HTTP_PORT)
        self.discovery_budget = config.get('discovery_budget_seconds', 15)
        self.max_concurrent = config.get('max_concurrent_probes', 32)
        self.probes = probe_engine or ProbeEngine()
        self.identifier = identifier or DeviceIdentifier(self.probes)
        self.resolver = resolver or AddressSpaceResolver(fallback_prefixes=config.get('fallback_prefixes'))
        self.candidates = candidates or DefaultCandidateProvider.from_config(config)
        self.tiers = self._build_tiers(config.get('tiers', {}))

    @staticmethod
    def _build_tiers(tier_config: Dict) -> List[ScanTier]:
        defaults = {
            'known': (0.5, 1.0, 3),
            'priority': (1.5, 2.0, 6),
            'comprehensive': (0.75, 1.5, 10),
        }
        tiers = []
        for name in TIER_ORDER:
            probe_timeout, http_timeout, budget = defaults[name]
            settings = tier_config.get(name, {})
            tiers.append(ScanTier(
                name=name,
                probe_timeout=settings.get('probe_timeout', probe_timeout),
                http_timeout=settings.get('http_timeout', http_timeout),
                budget_seconds=settings.get('budget_seconds', budget),
            ))
        return tiers

    async def find_devices(self, known: Iterable[Union[str, NetworkAddress]] = (),
                           exhaustive: bool = False) -> List[NetworkAddress]:
        result = await self.scan(known, exhaustive)
        return result.confirmed

    async def scan(self, known: Iterable[Union[str, NetworkAddress]] = (), exhaustive: bool = False,
                   stats: Optional[ScanStats] = None) -> DiscoveryResult:
        """
        Run the tiers in order until a device is confirmed (or all tiers in exhaustive mode).
        Returns an empty result rather than raising when nothing is found.
        """
        logger.info("[SCAN] Starting tiered device discovery...")
        start_time = time.monotonic()
        stats = stats if stats is not None else ScanStats()

        explicit = self._parse_known(known)
        prefixes = await asyncio.to_thread(self.resolver.resolve)

        confirmed: List[NetworkAddress] = []
        tier_results: List[TierResult] = []
        probed: Set[NetworkAddress] = set()

        for tier in self.tiers:
            remaining = self.discovery_budget - (time.monotonic() - start_time)
            if remaining <= 0:
                logger.warning(f"[SCAN] Discovery budget of {self.discovery_budget}s exhausted before tier '{tier.name}'")
                break

            addresses = [a for a in self._tier_candidates(tier.name, prefixes, explicit) if a not in probed]
            budget = min(tier.budget_seconds, remaining)
            logger.info(f"[SCAN] Tier '{tier.name}': {len(addresses)} candidates, "
                        f"timeout {tier.probe_timeout}s/probe, budget {budget:.1f}s")

            tier_result, tier_probed = await self._scan_tier(tier, addresses, budget, exhaustive, stats)
            probed.update(tier_probed)
            tier_results.append(tier_result)
            confirmed.extend(a for a in tier_result.confirmed if a not in confirmed)

            if confirmed and not exhaustive:
                break

        duration = time.monotonic() - start_time
        if confirmed:
            logger.info(f"[PASS] Discovery complete: {', '.join(str(a) for a in confirmed)} "
                        f"({stats.total_probes} probes in {duration:.1f}s)")
        else:
            logger.warning(f"[FAIL] No device confirmed after {stats.total_probes} probes in {duration:.1f}s")

        return DiscoveryResult(
            confirmed=confirmed,
            tiers=tier_results,
            prefixes=prefixes,
            duration_seconds=duration,
            stats=stats,
        )

    def _parse_known(self, known: Iterable[Union[str, NetworkAddress]]) -> List[NetworkAddress]:
        addresses = []
        for value in known:
            if isinstance(value, NetworkAddress):
                addresses.append(value)
                continue
            try:
                addresses.append(NetworkAddress.parse(value, self.port))
            except ValueError:
                logger.warning(f"Ignoring invalid address: {value}")
        return addresses

    def _tier_candidates(self, tier_name: str, prefixes: Sequence[str],
                         explicit: Sequence[NetworkAddress]) -> List[NetworkAddress]:
        if tier_name == 'known':
            return self.candidates.known(prefixes, explicit)
        if tier_name == 'priority':
            return self.candidates.priority(prefixes)
        return self.candidates.comprehensive(prefixes)

    async def _scan_tier(self, tier: ScanTier, addresses: List[NetworkAddress], budget: float,
                         exhaustive: bool, stats: ScanStats) -> Tuple[TierResult, Set[NetworkAddress]]:
        """
        Probe a tier concurrently under a semaphore.
        Outstanding probes are cancelled on early exit or when the budget expires.
        """
        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.max_concurrent)
        probed: Set[NetworkAddress] = set()
        found: List[NetworkAddress] = []
        budget_expired = False

        async def probe_one(address: NetworkAddress) -> Optional[NetworkAddress]:
            async with semaphore:
                probed.add(address)
                stats.record_probe(tier.name)
                return await self._probe_candidate(address, tier, stats)

        tasks = [asyncio.create_task(probe_one(address)) for address in addresses]
        try:
            if tasks:
                for next_done in asyncio.as_completed(tasks, timeout=budget):
                    address = await next_done
                    if address is None:
                        continue
                    found.append(address)
                    if not exhaustive:
                        break
        except asyncio.TimeoutError:
            budget_expired = True
            logger.warning(f"[SCAN] Tier '{tier.name}' budget of {budget:.1f}s expired "
                           f"after {len(probed)}/{len(addresses)} probes")
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        order = {address: index for index, address in enumerate(addresses)}
        found.sort(key=lambda a: order.get(a, len(order)))

        duration = time.monotonic() - start_time
        logger.info(f"[SCAN] Tier '{tier.name}' done: {len(found)} confirmed, "
                    f"{len(probed)} probed in {duration:.1f}s")
        return TierResult(tier.name, len(probed), found, duration, budget_expired), probed

    async def _probe_candidate(self, address: NetworkAddress, tier: ScanTier,
                               stats: ScanStats) -> Optional[NetworkAddress]:
        try:
            transport = await self.probes.check_transport(address, tier.probe_timeout)
            if not transport.transport_reachable:
                return None
            stats.transport_hits += 1

            if await self.identifier.confirm(address, timeout=tier.http_timeout):
                stats.identity_confirmations += 1
                logger.info(f"[OK] Device confirmed at {address} (tier '{tier.name}')")
                return address

            stats.identity_rejections += 1
            logger.debug(f"HTTP server at {address} is not the expected firmware")
            return None
        except (DeployerError, OSError) as e:
            # Per-address failures only exclude that address
            logger.debug(f"Probe of {address} failed: {e}")
            return None
