"""
Discovery module for ESP8266 device discovery and identification
"""

from .address_space import AddressSpaceResolver
from .candidates import CandidateProvider, DefaultCandidateProvider, StaticCandidateProvider
from .identifier import DeviceIdentifier
from .manager import NetworkScanner, ScanTier
from .models import DeviceRecord, DiscoveryResult, HttpResponse, NetworkAddress, ProbeResult, ScanStats, TierResult
from .network_discovery import ProbeEngine

__all__ = [
    'AddressSpaceResolver', 'CandidateProvider', 'DefaultCandidateProvider', 'StaticCandidateProvider',
    'DeviceIdentifier', 'NetworkScanner', 'ScanTier', 'DeviceRecord', 'DiscoveryResult', 'HttpResponse',
    'NetworkAddress', 'ProbeResult', 'ScanStats', 'TierResult', 'ProbeEngine',
]
