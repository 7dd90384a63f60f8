"""
Device identity confirmation - decides whether a reachable host runs the expected firmware
"""

import json
import logging
from typing import Any, Optional

from exceptions import ConnectivityError, IdentityMismatchError
from .models import DeviceRecord, NetworkAddress
from .network_discovery import ProbeEngine

logger = logging.getLogger(__name__)

STATUS_PATH = '/api/status'
IDENTITY_FIELD = 'device_name'
TELEMETRY_FIELDS = ('uptime', 'free_heap', 'wifi_rssi', 'chip_id')
PAGE_MARKERS = ('ESP8266', 'NodeMCU', 'ESP32')
# Control paths change device state, so inspection never triggers them
INSPECT_PATHS = ('/', '/api/status', '/api/system', '/api/wifi')


def matches_status_signature(body: str) -> bool:
    """
    True when a status body carries the identity field AND a telemetry field.
    A generic server answering with just "device_name" is not enough.
    """
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        return IDENTITY_FIELD in payload and any(key in payload for key in TELEMETRY_FIELDS)

    return f'"{IDENTITY_FIELD}"' in body and any(f'"{key}"' in body for key in TELEMETRY_FIELDS)


def matches_page_markers(body: str) -> bool:
    return any(marker in body for marker in PAGE_MARKERS)


class DeviceIdentifier:
    """Signature check on /api/status, root page markers as fallback"""

    def __init__(self, probe_engine: Optional[ProbeEngine] = None, timeout: float = 2.0):
        self.probes = probe_engine or ProbeEngine()
        self.timeout = timeout

    async def confirm(self, address: NetworkAddress, timeout: Optional[float] = None) -> bool:
        timeout = timeout or self.timeout
        try:
            response = await self.probes.fetch(address, STATUS_PATH, timeout)
        except ConnectivityError:
            # Status endpoint unreachable: look at the root page instead
            return await self._confirm_from_page(address, timeout)

        if matches_status_signature(response.body):
            logger.debug(f"Status signature matched at {address}")
            return True

        logger.debug(f"Status endpoint at {address} lacks firmware signature")
        return False

    async def _confirm_from_page(self, address: NetworkAddress, timeout: float) -> bool:
        try:
            response = await self.probes.fetch(address, '/', timeout)
        except ConnectivityError:
            return False
        if matches_page_markers(response.body):
            logger.debug(f"Root page markers matched at {address}")
            return True
        return False

    async def inspect(self, address: NetworkAddress, transport_timeout: float = 1.0) -> DeviceRecord:
        """
        Build a DeviceRecord for a confirmed device.
        Unreachable hosts raise ConnectivityError, signature failures IdentityMismatchError.
        """
        transport = await self.probes.check_transport(address, transport_timeout)
        if not transport.transport_reachable:
            raise ConnectivityError(f"{address} is not reachable on port {address.port}")

        if not await self.confirm(address):
            raise IdentityMismatchError(f"{address} does not look like the expected firmware")

        payload: Any = None
        try:
            status = await self.probes.fetch(address, STATUS_PATH, self.timeout)
            payload = status.json()
        except ConnectivityError as e:
            logger.warning(f"Status API unavailable while inspecting {address}: {e}")

        endpoints = []
        for path in INSPECT_PATHS:
            try:
                await self.probes.fetch(address, path, self.timeout)
                endpoints.append(path)
            except ConnectivityError:
                logger.debug(f"Endpoint {path} unavailable on {address}")

        record = DeviceRecord.from_status(address, payload, endpoints)
        logger.info(f"[INSPECT] {address}: {record.device_name or 'unnamed'} "
                    f"v{record.firmware_version or '?'}, {len(record.endpoints)} endpoints")
        return record
