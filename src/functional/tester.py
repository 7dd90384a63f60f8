"""
Functional tester - runs the fixed endpoint matrix against a confirmed device
"""

import asyncio
import json
import logging
import platform
import webbrowser
from typing import Any, Dict, Optional

from command_runner import CommandRunner
from discovery.models import DeviceRecord, NetworkAddress
from discovery.network_discovery import ProbeEngine
from exceptions import ConnectivityError
from .models import ApiTestResult, TestResult

logger = logging.getLogger(__name__)

CONTROL_ACTIONS = ('on', 'off', 'toggle')

class FunctionalTester:
    """Probes /, /api/status, /api/system, /api/wifi, /led/toggle and /relay/toggle.

    Every endpoint gets up to ``attempts`` tries with an independent timeout
    per try and a short pause between tries; the first success stops the
    retries for that endpoint. Individual endpoint failures never raise.
    """

    def __init__(self, config: Optional[Dict] = None, probe_engine: Optional[ProbeEngine] = None,
                 runner: Optional[CommandRunner] = None):
        config = config or {}
        self.probes = probe_engine or ProbeEngine()
        self.runner = runner or CommandRunner()
        self.attempts = config.get('attempts', 3)
        self.retry_delay = config.get('retry_delay_seconds', 0.5)
        self.page_timeout = config.get('page_timeout', 3)
        self.api_timeout = config.get('api_timeout', 2)
        self.control_timeout = config.get('control_timeout', 3)
        self.ping_timeout = config.get('ping_timeout', 2)

    async def run(self, address: NetworkAddress) -> TestResult:
        logger.info(f"[TEST] Testing device at {address}")
        result = TestResult(address=address)

        result.ping_success = await self.test_ping(address)
        if not result.ping_success:
            logger.warning(f"[FAIL] {address} unreachable - check IP address and network")
            return result

        result.main_page_accessible = await self._endpoint_ok(address, '/', self.page_timeout)

        result.api_status = await self.test_api_endpoint(address, '/api/status')
        result.api_system = await self.test_api_endpoint(address, '/api/system')
        result.api_wifi = await self.test_api_endpoint(address, '/api/wifi')

        result.led_control_ok = await self._endpoint_ok(address, '/led/toggle', self.control_timeout)
        result.relay_control_ok = await self._endpoint_ok(address, '/relay/toggle', self.control_timeout)

        if result.api_status.success:
            result.device_status = self._snapshot(address, result.api_status)

        verdict = "fully functional" if result.is_fully_functional() else "NOT fully functional"
        logger.info(f"[TEST] {address} is {verdict}")
        return result

    async def test_ping(self, address: NetworkAddress) -> bool:
        """TCP connect on the HTTP port, OS ping as fallback"""
        transport = await self.probes.check_transport(address, self.ping_timeout)
        if transport.transport_reachable:
            return True

        if platform.system() == 'Windows':
            args = ['ping', '-n', '1', '-w', str(int(self.ping_timeout * 1000)), address.host]
        else:
            args = ['ping', '-c', '1', '-W', str(max(1, int(self.ping_timeout))), address.host]
        ping = await asyncio.to_thread(self.runner.run, args, self.ping_timeout + 3)
        if not ping.ok:
            logger.debug(f"ping {address.host} failed: {ping.stdout.strip()} {ping.stderr.strip()}")
        return ping.ok

    async def _endpoint_ok(self, address: NetworkAddress, path: str, timeout: float) -> bool:
        try:
            await self.probes.fetch(address, path, timeout, attempts=self.attempts, retry_delay=self.retry_delay)
        except ConnectivityError as e:
            logger.info(f"[FAIL] {path} - {e}")
            return False
        logger.info(f"[OK] {path}")
        return True

    async def test_api_endpoint(self, address: NetworkAddress, path: str) -> ApiTestResult:
        try:
            response = await self.probes.fetch(address, path, self.api_timeout,
                                               attempts=self.attempts, retry_delay=self.retry_delay)
        except ConnectivityError as e:
            logger.info(f"[FAIL] {path} - {e}")
            return ApiTestResult.failed()

        logger.info(f"[OK] {path}")
        return ApiTestResult(
            success=True,
            raw_response=response.body,
            response_is_valid_json=response.json() is not None,
        )

    @staticmethod
    def _snapshot(address: NetworkAddress, api_status: ApiTestResult) -> Optional[DeviceRecord]:
        if not api_status.response_is_valid_json:
            return None
        try:
            payload = json.loads(api_status.raw_response)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        return DeviceRecord.from_status(address, payload)

    # ================== DEVICE CONTROL ==================

    async def control_led(self, address: NetworkAddress, action: str) -> str:
        return await self._control(address, 'led', action)

    async def control_relay(self, address: NetworkAddress, action: str) -> str:
        return await self._control(address, 'relay', action)

    async def _control(self, address: NetworkAddress, target: str, action: str) -> str:
        if action not in CONTROL_ACTIONS:
            raise ValueError(f"Unsupported {target} action {action!r}, expected one of {CONTROL_ACTIONS}")
        response = await self.probes.fetch(address, f"/{target}/{action}", self.control_timeout,
                                           attempts=self.attempts, retry_delay=self.retry_delay)
        logger.info(f"[CONTROL] {target} {action} on {address}: HTTP {response.status}")
        return response.body

    async def system_info(self, address: NetworkAddress) -> Any:
        return await self._get_json(address, '/api/system')

    async def wifi_info(self, address: NetworkAddress) -> Any:
        return await self._get_json(address, '/api/wifi')

    async def _get_json(self, address: NetworkAddress, path: str) -> Any:
        response = await self.probes.fetch(address, path, self.api_timeout,
                                           attempts=self.attempts, retry_delay=self.retry_delay)
        payload = response.json()
        if payload is None:
            raise ConnectivityError(f"{address.url(path)} did not return JSON")
        return payload

    def open_web_interface(self, address: NetworkAddress) -> bool:
        url = address.base_url
        opened = webbrowser.open(url)
        if opened:
            logger.info(f"[WEB] Opening web interface at {url}")
        else:
            logger.warning(f"Could not open a browser - open {url} manually")
        return opened
