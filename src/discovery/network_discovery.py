"""
Low-level reachability probes: raw TCP connect and bounded HTTP GET with retry
"""

import asyncio
import time
import logging
from typing import Optional

import aiohttp

from exceptions import ConnectivityError
from http_helper import create_device_session
from .models import HttpResponse, NetworkAddress, ProbeResult

logger = logging.getLogger(__name__)

class ProbeEngine:
    """Transport and HTTP probes, every call bounded by an explicit timeout"""

    async def check_transport(self, address: NetworkAddress, timeout: float) -> ProbeResult:
        """Attempt a TCP connection to the address port"""
        start_time = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address.host, address.port),
                timeout=timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"TCP connect to {address} failed: {e!r}")
            return ProbeResult(address, transport_reachable=False)

        latency = time.monotonic() - start_time
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return ProbeResult(address, transport_reachable=True, latency=latency)

    async def fetch(self, address: NetworkAddress, path: str, timeout: float,
                    attempts: int = 1, retry_delay: float = 0.0) -> HttpResponse:
        """
        HTTP GET with independent per-attempt timeout.
        First success short-circuits; raises ConnectivityError after the last failed attempt.
        """
        url = address.url(path)
        last_error: Optional[str] = None

        for attempt in range(1, attempts + 1):
            start_time = time.monotonic()
            try:
                async with create_device_session(timeout) as session:
                    async with session.get(url) as response:
                        body = await response.text(errors='replace')
                        if response.status < 400:
                            return HttpResponse(response.status, body, time.monotonic() - start_time)
                        last_error = f"HTTP {response.status}"
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = repr(e)

            logger.debug(f"GET {url} attempt {attempt}/{attempts} failed: {last_error}")
            if attempt < attempts and retry_delay > 0:
                await asyncio.sleep(retry_delay)

        raise ConnectivityError(f"GET {url} failed after {attempts} attempt(s): {last_error}")

    async def probe(self, address: NetworkAddress, timeout: float, path: str = '/') -> ProbeResult:
        """Transport check followed by one HTTP request"""
        transport = await self.check_transport(address, timeout)
        if not transport.transport_reachable:
            return transport
        try:
            response = await self.fetch(address, path, timeout)
        except ConnectivityError:
            return transport
        return ProbeResult(address, transport_reachable=True, http_ok=True, latency=response.latency)
