"""ProbeEngine against a real local aiohttp server."""

import asyncio
import socket

import pytest
import pytest_asyncio
from aiohttp import web

from discovery.models import NetworkAddress
from discovery.network_discovery import ProbeEngine
from exceptions import ConnectivityError

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


@pytest_asyncio.fixture
async def device_server():
    """Minimal stand-in for the device web server"""
    hits = {'flaky': 0}

    async def status(request):
        return web.json_response({'device_name': 'ESP-Test', 'free_heap': 30000})

    async def slow(request):
        await asyncio.sleep(2)
        return web.Response(text='late')

    async def flaky(request):
        hits['flaky'] += 1
        if hits['flaky'] < 2:
            return web.Response(status=503, text='busy')
        return web.Response(text='recovered')

    async def missing(request):
        return web.Response(status=404, text='Not found')

    app = web.Application()
    app.router.add_get('/api/status', status)
    app.router.add_get('/slow', slow)
    app.router.add_get('/flaky', flaky)
    app.router.add_get('/missing', missing)

    runner = web.AppRunner(app)
    await runner.setup()
    port = free_port()
    site = web.TCPSite(runner, '127.0.0.1', port)
    await site.start()
    try:
        yield NetworkAddress('127.0.0.1', port), hits
    finally:
        await runner.cleanup()


async def test_transport_reachable(device_server):
    address, _ = device_server
    result = await ProbeEngine().check_transport(address, 1.0)

    assert result.transport_reachable
    assert result.latency is not None


async def test_transport_refused():
    result = await ProbeEngine().check_transport(NetworkAddress('127.0.0.1', free_port()), 1.0)
    assert not result.transport_reachable


async def test_fetch_json(device_server):
    address, _ = device_server
    response = await ProbeEngine().fetch(address, '/api/status', 2.0)

    assert response.status == 200
    assert response.json()['device_name'] == 'ESP-Test'


async def test_fetch_timeout_raises_connectivity_error(device_server):
    address, _ = device_server
    with pytest.raises(ConnectivityError):
        await ProbeEngine().fetch(address, '/slow', 0.3)


async def test_http_error_status_is_failure(device_server):
    address, _ = device_server
    with pytest.raises(ConnectivityError, match='HTTP 404'):
        await ProbeEngine().fetch(address, '/missing', 1.0, attempts=2)


async def test_retry_until_success(device_server):
    address, hits = device_server
    response = await ProbeEngine().fetch(address, '/flaky', 1.0, attempts=3, retry_delay=0.01)

    assert response.body == 'recovered'
    assert hits['flaky'] == 2


async def test_probe_combines_transport_and_http(device_server):
    address, _ = device_server
    result = await ProbeEngine().probe(address, 1.0, path='/api/status')

    assert result.transport_reachable and result.http_ok
