"""Tests for the endpoint matrix run by FunctionalTester."""

import asyncio

import pytest

from command_runner import CommandResult
from conftest import STATUS_BODY, FakeProbeEngine, FakeRunner
from discovery.models import NetworkAddress
from exceptions import ConnectivityError
from functional.tester import FunctionalTester

TESTER_CONFIG = {'attempts': 3, 'retry_delay_seconds': 0, 'page_timeout': 0.1, 'api_timeout': 0.1,
                 'control_timeout': 0.1, 'ping_timeout': 0.1}


def healthy_routes(address):
    return {
        (address, '/'): '<h1>ESP8266</h1>',
        (address, '/api/status'): STATUS_BODY,
        (address, '/api/system'): '{"chip_id":"abc","flash_size":4194304}',
        (address, '/api/wifi'): '{"ssid":"home","rssi":-60}',
        (address, '/led/toggle'): 'LED toggled',
        (address, '/relay/toggle'): 'Relay toggled',
    }


@pytest.mark.asyncio
class TestFunctionalTester:

    async def test_healthy_device(self, device_address):
        engine = FakeProbeEngine(reachable=[device_address], routes=healthy_routes(device_address))
        result = await FunctionalTester(TESTER_CONFIG, engine, FakeRunner()).run(device_address)

        assert result.is_fully_functional()
        assert result.api_system.success and result.api_system.response_is_valid_json
        assert result.led_control_ok and result.relay_control_ok
        assert result.device_status.device_name == 'ESP-Test'
        assert result.device_status.free_heap_bytes == 30000

    async def test_scenario_c_wifi_failure_is_not_fatal(self, device_address):
        routes = healthy_routes(device_address)
        routes[(device_address, '/api/wifi')] = asyncio.TimeoutError()
        engine = FakeProbeEngine(reachable=[device_address], routes=routes)

        result = await FunctionalTester(TESTER_CONFIG, engine, FakeRunner()).run(device_address)

        assert result.api_wifi.success is False
        assert engine.calls_for('/api/wifi') == 3
        assert result.is_fully_functional()

    async def test_retry_succeeds_on_second_attempt(self, device_address):
        routes = healthy_routes(device_address)
        routes[(device_address, '/api/status')] = [asyncio.TimeoutError(), STATUS_BODY]
        engine = FakeProbeEngine(reachable=[device_address], routes=routes)

        result = await FunctionalTester(TESTER_CONFIG, engine, FakeRunner()).run(device_address)

        assert result.api_status.success
        assert engine.calls_for('/api/status') == 2

    async def test_non_json_api_body_still_succeeds(self, device_address):
        routes = healthy_routes(device_address)
        routes[(device_address, '/api/system')] = 'system ok'
        engine = FakeProbeEngine(reachable=[device_address], routes=routes)

        result = await FunctionalTester(TESTER_CONFIG, engine, FakeRunner()).run(device_address)

        assert result.api_system.success
        assert not result.api_system.response_is_valid_json
        assert result.api_system.raw_response == 'system ok'

    async def test_unreachable_device_short_circuits(self):
        address = NetworkAddress('192.168.1.99')
        engine = FakeProbeEngine()
        runner = FakeRunner({'ping': CommandResult(1, "100% packet loss", "")})

        result = await FunctionalTester(TESTER_CONFIG, engine, runner).run(address)

        assert not result.ping_success
        assert not result.is_fully_functional()
        assert engine.fetch_calls == []
        assert runner.calls and runner.calls[0][0] == 'ping'

    async def test_os_ping_fallback(self):
        address = NetworkAddress('192.168.1.99')
        runner = FakeRunner({'ping': CommandResult(0, "1 packets received", "")})
        tester = FunctionalTester(TESTER_CONFIG, FakeProbeEngine(), runner)

        assert await tester.test_ping(address)

    async def test_control_rejects_unknown_action(self, device_address):
        tester = FunctionalTester(TESTER_CONFIG, FakeProbeEngine(), FakeRunner())
        with pytest.raises(ValueError):
            await tester.control_led(device_address, 'blink')

    async def test_control_relay_on(self, device_address):
        engine = FakeProbeEngine(reachable=[device_address], routes={(device_address, '/relay/on'): 'Relay ON'})
        tester = FunctionalTester(TESTER_CONFIG, engine, FakeRunner())

        assert await tester.control_relay(device_address, 'on') == 'Relay ON'

    async def test_system_info_requires_json(self, device_address):
        engine = FakeProbeEngine(reachable=[device_address], routes={(device_address, '/api/system'): 'plain'})
        tester = FunctionalTester(TESTER_CONFIG, engine, FakeRunner())

        with pytest.raises(ConnectivityError):
            await tester.system_info(device_address)
