"""Unit tests for discovery, functional and upload data models."""

import pytest

from discovery.models import DeviceRecord, HttpResponse, NetworkAddress, ScanStats
from functional.models import ApiTestResult, TestResult
from provisioning.models import UploadSession, UploadState


class TestNetworkAddress:

    def test_parse_plain_host_uses_default_port(self):
        address = NetworkAddress.parse('192.168.1.238')
        assert address.host == '192.168.1.238'
        assert address.port == 80
        assert str(address) == '192.168.1.238'
        assert address.base_url == 'http://192.168.1.238'

    def test_parse_host_with_port(self):
        address = NetworkAddress.parse(' 10.0.0.5:8080 ')
        assert address == NetworkAddress('10.0.0.5', 8080)
        assert str(address) == '10.0.0.5:8080'
        assert address.url('api/status') == 'http://10.0.0.5:8080/api/status'

    @pytest.mark.parametrize('value', ['esp.local', '192.168.1', '192.168.1.300', '192.168.1.5:0', '1.2.3.4:abc'])
    def test_rejects_non_ipv4(self, value):
        with pytest.raises(ValueError):
            NetworkAddress.parse(value)

    def test_prefix(self):
        assert NetworkAddress('192.168.0.200').prefix == '192.168.0'

    def test_addresses_are_hashable_and_ordered(self):
        addresses = {NetworkAddress('192.168.1.2'), NetworkAddress('192.168.1.2'), NetworkAddress('192.168.1.1')}
        assert len(addresses) == 2


class TestDeviceRecord:

    def test_from_status_maps_fields(self, device_address, status_body):
        payload = HttpResponse(200, status_body, 0.01).json()
        record = DeviceRecord.from_status(device_address, payload, ['/', '/api/status'])

        assert record.device_name == 'ESP-Test'
        assert record.firmware_version == '1.2.0'
        assert record.uptime_seconds == 3600
        assert record.free_heap_bytes == 30000
        assert record.wifi_rssi == -61
        assert record.led_state is True
        assert record.relay_state is False
        assert record.analog_value == 512
        assert record.endpoints == frozenset({'/', '/api/status'})

    def test_wrong_types_keep_defaults(self, device_address):
        record = DeviceRecord.from_status(device_address, {
            'device_name': 42,
            'uptime': True,
            'free_heap': '30000',
            'led_state': 1,
        })
        assert record.device_name == ""
        assert record.uptime_seconds == 0
        assert record.free_heap_bytes == 0
        assert record.led_state is False

    def test_non_mapping_payload(self, device_address):
        assert DeviceRecord.from_status(device_address, ["not", "a", "dict"]) == DeviceRecord(device_address)

    def test_invalid_json_body(self):
        assert HttpResponse(200, "<html>", 0.0).json() is None


class TestTestResult:

    def test_aggregate_ignores_auxiliary_endpoints(self, device_address):
        result = TestResult(
            address=device_address,
            ping_success=True,
            main_page_accessible=True,
            api_status=ApiTestResult(True, '{}', True),
        )
        assert result.api_wifi.success is False
        assert result.led_control_ok is False
        assert result.is_fully_functional()

    @pytest.mark.parametrize('ping, page, status', [
        (False, True, True),
        (True, False, True),
        (True, True, False),
    ])
    def test_aggregate_requires_core_endpoints(self, device_address, ping, page, status):
        result = TestResult(
            address=device_address,
            ping_success=ping,
            main_page_accessible=page,
            api_status=ApiTestResult(status),
            api_system=ApiTestResult(True),
            api_wifi=ApiTestResult(True),
            led_control_ok=True,
            relay_control_ok=True,
        )
        assert not result.is_fully_functional()


class TestUploadSession:

    def make_session(self, size=1500, chunk=512):
        return UploadSession(target_path='/wifi_config.json', declared_size=size, chunk_size=chunk)

    def test_total_chunks(self):
        assert self.make_session(1500, 512).total_chunks == 3
        assert self.make_session(1024, 512).total_chunks == 2
        assert self.make_session(0, 512).total_chunks == 0

    def test_happy_path(self):
        session = self.make_session()
        session.begin()
        for size in (512, 512, 476):
            session.record_chunk(size)
        session.complete()

        assert session.state is UploadState.COMPLETED
        assert session.bytes_sent == session.declared_size
        assert session.chunk_index == 3

    def test_cannot_overflow_declared_size(self):
        session = self.make_session(100, 64)
        session.begin()
        session.record_chunk(64)
        with pytest.raises(ValueError):
            session.record_chunk(64)
        assert session.bytes_sent == 64

    def test_cannot_complete_short(self):
        session = self.make_session(100, 64)
        session.begin()
        session.record_chunk(64)
        with pytest.raises(ValueError):
            session.complete()
        assert session.state is UploadState.SENDING

    def test_failure_is_terminal(self):
        session = self.make_session()
        session.begin()
        session.record_chunk(512)
        session.fail("port vanished")

        assert session.state is UploadState.FAILED
        assert session.bytes_sent == 512
        assert session.error == "port vanished"
        with pytest.raises(ValueError):
            session.fail("again")
        with pytest.raises(ValueError):
            session.record_chunk(10)
        with pytest.raises(ValueError):
            session.begin()

    def test_fail_before_sending(self):
        session = self.make_session()
        session.fail("could not open port")
        assert session.state is UploadState.FAILED
        assert session.bytes_sent == 0


def test_scan_stats_counts_per_tier():
    stats = ScanStats()
    stats.record_probe('known')
    stats.record_probe('known')
    stats.record_probe('priority')
    assert stats.probes_by_tier['known'] == 2
    assert stats.total_probes == 3
