"""CLI wiring tests."""

import argparse
import asyncio
import logging

import pytest

import main
from command_runner import CommandResult
from conftest import FakeProbeEngine, FakeRunner, FakeSerial, SerialFactory
from deployment.toolchain import ArduinoToolchain
from discovery.models import NetworkAddress
from functional.tester import FunctionalTester
from provisioning.serial_link import SerialPortManager
from provisioning.serial_provisioner import UPLOAD_HANDLER_SKETCH


@pytest.fixture(autouse=True)
def no_config_env(monkeypatch):
    monkeypatch.delenv('CONFIG_FILE', raising=False)


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def test_parser_knows_every_command():
    parser = main.build_parser()
    for argv in (
        ['deploy', 'sketch.ino', '--board', 'auto', '--known', '192.168.1.238', '--open'],
        ['scan', '--exhaustive'],
        ['test', '192.168.1.238'],
        ['inspect', '192.168.1.238'],
        ['led', '192.168.1.238', 'on'],
        ['relay', '192.168.1.238', 'toggle'],
        ['upload-config', 'static/wifi_config.json', '--port', 'COM3'],
        ['upload-html', 'static/arduino.html'],
        ['monitor', '--duration', '5'],
        ['ports'],
        ['setup-assets'],
        ['handler-sketch'],
        ['sample-config'],
        ['boards'],
        ['check'],
        ['info', '192.168.1.238'],
        ['web', '192.168.1.238'],
    ):
        assert parser.parse_args(argv).command == argv[0]


def test_invalid_control_action_rejected():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(['led', '192.168.1.238', 'blink'])


def test_handler_sketch_command(capsys):
    assert main.run(['handler-sketch']) == 0
    assert UPLOAD_HANDLER_SKETCH.strip() in capsys.readouterr().out


def test_setup_assets_command(tmp_path, capsys):
    assert main.run(['setup-assets', '--work-dir', str(tmp_path)]) == 0
    assert (tmp_path / 'static' / 'data' / 'arduino.html').exists()


def test_missing_config_file_exits_with_error(tmp_path):
    assert main.run(['--config', str(tmp_path / 'absent.yaml'), 'ports']) == 1


def test_invalid_address_exits_with_error():
    assert main.run(['test', 'not-an-address']) == 1


@pytest.mark.asyncio
async def test_monitor_command_releases_port_when_interrupted(monkeypatch):
    link = FakeSerial(idle_delay=0.05)
    manager = SerialPortManager(SerialFactory(link))
    monkeypatch.setattr(main, 'SerialPortManager', lambda: manager)
    args = argparse.Namespace(port='/dev/ttyUSB0', baud=None, duration=None)

    task = asyncio.create_task(main.cmd_monitor({'serial': {'baud': 115200}}, args))
    for _ in range(300):
        if manager.is_held('/dev/ttyUSB0'):
            break
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    for _ in range(100):
        if not manager.is_held('/dev/ttyUSB0'):
            break
        await asyncio.sleep(0.01)
    assert link.closed
    assert not manager.is_held('/dev/ttyUSB0')


def test_boards_command_lists_fqbns(capsys):
    assert main.run(['boards']) == 0
    out = capsys.readouterr().out
    assert 'esp8266:esp8266:nodemcuv2' in out
    assert 'arduino:avr:uno' in out


def test_check_command_reports_cli_version(monkeypatch, capsys):
    runner = FakeRunner({'arduino-cli': CommandResult(0, "arduino-cli  Version: 0.35.3\n", "")})
    monkeypatch.setattr(main, 'ArduinoToolchain', lambda config: ArduinoToolchain(config, runner))

    assert main.run(['check']) == 0
    assert 'Version: 0.35.3' in capsys.readouterr().out
    assert runner.calls == [['arduino-cli', 'version']]


def test_check_command_fails_without_cli(monkeypatch):
    monkeypatch.setattr(main, 'ArduinoToolchain', lambda config: ArduinoToolchain(config, FakeRunner()))
    assert main.run(['check']) == 1


def test_info_command_prints_system_and_wifi(monkeypatch, capsys):
    address = NetworkAddress('192.168.1.238')
    engine = FakeProbeEngine(reachable=[address], routes={
        (address, '/api/system'): '{"chip_id":"abc123"}',
        (address, '/api/wifi'): '{"ssid":"home","rssi":-58}',
    })
    monkeypatch.setattr(main, 'FunctionalTester', lambda config: FunctionalTester(config, engine))

    assert main.run(['info', '192.168.1.238']) == 0
    out = capsys.readouterr().out
    assert '"chip_id": "abc123"' in out
    assert '"ssid": "home"' in out


def test_web_command_opens_browser(monkeypatch):
    opened = []
    monkeypatch.setattr('functional.tester.webbrowser.open', lambda url: opened.append(url) or True)

    assert main.run(['web', '192.168.1.238']) == 0
    assert opened == ['http://192.168.1.238']
