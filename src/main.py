"""
ESP8266 Deployment Tool - Main Entry Point
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from config_loader import get_sample_config, load_config, setup_logging
from deployment.orchestrator import DeploymentOrchestrator, DeploymentRequest
from deployment.report import format_device_record, format_discovery, format_not_found, format_test_result
from deployment.toolchain import BOARDS, ArduinoToolchain
from discovery.identifier import DeviceIdentifier
from discovery.manager import NetworkScanner
from discovery.models import NetworkAddress, ScanStats
from exceptions import ConfigurationError, DeployerError
from functional.tester import CONTROL_ACTIONS, FunctionalTester
from provisioning.assets import AssetManager
from provisioning.monitor import SerialMonitor
from provisioning.serial_link import SerialPortManager
from provisioning.serial_provisioner import SerialProvisioner, upload_handler_sketch

logger = logging.getLogger(__name__)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='esp-deployer', description="Deploy, discover and validate ESP8266 boards")
    parser.add_argument('--config', help="YAML config file (default: $CONFIG_FILE or built-in defaults)")
    parser.add_argument('-v', '--verbose', action='store_true', help="Debug logging")
    commands = parser.add_subparsers(dest='command', required=True)

    deploy = commands.add_parser('deploy', help="Compile, upload, discover, test and provision")
    deploy.add_argument('sketch', type=Path)
    deploy.add_argument('--port', help="Serial port (auto-detected when omitted)")
    deploy.add_argument('--board', help="Short board name, full FQBN or 'auto'")
    deploy.add_argument('--known', nargs='*', default=[], help="Addresses to try first")
    deploy.add_argument('--config-file', type=Path, help="Upload this WiFi config after deployment")
    deploy.add_argument('--html-file', type=Path, help="Upload this web page after deployment")
    deploy.add_argument('--exhaustive', action='store_true', help="Run every scan tier")
    deploy.add_argument('--open', action='store_true', help="Open the web interface when functional")
    deploy.add_argument('--monitor', action='store_true', help="Start the serial monitor afterwards")

    scan = commands.add_parser('scan', help="Discover devices on the local network")
    scan.add_argument('--known', nargs='*', default=[])
    scan.add_argument('--exhaustive', action='store_true')

    test = commands.add_parser('test', help="Run the endpoint matrix against a device")
    test.add_argument('address')
    test.add_argument('--open', action='store_true')

    inspect = commands.add_parser('inspect', help="Confirm identity and show device details")
    inspect.add_argument('address')

    info = commands.add_parser('info', help="Show the system and WiFi API payloads")
    info.add_argument('address')

    web = commands.add_parser('web', help="Open the device web interface in a browser")
    web.add_argument('address')

    for target in ('led', 'relay'):
        control = commands.add_parser(target, help=f"Switch the {target}")
        control.add_argument('address')
        control.add_argument('action', choices=CONTROL_ACTIONS)

    for kind in ('config', 'html'):
        upload = commands.add_parser(f'upload-{kind}', help=f"Push the {kind} asset over serial")
        upload.add_argument('file', type=Path)
        upload.add_argument('--port')
        upload.add_argument('--baud', type=int)

    monitor = commands.add_parser('monitor', help="Echo device serial output")
    monitor.add_argument('--port')
    monitor.add_argument('--baud', type=int)
    monitor.add_argument('--duration', type=float, help="Stop after this many seconds")

    commands.add_parser('ports', help="List serial ports")
    commands.add_parser('boards', help="List supported boards")
    commands.add_parser('check', help="Verify arduino-cli is installed")

    assets = commands.add_parser('setup-assets', help="Create default config and stage the data folder")
    assets.add_argument('--work-dir', type=Path)

    commands.add_parser('handler-sketch', help="Print the device-side upload handler")
    commands.add_parser('sample-config', help="Print a sample YAML configuration")
    return parser

def _resolve_port(port_manager: SerialPortManager, port: Optional[str]) -> str:
    port = port or port_manager.auto_detect_port()
    if not port:
        raise ConfigurationError("No serial port given and none could be auto-detected")
    return port

# ================== COMMANDS ==================

async def cmd_deploy(config, args) -> int:
    orchestrator = DeploymentOrchestrator(config)
    report = await orchestrator.run(DeploymentRequest(
        sketch_path=args.sketch,
        port=args.port,
        board=args.board,
        known_addresses=args.known or config['network']['known_addresses'],
        config_file=args.config_file,
        html_file=args.html_file,
        exhaustive=args.exhaustive,
        open_browser=args.open,
        monitor=args.monitor,
    ))
    return 0 if report.success else 1

async def cmd_scan(config, args) -> int:
    scanner = NetworkScanner(config['network'])
    result = await scanner.scan(args.known or config['network']['known_addresses'], args.exhaustive, ScanStats())
    print("\n".join(format_discovery(result)))
    if not result.found:
        print("\n".join(format_not_found(result)))
    return 0 if result.found else 1

async def cmd_test(config, args) -> int:
    tester = FunctionalTester(config['functional_test'])
    address = NetworkAddress.parse(args.address, config['network']['port'])
    result = await tester.run(address)
    print("\n".join(format_test_result(result)))
    if args.open and result.is_fully_functional():
        tester.open_web_interface(address)
    return 0 if result.is_fully_functional() else 1

async def cmd_inspect(config, args) -> int:
    identifier = DeviceIdentifier(timeout=config['functional_test']['api_timeout'])
    record = await identifier.inspect(NetworkAddress.parse(args.address, config['network']['port']))
    print(f"Device at {record.address}:")
    print("\n".join(format_device_record(record)))
    return 0

async def cmd_info(config, args) -> int:
    tester = FunctionalTester(config['functional_test'])
    address = NetworkAddress.parse(args.address, config['network']['port'])
    system = await tester.system_info(address)
    wifi = await tester.wifi_info(address)
    print(f"System ({address.url('/api/system')}):")
    print(json.dumps(system, indent=2))
    print(f"WiFi ({address.url('/api/wifi')}):")
    print(json.dumps(wifi, indent=2))
    return 0

async def cmd_web(config, args) -> int:
    tester = FunctionalTester(config['functional_test'])
    opened = tester.open_web_interface(NetworkAddress.parse(args.address, config['network']['port']))
    return 0 if opened else 1

async def cmd_control(config, args) -> int:
    tester = FunctionalTester(config['functional_test'])
    address = NetworkAddress.parse(args.address, config['network']['port'])
    if args.command == 'led':
        body = await tester.control_led(address, args.action)
    else:
        body = await tester.control_relay(address, args.action)
    print(body)
    return 0

async def cmd_upload(config, args) -> int:
    port_manager = SerialPortManager()
    provisioner = SerialProvisioner(config['serial'], port_manager)
    port = await asyncio.to_thread(_resolve_port, port_manager, args.port)
    upload = provisioner.upload_config_file if args.command == 'upload-config' else provisioner.upload_html_file
    session = await asyncio.to_thread(upload, port, args.file, args.baud)
    print(f"Uploaded {session.target_path} ({session.bytes_sent} bytes in {session.chunk_index} chunks)")
    return 0

async def cmd_monitor(config, args) -> int:
    port_manager = SerialPortManager()
    port = await asyncio.to_thread(_resolve_port, port_manager, args.port)
    monitor = SerialMonitor(port_manager)
    await monitor.watch(port, args.baud or config['serial']['baud'], sys.stdout, args.duration)
    return 0

async def cmd_ports(config, args) -> int:
    ports = SerialPortManager().list_ports()
    print("\n".join(ports) if ports else "No serial ports found")
    return 0

async def cmd_boards(config, args) -> int:
    width = max(len(name) for name in BOARDS)
    for name, board in BOARDS.items():
        print(f"{name:<{width}}  {board.fqbn:<28} {board.description or board.name}")
    return 0

async def cmd_check(config, args) -> int:
    toolchain = ArduinoToolchain(config['toolchain'])
    version = await asyncio.to_thread(toolchain.check)
    print(version)
    return 0

async def cmd_setup_assets(config, args) -> int:
    assets = AssetManager(args.work_dir or config['toolchain']['work_dir'])
    assets.ensure_default_config()
    data_dir = assets.prepare_data_dir()
    print(f"Assets staged in {data_dir}")
    return 0 if assets.validate_data_dir() else 1

async def cmd_handler_sketch(config, args) -> int:
    print(upload_handler_sketch())
    return 0

async def cmd_sample_config(config, args) -> int:
    print(yaml.safe_dump(get_sample_config(), sort_keys=False))
    return 0

COMMANDS = {
    'deploy': cmd_deploy,
    'scan': cmd_scan,
    'test': cmd_test,
    'inspect': cmd_inspect,
    'info': cmd_info,
    'web': cmd_web,
    'led': cmd_control,
    'relay': cmd_control,
    'upload-config': cmd_upload,
    'upload-html': cmd_upload,
    'monitor': cmd_monitor,
    'ports': cmd_ports,
    'boards': cmd_boards,
    'check': cmd_check,
    'setup-assets': cmd_setup_assets,
    'handler-sketch': cmd_handler_sketch,
    'sample-config': cmd_sample_config,
}

async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    try:
        # Get config file path from the command line or environment variable
        config_path = args.config or os.environ.get('CONFIG_FILE')
        config = load_config(config_path)
        if args.verbose:
            config['logging']['level'] = 'DEBUG'
        setup_logging(config)
        if config_path:
            logger.info(f"Using configuration file: {config_path}")

        return await COMMANDS[args.command](config, args)

    except (DeployerError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

def run(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nStopped by user")
        return 0

if __name__ == "__main__":
    sys.exit(run())
