"""
Plain-text rendering of test results, device records and deployment reports
"""

from typing import List

from discovery.models import DeviceRecord, DiscoveryResult
from functional.models import TestResult

RULE = "=" * 47

MANUAL_URLS = (
    ("Main page", "/"),
    ("Status API", "/api/status"),
    ("System API", "/api/system"),
    ("WiFi API", "/api/wifi"),
    ("LED Toggle", "/led/toggle"),
    ("Relay Toggle", "/relay/toggle"),
)

def _mark(ok: bool, good: str = "OK", bad: str = "Failed") -> str:
    return f"[PASS] {good}" if ok else f"[FAIL] {bad}"

def format_device_record(record: DeviceRecord) -> List[str]:
    lines = [
        f"  Name: {record.device_name or '(unknown)'}",
        f"  Version: {record.firmware_version or '(unknown)'}",
        f"  Uptime: {record.uptime_seconds} seconds",
        f"  Free Heap: {record.free_heap_bytes} bytes",
        f"  WiFi RSSI: {record.wifi_rssi} dBm",
        f"  LED State: {'ON' if record.led_state else 'OFF'}",
        f"  Relay State: {'ON' if record.relay_state else 'OFF'}",
        f"  Analog: {record.analog_value}",
    ]
    if record.endpoints:
        lines.append(f"  Endpoints: {', '.join(sorted(record.endpoints))}")
    return lines

def format_test_result(result: TestResult) -> List[str]:
    lines = [
        RULE,
        "           ESP8266 Test Results",
        RULE,
        f"IP Address: {result.address}",
        f"Ping: {_mark(result.ping_success, 'Success')}",
        f"Main Page: {_mark(result.main_page_accessible, 'Accessible', 'Not accessible')}",
        f"API Status: {_mark(result.api_status.success)}",
        f"API System: {_mark(result.api_system.success)}",
        f"API WiFi: {_mark(result.api_wifi.success)}",
        f"LED Control: {_mark(result.led_control_ok)}",
        f"Relay Control: {_mark(result.relay_control_ok)}",
        f"Fully functional: {'yes' if result.is_fully_functional() else 'no'}",
    ]

    if result.device_status is not None:
        lines += ["", "Device Information:"]
        lines += format_device_record(result.device_status)

    lines += ["", "Manual URLs:"]
    width = max(len(label) for label, _ in MANUAL_URLS) + 1
    for label, path in MANUAL_URLS:
        lines.append(f"  {label + ':':<{width}} {result.address.url(path)}")
    return lines

def format_discovery(result: DiscoveryResult) -> List[str]:
    lines = [f"Networks: {', '.join(f'{p}.x' for p in result.prefixes) or '(none)'}"]
    for tier in result.tiers:
        expired = " (budget expired)" if tier.budget_expired else ""
        lines.append(f"  Tier {tier.tier}: {tier.addresses_probed} probed, "
                     f"{len(tier.confirmed)} confirmed in {tier.duration_seconds:.1f}s{expired}")
    if result.found:
        lines.append(f"Devices: {', '.join(str(a) for a in result.confirmed)}")
    else:
        lines.append("Devices: none found")
    return lines

def format_not_found(result: DiscoveryResult) -> List[str]:
    """Troubleshooting hints when no board answered"""
    scanned = ', '.join(f'{p}.x' for p in result.prefixes) or 'no private network detected'
    return [
        "No device answered on the local network. Check that:",
        "  - WiFi credentials in wifi_config.json are correct",
        "  - the board joined the network (watch the serial monitor for its IP)",
        f"  - the board is on one of the scanned networks ({scanned})",
        "Then retry discovery with the 'scan' command.",
    ]

def format_report(report) -> str:
    """Render a DeploymentReport"""
    lines = [RULE, "           Deployment Report", RULE]
    if report.board is not None:
        lines.append(f"Board: {report.board.name} ({report.board.fqbn})")
    if report.port:
        lines.append(f"Port: {report.port}")

    for stage in report.stages:
        status = "PASS" if stage.success else ("SKIP" if stage.skipped else "FAIL")
        lines.append(f"[{status}] {stage.name} ({stage.duration_seconds:.1f}s)")
        lines.extend(f"       {detail}" for detail in stage.details)
        if stage.error:
            lines.append(f"       error: {stage.error}")

    for result in report.test_results:
        lines.append("")
        lines.extend(format_test_result(result))

    lines.append("")
    outcome = "ABORTED" if report.aborted else ("SUCCESS" if report.success else "COMPLETED WITH FAILURES")
    lines.append(f"Result: {outcome}")
    return "\n".join(lines)
