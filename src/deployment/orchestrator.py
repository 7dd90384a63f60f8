"""
Deployment orchestrator - firmware upload, discovery, validation, provisioning
"""

import asyncio
import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterator, List, Optional, TextIO

from discovery.manager import NetworkScanner
from discovery.models import DiscoveryResult, ScanStats
from exceptions import ConfigurationError, DeployerError, StageTimeoutError
from functional.models import TestResult
from functional.tester import FunctionalTester
from provisioning.models import UploadSession
from provisioning.monitor import SerialMonitor
from provisioning.serial_link import SerialPortManager
from provisioning.serial_provisioner import SerialProvisioner
from .report import format_discovery, format_not_found, format_report
from .toolchain import ArduinoToolchain, BoardInfo, detect_board, resolve_board

logger = logging.getLogger(__name__)

# ================== REPORT MODELS ==================

@dataclass
class DeploymentRequest:
    sketch_path: Path
    port: Optional[str] = None
    board: Optional[str] = None          # short name, FQBN, 'auto' or None for the configured board
    known_addresses: List[str] = field(default_factory=list)
    config_file: Optional[Path] = None
    html_file: Optional[Path] = None
    exhaustive: bool = False
    open_browser: bool = False
    monitor: bool = False

@dataclass
class StageReport:
    name: str
    success: bool = False
    skipped: bool = False
    details: List[str] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

@dataclass
class DeploymentReport:
    board: Optional[BoardInfo] = None
    port: Optional[str] = None
    stages: List[StageReport] = field(default_factory=list)
    discovery: Optional[DiscoveryResult] = None
    test_results: List[TestResult] = field(default_factory=list)
    uploads: List[UploadSession] = field(default_factory=list)
    aborted: bool = False

    @property
    def success(self) -> bool:
        return not self.aborted and all(stage.success or stage.skipped for stage in self.stages)

    def stage(self, name: str) -> Optional[StageReport]:
        return next((stage for stage in self.stages if stage.name == name), None)

# ================== ORCHESTRATOR ==================

class DeploymentOrchestrator:
    """Runs the deployment workflow and always produces a report.

    Toolchain failures abort the run (the report is still emitted, then the
    ToolchainError propagates). Discovery, functional and provisioning
    failures only fail their own stage.
    """

    def __init__(self, config: Dict, toolchain: Optional[ArduinoToolchain] = None,
                 scanner: Optional[NetworkScanner] = None, tester: Optional[FunctionalTester] = None,
                 port_manager: Optional[SerialPortManager] = None,
                 provisioner: Optional[SerialProvisioner] = None, monitor: Optional[SerialMonitor] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep, output: Optional[TextIO] = None):
        self.config = config
        toolchain_config = config.get('toolchain', {})
        self.port_manager = port_manager or SerialPortManager()
        self.toolchain = toolchain or ArduinoToolchain(toolchain_config)
        self.scanner = scanner or NetworkScanner(config.get('network', {}))
        self.tester = tester or FunctionalTester(config.get('functional_test', {}))
        self.provisioner = provisioner or SerialProvisioner(config.get('serial', {}), self.port_manager)
        self.monitor = monitor or SerialMonitor(self.port_manager)
        self.sleep = sleep
        self.output = output or sys.stdout
        self.default_board = toolchain_config.get('board', 'esp8266:esp8266:nodemcuv2')
        self.boot_delay = toolchain_config.get('boot_delay_seconds', 5)
        self.discovery_budget = config.get('network', {}).get('discovery_budget_seconds', 15)

    @contextmanager
    def _stage(self, report: DeploymentReport, name: str) -> Iterator[StageReport]:
        """Time a stage and record a DeployerError on it before re-raising"""
        stage = StageReport(name)
        report.stages.append(stage)
        start = time.monotonic()
        try:
            yield stage
        except DeployerError as e:
            stage.success = False
            stage.error = str(e)
            raise
        finally:
            stage.duration_seconds = time.monotonic() - start

    def _skip(self, report: DeploymentReport, name: str, reason: str) -> None:
        report.stages.append(StageReport(name, skipped=True, details=[reason]))
        logger.info(f"[SKIP] {name}: {reason}")

    def resolve_board(self, request: DeploymentRequest) -> BoardInfo:
        if request.board == 'auto':
            return detect_board(request.sketch_path)
        return resolve_board(request.board or self.default_board)

    async def run(self, request: DeploymentRequest) -> DeploymentReport:
        report = DeploymentReport()
        logger.info(f"[LAUNCH] Deploying {request.sketch_path}")

        try:
            await self._deploy_firmware(request, report)
        except DeployerError:
            report.aborted = True
            self.emit(report)
            raise

        if not report.board.is_esp:
            for name in ('discovery', 'functional', 'provisioning'):
                self._skip(report, name, f"{report.board.name} has no network stack")
        else:
            await self._boot_delay(report)
            await self._discover(request, report)
            await self._test_devices(report)
            await self._provision(request, report)

        self.emit(report)
        await self._post_actions(request, report)
        return report

    # ================== STAGES ==================

    async def _deploy_firmware(self, request: DeploymentRequest, report: DeploymentReport) -> None:
        with self._stage(report, 'board') as stage:
            report.board = self.resolve_board(request)
            report.port = request.port or await asyncio.to_thread(self.port_manager.auto_detect_port)
            if not report.port:
                raise ConfigurationError("No serial port given and none could be auto-detected")
            stage.details.append(f"{report.board.name} ({report.board.fqbn}) on {report.port}")
            stage.success = True

        with self._stage(report, 'core') as stage:
            installed = await asyncio.to_thread(self.toolchain.ensure_core, report.board)
            stage.details.append(f"{report.board.core} {'installed' if installed else 'present'}")
            stage.success = True

        with self._stage(report, 'firmware') as stage:
            await asyncio.to_thread(self.toolchain.compile_and_upload, request.sketch_path, report.port, report.board)
            stage.details.append(f"{Path(request.sketch_path).name} compiled and uploaded")
            stage.success = True

    async def _boot_delay(self, report: DeploymentReport) -> None:
        with self._stage(report, 'boot') as stage:
            logger.info(f"[WAIT] Waiting {self.boot_delay}s for the board to boot and join WiFi...")
            await self.sleep(self.boot_delay)
            stage.success = True

    async def _discover(self, request: DeploymentRequest, report: DeploymentReport) -> None:
        stats = ScanStats()
        try:
            with self._stage(report, 'discovery') as stage:
                try:
                    # Grace on top of the scanner's own budget for task cancellation
                    result = await asyncio.wait_for(
                        self.scanner.scan(request.known_addresses, request.exhaustive, stats),
                        timeout=self.discovery_budget + 5,
                    )
                except asyncio.TimeoutError as e:
                    raise StageTimeoutError(f"Discovery exceeded {self.discovery_budget}s") from e

                report.discovery = result
                stage.details.extend(format_discovery(result))
                stage.details.append(f"{stats.total_probes} probes, {stats.transport_hits} reachable, "
                                     f"{stats.identity_confirmations} confirmed")
                if result.found:
                    stage.success = True
                else:
                    stage.details.extend(format_not_found(result))
                    logger.warning("[FAIL] Device not found on the network")
        except DeployerError as e:
            logger.error(f"[FAIL] Discovery failed: {e}")

    async def _test_devices(self, report: DeploymentReport) -> None:
        if report.discovery is None or not report.discovery.found:
            self._skip(report, 'functional', "no device discovered")
            return

        with self._stage(report, 'functional') as stage:
            for address in report.discovery.confirmed:
                result = await self.tester.run(address)
                report.test_results.append(result)
                verdict = "fully functional" if result.is_fully_functional() else "NOT fully functional"
                stage.details.append(f"{address}: {verdict}")
            stage.success = all(result.is_fully_functional() for result in report.test_results)

    async def _provision(self, request: DeploymentRequest, report: DeploymentReport) -> None:
        uploads = [(path, upload) for path, upload in (
            (request.config_file, self.provisioner.upload_config_file),
            (request.html_file, self.provisioner.upload_html_file),
        ) if path is not None]
        if not uploads:
            self._skip(report, 'provisioning', "no assets requested")
            return

        try:
            with self._stage(report, 'provisioning') as stage:
                for path, upload in uploads:
                    session = await asyncio.to_thread(upload, report.port, path, report.board.default_baud)
                    report.uploads.append(session)
                    stage.details.append(f"{session.target_path}: {session.bytes_sent} bytes")
                stage.success = True
        except DeployerError as e:
            session = getattr(e, 'session', None)
            if session is not None:
                report.uploads.append(session)
            logger.error(f"[FAIL] Provisioning failed: {e}")

    async def _post_actions(self, request: DeploymentRequest, report: DeploymentReport) -> None:
        if request.open_browser:
            working = [r for r in report.test_results if r.is_fully_functional()]
            if working:
                self.tester.open_web_interface(working[0].address)
            else:
                logger.info("No fully functional device, not opening the browser")

        if request.monitor and report.port:
            await self.monitor.watch(report.port, report.board.default_baud, self.output)

    def emit(self, report: DeploymentReport) -> None:
        self.output.write(format_report(report) + "\n")
        self.output.flush()
        if report.aborted:
            logger.error("[FAIL] Deployment aborted")
        elif report.success:
            logger.info("[SUCCESS] Deployment complete")
        else:
            failed = [stage.name for stage in report.stages if not stage.success and not stage.skipped]
            logger.warning(f"Deployment completed with failed stages: {', '.join(failed)}")
