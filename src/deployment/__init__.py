"""
Deployment workflow around the external Arduino toolchain
"""

from .orchestrator import DeploymentOrchestrator, DeploymentReport, DeploymentRequest, StageReport
from .report import format_device_record, format_discovery, format_report, format_test_result
from .toolchain import BOARDS, ArduinoToolchain, BoardInfo, detect_board, resolve_board

__all__ = [
    'DeploymentOrchestrator', 'DeploymentReport', 'DeploymentRequest', 'StageReport',
    'format_device_record', 'format_discovery', 'format_report', 'format_test_result',
    'BOARDS', 'ArduinoToolchain', 'BoardInfo', 'detect_board', 'resolve_board',
]
