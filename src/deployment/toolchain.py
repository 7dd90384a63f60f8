"""
arduino-cli wrapper - board resolution, core install, compile and upload
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from command_runner import CommandResult, CommandRunner
from exceptions import ConfigurationError, ToolchainError

logger = logging.getLogger(__name__)

ESP_BAUD = 115200
DEFAULT_BAUD = 9600
TEMP_SKETCH_ROOT = 'arduino_deployer_temp'

@dataclass(frozen=True)
class BoardInfo:
    """Board-support identity handed to the toolchain"""
    name: str
    fqbn: str
    description: str = ""

    @property
    def core(self) -> str:
        """Package:architecture pair, e.g. ``esp8266:esp8266``"""
        return ':'.join(self.fqbn.split(':')[:2])

    @property
    def is_esp(self) -> bool:
        return self.fqbn.startswith(('esp8266:', 'esp32:'))

    @property
    def default_baud(self) -> int:
        return ESP_BAUD if self.is_esp else DEFAULT_BAUD


BOARDS: Dict[str, BoardInfo] = {
    'uno': BoardInfo("Arduino Uno", "arduino:avr:uno", "Arduino Uno R3 (ATmega328P)"),
    'nano': BoardInfo("Arduino Nano", "arduino:avr:nano", "Arduino Nano (ATmega328P)"),
    'mega': BoardInfo("Arduino Mega", "arduino:avr:mega", "Arduino Mega 2560 (ATmega2560)"),
    'leonardo': BoardInfo("Arduino Leonardo", "arduino:avr:leonardo", "Arduino Leonardo (ATmega32u4)"),
    'nodemcuv2': BoardInfo("NodeMCU 1.0 (ESP-12E Module)", "esp8266:esp8266:nodemcuv2"),
    'nodemcu': BoardInfo("NodeMCU 0.9 (ESP-12 Module)", "esp8266:esp8266:nodemcu"),
    'd1_mini': BoardInfo("LOLIN(WEMOS) D1 R2 & mini", "esp8266:esp8266:d1_mini"),
    'generic': BoardInfo("Generic ESP8266 Module", "esp8266:esp8266:generic"),
}

def resolve_board(board: str) -> BoardInfo:
    """Short name or full FQBN to BoardInfo"""
    key = board.strip()
    if key in BOARDS:
        return BOARDS[key]
    for info in BOARDS.values():
        if info.fqbn == key:
            return info
    if key.count(':') >= 2:
        return BoardInfo(key.split(':')[-1], key, f"Board: {key}")
    raise ConfigurationError(f"Unknown board {board!r}; use one of {sorted(BOARDS)} or a full FQBN")

def detect_board(sketch_path: Union[str, Path]) -> BoardInfo:
    """Guess the board from the sketch file name, defaulting to Uno"""
    filename = Path(sketch_path).name.lower()
    if 'esp8266' in filename:
        return BOARDS['nodemcuv2']
    if 'esp32' in filename:
        return BoardInfo("ESP32 Dev Module", "esp32:esp32:esp32dev")
    for short in ('nano', 'mega', 'leonardo'):
        if short in filename:
            return BOARDS[short]
    return BOARDS['uno']


class ArduinoToolchain:
    """External compile/upload boundary. Any non-zero exit raises ToolchainError."""

    def __init__(self, config: Optional[Dict] = None, runner: Optional[CommandRunner] = None):
        config = config or {}
        self.runner = runner or CommandRunner()
        self.cli_path = config.get('cli_path', 'arduino-cli')
        self.additional_urls: List[str] = list(config.get('additional_urls') or [])
        self.command_timeout = config.get('command_timeout_seconds', 600)

    def _run(self, *args: str, action: str) -> CommandResult:
        command = [self.cli_path, *args]
        if self.additional_urls and args and args[0] == 'core':
            command += ['--additional-urls', ','.join(self.additional_urls)]
        result = self.runner.run(command, timeout=self.command_timeout)
        if not result.ok:
            stderr = result.stderr.strip()
            logger.error(f"[FAIL] {action} failed (exit {result.returncode}): {stderr}")
            raise ToolchainError(f"{action} failed with exit code {result.returncode}",
                                 returncode=result.returncode, stderr=stderr)
        return result

    def check(self) -> str:
        """Verify the CLI is installed; returns its version line"""
        result = self._run('version', action="arduino-cli version")
        version = result.stdout.strip()
        logger.info(f"[OK] {version}")
        return version

    def ensure_core(self, board: BoardInfo) -> bool:
        """Install the board-support core when missing. Returns True if installed now."""
        installed = self._run('core', 'list', action="core list").stdout
        if any(line.split()[0] == board.core for line in installed.splitlines() if line.strip()):
            logger.info(f"[OK] Core {board.core} already installed")
            return False

        logger.info(f"[SETUP] Installing core {board.core}...")
        self._run('core', 'update-index', action="core update-index")
        self._run('core', 'install', board.core, action=f"core install {board.core}")
        logger.info(f"[OK] Core {board.core} installed")
        return True

    def compile_and_upload(self, sketch_path: Union[str, Path], port: str, board: BoardInfo) -> None:
        """
        Copy the sketch into ``<tmp>/arduino_deployer_temp/<name>/<name>.ino``
        (arduino-cli needs a folder named after the sketch), compile, upload.
        """
        sketch = Path(sketch_path)
        if not sketch.is_file() or sketch.suffix != '.ino':
            raise ConfigurationError(f"Sketch not found or not an .ino file: {sketch}")

        sketch_dir = Path(tempfile.gettempdir()) / TEMP_SKETCH_ROOT / sketch.stem
        if sketch_dir.exists():
            shutil.rmtree(sketch_dir)
        sketch_dir.mkdir(parents=True)
        shutil.copyfile(sketch, sketch_dir / f"{sketch.stem}.ino")

        try:
            logger.info(f"[BUILD] Compiling {sketch.name} for {board.name} ({board.fqbn})")
            self._run('compile', '--fqbn', board.fqbn, str(sketch_dir), action="Compilation")
            logger.info(f"[UPLOAD] Uploading to {port}")
            self._run('upload', '--fqbn', board.fqbn, '--port', port, str(sketch_dir), action="Upload")
            logger.info("[OK] Firmware deployed")
        finally:
            shutil.rmtree(sketch_dir, ignore_errors=True)
