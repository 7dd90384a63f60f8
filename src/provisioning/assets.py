"""
Local device assets (WiFi config and web page) and the flash data folder

Layout under the work directory:
    static/wifi_config.json
    static/arduino.html
    static/data/           <- copies staged for the flash filesystem
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Union

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = 'wifi_config.json'
HTML_FILENAME = 'arduino.html'
HTML_SIZE_WARNING = 64 * 1024

DEFAULT_DEVICE_CONFIG: Dict[str, Any] = {
    "wifi": {
        "ssid": "YOUR_WIFI_SSID",
        "password": "YOUR_WIFI_PASSWORD",
    },
    "device": {
        "name": "ESP8266-Complete",
        "version": "1.0.0",
        "port": 80,
    },
    "sensors": {
        "interval": 5000,
        "auto_relay": False,
    },
    "pins": {
        "led": "LED_BUILTIN",
        "relay": 12,
        "button": 0,
        "sensor": 14,
        "pwm": 13,
        "analog": "A0",
    },
}

FALLBACK_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>ESP8266 Fallback Server</title>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; background: #f0f0f0; }
        .container { max-width: 800px; margin: 0 auto; background: white; padding: 20px; border-radius: 8px; }
        .status { padding: 10px; margin: 10px 0; background: #e8f5e8; border-radius: 4px; }
        .btn { display: inline-block; padding: 10px 20px; margin: 5px; background: #007bff; color: white; text-decoration: none; }
    </style>
</head>
<body>
    <div class="container">
        <h1>ESP8266 Server</h1>
        <div class="status">
            <strong>Status:</strong> <span id="status">Loading...</span><br>
            <strong>Uptime:</strong> <span id="uptime">Loading...</span><br>
            <strong>Free Heap:</strong> <span id="heap">Loading...</span>
        </div>
        <div>
            <a href="/api/status" class="btn">Status API</a>
            <a href="/api/system" class="btn">System Info</a>
            <a href="/led/toggle" class="btn">Toggle LED</a>
        </div>
    </div>
    <script>
        function updateStatus() {
            fetch('/api/status')
                .then(response => response.json())
                .then(data => {
                    document.getElementById('status').textContent = 'Online';
                    document.getElementById('uptime').textContent = data.uptime + 's';
                    document.getElementById('heap').textContent = data.free_heap + ' bytes';
                })
                .catch(() => {
                    document.getElementById('status').textContent = 'Error';
                });
        }
        setInterval(updateStatus, 5000);
        updateStatus();
    </script>
</body>
</html>
"""


class AssetManager:
    """Manages the static/ asset folder the provisioner uploads from"""

    def __init__(self, work_dir: Union[str, Path] = '.'):
        self.work_dir = Path(work_dir)
        self.static_dir = self.work_dir / 'static'
        self.data_dir = self.static_dir / 'data'

    @property
    def config_path(self) -> Path:
        return self.static_dir / CONFIG_FILENAME

    @property
    def html_path(self) -> Path:
        return self.static_dir / HTML_FILENAME

    def ensure_default_config(self) -> bool:
        """Write the default device config when missing. Returns True if created."""
        if self.config_path.exists():
            logger.debug(f"Device config present at {self.config_path}")
            return False

        self.static_dir.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(json.dumps(DEFAULT_DEVICE_CONFIG, indent=2), encoding='utf-8')
        logger.warning(f"Created default {self.config_path} - edit it with your WiFi credentials")
        return True

    def prepare_data_dir(self) -> Path:
        """Stage config and HTML into static/data/, falling back to a minimal page"""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        if not self.html_path.exists():
            logger.warning(f"{self.html_path} not found, using fallback HTML")
            (self.data_dir / HTML_FILENAME).write_text(FALLBACK_HTML, encoding='utf-8')
            return self.data_dir

        self.ensure_default_config()
        shutil.copyfile(self.html_path, self.data_dir / HTML_FILENAME)
        shutil.copyfile(self.config_path, self.data_dir / CONFIG_FILENAME)

        html_size = (self.data_dir / HTML_FILENAME).stat().st_size
        config_size = (self.data_dir / CONFIG_FILENAME).stat().st_size
        logger.info(f"[ASSETS] Staged {HTML_FILENAME} ({html_size} bytes) and {CONFIG_FILENAME} ({config_size} bytes)")
        self._warn_if_large(html_size)
        return self.data_dir

    def validate_data_dir(self) -> bool:
        html_file = self.data_dir / HTML_FILENAME
        if not self.data_dir.is_dir():
            logger.warning(f"Data folder not found: {self.data_dir}")
            return False
        if not html_file.is_file():
            logger.warning(f"{HTML_FILENAME} not found in {self.data_dir}")
            return False
        if html_file.stat().st_size == 0:
            logger.warning(f"{html_file} is empty")
            return False
        return True

    def load(self, path: Union[str, Path]) -> bytes:
        asset = Path(path)
        if not asset.is_file():
            raise ConfigurationError(f"Asset file not found: {asset}")
        payload = asset.read_bytes()
        if not payload:
            raise ConfigurationError(f"Asset file is empty: {asset}")
        if asset.suffix.lower() in ('.html', '.htm'):
            self._warn_if_large(len(payload))
        return payload

    @staticmethod
    def _warn_if_large(size: int) -> None:
        if size > HTML_SIZE_WARNING:
            logger.warning(f"HTML asset is large ({size} bytes) - consider minifying it")
