"""
Configuration loader for the ESP8266 deployment tool
Loads and validates configuration from YAML files, falls back to built-in defaults
"""

import copy
import re
import yaml
import logging
from typing import Dict, Any, Optional
from pathlib import Path
from datetime import datetime
import pytz

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PREFIX_PATTERN = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}$")
HANDSHAKE_MODES = ('ack', 'delay')
TIER_NAMES = ('known', 'priority', 'comprehensive')

def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation.
    With no path the built-in defaults are returned.
    """
    if config_path is None:
        config = _apply_defaults({})
        _validate_config(config)
        return config

    config_file = Path(config_path)
    if not config_file.exists():
        logger.error(f"Configuration file not found: {config_path}")
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse configuration: {e}")
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    # Apply defaults
    config = _apply_defaults(config)

    # Validate values
    _validate_config(config)

    logger.info(f"Configuration loaded from {config_path}")
    return config

def _validate_config(config: Dict) -> None:
    """Validate configuration values"""
    network = config['network']

    for prefix in network['fallback_prefixes']:
        if not PREFIX_PATTERN.match(str(prefix)):
            raise ConfigurationError(f"network.fallback_prefixes entry is not a three-octet prefix: {prefix}")

    if not isinstance(network['known_addresses'], list):
        raise ConfigurationError("network.known_addresses must be a list")

    if int(network['max_concurrent_probes']) < 1:
        raise ConfigurationError("network.max_concurrent_probes must be at least 1")

    _require_positive(network, 'discovery_budget_seconds', 'network')
    for tier_name in TIER_NAMES:
        tier = network['tiers'][tier_name]
        for key in ('probe_timeout', 'http_timeout', 'budget_seconds'):
            _require_positive(tier, key, f"network.tiers.{tier_name}")

    functional = config['functional_test']
    if int(functional['attempts']) < 1:
        raise ConfigurationError("functional_test.attempts must be at least 1")
    for key in ('page_timeout', 'api_timeout', 'control_timeout'):
        _require_positive(functional, key, 'functional_test')

    serial_cfg = config['serial']
    if int(serial_cfg['chunk_size']) < 1:
        raise ConfigurationError("serial.chunk_size must be at least 1")
    if serial_cfg['handshake'] not in HANDSHAKE_MODES:
        raise ConfigurationError(f"serial.handshake must be one of {HANDSHAKE_MODES}, got {serial_cfg['handshake']!r}")
    _require_positive(serial_cfg, 'baud', 'serial')

    try:
        pytz.timezone(config['logging']['timezone'])
    except pytz.UnknownTimeZoneError as e:
        raise ConfigurationError(f"Unknown logging.timezone: {config['logging']['timezone']}") from e

def _require_positive(section: Dict, key: str, section_name: str) -> None:
    value = section.get(key)
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise ConfigurationError(f"{section_name}.{key} must be a positive number, got {value!r}")

def _merge_defaults(target: Dict, defaults: Dict) -> None:
    for key, default_value in defaults.items():
        if key not in target or target[key] is None:
            target[key] = copy.deepcopy(default_value)
        elif isinstance(default_value, dict) and isinstance(target[key], dict):
            _merge_defaults(target[key], default_value)

def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""

    # Network / discovery defaults
    network_defaults = {
        'port': 80,
        'known_addresses': [
            '192.168.0.238',
            '192.168.1.238',
            '192.168.0.200',
            '192.168.1.200',
        ],
        'likely_host_parts': [238, 200, 201, 100, 101, 150, 180, 120],
        'priority_ranges': [[100, 150], [200, 254]],
        'fallback_prefixes': ['192.168.1', '192.168.0', '10.0.0'],
        'max_concurrent_probes': 32,
        'discovery_budget_seconds': 15,
        'tiers': {
            'known': {'probe_timeout': 0.5, 'http_timeout': 1.0, 'budget_seconds': 3},
            'priority': {'probe_timeout': 1.5, 'http_timeout': 2.0, 'budget_seconds': 6},
            'comprehensive': {'probe_timeout': 0.75, 'http_timeout': 1.5, 'budget_seconds': 10},
        },
    }

    # Functional test defaults
    functional_defaults = {
        'attempts': 3,
        'retry_delay_seconds': 0.5,
        'page_timeout': 3,
        'api_timeout': 2,
        'control_timeout': 3,
        'ping_timeout': 2,
    }

    # Serial provisioning defaults
    serial_defaults = {
        'baud': 115200,
        'chunk_size': 512,
        'handshake': 'ack',
        'ready_delay_seconds': 1.0,
        'settle_delay_seconds': 0.5,
        'chunk_delay_seconds': 0.1,
        'final_settle_seconds': 1.0,
        'ack_timeout_seconds': 5.0,
        'read_timeout_seconds': 1.0,
    }

    # External toolchain defaults
    toolchain_defaults = {
        'cli_path': 'arduino-cli',
        'board': 'esp8266:esp8266:nodemcuv2',
        'additional_urls': ['https://arduino.esp8266.com/stable/package_esp8266com_index.json'],
        'boot_delay_seconds': 5,
        'command_timeout_seconds': 600,
        'work_dir': '.',
    }

    # Logging defaults
    logging_defaults = {
        'level': 'INFO',
        'file': None,
        'console_output': True,
        'timezone': 'UTC',
    }

    for section, defaults in (
        ('network', network_defaults),
        ('functional_test', functional_defaults),
        ('serial', serial_defaults),
        ('toolchain', toolchain_defaults),
        ('logging', logging_defaults),
    ):
        if not isinstance(config.get(section), dict):
            config[section] = {}
        _merge_defaults(config[section], defaults)

    return config


class TimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in a configured timezone"""

    def __init__(self, fmt=None, timezone_name: str = 'UTC'):
        super().__init__(fmt)
        self.tz = pytz.timezone(timezone_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        # Default format: YYYY-MM-DD HH:MM:SS TZ
        return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration with timezone-aware timestamps"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = TimezoneFormatter(log_format, log_config.get('timezone', 'UTC'))

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    # Console handler
    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    # File handler
    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logger.debug(f"Logging configured: level={level}, console={log_config.get('console_output', True)}, file={log_file}")

def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "network": {
            "port": 80,
            "known_addresses": ["192.168.1.238"],
            "fallback_prefixes": ["192.168.1", "192.168.0", "10.0.0"],
            "max_concurrent_probes": 32,
            "discovery_budget_seconds": 15,
            "tiers": {
                "known": {"probe_timeout": 0.5, "http_timeout": 1.0, "budget_seconds": 3},
                "priority": {"probe_timeout": 1.5, "http_timeout": 2.0, "budget_seconds": 6},
                "comprehensive": {"probe_timeout": 0.75, "http_timeout": 1.5, "budget_seconds": 10},
            },
        },
        "functional_test": {
            "attempts": 3,
            "retry_delay_seconds": 0.5,
            "page_timeout": 3,
            "api_timeout": 2,
            "control_timeout": 3,
        },
        "serial": {
            "baud": 115200,
            "chunk_size": 512,
            "handshake": "ack",      # "ack" waits for device replies, "delay" uses fixed settle delays
        },
        "toolchain": {
            "cli_path": "arduino-cli",
            "board": "esp8266:esp8266:nodemcuv2",
            "boot_delay_seconds": 5,
            "work_dir": ".",
        },
        "logging": {
            "level": "INFO",
            "file": "logs/esp_deployer.log",
            "console_output": True,
            "timezone": "UTC",
        },
    }
