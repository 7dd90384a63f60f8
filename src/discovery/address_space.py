"""
Local subnet detection from OS network configuration
"""

import ipaddress
import logging
import platform
import re
from typing import Iterable, List, Optional

from command_runner import CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_PREFIXES = ['192.168.1', '192.168.0', '10.0.0']

IPV4_PATTERN = re.compile(r"(?<![\d.])(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})(?![\d.])")

class AddressSpaceResolver:
    """Detects private /24 prefixes of the local interfaces.

    Reads interface addresses through the command runner (``ip``, then
    ``ifconfig``, then ``ipconfig`` on Windows). Only 192.168.* and 10.*
    host addresses are kept. When nothing usable is found the configured
    fallback prefixes are returned, discovery never aborts here.
    """

    def __init__(self, runner: Optional[CommandRunner] = None,
                 fallback_prefixes: Optional[Iterable[str]] = None,
                 system: Optional[str] = None):
        self.runner = runner or CommandRunner()
        self.fallback_prefixes = list(fallback_prefixes or DEFAULT_FALLBACK_PREFIXES)
        self.system = system or platform.system()

    def _commands(self) -> List[List[str]]:
        if self.system == 'Windows':
            return [['ipconfig']]
        return [['ip', '-4', 'addr', 'show'], ['ifconfig']]

    def resolve(self) -> List[str]:
        """Return ordered, de-duplicated private prefixes"""
        for command in self._commands():
            result = self.runner.run(command, timeout=5)
            if not result.ok:
                logger.debug(f"{command[0]} unavailable (rc={result.returncode})")
                continue
            prefixes = self.parse_prefixes(result.stdout)
            if prefixes:
                logger.info(f"[NETWORK] Local prefixes from {command[0]}: {', '.join(prefixes)}")
                return prefixes

        logger.warning(f"[NETWORK] No private subnet detected - using fallback prefixes {self.fallback_prefixes}")
        return list(self.fallback_prefixes)

    @staticmethod
    def parse_prefixes(output: str) -> List[str]:
        """Extract private host prefixes from ip/ifconfig/ipconfig output"""
        prefixes = []
        for line in output.splitlines():
            lowered = line.lower()
            # Only interface address lines, not masks, gateways or broadcasts
            if 'inet ' not in lowered and 'ipv4' not in lowered:
                continue
            match = IPV4_PATTERN.search(line)
            if not match:
                continue
            try:
                address = ipaddress.IPv4Address(match.group(1))
            except ValueError:
                continue
            if not _is_candidate_host(address):
                continue
            prefix = str(address).rsplit('.', 1)[0]
            if prefix not in prefixes:
                prefixes.append(prefix)
        return prefixes

def _is_candidate_host(address: ipaddress.IPv4Address) -> bool:
    text = str(address)
    if not (text.startswith('192.168.') or text.startswith('10.')):
        return False
    last_octet = int(text.rsplit('.', 1)[1])
    return 0 < last_octet < 255
