"""
Exclusive serial port ownership and USB serial port discovery
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Set

import serial
from serial.tools import list_ports

from exceptions import ProtocolError

logger = logging.getLogger(__name__)

# USB vendor IDs of common board bridges
KNOWN_USB_VENDORS = {
    0x2341: "Arduino",
    0x1A86: "CH340",
    0x0403: "FTDI",
    0x10C4: "Silicon Labs CP210x",
}

SerialFactory = Callable[..., serial.Serial]

class SerialPortManager:
    """Grants one logical operation at a time exclusive use of a serial port.

    ``open`` fails fast with ProtocolError when the port is already held,
    and always closes and releases the port on exit.
    """

    def __init__(self, serial_factory: Optional[SerialFactory] = None):
        self.serial_factory = serial_factory or serial.Serial
        self._held: Set[str] = set()
        self._lock = threading.Lock()

    def is_held(self, port: str) -> bool:
        with self._lock:
            return port in self._held

    @contextmanager
    def open(self, port: str, baud: int, timeout: float = 1.0, write_timeout: Optional[float] = None) -> Iterator[serial.Serial]:
        with self._lock:
            if port in self._held:
                raise ProtocolError(f"Serial port {port} is already in use")
            self._held.add(port)

        try:
            try:
                link = self.serial_factory(port, baud, timeout=timeout, write_timeout=write_timeout)
            except (serial.SerialException, OSError) as e:
                raise ProtocolError(f"Failed to open serial port {port}: {e}") from e

            logger.debug(f"Opened serial port {port} at {baud} baud")
            try:
                yield link
            finally:
                link.close()
                logger.debug(f"Closed serial port {port}")
        finally:
            with self._lock:
                self._held.discard(port)

    def list_ports(self) -> List[str]:
        ports = list_ports.comports()
        for port in ports:
            logger.debug(f"Serial port {port.device}: {port.description}")
        return [port.device for port in ports]

    def auto_detect_port(self) -> Optional[str]:
        """First port with a known USB bridge vendor, else the first USB-looking port"""
        ports = list_ports.comports()

        for port in ports:
            if port.vid in KNOWN_USB_VENDORS:
                logger.info(f"[SERIAL] Board detected on {port.device} ({KNOWN_USB_VENDORS[port.vid]}, VID {port.vid:04X})")
                return port.device

        for port in ports:
            if 'USB' in port.device.upper() or 'ACM' in port.device.upper() or 'Arduino' in (port.description or ''):
                logger.info(f"[SERIAL] Potential board port: {port.device}")
                return port.device

        if ports:
            logger.warning(f"No board-specific port found, using first available: {ports[0].device}")
            return ports[0].device
        return None
