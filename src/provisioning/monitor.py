"""
Serial monitor - echoes device output until interrupted
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Optional, TextIO

import serial

from exceptions import ProtocolError
from .serial_link import SerialPortManager

logger = logging.getLogger(__name__)

READ_SIZE = 1024

class SerialMonitor:
    def __init__(self, port_manager: Optional[SerialPortManager] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.port_manager = port_manager or SerialPortManager()
        self.clock = clock

    async def watch(self, port: str, baud: int, output: TextIO, duration: Optional[float] = None) -> int:
        """
        Run the read loop in a worker thread. Ctrl+C or cancellation of the
        awaiting task sets the stop event, so the thread exits within one read
        timeout and the port is released.
        """
        stop = threading.Event()
        try:
            return await asyncio.to_thread(self.run, port, baud, output, stop, duration)
        except (asyncio.CancelledError, KeyboardInterrupt):
            stop.set()
            logger.info("[MONITOR] Interrupted")
            raise

    def run(self, port: str, baud: int, output: TextIO, stop_event: Optional[threading.Event] = None,
            duration: Optional[float] = None) -> int:
        """
        Blocking read loop. Stops on KeyboardInterrupt, when ``stop_event`` is
        set, or once ``duration`` seconds have passed. Returns bytes echoed.
        """
        logger.info(f"[MONITOR] Monitoring {port} at {baud} baud (Ctrl+C to exit)")
        deadline = self.clock() + duration if duration is not None else None
        received = 0

        with self.port_manager.open(port, baud, timeout=1.0) as link:
            output.write(f"Port: {port} | Baud: {baud}\n{'-' * 50}\n")
            try:
                while True:
                    if stop_event is not None and stop_event.is_set():
                        break
                    if deadline is not None and self.clock() >= deadline:
                        break
                    try:
                        data = link.read(READ_SIZE)
                    except (serial.SerialException, OSError) as e:
                        raise ProtocolError(f"Serial read error on {port}: {e}") from e
                    if data:
                        received += len(data)
                        output.write(data.decode('utf-8', errors='replace'))
                        output.flush()
            except KeyboardInterrupt:
                logger.info("[MONITOR] Interrupted")

        logger.info(f"[MONITOR] Stopped after {received} bytes")
        return received
