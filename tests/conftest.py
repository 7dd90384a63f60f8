"""Shared fakes for network probes, serial links and OS commands."""

import asyncio
import time
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Union

import pytest
import serial

from command_runner import CommandResult
from discovery.models import HttpResponse, NetworkAddress, ProbeResult
from exceptions import ConnectivityError

STATUS_BODY = '{"device_name":"ESP-Test","version":"1.2.0","uptime":3600,"free_heap":30000,' \
              '"wifi_rssi":-61,"led_state":true,"relay_state":false,"analog_value":512}'


class FakeProbeEngine:
    """In-memory ProbeEngine.

    ``reachable`` lists hosts that accept TCP connections. ``routes`` maps
    (address, path) to a body string, an exception instance, or a list of
    those consumed one per attempt (the last entry repeats).
    """

    def __init__(self, reachable: Sequence[NetworkAddress] = (), routes: Optional[Dict] = None,
                 transport_delay: Optional[Dict[NetworkAddress, float]] = None):
        self.reachable = set(reachable)
        self.routes = dict(routes or {})
        self.transport_delay = dict(transport_delay or {})
        self.transport_calls: List[NetworkAddress] = []
        self.fetch_calls: List[tuple] = []
        self._attempts = defaultdict(int)

    async def check_transport(self, address, timeout):
        self.transport_calls.append(address)
        delay = self.transport_delay.get(address)
        if delay:
            await asyncio.sleep(delay)
        return ProbeResult(address, transport_reachable=address in self.reachable, latency=0.001)

    async def fetch(self, address, path, timeout, attempts=1, retry_delay=0.0):
        last_error = "no route"
        for _ in range(attempts):
            self.fetch_calls.append((address, path))
            outcome = self._next_outcome(address, path)
            if isinstance(outcome, str):
                return HttpResponse(200, outcome, 0.001)
            last_error = repr(outcome)
        raise ConnectivityError(f"GET {address.url(path)} failed: {last_error}")

    def _next_outcome(self, address, path) -> Union[str, Exception]:
        if address not in self.reachable:
            return OSError("connection refused")
        outcome = self.routes.get((address, path), asyncio.TimeoutError())
        if isinstance(outcome, list):
            index = min(self._attempts[(address, path)], len(outcome) - 1)
            self._attempts[(address, path)] += 1
            outcome = outcome[index]
        return outcome

    def calls_for(self, path: str) -> int:
        return sum(1 for _, called in self.fetch_calls if called == path)


class FakeRunner:
    """CommandRunner returning canned results keyed by executable name"""

    def __init__(self, results: Optional[Dict[str, CommandResult]] = None):
        self.results = dict(results or {})
        self.calls: List[List[str]] = []

    def run(self, args, timeout=None, cwd=None):
        self.calls.append(list(args))
        return self.results.get(args[0], CommandResult(127, "", f"{args[0]}: command not found"))


class ScriptedRunner:
    """CommandRunner answering by matching the leading arguments, in order of registration"""

    def __init__(self):
        self.rules: List[tuple] = []
        self.calls: List[List[str]] = []

    def on(self, prefix: Sequence[str], result: CommandResult) -> "ScriptedRunner":
        self.rules.append((list(prefix), result))
        return self

    def run(self, args, timeout=None, cwd=None):
        self.calls.append(list(args))
        for prefix, result in self.rules:
            if list(args[:len(prefix)]) == prefix:
                return result
        return CommandResult(0, "", "")


class FakeSerial:
    """pyserial stand-in recording writes and replaying device lines"""

    def __init__(self, port=None, baud=None, timeout=None, write_timeout=None,
                 lines: Sequence[bytes] = (), fail_on_write: Optional[int] = None,
                 read_chunks: Sequence[Union[bytes, Exception]] = (), idle_delay: float = 0.0):
        self.port = port
        self.baud = baud
        self.timeout = timeout
        self.writes: List[bytes] = []
        self.lines = list(lines)
        self.read_chunks = list(read_chunks)
        self.fail_on_write = fail_on_write
        self.idle_delay = idle_delay
        self.closed = False
        self.input_reset = False

    def write(self, data: bytes) -> int:
        if self.fail_on_write is not None and len(self.writes) == self.fail_on_write:
            raise serial.SerialException("device disconnected")
        self.writes.append(bytes(data))
        return len(data)

    def flush(self):
        pass

    def reset_input_buffer(self):
        self.input_reset = True

    def readline(self) -> bytes:
        if self.lines:
            return self.lines.pop(0)
        return b""

    def read(self, size: int = 1) -> bytes:
        if self.read_chunks:
            chunk = self.read_chunks.pop(0)
            if isinstance(chunk, Exception):
                raise chunk
            return chunk
        if self.idle_delay:
            # pyserial blocks up to its read timeout when nothing arrives
            time.sleep(self.idle_delay)
        return b""

    def close(self):
        self.closed = True


class UploadHandlerSerial(FakeSerial):
    """FakeSerial driven by the device-side upload handler's framing.

    Replies with the same acknowledgements as the shipped Arduino handler:
    the payload is exactly SIZE bytes, line endings included, followed by
    the END_UPLOAD line.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.received = b""
        self.files: Dict[str, bytes] = {}
        self.path: Optional[str] = None
        self.size: Optional[int] = None

    def write(self, data: bytes) -> int:
        written = super().write(data)
        self.received += bytes(data)
        self._handle()
        return written

    def _take_line(self) -> Optional[bytes]:
        if b"\n" not in self.received:
            return None
        line, self.received = self.received.split(b"\n", 1)
        return line.strip()

    def _reply(self, text: str):
        self.lines.append(f"{text}\r\n".encode())

    def _handle(self):
        while True:
            if self.path is None:
                line = self._take_line()
                if line is None:
                    return
                if line.startswith(b"UPLOAD_FILE:"):
                    self.path = line[len(b"UPLOAD_FILE:"):].decode()
                    self._reply(f"READY_FOR_FILE:{self.path}")
            elif self.size is None:
                line = self._take_line()
                if line is None:
                    return
                if not line.startswith(b"SIZE:"):
                    self._reply(f"UPLOAD_ERROR:{self.path}")
                    self.path = None
                    continue
                self.size = int(line[len(b"SIZE:"):])
                self._reply(f"READY_FOR_DATA:{self.size}")
            else:
                marker_end = self.received.find(b"\n", self.size)
                if len(self.received) < self.size or marker_end < 0:
                    return
                payload, marker = self.received[:self.size], self.received[self.size:marker_end].strip()
                self.received = self.received[marker_end + 1:]
                if marker == b"END_UPLOAD":
                    self.files[self.path] = payload
                    self._reply(f"UPLOAD_SUCCESS:{self.path}")
                else:
                    self._reply(f"UPLOAD_ERROR:{self.path}")
                self.path = self.size = None


class SerialFactory:
    """Factory handing out one pre-built FakeSerial and recording open arguments"""

    def __init__(self, link: Optional[FakeSerial] = None):
        self.link = link or FakeSerial()
        self.opened: List[tuple] = []

    def __call__(self, port, baud, timeout=None, write_timeout=None):
        self.opened.append((port, baud))
        self.link.port = port
        self.link.baud = baud
        return self.link


class StubResolver:
    def __init__(self, prefixes: Sequence[str] = ('192.168.1',)):
        self.prefixes = list(prefixes)

    def resolve(self):
        return list(self.prefixes)


class ManualClock:
    """Monotonic clock advancing by ``step`` on every read"""

    def __init__(self, step: float = 0.5):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


@pytest.fixture
def device_address() -> NetworkAddress:
    return NetworkAddress('192.168.1.238')


@pytest.fixture
def status_body() -> str:
    return STATUS_BODY


def pytest_configure(config):
    config.addinivalue_line('markers', 'integration: tests that run a real local HTTP server')
