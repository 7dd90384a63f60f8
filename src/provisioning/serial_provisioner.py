"""
Chunked file push into the device flash filesystem over a serial link

Wire format (ASCII, newline terminated):
    UPLOAD_FILE:<path>
    SIZE:<declared_size>
    <raw payload, sent in chunks>
    END_UPLOAD

In "ack" handshake mode each settle delay is replaced by a bounded wait for
the line the device handler prints (READY_FOR_FILE / READY_FOR_DATA /
UPLOAD_SUCCESS). In "delay" mode only fixed settle delays are used.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Union

import serial

from exceptions import ConfigurationError, ProtocolError
from .assets import AssetManager
from .models import UploadSession
from .serial_link import SerialPortManager

logger = logging.getLogger(__name__)

CONFIG_DEVICE_PATH = '/wifi_config.json'
HTML_DEVICE_PATH = '/arduino.html'
END_MARKER = b'END_UPLOAD\n'

def iter_chunks(payload: bytes, chunk_size: int) -> Iterator[bytes]:
    """Yield ceil(len/size) consecutive slices; the last one may be shorter"""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    for offset in range(0, len(payload), chunk_size):
        yield payload[offset:offset + chunk_size]


class SerialProvisioner:
    """Pushes configuration and HTML assets to the device filesystem"""

    def __init__(self, config: Optional[Dict] = None, port_manager: Optional[SerialPortManager] = None,
                 assets: Optional[AssetManager] = None, sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        config = config or {}
        self.port_manager = port_manager or SerialPortManager()
        self.assets = assets or AssetManager()
        self.sleep = sleep
        self.clock = clock
        self.baud = config.get('baud', 115200)
        self.chunk_size = config.get('chunk_size', 512)
        self.handshake = config.get('handshake', 'ack')
        self.ready_delay = config.get('ready_delay_seconds', 1.0)
        self.settle_delay = config.get('settle_delay_seconds', 0.5)
        self.chunk_delay = config.get('chunk_delay_seconds', 0.1)
        self.final_settle = config.get('final_settle_seconds', 1.0)
        self.ack_timeout = config.get('ack_timeout_seconds', 5.0)
        self.read_timeout = config.get('read_timeout_seconds', 1.0)

    def upload_config_file(self, port: str, config_file: Union[str, Path], baud: Optional[int] = None) -> UploadSession:
        payload = self.assets.load(config_file)
        return self.upload_file(port, CONFIG_DEVICE_PATH, payload, baud)

    def upload_html_file(self, port: str, html_file: Union[str, Path], baud: Optional[int] = None) -> UploadSession:
        payload = self.assets.load(html_file)
        return self.upload_file(port, HTML_DEVICE_PATH, payload, baud)

    def upload_file(self, port: str, device_path: str, payload: bytes, baud: Optional[int] = None) -> UploadSession:
        """
        Run one upload session. Any serial error aborts immediately (no retry):
        the session ends FAILED and ProtocolError is raised with it attached.
        """
        if not device_path.startswith('/'):
            raise ConfigurationError(f"Device path must be absolute: {device_path}")

        session = UploadSession(target_path=device_path, declared_size=len(payload), chunk_size=self.chunk_size)
        baud = baud or self.baud
        logger.info(f"[UPLOAD] {device_path}: {session.declared_size} bytes in {session.total_chunks} chunk(s) "
                    f"via {port} at {baud} baud ({self.handshake} handshake)")

        try:
            with self.port_manager.open(port, baud, timeout=self.read_timeout, write_timeout=self.ack_timeout) as link:
                # Opening the port resets the board
                self.sleep(self.ready_delay)
                link.reset_input_buffer()
                session.begin()
                self._send(link, session, payload)
        except ProtocolError as e:
            if not session.state.terminal:
                session.fail(str(e))
            logger.error(f"[FAIL] Upload of {device_path} aborted after {session.bytes_sent}/{session.declared_size} bytes: {e}")
            e.session = session
            raise

        logger.info(f"[PASS] Uploaded {device_path} ({session.bytes_sent} bytes)")
        return session

    def _send(self, link: serial.Serial, session: UploadSession, payload: bytes) -> None:
        path = session.target_path

        self._write(link, f"UPLOAD_FILE:{path}\n".encode('ascii'), "upload command")
        self._settle(link, f"READY_FOR_FILE:{path}")

        self._write(link, f"SIZE:{session.declared_size}\n".encode('ascii'), "file size")
        self._settle(link, f"READY_FOR_DATA:{session.declared_size}")

        for chunk in iter_chunks(payload, session.chunk_size):
            self._write(link, chunk, f"chunk {session.chunk_index + 1}/{session.total_chunks}")
            session.record_chunk(len(chunk))
            logger.debug(f"Sent chunk {session.chunk_index}/{session.total_chunks} ({len(chunk)} bytes)")
            self.sleep(self.chunk_delay)

        self._write(link, END_MARKER, "end marker")
        if self.handshake == 'ack':
            self._await_ack(link, f"UPLOAD_SUCCESS:{path}", failure=f"UPLOAD_ERROR:{path}")
        else:
            self.sleep(self.final_settle)

        session.complete()

    def _write(self, link: serial.Serial, data: bytes, what: str) -> None:
        try:
            link.write(data)
            link.flush()
        except (serial.SerialException, OSError) as e:
            raise ProtocolError(f"Failed to send {what}: {e}") from e

    def _settle(self, link: serial.Serial, expected: str) -> None:
        if self.handshake == 'ack':
            self._await_ack(link, expected)
        else:
            self.sleep(self.settle_delay)

    def _await_ack(self, link: serial.Serial, expected: str, failure: Optional[str] = None) -> None:
        """Read lines until the expected acknowledgement, skipping device log output"""
        deadline = self.clock() + self.ack_timeout
        while self.clock() < deadline:
            try:
                raw = link.readline()
            except (serial.SerialException, OSError) as e:
                raise ProtocolError(f"Failed to read acknowledgement: {e}") from e
            line = raw.decode('utf-8', errors='replace').strip()
            if not line:
                continue
            if line == expected:
                logger.debug(f"ACK {line}")
                return
            if failure and line.startswith(failure):
                raise ProtocolError(f"Device reported {line}")
            logger.debug(f"Device: {line}")
        raise ProtocolError(f"No {expected!r} acknowledgement within {self.ack_timeout}s")


def upload_handler_sketch() -> str:
    """Device-side Arduino handler that speaks the upload protocol"""
    return UPLOAD_HANDLER_SKETCH


UPLOAD_HANDLER_SKETCH = r"""
// Serial file upload handler - call handleSerialUpload() from loop()
// SIZE counts every payload byte, line endings included.
void uploadFailed(const String &filePath) {
  Serial.print("UPLOAD_ERROR:");
  Serial.println(filePath);
}

void handleSerialUpload() {
  if (!Serial.available()) {
    return;
  }
  String command = Serial.readStringUntil('\n');
  command.trim();
  if (!command.startsWith("UPLOAD_FILE:")) {
    return;
  }

  String filePath = command.substring(12);
  Serial.print("READY_FOR_FILE:");
  Serial.println(filePath);

  while (!Serial.available()) {
    delay(10);
  }
  String sizeCommand = Serial.readStringUntil('\n');
  sizeCommand.trim();
  if (!sizeCommand.startsWith("SIZE:")) {
    uploadFailed(filePath);
    return;
  }

  long fileSize = sizeCommand.substring(5).toInt();
  Serial.print("READY_FOR_DATA:");
  Serial.println(fileSize);

  File file = SPIFFS.open(filePath, "w");
  if (!file) {
    uploadFailed(filePath);
    return;
  }

  // Payload starts right after the SIZE line
  long received = 0;
  unsigned long startTime = millis();
  while (received < fileSize && (millis() - startTime) < 30000) {
    if (Serial.available()) {
      file.write((uint8_t) Serial.read());
      received++;
    }
  }
  file.close();

  // END_UPLOAD follows the payload on its own line
  String endMarker = Serial.readStringUntil('\n');
  endMarker.trim();
  if (received == fileSize && endMarker == "END_UPLOAD") {
    Serial.print("UPLOAD_SUCCESS:");
    Serial.println(filePath);
  } else {
    SPIFFS.remove(filePath);
    uploadFailed(filePath);
  }
}
"""
