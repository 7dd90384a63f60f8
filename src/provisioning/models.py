"""
Upload session state machine
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

class UploadState(Enum):
    """Upload session state"""
    IDLE = "idle"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (UploadState.COMPLETED, UploadState.FAILED)

@dataclass
class UploadSession:
    """One file push over the serial link.

    States only move forward (IDLE -> SENDING -> COMPLETED/FAILED, or
    IDLE -> FAILED when the port cannot be opened), ``bytes_sent`` only grows
    and never passes ``declared_size``. A terminal state is reached exactly
    once; any other transition raises ValueError.
    """
    target_path: str
    declared_size: int
    chunk_size: int
    bytes_sent: int = 0
    chunk_index: int = 0
    state: UploadState = UploadState.IDLE
    error: Optional[str] = None

    @property
    def total_chunks(self) -> int:
        return -(-self.declared_size // self.chunk_size)

    def begin(self) -> None:
        self._require(UploadState.IDLE, "begin")
        self.state = UploadState.SENDING

    def record_chunk(self, size: int) -> None:
        self._require(UploadState.SENDING, "record a chunk")
        if size <= 0:
            raise ValueError(f"Chunk size must be positive, got {size}")
        if self.bytes_sent + size > self.declared_size:
            raise ValueError(f"Chunk of {size} bytes overflows declared size {self.declared_size}")
        self.bytes_sent += size
        self.chunk_index += 1

    def complete(self) -> None:
        self._require(UploadState.SENDING, "complete")
        if self.bytes_sent != self.declared_size:
            raise ValueError(f"Cannot complete after {self.bytes_sent}/{self.declared_size} bytes")
        self.state = UploadState.COMPLETED

    def fail(self, reason: str) -> None:
        if self.state.terminal:
            raise ValueError(f"Session already {self.state.value}, cannot fail")
        self.state = UploadState.FAILED
        self.error = reason

    def _require(self, expected: UploadState, action: str) -> None:
        if self.state is not expected:
            raise ValueError(f"Cannot {action} while session is {self.state.value}")
