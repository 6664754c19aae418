import io
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, BinaryIO

from ..errors import StorageFailure
from .gates import DiskSlot, DiskSlotGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpoolPolicy:
    max_body_size: int = 1 << 20  # 0 = unlimited
    memory_threshold: int = 32 * 1024  # 0 = always spool to disk
    spool_dir: str | None = None
    max_spool_files: int = 0  # 0 = unlimited
    spool_wait: float = 0  # 0 = wait until cancelled

    def use_memory(self, declared_length: int | None) -> bool:
        return (
            self.memory_threshold > 0
            and declared_length is not None
            and 0 < declared_length <= self.memory_threshold
        )

    def effective_limit(self, declared_length: int | None) -> int:
        """Most bytes to accept for a body; 0 means no limit."""
        if self.max_body_size <= 0:
            return 0
        if declared_length is not None and 0 < declared_length < self.max_body_size:
            return declared_length
        return self.max_body_size


class Spool:
    """A request body held in memory or in an anonymous temporary file."""

    def __init__(self, file: BinaryIO, slot: DiskSlot | None = None) -> None:
        self._file = file
        self._slot = slot
        self._closed = False

    @property
    def on_disk(self) -> bool:
        return not isinstance(self._file, io.BytesIO)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        return self._file.write(data)

    def read(self, size: int = -1) -> bytes:
        return self._file.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()

    def readable(self) -> bool:
        return True

    def rewind(self) -> None:
        self._file.flush()
        self._file.seek(0)

    def read_at(self, offset: int, size: int) -> bytes:
        """Read without touching the position used by ``read``."""
        if isinstance(self._file, io.BytesIO):
            with self._file.getbuffer() as view:
                return bytes(view[offset:offset + size])
        return os.pread(self._file.fileno(), size, offset)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._file.close()
        finally:
            if self._slot is not None:
                self._slot.release()
                self._slot = None


def _create_file(spool_dir: str | None) -> BinaryIO:
    # TemporaryFile is unlinked straight away (O_TMPFILE on Linux), so the OS
    # reclaims it when the handle closes, even if we crash.
    return tempfile.TemporaryFile(dir=spool_dir, prefix=".request-")


@asynccontextmanager
async def open_spool(
    declared_length: int | None,
    policy: SpoolPolicy,
    gate: DiskSlotGate | None = None,
) -> AsyncIterator[Spool]:
    """Pick memory or disk storage for a body and release it on exit.

    Disk storage first takes a slot from ``gate`` (when one is configured);
    the slot is held until the spool is closed.
    """
    if policy.use_memory(declared_length):
        spool = Spool(io.BytesIO())
    else:
        slot = await gate.acquire() if gate is not None else None
        try:
            file = _create_file(policy.spool_dir)
        except OSError as e:
            if slot is not None:
                slot.release()
            logger.error("Spool file create in %s failed: %s", policy.spool_dir or "default tmp dir", e)
            raise StorageFailure(f"temp file create: {e}") from e
        spool = Spool(file, slot)
    try:
        yield spool
    finally:
        spool.close()
