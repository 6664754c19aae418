from dataclasses import dataclass
from typing import Awaitable, BinaryIO, Callable

from starlette.types import Receive

from ..errors import Cancelled

# How much we try to read past the limit to tell "exactly at limit" apart
# from "over limit".
PROBE_SIZE = 32
CHUNK = 64 * 1024

Reader = Callable[[int], Awaitable[bytes]]


@dataclass(frozen=True)
class CopyResult:
    copied: int
    exceeded: bool = False


async def copy_limited(read: Reader, dst: BinaryIO, limit: int) -> CopyResult:
    """Copy at most ``limit`` bytes from ``read`` into ``dst``.

    After the limit is reached a small probe is read; if the source still has
    data the result is flagged as exceeded instead of being silently
    truncated. No more than ``limit + PROBE_SIZE`` bytes are requested from
    the source, so this bounds bodies of unknown length as well.
    """
    if limit <= 0:
        raise ValueError("limit must be positive; use copy_all for unlimited copies")
    copied = 0
    while copied < limit:
        chunk = await read(min(CHUNK, limit - copied))
        if not chunk:
            return CopyResult(copied)
        dst.write(chunk)
        copied += len(chunk)
    probe = await read(PROBE_SIZE)
    return CopyResult(copied, exceeded=bool(probe))


async def copy_all(read: Reader, dst: BinaryIO) -> CopyResult:
    copied = 0
    while True:
        chunk = await read(CHUNK)
        if not chunk:
            return CopyResult(copied)
        dst.write(chunk)
        copied += len(chunk)


class ReceiveReader:
    """Adapts an ASGI ``receive`` callable to ``read(n)``.

    ASGI delivers the body in messages of the server's choosing; anything
    beyond ``n`` is held back for the next call, so ``read`` never hands out
    more than was asked for.
    """

    def __init__(self, receive: Receive) -> None:
        self._receive = receive
        self._pending = b""
        self._more_body = True

    async def read(self, n: int) -> bytes:
        while not self._pending and self._more_body:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                raise Cancelled("client disconnected while sending the body")
            self._pending = message.get("body", b"")
            self._more_body = message.get("more_body", False)
        chunk, self._pending = self._pending[:n], self._pending[n:]
        return chunk
