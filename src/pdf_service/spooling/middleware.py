import asyncio
import logging
from contextlib import AsyncExitStack

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..errors import Cancelled, ResourceUnavailable, ServiceError, StorageFailure, TooLarge
from .copier import CHUNK, ReceiveReader, copy_all, copy_limited
from .gates import DiskSlotGate
from .store import Spool, SpoolPolicy, open_spool

logger = logging.getLogger(__name__)

SPOOL_STATE_KEY = "body_spool"


def declared_length(headers: Headers) -> int | None:
    """Content-Length of the request, None when the body length is unknown.

    A request without Content-Length and without a chunked transfer encoding
    carries no body and counts as zero.
    """
    raw = headers.get("content-length")
    if raw is not None:
        try:
            return max(int(raw), 0)
        except ValueError:
            return None
    if "chunked" in headers.get("transfer-encoding", "").lower():
        return None
    return 0


def spooled_receive(spool: Spool, receive: Receive) -> Receive:
    """Replay the spooled body, then defer to the server's ``receive``.

    Reads go through ``Spool.read_at`` so an endpoint reading the spool
    directly keeps its own position. Disk reads run in a worker thread.
    """
    offset = 0
    done = False

    async def _receive() -> Message:
        nonlocal offset, done
        if done:
            return await receive()
        if spool.on_disk:
            chunk = await asyncio.to_thread(spool.read_at, offset, CHUNK)
        else:
            chunk = spool.read_at(offset, CHUNK)
        offset += len(chunk)
        if len(chunk) < CHUNK:
            done = True
        return {"type": "http.request", "body": chunk, "more_body": not done}

    return _receive


class BodySpoolerMiddleware:
    """Reads the whole request body into memory or a temporary file before
    the wrapped app sees the request.

    The app is called with a copy of the scope whose ``state["body_spool"]``
    is the materialized body, and the spool (plus any disk slot it holds) is
    released when the app returns, however it returns.
    """

    def __init__(self, app: ASGIApp, policy: SpoolPolicy, gate: DiskSlotGate | None = None) -> None:
        self.app = app
        self.policy = policy
        self.gate = gate

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = declared_length(Headers(scope=scope))
        if length == 0:
            await self.app(scope, receive, send)
            return
        if self.policy.max_body_size > 0 and length is not None and length > self.policy.max_body_size:
            await self._reject(TooLarge(), scope, receive, send)
            return

        async with AsyncExitStack() as stack:
            try:
                spool = await stack.enter_async_context(open_spool(length, self.policy, self.gate))
                await self._fill(spool, length, receive, scope)
            except (TooLarge, ResourceUnavailable, StorageFailure, Cancelled) as e:
                await self._reject(e, scope, receive, send)
                return

            state = dict(scope.get("state") or {})
            state[SPOOL_STATE_KEY] = spool
            await self.app({**scope, "state": state}, spooled_receive(spool, receive), send)

    async def _fill(self, spool: Spool, length: int | None, receive: Receive, scope: Scope) -> None:
        reader = ReceiveReader(receive)
        limit = self.policy.effective_limit(length)
        try:
            if limit > 0:
                result = await copy_limited(reader.read, spool, limit)
            else:
                result = await copy_all(reader.read, spool)
            if result.exceeded:
                raise TooLarge(f"body exceeds {limit} bytes")
            spool.rewind()
        except OSError as e:
            logger.error(
                "Body copy for %s %s failed (%s spool): %s",
                scope.get("method"), scope.get("path"), "disk" if spool.on_disk else "memory", e,
            )
            raise StorageFailure(f"body copy: {e}") from e

    @staticmethod
    async def _reject(error: ServiceError, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(status_code=error.status_code, content={"detail": error.detail})
        await response(scope, receive, send)
