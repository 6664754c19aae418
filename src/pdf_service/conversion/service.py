import asyncio
import logging
import threading
from typing import BinaryIO

from ..errors import DeadlineExceeded, ProcessFailure, StorageFailure
from .diagnostics import summary
from .gate import ConversionGate
from .interfaces import RendererGateway, RenderOutcome

logger = logging.getLogger(__name__)


class ConversionService:
    """Core domain service running renderer jobs.

    This service is framework-agnostic. It bounds concurrent renderer
    processes with a ``ConversionGate``, applies the effective deadline, and
    turns renderer outcomes into results or typed failures. The blocking
    renderer gateway runs in a worker thread.
    """

    def __init__(
        self,
        renderer: RendererGateway,
        gate: ConversionGate,
        *,
        max_duration: float | None = None,
        diagnostics: bool = True,
    ) -> None:
        self._renderer = renderer
        self._gate = gate
        self._max_duration = max_duration or None
        self._diagnostics = diagnostics

    @property
    def gate(self) -> ConversionGate:
        return self._gate

    def effective_timeout(self, deadline: float | None) -> float | None:
        """Seconds the renderer may run: the tighter of the caller's
        remaining time and the configured max duration."""
        timeout = self._max_duration
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            timeout = remaining if timeout is None else min(timeout, remaining)
        return timeout

    async def convert(self, source: BinaryIO, *, deadline: float | None = None) -> bytes:
        """Render ``source`` (UTF-8 HTML) and return the rendered document.

        ``deadline`` is an absolute event loop time. Cancelling the calling
        task kills the renderer; the permit is only returned once the process
        is gone.
        """
        async with self._gate.permit(deadline):
            timeout = self.effective_timeout(deadline)
            if timeout is not None and timeout <= 0:
                raise DeadlineExceeded()
            cancel = threading.Event()
            job = asyncio.ensure_future(
                asyncio.to_thread(self._renderer.render, source, timeout=timeout, cancel=cancel)
            )
            try:
                outcome = await asyncio.shield(job)
            except asyncio.CancelledError:
                cancel.set()
                # repeated cancellations must not release the permit early
                while not job.done():
                    try:
                        await asyncio.wait({job})
                    except asyncio.CancelledError:
                        continue
                if not job.cancelled() and job.exception() is None:
                    self._log(job.result())
                raise
        self._log(outcome)
        return self._result(outcome)

    def _log(self, outcome: RenderOutcome) -> None:
        if self._diagnostics:
            logger.info("%s", summary(outcome))

    @staticmethod
    def _result(outcome: RenderOutcome) -> bytes:
        if outcome.ok:
            return outcome.output
        if outcome.killed == "deadline":
            raise DeadlineExceeded()
        if outcome.input_error is not None:
            raise StorageFailure(f"reading request body: {outcome.input_error}")
        tail = outcome.stderr_tail.decode("utf-8", "replace").strip()
        logger.warning(
            "Renderer failed (pid %s, %s)%s",
            outcome.pid,
            summary(outcome),
            f": {tail}" if tail else "",
        )
        raise ProcessFailure(outcome=outcome)
