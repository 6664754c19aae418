import threading
from dataclasses import dataclass
from typing import BinaryIO, Protocol


@dataclass
class RenderOutcome:
    """Everything known about one finished renderer run."""

    output: bytes = b""
    pid: int | None = None
    wait_status: int | None = None  # raw status from os.wait4
    rusage: object | None = None  # resource.struct_rusage
    wall_time: float = 0.0
    killed: str | None = None  # "deadline", "cancelled" or "output_limit"
    spawn_error: OSError | None = None
    input_error: OSError | None = None
    stderr_tail: bytes = b""

    @property
    def ok(self) -> bool:
        return (
            self.spawn_error is None
            and self.input_error is None
            and self.killed is None
            and self.wait_status == 0
        )


class RendererGateway(Protocol):
    def render(
        self,
        source: BinaryIO,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> RenderOutcome:
        """Run the renderer over ``source`` and wait for it to exit.

        This is a blocking call; callers should offload to threads. The
        process is killed when ``timeout`` elapses or ``cancel`` is set.
        """


class SecurityGateway(Protocol):
    @property
    def enabled(self) -> bool:
        ...

    def verify(self, token: str) -> bool:
        ...
