import asyncio

from ..errors import ResourceUnavailable


class DiskSlot:
    """Capacity token for one open spool file.

    ``release`` must be called exactly once; the gate does not detect double
    releases.
    """

    __slots__ = ("_gate",)

    def __init__(self, gate: "DiskSlotGate") -> None:
        self._gate = gate

    def release(self) -> None:
        self._gate._release()


class DiskSlotGate:
    """Bounds how many requests may hold a spool file at the same time.

    ``wait`` is the longest a request queues for a slot before it is turned
    away with ``ResourceUnavailable``; 0 means it waits until a slot frees up
    or its task is cancelled.
    """

    def __init__(self, max_slots: int, wait: float = 0) -> None:
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")
        self._max_slots = max_slots
        self._wait = wait
        self._sem = asyncio.Semaphore(max_slots)
        self._outstanding = 0

    @property
    def max_slots(self) -> int:
        return self._max_slots

    @property
    def outstanding(self) -> int:
        return self._outstanding

    async def acquire(self) -> DiskSlot:
        try:
            if self._wait > 0:
                async with asyncio.timeout(self._wait):
                    await self._sem.acquire()
            else:
                await self._sem.acquire()
        except TimeoutError:
            raise ResourceUnavailable(f"no spool slot free after {self._wait:g}s") from None
        self._outstanding += 1
        return DiskSlot(self)

    def _release(self) -> None:
        self._outstanding -= 1
        self._sem.release()
