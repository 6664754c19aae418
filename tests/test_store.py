import asyncio
import os

import pytest

from pdf_service.errors import StorageFailure
from pdf_service.spooling import DiskSlotGate, SpoolPolicy, open_spool


class SpyGate(DiskSlotGate):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.acquired = 0
        self.released = 0

    async def acquire(self):
        slot = await super().acquire()
        self.acquired += 1
        return slot

    def _release(self):
        self.released += 1
        super()._release()


def _spool_roundtrip(declared, policy, gate, payload):
    async def scenario():
        async with open_spool(declared, policy, gate) as spool:
            spool.write(payload)
            spool.rewind()
            return spool.on_disk, spool.read(), spool.read_at(1, 3)

    return asyncio.run(scenario())


def test_small_declared_body_stays_in_memory(tmp_path):
    gate = SpyGate(4)
    policy = SpoolPolicy(memory_threshold=1024, spool_dir=str(tmp_path))
    on_disk, data, middle = _spool_roundtrip(16, policy, gate, b"Hello, gophers!\n")
    assert not on_disk
    assert data == b"Hello, gophers!\n"
    assert middle == b"ell"
    assert gate.acquired == 0


@pytest.mark.parametrize("declared", [None, 2048])
def test_unknown_or_large_body_goes_to_disk(tmp_path, declared):
    gate = SpyGate(4)
    policy = SpoolPolicy(memory_threshold=1024, spool_dir=str(tmp_path))
    payload = bytes(range(256)) * 8
    on_disk, data, middle = _spool_roundtrip(declared, policy, gate, payload)
    assert on_disk
    assert data == payload
    assert middle == bytes([1, 2, 3])
    assert (gate.acquired, gate.released) == (1, 1)


def test_memory_spooling_disabled(tmp_path):
    policy = SpoolPolicy(memory_threshold=0, spool_dir=str(tmp_path))
    on_disk, data, _ = _spool_roundtrip(3, policy, None, b"abc")
    assert on_disk
    assert data == b"abc"


def test_spool_file_is_anonymous(tmp_path):
    async def scenario():
        async with open_spool(None, SpoolPolicy(spool_dir=str(tmp_path))) as spool:
            spool.write(b"data")
            return os.listdir(tmp_path), spool

    listing, spool = asyncio.run(scenario())
    assert listing == []
    assert spool.closed


def test_slot_released_when_handler_fails(tmp_path):
    gate = SpyGate(1)

    async def scenario():
        async with open_spool(None, SpoolPolicy(spool_dir=str(tmp_path)), gate) as spool:
            spool.write(b"partial")
            raise OSError("disk went away")

    with pytest.raises(OSError):
        asyncio.run(scenario())
    assert (gate.acquired, gate.released) == (1, 1)
    assert gate.outstanding == 0


def test_spool_create_failure_releases_slot(tmp_path):
    gate = SpyGate(1)
    policy = SpoolPolicy(spool_dir=str(tmp_path / "missing"))

    async def scenario():
        async with open_spool(None, policy, gate):
            pass

    with pytest.raises(StorageFailure):
        asyncio.run(scenario())
    assert (gate.acquired, gate.released) == (1, 1)


def test_effective_limit():
    policy = SpoolPolicy(max_body_size=100)
    assert policy.effective_limit(10) == 10
    assert policy.effective_limit(None) == 100
    assert policy.effective_limit(100) == 100
    assert SpoolPolicy(max_body_size=0).effective_limit(10) == 0
