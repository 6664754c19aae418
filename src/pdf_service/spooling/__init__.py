"""
Request body spooling.

Reads request bodies fully into memory or anonymous temporary files before the
application handles them, so slow clients never hold a renderer slot and
oversized uploads are turned away early.
"""

from .copier import PROBE_SIZE, CopyResult, ReceiveReader, copy_all, copy_limited
from .gates import DiskSlot, DiskSlotGate
from .middleware import SPOOL_STATE_KEY, BodySpoolerMiddleware
from .store import Spool, SpoolPolicy, open_spool
