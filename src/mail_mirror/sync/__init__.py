"""Background synchronization and the state it shares with the interactive path."""

from .guard import ModificationGuard
from .priority import PriorityQueue
from .progress import SyncProgress, SyncSnapshot
from .reconciler import Reconciler, SyncReport
from .refresh import RefreshSignal

__all__ = [
    "ModificationGuard",
    "PriorityQueue",
    "Reconciler",
    "RefreshSignal",
    "SyncProgress",
    "SyncReport",
    "SyncSnapshot",
]
