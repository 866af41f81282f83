"""
Storage backends for snapshot history.

GitBackend is the real implementation; MemoryBackend is an in-memory
stand-in honouring the same contract.
"""

from .base import BackendError, LogEntry, StorageBackend
from .git import GitBackend
from .memory import MemoryBackend

__all__ = [
    "BackendError",
    "GitBackend",
    "LogEntry",
    "MemoryBackend",
    "StorageBackend",
]
