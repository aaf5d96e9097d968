"""
Cloud backup synchronization.
"""

from .controller import SyncController
from .debounce import Debouncer
from .state import SyncState, SyncStatus

__all__ = ["SyncController", "SyncState", "SyncStatus", "Debouncer"]
