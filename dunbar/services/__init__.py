"""Services layer - ビジネスロジック"""

from dunbar.services.connectivity import ConnectivityMonitor
from dunbar.services.contact_book import ContactBook
from dunbar.services.dispatcher import DispatchResult, MutationDispatcher
from dunbar.services.mirror import MirrorStore
from dunbar.services.sync_engine import SyncEngine, SyncItemError, SyncReport

__all__ = [
    "ContactBook",
    "MirrorStore",
    "MutationDispatcher",
    "DispatchResult",
    "SyncEngine",
    "SyncReport",
    "SyncItemError",
    "ConnectivityMonitor",
]
