"""
inventory_sync – Python package for syncing the vehicle inventory sheet to
WordPress ``autos`` posts.

Public API
----------
WordPressClient   – JWT-authenticated WordPress REST client
RecordManager     – create/update/retire the post for one inventory record
run_batch         – one sync run over a record source
CsvRecordSource   – CSV-backed inventory with per-record write-back
load_settings     – settings from a YAML file and the environment
open_state        – load/save the cached token and manual start row
InventoryRecord   – dataclass for one inventory row
SyncResult        – outcome of syncing one record
"""

from .batch import BatchReport, run_batch
from .client import WordPressClient
from .config import Settings, load_settings
from .models import InventoryRecord, Outcome, SyncResult
from .record_manager import RecordManager
from .sources import CsvRecordSource, load_header_map
from .state import SyncState, open_state

__all__ = [
    "BatchReport",
    "CsvRecordSource",
    "InventoryRecord",
    "load_header_map",
    "load_settings",
    "open_state",
    "Outcome",
    "RecordManager",
    "run_batch",
    "Settings",
    "SyncResult",
    "SyncState",
    "WordPressClient",
]
