"""Snapshot storage.

The interface lives in `interfaces.py`; `sql/` holds the SQLAlchemy
implementation (SQLite by default, one file per deployment).
"""

from .interfaces import SnapshotStore
from .sql import SqlSnapshotStore, StoreConfig
