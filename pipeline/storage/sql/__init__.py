"""SQLAlchemy snapshot store.

Notes
- We avoid logging connection URLs to prevent accidental secret leakage.
- The schema uses SQLite syntax (AUTOINCREMENT, partial index, ON CONFLICT).
"""

from .config import StoreConfig
from .stores import SqlSnapshotStore
