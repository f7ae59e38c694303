"""Storage layer — SQLite database access, schema, and the post/source stores."""

from devdash.storage.connection import get_connection
from devdash.storage.schema import init_db

__all__ = ["get_connection", "init_db"]
