"""Schema client adapters.

Provides the ``SchemaClient`` Protocol and its implementations: the
SQLAlchemy/Alembic adapter for real databases and the in-memory adapter for
previews and tests.

Usage:
    from auto_schema.adapters import SchemaClient, SqlSchemaAdapter, MemorySchemaAdapter
"""

from auto_schema.adapters.base import AdapterCapabilities, SchemaClient
from auto_schema.adapters.memory import MemorySchemaAdapter
from auto_schema.adapters.sql import SqlSchemaAdapter

__all__ = [
    "AdapterCapabilities",
    "SchemaClient",
    "MemorySchemaAdapter",
    "SqlSchemaAdapter",
]
