"""auto-schema: declarative schema reconciliation for SQL databases.

Derives the desired schema of every declared record type (columns, indexes,
foreign keys, join tables), compares it with the live database, and applies
the difference as DDL.

Usage:
    from auto_schema import RecordType, Reconciler, get_adapter
    from auto_schema import MemorySchemaAdapter, SqlSchemaAdapter
    from auto_schema import load_db_config, load_schema_file
"""

__version__ = "0.1.0"

# Schema (imported first: the adapters depend on its models)
from auto_schema.schema import (
    ColumnSpec,
    RecordType,
    Reconciler,
    ReconcilePlan,
    ReconcileResult,
    SchemaBuilder,
    TableSchema,
)

# Adapters
from auto_schema.adapters import (
    AdapterCapabilities,
    MemorySchemaAdapter,
    SchemaClient,
    SqlSchemaAdapter,
)

# Config
from auto_schema.config import (
    DatabaseConfig,
    DatabaseProfile,
    ReconcileSettings,
    load_db_config,
    load_schema_file,
)

# Errors
from auto_schema.errors import (
    AmbiguousAssociationTargetError,
    AutoSchemaError,
    ConnectionUnavailableError,
    DDLExecutionError,
    UnsupportedAdapterShapeError,
)

# Factory
from auto_schema.factory import ProfileNotFoundError, get_adapter, resolve_url

__all__ = [
    # Schema
    "RecordType",
    "ColumnSpec",
    "TableSchema",
    "SchemaBuilder",
    "Reconciler",
    "ReconcilePlan",
    "ReconcileResult",
    # Adapters
    "SchemaClient",
    "AdapterCapabilities",
    "MemorySchemaAdapter",
    "SqlSchemaAdapter",
    # Config
    "load_db_config",
    "load_schema_file",
    "DatabaseConfig",
    "DatabaseProfile",
    "ReconcileSettings",
    # Errors
    "AutoSchemaError",
    "ConnectionUnavailableError",
    "DDLExecutionError",
    "AmbiguousAssociationTargetError",
    "UnsupportedAdapterShapeError",
    # Factory
    "get_adapter",
    "resolve_url",
    "ProfileNotFoundError",
]
