"""Schema client protocol definition.

Defines the ``SchemaClient`` Protocol that every database adapter must
implement for the reconciler: table/column/index/foreign-key introspection,
the matching DDL operations, and SQL type rendering.  All methods are
synchronous -- a reconciliation pass is a sequential walk of blocking calls.

Usage:
    from auto_schema.adapters.base import SchemaClient

    def show(client: SchemaClient) -> None:
        for table in client.list_tables():
            print(table, [c.name for c in client.list_columns(table)])
"""

from collections.abc import Sequence
from typing import Any, Mapping, Protocol

from pydantic import BaseModel

from auto_schema.schema.models import ColumnSpec, ForeignKeySpec, IndexSpec


class AdapterCapabilities(BaseModel):
    """What an adapter's database supports, read once per pass.

    Example:
        >>> caps = AdapterCapabilities()
        >>> caps.max_identifier_length
        63
    """

    supports_foreign_keys: bool = True
    supports_inline_column_limit: bool = True
    max_identifier_length: int = 63


class SchemaClient(Protocol):
    """Database collaborator interface used by the reconciler.

    Introspection methods may return model instances or plain mappings with
    the same fields; the reconciler validates them either way.
    """

    def capabilities(self) -> AdapterCapabilities:
        """Return the adapter's capability flags.

        Raises:
            ConnectionUnavailableError: If the database cannot be reached.
        """
        ...

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        """List user tables (system tables excluded)."""
        ...

    def table_exists(self, name: str) -> bool:
        """True if *name* is a table in the database."""
        ...

    def create_table(
        self,
        name: str,
        columns: Sequence[ColumnSpec],
        primary_key: str | None = None,
    ) -> None:
        """Create a table.

        Args:
            name: Table name.
            columns: Columns to create.  The primary key column, if any, is
                included here with ``type="primary_key"``.
            primary_key: Primary key column name, or None for tables
                without one (join tables).

        Raises:
            DDLExecutionError: If the statement fails.
        """
        ...

    def drop_table(self, name: str) -> None:
        """Drop a table."""
        ...

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def list_columns(self, table: str) -> list[ColumnSpec | Mapping[str, Any]]:
        """Introspect the columns of *table*."""
        ...

    def add_column(self, table: str, column: ColumnSpec) -> None:
        """Add a column carrying its limit/precision/scale/default/null."""
        ...

    def change_column(
        self, table: str, name: str, type: str, attributes: Mapping[str, Any]
    ) -> None:
        """Change a column's type and the given attributes."""
        ...

    def remove_column(self, table: str, name: str) -> None:
        """Remove a column."""
        ...

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    def list_indexes(self, table: str) -> list[IndexSpec | Mapping[str, Any]]:
        """Introspect the indexes of *table* (primary key index excluded)."""
        ...

    def add_index(
        self, table: str, columns: Sequence[str], *, name: str, unique: bool = False
    ) -> None:
        """Create an index."""
        ...

    def remove_index(self, table: str, name: str) -> None:
        """Drop an index."""
        ...

    def derive_index_name(self, table: str, columns: Sequence[str]) -> str:
        """Deterministic index name, within the adapter's length limit."""
        ...

    # ------------------------------------------------------------------
    # Foreign keys
    # ------------------------------------------------------------------

    def list_foreign_keys(self, table: str) -> list[ForeignKeySpec | Mapping[str, Any]]:
        """Introspect the foreign keys declared on *table*."""
        ...

    def add_foreign_key(
        self, table: str, to_table: str, *, column: str, name: str | None = None
    ) -> None:
        """Add a foreign key from ``table.column`` to ``to_table``'s primary key."""
        ...

    def remove_foreign_key(self, table: str, name: str) -> None:
        """Drop a foreign-key constraint by name."""
        ...

    # ------------------------------------------------------------------
    # Types and caches
    # ------------------------------------------------------------------

    def render_sql_type(
        self,
        type: str,
        limit: int | None = None,
        precision: int | None = None,
        scale: int | None = None,
    ) -> str:
        """Render a logical type to the adapter's SQL type string."""
        ...

    def reload_column_cache(self, table: str) -> None:
        """Signal dependent collaborators that *table*'s columns changed."""
        ...

    def close(self) -> None:
        """Release the connection."""
        ...
