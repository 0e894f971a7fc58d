"""In-process schema client.

Provides ``MemorySchemaAdapter``, a ``SchemaClient`` that keeps tables,
columns, indexes and foreign keys in dictionaries.  Every DDL call is recorded
in ``calls`` in execution order, which makes it the adapter of choice for
previews and for testing the reconciler without a database.

Usage:
    from auto_schema.adapters.memory import MemorySchemaAdapter

    adapter = MemorySchemaAdapter()
    adapter.create_table("posts", [ColumnSpec(name="id", type="primary_key")], primary_key="id")
    adapter.fail_on.add(("add_column", "posts"))   # simulate a failing statement
    adapter.connected = False                      # simulate an unreachable database
"""

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, Field

from auto_schema.adapters.base import AdapterCapabilities
from auto_schema.errors import ConnectionUnavailableError, DDLExecutionError
from auto_schema.naming import default_index_name
from auto_schema.schema.models import ColumnSpec, ForeignKeySpec, IndexSpec


_SQL_TYPES = {
    "primary_key": "integer primary key",
    "string": "varchar",
    "text": "text",
    "integer": "integer",
    "bigint": "bigint",
    "float": "float",
    "decimal": "decimal",
    "datetime": "datetime",
    "timestamp": "timestamp",
    "time": "time",
    "date": "date",
    "binary": "blob",
    "boolean": "boolean",
}


class MemoryTable(BaseModel):
    """Stored state of one in-memory table."""

    name: str
    primary_key: str | None = None
    columns: dict[str, ColumnSpec] = Field(default_factory=dict)
    indexes: dict[str, IndexSpec] = Field(default_factory=dict)
    foreign_keys: dict[str, ForeignKeySpec] = Field(default_factory=dict)


class MemorySchemaAdapter:
    """Dictionary-backed implementation of the ``SchemaClient`` protocol.

    Args:
        capabilities: Capability flags to report; defaults to full support.

    Attributes:
        tables: Table name -> ``MemoryTable``.
        calls: ``(operation, table, detail)`` for every DDL call, in order.
        fail_on: ``(operation, table)`` pairs that raise ``DDLExecutionError``.
        connected: When False, ``capabilities()`` raises
            ``ConnectionUnavailableError``.
        reloaded: Tables whose column cache was reloaded, in order.
    """

    def __init__(self, capabilities: AdapterCapabilities | None = None) -> None:
        self._capabilities = capabilities or AdapterCapabilities()
        self.tables: dict[str, MemoryTable] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self.fail_on: set[tuple[str, str]] = set()
        self.connected = True
        self.reloaded: list[str] = []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record(self, operation: str, table: str, detail: Any = None) -> None:
        if (operation, table) in self.fail_on:
            raise DDLExecutionError(table, operation, "simulated failure")
        self.calls.append((operation, table, detail))

    @staticmethod
    def _stored(column: ColumnSpec) -> ColumnSpec:
        # Nullable unless declared otherwise
        return column.model_copy(update={"null": True if column.null is None else column.null})

    def _table(self, operation: str, name: str) -> MemoryTable:
        if name not in self.tables:
            raise DDLExecutionError(name, operation, f"table '{name}' does not exist")
        return self.tables[name]

    def operations(self, table: str | None = None) -> list[str]:
        """Names of the recorded DDL operations, optionally for one table."""
        return [op for op, t, _ in self.calls if table is None or t == table]

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def capabilities(self) -> AdapterCapabilities:
        if not self.connected:
            raise ConnectionUnavailableError("in-memory database is disconnected")
        return self._capabilities

    def set_capabilities(self, **flags: Any) -> None:
        """Replace individual capability flags."""
        self._capabilities = self._capabilities.model_copy(update=flags)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        return list(self.tables)

    def table_exists(self, name: str) -> bool:
        return name in self.tables

    def create_table(
        self,
        name: str,
        columns: Sequence[ColumnSpec],
        primary_key: str | None = None,
    ) -> None:
        if name in self.tables:
            raise DDLExecutionError(name, "create_table", f"table '{name}' already exists")
        self._record("create_table", name, [c.name for c in columns])
        table = MemoryTable(name=name, primary_key=primary_key)
        for column in columns:
            stored = self._stored(column)
            if column.name == primary_key:
                stored.primary_key = True
                stored.null = False
            table.columns[column.name] = stored
        self.tables[name] = table

    def drop_table(self, name: str) -> None:
        self._table("drop_table", name)
        self._record("drop_table", name)
        del self.tables[name]

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def list_columns(self, table: str) -> list[ColumnSpec]:
        return [c.model_copy() for c in self._table("list_columns", table).columns.values()]

    def add_column(self, table: str, column: ColumnSpec) -> None:
        stored = self._table("add_column", table)
        if column.name in stored.columns:
            raise DDLExecutionError(table, "add_column", f"column '{column.name}' already exists")
        self._record("add_column", table, column.name)
        stored.columns[column.name] = self._stored(column)

    def change_column(
        self, table: str, name: str, type: str, attributes: Mapping[str, Any]
    ) -> None:
        stored = self._table("change_column", table)
        if name not in stored.columns:
            raise DDLExecutionError(table, "change_column", f"column '{name}' does not exist")
        self._record("change_column", table, (name, type, dict(attributes)))
        update = {"type": type, **attributes}
        stored.columns[name] = stored.columns[name].model_copy(update=update)

    def remove_column(self, table: str, name: str) -> None:
        stored = self._table("remove_column", table)
        if name not in stored.columns:
            raise DDLExecutionError(table, "remove_column", f"column '{name}' does not exist")
        self._record("remove_column", table, name)
        del stored.columns[name]
        # Indexes and foreign keys on the column go with it
        stored.indexes = {
            n: i for n, i in stored.indexes.items() if name not in i.columns
        }
        stored.foreign_keys = {
            n: fk for n, fk in stored.foreign_keys.items() if fk.column != name
        }

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    def list_indexes(self, table: str) -> list[IndexSpec]:
        return [i.model_copy() for i in self._table("list_indexes", table).indexes.values()]

    def add_index(
        self, table: str, columns: Sequence[str], *, name: str, unique: bool = False
    ) -> None:
        stored = self._table("add_index", table)
        if name in stored.indexes:
            raise DDLExecutionError(table, "add_index", f"index '{name}' already exists")
        missing = [c for c in columns if c not in stored.columns]
        if missing:
            raise DDLExecutionError(table, "add_index", f"unknown columns {missing}")
        self._record("add_index", table, name)
        stored.indexes[name] = IndexSpec(name=name, columns=list(columns), unique=unique)

    def remove_index(self, table: str, name: str) -> None:
        stored = self._table("remove_index", table)
        if name not in stored.indexes:
            raise DDLExecutionError(table, "remove_index", f"index '{name}' does not exist")
        self._record("remove_index", table, name)
        del stored.indexes[name]

    def derive_index_name(self, table: str, columns: Sequence[str]) -> str:
        return default_index_name(table, columns, self._capabilities.max_identifier_length)

    # ------------------------------------------------------------------
    # Foreign keys
    # ------------------------------------------------------------------

    def list_foreign_keys(self, table: str) -> list[ForeignKeySpec]:
        return [
            fk.model_copy()
            for fk in self._table("list_foreign_keys", table).foreign_keys.values()
        ]

    def add_foreign_key(
        self, table: str, to_table: str, *, column: str, name: str | None = None
    ) -> None:
        stored = self._table("add_foreign_key", table)
        if to_table not in self.tables:
            raise DDLExecutionError(table, "add_foreign_key", f"table '{to_table}' does not exist")
        fk_name = name or f"fk_{table}_{column}"
        self._record("add_foreign_key", table, fk_name)
        stored.foreign_keys[fk_name] = ForeignKeySpec(
            table=table, column=column, to_table=to_table, name=fk_name
        )

    def remove_foreign_key(self, table: str, name: str) -> None:
        stored = self._table("remove_foreign_key", table)
        if name not in stored.foreign_keys:
            raise DDLExecutionError(table, "remove_foreign_key", f"foreign key '{name}' does not exist")
        self._record("remove_foreign_key", table, name)
        del stored.foreign_keys[name]

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
        base = _SQL_TYPES.get(type)
        if base is None:
            # Custom SQL literal
            return type.lower()
        if type == "decimal" and precision is not None:
            return f"{base}({precision},{scale or 0})"
        if type == "string" and limit is not None:
            return f"{base}({limit})"
        return base

    def reload_column_cache(self, table: str) -> None:
        self.reloaded.append(table)

    def close(self) -> None:
        self.connected = False
