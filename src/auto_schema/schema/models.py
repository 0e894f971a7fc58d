"""Pydantic models shared by the reconciliation components.

This module contains schema-domain models:
- Schema models: ColumnSpec, IndexSpec, IndexDecl, ForeignKeySpec,
  RelationshipDescriptor, TableSchema
- Change models: ColumnAlter, ChangeSet
- Result models: TablePlan, ReconcilePlan, TableResult, ReconcileResult

Desired and actual schemas use the same ``TableSchema`` shape, which is what
makes them comparable.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


LOGICAL_TYPES = frozenset(
    {
        "primary_key",
        "string",
        "text",
        "integer",
        "bigint",
        "float",
        "decimal",
        "datetime",
        "timestamp",
        "time",
        "date",
        "binary",
        "boolean",
    }
)


# ============================================================================
# Schema Models
# ============================================================================


class ColumnSpec(BaseModel):
    """Schema for a single column, desired or introspected.

    Example:
        >>> col = ColumnSpec(name="title", type="string", limit=100)
        >>> col.is_custom_type
        False
        >>> ColumnSpec(name="kind", type="ENUM('A','B')").is_custom_type
        True
    """

    name: str
    type: str = "string"
    limit: int | None = None
    precision: int | None = None
    scale: int | None = None
    null: bool | None = None
    default: Any = None
    primary_key: bool = False
    derived_only: bool = False

    @property
    def is_custom_type(self) -> bool:
        """True if ``type`` is a raw SQL type literal, not a logical type."""
        return self.type not in LOGICAL_TYPES


class IndexDecl(BaseModel):
    """An index requested at registration time, before it has a name."""

    columns: list[str]
    unique: bool = False
    foreign: bool | None = None
    name: str | None = None

    @field_validator("columns", mode="before")
    @classmethod
    def _wrap_single_column(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class IndexSpec(BaseModel):
    """Schema for a named index.

    ``foreign`` is tri-state: ``True`` maintains a foreign key on the first
    column, ``False`` removes an existing one, ``None`` leaves it alone.
    """

    name: str
    columns: list[str] = Field(min_length=1)
    unique: bool = False
    foreign: bool | None = None

    @field_validator("columns", mode="before")
    @classmethod
    def _wrap_single_column(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class ForeignKeySpec(BaseModel):
    """A foreign-key constraint, as introspected or planned."""

    table: str
    column: str
    to_table: str
    name: str | None = None


class RelationshipDescriptor(BaseModel):
    """Resolved relationship metadata for a record type.

    For many-to-many relationships whose target table no declared record
    type owns, the join table's ``association_foreign_key`` defaults to the
    relationship name with one trailing "s" stripped (``tags`` -> ``tag_id``).
    Irregular plurals (``categories``) need it declared explicitly.

    Example:
        >>> rel = RelationshipDescriptor(kind="belongs_to", name="author")
        >>> rel.foreign_key_column
        'author_id'
    """

    kind: Literal["belongs_to", "many_to_many"]
    name: str
    foreign_key: str | None = None
    target_table: str | None = None
    polymorphic: bool = False
    join_table: str | None = None
    association_foreign_key: str | None = None
    foreign: bool | None = None

    @property
    def foreign_key_column(self) -> str:
        """Foreign-key column name, ``<name>_id`` unless declared."""
        return self.foreign_key or f"{self.name}_id"

    @property
    def type_column(self) -> str:
        """Type column used by polymorphic belongs-to relationships."""
        return f"{self.name}_type"


class TableSchema(BaseModel):
    """Schema for a database table.

    ``join_tables`` holds pending join tables derived from many-to-many
    relationships; they are created outside the normal diff path.
    """

    name: str
    primary_key: str | None = "id"
    columns: dict[str, ColumnSpec] = Field(default_factory=dict)
    indexes: dict[str, IndexSpec] = Field(default_factory=dict)
    relationships: list[RelationshipDescriptor] = Field(default_factory=list)
    join_tables: dict[str, "TableSchema"] = Field(default_factory=dict)

    @property
    def persisted_columns(self) -> dict[str, ColumnSpec]:
        """Columns that exist in the database (derived-only columns excluded)."""
        return {n: c for n, c in self.columns.items() if not c.derived_only}

    @property
    def derived_only_columns(self) -> dict[str, ColumnSpec]:
        """Columns that only exist in memory."""
        return {n: c for n, c in self.columns.items() if c.derived_only}


# ============================================================================
# Change Models
# ============================================================================


class ColumnAlter(BaseModel):
    """A column change: the new logical type plus the changed attributes."""

    name: str
    type: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class ChangeSet(BaseModel):
    """Ordered per-table changes produced by the diff engine.

    Example:
        >>> ChangeSet().is_empty
        True
    """

    columns_to_drop: list[str] = Field(default_factory=list)
    columns_to_add: list[ColumnSpec] = Field(default_factory=list)
    columns_to_alter: list[ColumnAlter] = Field(default_factory=list)
    indexes_to_drop: list[str] = Field(default_factory=list)
    indexes_to_add: list[IndexSpec] = Field(default_factory=list)

    @property
    def change_count(self) -> int:
        """Total number of column and index changes."""
        return (
            len(self.columns_to_drop)
            + len(self.columns_to_add)
            + len(self.columns_to_alter)
            + len(self.indexes_to_drop)
            + len(self.indexes_to_add)
        )

    @property
    def is_empty(self) -> bool:
        """True if the table already matches."""
        return self.change_count == 0


# ============================================================================
# Result Models
# ============================================================================


class TablePlan(BaseModel):
    """Planned changes for one table (dry run)."""

    table: str
    create: bool = False
    changes: ChangeSet = Field(default_factory=ChangeSet)
    foreign_keys_to_drop: list[ForeignKeySpec] = Field(default_factory=list)
    foreign_keys_to_add: list[ForeignKeySpec] = Field(default_factory=list)
    join_tables_to_create: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def has_changes(self) -> bool:
        """True if anything would be executed for this table."""
        return bool(
            self.create
            or not self.changes.is_empty
            or self.foreign_keys_to_drop
            or self.foreign_keys_to_add
            or self.join_tables_to_create
        )


class ReconcilePlan(BaseModel):
    """Dry-run plan for a full pass: per-table changes plus orphan drops."""

    skipped: bool = False
    tables: list[TablePlan] = Field(default_factory=list)
    tables_to_drop: list[str] = Field(default_factory=list)
    configuration_errors: list[str] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """True if the pass would execute any DDL."""
        return bool(self.tables_to_drop) or any(t.has_changes for t in self.tables)


class TableResult(BaseModel):
    """Outcome of reconciling one table."""

    table: str
    created: bool = False
    changes: ChangeSet = Field(default_factory=ChangeSet)
    foreign_keys_dropped: list[str] = Field(default_factory=list)
    foreign_keys_added: list[str] = Field(default_factory=list)
    join_tables_created: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def has_changes(self) -> bool:
        """True if any DDL was executed for this table."""
        return bool(
            self.created
            or not self.changes.is_empty
            or self.foreign_keys_dropped
            or self.foreign_keys_added
            or self.join_tables_created
        )


class ReconcileResult(BaseModel):
    """Result of a full reconciliation pass.

    Example:
        >>> result = ReconcileResult(success=True)
        >>> result.format_report()
        'Schema up to date'
    """

    success: bool = False
    skipped: bool = False
    tables: dict[str, TableResult] = Field(default_factory=dict)
    dropped_tables: list[str] = Field(default_factory=list)
    configuration_errors: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def changed_tables(self) -> list[str]:
        """Names of tables that received DDL during the pass."""
        return [name for name, t in self.tables.items() if t.has_changes]

    def format_report(self) -> str:
        """Format the result as a human-readable report."""
        if self.skipped:
            return "Reconciliation skipped: database unavailable"

        if not self.changed_tables and not self.dropped_tables and not self.errors:
            lines = ["Schema up to date"]
        else:
            lines = ["Schema reconciled:" if self.success else "Schema reconciliation failed:"]

        for name in self.changed_tables:
            table = self.tables[name]
            summary = []
            if table.created:
                summary.append("created")
            if table.changes.change_count:
                summary.append(f"{table.changes.change_count} changes")
            if table.foreign_keys_added or table.foreign_keys_dropped:
                fk_count = len(table.foreign_keys_added) + len(table.foreign_keys_dropped)
                summary.append(f"{fk_count} foreign keys")
            if table.join_tables_created:
                summary.append(f"join tables: {', '.join(table.join_tables_created)}")
            lines.append(f"    - {name}: {', '.join(summary)}")

        if self.dropped_tables:
            lines.append(f"\n  Dropped tables ({len(self.dropped_tables)}):")
            for name in self.dropped_tables:
                lines.append(f"    - {name}")

        if self.errors:
            lines.append(f"\n  Errors ({len(self.errors)}):")
            for error in self.errors:
                lines.append(f"    - {error}")

        if self.configuration_errors:
            lines.append(
                f"\n  Configuration warnings: {'; '.join(self.configuration_errors)}"
            )

        return "\n".join(lines)
