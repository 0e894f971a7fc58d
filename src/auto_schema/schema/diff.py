"""Schema diff engine using set operations.

Compares one desired ``TableSchema`` against the introspected one and
produces a ``ChangeSet``.  Columns and indexes are matched by name only, so a
rename shows up as a drop plus an add, and an index whose columns changed
under the same name is not detected.

Foreign keys are planned separately (``plan_foreign_keys``) because they are
checked against the database's foreign-key catalog, not its index catalog.

Usage:
    from auto_schema.schema.diff import diff_table

    changes = diff_table(desired, actual, client)
    for name in changes.columns_to_drop:
        print(f"drop {name}")
"""

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from auto_schema.schema.comparator import attributes_changed, type_changed
from auto_schema.schema.models import (
    ChangeSet,
    ColumnAlter,
    ForeignKeySpec,
    TableSchema,
)

if TYPE_CHECKING:
    from auto_schema.adapters.base import SchemaClient


def _primary_keys(desired: TableSchema, actual: TableSchema) -> set[str]:
    keys = {pk for pk in (desired.primary_key, actual.primary_key) if pk}
    keys.update(name for name, col in actual.columns.items() if col.primary_key)
    return keys


def diff_table(
    desired: TableSchema,
    actual: TableSchema,
    client: "SchemaClient",
    compare_limit: bool = True,
) -> ChangeSet:
    """Compute the changes that turn *actual* into *desired*.

    Args:
        desired: Fully derived desired schema.
        actual: Schema introspected from the database.
        client: Schema client, used to render SQL type strings.
        compare_limit: Forwarded to ``attributes_changed``.

    Returns:
        ``ChangeSet`` with:

        - ``columns_to_drop``: actual-only column names (primary key excluded)
        - ``columns_to_add``: desired-only columns
        - ``columns_to_alter``: shared columns whose rendered type or tracked
          attributes differ (primary key excluded)
        - ``indexes_to_drop``: actual-only index names
        - ``indexes_to_add``: desired-only indexes
    """
    primary_keys = _primary_keys(desired, actual)

    desired_columns = desired.persisted_columns
    actual_columns = actual.columns

    desired_names: set[str] = set(desired_columns)
    actual_names: set[str] = set(actual_columns)

    changes = ChangeSet()

    # Columns in actual but not in desired
    changes.columns_to_drop = [
        name
        for name in actual_columns
        if name not in desired_names and name not in primary_keys
    ]

    # Columns in desired but not in actual
    changes.columns_to_add = [
        column for name, column in desired_columns.items() if name not in actual_names
    ]

    # Columns in both: compare rendered type and tracked attributes
    for name, column in desired_columns.items():
        if name not in actual_names or name in primary_keys:
            continue
        live = actual_columns[name]
        changed_type = type_changed(column, live, client, table=desired.name)
        changed_attrs, attributes = attributes_changed(
            column, live, compare_limit=compare_limit, table=desired.name
        )
        if changed_type or changed_attrs:
            changes.columns_to_alter.append(
                ColumnAlter(name=name, type=column.type, attributes=attributes)
            )

    changes.indexes_to_drop = [
        name for name in actual.indexes if name not in desired.indexes
    ]
    changes.indexes_to_add = [
        index for name, index in desired.indexes.items() if name not in actual.indexes
    ]

    return changes


def plan_foreign_keys(
    desired: TableSchema,
    existing: Sequence[ForeignKeySpec],
    foreign_key_name: Callable[[str, str], str] | None = None,
) -> tuple[list[ForeignKeySpec], list[ForeignKeySpec]]:
    """Plan foreign-key drops and adds from the desired indexes' markers.

    Args:
        desired: Fully derived desired schema (relationships resolved).
        existing: Foreign keys currently declared on the table.
        foreign_key_name: Optional ``(table, column) -> name`` used to name
            new constraints.

    Returns:
        Tuple of (to_drop, to_add):

        - to_drop: existing foreign keys on the first column of an index
          marked ``foreign=False``
        - to_add: foreign keys for indexes marked ``foreign=True`` whose
          column has no foreign key yet; the referenced table comes from the
          relationship with that foreign-key column
    """
    by_column = {fk.column: fk for fk in existing}
    targets = {
        rel.foreign_key_column: rel.target_table
        for rel in desired.relationships
        if rel.kind == "belongs_to" and rel.target_table
    }

    to_drop: list[ForeignKeySpec] = []
    to_add: list[ForeignKeySpec] = []
    planned: set[str] = set()

    for index in desired.indexes.values():
        column = index.columns[0]
        if index.foreign is False and column in by_column:
            to_drop.append(by_column.pop(column))
        elif index.foreign and column not in by_column and column not in planned:
            to_table = targets.get(column)
            if to_table is None:
                continue
            name = foreign_key_name(desired.name, column) if foreign_key_name else None
            to_add.append(
                ForeignKeySpec(table=desired.name, column=column, to_table=to_table, name=name)
            )
            planned.add(column)

    return to_drop, to_add
