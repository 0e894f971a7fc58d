"""Desired schema builder.

Turns record type declarations plus their relationships into one fully
derived ``TableSchema`` per table: declared columns and indexes, foreign-key
columns and indexes for belongs-to relationships, polymorphic type columns,
single-table-inheritance discriminators, and pending join tables for
many-to-many relationships.

Explicit declarations always win: a derived column or index is only added
when nothing with that name has been declared.

Usage:
    from auto_schema.schema.builder import SchemaBuilder

    builder = SchemaBuilder(client, client.capabilities(), record_types)
    for table_name, schema in builder.build_all().items():
        print(table_name, list(schema.columns))
"""

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from auto_schema.errors import AmbiguousAssociationTargetError
from auto_schema.naming import truncate_identifier
from auto_schema.schema.declarations import RecordType
from auto_schema.schema.models import (
    ColumnSpec,
    IndexSpec,
    RelationshipDescriptor,
    TableSchema,
)

if TYPE_CHECKING:
    from auto_schema.adapters.base import AdapterCapabilities, SchemaClient

logger = logging.getLogger(__name__)

# Limits databases apply when none is declared
DEFAULT_LIMITS = {"string": 255}


class SchemaBuilder:
    """Builds desired table schemas for a set of record types.

    Relationship configuration errors do not stop the build: each one is
    logged, recorded in ``configuration_errors``, and the relationship's
    derived fields are skipped.

    Args:
        client: Schema client, used to derive index names.
        capabilities: Adapter capabilities (identifier length limit).
        record_types: Every declared record type, in declaration order.
    """

    def __init__(
        self,
        client: "SchemaClient",
        capabilities: "AdapterCapabilities",
        record_types: Sequence[RecordType],
    ) -> None:
        self._client = client
        self._capabilities = capabilities
        self._record_types: dict[str, RecordType] = {rt.name: rt for rt in record_types}
        self.configuration_errors: list[AmbiguousAssociationTargetError] = []

    # ------------------------------------------------------------------
    # Record type lookups
    # ------------------------------------------------------------------

    def _parent_of(self, record_type: RecordType) -> RecordType | None:
        if record_type.parent is None:
            return None
        return self._record_types.get(record_type.parent)

    def table_owner(self, record_type: RecordType) -> RecordType | None:
        """Return the record type whose table *record_type* is stored in.

        Subtypes of a concrete parent share the parent's table.  Abstract
        record types own no table and return None.
        """
        if record_type.abstract:
            return None
        owner = record_type
        parent = self._parent_of(owner)
        while parent is not None and not parent.abstract:
            owner = parent
            parent = self._parent_of(owner)
        return owner

    def table_name_of(self, record_type: RecordType) -> str | None:
        """Table that stores *record_type*, or None for abstract types."""
        owner = self.table_owner(record_type)
        return owner.table_name if owner is not None else None

    def owners(self) -> list[RecordType]:
        """Record types that own a table, in declaration order."""
        return [
            rt for rt in self._record_types.values() if self.table_owner(rt) is rt
        ]

    def _subtypes_sharing(self, owner: RecordType) -> list[RecordType]:
        return [
            rt
            for rt in self._record_types.values()
            if rt is not owner and self.table_owner(rt) is owner
        ]

    def _record_for_table(self, table_name: str) -> RecordType | None:
        for record_type in self.owners():
            if record_type.table_name == table_name:
                return record_type
        return None

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def build_all(self) -> dict[str, TableSchema]:
        """Build every table owned by a declared record type."""
        return {owner.table_name: self.build(owner) for owner in self.owners()}

    def build(self, record_type: RecordType) -> TableSchema:
        """Build the fully derived desired schema of *record_type*'s table.

        Args:
            record_type: Any concrete record type; subtypes resolve to the
                table they share with their parent.

        Returns:
            ``TableSchema`` with declared and derived columns, indexes,
            resolved relationships, and pending join tables.
        """
        owner = self.table_owner(record_type)
        if owner is None:
            raise ValueError(f"Record type '{record_type.name}' is abstract and has no table")

        schema = self._seed(owner, owner.table_name)
        subtypes = self._subtypes_sharing(owner)

        # Subtype schemas are copies of the parent's with their own fields on top
        for subtype in subtypes:
            schema = schema.model_copy(deep=True)
            self._layer(schema, subtype)

        declared = [(owner, rel) for rel in self._relationships_of(owner)]
        for subtype in subtypes:
            declared.extend((subtype, rel) for rel in subtype.relationships)

        schema.relationships = []
        for declaring, relationship in declared:
            try:
                self._derive_relationship(schema, declaring, relationship)
            except AmbiguousAssociationTargetError as e:
                logger.warning(f"[auto-schema] {e} -- skipping derived fields")
                self.configuration_errors.append(e)

        if subtypes:
            column = owner.inheritance_column
            self._ensure_column(schema, ColumnSpec(name=column, type="string"))
            self._add_index(schema, [column])

        return schema

    def _relationships_of(self, record_type: RecordType) -> list[RelationshipDescriptor]:
        parent = self._parent_of(record_type)
        inherited = (
            self._relationships_of(parent)
            if parent is not None and parent.abstract
            else []
        )
        return inherited + list(record_type.relationships)

    def _seed(self, record_type: RecordType, table_name: str) -> TableSchema:
        parent = self._parent_of(record_type)
        if parent is not None and parent.abstract:
            # Abstract ancestors contribute their registrations to each child table
            schema = self._seed(parent, table_name).model_copy(deep=True)
            schema.primary_key = record_type.primary_key
        else:
            schema = TableSchema(name=table_name, primary_key=record_type.primary_key)

        pk = record_type.primary_key
        if pk not in schema.columns:
            schema.columns = {
                pk: ColumnSpec(name=pk, type="primary_key", null=False),
                **schema.columns,
            }

        self._layer(schema, record_type)
        return schema

    def _layer(self, schema: TableSchema, record_type: RecordType) -> None:
        for name, column in record_type.columns.items():
            if name == schema.primary_key:
                continue
            schema.columns[name] = self._normalize_column(column)
        for decl in record_type.indexes:
            self._add_index(schema, decl.columns, decl.unique, decl.foreign, decl.name)

    def _normalize_column(self, column: ColumnSpec) -> ColumnSpec:
        column = column.model_copy()
        if column.limit is None:
            if column.precision is not None:
                column.limit = column.precision
            elif column.type in DEFAULT_LIMITS:
                column.limit = DEFAULT_LIMITS[column.type]
        return column

    def _ensure_column(self, schema: TableSchema, column: ColumnSpec) -> None:
        if column.name not in schema.columns:
            schema.columns[column.name] = self._normalize_column(column)

    def _add_index(
        self,
        schema: TableSchema,
        columns: list[str],
        unique: bool = False,
        foreign: bool | None = None,
        name: str | None = None,
    ) -> str:
        index_name = name or self._client.derive_index_name(schema.name, columns)
        if index_name not in schema.indexes:
            schema.indexes[index_name] = IndexSpec(
                name=index_name, columns=columns, unique=unique, foreign=foreign
            )
        return index_name

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def _derive_relationship(
        self,
        schema: TableSchema,
        declaring: RecordType,
        relationship: RelationshipDescriptor,
    ) -> None:
        if relationship.kind == "belongs_to":
            self._derive_belongs_to(schema, relationship)
        else:
            self._derive_many_to_many(schema, declaring, relationship)

    def _derive_belongs_to(
        self, schema: TableSchema, relationship: RelationshipDescriptor
    ) -> None:
        foreign_key = relationship.foreign_key_column

        if relationship.polymorphic:
            if relationship.foreign:
                raise AmbiguousAssociationTargetError(
                    schema.name,
                    relationship.name,
                    "a polymorphic relationship has no single table to reference",
                )
            type_key = relationship.type_column
            self._ensure_column(schema, ColumnSpec(name=foreign_key, type="integer"))
            self._ensure_column(schema, ColumnSpec(name=type_key, type="string"))
            self._add_index(schema, [foreign_key, type_key])
            schema.relationships.append(relationship)
            return

        target_table = relationship.target_table
        if target_table is None:
            for record_type in self._record_types.values():
                if record_type.snake_name == relationship.name:
                    target_table = self.table_name_of(record_type)
                    break
        if target_table is None:
            raise AmbiguousAssociationTargetError(
                schema.name,
                relationship.name,
                "no target_table given and no record type matches the name",
            )

        foreign = relationship.foreign if relationship.foreign is not None else True
        self._ensure_column(schema, ColumnSpec(name=foreign_key, type="integer"))
        self._add_index(schema, [foreign_key], foreign=foreign)
        schema.relationships.append(
            relationship.model_copy(update={"target_table": target_table})
        )

    def _derive_many_to_many(
        self,
        schema: TableSchema,
        declaring: RecordType,
        relationship: RelationshipDescriptor,
    ) -> None:
        target_table = relationship.target_table
        target_record = None
        if target_table is None:
            target_record = self._record_for_table(relationship.name)
            if target_record is None:
                raise AmbiguousAssociationTargetError(
                    schema.name,
                    relationship.name,
                    "no target_table given and no record type owns that table",
                )
            target_table = target_record.table_name
        else:
            target_record = self._record_for_table(target_table)

        join_name = relationship.join_table or "_".join(sorted([schema.name, target_table]))

        foreign_key = relationship.foreign_key or f"{declaring.snake_name}_id"
        if relationship.association_foreign_key:
            association_foreign_key = relationship.association_foreign_key
        elif target_record is not None:
            association_foreign_key = f"{target_record.snake_name}_id"
        else:
            # Naive singular: "categories" would give "categorie_id"
            association_foreign_key = f"{relationship.name.removesuffix('s')}_id"

        if foreign_key == association_foreign_key:
            raise AmbiguousAssociationTargetError(
                schema.name,
                relationship.name,
                f"both join columns would be named '{foreign_key}'; "
                "declare foreign_key/association_foreign_key",
            )

        columns = [foreign_key, association_foreign_key]
        index_name = truncate_identifier(
            self._client.derive_index_name(join_name, columns),
            self._capabilities.max_identifier_length,
        )
        schema.join_tables[join_name] = TableSchema(
            name=join_name,
            primary_key=None,
            columns={
                foreign_key: ColumnSpec(name=foreign_key, type="integer"),
                association_foreign_key: ColumnSpec(
                    name=association_foreign_key, type="integer"
                ),
            },
            indexes={
                index_name: IndexSpec(name=index_name, columns=columns, unique=True)
            },
        )
        schema.relationships.append(
            relationship.model_copy(
                update={"target_table": target_table, "join_table": join_name}
            )
        )
