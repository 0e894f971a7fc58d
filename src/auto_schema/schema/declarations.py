"""Record type declarations.

A ``RecordType`` is the result of field registration for one record type:
its columns, explicit index requests, relationships, and place in an
inheritance hierarchy.  The reconciler consumes a list of these.

Usage:
    from auto_schema.schema.declarations import RecordType

    post = RecordType(name="Post")
    post.field("title", type="string", limit=100, null=False, index=True)
    post.field("body", type="text")
    post.timestamps()
    post.belongs_to("author")
    post.has_and_belongs_to_many("tags")
"""

import re
from typing import Any

from pydantic import BaseModel, Field, model_validator

from auto_schema.schema.models import ColumnSpec, IndexDecl, RelationshipDescriptor


def underscore(name: str) -> str:
    """Convert a CamelCase record name to snake_case.

    Example:
        >>> underscore("BlogPost")
        'blog_post'
    """
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
    return name.replace("-", "_").lower()


class RecordType(BaseModel):
    """Declared schema of one record type.

    ``table_name`` defaults to the snake_case name plus ``s``.  Subtypes set
    ``parent`` to the parent record type's name; subtypes of a concrete parent
    share its table.
    """

    name: str
    table_name: str = ""
    primary_key: str = "id"
    columns: dict[str, ColumnSpec] = Field(default_factory=dict)
    indexes: list[IndexDecl] = Field(default_factory=list)
    relationships: list[RelationshipDescriptor] = Field(default_factory=list)
    parent: str | None = None
    abstract: bool = False
    inheritance_column: str = "type"

    @model_validator(mode="before")
    @classmethod
    def _inject_column_names(cls, data: Any) -> Any:
        # Schema files key columns by name: {"title": {"type": "string"}}
        if isinstance(data, dict) and isinstance(data.get("columns"), dict):
            columns = {}
            for col_name, spec in data["columns"].items():
                if isinstance(spec, dict):
                    spec = {"name": col_name, **spec}
                columns[col_name] = spec
            data = {**data, "columns": columns}
        return data

    @model_validator(mode="after")
    def _default_table_name(self) -> "RecordType":
        if not self.table_name:
            self.table_name = f"{underscore(self.name)}s"
        return self

    @property
    def snake_name(self) -> str:
        """snake_case form of the record name."""
        return underscore(self.name)

    # ------------------------------------------------------------------
    # Registration helpers
    # ------------------------------------------------------------------

    def field(
        self,
        *names: str,
        type: str = "string",
        index: bool | str | list[str] | dict[str, Any] | None = None,
        fake: bool = False,
        **options: Any,
    ) -> "RecordType":
        """Register one or more columns.

        Args:
            *names: Column names.
            type: Logical type (``"string"``, ``"integer"``...) or a custom
                SQL type literal such as ``"ENUM('A','B')"``.
            index: ``True`` for a single-column index, a dict of index
                options (``unique``, ``foreign``, ``name``, ``column``), or a
                column name / list of names to index instead.
            fake: Keep the column in memory only, never in the database.
            **options: ``limit``, ``precision``, ``scale``, ``null``,
                ``default``.

        Returns:
            self, so registrations can be chained.
        """
        for column_name in names:
            self.columns[column_name] = ColumnSpec(
                name=column_name, type=type, derived_only=fake, **options
            )
            if fake:
                continue

            if isinstance(index, dict):
                index_options = dict(index)
                target = index_options.pop("column", column_name)
                self.index(target, **index_options)
            elif index is True:
                self.index(column_name)
            elif isinstance(index, (str, list)):
                self.index(index)
        return self

    def timestamps(self) -> "RecordType":
        """Register ``created_at`` and ``updated_at`` (datetime, not null)."""
        return self.field("created_at", "updated_at", type="datetime", null=False)

    def index(
        self,
        columns: str | list[str],
        unique: bool = False,
        foreign: bool | None = None,
        name: str | None = None,
    ) -> "RecordType":
        """Request an index over one or more columns."""
        self.indexes.append(
            IndexDecl(columns=columns, unique=unique, foreign=foreign, name=name)
        )
        return self

    def belongs_to(self, name: str, **options: Any) -> "RecordType":
        """Declare a belongs-to relationship."""
        self.relationships.append(
            RelationshipDescriptor(kind="belongs_to", name=name, **options)
        )
        return self

    def has_and_belongs_to_many(self, name: str, **options: Any) -> "RecordType":
        """Declare a many-to-many relationship through a join table."""
        self.relationships.append(
            RelationshipDescriptor(kind="many_to_many", name=name, **options)
        )
        return self
