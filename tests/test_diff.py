"""Tests for the schema diff engine and foreign-key planning."""

from auto_schema.adapters.memory import MemorySchemaAdapter
from auto_schema.naming import default_foreign_key_name
from auto_schema.schema.diff import diff_table, plan_foreign_keys
from auto_schema.schema.models import (
    ColumnSpec,
    ForeignKeySpec,
    IndexSpec,
    RelationshipDescriptor,
    TableSchema,
)


def _posts(*columns: ColumnSpec, indexes: list[IndexSpec] | None = None) -> TableSchema:
    all_columns = [ColumnSpec(name="id", type="primary_key", null=False), *columns]
    return TableSchema(
        name="posts",
        columns={c.name: c for c in all_columns},
        indexes={i.name: i for i in indexes or []},
    )


def _live(*columns: ColumnSpec, indexes: list[IndexSpec] | None = None) -> TableSchema:
    all_columns = [
        ColumnSpec(name="id", type="integer", null=False, primary_key=True),
        *columns,
    ]
    return TableSchema(
        name="posts",
        columns={c.name: c for c in all_columns},
        indexes={i.name: i for i in indexes or []},
    )


class TestColumnDiff:
    """Test column set operations."""

    def setup_method(self) -> None:
        self.client = MemorySchemaAdapter()

    def test_matching_schemas_empty(self) -> None:
        """Identical columns produce no changes."""
        desired = _posts(ColumnSpec(name="title", limit=255))
        actual = _live(ColumnSpec(name="title", limit=255, null=True))
        assert diff_table(desired, actual, self.client).is_empty

    def test_column_to_add(self) -> None:
        """Desired-only columns are added."""
        desired = _posts(ColumnSpec(name="title", limit=255))
        actual = _live()
        changes = diff_table(desired, actual, self.client)
        assert [c.name for c in changes.columns_to_add] == ["title"]

    def test_column_to_drop(self) -> None:
        """Actual-only columns are dropped."""
        desired = _posts()
        actual = _live(ColumnSpec(name="legacy", null=True))
        changes = diff_table(desired, actual, self.client)
        assert changes.columns_to_drop == ["legacy"]

    def test_primary_key_never_dropped_or_altered(self) -> None:
        """The primary key is excluded from drop and alter."""
        desired = TableSchema(name="posts", primary_key="id")
        actual = _live()
        changes = diff_table(desired, actual, self.client)
        assert changes.columns_to_drop == []
        assert changes.columns_to_alter == []

    def test_column_to_alter(self) -> None:
        """A changed limit produces an alter with the new limit."""
        desired = _posts(ColumnSpec(name="title", limit=100))
        actual = _live(ColumnSpec(name="title", limit=50, null=True))
        changes = diff_table(desired, actual, self.client)
        assert len(changes.columns_to_alter) == 1
        alter = changes.columns_to_alter[0]
        assert alter.name == "title"
        assert alter.type == "string"
        assert alter.attributes["limit"] == 100

    def test_type_change_alone_is_alter(self) -> None:
        """A type change with equal attributes is still an alter."""
        desired = _posts(ColumnSpec(name="count", type="bigint"))
        actual = _live(ColumnSpec(name="count", type="integer", null=True))
        changes = diff_table(desired, actual, self.client)
        assert [a.name for a in changes.columns_to_alter] == ["count"]
        assert changes.columns_to_alter[0].type == "bigint"

    def test_derived_only_columns_ignored(self) -> None:
        """Derived-only columns are neither added nor kept."""
        desired = _posts(ColumnSpec(name="score", type="integer", derived_only=True))
        actual = _live()
        assert diff_table(desired, actual, self.client).is_empty

    def test_rename_is_drop_plus_add(self) -> None:
        """Columns are matched by name only."""
        desired = _posts(ColumnSpec(name="headline", limit=255))
        actual = _live(ColumnSpec(name="title", limit=255, null=True))
        changes = diff_table(desired, actual, self.client)
        assert changes.columns_to_drop == ["title"]
        assert [c.name for c in changes.columns_to_add] == ["headline"]


class TestIndexDiff:
    """Test index set operations."""

    def setup_method(self) -> None:
        self.client = MemorySchemaAdapter()

    def test_index_to_add_and_drop(self) -> None:
        """Indexes are added and dropped by name."""
        title = ColumnSpec(name="title", limit=255)
        desired = _posts(title, indexes=[IndexSpec(name="index_posts_on_title", columns=["title"])])
        actual = _live(
            title.model_copy(update={"null": True}),
            indexes=[IndexSpec(name="old_index", columns=["title"])],
        )
        changes = diff_table(desired, actual, self.client)
        assert [i.name for i in changes.indexes_to_add] == ["index_posts_on_title"]
        assert changes.indexes_to_drop == ["old_index"]

    def test_same_name_different_columns_not_detected(self) -> None:
        """Index comparison is name-based."""
        desired = _posts(indexes=[IndexSpec(name="by_title", columns=["title", "id"])])
        actual = _live(indexes=[IndexSpec(name="by_title", columns=["title"])])
        changes = diff_table(desired, actual, self.client)
        assert changes.indexes_to_add == []
        assert changes.indexes_to_drop == []


class TestPlanForeignKeys:
    """Test plan_foreign_keys() from index markers."""

    def _desired(self, foreign: bool | None) -> TableSchema:
        return TableSchema(
            name="posts",
            columns={"author_id": ColumnSpec(name="author_id", type="integer")},
            indexes={
                "index_posts_on_author_id": IndexSpec(
                    name="index_posts_on_author_id", columns=["author_id"], foreign=foreign
                )
            },
            relationships=[
                RelationshipDescriptor(kind="belongs_to", name="author", target_table="authors")
            ],
        )

    def test_foreign_true_adds_missing_key(self) -> None:
        """foreign=True with no existing key plans an add."""
        namer = lambda table, column: default_foreign_key_name(table, column, 63)
        to_drop, to_add = plan_foreign_keys(self._desired(True), [], namer)
        assert to_drop == []
        assert to_add == [
            ForeignKeySpec(
                table="posts", column="author_id", to_table="authors", name="fk_posts_author_id"
            )
        ]

    def test_foreign_true_existing_key_kept(self) -> None:
        """An existing key is not added again."""
        existing = [ForeignKeySpec(table="posts", column="author_id", to_table="authors", name="fk")]
        to_drop, to_add = plan_foreign_keys(self._desired(True), existing)
        assert (to_drop, to_add) == ([], [])

    def test_foreign_false_drops_existing_key(self) -> None:
        """foreign=False removes an existing key."""
        existing = [ForeignKeySpec(table="posts", column="author_id", to_table="authors", name="fk")]
        to_drop, to_add = plan_foreign_keys(self._desired(False), existing)
        assert [fk.name for fk in to_drop] == ["fk"]
        assert to_add == []

    def test_foreign_none_leaves_keys_alone(self) -> None:
        """Unmarked indexes neither add nor drop keys."""
        existing = [ForeignKeySpec(table="posts", column="author_id", to_table="authors", name="fk")]
        assert plan_foreign_keys(self._desired(None), existing) == ([], [])
        assert plan_foreign_keys(self._desired(None), []) == ([], [])
