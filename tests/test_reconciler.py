"""Tests for the reconciler against the in-memory schema client.

Covers the per-table state machine, apply order, failure isolation, the
orphan sweep, and the convergence properties: a second pass after a
successful one is a no-op, and a declaration change is applied in one pass.
"""

import pytest

from auto_schema.adapters.base import AdapterCapabilities
from auto_schema.adapters.memory import MemorySchemaAdapter
from auto_schema.schema.declarations import RecordType
from auto_schema.schema.models import ColumnSpec
from auto_schema.schema.reconciler import Reconciler, topological_sort


def _blog(title_limit: int = 50, author_foreign: bool | None = None) -> list[RecordType]:
    """Post belongs to Author; Post is declared first on purpose."""
    post = (
        RecordType(name="Post")
        .field("title", limit=title_limit, index=True)
        .field("body", type="text")
        .timestamps()
    )
    if author_foreign is None:
        post.belongs_to("author")
    else:
        post.belongs_to("author", foreign=author_foreign)
    author = RecordType(name="Author").field("name", limit=100, null=False)
    return [post, author]


@pytest.fixture
def adapter() -> MemorySchemaAdapter:
    return MemorySchemaAdapter()


# ============================================================================
# Ordering helper
# ============================================================================


class TestTopologicalSort:
    """Test topological_sort() over belongs-to dependencies."""

    def test_parents_first(self) -> None:
        """Referenced tables come before referencing tables."""
        order = topological_sort({"posts": {"authors"}}, ["posts", "authors"])
        assert order == ["authors", "posts"]

    def test_unrelated_tables_keep_input_order(self) -> None:
        """Tables without dependencies keep their order."""
        assert topological_sort({}, ["b", "a", "c"]) == ["b", "a", "c"]

    def test_cycle_does_not_loop(self) -> None:
        """Cycles are broken and every table appears once."""
        order = topological_sort({"a": {"b"}, "b": {"a"}}, ["a", "b"])
        assert sorted(order) == ["a", "b"]

    def test_unknown_dependencies_ignored(self) -> None:
        """Dependencies outside the table list are ignored."""
        assert topological_sort({"posts": {"users"}}, ["posts"]) == ["posts"]


# ============================================================================
# Fresh database
# ============================================================================


class TestFreshDatabase:
    """Test a pass against an empty database."""

    def test_creates_all_tables(self, adapter: MemorySchemaAdapter) -> None:
        """Every declared table is created with its columns."""
        result = Reconciler(adapter).reconcile_all(_blog())

        assert result.success is True
        assert set(adapter.tables) == {"posts", "authors"}
        assert set(adapter.tables["posts"].columns) == {
            "id", "title", "body", "created_at", "updated_at", "author_id",
        }
        assert result.tables["posts"].created is True

    def test_parent_created_before_child(self, adapter: MemorySchemaAdapter) -> None:
        """authors is created before posts despite declaration order."""
        Reconciler(adapter).reconcile_all(_blog())
        created = [t for op, t, _ in adapter.calls if op == "create_table"]
        assert created == ["authors", "posts"]

    def test_indexes_and_foreign_keys_added(self, adapter: MemorySchemaAdapter) -> None:
        """Declared and derived indexes plus the foreign key are created."""
        Reconciler(adapter).reconcile_all(_blog())
        posts = adapter.tables["posts"]
        assert set(posts.indexes) == {"index_posts_on_title", "index_posts_on_author_id"}
        assert list(posts.foreign_keys) == ["fk_posts_author_id"]
        assert posts.foreign_keys["fk_posts_author_id"].to_table == "authors"

    def test_primary_key_recorded(self, adapter: MemorySchemaAdapter) -> None:
        """The primary key column is created as such."""
        Reconciler(adapter).reconcile_all(_blog())
        assert adapter.tables["posts"].primary_key == "id"
        assert adapter.tables["posts"].columns["id"].primary_key is True

    def test_column_cache_reloaded(self, adapter: MemorySchemaAdapter) -> None:
        """Each reconciled table gets a column cache reload."""
        Reconciler(adapter).reconcile_all(_blog())
        assert set(adapter.reloaded) == {"posts", "authors"}


# ============================================================================
# Convergence
# ============================================================================


class TestConvergence:
    """Test idempotence and one-pass convergence."""

    def test_second_pass_is_noop(self, adapter: MemorySchemaAdapter) -> None:
        """A second pass issues no DDL."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())
        calls_after_first = len(adapter.calls)

        result = reconciler.reconcile_all(_blog())

        assert len(adapter.calls) == calls_after_first
        assert result.success is True
        assert result.changed_tables == []
        assert result.format_report() == "Schema up to date"

    def test_limit_change_applied_in_one_pass(self, adapter: MemorySchemaAdapter) -> None:
        """limit 50 -> 100 is one change_column, then nothing."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog(title_limit=50))
        before = len(adapter.calls)

        reconciler.reconcile_all(_blog(title_limit=100))
        new_calls = adapter.calls[before:]
        assert new_calls == [
            ("change_column", "posts", ("title", "string", {"limit": 100, "precision": None, "scale": None}))
        ]
        assert adapter.tables["posts"].columns["title"].limit == 100

        after = len(adapter.calls)
        reconciler.reconcile_all(_blog(title_limit=100))
        assert len(adapter.calls) == after

    def test_precision_and_scale_altered_together(self, adapter: MemorySchemaAdapter) -> None:
        """A scale-only change carries precision too."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(
            [RecordType(name="Product").field("price", type="decimal", precision=10, scale=2)]
        )
        before = len(adapter.calls)

        reconciler.reconcile_all(
            [RecordType(name="Product").field("price", type="decimal", precision=10, scale=3)]
        )
        assert adapter.calls[before:] == [
            ("change_column", "products", ("price", "decimal", {"precision": 10, "scale": 3}))
        ]

    def test_new_and_removed_columns(self, adapter: MemorySchemaAdapter) -> None:
        """Added declarations become columns; removed ones are dropped."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())

        records = _blog()
        records[0].columns.pop("body")
        records[0].field("summary", limit=200)
        reconciler.reconcile_all(records)

        columns = adapter.tables["posts"].columns
        assert "summary" in columns
        assert "body" not in columns

    def test_drop_before_add(self, adapter: MemorySchemaAdapter) -> None:
        """Column drops run before column adds."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())
        before = len(adapter.calls)

        records = _blog()
        records[0].columns.pop("body")
        records[0].field("summary", limit=200)
        reconciler.reconcile_all(records)

        assert adapter.operations()[before:] == ["remove_column", "add_column"]

    def test_index_on_dropped_column_not_dropped_twice(self, adapter: MemorySchemaAdapter) -> None:
        """An index removed with its column is not dropped again."""
        adapter.create_table(
            "posts",
            [
                ColumnSpec(name="id", type="primary_key"),
                ColumnSpec(name="legacy", type="string", limit=255),
            ],
            primary_key="id",
        )
        adapter.add_index("posts", ["legacy"], name="index_posts_on_legacy")

        result = Reconciler(adapter).reconcile_all([RecordType(name="Post")])

        assert result.success is True
        assert "remove_index" not in adapter.operations("posts")
        assert adapter.tables["posts"].indexes == {}


# ============================================================================
# Derived structures
# ============================================================================


class TestDerivedStructures:
    """Test polymorphic columns, join tables and inheritance end to end."""

    def test_polymorphic_columns_without_foreign_key(self, adapter: MemorySchemaAdapter) -> None:
        """owner_id/owner_type get one composite index and no foreign key."""
        Reconciler(adapter).reconcile_all(
            [RecordType(name="Comment").belongs_to("owner", polymorphic=True)]
        )
        comments = adapter.tables["comments"]
        assert {"owner_id", "owner_type"} <= set(comments.columns)
        assert list(comments.indexes) == ["index_comments_on_owner_id_and_owner_type"]
        assert comments.foreign_keys == {}

    def test_join_table_created_once(self, adapter: MemorySchemaAdapter) -> None:
        """cats_dogs is created with a unique index and survives the sweep."""
        records = [
            RecordType(name="Cat").has_and_belongs_to_many("dogs"),
            RecordType(name="Dog").has_and_belongs_to_many("cats"),
        ]
        reconciler = Reconciler(adapter)
        result = reconciler.reconcile_all(records)

        assert set(adapter.tables) == {"cats", "dogs", "cats_dogs"}
        join = adapter.tables["cats_dogs"]
        assert join.primary_key is None
        assert set(join.columns) == {"cat_id", "dog_id"}
        index = join.indexes["index_cats_dogs_on_cat_id_and_dog_id"]
        assert index.unique is True
        assert result.tables["cats"].join_tables_created == ["cats_dogs"]
        assert result.tables["dogs"].join_tables_created == []
        assert result.dropped_tables == []

        before = len(adapter.calls)
        reconciler.reconcile_all(records)
        assert len(adapter.calls) == before

    def test_single_table_inheritance(self, adapter: MemorySchemaAdapter) -> None:
        """Subtype columns and the discriminator land on the parent table."""
        Reconciler(adapter).reconcile_all(
            [
                RecordType(name="Animal").field("name"),
                RecordType(name="Cat", parent="Animal").field("lives", type="integer"),
            ]
        )
        assert list(adapter.tables) == ["animals"]
        assert {"name", "lives", "type"} <= set(adapter.tables["animals"].columns)

    def test_derived_only_column_never_created(self, adapter: MemorySchemaAdapter) -> None:
        """Fake fields never reach the database."""
        Reconciler(adapter).reconcile_all(
            [RecordType(name="Post").field("score", type="integer", fake=True)]
        )
        assert "score" not in adapter.tables["posts"].columns

    def test_configuration_error_does_not_fail_pass(self, adapter: MemorySchemaAdapter) -> None:
        """An unresolvable relationship is reported, the rest applied."""
        result = Reconciler(adapter).reconcile_all(
            [RecordType(name="Post").field("title").belongs_to("ghost")]
        )
        assert result.success is True
        assert len(result.configuration_errors) == 1
        assert "ghost" in result.configuration_errors[0]
        assert "ghost_id" not in adapter.tables["posts"].columns


# ============================================================================
# Foreign keys
# ============================================================================


class TestForeignKeys:
    """Test foreign-key maintenance."""

    def test_suppression_drops_key_first(self, adapter: MemorySchemaAdapter) -> None:
        """foreign=False removes the key before any other DDL on the table."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())
        assert "fk_posts_author_id" in adapter.tables["posts"].foreign_keys
        before = len(adapter.calls)

        records = _blog(title_limit=80, author_foreign=False)
        result = reconciler.reconcile_all(records)

        posts_ops = [op for op, t, _ in adapter.calls[before:] if t == "posts"]
        assert posts_ops[0] == "remove_foreign_key"
        assert "change_column" in posts_ops
        assert adapter.tables["posts"].foreign_keys == {}
        assert result.tables["posts"].foreign_keys_dropped == ["fk_posts_author_id"]

        before = len(adapter.calls)
        reconciler.reconcile_all(records)
        assert len(adapter.calls) == before

    def test_no_foreign_keys_without_support(self) -> None:
        """Adapters without foreign-key support get no foreign-key DDL."""
        adapter = MemorySchemaAdapter(AdapterCapabilities(supports_foreign_keys=False))
        result = Reconciler(adapter).reconcile_all(_blog())

        assert result.success is True
        assert "add_foreign_key" not in adapter.operations()
        assert "index_posts_on_author_id" in adapter.tables["posts"].indexes

    def test_foreign_key_name_truncated(self) -> None:
        """Foreign-key names respect the identifier limit."""
        adapter = MemorySchemaAdapter(AdapterCapabilities(max_identifier_length=16))
        Reconciler(adapter).reconcile_all(_blog())
        assert list(adapter.tables["posts"].foreign_keys) == ["fk_posts_author_"]
        assert set(adapter.tables["posts"].indexes) == {"index_posts_on_t", "index_posts_on_a"}


# ============================================================================
# Orphan sweep
# ============================================================================


class TestOrphanSweep:
    """Test dropping tables no record type accounts for."""

    def _add_orphan(self, adapter: MemorySchemaAdapter, name: str) -> None:
        adapter.create_table(name, [ColumnSpec(name="id", type="primary_key")], primary_key="id")

    def test_orphan_dropped(self, adapter: MemorySchemaAdapter) -> None:
        """Undeclared tables are dropped."""
        self._add_orphan(adapter, "legacy_things")
        result = Reconciler(adapter).reconcile_all(_blog())
        assert "legacy_things" not in adapter.tables
        assert result.dropped_tables == ["legacy_things"]

    def test_keep_tables_protected(self, adapter: MemorySchemaAdapter) -> None:
        """keep_tables are never dropped."""
        self._add_orphan(adapter, "alembic_version")
        result = Reconciler(adapter, keep_tables=["alembic_version"]).reconcile_all(_blog())
        assert "alembic_version" in adapter.tables
        assert result.dropped_tables == []

    def test_drop_orphans_disabled(self, adapter: MemorySchemaAdapter) -> None:
        """drop_orphans=False leaves undeclared tables alone."""
        self._add_orphan(adapter, "legacy_things")
        Reconciler(adapter, drop_orphans=False).reconcile_all(_blog())
        assert "legacy_things" in adapter.tables

    def test_orphans_dropped_children_first(self, adapter: MemorySchemaAdapter) -> None:
        """An orphan referencing another orphan is dropped first."""
        self._add_orphan(adapter, "old_parents")
        adapter.create_table(
            "old_children",
            [
                ColumnSpec(name="id", type="primary_key"),
                ColumnSpec(name="old_parent_id", type="integer"),
            ],
            primary_key="id",
        )
        adapter.add_foreign_key("old_children", "old_parents", column="old_parent_id")

        result = Reconciler(adapter).reconcile_all(_blog())

        assert result.dropped_tables == ["old_children", "old_parents"]

    def test_failed_drop_recorded(self, adapter: MemorySchemaAdapter) -> None:
        """A failed orphan drop fails the pass but not the other drops."""
        self._add_orphan(adapter, "stuck")
        self._add_orphan(adapter, "loose")
        adapter.fail_on.add(("drop_table", "stuck"))

        result = Reconciler(adapter).reconcile_all(_blog())

        assert result.success is False
        assert "stuck" in adapter.tables
        assert result.dropped_tables == ["loose"]


# ============================================================================
# Failures
# ============================================================================


class TestFailures:
    """Test connection and DDL failure handling."""

    def test_unavailable_database_skips_pass(self, adapter: MemorySchemaAdapter) -> None:
        """No connection means no DDL and a skipped result."""
        adapter.connected = False
        reconciler = Reconciler(adapter)
        result = reconciler.reconcile_all(_blog())

        assert result.skipped is True
        assert result.success is False
        assert adapter.calls == []
        assert reconciler.session is None
        assert result.format_report() == "Reconciliation skipped: database unavailable"

    def test_failed_table_does_not_stop_pass(self, adapter: MemorySchemaAdapter) -> None:
        """A DDL failure aborts only the failing table."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())

        records = _blog()
        records[0].field("summary", limit=200, index=True)
        records[1].field("bio", type="text")
        adapter.fail_on.add(("add_column", "posts"))

        result = reconciler.reconcile_all(records)

        assert result.success is False
        assert "add_column on 'posts' failed" in result.tables["posts"].error
        assert result.errors == [result.tables["posts"].error]
        # Later steps for posts were skipped, other tables were reconciled
        assert "index_posts_on_summary" not in adapter.tables["posts"].indexes
        assert "bio" in adapter.tables["authors"].columns

    def test_failed_table_converges_on_next_pass(self, adapter: MemorySchemaAdapter) -> None:
        """Running again after the failure is fixed completes the table."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())
        records = _blog()
        records[0].field("summary", limit=200, index=True)
        adapter.fail_on.add(("add_column", "posts"))
        reconciler.reconcile_all(records)

        adapter.fail_on.clear()
        result = reconciler.reconcile_all(records)

        assert result.success is True
        assert "summary" in adapter.tables["posts"].columns
        assert "index_posts_on_summary" in adapter.tables["posts"].indexes

    def test_unexpected_introspection_shape(self) -> None:
        """Malformed introspection output fails the table with a clear error."""

        class BrokenAdapter(MemorySchemaAdapter):
            def list_columns(self, table: str) -> list:
                return [{"type": "string"}]

        adapter = BrokenAdapter()
        result = Reconciler(adapter).reconcile_all([RecordType(name="Post")])

        assert result.success is False
        assert "Unexpected introspection data for 'posts'" in result.tables["posts"].error

    def test_join_table_survives_failed_introspection(self) -> None:
        """A table that fails introspection keeps its join tables out of the sweep."""

        class FlakyAdapter(MemorySchemaAdapter):
            broken = False

            def list_columns(self, table: str) -> list:
                if self.broken and table == "posts":
                    return [{"type": "string"}]
                return super().list_columns(table)

        adapter = FlakyAdapter()
        records = [RecordType(name="Post").has_and_belongs_to_many("tags"), RecordType(name="Tag")]
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(records)
        assert "posts_tags" in adapter.tables

        adapter.broken = True
        result = reconciler.reconcile_all(records)

        assert result.tables["posts"].error
        assert result.dropped_tables == []
        assert sorted(adapter.tables) == ["posts", "posts_tags", "tags"]

    def test_join_table_survives_failed_create(self, adapter: MemorySchemaAdapter) -> None:
        """A table that cannot be recreated keeps its live join table."""
        records = [RecordType(name="Post").has_and_belongs_to_many("tags"), RecordType(name="Tag")]
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(records)
        adapter.drop_table("posts")
        adapter.fail_on.add(("create_table", "posts"))

        result = reconciler.reconcile_all(records)

        assert "create_table on 'posts' failed" in result.tables["posts"].error
        assert "drop_table" not in adapter.operations("posts_tags")
        assert "posts_tags" in adapter.tables

    def test_unnamed_foreign_key_fails_table(self) -> None:
        """A suppressed foreign key without a name cannot be dropped by name."""

        class UnnamedForeignKeys(MemorySchemaAdapter):
            def list_foreign_keys(self, table: str) -> list:
                return [
                    fk.model_copy(update={"name": None})
                    for fk in super().list_foreign_keys(table)
                ]

        adapter = UnnamedForeignKeys()
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())

        result = reconciler.reconcile_all(_blog(author_foreign=False))

        assert "has no name" in result.tables["posts"].error
        assert "remove_foreign_key" not in adapter.operations("posts")
        assert result.tables["authors"].error is None


# ============================================================================
# Dry run
# ============================================================================


class TestPlan:
    """Test Reconciler.plan()."""

    def test_plan_executes_nothing(self, adapter: MemorySchemaAdapter) -> None:
        """plan() computes changes without DDL."""
        plan = Reconciler(adapter).plan(_blog())

        assert adapter.calls == []
        assert plan.has_changes is True
        assert {t.table: t.create for t in plan.tables} == {"authors": True, "posts": True}

    def test_plan_for_new_table_lists_indexes(self, adapter: MemorySchemaAdapter) -> None:
        """A table to create plans its indexes and foreign keys."""
        plan = Reconciler(adapter).plan(_blog())
        posts = next(t for t in plan.tables if t.table == "posts")

        assert posts.changes.columns_to_add == []
        assert {i.name for i in posts.changes.indexes_to_add} == {
            "index_posts_on_title", "index_posts_on_author_id",
        }
        assert [fk.to_table for fk in posts.foreign_keys_to_add] == ["authors"]

    def test_plan_lists_changes_and_orphans(self, adapter: MemorySchemaAdapter) -> None:
        """An existing table plans alters; orphans are listed."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())
        adapter.create_table("legacy", [ColumnSpec(name="id", type="primary_key")], primary_key="id")
        before = len(adapter.calls)

        plan = reconciler.plan(_blog(title_limit=100))

        assert len(adapter.calls) == before
        posts = next(t for t in plan.tables if t.table == "posts")
        assert posts.create is False
        assert [a.name for a in posts.changes.columns_to_alter] == ["title"]
        assert plan.tables_to_drop == ["legacy"]

    def test_plan_up_to_date(self, adapter: MemorySchemaAdapter) -> None:
        """After a pass the plan is empty."""
        reconciler = Reconciler(adapter)
        reconciler.reconcile_all(_blog())
        assert reconciler.plan(_blog()).has_changes is False

    def test_plan_join_table(self, adapter: MemorySchemaAdapter) -> None:
        """Pending join tables are planned once and not listed as orphans."""
        plan = Reconciler(adapter).plan(
            [
                RecordType(name="Cat").has_and_belongs_to_many("dogs"),
                RecordType(name="Dog").has_and_belongs_to_many("cats"),
            ]
        )
        planned = [name for t in plan.tables for name in t.join_tables_to_create]
        assert planned == ["cats_dogs"]
        assert plan.tables_to_drop == []

    def test_plan_skipped_when_unavailable(self, adapter: MemorySchemaAdapter) -> None:
        """An unreachable database yields a skipped plan."""
        adapter.connected = False
        assert Reconciler(adapter).plan(_blog()).skipped is True
