"""Reconciler -- converge the live database to the declared schema.

Walks every declared table and, for each one: creates it if missing, creates
pending join tables, diffs desired vs introspected schema, and applies the
changes in a fixed order that avoids transient index/foreign-key violations:

    a. drop foreign keys suppressed with ``foreign=False``
    b. drop columns
    c. add columns
    d. alter columns
    e. drop indexes
    f. add indexes
    g. add foreign keys for ``foreign=True`` indexes
    h. reload the column cache

After the last table, tables that no declared record type or join table
accounts for are dropped (orphan sweep).

A DDL failure aborts only the current table; the pass continues with the
next one.  Nothing is retried: running the pass again is the recovery path.

Usage:
    from auto_schema.schema.reconciler import Reconciler

    reconciler = Reconciler(client, keep_tables=["alembic_version"])

    plan = reconciler.plan(record_types)      # dry run
    result = reconciler.reconcile_all(record_types)
    print(result.format_report())
"""

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from pydantic import ValidationError

from auto_schema.errors import (
    ConnectionUnavailableError,
    DDLExecutionError,
    UnsupportedAdapterShapeError,
)
from auto_schema.naming import default_foreign_key_name
from auto_schema.schema.builder import SchemaBuilder
from auto_schema.schema.declarations import RecordType
from auto_schema.schema.diff import diff_table, plan_foreign_keys
from auto_schema.schema.models import (
    ColumnSpec,
    ForeignKeySpec,
    IndexSpec,
    ReconcilePlan,
    ReconcileResult,
    TablePlan,
    TableResult,
    TableSchema,
)

if TYPE_CHECKING:
    from auto_schema.adapters.base import AdapterCapabilities, SchemaClient

logger = logging.getLogger(__name__)


def topological_sort(dependencies: dict[str, set[str]], tables: list[str]) -> list[str]:
    """Topological sort of tables based on foreign-key dependencies.

    Returns tables in forward order: referenced tables first, referencing
    tables last.  Cycles are broken by input order.

    Args:
        dependencies: Table -> set of tables it references.
        tables: Table names to sort.

    Returns:
        Tables sorted so that parent tables come before child tables.

    Example:
        >>> topological_sort({"posts": {"authors"}}, ["posts", "authors"])
        ['authors', 'posts']
    """
    relevant = {t: dependencies.get(t, set()) & set(tables) for t in tables}

    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()  # For cycle detection

    def visit(table: str) -> None:
        if table in visited or table in visiting:
            return
        visiting.add(table)
        for dep in sorted(relevant.get(table, set())):
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in tables:
        visit(table)

    return sorted_tables


class ReconcileSession:
    """State owned by one reconciliation pass.

    Attributes:
        capabilities: Adapter capabilities read at the start of the pass.
        desired: Desired schema per declared table.
        tracked_tables: Every table this pass is responsible for (declared
            tables and join tables); anything else is an orphan.
    """

    def __init__(self, capabilities: "AdapterCapabilities") -> None:
        self.capabilities = capabilities
        self.desired: dict[str, TableSchema] = {}
        self.tracked_tables: set[str] = set()
        self._foreign_keys: dict[str, list[ForeignKeySpec]] = {}

    def foreign_keys(self, client: "SchemaClient", table: str) -> list[ForeignKeySpec]:
        """Foreign keys on *table*, cached for the rest of the pass."""
        if table not in self._foreign_keys:
            raw = client.list_foreign_keys(table)
            try:
                self._foreign_keys[table] = [ForeignKeySpec.model_validate(fk) for fk in raw]
            except ValidationError as e:
                raise UnsupportedAdapterShapeError(table, f"foreign keys: {e}") from e
        return self._foreign_keys[table]

    def invalidate_foreign_keys(self, table: str) -> None:
        """Forget cached foreign keys after adding/removing one."""
        self._foreign_keys.pop(table, None)


class Reconciler:
    """Applies declared record types to a live database.

    Args:
        client: Schema client for the target database.
        drop_orphans: Drop tables no declared record type accounts for.
        keep_tables: Tables never dropped by the orphan sweep.

    Example:
        reconciler = Reconciler(MemorySchemaAdapter())
        result = reconciler.reconcile_all([post, author])
        assert result.success
    """

    def __init__(
        self,
        client: "SchemaClient",
        drop_orphans: bool = True,
        keep_tables: Iterable[str] = (),
    ) -> None:
        self._client = client
        self._drop_orphans = drop_orphans
        self._keep_tables = frozenset(keep_tables)
        self.session: ReconcileSession | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def reconcile_all(self, record_types: Sequence[RecordType]) -> ReconcileResult:
        """Run a full reconciliation pass.

        Args:
            record_types: Every declared record type.

        Returns:
            ``ReconcileResult``.  ``skipped`` is True when the database
            was unavailable (nothing was done); ``success`` is False when any
            table failed or an orphan could not be dropped.
        """
        result = ReconcileResult()

        session = self._start_session()
        if session is None:
            result.skipped = True
            return result

        builder = SchemaBuilder(self._client, session.capabilities, record_types)
        session.desired = builder.build_all()
        result.configuration_errors = [str(e) for e in builder.configuration_errors]

        live_tables = set(self._client.list_tables())

        for table_name in self._table_order(session.desired):
            table_result = self._reconcile_table(
                session, session.desired[table_name], live_tables
            )
            result.tables[table_name] = table_result
            if table_result.error:
                result.errors.append(table_result.error)

        if self._drop_orphans:
            self._sweep_orphans(session, result)

        result.success = not result.errors
        logger.info(
            f"[auto-schema] Reconciled {len(result.tables)} tables, "
            f"{len(result.changed_tables)} changed, {len(result.dropped_tables)} dropped"
        )
        return result

    def plan(self, record_types: Sequence[RecordType]) -> ReconcilePlan:
        """Compute what ``reconcile_all`` would do, without executing DDL."""
        reconcile_plan = ReconcilePlan()

        session = self._start_session()
        if session is None:
            reconcile_plan.skipped = True
            return reconcile_plan

        builder = SchemaBuilder(self._client, session.capabilities, record_types)
        session.desired = builder.build_all()
        reconcile_plan.configuration_errors = [str(e) for e in builder.configuration_errors]

        live_tables = set(self._client.list_tables())
        join_tables_planned: set[str] = set()

        for table_name in self._table_order(session.desired):
            schema = session.desired[table_name]
            session.tracked_tables.add(table_name)
            table_plan = TablePlan(table=table_name, create=table_name not in live_tables)

            for join in schema.join_tables.values():
                session.tracked_tables.add(join.name)
                if (
                    join.name not in live_tables
                    and join.name not in session.desired
                    and join.name not in join_tables_planned
                ):
                    table_plan.join_tables_to_create.append(join.name)
                    join_tables_planned.add(join.name)

            try:
                if table_plan.create:
                    # The table would be created with every persisted column
                    actual = TableSchema(
                        name=table_name,
                        primary_key=schema.primary_key,
                        columns={
                            name: column.model_copy(
                                update={"null": True if column.null is None else column.null}
                            )
                            for name, column in schema.persisted_columns.items()
                        },
                    )
                    existing: list[ForeignKeySpec] = []
                else:
                    actual = self._introspect(table_name)
                    existing = (
                        session.foreign_keys(self._client, table_name)
                        if session.capabilities.supports_foreign_keys
                        else []
                    )
                table_plan.changes = diff_table(
                    schema,
                    actual,
                    self._client,
                    compare_limit=session.capabilities.supports_inline_column_limit,
                )
                if session.capabilities.supports_foreign_keys:
                    to_drop, to_add = plan_foreign_keys(
                        schema, existing, self._foreign_key_namer(session)
                    )
                    table_plan.foreign_keys_to_drop = to_drop
                    table_plan.foreign_keys_to_add = to_add
            except UnsupportedAdapterShapeError as e:
                table_plan.error = str(e)

            reconcile_plan.tables.append(table_plan)

        if self._drop_orphans:
            orphans = self._orphans(session)
            reconcile_plan.tables_to_drop = [
                t for t in orphans if t not in join_tables_planned
            ]

        return reconcile_plan

    def close(self) -> None:
        """Close the underlying schema client."""
        self._client.close()

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    def _start_session(self) -> ReconcileSession | None:
        try:
            capabilities = self._client.capabilities()
        except ConnectionUnavailableError as e:
            logger.warning(f"[auto-schema] Database unavailable, skipping: {e}")
            self.session = None
            return None
        self.session = ReconcileSession(capabilities)
        return self.session

    def _table_order(self, desired: dict[str, TableSchema]) -> list[str]:
        dependencies = {
            name: {
                rel.target_table
                for rel in schema.relationships
                if rel.kind == "belongs_to"
                and rel.target_table
                and rel.target_table != name
            }
            for name, schema in desired.items()
        }
        return topological_sort(dependencies, list(desired))

    def _foreign_key_namer(self, session: ReconcileSession):
        max_length = session.capabilities.max_identifier_length
        return lambda table, column: default_foreign_key_name(table, column, max_length)

    def _introspect(self, table: str) -> TableSchema:
        """Read *table*'s live columns and indexes into a ``TableSchema``."""
        try:
            columns = [ColumnSpec.model_validate(c) for c in self._client.list_columns(table)]
            indexes = [IndexSpec.model_validate(i) for i in self._client.list_indexes(table)]
        except ValidationError as e:
            raise UnsupportedAdapterShapeError(table, str(e)) from e

        primary_key = next((c.name for c in columns if c.primary_key), None)
        return TableSchema(
            name=table,
            primary_key=primary_key,
            columns={c.name: c for c in columns},
            indexes={i.name: i for i in indexes},
        )

    # ------------------------------------------------------------------
    # Per-table reconciliation
    # ------------------------------------------------------------------

    def _reconcile_table(
        self,
        session: ReconcileSession,
        schema: TableSchema,
        live_tables: set[str],
    ) -> TableResult:
        """Create, derive, diff and apply for one table.

        DDL and introspection-shape failures are recorded on the returned
        ``TableResult`` instead of propagating.
        """
        table = schema.name
        client = self._client
        capabilities = session.capabilities
        result = TableResult(table=table)
        session.tracked_tables.add(table)
        # Join tables stay tracked even if this table fails below
        session.tracked_tables.update(schema.join_tables)

        try:
            # Absent -> Created
            if table not in live_tables:
                logger.info(f"[auto-schema] create_table {table}")
                client.create_table(
                    table,
                    list(schema.persisted_columns.values()),
                    primary_key=schema.primary_key,
                )
                live_tables.add(table)
                result.created = True

            actual = self._introspect(table)

            # Join tables for many-to-many relationships
            for join in schema.join_tables.values():
                if join.name in live_tables or join.name in session.desired:
                    continue
                self._create_join_table(join)
                live_tables.add(join.name)
                result.join_tables_created.append(join.name)

            # Diff & apply
            changes = diff_table(
                schema,
                actual,
                client,
                compare_limit=capabilities.supports_inline_column_limit,
            )
            result.changes = changes
            namer = self._foreign_key_namer(session)

            # a. foreign keys suppressed by foreign=False
            if capabilities.supports_foreign_keys:
                to_drop, _ = plan_foreign_keys(
                    schema, session.foreign_keys(client, table), namer
                )
                for fk in to_drop:
                    if not fk.name:
                        raise UnsupportedAdapterShapeError(
                            table, f"foreign key on '{fk.column}' has no name and cannot be dropped"
                        )
                    logger.info(f"[auto-schema] remove_foreign_key {table}.{fk.column} ({fk.name})")
                    client.remove_foreign_key(table, fk.name)
                    session.invalidate_foreign_keys(table)
                    result.foreign_keys_dropped.append(fk.name)

            # b. drop columns
            for name in changes.columns_to_drop:
                logger.info(f"[auto-schema] remove_column {table}.{name}")
                client.remove_column(table, name)

            # c. add columns
            for column in changes.columns_to_add:
                logger.info(f"[auto-schema] add_column {table}.{column.name} ({column.type})")
                client.add_column(table, column)

            # d. alter columns
            for alter in changes.columns_to_alter:
                logger.info(
                    f"[auto-schema] change_column {table}.{alter.name} "
                    f"({alter.type}, {alter.attributes})"
                )
                client.change_column(table, alter.name, alter.type, alter.attributes)

            # e. drop indexes
            indexes_to_drop = changes.indexes_to_drop
            if indexes_to_drop and changes.columns_to_drop:
                # Dropping a column can take its indexes with it
                live_indexes = self._introspect(table).indexes
                indexes_to_drop = [n for n in indexes_to_drop if n in live_indexes]
            for name in indexes_to_drop:
                logger.info(f"[auto-schema] remove_index {table}.{name}")
                client.remove_index(table, name)

            # f. add indexes
            for index in changes.indexes_to_add:
                logger.info(f"[auto-schema] add_index {table}.{index.name} {index.columns}")
                client.add_index(table, index.columns, name=index.name, unique=index.unique)

            # g. foreign keys for foreign=True indexes
            if capabilities.supports_foreign_keys:
                _, to_add = plan_foreign_keys(
                    schema, session.foreign_keys(client, table), namer
                )
                for fk in to_add:
                    logger.info(
                        f"[auto-schema] add_foreign_key {table}.{fk.column} -> {fk.to_table}"
                    )
                    client.add_foreign_key(table, fk.to_table, column=fk.column, name=fk.name)
                    session.invalidate_foreign_keys(table)
                    result.foreign_keys_added.append(fk.name or fk.column)

            # h. reload column information
            client.reload_column_cache(table)

        except (DDLExecutionError, UnsupportedAdapterShapeError) as e:
            logger.error(f"[auto-schema] Reconciling '{table}' aborted: {e}")
            result.error = str(e)

        return result

    def _create_join_table(self, join: TableSchema) -> None:
        logger.info(f"[auto-schema] create_table {join.name} (join table)")
        self._client.create_table(join.name, list(join.columns.values()), primary_key=None)
        for index in join.indexes.values():
            logger.info(f"[auto-schema] add_index {join.name}.{index.name} {index.columns}")
            self._client.add_index(
                join.name, index.columns, name=index.name, unique=index.unique
            )

    # ------------------------------------------------------------------
    # Orphan sweep
    # ------------------------------------------------------------------

    def _orphans(self, session: ReconcileSession) -> list[str]:
        """Live tables not tracked by this pass, children before parents."""
        orphans = [
            t
            for t in self._client.list_tables()
            if t not in session.tracked_tables and t not in self._keep_tables
        ]
        dependencies: dict[str, set[str]] = {}
        if session.capabilities.supports_foreign_keys:
            for table in orphans:
                try:
                    dependencies[table] = {
                        fk.to_table for fk in session.foreign_keys(self._client, table)
                    }
                except UnsupportedAdapterShapeError as e:
                    logger.warning(f"[auto-schema] {e}")
        return list(reversed(topological_sort(dependencies, orphans)))

    def _sweep_orphans(self, session: ReconcileSession, result: ReconcileResult) -> None:
        for table in self._orphans(session):
            try:
                logger.info(f"[auto-schema] drop_table {table} (no longer declared)")
                self._client.drop_table(table)
            except DDLExecutionError as e:
                logger.error(f"[auto-schema] Dropping '{table}' failed: {e}")
                result.errors.append(str(e))
                continue
            session.invalidate_foreign_keys(table)
            result.dropped_tables.append(table)
