"""Schema declaration, derivation, comparison, and reconciliation.

Provides record type declarations (``RecordType``), the desired-schema
builder (``SchemaBuilder``), column comparison (``type_changed``,
``attributes_changed``), the diff engine (``diff_table``,
``plan_foreign_keys``), and the reconciler (``Reconciler``).

Usage:
    from auto_schema.schema import RecordType, Reconciler
    from auto_schema.schema import diff_table, SchemaBuilder
"""

from auto_schema.schema.builder import SchemaBuilder
from auto_schema.schema.comparator import attributes_changed, type_changed
from auto_schema.schema.declarations import RecordType
from auto_schema.schema.diff import diff_table, plan_foreign_keys
from auto_schema.schema.models import (
    ChangeSet,
    ColumnAlter,
    ColumnSpec,
    ForeignKeySpec,
    IndexDecl,
    IndexSpec,
    ReconcilePlan,
    ReconcileResult,
    RelationshipDescriptor,
    TablePlan,
    TableResult,
    TableSchema,
)
from auto_schema.schema.reconciler import Reconciler, ReconcileSession, topological_sort

__all__ = [
    "RecordType",
    "SchemaBuilder",
    "type_changed",
    "attributes_changed",
    "diff_table",
    "plan_foreign_keys",
    "Reconciler",
    "ReconcileSession",
    "topological_sort",
    "ColumnSpec",
    "IndexDecl",
    "IndexSpec",
    "ForeignKeySpec",
    "RelationshipDescriptor",
    "TableSchema",
    "ColumnAlter",
    "ChangeSet",
    "TablePlan",
    "ReconcilePlan",
    "TableResult",
    "ReconcileResult",
]
