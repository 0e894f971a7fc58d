"""Exception types raised by the reconciliation engine.

Usage:
    from auto_schema.errors import DDLExecutionError

    try:
        client.add_column("posts", column)
    except DDLExecutionError as e:
        print(e.table, e.operation)
"""


class AutoSchemaError(Exception):
    """Base class for all auto-schema errors."""

    pass


class ConnectionUnavailableError(AutoSchemaError):
    """Raised when the database cannot be reached.

    The reconciler treats this as "nothing to do" and skips the pass.
    """

    pass


class DDLExecutionError(AutoSchemaError):
    """Raised when a create/add/alter/drop statement fails.

    Aborts the remaining steps for the table being reconciled.
    """

    def __init__(self, table: str, operation: str, cause: BaseException | str):
        self.table = table
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} on '{table}' failed: {cause}")


class AmbiguousAssociationTargetError(AutoSchemaError):
    """Raised when a relationship cannot be resolved to a target table."""

    def __init__(self, table: str, relationship: str, reason: str):
        self.table = table
        self.relationship = relationship
        self.reason = reason
        super().__init__(
            f"Relationship '{relationship}' on '{table}' cannot be resolved: {reason}"
        )


class UnsupportedAdapterShapeError(AutoSchemaError):
    """Raised when introspection output does not have the expected fields."""

    def __init__(self, table: str, detail: str):
        self.table = table
        self.detail = detail
        super().__init__(f"Unexpected introspection data for '{table}': {detail}")
