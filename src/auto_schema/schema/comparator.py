"""Column comparison: desired spec vs introspected spec.

Pure logic apart from asking the client to render SQL type strings.  Only
``limit``, ``precision``, ``scale``, ``default`` and ``null`` are compared;
any other bookkeeping an adapter reports is ignored.

Usage:
    from auto_schema.schema.comparator import attributes_changed, type_changed

    if type_changed(desired, actual, client):
        ...
    changed, attributes = attributes_changed(desired, actual)
"""

import logging
from typing import TYPE_CHECKING, Any

from auto_schema.schema.models import ColumnSpec

if TYPE_CHECKING:
    from auto_schema.adapters.base import SchemaClient

logger = logging.getLogger(__name__)

TRACKED_ATTRIBUTES = ("limit", "precision", "scale", "default", "null")
_SIZE_ATTRIBUTES = ("limit", "precision", "scale")

_TRUE_SPELLINGS = {"1", "t", "true", "y", "yes"}
_FALSE_SPELLINGS = {"0", "f", "false", "n", "no"}


def render_type(column: ColumnSpec, client: "SchemaClient") -> str:
    """Render a column's adapter-specific SQL type string (lowercased)."""
    rendered = client.render_sql_type(
        column.type, column.limit, column.precision, column.scale
    )
    return rendered.strip().lower()


def type_changed(
    desired: ColumnSpec, actual: ColumnSpec, client: "SchemaClient", table: str = ""
) -> bool:
    """True if the rendered SQL types of *desired* and *actual* differ.

    Comparing rendered strings rather than logical types avoids mismatches
    between the declared type vocabulary and what the database reports.
    """
    old_sql_type = render_type(actual, client)
    new_sql_type = render_type(desired, client)
    if old_sql_type != new_sql_type:
        logger.debug(
            f"[auto-schema] Detected schema change for {table}.{desired.name}#type "
            f"from {old_sql_type!r} to {new_sql_type!r}"
        )
        return True
    return False


def _effective(column: ColumnSpec, attribute: str, is_desired: bool) -> Any:
    value = getattr(column, attribute)
    if attribute == "limit" and value is None:
        # A column with precision behaves as if limit=precision
        value = column.precision
    elif attribute == "null" and value is None and is_desired:
        value = True
    elif attribute == "default":
        value = _normalize_default(value, column.type)
    return value


def _normalize_default(value: Any, column_type: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if column_type == "boolean":
        lowered = text.strip().lower()
        if lowered in _TRUE_SPELLINGS:
            return "true"
        if lowered in _FALSE_SPELLINGS:
            return "false"
    return text


def attributes_changed(
    desired: ColumnSpec,
    actual: ColumnSpec,
    compare_limit: bool = True,
    table: str = "",
) -> tuple[bool, dict[str, Any]]:
    """Compare the tracked attributes of two column specs.

    Args:
        desired: Declared column.
        actual: Introspected column.
        compare_limit: False when the adapter cannot store an inline limit,
            so a missing limit on the live column is not a change.
        table: Table name, used for log messages only.

    Returns:
        Tuple of (changed, attributes).  ``attributes`` always carries
        ``precision`` and ``scale`` together, plus every other tracked
        attribute whose value differs, set to its desired value.

    Examples:
        >>> changed, attrs = attributes_changed(
        ...     ColumnSpec(name="price", type="decimal", precision=10, scale=3),
        ...     ColumnSpec(name="price", type="decimal", precision=10, scale=2, null=True),
        ... )
        >>> changed
        True
        >>> attrs["precision"], attrs["scale"]
        (10, 3)
    """
    changed = False
    attributes: dict[str, Any] = {
        "precision": desired.precision,
        "scale": desired.scale,
    }

    for attribute in TRACKED_ATTRIBUTES:
        if attribute == "limit" and not compare_limit:
            continue
        if attribute in _SIZE_ATTRIBUTES and desired.is_custom_type:
            # The literal carries its own size; type_changed covers it
            continue
        new_value = _effective(desired, attribute, is_desired=True)
        old_value = _effective(actual, attribute, is_desired=False)
        if new_value != old_value:
            logger.debug(
                f"[auto-schema] Detected schema change for {table}.{desired.name}#{attribute} "
                f"from {old_value!r} to {new_value!r}"
            )
            if attribute == "null":
                attributes["null"] = new_value
            elif attribute == "limit":
                attributes["limit"] = desired.limit if desired.limit is not None else desired.precision
            elif attribute not in ("precision", "scale"):
                attributes[attribute] = getattr(desired, attribute)
            changed = True

    return changed, attributes
