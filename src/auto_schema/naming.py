"""Deterministic identifier names for indexes and foreign keys.

Every name is cut to the adapter's maximum identifier length, so the same
table and columns always produce the same name on the same database.
"""

from collections.abc import Sequence


def truncate_identifier(name: str, max_length: int) -> str:
    """Cut *name* down to *max_length* characters."""
    return name[:max_length] if len(name) > max_length else name


def default_index_name(table: str, columns: Sequence[str], max_length: int) -> str:
    """Derive a deterministic index name for *columns* on *table*.

    Example:
        >>> default_index_name("posts", ["author_id", "author_type"], 63)
        'index_posts_on_author_id_and_author_type'
    """
    name = f"index_{table}_on_{'_and_'.join(columns)}"
    return truncate_identifier(name, max_length)


def default_foreign_key_name(table: str, column: str, max_length: int) -> str:
    """Derive a deterministic foreign-key constraint name.

    Example:
        >>> default_foreign_key_name("posts", "author_id", 63)
        'fk_posts_author_id'
    """
    return truncate_identifier(f"fk_{table}_{column}", max_length)
