"""TOML loaders for db.toml and schema files."""

import tomllib
from pathlib import Path

from auto_schema.config.models import DatabaseConfig, DatabaseProfile, ReconcileSettings
from auto_schema.schema.declarations import RecordType


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ``db.toml`` in the current
            working directory)

    Returns:
        DatabaseConfig with all profiles and reconcile settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        tomllib.TOMLDecodeError: If the file is not valid TOML
        pydantic.ValidationError: If a profile or setting is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create a db.toml with at least one [profiles.<name>] table."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    return DatabaseConfig(
        profiles=profiles,
        reconcile=ReconcileSettings(**data.get("reconcile", {})),
    )


def _record_type(name: str, data: dict) -> RecordType:
    data = dict(data)
    columns = data.pop("columns", {})
    indexes = data.pop("indexes", [])
    relationships = data.pop("relationships", [])
    timestamps = data.pop("timestamps", False)

    record = RecordType(name=name, **data)

    for column_name, options in columns.items():
        record.field(column_name, **options)
    if timestamps:
        record.timestamps()
    for index in indexes:
        record.index(**index)
    for relationship in relationships:
        relationship = dict(relationship)
        kind = relationship.pop("kind", "belongs_to")
        rel_name = relationship.pop("name")
        if kind == "belongs_to":
            record.belongs_to(rel_name, **relationship)
        elif kind in ("many_to_many", "has_and_belongs_to_many"):
            record.has_and_belongs_to_many(rel_name, **relationship)
        else:
            raise ValueError(f"Unknown relationship kind '{kind}' on record '{name}'")

    return record


def load_schema_file(schema_path: Path) -> list[RecordType]:
    """Load record type declarations from a schema TOML file.

    Each ``[records.<Name>]`` table becomes one ``RecordType``, in file
    order.  Columns are registered through ``RecordType.field`` so the
    ``index`` and ``fake`` options behave as in code.

    Args:
        schema_path: Path to the schema file.

    Returns:
        Declared record types.

    Raises:
        FileNotFoundError: If the schema file doesn't exist
        ValueError: If the file declares no records or an unknown
            relationship kind
    """
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")

    with open(schema_path, "rb") as f:
        data = tomllib.load(f)

    records = data.get("records", {})
    if not records:
        raise ValueError(f"No [records.<Name>] tables found in {schema_path.name}")

    return [_record_type(name, record_data) for name, record_data in records.items()]
