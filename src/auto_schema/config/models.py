"""Pydantic models for database and reconciliation configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"


class ReconcileSettings(BaseModel):
    """The ``[reconcile]`` table of db.toml."""

    schema_file: str = "schema.toml"
    drop_orphans: bool = True
    keep_tables: list[str] = Field(default_factory=list)


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
