"""Configuration management: profiles, reconcile settings, and schema files.

Usage:
    >>> from auto_schema.config import load_db_config, load_schema_file
"""

from auto_schema.config.loader import load_db_config, load_schema_file
from auto_schema.config.models import DatabaseConfig, DatabaseProfile, ReconcileSettings

__all__ = [
    "load_db_config",
    "load_schema_file",
    "DatabaseConfig",
    "DatabaseProfile",
    "ReconcileSettings",
]
