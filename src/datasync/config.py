"""
DataSync Configuration System.

This module provides a type-safe configuration system using Pydantic.
Settings can be loaded from:
1. Environment variables (prefixed with DATASYNC_)
2. Config file (TOML or JSON)
3. CLI arguments (highest priority)

Example usage:
    from datasync.config import Settings, DuplicatePolicy

    # Load from environment
    settings = Settings()

    # Or with explicit values
    settings = Settings(
        source_system="legacy",
        sync={"on_duplicate": DuplicatePolicy.SKIP},
    )
"""

from __future__ import annotations

import json
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DuplicatePolicy(str, Enum):
    """What to do when an incoming record already exists in the target store."""

    SKIP = "skip"
    UPDATE = "update"
    MERGE = "merge"
    ERROR = "error"


class AdapterCode(str, Enum):
    """Built-in source adapters."""

    CSV = "csv"
    SQLITE = "sqlite"
    HTTP = "http"


class SyncOptions(BaseModel):
    """Options controlling engine behavior."""

    dry_run: bool = Field(
        default=False,
        description="Validate and detect duplicates without importing",
    )
    on_duplicate: DuplicatePolicy = Field(
        default=DuplicatePolicy.ERROR,
        description="Duplicate handling policy: skip, update, merge or error",
    )
    skip_invalid: bool = Field(
        default=False,
        description="Record invalid records as skipped instead of as errors",
    )
    strict: bool = Field(
        default=False,
        description="Treat handler warnings as validation errors",
    )
    progress_interval: int = Field(
        default=100,
        ge=1,
        description="Report throughput every N records",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        description="Accepted for compatibility; records are processed one at a time",
    )
    entity_options: dict[str, Any] = Field(
        default_factory=dict,
        description="Entity-specific options handed to every record",
    )


class StorageConfig(BaseModel):
    """Target datastore configuration."""

    database_path: Path = Field(
        default=Path("datasync.db"),
        description="Path to the target SQLite database",
    )


class AdapterConfig(BaseModel):
    """Source adapter configuration."""

    code: AdapterCode = Field(
        default=AdapterCode.CSV,
        description="Source adapter to read from",
    )

    # csv
    file_path: Path | None = Field(
        default=None,
        description="CSV file path (csv adapter)",
    )
    delimiter: str = Field(
        default=",",
        min_length=1,
        max_length=1,
        description="CSV field delimiter",
    )

    # sqlite
    database_path: Path | None = Field(
        default=None,
        description="Source SQLite database (sqlite adapter)",
    )
    tables: dict[str, str] = Field(
        default_factory=dict,
        description="Entity type to source table overrides (sqlite adapter)",
    )

    # http
    base_url: str | None = Field(
        default=None,
        description="Base URL of the source REST API (http adapter)",
    )
    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token for the source REST API",
    )
    page_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Records requested per page (http and sqlite adapters)",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per HTTP request before giving up",
    )

    @field_validator("api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Any) -> SecretStr:
        """Handle API key from various sources."""
        if isinstance(v, SecretStr):
            return v
        if isinstance(v, str):
            return SecretStr(v)
        return SecretStr("")

    def as_options(self) -> dict[str, Any]:
        """Build the option mapping handed to SourceAdapter.configure()."""
        if self.code == AdapterCode.CSV:
            return {
                "file_path": str(self.file_path) if self.file_path else "",
                "delimiter": self.delimiter,
            }
        if self.code == AdapterCode.SQLITE:
            return {
                "database_path": str(self.database_path) if self.database_path else "",
                "tables": dict(self.tables),
                "page_size": self.page_size,
            }
        return {
            "base_url": self.base_url or "",
            "api_key": self.api_key.get_secret_value(),
            "page_size": self.page_size,
            "timeout": self.timeout_seconds,
            "max_retries": self.max_retries,
        }


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None = console only)",
    )
    format: str = Field(
        default="rich",
        pattern="^(rich|json|simple)$",
        description="Log format: rich (colored), json, or simple",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Number of rotated log files to keep",
    )


class EntityConfig(BaseModel):
    """Declaration of one entity type handled by the record table handler."""

    label: str = ""
    id_field: str = "entity_id"
    required_fields: list[str] = Field(default_factory=list)
    foreign_keys: dict[str, str | dict[str, Any]] = Field(
        default_factory=dict,
        description="field -> entity type, or field -> {entity_type, required, ref_field}",
    )
    external_ref_field: str | None = None
    link_fields: dict[str, str] = Field(
        default_factory=dict,
        description="field -> entity type, resolved after the whole batch is imported",
    )


def default_entities() -> dict[str, EntityConfig]:
    """Entity declarations used when no config file overrides them."""
    return {
        "customer": EntityConfig(
            label="Customers",
            required_fields=["email"],
            external_ref_field="email",
        ),
        "product": EntityConfig(
            label="Products",
            required_fields=["sku"],
            external_ref_field="sku",
            link_fields={"parent_id": "product"},
        ),
        "order": EntityConfig(
            label="Orders",
            required_fields=["increment_id"],
            foreign_keys={
                "customer_id": {
                    "entity_type": "customer",
                    "required": False,
                    "ref_field": "customer_email",
                },
            },
            external_ref_field="increment_id",
        ),
    }


class Settings(BaseSettings):
    """
    Main settings class for DataSync.

    Settings are loaded in this priority (highest first):
    1. Explicit constructor arguments
    2. Environment variables (DATASYNC_* prefix)
    3. Config file (if specified)
    4. Defaults

    Example:
        # From environment
        export DATASYNC_SOURCE_SYSTEM="legacy"
        export DATASYNC_SYNC__ON_DUPLICATE="skip"
        settings = Settings()

        # From config file
        settings = Settings.from_file("datasync.toml")
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    source_system: str = Field(
        default="",
        description="Identifier of the external system records come from",
    )

    # Nested configs
    storage: StorageConfig = Field(default_factory=StorageConfig)
    adapter: AdapterConfig = Field(default_factory=AdapterConfig)
    sync: SyncOptions = Field(default_factory=SyncOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    entities: dict[str, EntityConfig] = Field(default_factory=default_entities)

    @model_validator(mode="after")
    def normalize_source_system(self) -> Self:
        """Strip whitespace from the source system identifier."""
        self.source_system = self.source_system.strip()
        return self

    @classmethod
    def from_file(cls, path: Path | str) -> "Settings":
        """Load settings from a TOML or JSON config file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".toml", ".tml"):
            data = tomllib.loads(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.model_validate(data)

    def to_file(self, path: Path | str) -> None:
        """Save current settings to a config file."""
        path = Path(path)
        data = self.model_dump(mode="json", exclude_none=True)

        # Mask sensitive data
        if data.get("adapter", {}).get("api_key"):
            data["adapter"]["api_key"] = "***REDACTED***"

        if path.suffix in (".toml", ".tml"):
            path.write_text(_to_toml(data))
        else:
            path.write_text(json.dumps(data, indent=2))

    def validate_source(self) -> list[str]:
        """Validate that the source is fully described. Returns list of errors."""
        errors = []
        if not self.source_system:
            errors.append("source_system is required")

        adapter = self.adapter
        if adapter.code == AdapterCode.CSV and not adapter.file_path:
            errors.append("adapter.file_path is required for the csv adapter")
        if adapter.code == AdapterCode.SQLITE and not adapter.database_path:
            errors.append("adapter.database_path is required for the sqlite adapter")
        if adapter.code == AdapterCode.HTTP and not adapter.base_url:
            errors.append("adapter.base_url is required for the http adapter")
        return errors


def _to_toml(data: dict[str, Any], prefix: str = "") -> str:
    """Basic TOML serialization: scalars first, then one table per mapping."""
    lines = []
    tables = []
    for key, value in data.items():
        if isinstance(value, dict):
            tables.append((key, value))
        else:
            lines.append(f"{key} = {json.dumps(value)}")

    for key, value in tables:
        name = f"{prefix}.{key}" if prefix else key
        body = _to_toml(value, name)
        lines.append(f"\n[{name}]")
        if body:
            lines.append(body)
    return "\n".join(lines)


# Convenience function for loading settings
def load_settings(
    config_file: Path | str | None = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings with optional config file and overrides.

    Args:
        config_file: Optional path to config file
        **overrides: Settings to override (highest priority)

    Returns:
        Configured Settings instance
    """
    if config_file:
        settings = Settings.from_file(config_file)
        if overrides:
            data = settings.model_dump()
            data.update(overrides)
            return Settings.model_validate(data)
        return settings
    return Settings(**overrides)
