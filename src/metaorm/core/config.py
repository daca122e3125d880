"""Configuration for metaorm.

Values come from code, from ``METAORM_*`` environment variables or from CLI
options, in that order of precedence inside the CLI.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

from metaorm.exceptions import ConfigurationError
from metaorm.metadata.naming import NAMING_STRATEGIES, NamingStrategy
from metaorm.platforms import PLATFORMS, Platform

ENV_PREFIX = "METAORM_"

_TRUE_VALUES = ("1", "true", "yes", "on")


class Configuration(BaseModel):
    """Settings shared by the resolver, schema generator and CLI."""

    platform: str = Field(
        default="sqlite", description="Target platform: sqlite, postgresql or mysql"
    )
    naming_strategy: str = Field(default="underscore", description="Naming strategy name")
    database_url: str | None = Field(default=None, description="SQLAlchemy database URL")
    entities_path: str = Field(default="entities.json", description="Entity descriptions file")
    safe: bool = Field(default=False, description="Never emit drop statements")
    drop_tables: bool = Field(default=True, description="Drop tables without metadata")
    wrap: bool = Field(default=True, description="Emit the platform schema preamble/epilogue")
    debug: bool = Field(default=False, description="Verbose logging")
    charset: str | None = Field(default=None, description="Charset for the schema preamble")

    @classmethod
    def from_env(cls, **overrides: Any) -> Configuration:
        """Build a configuration from METAORM_* environment variables.

        Args:
            **overrides: Values taking precedence over the environment (None is ignored)

        Returns:
            Configuration instance
        """
        data: dict[str, Any] = {}
        for name, info in cls.model_fields.items():
            value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if value is None:
                continue
            data[name] = value.lower() in _TRUE_VALUES if info.annotation is bool else value

        data.update({k: v for k, v in overrides.items() if v is not None})

        # platform follows the database URL unless given explicitly
        if "platform" not in data and data.get("database_url"):
            platform = platform_from_url(data["database_url"])
            if platform:
                data["platform"] = platform

        return cls(**data)

    def get_platform(self) -> Platform:
        """Instantiate the configured platform with the configured naming strategy.

        Raises:
            ConfigurationError: If the platform or naming strategy is unknown
        """
        platform_cls = PLATFORMS.get(self.platform)
        if platform_cls is None:
            raise ConfigurationError(
                f"Unknown platform '{self.platform}'. Available: {', '.join(PLATFORMS)}",
                {"platform": self.platform, "available": list(PLATFORMS)},
            )
        return platform_cls(self.get_naming_strategy())

    def get_naming_strategy(self) -> NamingStrategy:
        """Instantiate the configured naming strategy.

        Raises:
            ConfigurationError: If the naming strategy is unknown
        """
        strategy_cls = NAMING_STRATEGIES.get(self.naming_strategy)
        if strategy_cls is None:
            raise ConfigurationError(
                f"Unknown naming strategy '{self.naming_strategy}'. "
                f"Available: {', '.join(NAMING_STRATEGIES)}",
                {"naming_strategy": self.naming_strategy, "available": list(NAMING_STRATEGIES)},
            )
        return strategy_cls()


def platform_from_url(url: str) -> str | None:
    """Platform name for a SQLAlchemy URL (e.g. postgresql+psycopg:// -> postgresql)."""
    scheme = url.split(":", 1)[0].split("+", 1)[0].lower()
    if scheme in ("postgres", "postgresql"):
        return "postgresql"
    if scheme in ("mysql", "mariadb"):
        return "mysql"
    if scheme == "sqlite":
        return "sqlite"
    return None
