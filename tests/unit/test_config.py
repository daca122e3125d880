"""Tests for configuration."""

import os

import pytest

from metaorm.core.config import Configuration, platform_from_url
from metaorm.exceptions import ConfigurationError
from metaorm.metadata.naming import EntityCaseNamingStrategy
from metaorm.platforms import PostgreSqlPlatform, SqlitePlatform


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove METAORM_* variables inherited from the environment."""
    for name in list(os.environ):
        if name.startswith("METAORM_"):
            monkeypatch.delenv(name)


class TestConfiguration:
    """Test configuration loading."""

    def test_defaults(self):
        """Test defaults without environment variables."""
        config = Configuration.from_env()
        assert config.platform == "sqlite"
        assert config.naming_strategy == "underscore"
        assert config.database_url is None
        assert config.safe is False
        assert config.wrap is True

    def test_environment(self, monkeypatch):
        """Test METAORM_* variables are read and booleans parsed."""
        monkeypatch.setenv("METAORM_PLATFORM", "mysql")
        monkeypatch.setenv("METAORM_SAFE", "yes")
        monkeypatch.setenv("METAORM_WRAP", "0")
        monkeypatch.setenv("METAORM_CHARSET", "latin1")
        config = Configuration.from_env()
        assert config.platform == "mysql"
        assert config.safe is True
        assert config.wrap is False
        assert config.charset == "latin1"

    def test_overrides_win(self, monkeypatch):
        """Test explicit values beat the environment and None is ignored."""
        monkeypatch.setenv("METAORM_PLATFORM", "mysql")
        monkeypatch.setenv("METAORM_ENTITIES_PATH", "model.json")
        config = Configuration.from_env(platform="postgresql", entities_path=None)
        assert config.platform == "postgresql"
        assert config.entities_path == "model.json"

    def test_platform_from_database_url(self):
        """Test the platform follows the database URL unless given."""
        assert Configuration.from_env(database_url="postgresql://localhost/app").platform == "postgresql"
        assert (
            Configuration.from_env(database_url="postgresql://localhost/app", platform="mysql").platform
            == "mysql"
        )

    def test_get_platform(self):
        """Test the platform is built with the configured naming strategy."""
        platform = Configuration(platform="postgresql", naming_strategy="entity_case").get_platform()
        assert isinstance(platform, PostgreSqlPlatform)
        assert isinstance(platform.get_naming_strategy(), EntityCaseNamingStrategy)
        assert isinstance(Configuration().get_platform(), SqlitePlatform)

    def test_unknown_platform(self):
        """Test unknown platforms list the available ones."""
        with pytest.raises(ConfigurationError) as exc_info:
            Configuration(platform="oracle").get_platform()
        assert exc_info.value.context["available"] == ["sqlite", "postgresql", "mysql"]

    def test_unknown_naming_strategy(self):
        """Test unknown naming strategies are rejected."""
        with pytest.raises(ConfigurationError, match="naming strategy"):
            Configuration(naming_strategy="camel").get_naming_strategy()


class TestPlatformFromUrl:
    """Test platform detection from URLs."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgresql://localhost/app", "postgresql"),
            ("postgresql+psycopg://localhost/app", "postgresql"),
            ("postgres://localhost/app", "postgresql"),
            ("mysql+pymysql://localhost/app", "mysql"),
            ("mariadb://localhost/app", "mysql"),
            ("sqlite:///:memory:", "sqlite"),
            ("oracle://localhost/app", None),
        ],
    )
    def test_schemes(self, url, expected):
        """Test scheme and driver suffixes."""
        assert platform_from_url(url) == expected
