"""
Configuration tests - environment-driven engine selection and validation.
"""

import pytest

from typedstore.core import config
from typedstore.engine.memory import MemoryEngine
from typedstore.engine.sqlite_store import SQLiteEngine


@pytest.fixture(autouse=True)
def fresh_engines():
    config.reset_engines()
    yield
    config.reset_engines()


class TestGetEngine:

    def test_memory_engine(self, monkeypatch):
        monkeypatch.setenv("TYPEDSTORE_ENGINE", "memory")
        assert isinstance(config.get_engine(), MemoryEngine)

    def test_sqlite_engine_uses_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TYPEDSTORE_ENGINE", "sqlite")
        monkeypatch.setenv("TYPEDSTORE_DATA_DIR", str(tmp_path / "stores"))

        engine = config.get_engine()

        assert isinstance(engine, SQLiteEngine)
        assert engine.data_dir == tmp_path / "stores"
        assert engine.data_dir.is_dir()
        assert engine.timeout == config.SQLITE_TIMEOUT_SEC

    def test_engine_is_shared_per_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TYPEDSTORE_ENGINE", "sqlite")
        monkeypatch.setenv("TYPEDSTORE_DATA_DIR", str(tmp_path / "one"))
        first = config.get_engine()
        assert config.get_engine() is first

        monkeypatch.setenv("TYPEDSTORE_DATA_DIR", str(tmp_path / "two"))
        assert config.get_engine() is not first

    def test_memory_engine_is_shared(self, monkeypatch):
        monkeypatch.setenv("TYPEDSTORE_ENGINE", "memory")
        assert config.get_engine() is config.get_engine()

    def test_reset_engines(self, monkeypatch):
        monkeypatch.setenv("TYPEDSTORE_ENGINE", "memory")
        first = config.get_engine()
        config.reset_engines()
        assert config.get_engine() is not first

    def test_unknown_engine(self, monkeypatch):
        monkeypatch.setenv("TYPEDSTORE_ENGINE", "redis")
        with pytest.raises(ValueError) as exc_info:
            config.get_engine()
        assert "redis" in str(exc_info.value)


class TestHelpers:

    def test_get_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TYPEDSTORE_DATA_DIR", str(tmp_path))
        assert config.get_data_dir() == tmp_path

    def test_ensure_data_directory(self, monkeypatch, tmp_path):
        target = tmp_path / "a" / "b"
        monkeypatch.setenv("TYPEDSTORE_DATA_DIR", str(target))
        assert config.ensure_data_directory() == target
        assert target.is_dir()

    @pytest.mark.parametrize("value,expected", [("true", True), ("TRUE", True), ("false", False), ("1", False)])
    def test_debug_enabled(self, monkeypatch, value, expected):
        monkeypatch.setenv("DEBUG", value)
        assert config.debug_enabled() is expected


class TestValidateConfig:

    def test_default_config_is_valid(self, monkeypatch):
        monkeypatch.delenv("TYPEDSTORE_ENGINE", raising=False)
        monkeypatch.setattr(config, "ENGINE", "sqlite")
        monkeypatch.setattr(config, "LOG_LEVEL", "INFO")
        monkeypatch.setattr(config, "SQLITE_TIMEOUT_SEC", 5.0)
        assert config.validate_config() == []

    def test_reports_every_issue(self, monkeypatch):
        monkeypatch.setenv("TYPEDSTORE_ENGINE", "redis")
        monkeypatch.setattr(config, "SQLITE_TIMEOUT_SEC", 0)
        monkeypatch.setattr(config, "LOG_LEVEL", "LOUD")

        issues = config.validate_config()

        assert "Invalid TYPEDSTORE_ENGINE: redis" in issues
        assert "SQLITE_TIMEOUT_SEC must be > 0" in issues
        assert "Invalid TYPEDSTORE_LOG_LEVEL: LOUD" in issues
