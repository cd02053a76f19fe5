"""Tests for configuration module."""

import logging
from pathlib import Path

from memproto.core.config import Settings, default_tier_policy
from memproto.core.logging import get_logger, setup_logging
from memproto.memory.base import MemoryType, StorageTier


def test_default_settings():
    """Settings load with defaults."""
    settings = Settings(
        _env_file=None,  # Don't load .env in tests
    )
    assert settings.data_dir == Path("data")
    assert settings.default_search_limit == 10
    assert settings.default_threshold == 0.7
    assert settings.default_ttl == 86400
    assert settings.operation_timeout is None
    assert not settings.consolidation_enabled
    assert [b.name for b in settings.backends] == ["in-memory"]


def test_env_override(monkeypatch):
    monkeypatch.setenv("MEMPROTO_DEFAULT_THRESHOLD", "0.4")
    monkeypatch.setenv("MEMPROTO_CONSOLIDATION_ENABLED", "true")
    monkeypatch.setenv("MEMPROTO_DATA_DIR", "/tmp/memproto")

    settings = Settings(_env_file=None)

    assert settings.default_threshold == 0.4
    assert settings.consolidation_enabled
    assert settings.data_dir == Path("/tmp/memproto")


def test_default_tier_policy():
    policy = default_tier_policy()
    assert policy[MemoryType.WORKING] == [StorageTier.MAIN_CONTEXT]
    assert policy[MemoryType.SEMANTIC] == [StorageTier.MAIN_CONTEXT, StorageTier.VECTOR_STORE]
    assert policy[MemoryType.ARCHIVAL][0] == StorageTier.EXTERNAL_CONTEXT
    assert set(policy) == set(MemoryType)


def test_setup_logging_writes_file(tmp_path: Path):
    log_file = tmp_path / "logs" / "memproto.log"
    logger = setup_logging("DEBUG", log_file)
    try:
        get_logger("tests").debug("hello from tests")
        for handler in logger.handlers:
            handler.flush()

        assert logger.name == "memproto"
        assert logger.level == logging.DEBUG
        assert "hello from tests" in log_file.read_text()
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def test_get_logger_is_namespaced():
    assert get_logger("memory.dispatcher").name == "memproto.memory.dispatcher"


def test_setup_logging_replaces_previous_handlers(tmp_path: Path):
    logger = setup_logging("INFO", tmp_path / "first.log")
    try:
        assert len(logger.handlers) == 2
        setup_logging("INFO", tmp_path / "second.log")
        setup_logging("WARNING")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
