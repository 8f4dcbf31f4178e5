"""Tests for configuration and logging setup."""

import logging
from pathlib import Path

import pytest

from config import (
    DEVELOPMENT_BACKEND_URL,
    LOG_HANDLER_NAME,
    PRODUCTION_BACKEND_URL,
    Config,
    configure_logging,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PORTABELLA_BACKEND_URL", "PORTABELLA_ENV", "PORTABELLA_HOME", "PORTABELLA_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:

    def test_defaults(self, clean_env):
        cfg = Config()
        assert cfg.BACKEND_URL == DEVELOPMENT_BACKEND_URL
        assert cfg.SIGNATURE_TTL_SECONDS == 240
        assert cfg.REQUEST_TIMEOUT == 30.0
        assert cfg.STORAGE_DIR == Path.home() / ".portabella"

    def test_production_environment(self, clean_env):
        clean_env.setenv("PORTABELLA_ENV", "production")
        assert Config().BACKEND_URL == PRODUCTION_BACKEND_URL

    def test_explicit_backend_url_wins(self, clean_env):
        clean_env.setenv("PORTABELLA_ENV", "production")
        clean_env.setenv("PORTABELLA_BACKEND_URL", "http://staging.test")
        assert Config().BACKEND_URL == "http://staging.test"

    def test_keys_dir_is_created(self, clean_env, tmp_path):
        clean_env.setenv("PORTABELLA_HOME", str(tmp_path / "home"))
        keys_dir = Config().keys_dir
        assert keys_dir == tmp_path / "home" / "keys"
        assert keys_dir.is_dir()


class TestLogging:

    @pytest.fixture
    def root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        root.handlers = []
        yield root
        root.handlers = handlers
        root.setLevel(level)

    def test_installs_single_handler(self, root_logger):
        configure_logging("DEBUG")
        configure_logging("DEBUG")
        ours = [h for h in root_logger.handlers if h.get_name() == LOG_HANDLER_NAME]
        assert len(ours) == 1
        assert isinstance(ours[0], logging.StreamHandler)
        assert root_logger.level == logging.DEBUG

    def test_foreign_handlers_do_not_block_install(self, root_logger):
        foreign = logging.NullHandler()
        root_logger.addHandler(foreign)
        configure_logging("WARNING")
        assert foreign in root_logger.handlers
        assert [h.get_name() for h in root_logger.handlers].count(LOG_HANDLER_NAME) == 1
        assert root_logger.level == logging.WARNING
