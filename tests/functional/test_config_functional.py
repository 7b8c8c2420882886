"""Functional tests for configuration loading and storage error translation."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from formbank import config as config_module
from formbank.logic.errors import Conflict, Fatal, storage_errors


def test_environment_overrides_config_file(tmp_path, monkeypatch):
    root = tmp_path / "formbank_config.json"
    root.write_text(json.dumps({"database": {"dsn": "sqlite:///file.db"}, "ids": {"pad_width": 5}}))
    monkeypatch.setattr(config_module, "ROOT_CONFIG", root)
    monkeypatch.setattr(config_module, "CONFIG_DIR", tmp_path / "config")
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("STATS_BATCH_SIZE", "50")

    cfg = config_module.load_config()

    assert cfg.database.dsn == "sqlite:///file.db"
    assert cfg.ids.pad_width == 5
    assert cfg.statistics.batch_size == 50
    assert cfg.pagination.max_limit == 1000


def test_text_file_overrides_root_config(tmp_path, monkeypatch):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "pagination.max_limit").write_text("25\n")
    monkeypatch.setattr(config_module, "ROOT_CONFIG", tmp_path / "missing.json")
    monkeypatch.setattr(config_module, "CONFIG_DIR", tmp_path / "config")
    monkeypatch.delenv("PAGINATION_MAX_LIMIT", raising=False)

    assert config_module.load_config().pagination.max_limit == 25


def test_invalid_values_are_rejected(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "ROOT_CONFIG", tmp_path / "missing.json")
    monkeypatch.setenv("STATS_BATCH_SIZE", "0")
    with pytest.raises(PydanticValidationError):
        config_module.load_config()


def test_storage_errors_translation():
    with pytest.raises(Conflict):
        with storage_errors("insert"):
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
    with pytest.raises(Conflict):
        with storage_errors("update"):
            raise OperationalError("UPDATE", {}, Exception("database is locked"))
    with pytest.raises(Fatal):
        with storage_errors("select"):
            raise OperationalError("SELECT", {}, Exception("no such table: question"))
