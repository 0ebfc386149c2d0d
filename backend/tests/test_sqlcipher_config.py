import importlib
import os
import sys

import pytest

os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")


def reload_database_module():
    sys.modules.pop("ledgerlink.database", None)
    config_module = sys.modules.get("ledgerlink.config")
    if config_module:
        config_module.get_settings.cache_clear()
        sys.modules.pop("ledgerlink.config", None)
    return importlib.import_module("ledgerlink.database")


def test_missing_database_key_fails_closed(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/ledgerlink.db")
    monkeypatch.setenv("DATABASE_KEY", "")

    with pytest.raises(ValueError, match="DATABASE_KEY must be set"):
        reload_database_module()


def test_sqlcipher_import_failure_fails_closed(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlcipher:///data/ledgerlink.db")
    monkeypatch.setenv("DATABASE_KEY", "test-key")

    real_import_module = importlib.import_module

    def fake_import_module(name, package=None):
        if name == "pysqlcipher3":
            raise ImportError("boom")
        return real_import_module(name, package=package)

    monkeypatch.setattr(importlib, "import_module", fake_import_module)

    with pytest.raises(RuntimeError, match="pysqlcipher3 is required"):
        reload_database_module()


def test_build_sqlcipher_url_injects_encoded_key(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/ledgerlink.db")
    monkeypatch.setenv("DATABASE_KEY", "test-key")

    database_module = reload_database_module()
    rewritten_url = database_module._build_sqlcipher_url(
        "sqlite+pysqlcipher:///data/ledgerlink.db?kdf_iter=64000",
        "test/key with space",
    )

    assert rewritten_url == (
        "sqlite+pysqlcipher://:test%2Fkey%20with%20space@/data/ledgerlink.db?kdf_iter=64000"
    )


def test_build_sqlcipher_url_preserves_existing_password(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/ledgerlink.db")
    monkeypatch.setenv("DATABASE_KEY", "test-key")

    database_module = reload_database_module()
    rewritten_url = database_module._build_sqlcipher_url(
        "sqlite+pysqlcipher://:already-set@/data/ledgerlink.db",
        "new-key",
    )

    assert rewritten_url == "sqlite+pysqlcipher://:already-set@/data/ledgerlink.db"


def test_plain_sqlite_engine_builds_without_py38_flag(monkeypatch):
    from sqlalchemy.dialects.sqlite import pysqlite as sqlite_pysqlite

    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("DATABASE_KEY", "test-key")
    monkeypatch.delattr(sqlite_pysqlite.util, "py38", raising=False)

    database_module = reload_database_module()

    assert database_module.engine.url.database == ":memory:"
    assert not hasattr(sqlite_pysqlite.util, "py38")
