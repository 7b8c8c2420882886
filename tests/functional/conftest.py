"""Functional test bootstrap.

Points the service at a file-backed SQLite database under ``tmp/`` before
anything reads configuration, applies the SQLite migrations once per session
and resets every table (and the ID counters) before each test.
"""

from __future__ import annotations

import os
import pathlib

import pytest

_ROOT = pathlib.Path(__file__).resolve().parents[2]
_DB_FILE = _ROOT / "tmp" / "functional_tests.db"
_DB_FILE.parent.mkdir(parents=True, exist_ok=True)
if _DB_FILE.exists():
    _DB_FILE.unlink()

# File-backed so worker threads in concurrency tests see one database
os.environ["TEST_DATABASE_URL"] = f"sqlite+pysqlite:///{_DB_FILE}"
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
# Disable app startup auto-migrations; the session fixture applies them
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"

_TABLES = ["submission", "form_question", "form", "option_label_history", "question_option", "question"]


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap():
    """Session-level bootstrap: apply migrations once for the shared DB."""
    from formbank.config import get_config
    from formbank.db.base import get_engine
    from formbank.db.migrations_runner import apply_migrations

    get_config.cache_clear()
    engine = get_engine()
    apply_migrations(engine, migrations_dir=_ROOT / "sqlite_migrations")
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_db(functional_sqlite_bootstrap):
    """Empty every table, zero the counters and drop buffered events."""
    from sqlalchemy import text

    from formbank.logic import events

    with functional_sqlite_bootstrap.begin() as conn:
        for table in _TABLES:
            conn.execute(text(f"DELETE FROM {table}"))
        conn.execute(text("UPDATE id_counter SET current_value = 0"))
    events.get_buffered_events(clear=True)
    yield


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from formbank import create_app

    with TestClient(create_app()) as c:
        yield c


@pytest.fixture
def priority_question():
    from formbank.logic.repository_questions import create_question

    return create_question(question_text="Priority?", question_type="select", options=["High", "Low"])


@pytest.fixture
def priority_form(priority_question):
    from formbank.logic.repository_forms import create_form

    return create_form(title="Triage", questions=[priority_question["question_id"]])
