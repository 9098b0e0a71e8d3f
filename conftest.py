import dataclasses
import datetime

import pytest

import core.config
import database
import database.connection
from database.models import TrackedItem
from database.repositories.problem_repository import create_problem

NOW = datetime.datetime(2026, 3, 1, 8, 0, 0)


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh sqlite file per test with the schema created."""
    test_settings = dataclasses.replace(
        core.config.settings,
        db_backend="sqlite",
        db_path=str(tmp_path / "grind_review_test.db"),
    )
    monkeypatch.setattr(database.connection, "settings", test_settings)
    database.create_table()
    return test_settings


@pytest.fixture
def make_problem(db):
    def _make(user_id="42", name="Two Sum", solved_days_ago=30, now=NOW, **overrides):
        fields = {
            "user_id": user_id,
            "problem_name": name,
            "difficulty": "Easy",
            "category": "Arrays",
            "status": "Solved",
            "solved_at": now - datetime.timedelta(days=solved_days_ago),
        }
        fields.update(overrides)
        item = TrackedItem(**fields)
        create_problem(item, now=now)
        return item

    return _make
