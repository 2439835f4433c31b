"""
Tests for the interactive CLI, driven through a scripted input().
"""

from datetime import datetime

import pytest

from visibility import cli


@pytest.fixture
def seeded_engine(engine, insert_rows, monkeypatch):
    insert_rows("portal_users", [
        {"id": "u1", "display_name": "Admin", "api_key": "admin-key", "is_active": True},
    ])
    insert_rows("user_roles", [{"user_id": "u1", "role": "admin"}])
    insert_rows("challenges", [{"id": "C1", "title": "Flooding", "created_at": datetime(2025, 1, 1)}])
    monkeypatch.setattr(cli, "init_engine", lambda: engine)
    return engine


def _script(monkeypatch, lines):
    answers = iter(lines)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))


def test_parse_command():
    assert cli.parse_command("challenges") == ("challenges", 1)
    assert cli.parse_command("pilots 3") == ("pilots", 3)
    with pytest.raises(ValueError):
        cli.parse_command("pilots x")


def test_browse_session(seeded_engine, monkeypatch, capsys):
    _script(monkeypatch, ["admin-key", "list", "challenges", "nope", "quit"])
    cli.main()
    out = capsys.readouterr().out
    assert "Visibility level: global" in out
    assert "budgets" in out
    assert "Flooding" in out
    assert "Unknown collection 'nope'" in out
    assert "Goodbye." in out


def test_login_failure(seeded_engine, monkeypatch, capsys):
    _script(monkeypatch, ["wrong-key"])
    cli.main()
    assert "[ERROR] Login failed." in capsys.readouterr().out
