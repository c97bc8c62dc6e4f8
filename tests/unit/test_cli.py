"""Tests for the command line entry point"""

import pytest
from click.testing import CliRunner
from sqlalchemy.orm import sessionmaker

from warden.cli import cli
from warden.database import database


@pytest.fixture
def runner(db, monkeypatch):
    """CLI runner bound to the test database"""
    monkeypatch.setattr(database, "engine", db.get_bind())
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=db.get_bind()))
    return CliRunner()


@pytest.mark.unit
def test_init_db(runner):
    result = runner.invoke(cli, ["init-db"])

    assert result.exit_code == 0
    assert "Database tables created" in result.output


@pytest.mark.unit
def test_sessions_lists_active_sessions(runner, client, auth_headers, user):
    sessions = client.get("/api/v1/sessions", headers=auth_headers).json()

    result = runner.invoke(cli, ["sessions", user.email.upper()])

    assert result.exit_code == 0
    assert sessions[0]["id"] in result.output


@pytest.mark.unit
def test_sessions_unknown_user(runner):
    result = runner.invoke(cli, ["sessions", "nobody@example.com"])

    assert result.exit_code != 0
    assert "No user with email nobody@example.com" in result.output
