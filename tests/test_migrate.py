import logging
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect, text

import migrate
from orgschema.config import load_settings


@pytest.fixture()
def database_url(tmp_path: Path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'orgschema-cli-test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.delenv("BOOTSTRAP_PLAN", raising=False)
    monkeypatch.chdir(tmp_path)
    return url


def _with_users(url: str) -> None:
    engine = create_engine(url)
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY, username TEXT NOT NULL)"))
    engine.dispose()


def _tables(url: str) -> set[str]:
    engine = create_engine(url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def test_run_succeeds_and_is_repeatable(database_url):
    _with_users(database_url)

    assert migrate.main([]) == 0
    assert migrate.main([]) == 0
    assert {"organizations", "organization_users"} <= _tables(database_url)


def test_run_failure_exits_non_zero(database_url, capsys):
    assert migrate.main([]) == 1

    err = capsys.readouterr().err
    assert "Schema bootstrap failed" in err
    assert "users" in err
    assert _tables(database_url) == {"organizations"}


def test_status_lists_tables(database_url, capsys):
    _with_users(database_url)

    assert migrate.main(["--status"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "organizations: missing",
        "organization_users: missing",
    ]

    migrate.main([])
    capsys.readouterr()

    assert migrate.main(["--status"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "organizations: present",
        "organization_users: present",
    ]


def test_dry_run_prints_ddl_without_touching_database(database_url, capsys):
    assert migrate.main(["--dry-run"]) == 0

    out = capsys.readouterr().out
    assert "CREATE TABLE IF NOT EXISTS organizations" in out
    assert "CREATE TABLE IF NOT EXISTS organization_users" in out
    assert _tables(database_url) == set()


def test_plan_can_come_from_environment(database_url, monkeypatch, capsys):
    monkeypatch.setenv("BOOTSTRAP_PLAN", "opportunities")

    assert migrate.main(["--dry-run"]) == 0
    assert "CREATE TABLE IF NOT EXISTS opportunities" in capsys.readouterr().out


def test_unknown_plan_is_rejected(database_url):
    with pytest.raises(SystemExit) as excinfo:
        migrate.main(["--plan", "payments"])
    assert excinfo.value.code == 2


def test_alembic_rejects_other_plans(database_url):
    with pytest.raises(SystemExit) as excinfo:
        migrate.main(["--alembic", "--plan", "opportunities"])
    assert excinfo.value.code == 2


def test_alembic_upgrade_creates_tables_once(database_url):
    _with_users(database_url)

    assert migrate.main(["--alembic"]) == 0
    assert migrate.main(["--alembic"]) == 0

    assert {"organizations", "organization_users", "alembic_version"} <= _tables(database_url)

    engine = create_engine(database_url)
    with engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
    engine.dispose()
    assert version == "0001_organizations"


def test_alembic_upgrade_on_bootstrapped_database(database_url):
    _with_users(database_url)
    assert migrate.main([]) == 0

    migrate.run_migrations(load_settings())

    assert {"organizations", "organization_users", "alembic_version"} <= _tables(database_url)


def test_missing_database_url_is_reported(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("BOOTSTRAP_PLAN", raising=False)
    monkeypatch.chdir(tmp_path)

    assert migrate.main([]) == 1
    assert "DATABASE_URL is required" in capsys.readouterr().err


def test_unknown_plan_from_environment_is_reported(database_url, monkeypatch, capsys):
    monkeypatch.setenv("BOOTSTRAP_PLAN", "payments")

    assert migrate.main([]) == 1
    assert "Unknown bootstrap plan 'payments'" in capsys.readouterr().err
    assert _tables(database_url) == set()


def test_status_against_unreachable_database_is_reported(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'missing-dir' / 'db.sqlite'}")
    monkeypatch.delenv("BOOTSTRAP_PLAN", raising=False)
    monkeypatch.chdir(tmp_path)

    assert migrate.main(["--status"]) == 1
    assert "Schema bootstrap failed" in capsys.readouterr().err


def test_alembic_without_users_is_reported(database_url, capsys, caplog):
    caplog.set_level(logging.ERROR, logger="orgschema")

    assert migrate.main(["--alembic"]) == 1

    assert "requires missing table(s): users" in capsys.readouterr().err
    failures = [r for r in caplog.records if getattr(r, "event", None) == "bootstrap_failed"]
    assert len(failures) == 1
    assert failures[0].getMessage() == "Schema bootstrap failed"
    assert "MissingPrerequisiteError" in failures[0].reason
