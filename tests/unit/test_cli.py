from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from fintracker.cli import build_parser, main


@pytest.fixture()
def database_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    db_path = tmp_path / "fintracker.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("JWT_SECRET", "cli-secret")
    monkeypatch.setenv("FINTRACKER_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("POSTGRES_URL", raising=False)
    monkeypatch.delenv("FINTRACKER_CONFIG", raising=False)
    return db_path


def test_init_db_creates_schema(database_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["init-db"])
    captured = capsys.readouterr()
    assert "[fintracker] init-db status=ok backend=sqlite" in captured.out

    engine = create_engine(f"sqlite:///{database_env}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"users", "categories", "transactions"} <= tables


def test_init_db_is_repeatable(database_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["init-db"])
    main(["init-db"])
    assert capsys.readouterr().out.count("status=ok") == 2


def test_missing_secret_exits(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("FINTRACKER_CONFIG", raising=False)
    with pytest.raises(SystemExit) as excinfo:
        main(["init-db"])
    assert excinfo.value.code == 2
    assert "JWT secret is required" in capsys.readouterr().err


def test_serve_defaults() -> None:
    args = build_parser().parse_args(["serve"])
    assert args.cmd == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080
    assert args.json_logs is None


def test_serve_hands_app_to_uvicorn(
    database_env: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    uvicorn = pytest.importorskip("uvicorn")
    calls: list[dict] = []

    def fake_run(app, **kwargs):
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(uvicorn, "run", fake_run)
    main(["serve", "--port", "9090"])
    assert calls and calls[0]["port"] == 9090
    assert calls[0]["app"].state.settings.jwt_secret == "cli-secret"
    assert "[fintracker] serve host=127.0.0.1 port=9090" in capsys.readouterr().out


def test_subcommand_is_required(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 2
    assert "required" in capsys.readouterr().err


def test_schema_links_rows_by_foreign_key(database_env: Path) -> None:
    main(["init-db"])
    engine = create_engine(f"sqlite:///{database_env}")
    try:
        foreign_keys = inspect(engine).get_foreign_keys("transactions")
    finally:
        engine.dispose()
    referred = sorted(fk["referred_table"] for fk in foreign_keys)
    assert referred == ["categories", "users"]
