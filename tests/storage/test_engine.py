"""Tests for engine creation and SQLite pragmas."""

from pathlib import Path

from sqlalchemy import text

from relcascade import RelcascadeSettings, create_async_db_engine, create_db_engine


def _settings(tmp_path: Path, **database: object) -> RelcascadeSettings:
    return RelcascadeSettings(database={"url": f"sqlite:///{tmp_path / 'p.db'}", **database})


class TestCreateDbEngine:
    def test_default_pragmas(self, tmp_path: Path) -> None:
        engine = create_db_engine(_settings(tmp_path))
        try:
            with engine.connect() as conn:
                assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
                assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
        finally:
            engine.dispose()

    def test_configured_pragmas(self, tmp_path: Path) -> None:
        engine = create_db_engine(
            _settings(tmp_path, foreign_keys=False, journal_mode="DELETE")
        )
        try:
            with engine.connect() as conn:
                assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 0
                assert conn.execute(text("PRAGMA journal_mode")).scalar() == "delete"
        finally:
            engine.dispose()


class TestCreateAsyncDbEngine:
    def test_driver_rewritten(self, tmp_path: Path) -> None:
        engine = create_async_db_engine(_settings(tmp_path))
        assert engine.url.drivername == "sqlite+aiosqlite"
        assert engine.url.database == str(tmp_path / "p.db")

    def test_explicit_driver_kept(self, tmp_path: Path) -> None:
        url = f"sqlite+aiosqlite:///{tmp_path / 'q.db'}"
        engine = create_async_db_engine(RelcascadeSettings(database={"url": url}))
        assert engine.url.drivername == "sqlite+aiosqlite"
