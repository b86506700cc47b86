"""Tests for the config section models."""

import pytest
from pydantic import ValidationError

from relcascade.config.models import CascadeConfig, DatabaseConfig
from relcascade.infrastructure.database.store import DEFAULT_CHUNK_SIZE


class TestDatabaseConfig:
    def test_defaults(self) -> None:
        cfg = DatabaseConfig()
        assert cfg.url == "sqlite:///relcascade.db"
        assert cfg.echo is False
        assert cfg.foreign_keys is True
        assert cfg.journal_mode == "WAL"

    def test_unknown_journal_mode_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(journal_mode="FAST")  # type: ignore[arg-type]

    def test_frozen(self) -> None:
        cfg = DatabaseConfig()
        with pytest.raises(ValidationError):
            cfg.echo = True  # type: ignore[misc]


class TestCascadeConfig:
    def test_default_chunk_size(self) -> None:
        assert CascadeConfig().query_chunk_size == DEFAULT_CHUNK_SIZE

    @pytest.mark.parametrize("size", [0, -1, 40000])
    def test_chunk_size_bounds(self, size: int) -> None:
        with pytest.raises(ValidationError):
            CascadeConfig(query_chunk_size=size)
