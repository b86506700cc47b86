"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, ``relcascade.toml`` only
contains overrides.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from relcascade.infrastructure.database.store import DEFAULT_CHUNK_SIZE

JournalMode = Literal["DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"]


class DatabaseConfig(BaseModel):
    """[database] section."""

    model_config = {"frozen": True}

    url: str = "sqlite:///relcascade.db"
    echo: bool = False
    foreign_keys: bool = True
    journal_mode: JournalMode = "WAL"


class CascadeConfig(BaseModel):
    """[cascade] section."""

    model_config = {"frozen": True}

    # Keys per IN (...) statement; SQLite allows 999 host parameters by default.
    query_chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1, le=32766)
