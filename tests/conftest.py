"""Shared pytest fixtures for nounapi tests."""

from __future__ import annotations

import time
from typing import Any

import pytest

from nounapi import APIConfig, VerbContext, create_api_engine
from nounapi.engine import APIEngine


class FrozenTime:
    """Stands in for ``time.time``; only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def complete_todo(ctx: VerbContext) -> Any:
    return await ctx.db["Todo"].update(ctx.id, {"completed": True})


def archive_todo(ctx: VerbContext) -> Any:
    # Sync handler returning the accessor coroutine
    return ctx.db["Todo"].update(ctx.id, {"status": "archived"})


def explode_todo(ctx: VerbContext) -> None:
    raise RuntimeError("database password is hunter2")


TODO_NOUNS: dict[str, dict[str, str]] = {
    "Todo": {
        "title": "string",
        "completed": "boolean",
        "priority": "number?",
        "status": "active | archived",
    },
    "Category": {"name": "string!", "tags": "string[]"},
}


@pytest.fixture
def frozen_time(monkeypatch: pytest.MonkeyPatch) -> FrozenTime:
    """Freeze wall-clock time for code that reads ``time.time``."""
    frozen = FrozenTime()
    monkeypatch.setattr(time, "time", frozen)
    return frozen


@pytest.fixture
def todo_nouns() -> dict[str, dict[str, str]]:
    return {name: dict(fields) for name, fields in TODO_NOUNS.items()}


@pytest.fixture
def todo_verbs() -> dict[str, dict[str, Any]]:
    return {"Todo": {"complete": complete_todo, "archive": archive_todo, "explode": explode_todo}}


@pytest.fixture
def engine(
    todo_nouns: dict[str, dict[str, str]], todo_verbs: dict[str, dict[str, Any]]
) -> APIEngine:
    """Engine without auth, CORS or rate limiting."""
    return create_api_engine(APIConfig(nouns=todo_nouns, verbs=todo_verbs))
