from __future__ import annotations

import logging
from typing import Any, cast

import pytest
from sqlalchemy.exc import OperationalError

from bookmark_backend.db import run_in_transaction


class _BrokenSession:
    def __init__(self) -> None:
        self.rollbacks = 0
        self.commits = 0

    def in_transaction(self) -> bool:
        return True

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1
        raise OperationalError("ROLLBACK", {}, Exception("connection lost"))


@pytest.mark.anyio
async def test_failed_rollback_is_logged_and_original_error_propagates(
    caplog: pytest.LogCaptureFixture,
) -> None:
    session = _BrokenSession()

    async def _apply() -> None:
        raise RuntimeError("write failed")

    with caplog.at_level(logging.WARNING, logger="bookmark_backend.db"):
        with pytest.raises(RuntimeError, match="write failed"):
            await run_in_transaction(cast(Any, session), _apply)

    assert session.rollbacks == 1
    assert session.commits == 0
    assert any("rollback" in r.getMessage() for r in caplog.records)


@pytest.mark.anyio
async def test_autobegun_transaction_is_committed() -> None:
    session = _BrokenSession()

    async def _apply() -> str:
        return "ok"

    assert await run_in_transaction(cast(Any, session), _apply) == "ok"
    assert session.commits == 1
    assert session.rollbacks == 0
