"""Tests for the Querier implementations."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from mastara.db.querier import PoolQuerier, Querier, TxQuerier

STATEMENT = text("SELECT :value AS value")


def _result(rows, rowcount=1):
    result = MagicMock(name="CursorResult")
    result.all.return_value = rows
    result.first.return_value = rows[0] if rows else None
    result.rowcount = rowcount
    return result


class TestTxQuerier:
    """Tests for the transaction-bound querier."""

    def test_satisfies_protocol(self, connection):
        assert isinstance(TxQuerier(connection), Querier)

    @pytest.mark.asyncio
    async def test_query_row_returns_first_row_without_commit(self, connection):
        connection.execute.return_value = _result(["first", "second"])
        querier = TxQuerier(connection)

        row = await querier.query_row(STATEMENT, {"value": 1})

        assert row == "first"
        connection.execute.assert_awaited_once_with(STATEMENT, {"value": 1})
        connection.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_execute_returns_rowcount(self, connection):
        connection.execute.return_value = _result([], rowcount=3)
        assert await TxQuerier(connection).execute(STATEMENT) == 3
        connection.execute.assert_awaited_once_with(STATEMENT, None)

    @pytest.mark.asyncio
    async def test_query_returns_all_rows(self, connection):
        connection.execute.return_value = _result(["a", "b"])
        assert await TxQuerier(connection).query(STATEMENT) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_errors_propagate(self, connection):
        connection.execute.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError, match="boom"):
            await TxQuerier(connection).query(STATEMENT)


class TestPoolQuerier:
    """Tests for the pooled, per-call committing querier."""

    def test_satisfies_protocol(self, engine):
        assert isinstance(PoolQuerier(engine), Querier)

    @pytest.mark.asyncio
    async def test_query_commits_and_releases(self, engine, connection):
        connection.execute.return_value = _result(["a"])

        rows = await PoolQuerier(engine).query(STATEMENT, {"value": 1})

        assert rows == ["a"]
        connection.commit.assert_awaited_once()
        connection.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_query_row_empty_is_none(self, engine, connection):
        connection.execute.return_value = _result([])
        assert await PoolQuerier(engine).query_row(STATEMENT) is None

    @pytest.mark.asyncio
    async def test_execute_returns_rowcount(self, engine, connection):
        connection.execute.return_value = _result([], rowcount=2)
        assert await PoolQuerier(engine).execute(STATEMENT) == 2
        connection.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_skips_commit_but_releases(self, engine, connection):
        connection.execute.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await PoolQuerier(engine).query(STATEMENT)

        connection.commit.assert_not_awaited()
        connection.close.assert_awaited_once()
