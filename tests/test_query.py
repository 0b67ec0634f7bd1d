"""Tests for the query facade."""

from __future__ import annotations

import pytest

from pgbrowse.errors import QueryExecutionError, SharedTransactionError
from pgbrowse.models import SessionKey
from pgbrowse.query import QueryService
from pgbrowse.sqlintel import MetadataCache


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def metadata(registry) -> MetadataCache:
    return MetadataCache(registry)


@pytest.fixture
def service(registry, metadata) -> QueryService:
    return QueryService(registry, metadata)


@pytest.mark.anyio
async def test_run_requires_sql(service, profile) -> None:
    with pytest.raises(QueryExecutionError):
        await service.run(profile, "   ")


@pytest.mark.anyio
async def test_run_returns_rows_for_select(service, backend, profile) -> None:
    backend.responses = {"FROM accounts": [{"id": 1, "email": "a@example.com"}, {"id": 2, "email": "b@example.com"}]}

    result = await service.run(profile, "SELECT id, email FROM accounts")

    assert result.columns == ("id", "email")
    assert result.rows == ((1, "a@example.com"), (2, "b@example.com"))
    assert result.row_count == 2
    assert result.status == "2 row(s)"
    assert result.elapsed_ms >= 0


@pytest.mark.anyio
async def test_run_returns_status_for_writes(service, backend, profile) -> None:
    result = await service.run(profile, "UPDATE accounts SET active = true")

    assert result.status == "UPDATE"
    assert result.rows == ()
    assert result.row_count is None
    assert backend.connections[0].calls == ["UPDATE accounts SET active = true"]


@pytest.mark.anyio
async def test_run_refuses_transaction_control_on_shared_session(service, backend, profile) -> None:
    with pytest.raises(SharedTransactionError):
        await service.run(profile, "BEGIN; UPDATE accounts SET active = true")

    assert backend.open_calls == []


@pytest.mark.anyio
async def test_ddl_invalidates_metadata_for_the_session(service, metadata, backend, profile) -> None:
    backend.responses = {"pg_tables": [{"schema": "public", "table_name": "accounts"}]}
    before = await metadata.get(profile, "app")

    await service.run(profile, "CREATE TABLE audit (id int)", database="app")
    after = await metadata.get(profile, "app")

    assert after is not before
    assert metadata.peek(SessionKey("p1", "app")) is after


@pytest.mark.anyio
async def test_run_transaction_wraps_statements_on_dedicated_session(service, backend, profile) -> None:
    shared = await service.run(profile, "SELECT 1")

    statuses = await service.run_transaction(
        profile,
        ["INSERT INTO audit VALUES (1)", "UPDATE accounts SET active = false"],
    )

    assert shared.status == "0 row(s)"
    assert statuses == ["INSERT", "UPDATE"]
    private = backend.connections[1]
    assert private.calls == ["BEGIN", "INSERT INTO audit VALUES (1)", "UPDATE accounts SET active = false", "COMMIT"]
    assert private.closed is True
    assert backend.connections[0].closed is False


@pytest.mark.anyio
async def test_run_transaction_rolls_back_on_failure(service, backend, profile) -> None:
    backend.fail_on = {"UPDATE": QueryExecutionError('column "missing" does not exist')}

    with pytest.raises(QueryExecutionError):
        await service.run_transaction(profile, ["INSERT INTO audit VALUES (1)", "UPDATE accounts SET missing = 1"])

    calls = backend.connections[0].calls
    assert calls[-1] == "ROLLBACK"
    assert "COMMIT" not in calls
    assert backend.connections[0].closed is True


@pytest.mark.anyio
async def test_run_transaction_rejects_nested_transaction_control(service, profile) -> None:
    with pytest.raises(QueryExecutionError):
        await service.run_transaction(profile, ["COMMIT"])
