"""End-to-end wiring checks against the in-memory demo backend."""

from __future__ import annotations

import pytest

from pgbrowse.config import AppConfig, ConnectionProfileConfig
from pgbrowse.connections import DemoConnectionBackend
from pgbrowse.context import AppContext
from pgbrowse.credentials import InMemoryCredentialStore
from pgbrowse.errors import CredentialNotFoundError, RegistryClosedError
from pgbrowse.models import SessionStatus


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def demo_backend() -> DemoConnectionBackend:
    return DemoConnectionBackend()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore({"demo": "secret"})


@pytest.fixture
def context(demo_backend, store) -> AppContext:
    config = AppConfig(
        profiles=[ConnectionProfileConfig(id="demo", name="Demo")],
        active_profile="demo",
        metadata_ttl=30.0,
    )
    return AppContext.create(config, backend=demo_backend, credentials=store)


@pytest.mark.anyio
async def test_get_metadata_returns_plain_lists(context) -> None:
    metadata = await context.get_metadata("demo")

    tables = [entry["table"] for entry in metadata["tables"]]
    assert tables == ["accounts", "orders", "payments"]
    assert {"schema": "public", "table": "orders", "column": "total", "type": "numeric"} in metadata["columns"]
    assert context.metadata.ttl == 30.0


@pytest.mark.anyio
async def test_metadata_follows_requested_database(context, demo_backend) -> None:
    metadata = await context.get_metadata("demo", "analytics")

    assert {entry["schema"] for entry in metadata["tables"]} == {"analytics"}
    assert demo_backend.opened == [("demo", "analytics")]


@pytest.mark.anyio
async def test_completions_and_queries_share_one_session(context, demo_backend) -> None:
    profile = context.profile("demo")

    suggestions = await context.completions.complete(profile, "SELECT * FROM orders WHERE ")
    result = await context.queries.run(profile, "SELECT 1")

    assert suggestions[0].label == "orders.account_id"
    assert result.rows == ((1,),)
    assert demo_backend.opened == [("demo", "postgres")]


@pytest.mark.anyio
async def test_invalidate_metadata_forces_refresh(context) -> None:
    profile = context.profile("demo")
    first = await context.metadata.get(profile)

    context.invalidate_metadata("demo")

    assert await context.metadata.get(profile) is not first


@pytest.mark.anyio
async def test_remove_profile_disconnects_and_forgets(context, store) -> None:
    session = await context.registry.acquire(context.profile("demo"))
    await context.get_metadata("demo")

    config = await context.remove_profile("demo")

    assert session.status is SessionStatus.CLOSED
    assert config.profiles == []
    assert config.active_profile is None
    assert context.metadata.peek(session.key) is None
    with pytest.raises(CredentialNotFoundError):
        await store.resolve("demo")
    with pytest.raises(ValueError):
        context.profile("demo")


@pytest.mark.anyio
async def test_context_manager_shuts_registry_down(context) -> None:
    async with context:
        session = await context.registry.acquire(context.profile("demo"))

    assert session.status is SessionStatus.CLOSED
    with pytest.raises(RegistryClosedError):
        await context.registry.acquire(context.profile("demo"))
