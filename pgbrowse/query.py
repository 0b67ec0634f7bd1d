"""Query execution services for command handlers."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .errors import ConnectionLostError, QueryExecutionError, SharedTransactionError
from .models import ConnectionProfile
from .session import Session, SessionRegistry
from .sqlintel.metadata import MetadataCache
from .sqlintel.statements import classify, has_transaction_control, is_schema_changing

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized query output returned to the caller."""

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    status: str
    elapsed_ms: int
    row_count: int | None = None


class QueryService:
    """Runs SQL through the shared session registry.

    Transaction control is refused on shared sessions because every other
    user of the session would be pulled into the transaction; transactional
    work goes through ``run_transaction`` on a dedicated session instead.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        metadata: MetadataCache | None = None,
        *,
        dialect: str = "postgres",
    ) -> None:
        self._registry = registry
        self._metadata = metadata
        self._dialect = dialect

    async def run(
        self,
        profile: ConnectionProfile,
        sql: str,
        *params: object,
        database: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> QueryResult:
        statement = sql.strip()
        if not statement:
            raise QueryExecutionError("Provide SQL to execute.")
        infos = classify(statement, dialect=self._dialect)
        if has_transaction_control(infos):
            raise SharedTransactionError(
                "Transaction control is not allowed on a shared session; use run_transaction()."
            )
        started = time.perf_counter()
        session = await self._registry.acquire(profile, database, cancel=cancel)
        if len(infos) == 1 and infos[0].returns_rows:
            records = await self._registry.query(session, statement, *params, cancel=cancel)
            columns, rows = _records_to_rows(records)
            status = f"{len(rows)} row(s)"
            row_count: int | None = len(rows)
        else:
            status = await self._registry.execute(session, statement, *params, cancel=cancel)
            columns, rows, row_count = (), (), None
        if is_schema_changing(infos) and self._metadata is not None:
            self._metadata.invalidate(session.key)
        return QueryResult(
            columns=columns,
            rows=rows,
            status=status,
            elapsed_ms=int((time.perf_counter() - started) * 1000),
            row_count=row_count,
        )

    async def run_transaction(
        self,
        profile: ConnectionProfile,
        statements: Sequence[str],
        *,
        database: str | None = None,
    ) -> list[str]:
        """Run the statements atomically on a private session; returns status tags."""

        infos = [info for statement in statements for info in classify(statement, dialect=self._dialect)]
        if has_transaction_control(infos):
            raise QueryExecutionError("Statements must not contain their own transaction control.")
        statuses: list[str] = []
        async with self._registry.dedicated(profile, database) as session:
            await self._registry.execute(session, "BEGIN")
            try:
                for statement in statements:
                    statuses.append(await self._registry.execute(session, statement))
            except Exception:
                await self._rollback(session)
                raise
            await self._registry.execute(session, "COMMIT")
            if is_schema_changing(infos) and self._metadata is not None:
                self._metadata.invalidate(session.key)
        return statuses

    async def _rollback(self, session: Session) -> None:
        try:
            await self._registry.execute(session, "ROLLBACK")
        except (ConnectionLostError, QueryExecutionError):
            LOG.debug("Rollback failed", extra={"session_key": str(session.key)}, exc_info=True)


def _records_to_rows(
    records: Iterable[Mapping[str, Any]],
) -> tuple[tuple[str, ...], tuple[tuple[object, ...], ...]]:
    rows: list[tuple[object, ...]] = []
    columns: tuple[str, ...] = ()
    for record in records:
        if not columns:
            columns = tuple(str(key) for key in record.keys())
        if not columns:
            continue
        rows.append(tuple(record[key] for key in columns))
    return columns, tuple(rows)


__all__ = ["QueryResult", "QueryService"]
