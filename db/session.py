from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bot.config import BotConfig
from db.models import Base


log = logging.getLogger("guildvault.db")

MAX_REDACT_COLLECTION_ITEMS = 20


def _redact_sql_scalar(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, bool):
        return "<bool>"
    if isinstance(value, int):
        # Snowflakes and timestamps are not sensitive and help when debugging.
        return value
    if isinstance(value, (str, bytes, bytearray, memoryview)):
        return f"<redacted len={len(value)}>"
    if isinstance(value, (datetime, date)):
        return "<datetime>"
    return f"<{value.__class__.__name__}>"


def redact_sql_parameters(parameters: object, *, _depth: int = 0) -> object:
    if _depth >= 4:
        return "<max-depth>"

    if isinstance(parameters, dict):
        out: dict[str, object] = {}
        for index, (key, value) in enumerate(parameters.items()):
            if index >= MAX_REDACT_COLLECTION_ITEMS:
                out["..."] = f"+{len(parameters) - MAX_REDACT_COLLECTION_ITEMS} more"
                break
            out[str(key)] = redact_sql_parameters(value, _depth=_depth + 1)
        return out

    if isinstance(parameters, (list, tuple)):
        values = [redact_sql_parameters(value, _depth=_depth + 1) for value in parameters[:MAX_REDACT_COLLECTION_ITEMS]]
        if len(parameters) > MAX_REDACT_COLLECTION_ITEMS:
            values.append(f"... +{len(parameters) - MAX_REDACT_COLLECTION_ITEMS} more")
        return tuple(values) if isinstance(parameters, tuple) else values

    return _redact_sql_scalar(parameters)


class SessionManager:
    def __init__(self, config: BotConfig):
        self._engine = create_async_engine(
            config.database_url,
            echo=config.db_echo,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        self._install_sql_logging()

    @property
    def engine(self):
        return self._engine

    def _install_sql_logging(self) -> None:
        @event.listens_for(self._engine.sync_engine, "before_cursor_execute")
        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if not log.isEnabledFor(logging.DEBUG):
                return
            context._query_started_at = time.perf_counter()
            log.debug("[to-db] SQL=%s params=%s", statement, redact_sql_parameters(parameters))

        @event.listens_for(self._engine.sync_engine, "after_cursor_execute")
        def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if not log.isEnabledFor(logging.DEBUG):
                return
            started_at = getattr(context, "_query_started_at", None)
            if isinstance(started_at, float):
                log.debug("[from-db] rows=%s took=%.2fms", cursor.rowcount, (time.perf_counter() - started_at) * 1000)
            else:
                log.debug("[from-db] rows=%s", cursor.rowcount)

        @event.listens_for(self._engine.sync_engine, "handle_error")
        def on_sqlalchemy_error(exception_context):
            log.error("[from-db] query failed: %s", exception_context.original_exception)

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def dispose(self) -> None:
        await self._engine.dispose()
