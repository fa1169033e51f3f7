from __future__ import annotations
from typing import AsyncGenerator
from sqlalchemy import event, pool
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from elderpoints.config import settings

class Base(DeclarativeBase):
    pass

_is_sqlite = settings.database_url.startswith("sqlite")

# aiosqlite connections are bound to the loop that opened them, so no pooling there
engine = create_async_engine(
    settings.database_url,
    future=True,
    echo=False,
    **({"poolclass": pool.NullPool} if _is_sqlite else {}),
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

if _is_sqlite:
    # pysqlite defers BEGIN until the first DML, which breaks SAVEPOINT.
    # Take the write lock up front so concurrent writers queue on busy_timeout.
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session

def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return SessionLocal
