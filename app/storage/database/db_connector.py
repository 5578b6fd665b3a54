from collections.abc import AsyncGenerator
from typing import Any, Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine.url import make_url, URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from app.core.logger import logger


def _normalize_url(raw: str) -> URL:
    """
    Postgres: URL limpio sin query y con driver asyncpg
    (evita que sslmode/channel_binding lleguen a asyncpg).
    SQLite: fuerza el driver aiosqlite.
    """
    u = make_url(raw)
    backend = u.get_backend_name()

    if backend == "postgresql":
        return URL.create(
            drivername="postgresql+asyncpg",
            username=u.username,
            password=u.password,
            host=u.host,
            port=u.port,
            database=u.database,
        )
    if backend == "sqlite":
        return u.set(drivername="sqlite+aiosqlite")
    return u


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # el driver deja de emitir BEGIN por su cuenta; lo hace _begin_immediate
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _begin_immediate(conn) -> None:
    """
    Take the SQLite write lock when the transaction starts, so reads made
    before the first write (balance checks) are serialized like
    ``SELECT ... FOR UPDATE`` on Postgres.
    """
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owns the async engine and the session factory.

    Built once by the DI container; ``connect`` runs at startup and
    ``disconnect`` at shutdown.
    """

    def __init__(self, url: str, *, echo: bool = False, ssl: bool = False) -> None:
        self.url = _normalize_url(url)
        self.echo = echo
        self.ssl = ssl
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.get_backend_name() == "sqlite"

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    def _engine_kwargs(self) -> dict[str, Any]:
        if self.is_sqlite:
            kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
            if self.url.database in (None, "", ":memory:"):
                # una sola conexión compartida para que la BD en memoria persista
                kwargs["poolclass"] = StaticPool
            return kwargs

        connect_args: dict[str, Any] = {"statement_cache_size": 0}
        if self.ssl:
            connect_args["ssl"] = True
        return {
            "poolclass": NullPool,
            "pool_pre_ping": True,
            "execution_options": {"isolation_level": "READ COMMITTED"},
            "connect_args": connect_args,
        }

    def connect(self) -> None:
        if self._engine is not None:
            return
        engine = create_async_engine(
            self.url.render_as_string(hide_password=False),
            echo=self.echo,
            **self._engine_kwargs(),
        )
        if self.is_sqlite:
            event.listen(engine.sync_engine, "connect", _configure_sqlite_connection)
            event.listen(engine.sync_engine, "begin", _begin_immediate)

        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
            class_=AsyncSession,
        )
        logger.info("[Database] engine ready backend=%s", self.url.get_backend_name())

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("[Database] engine disposed")

    def session(self) -> AsyncSession:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        return self._session_factory()

    async def create_all(self) -> None:
        from app.v1_0.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        from app.v1_0.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    database: Database = request.app.state.container.database()
    session: AsyncSession = database.session()
    try:
        yield session
    finally:
        await session.close()
