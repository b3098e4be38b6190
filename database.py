from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy import event
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from fastapi import HTTPException, Request
from typing import AsyncIterator, Optional
import logging

# Configure SQLAlchemy logging to reduce verbosity
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    # The sqlite driver defers BEGIN on its own, which breaks SAVEPOINT;
    # let SQLAlchemy emit BEGIN itself
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """
    Owns the async engine and the session factory.

    Constructed by the process entry point (the FastAPI lifespan or a script)
    and disposed there; request handlers reach it through ``get_db``.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        connect_args = {}
        engine_kwargs = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if ":memory:" in url:
                # One shared connection, otherwise each checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(pool_pre_ping=True, pool_recycle=7200)

        self.engine: AsyncEngine = create_async_engine(
            url,
            echo=echo,
            connect_args=connect_args,
            **engine_kwargs,
        )
        if url.startswith("sqlite"):
            _enable_sqlite_savepoints(self.engine)

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(f"Database engine created for {self.engine.url.get_backend_name()}")

    async def create_all(self) -> None:
        """Create missing tables (development and tests; production uses alembic)"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


def get_database(request: Request) -> Database:
    db: Optional[Database] = getattr(request.app.state, "db", None)
    if db is None:
        raise RuntimeError("Database not initialised; is the application lifespan running?")
    return db


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency function to get database session
    Usage in FastAPI routes:
        async def my_route(db: AsyncSession = Depends(get_db)):

    The session is committed when the handler returns and rolled back on error.
    """
    session = get_database(request).session_factory()
    try:
        yield session
        await session.commit()
    except HTTPException:
        await session.rollback()
        raise
    except Exception as e:
        await session.rollback()
        if not getattr(e, "status_code", None):
            logger.error(f"Database error in session: {str(e)}", exc_info=True)
        raise
    finally:
        try:
            await session.close()
        except Exception as close_error:
            logger.warning(f"Error closing session: {close_error}")
