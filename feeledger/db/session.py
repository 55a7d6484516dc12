import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Sequence, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError

from feeledger.core.config import settings
from feeledger.core.exceptions import ConflictError, LedgerTimeoutError
from feeledger.core.locks import ledger_locks

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _engine_options(url: str) -> Dict[str, Any]:
    # pool_pre_ping: check connection is alive before use (avoids "connection is closed" errors
    # when DB or network closed idle connections).
    # pool_recycle: discard connections after this many seconds to avoid stale connections.
    options: Dict[str, Any] = {
        "echo": False,
        "future": True,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    if not url.startswith("sqlite"):
        options["pool_timeout"] = settings.db_pool_timeout_seconds
    if url.startswith("postgresql+asyncpg"):
        # Driver-level bound on every statement
        options["connect_args"] = {"command_timeout": settings.ledger_operation_timeout_seconds}
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

if settings.read_replica_database_url:
    replica_engine = create_async_engine(
        settings.read_replica_database_url,
        **_engine_options(settings.read_replica_database_url),
    )
    ReadSessionLocal = async_sessionmaker(bind=replica_engine, class_=AsyncSession, expire_on_commit=False)
else:
    ReadSessionLocal = AsyncSessionLocal

Base = declarative_base()


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


async def get_read_db() -> AsyncSession:
    """Session for reporting reads; may lag the primary briefly."""
    async with ReadSessionLocal() as session:
        yield session


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    readonly: bool = False,
    timeout: Optional[float] = None,
    lock_keys: Sequence[Hashable] = (),
) -> T:
    """
    Run ``work`` as one all-or-nothing unit on ``db``.

    ``lock_keys`` are held (in the given order) from before ``work`` starts until the
    commit or rollback has finished, so the next holder always reads committed state.
    The unit, lock waits and commit included, is bounded by ``timeout`` seconds. On
    timeout, error or cancellation the session is rolled back so no partial state
    survives. Read-only units are rolled back instead of committed.
    """
    limit = timeout if timeout is not None else settings.ledger_operation_timeout_seconds

    async def _unit() -> T:
        async with AsyncExitStack() as stack:
            for key in lock_keys:
                await stack.enter_async_context(ledger_locks.hold(key))
            try:
                result = await work()
                if readonly:
                    await db.rollback()
                else:
                    await db.commit()
                return result
            except BaseException:
                await db.rollback()
                raise

    try:
        return await asyncio.wait_for(_unit(), timeout=limit)
    except asyncio.TimeoutError:
        await db.rollback()
        logger.warning(f"Ledger operation exceeded {limit}s; rolled back")
        raise LedgerTimeoutError()
    except StaleDataError:
        raise ConflictError("Record was modified concurrently; retry the request")
    except OperationalError as e:
        # SQLite reports lock waits as OperationalError; PostgreSQL lock_timeout likewise
        if "locked" in str(e).lower() or "timeout" in str(e).lower():
            raise LedgerTimeoutError()
        raise
