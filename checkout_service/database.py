import logging

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

Base = declarative_base()


def _is_sqlite_memory(database_url: str) -> bool:
    if not database_url.startswith("sqlite"):
        return False
    return ":memory:" in database_url or database_url.rstrip("/").endswith(":")


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    if _is_sqlite_memory(database_url):
        # every session must see the same in-memory database
        kwargs.setdefault("poolclass", StaticPool)
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_async_engine(database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def init_db(engine: AsyncEngine) -> None:
    # imported for its side effect of registering the tables on Base
    from checkout_service import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready.")
