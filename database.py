import logging

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import config
from errors import ConstraintViolationError, StorageUnavailableError

logger = logging.getLogger(__name__)

# Bumped whenever the table layout changes; stored in PRAGMA user_version
SCHEMA_VERSION = 1


def make_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_async_engine(url, **kwargs)


engine = make_engine(config.database_url)
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


async def init_db(bind=None):
    """Open or create the store and stamp it with SCHEMA_VERSION.

    A store written by a newer schema is refused rather than downgraded.
    """
    import models  # noqa: F401  (registers the tables on Base.metadata)

    bind = bind or engine
    try:
        async with bind.begin() as conn:
            result = await conn.execute(text("PRAGMA user_version"))
            version = result.scalar() or 0
            if version > SCHEMA_VERSION:
                raise StorageUnavailableError(
                    f"Store schema version {version} is newer than supported version {SCHEMA_VERSION}"
                )
            await conn.run_sync(Base.metadata.create_all)
            if version < SCHEMA_VERSION:
                await conn.execute(text(f"PRAGMA user_version = {SCHEMA_VERSION}"))
                logger.info("Store schema stamped | from=%s to=%s", version, SCHEMA_VERSION)
    except DBAPIError as e:
        raise StorageUnavailableError(f"Cannot open library store: {e}") from e


async def commit(db: AsyncSession) -> None:
    """Commit the session, translating driver errors into library errors."""
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConstraintViolationError(f"Constraint violated: {e.orig}") from e
    except DBAPIError as e:
        await db.rollback()
        raise StorageUnavailableError(f"Cannot write to library store: {e.orig}") from e
