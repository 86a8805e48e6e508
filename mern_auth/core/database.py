"""
Database engine and sessions for the local credential store
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
import structlog

from mern_auth.core.config import DATABASE_CONFIG, settings

logger = structlog.get_logger()


def _async_url(url: str) -> str:
    # Plain postgres URLs from container env files need the async driver
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


database_url = _async_url(settings.DATABASE_URL)

if database_url.startswith("postgresql"):
    engine_kwargs = dict(DATABASE_CONFIG)
    engine_kwargs["connect_args"] = {"server_settings": {"application_name": "mern-auth-api"}}
else:
    engine_kwargs = {"echo": DATABASE_CONFIG["echo"]}

engine = create_async_engine(database_url, **engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def check_database_health() -> bool:
    try:
        async with engine.connect() as conn:
            return (await conn.execute(text("SELECT 1"))).scalar() == 1
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False


async def init_database():
    """Create the credential tables at startup"""
    from mern_auth.models import user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized", url=engine.url.render_as_string(hide_password=True))


async def close_database():
    await engine.dispose()
    logger.info("Database connections closed")
