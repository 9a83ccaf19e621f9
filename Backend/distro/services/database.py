from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from distro.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
# Objects stay readable after commit; handlers serialize them afterwards
SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


async def get_db() -> AsyncSession:
    """
    Request-scoped session.

    Whatever the handler left pending is committed once it returns and
    rolled back if it raised. Handlers that must make a write durable before
    talking to the catalog again commit explicitly.
    """
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> sessionmaker:
    """Dependency for services that open their own short-lived sessions."""
    return SessionLocal
