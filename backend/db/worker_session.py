"""Worker-safe database session for Celery tasks.

Creates a fresh async engine per call to avoid the 'Future attached
to a different loop' error when asyncpg connections are shared
across event loops in forked Celery workers.
"""

from contextlib import asynccontextmanager

from db.database import create_db_engine, create_session_factory


@asynccontextmanager
async def worker_session():
    """Provide a transactional async session safe for Celery workers.

    Commits when the block exits cleanly, rolls back otherwise.

    Usage:
        async with worker_session() as session:
            result = await session.execute(...)
    """
    engine = create_db_engine()
    session_factory = create_session_factory(engine)
    try:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    finally:
        await engine.dispose()
