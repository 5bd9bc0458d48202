"""Shared pytest fixtures for the approval flow engine test suite.

Provides:
- In-memory async SQLite database (no PostgreSQL needed for tests)
- AsyncSession factory
- FastAPI test client (httpx.AsyncClient)
- Pre-seeded identity directory (departments, users, roles)
- A helper that creates (and publishes) flow definitions
"""

import os
from types import SimpleNamespace
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from db.base import Base  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """A fresh in-memory database per test; one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session that commits (so the app can read data) and cleans up after."""
    async_session_factory = sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with async_session_factory() as session:
        yield session
        await session.commit()

    # Clean up all data after each test
    async with db_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db_engine):
    """Create a FastAPI app instance wired to the test database."""
    import db.database as db_mod
    from app.dependencies import get_db
    from app.main import create_app

    session_factory = sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    # Patch the database module so health checks hit the test engine
    original_engine = db_mod.engine
    original_session = db_mod.AsyncSessionLocal
    db_mod.engine = db_engine
    db_mod.AsyncSessionLocal = session_factory

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    test_app = create_app()
    test_app.dependency_overrides[get_db] = override_get_db

    yield test_app

    test_app.dependency_overrides.clear()
    db_mod.engine = original_engine
    db_mod.AsyncSessionLocal = original_session


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def directory(db_session):
    """Seed a small organisation.

    Engineering (leader: bob)
        alice   initiator
        bob     manager, department leader
        carol   manager
        erin    finance
        frank   manager, inactive
    Operations (no leader)
        dave    admin
        gina    (no roles)
    """
    from db.models.department import Department
    from db.models.role import Role
    from db.models.user import User

    engineering = Department(name="Engineering")
    operations = Department(name="Operations")
    db_session.add_all([engineering, operations])
    await db_session.flush()

    manager = Role(name="Manager", slug="manager")
    admin = Role(name="Administrator", slug="admin")
    finance = Role(name="Finance", slug="finance")
    db_session.add_all([manager, admin, finance])
    await db_session.flush()

    def user(username: str, dept: Department, roles: list, active: bool = True) -> User:
        return User(
            username=username,
            name=username.title(),
            dept_id=dept.id,
            is_active=active,
            roles=roles,
        )

    people = {
        "alice": user("alice", engineering, []),
        "bob": user("bob", engineering, [manager]),
        "carol": user("carol", engineering, [manager]),
        "erin": user("erin", engineering, [finance]),
        "frank": user("frank", engineering, [manager], active=False),
        "dave": user("dave", operations, [admin]),
        "gina": user("gina", operations, []),
    }
    # Insert one at a time so created_at ordering is stable
    for u in people.values():
        db_session.add(u)
        await db_session.flush()

    engineering.leader_id = people["bob"].id
    await db_session.flush()
    await db_session.commit()

    return SimpleNamespace(
        engineering=engineering,
        operations=operations,
        manager_role=manager,
        admin_role=admin,
        finance_role=finance,
        **people,
    )


@pytest.fixture
def make_definition(db_session):
    """Factory creating a flow definition with node configs, published by default."""
    from services.flow_definition_service import FlowDefinitionService

    async def _make(
        graph: dict,
        configs: Optional[list] = None,
        publish: bool = True,
        code: Optional[str] = None,
        name: str = "Expense approval",
        category_id: Optional[str] = None,
    ):
        from uuid import uuid4

        svc = FlowDefinitionService(db_session)
        definition = await svc.create_definition(
            code=code or f"flow-{uuid4().hex[:8]}",
            name=name,
            graph=graph,
            category_id=category_id,
        )
        if configs:
            await svc.save_node_configs(definition.id, configs)
        if publish:
            await svc.publish(definition.id)
        await db_session.commit()
        return definition

    return _make
