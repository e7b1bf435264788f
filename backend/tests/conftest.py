"""Pytest configuration and fixtures for FinOps Autopilot tests."""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import timedelta  # noqa: E402
from typing import Any, AsyncGenerator, Awaitable, Callable  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from finops_agent.core.database import Base, get_db  # noqa: E402
from finops_agent.core.timeutils import utcnow  # noqa: E402
from finops_agent.main import app  # noqa: E402
from finops_agent.models import (  # noqa: E402
    AutoscalingGroup,
    CacheCluster,
    ElasticIp,
    Instance,
    RdsInstance,
    Snapshot,
    Volume,
)

# Use SQLite in-memory database for tests (faster and no setup needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

AddResource = Callable[..., Awaitable[Any]]


@pytest.fixture
async def engine():
    """Create async engine for tests with SQLite in-memory database."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,  # StaticPool for in-memory SQLite
        connect_args={"check_same_thread": False},  # Required for SQLite
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database session override."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def add_resource(db_session: AsyncSession) -> AddResource:
    """Insert a resource row and return it."""

    async def _add(model: type, **fields: Any) -> Any:
        row = model(**fields)
        db_session.add(row)
        await db_session.commit()
        return row

    return _add


@pytest.fixture
def idle_dev_cache(add_resource: AddResource) -> Callable[..., Awaitable[CacheCluster]]:
    """Idle two-node cache cluster in dev."""

    async def _make(**overrides: Any) -> CacheCluster:
        fields = {
            "id": "cache-dev-1",
            "name": "dev-sessions",
            "env": "dev",
            "region": "us-east-1",
            "node_type": "cache.m5.large",
            "engine": "redis",
            "state": "available",
            "num_cache_nodes": 2,
            "avg_cpu_7d": 3.0,
            "avg_connections_7d": 1.0,
        }
        fields.update(overrides)
        return await add_resource(CacheCluster, **fields)

    return _make


@pytest.fixture
def idle_prod_rds(add_resource: AddResource) -> Callable[..., Awaitable[RdsInstance]]:
    """Idle production database (needs approval)."""

    async def _make(**overrides: Any) -> RdsInstance:
        fields = {
            "id": "db-prod-1",
            "name": "orders-db",
            "env": "prod",
            "region": "us-east-1",
            "instance_class": "db.m5.large",
            "engine": "postgres",
            "state": "available",
            "multi_az": False,
            "avg_cpu_7d": 8.0,
            "avg_connections_7d": 0.0,
        }
        fields.update(overrides)
        return await add_resource(RdsInstance, **fields)

    return _make


@pytest.fixture
def orphaned_eip(add_resource: AddResource) -> Callable[..., Awaitable[ElasticIp]]:
    """Unassociated Elastic IP."""

    async def _make(**overrides: Any) -> ElasticIp:
        fields = {
            "id": "eipalloc-1",
            "name": "spare-ip",
            "env": "dev",
            "public_ip": "203.0.113.10",
            "associated_instance_id": None,
        }
        fields.update(overrides)
        return await add_resource(ElasticIp, **fields)

    return _make


@pytest.fixture
def instance(add_resource: AddResource) -> Callable[..., Awaitable[Instance]]:
    """Running staging instance with healthy CPU."""

    async def _make(**overrides: Any) -> Instance:
        fields = {
            "id": "i-0001",
            "name": "api-server",
            "env": "staging",
            "instance_type": "m5.xlarge",
            "state": "running",
            "avg_cpu_7d": 55.0,
            "avg_memory_7d": 60.0,
        }
        fields.update(overrides)
        return await add_resource(Instance, **fields)

    return _make


@pytest.fixture
def volume(add_resource: AddResource) -> Callable[..., Awaitable[Volume]]:
    """Attached gp3 volume."""

    async def _make(**overrides: Any) -> Volume:
        fields = {
            "id": "vol-0001",
            "name": "data-volume",
            "env": "dev",
            "volume_type": "gp3",
            "size_gb": 100,
            "state": "in-use",
            "attached_instance_id": "i-0001",
        }
        fields.update(overrides)
        return await add_resource(Volume, **fields)

    return _make


@pytest.fixture
def snapshot(add_resource: AddResource) -> Callable[..., Awaitable[Snapshot]]:
    """Recent snapshot of vol-0001."""

    async def _make(**overrides: Any) -> Snapshot:
        fields = {
            "id": "snap-0001",
            "name": "nightly-backup",
            "env": "dev",
            "size_gb": 50,
            "source_volume_id": "vol-0001",
            "state": "completed",
            "created_at": utcnow() - timedelta(days=3),
        }
        fields.update(overrides)
        return await add_resource(Snapshot, **fields)

    return _make



@pytest.fixture
def over_provisioned_asg(add_resource: AddResource) -> Callable[..., Awaitable[AutoscalingGroup]]:
    """Dev ASG running eight instances at 10% utilization."""

    async def _make(**overrides: Any) -> AutoscalingGroup:
        fields = {
            "id": "asg-dev-1",
            "name": "batch-workers",
            "env": "dev",
            "instance_type": "m5.large",
            "desired_capacity": 8,
            "min_size": 1,
            "max_size": 10,
            "avg_utilization_7d": 10.0,
        }
        fields.update(overrides)
        return await add_resource(AutoscalingGroup, **fields)

    return _make
