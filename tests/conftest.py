"""Pytest configuration and shared fixtures"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from invoicer.api.dependencies import get_blob_store, get_project_coordinator
from invoicer.database import Base, build_engine, build_session_factory, get_session_factory
from invoicer.main import app
from invoicer.models import Project, ProjectImage  # noqa: F401  (registers tables)
from invoicer.services.blob_store import BlobStore
from invoicer.services.image_diff import NewImage
from invoicer.services.project_coordinator import ProjectCoordinator
from invoicer.services.project_repository import ProjectRepository
from tests.fakes import FakeVersionedS3Client


# In-memory SQLite shared across connections for the duration of a test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_BUCKET = "test-bucket"


def make_image(tag: str, content_type: str = "image/png") -> NewImage:
    """Small distinct image payload"""
    return NewImage(data=f"image-bytes-{tag}".encode(), content_type=content_type)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine"""
    engine = build_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return build_session_factory(test_engine)


@pytest.fixture
def repository(session_factory) -> ProjectRepository:
    return ProjectRepository(session_factory)


@pytest.fixture
def s3_client() -> FakeVersionedS3Client:
    """Fake versioned S3 client"""
    return FakeVersionedS3Client()


@pytest.fixture
def blob_store(s3_client) -> BlobStore:
    return BlobStore(s3_client, TEST_BUCKET)


@pytest.fixture
def coordinator(repository, blob_store) -> ProjectCoordinator:
    return ProjectCoordinator(repository, blob_store)


@pytest_asyncio.fixture
async def sample_project(coordinator: ProjectCoordinator) -> int:
    """Project with three images A, B, C"""
    result = await coordinator.create_project(
        client_id="client-42",
        invoice_month="2025-01",
        name="Winter Sale Banner",
        category="Banner",
        price_minor_units=150_00,
        images=[make_image("A"), make_image("B", "image/jpeg"), make_image("C")],
    )
    return result.project_id


@pytest_asyncio.fixture
async def async_client(coordinator, session_factory, blob_store):
    """Async test client with in-memory stores injected"""
    app.dependency_overrides[get_project_coordinator] = lambda: coordinator
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
