"""API dependencies wiring the coordinator to its stores"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from invoicer.database import get_session_factory
from invoicer.services.blob_store import BlobStore
from invoicer.services.project_coordinator import ProjectCoordinator
from invoicer.services.project_repository import ProjectRepository


def get_blob_store() -> BlobStore:
    """Blob store adapter for one request"""
    return BlobStore.from_settings()


def get_project_repository(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ProjectRepository:
    """Metadata repository for one request"""
    return ProjectRepository(session_factory)


def get_project_coordinator(
    repository: ProjectRepository = Depends(get_project_repository),
    blob_store: BlobStore = Depends(get_blob_store),
) -> ProjectCoordinator:
    """
    Project coordinator for one request.

    Tests override this dependency to inject in-memory stores.
    """
    return ProjectCoordinator(repository, blob_store)
