"""Services package"""

from .blob_store import BlobStore
from .project_coordinator import ProjectCoordinator
from .project_repository import ProjectRepository

__all__ = ["BlobStore", "ProjectCoordinator", "ProjectRepository"]
