"""API schemas package"""

from .project import (
    CreateProjectRequest,
    CreateProjectResponse,
    DeleteProjectRequest,
    MutationResponse,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdatesPayload,
    UpdateProjectRequest,
)

__all__ = [
    "CreateProjectRequest",
    "CreateProjectResponse",
    "DeleteProjectRequest",
    "MutationResponse",
    "ProjectListResponse",
    "ProjectResponse",
    "ProjectUpdatesPayload",
    "UpdateProjectRequest",
]
