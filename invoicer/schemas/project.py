"""Project schemas

Requests accept both snake_case names and the names the invoice UI sends
(clientId, invoiceId, type, amount). Responses carry the UI's names as extra
read-only fields next to the canonical ones.
"""

from typing import Optional
from pydantic import AliasChoices, BaseModel, Field, computed_field


class CreateProjectRequest(BaseModel):
    """Project creation schema; images are data URLs"""
    client_id: str = Field(
        ..., min_length=1, max_length=100,
        validation_alias=AliasChoices("client_id", "clientId"),
        description="Client identifier",
    )
    invoice_month: str = Field(
        ..., min_length=1, max_length=20,
        validation_alias=AliasChoices("invoice_month", "invoiceId"),
        description="Invoice month, e.g. 2025-01",
    )
    name: str = Field(..., min_length=1, max_length=255, description="Project name")
    category: str = Field(
        ..., min_length=1, max_length=100,
        validation_alias=AliasChoices("category", "type"),
        description="Project category, e.g. Banner",
    )
    price_minor_units: int = Field(
        ..., ge=0,
        validation_alias=AliasChoices("price_minor_units", "amount"),
        description="Price in minor currency units",
    )
    images: list[str] = Field(default_factory=list, description="Images as data URLs, in display order")


class ProjectUpdatesPayload(BaseModel):
    """Update schema - scalar fields optional, images always the full desired list"""
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Project name")
    category: Optional[str] = Field(
        None, min_length=1, max_length=100,
        validation_alias=AliasChoices("category", "type"),
        description="Project category",
    )
    price_minor_units: Optional[int] = Field(
        None, ge=0,
        validation_alias=AliasChoices("price_minor_units", "amount"),
        description="Price in minor currency units",
    )
    images: list[str] = Field(
        ..., description="Full desired image list: existing references or data URLs for new images"
    )


class UpdateProjectRequest(BaseModel):
    """Project update request"""
    id: int = Field(..., description="Project id")
    client_id: str = Field(
        ..., min_length=1, max_length=100,
        validation_alias=AliasChoices("client_id", "clientId"),
        description="Client identifier",
    )
    invoice_month: str = Field(
        ..., min_length=1, max_length=20,
        validation_alias=AliasChoices("invoice_month", "invoiceId"),
        description="Invoice month",
    )
    updates: ProjectUpdatesPayload


class DeleteProjectRequest(BaseModel):
    """Project delete request"""
    id: int = Field(..., description="Project id")


class CreateProjectResponse(BaseModel):
    """Project creation response"""
    project_id: int

    @computed_field(alias="projectId")
    @property
    def ui_project_id(self) -> int:
        return self.project_id


class MutationResponse(BaseModel):
    """Update/delete response with an optional advisory warning"""
    success: bool = True
    warning: Optional[str] = Field(None, description="Non-fatal cleanup warning")


class ProjectResponse(BaseModel):
    """Project response schema"""
    id: int
    name: str
    category: str
    price_minor_units: int
    client_id: str
    invoice_month: str
    version: int
    images: list[str] = Field(default_factory=list, description="Image URLs in display order")
    image_keys: list[str] = Field(default_factory=list, description="Blob keys in display order")

    @computed_field
    @property
    def project_type(self) -> str:
        return self.category

    @computed_field
    @property
    def price(self) -> int:
        return self.price_minor_units


class ProjectListResponse(BaseModel):
    """List of projects response"""
    projects: list[ProjectResponse]
    total: int = Field(..., description="Total number of projects")

    @computed_field
    @property
    def data(self) -> list[ProjectResponse]:
        """Same projects under the key the invoice UI reads"""
        return self.projects
