"""Project endpoints: create, update and delete projects with their images"""

import base64
import binascii
import logging
from typing import List, Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, Query, Response, status

from invoicer.api.dependencies import get_project_coordinator
from invoicer.config import settings
from invoicer.schemas.project import (
    CreateProjectRequest,
    CreateProjectResponse,
    DeleteProjectRequest,
    MutationResponse,
    ProjectListResponse,
    ProjectResponse,
    UpdateProjectRequest,
)
from invoicer.services.errors import PayloadTooLargeError, ValidationError
from invoicer.services.image_diff import DesiredImage, ImageReference, NewImage
from invoicer.services.project_coordinator import (
    ProjectCoordinator,
    ProjectUpdates,
    ProjectView,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Projects"])

DATA_URL_PREFIX = "data:"


def ensure_within_payload_ceiling(encoded_images: List[str]) -> None:
    """
    Reject requests whose encoded image data exceeds the configured ceiling.

    Runs before any store is touched.
    """
    total = sum(len(image.encode("utf-8")) for image in encoded_images)
    if total > settings.max_encoded_payload_bytes:
        limit_mb = settings.max_encoded_payload_bytes / (1024 * 1024)
        raise PayloadTooLargeError(
            f"Encoded images total {total / (1024 * 1024):.2f} MB, "
            f"exceeding the {limit_mb:.0f} MB limit"
        )


def decode_data_url(data_url: str) -> NewImage:
    """
    Decode a base64 data URL into a raw image payload.

    Format: data:<content-type>;base64,<payload>
    """
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith(DATA_URL_PREFIX) or not header.endswith(";base64"):
        raise ValidationError("Images must be base64 data URLs")

    content_type = header[len(DATA_URL_PREFIX):-len(";base64")] or "application/octet-stream"
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64")
    if not data:
        raise ValidationError("Image data is empty")

    return NewImage(data=data, content_type=content_type)


def parse_desired_image(value: str) -> DesiredImage:
    """Data URLs are new images, anything else references an existing one"""
    if value.startswith(DATA_URL_PREFIX):
        return decode_data_url(value)
    if not value.strip():
        raise ValidationError("Image reference is empty")
    return ImageReference(reference=value)


def image_url(blob_key: str) -> str:
    """Public URL an image is served from"""
    return f"{settings.image_public_base_url}{quote(blob_key, safe='/')}"


def to_response(view: ProjectView) -> ProjectResponse:
    return ProjectResponse(
        id=view.id,
        name=view.name,
        category=view.category,
        price_minor_units=view.price_minor_units,
        client_id=view.client_id,
        invoice_month=view.invoice_month,
        version=view.version,
        images=[image_url(key) for key in view.images],
        image_keys=view.images,
    )


@router.post("/new/project", response_model=CreateProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: CreateProjectRequest,
    coordinator: ProjectCoordinator = Depends(get_project_coordinator),
) -> CreateProjectResponse:
    """
    Create a project with its images.

    Images are uploaded to object storage under the project's key prefix;
    any failure removes the project row and every uploaded image.
    """
    ensure_within_payload_ceiling(request.images)
    images = [decode_data_url(image) for image in request.images]

    result = await coordinator.create_project(
        client_id=request.client_id,
        invoice_month=request.invoice_month,
        name=request.name,
        category=request.category,
        price_minor_units=request.price_minor_units,
        images=images,
    )
    return CreateProjectResponse(project_id=result.project_id)


@router.post("/update/project", response_model=MutationResponse, status_code=status.HTTP_200_OK)
async def update_project(
    request: UpdateProjectRequest,
    coordinator: ProjectCoordinator = Depends(get_project_coordinator),
) -> MutationResponse:
    """
    Update a project.

    `updates.images` is the full desired list: existing image references are
    kept (and reordered), data URLs are uploaded, anything missing is removed.
    """
    ensure_within_payload_ceiling(request.updates.images)
    desired = [parse_desired_image(image) for image in request.updates.images]

    result = await coordinator.update_project(
        project_id=request.id,
        client_id=request.client_id,
        invoice_month=request.invoice_month,
        updates=ProjectUpdates(
            images=desired,
            name=request.updates.name,
            category=request.updates.category,
            price_minor_units=request.updates.price_minor_units,
        ),
    )
    return MutationResponse(success=True, warning=result.warning)


@router.post("/delete/project", response_model=MutationResponse, status_code=status.HTTP_200_OK)
async def delete_project(
    request: DeleteProjectRequest,
    coordinator: ProjectCoordinator = Depends(get_project_coordinator),
) -> MutationResponse:
    """
    Delete a project and its images.

    Succeeds once the metadata is gone; storage cleanup problems come back
    as `warning`.
    """
    result = await coordinator.delete_project(request.id)
    return MutationResponse(success=True, warning=result.warning)


@router.get("/invoice-projects", response_model=ProjectListResponse, status_code=status.HTTP_200_OK)
async def list_invoice_projects(
    client_id: Optional[str] = Query(None, description="Client identifier"),
    client_id_ui: Optional[str] = Query(None, alias="clientId", description="Client identifier"),
    invoice_month: Optional[str] = Query(None, description="Invoice month"),
    month: Optional[str] = Query(None, description="Invoice month"),
    coordinator: ProjectCoordinator = Depends(get_project_coordinator),
) -> ProjectListResponse:
    """
    Projects of one client invoice, with image URLs in display order.

    Query names: client_id or clientId, invoice_month or month.
    """
    client_id = client_id or client_id_ui
    invoice_month = invoice_month or month
    if not client_id or not invoice_month:
        raise ValidationError("client_id and invoice_month are required")

    views = await coordinator.list_invoice_projects(client_id, invoice_month)
    return ProjectListResponse(projects=[to_response(v) for v in views], total=len(views))


@router.get("/projects/{project_id}", response_model=ProjectResponse, status_code=status.HTTP_200_OK)
async def get_project(
    project_id: int,
    coordinator: ProjectCoordinator = Depends(get_project_coordinator),
) -> ProjectResponse:
    """Get one project"""
    return to_response(await coordinator.get_project(project_id))


@router.get("/images/{blob_key:path}", status_code=status.HTTP_200_OK)
async def read_image(
    blob_key: str,
    coordinator: ProjectCoordinator = Depends(get_project_coordinator),
) -> Response:
    """Serve image bytes; a referenced but missing blob is an error"""
    blob = await coordinator.read_image(blob_key)
    return Response(content=blob.data, media_type=blob.content_type)


@router.head("/images/{blob_key:path}", status_code=status.HTTP_200_OK)
async def check_image(
    blob_key: str,
    coordinator: ProjectCoordinator = Depends(get_project_coordinator),
) -> Response:
    """Existence check for an image URL"""
    if not await coordinator.image_exists(blob_key):
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    return Response(status_code=status.HTTP_200_OK)
