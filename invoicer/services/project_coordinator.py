"""Project mutation coordinator

Create, update and delete a project together with its images across the
metadata store and the versioned blob store. Neither store sees the other
and there is no shared transaction, so each mutation runs as a saga:
every step is paired with a compensation declared before it runs.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, List, Optional, Sequence

from invoicer.config import settings
from invoicer.monitoring.metrics import metrics_collector
from invoicer.services import blob_keys
from invoicer.services.blob_store import BlobObject, BlobStore, BlobStoreError
from invoicer.services.errors import (
    ConflictError,
    NotFoundError,
    UploadError,
    ValidationError,
)
from invoicer.services.image_diff import DesiredImage, NewImage, diff_images
from invoicer.services.project_repository import BatchStatement, ProjectRepository
from invoicer.services.saga import Saga, SagaStep

logger = logging.getLogger(__name__)


@dataclass
class ProjectUpdates:
    """Requested changes; images is always the full desired list"""

    images: List[DesiredImage]
    name: Optional[str] = None
    category: Optional[str] = None
    price_minor_units: Optional[int] = None


@dataclass
class CreateProjectResult:
    project_id: int


@dataclass
class UpdateProjectResult:
    project_id: int
    uploaded_keys: List[str] = field(default_factory=list)
    removed_keys: List[str] = field(default_factory=list)
    warning: Optional[str] = None


@dataclass
class DeleteProjectResult:
    project_id: int
    warning: Optional[str] = None


@dataclass
class ProjectView:
    id: int
    name: str
    category: str
    price_minor_units: int
    client_id: str
    invoice_month: str
    version: int
    images: List[str]


@dataclass(frozen=True)
class _Upload:
    position: int
    key: str
    image: NewImage


def _validate_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def _validate_price(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("price_minor_units must be an integer")
    if value < 0:
        raise ValidationError("price_minor_units must not be negative")
    return value


class ProjectCoordinator:
    """
    Orchestrates project mutations as sagas.

    Dependencies are injected; the coordinator keeps no state between calls.
    """

    def __init__(self, repository: ProjectRepository, blob_store: BlobStore):
        self.repository = repository
        self.blob_store = blob_store

    @asynccontextmanager
    async def _track(self, operation: str):
        start = time.time()
        status = "error"
        try:
            yield
            status = "success"
        finally:
            metrics_collector.record_operation(operation, status, time.time() - start)

    # Blob helpers

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def _upload_all(self, uploads: Sequence[_Upload], uploaded: List[_Upload]) -> None:
        """
        Upload concurrently, recording each success in `uploaded`.

        Every upload is awaited even when a sibling fails, so `uploaded` is
        complete by the time the first failure is raised.
        """

        async def upload_one(upload: _Upload) -> None:
            try:
                await self._run_blocking(
                    self.blob_store.put, upload.key, upload.image.data, upload.image.content_type
                )
            except BlobStoreError as e:
                metrics_collector.record_upload("failed")
                raise UploadError(f"Failed to upload image {upload.position + 1}: {e}") from e
            uploaded.append(upload)
            metrics_collector.record_upload("success", len(upload.image.data))

        results = await asyncio.gather(*(upload_one(u) for u in uploads), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(f"{len(failures)} of {len(uploads)} uploads failed")
            raise failures[0]

    async def _purge_keys(self, keys: Sequence[str]) -> List[str]:
        """
        Purge every version of each key.

        Returns:
            Error messages for keys that could not be purged
        """
        results = await asyncio.gather(
            *(self._run_blocking(self.blob_store.purge_key, key) for key in keys),
            return_exceptions=True,
        )
        errors = []
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                errors.append(f"{key}: {result}")
        return errors

    async def _purge_or_raise(self, keys: Sequence[str]) -> None:
        errors = await self._purge_keys(keys)
        if errors:
            raise BlobStoreError(f"Failed to purge {len(errors)} blobs: {'; '.join(errors)}")

    async def _cleanup(self, keys: Sequence[str], operation: str) -> Optional[str]:
        """Best-effort purge after a committed mutation; failures become a warning"""
        if not keys:
            return None
        errors = await self._purge_keys(keys)
        if not errors:
            return None
        warning = f"{len(errors)} stale images could not be removed from storage"
        logger.warning(f"{operation}: {warning}: {'; '.join(errors)}")
        metrics_collector.record_cleanup_warning(operation)
        return warning

    # Create

    async def create_project(
        self,
        client_id: str,
        invoice_month: str,
        name: str,
        category: str,
        price_minor_units: int,
        images: Sequence[NewImage],
    ) -> CreateProjectResult:
        """
        Create a project and upload its images.

        Metadata first: the project row is inserted to obtain the id that
        roots the key namespace, then images are uploaded, then image rows are
        inserted in one batch. Any failure unwinds all of it.

        Raises:
            ValidationError: Missing or malformed fields
            UploadError: A blob upload failed
            MetadataStoreError: The project or image rows could not be written
        """
        client_id = _validate_text(client_id, "client_id")
        invoice_month = _validate_text(invoice_month, "invoice_month")
        name = _validate_text(name, "name")
        category = _validate_text(category, "category")
        price_minor_units = _validate_price(price_minor_units)
        blob_keys.validate_key_segments(client_id, invoice_month, category)

        project_id: Optional[int] = None
        uploaded: List[_Upload] = []

        async def insert_project():
            nonlocal project_id
            project_id = await self.repository.insert_project(
                name=name,
                category=category,
                price_minor_units=price_minor_units,
                client_id=client_id,
                invoice_month=invoice_month,
            )

        async def delete_project_rows():
            if project_id is None:
                return
            await self.repository.execute_batch(
                [
                    self.repository.delete_project_images_statement(project_id),
                    self.repository.delete_project_statement(project_id),
                ]
            )

        async def upload_images():
            uploads = [
                _Upload(
                    position=position,
                    key=blob_keys.image_key(
                        client_id, invoice_month, project_id, category,
                        position + 1, image.content_type,
                    ),
                    image=image,
                )
                for position, image in enumerate(images)
            ]
            await self._upload_all(uploads, uploaded)

        async def purge_uploaded():
            await self._purge_or_raise([u.key for u in uploaded])

        async def insert_image_rows():
            if not uploaded:
                return
            rows = [
                {
                    "project_id": project_id,
                    "blob_key": u.key,
                    "display_order": u.position,
                    "content_type": u.image.content_type,
                }
                for u in sorted(uploaded, key=lambda u: u.position)
            ]
            await self.repository.execute_batch([self.repository.insert_images_statement(rows)])

        saga = Saga(
            "create_project",
            [
                SagaStep("insert_project", insert_project, delete_project_rows),
                SagaStep("upload_images", upload_images, purge_uploaded),
                SagaStep("insert_image_rows", insert_image_rows),
            ],
        )

        async with self._track("create"):
            await saga.run()

        logger.info(f"Created project {project_id} with {len(uploaded)} images")
        return CreateProjectResult(project_id=project_id)

    # Update

    async def update_project(
        self,
        project_id: int,
        client_id: str,
        invoice_month: str,
        updates: ProjectUpdates,
    ) -> UpdateProjectResult:
        """
        Update scalar fields and reconcile the image list.

        client_id and invoice_month are only used to build keys for new
        images. Stale blobs are purged after the metadata batch commits;
        failures there are reported as a warning, not an error.

        Raises:
            NotFoundError: Project does not exist
            ValidationError: Malformed fields or foreign image references
            ConflictError: Project changed since it was loaded
            UploadError: A blob upload failed
            MetadataBatchError: The batch was rejected
        """
        client_id = _validate_text(client_id, "client_id")
        invoice_month = _validate_text(invoice_month, "invoice_month")

        async with self._track("update"):
            project = await self.repository.get_project(project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found")
            current_images = await self.repository.list_images(project_id)

            values: Dict[str, object] = {
                "name": project.name,
                "category": project.category,
                "price_minor_units": project.price_minor_units,
            }
            if updates.name is not None:
                values["name"] = _validate_text(updates.name, "name")
            if updates.category is not None:
                values["category"] = _validate_text(updates.category, "category")
            if updates.price_minor_units is not None:
                values["price_minor_units"] = _validate_price(updates.price_minor_units)
            blob_keys.validate_key_segments(client_id, invoice_month, values["category"])

            scalars_changed = (
                values["name"] != project.name
                or values["category"] != project.category
                or values["price_minor_units"] != project.price_minor_units
            )

            diff = diff_images(current_images, updates.images)

            if diff.is_noop and not scalars_changed:
                logger.info(f"Update of project {project_id} is a no-op")
                return UpdateProjectResult(project_id=project_id)

            uploads = [
                _Upload(
                    position=planned.position,
                    key=blob_keys.image_key(
                        client_id, invoice_month, project_id, values["category"],
                        planned.position + 1, planned.image.content_type,
                        disambiguator=blob_keys.new_disambiguator(settings.blob_key_suffix_length),
                    ),
                    image=planned.image,
                )
                for planned in diff.added
            ]
            uploaded: List[_Upload] = []

            async def upload_new_images():
                await self._upload_all(uploads, uploaded)

            async def purge_new_images():
                await self._purge_or_raise([u.key for u in uploaded])

            async def apply_metadata_batch():
                statements: List[BatchStatement] = [
                    self.repository.update_project_statement(
                        project_id,
                        expected_version=project.version,
                        values=values,
                        on_conflict=ConflictError(
                            f"Project {project_id} was modified or deleted concurrently"
                        ),
                    )
                ]
                statements.extend(
                    self.repository.delete_image_statement(removed.row_id)
                    for removed in diff.removed
                )
                if uploaded:
                    statements.append(
                        self.repository.insert_images_statement(
                            [
                                {
                                    "project_id": project_id,
                                    "blob_key": u.key,
                                    "display_order": u.position,
                                    "content_type": u.image.content_type,
                                }
                                for u in sorted(uploaded, key=lambda u: u.position)
                            ]
                        )
                    )
                statements.extend(
                    self.repository.reorder_image_statement(kept.row_id, kept.new_position)
                    for kept in diff.moved
                )
                await self.repository.execute_batch(statements)

            saga = Saga(
                "update_project",
                [
                    SagaStep("upload_new_images", upload_new_images, purge_new_images),
                    SagaStep("apply_metadata_batch", apply_metadata_batch),
                ],
            )
            await saga.run()

            removed_keys = [removed.blob_key for removed in diff.removed]
            warning = await self._cleanup(removed_keys, "update")

        logger.info(
            f"Updated project {project_id}: {len(uploaded)} added, "
            f"{len(removed_keys)} removed, {len(diff.moved)} reordered"
        )
        return UpdateProjectResult(
            project_id=project_id,
            uploaded_keys=[u.key for u in sorted(uploaded, key=lambda u: u.position)],
            removed_keys=removed_keys,
            warning=warning,
        )

    # Delete

    async def delete_project(self, project_id: int) -> DeleteProjectResult:
        """
        Delete a project, its image rows and, best-effort, its blobs.

        The metadata delete is authoritative and never rolled back; blob
        cleanup failure only adds a warning to the result.

        Raises:
            NotFoundError: Project does not exist
            MetadataBatchError: The batch was rejected
        """
        async with self._track("delete"):
            project = await self.repository.get_project(project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found")
            prefix = blob_keys.project_prefix(project.client_id, project.invoice_month, project_id)

            await self.repository.execute_batch(
                [
                    self.repository.delete_project_images_statement(project_id),
                    self.repository.delete_project_statement(
                        project_id, on_missing=NotFoundError(f"Project {project_id} not found")
                    ),
                ]
            )

            warning = None
            try:
                await self._run_blocking(self.blob_store.purge_prefix, prefix)
            except BlobStoreError as e:
                warning = f"Project deleted, but its images could not be removed from storage: {e}"
                logger.warning(f"Delete of project {project_id}: {warning}")
                metrics_collector.record_cleanup_warning("delete")

        logger.info(f"Deleted project {project_id}")
        return DeleteProjectResult(project_id=project_id, warning=warning)

    # Reads

    async def get_project(self, project_id: int) -> ProjectView:
        """Project with its image keys in display order"""
        project = await self.repository.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        images = await self.repository.list_images(project_id)
        return self._view(project, images)

    async def list_invoice_projects(self, client_id: str, invoice_month: str) -> List[ProjectView]:
        """Projects of one client invoice with their image keys"""
        projects = await self.repository.list_projects(client_id, invoice_month)
        images = await self.repository.list_images_for_projects([p.id for p in projects])
        return [self._view(p, images.get(p.id, [])) for p in projects]

    async def read_image(self, blob_key: str) -> BlobObject:
        """
        Read image bytes.

        Raises:
            BlobNotFoundError: The key has no live version
        """
        return await self._run_blocking(self.blob_store.get, blob_key)

    async def image_exists(self, blob_key: str) -> bool:
        """Whether the key has a live version, without fetching its bytes"""
        return await self._run_blocking(self.blob_store.exists, blob_key)

    @staticmethod
    def _view(project, images) -> ProjectView:
        return ProjectView(
            id=project.id,
            name=project.name,
            category=project.category,
            price_minor_units=project.price_minor_units,
            client_id=project.client_id,
            invoice_month=project.invoice_month,
            version=project.version,
            images=[image.blob_key for image in images],
        )
