"""Tests for project create/update/delete sagas"""

import pytest

from invoicer.services import blob_keys
from invoicer.services.blob_store import BlobNotFoundError
from invoicer.services.errors import (
    ConflictError,
    MetadataBatchError,
    NotFoundError,
    UploadError,
    ValidationError,
)
from invoicer.services.image_diff import ImageReference
from invoicer.services.project_coordinator import ProjectUpdates
from tests.conftest import make_image

CLIENT = "client-42"
MONTH = "2025-01"


def fail_first_batch(repository, monkeypatch):
    """Make the next execute_batch call fail, later calls go through"""
    real_execute_batch = repository.execute_batch
    calls = {"count": 0}

    async def flaky_execute_batch(statements):
        calls["count"] += 1
        if calls["count"] == 1:
            raise MetadataBatchError("simulated batch failure")
        return await real_execute_batch(statements)

    monkeypatch.setattr(repository, "execute_batch", flaky_execute_batch)
    return calls


async def current_keys(coordinator, project_id):
    view = await coordinator.get_project(project_id)
    return view.images


@pytest.mark.asyncio
class TestCreateProject:
    """Test project creation"""

    async def test_create_stores_images_in_order(self, coordinator, repository, blob_store):
        """Test N images get display orders 0..N-1 and readable blobs"""
        result = await coordinator.create_project(
            client_id=CLIENT,
            invoice_month=MONTH,
            name="Spring Poster",
            category="Poster",
            price_minor_units=4500,
            images=[make_image("one"), make_image("two", "image/jpeg"), make_image("three")],
        )

        rows = await repository.list_images(result.project_id)
        prefix = blob_keys.project_prefix(CLIENT, MONTH, result.project_id)
        assert [r.display_order for r in rows] == [0, 1, 2]
        assert [r.blob_key for r in rows] == [
            f"{prefix}Poster1.png",
            f"{prefix}Poster2.jpg",
            f"{prefix}Poster3.png",
        ]
        blob = await coordinator.read_image(rows[1].blob_key)
        assert blob.data == b"image-bytes-two"
        assert blob.content_type == "image/jpeg"

    async def test_create_without_images(self, coordinator, repository):
        """Test a project may have no images"""
        result = await coordinator.create_project(
            CLIENT, MONTH, "Consulting", "Banner", 10000, []
        )

        view = await coordinator.get_project(result.project_id)
        assert view.images == []
        assert view.price_minor_units == 10000

    async def test_upload_failure_leaves_nothing_behind(self, coordinator, repository, s3_client):
        """Test one failed upload removes the project, its rows and uploaded blobs"""
        s3_client.fail_put = lambda key: "Banner3" in key

        with pytest.raises(UploadError):
            await coordinator.create_project(
                CLIENT, MONTH, "Sale", "Banner", 100,
                [make_image("a"), make_image("b"), make_image("c"), make_image("d")],
            )

        assert await repository.list_projects(CLIENT, MONTH) == []
        assert s3_client.version_count("Clients/") == 0

    async def test_image_row_failure_is_compensated(
        self, coordinator, repository, s3_client, monkeypatch
    ):
        """Test a rejected image-row batch unwinds uploads and the project row"""
        fail_first_batch(repository, monkeypatch)

        with pytest.raises(MetadataBatchError):
            await coordinator.create_project(
                CLIENT, MONTH, "Sale", "Banner", 100, [make_image("a"), make_image("b")]
            )

        assert await repository.list_projects(CLIENT, MONTH) == []
        assert s3_client.version_count("Clients/") == 0

    async def test_validation_happens_before_any_write(self, coordinator, repository, s3_client):
        """Test malformed input touches neither store"""
        with pytest.raises(ValidationError):
            await coordinator.create_project(CLIENT, MONTH, "Sale", "Banner", -1, [make_image("a")])
        with pytest.raises(ValidationError):
            await coordinator.create_project(CLIENT, MONTH, "  ", "Banner", 1, [make_image("a")])

        assert await repository.list_projects(CLIENT, MONTH) == []
        assert s3_client.version_count() == 0


@pytest.mark.asyncio
class TestUpdateProject:
    """Test project updates"""

    async def test_unchanged_update_is_noop(self, coordinator, repository, sample_project, s3_client):
        """Test resubmitting the same state writes nothing"""
        keys = await current_keys(coordinator, sample_project)
        rows_before = [(r.id, r.blob_key, r.display_order) for r in await repository.list_images(sample_project)]
        versions_before = s3_client.version_count()

        result = await coordinator.update_project(
            sample_project, CLIENT, MONTH,
            ProjectUpdates(images=[ImageReference(k) for k in keys]),
        )

        assert result.uploaded_keys == [] and result.removed_keys == []
        rows_after = [(r.id, r.blob_key, r.display_order) for r in await repository.list_images(sample_project)]
        assert rows_after == rows_before
        project = await repository.get_project(sample_project)
        assert project.version == 1
        assert s3_client.version_count() == versions_before
        assert s3_client.delete_objects_calls == 0

    async def test_resubmitting_keys_with_percent_is_noop(self, coordinator, repository, s3_client):
        """Test keys whose category contains %XX round-trip through an update"""
        created = await coordinator.create_project(
            CLIENT, MONTH, "Promo", "Sale%20Off", 700, [make_image("a"), make_image("b")]
        )
        keys = await current_keys(coordinator, created.project_id)
        assert keys[0].endswith("/Sale%20Off1.png")

        result = await coordinator.update_project(
            created.project_id, CLIENT, MONTH,
            ProjectUpdates(images=[ImageReference(k) for k in keys]),
        )

        assert result.uploaded_keys == [] and result.removed_keys == []
        assert await current_keys(coordinator, created.project_id) == keys
        assert (await repository.get_project(created.project_id)).version == 1

    async def test_category_change_keys_new_images_only(
        self, coordinator, repository, sample_project, s3_client
    ):
        """Test new images use the new category while kept images keep their keys"""
        a, b, c = await current_keys(coordinator, sample_project)

        result = await coordinator.update_project(
            sample_project, CLIENT, MONTH,
            ProjectUpdates(images=[ImageReference(a), make_image("P")], category="Poster"),
        )

        new_key = result.uploaded_keys[0]
        assert new_key.split("/")[-1].startswith("Poster2_")
        assert await current_keys(coordinator, sample_project) == [a, new_key]
        assert a.endswith("/Banner1.png")
        assert sorted(result.removed_keys) == sorted([b, c])
        project = await repository.get_project(sample_project)
        assert project.category == "Poster"
        assert s3_client.live_keys(blob_keys.project_prefix(CLIENT, MONTH, sample_project)) == sorted([a, new_key])

    async def test_reorder_add_remove(self, coordinator, repository, sample_project, s3_client):
        """Test [A,B,C] -> [C,X,A]"""
        a, b, c = await current_keys(coordinator, sample_project)

        result = await coordinator.update_project(
            sample_project, CLIENT, MONTH,
            ProjectUpdates(images=[ImageReference(c), make_image("X"), ImageReference(a)]),
        )

        assert len(result.uploaded_keys) == 1
        x = result.uploaded_keys[0]
        rows = await repository.list_images(sample_project)
        assert [(r.blob_key, r.display_order) for r in rows] == [(c, 0), (x, 1), (a, 2)]
        assert result.removed_keys == [b]
        assert result.warning is None
        assert s3_client.version_count(b) == 0
        blob = await coordinator.read_image(x)
        assert blob.data == b"image-bytes-X"

    async def test_new_image_gets_fresh_key(self, coordinator, sample_project):
        """Test an image added where one was removed never reuses the old key"""
        a, b, c = await current_keys(coordinator, sample_project)

        result = await coordinator.update_project(
            sample_project, CLIENT, MONTH,
            ProjectUpdates(images=[ImageReference(a), make_image("B2"), ImageReference(c)]),
        )

        assert result.uploaded_keys[0] != b
        assert result.uploaded_keys[0].split("/")[-1].startswith("Banner2_")

    async def test_scalar_update(self, coordinator, repository, sample_project):
        """Test updating scalars bumps the version"""
        keys = await current_keys(coordinator, sample_project)

        await coordinator.update_project(
            sample_project, CLIENT, MONTH,
            ProjectUpdates(
                images=[ImageReference(k) for k in keys],
                name="Renamed",
                price_minor_units=20000,
            ),
        )

        project = await repository.get_project(sample_project)
        assert project.name == "Renamed"
        assert project.price_minor_units == 20000
        assert project.category == "Banner"
        assert project.version == 2

    async def test_batch_failure_purges_new_uploads(
        self, coordinator, repository, sample_project, s3_client, monkeypatch
    ):
        """Test a rejected batch leaves rows untouched and removes new blobs"""
        a, b, c = await current_keys(coordinator, sample_project)
        prefix = blob_keys.project_prefix(CLIENT, MONTH, sample_project)
        fail_first_batch(repository, monkeypatch)

        with pytest.raises(MetadataBatchError):
            await coordinator.update_project(
                sample_project, CLIENT, MONTH,
                ProjectUpdates(images=[ImageReference(a), make_image("X"), make_image("Y")]),
            )

        rows = await repository.list_images(sample_project)
        assert [(r.blob_key, r.display_order) for r in rows] == [(a, 0), (b, 1), (c, 2)]
        assert s3_client.live_keys(prefix) == sorted([a, b, c])
        assert s3_client.version_count(prefix) == 3

    async def test_upload_failure_keeps_project_intact(
        self, coordinator, repository, sample_project, s3_client
    ):
        """Test a failed upload during update changes nothing"""
        keys = await current_keys(coordinator, sample_project)
        prefix = blob_keys.project_prefix(CLIENT, MONTH, sample_project)
        s3_client.fail_put = lambda key: "Banner5_" in key

        with pytest.raises(UploadError):
            await coordinator.update_project(
                sample_project, CLIENT, MONTH,
                ProjectUpdates(
                    images=[ImageReference(k) for k in keys] + [make_image("D"), make_image("E")]
                ),
            )

        assert await current_keys(coordinator, sample_project) == keys
        assert s3_client.version_count(prefix) == 3

    async def test_concurrent_modification_conflicts(
        self, coordinator, repository, sample_project, s3_client, monkeypatch
    ):
        """Test an update based on a stale version is rejected and unwound"""
        keys = await current_keys(coordinator, sample_project)
        prefix = blob_keys.project_prefix(CLIENT, MONTH, sample_project)
        real_get_project = repository.get_project

        async def get_then_modify(project_id):
            project = await real_get_project(project_id)
            await repository.execute_batch([
                repository.update_project_statement(
                    project_id, project.version, {"name": "Concurrent"}, ConflictError("x")
                )
            ])
            return project

        monkeypatch.setattr(repository, "get_project", get_then_modify)

        with pytest.raises(ConflictError):
            await coordinator.update_project(
                sample_project, CLIENT, MONTH,
                ProjectUpdates(images=[ImageReference(k) for k in keys] + [make_image("D")]),
            )

        monkeypatch.setattr(repository, "get_project", real_get_project)
        project = await repository.get_project(sample_project)
        assert project.name == "Concurrent"
        assert await current_keys(coordinator, sample_project) == keys
        assert s3_client.version_count(prefix) == 3

    async def test_cleanup_failure_becomes_warning(
        self, coordinator, repository, sample_project, s3_client
    ):
        """Test stale blob purge failure does not fail a committed update"""
        a, b, c = await current_keys(coordinator, sample_project)
        s3_client.fail_delete = True

        result = await coordinator.update_project(
            sample_project, CLIENT, MONTH,
            ProjectUpdates(images=[ImageReference(a), ImageReference(c)]),
        )

        assert result.warning == "1 stale images could not be removed from storage"
        assert await current_keys(coordinator, sample_project) == [a, c]

    async def test_foreign_reference_rejected_before_upload(
        self, coordinator, sample_project, s3_client
    ):
        """Test unknown references fail validation with no uploads"""
        versions_before = s3_client.version_count()

        with pytest.raises(ValidationError):
            await coordinator.update_project(
                sample_project, CLIENT, MONTH,
                ProjectUpdates(images=[make_image("new"), ImageReference("Clients/x/2025-01/99/Banner1.png")]),
            )

        assert s3_client.version_count() == versions_before

    async def test_update_missing_project(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.update_project(404, CLIENT, MONTH, ProjectUpdates(images=[]))


@pytest.mark.asyncio
class TestDeleteProject:
    """Test project deletion"""

    async def test_delete_removes_rows_and_blobs(
        self, coordinator, repository, sample_project, s3_client
    ):
        """Test delete leaves no rows and no versions under the prefix"""
        prefix = blob_keys.project_prefix(CLIENT, MONTH, sample_project)

        result = await coordinator.delete_project(sample_project)

        assert result.warning is None
        with pytest.raises(NotFoundError):
            await coordinator.get_project(sample_project)
        assert await repository.list_images(sample_project) == []
        assert s3_client.version_count(prefix) == 0

    async def test_delete_cleanup_failure_is_warning(
        self, coordinator, repository, sample_project, s3_client
    ):
        """Test blob cleanup failure after the metadata delete only warns"""
        s3_client.fail_list = True

        result = await coordinator.delete_project(sample_project)

        assert result.warning.startswith("Project deleted, but its images could not be removed")
        assert await repository.get_project(sample_project) is None

    async def test_delete_missing_project(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.delete_project(404)


@pytest.mark.asyncio
class TestReads:
    """Test read helpers"""

    async def test_list_invoice_projects(self, coordinator, sample_project):
        """Test projects of an invoice come with their image keys"""
        other = await coordinator.create_project(CLIENT, MONTH, "Thumbs", "Thumbnail", 500, [])
        await coordinator.create_project(CLIENT, "2025-02", "Later", "Poster", 500, [])

        views = await coordinator.list_invoice_projects(CLIENT, MONTH)

        assert [v.id for v in views] == [sample_project, other.project_id]
        assert len(views[0].images) == 3
        assert views[1].images == []

    async def test_read_missing_image(self, coordinator):
        with pytest.raises(BlobNotFoundError):
            await coordinator.read_image("Clients/none/2025-01/1/Banner1.png")
