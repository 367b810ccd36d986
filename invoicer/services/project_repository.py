"""Metadata store access for projects and their image rows"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import Executable

from invoicer.models.image import ProjectImage
from invoicer.models.project import Project
from invoicer.services.errors import MetadataBatchError, MetadataStoreError

logger = logging.getLogger(__name__)

images_table = ProjectImage.__table__
projects_table = Project.__table__


@dataclass(frozen=True)
class BatchStatement:
    """
    One statement of an atomic batch.

    When min_rowcount is set and the statement affects fewer rows, the batch
    is rolled back and on_shortfall is raised.
    """

    statement: Executable
    params: Optional[List[Dict[str, Any]]] = None
    min_rowcount: Optional[int] = None
    on_shortfall: Optional[Exception] = None
    description: str = ""


class ProjectRepository:
    """
    Repository over the projects and images tables.

    Every public method is its own unit of work on a fresh session, so the
    repository holds no state between calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert_project(
        self,
        name: str,
        category: str,
        price_minor_units: int,
        client_id: str,
        invoice_month: str,
    ) -> int:
        """
        Insert a project row.

        Returns:
            Generated project id

        Raises:
            MetadataStoreError: If the insert fails
        """
        project = Project(
            name=name,
            category=category,
            price_minor_units=price_minor_units,
            client_id=client_id,
            invoice_month=invoice_month,
            version=1,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(project)
                    await session.flush()  # Flush to get the project ID
                    project_id = project.id
        except SQLAlchemyError as e:
            logger.error(f"Failed to insert project: {e}")
            raise MetadataStoreError(f"Failed to insert project: {e}") from e

        logger.info(f"Inserted project {project_id} for {client_id}/{invoice_month}")
        return project_id

    async def get_project(self, project_id: int) -> Optional[Project]:
        """Get a project by id, or None"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Project).where(Project.id == project_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Failed to load project {project_id}: {e}") from e

    async def list_projects(self, client_id: str, invoice_month: str) -> List[Project]:
        """Projects of one client invoice, oldest first"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Project)
                    .where(Project.client_id == client_id, Project.invoice_month == invoice_month)
                    .order_by(Project.created_at, Project.id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Failed to list projects: {e}") from e

    async def list_images(self, project_id: int) -> List[ProjectImage]:
        """Image rows of a project in display order"""
        images = await self.list_images_for_projects([project_id])
        return images.get(project_id, [])

    async def list_images_for_projects(
        self, project_ids: Sequence[int]
    ) -> Dict[int, List[ProjectImage]]:
        """Image rows for several projects, grouped by project id"""
        if not project_ids:
            return {}
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ProjectImage)
                    .where(ProjectImage.project_id.in_(list(project_ids)))
                    .order_by(ProjectImage.project_id, ProjectImage.display_order, ProjectImage.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Failed to load images: {e}") from e

        grouped: Dict[int, List[ProjectImage]] = {}
        for row in rows:
            grouped.setdefault(row.project_id, []).append(row)
        return grouped

    async def execute_batch(self, statements: Sequence[BatchStatement]) -> List[int]:
        """
        Execute statements in one transaction: all apply or none do.

        Returns:
            Affected row count per statement

        Raises:
            The statement's on_shortfall error: If a row-count expectation fails
            MetadataBatchError: If the store rejects the batch
        """
        rowcounts: List[int] = []
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    for item in statements:
                        if item.params is not None:
                            result = await session.execute(item.statement, item.params)
                        else:
                            result = await session.execute(item.statement)
                        rowcount = result.rowcount
                        if item.min_rowcount is not None and rowcount < item.min_rowcount:
                            logger.warning(
                                f"Batch statement '{item.description}' affected {rowcount} rows, "
                                f"expected at least {item.min_rowcount}; rolling back"
                            )
                            raise item.on_shortfall or MetadataBatchError(
                                f"Statement '{item.description}' affected {rowcount} rows"
                            )
                        rowcounts.append(rowcount)
        except SQLAlchemyError as e:
            logger.error(f"Metadata batch of {len(statements)} statements failed: {e}")
            raise MetadataBatchError(f"Metadata batch failed: {e}") from e

        logger.debug(f"Executed metadata batch of {len(statements)} statements")
        return rowcounts

    # Statement builders

    @staticmethod
    def insert_images_statement(rows: List[Dict[str, Any]]) -> BatchStatement:
        now = datetime.utcnow()
        params = [{**row, "created_at": now, "updated_at": now} for row in rows]
        return BatchStatement(
            statement=insert(images_table),
            params=params,
            description=f"insert {len(rows)} images",
        )

    @staticmethod
    def delete_image_statement(image_id: int) -> BatchStatement:
        return BatchStatement(
            statement=delete(images_table).where(images_table.c.id == image_id),
            description=f"delete image {image_id}",
        )

    @staticmethod
    def reorder_image_statement(image_id: int, display_order: int) -> BatchStatement:
        return BatchStatement(
            statement=update(images_table)
            .where(images_table.c.id == image_id)
            .values(display_order=display_order, updated_at=datetime.utcnow()),
            description=f"reorder image {image_id} to {display_order}",
        )

    @staticmethod
    def delete_project_images_statement(project_id: int) -> BatchStatement:
        return BatchStatement(
            statement=delete(images_table).where(images_table.c.project_id == project_id),
            description=f"delete images of project {project_id}",
        )

    @staticmethod
    def delete_project_statement(
        project_id: int, on_missing: Optional[Exception] = None
    ) -> BatchStatement:
        return BatchStatement(
            statement=delete(projects_table).where(projects_table.c.id == project_id),
            min_rowcount=1 if on_missing is not None else None,
            on_shortfall=on_missing,
            description=f"delete project {project_id}",
        )

    @staticmethod
    def update_project_statement(
        project_id: int,
        expected_version: int,
        values: Dict[str, Any],
        on_conflict: Exception,
    ) -> BatchStatement:
        """Scalar update guarded by the project's optimistic version"""
        return BatchStatement(
            statement=update(projects_table)
            .where(
                projects_table.c.id == project_id,
                projects_table.c.version == expected_version,
            )
            .values(
                **values,
                version=projects_table.c.version + 1,
                updated_at=datetime.utcnow(),
            ),
            min_rowcount=1,
            on_shortfall=on_conflict,
            description=f"update project {project_id} at version {expected_version}",
        )
