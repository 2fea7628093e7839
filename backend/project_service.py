# project_service.py: Projects (wrapped symmetric keys) under an owned organization
import logging

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access_control import has_access
from models import Project, Secret, AuditLog, AuditEventType, utcnow
from responses import Envelope
from schemas import (
    Created, Deleted, Pagination, ProjectCreate, ProjectOut, ProjectPage,
    ProjectSummary, ProjectUpdate, clamp_page,
)

logger = logging.getLogger("keyvault.projects")

DEFAULT_PAGE_SIZE = 10


class ProjectRegistry:
    """CRUD for projects; every call is gated on organization ownership"""

    @staticmethod
    async def create(
        db: AsyncSession, organization_id: str, owner_id: str, payload: ProjectCreate,
    ) -> Envelope[Created]:
        if not await has_access(db, owner_id, organization_id):
            return Envelope.fail("ORG_NOT_FOUND")

        try:
            project = Project(
                organization_id=organization_id,
                name=payload.name,
                wrapped_symmetric_key=payload.wrapped_symmetric_key,
            )
            db.add(project)
            await db.flush()
            db.add(AuditLog(
                event_type=AuditEventType.PROJECT_CREATED,
                user_id=owner_id,
                organization_id=organization_id,
                resource_type="project",
                resource_id=project.id,
            ))
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error creating project in organization %s", organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while creating project")

        logger.info("Project created with ID: %s", project.id)
        return Envelope.ok(Created(id=project.id), "Project created successfully")

    @staticmethod
    async def find_all(
        db: AsyncSession,
        organization_id: str,
        owner_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Envelope[ProjectPage]:
        if not await has_access(db, owner_id, organization_id):
            return Envelope.fail("ORG_NOT_FOUND")

        page, limit = clamp_page(page, limit)
        offset = (page - 1) * limit
        projects = []
        try:
            total = (await db.execute(
                select(func.count(Project.id)).where(Project.organization_id == organization_id)
            )).scalar() or 0
            if offset < total:
                stmt = (
                    select(Project)
                    .where(Project.organization_id == organization_id)
                    .order_by(Project.created_at, Project.id)
                    .offset(offset)
                    .limit(limit)
                )
                projects = (await db.execute(stmt)).scalars().all()
        except SQLAlchemyError:
            logger.exception("Error retrieving projects for organization %s", organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while retrieving projects")

        return Envelope.ok(
            ProjectPage(
                projects=[ProjectSummary.model_validate(p) for p in projects],
                pagination=Pagination.build(total, page, limit),
            ),
            "Projects retrieved successfully",
        )

    @staticmethod
    async def find_one(
        db: AsyncSession, project_id: str, organization_id: str, owner_id: str,
    ) -> Envelope[ProjectOut]:
        if not await has_access(db, owner_id, organization_id):
            return Envelope.fail("ORG_NOT_FOUND")

        try:
            project = await _get_in_org(db, project_id, organization_id)
        except SQLAlchemyError:
            logger.exception("Error finding project with id %s", project_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while retrieving project")

        if project is None:
            return Envelope.fail("PROJECT_NOT_FOUND")
        return Envelope.ok(ProjectOut.model_validate(project), "Project found successfully")

    @staticmethod
    async def update(
        db: AsyncSession,
        project_id: str,
        organization_id: str,
        owner_id: str,
        payload: ProjectUpdate,
    ) -> Envelope[ProjectOut]:
        if not await has_access(db, owner_id, organization_id):
            return Envelope.fail("ORG_NOT_FOUND")

        changes = payload.model_dump(exclude_none=True)
        try:
            project = await _get_in_org(db, project_id, organization_id)
            if project is None:
                return Envelope.fail("PROJECT_NOT_FOUND")
            if not changes:
                return Envelope.ok(ProjectOut.model_validate(project), "Nothing to update")

            result = await db.execute(
                update(Project)
                .where(Project.id == project_id, Project.organization_id == organization_id)
                .values(**changes, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                return Envelope.fail("UNKNOWN_ERROR", "Unable to update project")

            db.add(AuditLog(
                event_type=AuditEventType.PROJECT_UPDATED,
                user_id=owner_id,
                organization_id=organization_id,
                resource_type="project",
                resource_id=project_id,
                details={"fields": sorted(changes)},
            ))
            await db.commit()
            await db.refresh(project)
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error updating project with ID %s", project_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while updating project")

        logger.info("Project updated with ID: %s", project_id)
        return Envelope.ok(ProjectOut.model_validate(project), "Project updated successfully")

    @staticmethod
    async def remove(
        db: AsyncSession, project_id: str, organization_id: str, owner_id: str,
    ) -> Envelope[Deleted]:
        if not await has_access(db, owner_id, organization_id):
            return Envelope.fail("ORG_NOT_FOUND")

        try:
            found = await db.execute(
                select(Project.id).where(Project.id == project_id, Project.organization_id == organization_id)
            )
            if found.scalar_one_or_none() is None:
                return Envelope.fail("PROJECT_NOT_FOUND")

            await db.execute(delete(Secret).where(Secret.project_id == project_id))
            result = await db.execute(
                delete(Project)
                .where(Project.id == project_id, Project.organization_id == organization_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                return Envelope.fail("UNKNOWN_ERROR", "Unable to delete project")

            db.add(AuditLog(
                event_type=AuditEventType.PROJECT_DELETED,
                user_id=owner_id,
                organization_id=organization_id,
                resource_type="project",
                resource_id=project_id,
            ))
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error deleting project with ID %s", project_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while deleting project")

        logger.info("Project deleted with ID: %s", project_id)
        return Envelope.ok(Deleted(id=project_id), "Project deleted successfully")

    @staticmethod
    async def delete_for_organization(db: AsyncSession, organization_id: str) -> int:
        """Delete every project (and its secrets) of an organization; caller commits"""
        project_ids = select(Project.id).where(Project.organization_id == organization_id)
        await db.execute(
            delete(Secret)
            .where(Secret.project_id.in_(project_ids))
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(
            delete(Project)
            .where(Project.organization_id == organization_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


async def _get_in_org(db: AsyncSession, project_id: str, organization_id: str):
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.organization_id == organization_id)
    )
    return result.scalar_one_or_none()
