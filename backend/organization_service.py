# organization_service.py: Organization lifecycle: atomic creation, reads, rename, teardown
import logging
from typing import Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from device_service import DeviceRegistry
from models import Organization, AuditLog, AuditEventType, new_uuid, utcnow
from project_service import ProjectRegistry
from recovery_service import RecoveryBackupStore
from responses import Envelope
from schemas import (
    ClientInfo, Deleted, OrganizationCreate, OrganizationCreated, OrganizationOut,
    OrganizationPage, OrganizationSummary, OrganizationUpdate, Pagination, clamp_page,
)

logger = logging.getLogger("keyvault.organizations")

DEFAULT_PAGE_SIZE = 10


def _audit(
    event_type: AuditEventType,
    owner_id: str,
    organization_id: str,
    details: Optional[dict] = None,
    client_info: Optional[ClientInfo] = None,
) -> AuditLog:
    return AuditLog(
        event_type=event_type,
        user_id=owner_id,
        organization_id=organization_id,
        resource_type="organization",
        resource_id=organization_id,
        details=details,
        ip_address=client_info.ip_address if client_info else None,
        user_agent=client_info.user_agent if client_info else None,
        request_id=client_info.request_id if client_info else None,
    )


class OrganizationRegistry:
    """Organizations and the multi-row transactions that create and tear them down.

    Every method returns an :class:`Envelope`; store errors are rolled back,
    logged and reported as ``INTERNAL_ERROR``. "No such organization" and
    "owned by someone else" are both reported as ``ORG_NOT_FOUND``.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        owner_id: str,
        payload: OrganizationCreate,
        client_info: Optional[ClientInfo] = None,
    ) -> Envelope[OrganizationCreated]:
        """Insert organization + first device + recovery placeholder, all or nothing"""
        mkdf = payload.mkdf_config
        try:
            org = Organization(
                id=new_uuid(),
                name=payload.name,
                owner_id=owner_id,
                public_key=payload.public_key,
                private_key_encrypted=payload.encrypted_private_key,
                key_derivation_salt=payload.key_derivation_salt,
                encryption_iv=payload.encryption_iv,
                mkdf_version=mkdf.mkdf_version,
                required_factors=mkdf.required_factors,
                factor_config=mkdf.factor_config(),
                recovery_threshold=mkdf.recovery_threshold,
            )
            db.add(org)
            # Children reference the organization row, so it goes first
            await db.flush()

            device = DeviceRegistry.register(
                db, org.id, owner_id, payload.device_info, fallback_public_key=payload.public_key,
            )
            RecoveryBackupStore.add_placeholder(db, org.id, owner_id)
            db.add(_audit(
                AuditEventType.ORG_CREATED, owner_id, org.id,
                details={"name": payload.name, "requiredFactors": mkdf.required_factors},
                client_info=client_info,
            ))
            await db.flush()
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error creating organization for owner %s", owner_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while creating organization")

        logger.info("Organization %s created with device %s", org.id, device.id)
        return Envelope.ok(
            OrganizationCreated(organization_id=org.id, device_registration_id=device.id),
            "Organization created successfully",
        )

    @staticmethod
    async def find_all(
        db: AsyncSession, owner_id: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE,
    ) -> Envelope[OrganizationPage]:
        page, limit = clamp_page(page, limit)
        offset = (page - 1) * limit
        orgs = []
        try:
            count_stmt = select(func.count(Organization.id)).where(Organization.owner_id == owner_id)
            total = (await db.execute(count_stmt)).scalar() or 0

            # Past the last row the page is empty; the offset never reaches the store
            if offset < total:
                stmt = (
                    select(Organization)
                    .where(Organization.owner_id == owner_id)
                    .order_by(Organization.created_at.desc(), Organization.id)
                    .offset(offset)
                    .limit(limit)
                )
                result = await db.execute(stmt)
                orgs = result.scalars().all()
        except SQLAlchemyError:
            logger.exception("Error retrieving organizations for owner %s", owner_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while retrieving organizations")

        return Envelope.ok(
            OrganizationPage(
                organizations=[OrganizationSummary.model_validate(o) for o in orgs],
                pagination=Pagination.build(total, page, limit),
            ),
            "Organizations retrieved successfully",
        )

    @staticmethod
    async def find_one(db: AsyncSession, organization_id: str, owner_id: str) -> Envelope[OrganizationOut]:
        try:
            org = await _get_owned(db, organization_id, owner_id)
        except SQLAlchemyError:
            logger.exception("Error finding organization %s", organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while retrieving organization")

        if org is None:
            return Envelope.fail("ORG_NOT_FOUND")
        return Envelope.ok(OrganizationOut.model_validate(org), "Organization found successfully")

    @staticmethod
    async def update(
        db: AsyncSession,
        organization_id: str,
        owner_id: str,
        payload: OrganizationUpdate,
        client_info: Optional[ClientInfo] = None,
    ) -> Envelope[OrganizationOut]:
        """Rename; the name is the only mutable field"""
        try:
            org = await _get_owned(db, organization_id, owner_id)
            if org is None:
                return Envelope.fail("ORG_NOT_FOUND")

            previous_name = org.name
            stmt = (
                update(Organization)
                .where(Organization.id == organization_id, Organization.owner_id == owner_id)
                .values(name=payload.name, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            if result.rowcount == 0:
                await db.rollback()
                return Envelope.fail("UNKNOWN_ERROR", "Unable to update organization")

            db.add(_audit(
                AuditEventType.ORG_UPDATED, owner_id, organization_id,
                details={"from": previous_name, "to": payload.name},
                client_info=client_info,
            ))
            await db.commit()
            await db.refresh(org)
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error updating organization %s", organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while updating organization")

        logger.info("Organization %s renamed", organization_id)
        return Envelope.ok(OrganizationOut.model_validate(org), "Organization updated successfully")

    @staticmethod
    async def remove(
        db: AsyncSession,
        organization_id: str,
        owner_id: str,
        client_info: Optional[ClientInfo] = None,
    ) -> Envelope[Deleted]:
        """Cascading teardown in one transaction.

        Child rows are deleted explicitly before the organization; the
        foreign-key cascade only backs this up.
        """
        try:
            owned = await db.execute(
                select(Organization.id).where(
                    Organization.id == organization_id,
                    Organization.owner_id == owner_id,
                )
            )
            if owned.scalar_one_or_none() is None:
                return Envelope.fail("ORG_NOT_FOUND")

            devices = await DeviceRegistry.delete_for_organization(db, organization_id)
            backups = await RecoveryBackupStore.delete_for_organization(db, organization_id)
            projects = await ProjectRegistry.delete_for_organization(db, organization_id)

            result = await db.execute(
                delete(Organization)
                .where(Organization.id == organization_id, Organization.owner_id == owner_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                return Envelope.fail("UNKNOWN_ERROR", "Unable to delete organization")

            db.add(_audit(
                AuditEventType.ORG_DELETED, owner_id, organization_id,
                details={"devices": devices, "recoveryBackups": backups, "projects": projects},
                client_info=client_info,
            ))
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error deleting organization %s", organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while deleting organization")

        logger.info(
            "Organization %s deleted (%d devices, %d backups, %d projects)",
            organization_id, devices, backups, projects,
        )
        return Envelope.ok(Deleted(id=organization_id), "Organization deleted successfully")


async def _get_owned(db: AsyncSession, organization_id: str, owner_id: str) -> Optional[Organization]:
    stmt = select(Organization).where(
        Organization.id == organization_id,
        Organization.owner_id == owner_id,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
