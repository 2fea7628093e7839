# device_service.py: Device registrations: staging, listing, soft revocation
import logging
from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access_control import has_access
from models import DeviceRegistration, Organization, AuditLog, AuditEventType, utcnow
from responses import Envelope
from schemas import ClientInfo, DeviceInfo, DeviceOut, DeviceRevoked

logger = logging.getLogger("keyvault.devices")


class DeviceRegistry:
    """Device records hold one encrypted share of an organization's unlock material.

    State machine: ACTIVE -> REVOKED, and REVOKED is terminal. Devices are
    only ever registered inside organization creation; there is no
    standalone registration path.
    """

    @staticmethod
    def register(
        db: AsyncSession,
        organization_id: str,
        user_id: str,
        device: DeviceInfo,
        fallback_public_key: str,
    ) -> DeviceRegistration:
        """Stage a new ACTIVE device in the caller's transaction (no commit)"""
        now = utcnow()
        registration = DeviceRegistration(
            organization_id=organization_id,
            user_id=user_id,
            device_name=device.device_name,
            device_fingerprint=device.device_fingerprint,
            public_key=device.public_key or fallback_public_key,
            encrypted_device_key=device.encrypted_device_key,
            key_derivation_salt=device.key_derivation_salt,
            encryption_iv=device.encryption_iv,
            combination_salt=device.combination_salt,
            pin_salt=device.pin_salt,
            is_active=True,
            last_used=now,
        )
        db.add(registration)
        return registration

    @staticmethod
    async def delete_for_organization(db: AsyncSession, organization_id: str) -> int:
        result = await db.execute(
            delete(DeviceRegistration).where(DeviceRegistration.organization_id == organization_id)
        )
        return result.rowcount or 0

    @staticmethod
    async def list_devices(
        db: AsyncSession, organization_id: str, owner_id: str,
    ) -> Envelope[List[DeviceOut]]:
        """Devices of an owned organization, most recently used first"""
        if not await has_access(db, owner_id, organization_id):
            return Envelope.fail("ORG_NOT_FOUND")

        try:
            stmt = (
                select(DeviceRegistration)
                .where(DeviceRegistration.organization_id == organization_id)
                .order_by(DeviceRegistration.last_used.desc(), DeviceRegistration.created_at.desc())
                .execution_options(populate_existing=True)
            )
            result = await db.execute(stmt)
            devices = result.scalars().all()
        except SQLAlchemyError:
            logger.exception("Error listing devices for organization %s", organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while retrieving devices")

        return Envelope.ok(
            [DeviceOut.model_validate(d) for d in devices],
            "Devices retrieved successfully",
        )

    @staticmethod
    async def revoke_device(
        db: AsyncSession,
        organization_id: str,
        device_id: str,
        owner_id: str,
        client_info: Optional[ClientInfo] = None,
    ) -> Envelope[DeviceRevoked]:
        """Soft-revoke one device, scoped to (device, organization, owner).

        A device outside that scope is reported as DEVICE_NOT_FOUND and
        nothing is written. Revoking an already revoked device succeeds
        without writing and reports ``alreadyRevoked``.
        """
        scope = (
            DeviceRegistration.id == device_id,
            DeviceRegistration.organization_id == organization_id,
            DeviceRegistration.user_id == owner_id,
            DeviceRegistration.organization_id.in_(
                select(Organization.id).where(
                    Organization.id == organization_id,
                    Organization.owner_id == owner_id,
                )
            ),
        )

        try:
            result = await db.execute(
                select(DeviceRegistration).where(*scope).execution_options(populate_existing=True)
            )
            device = result.scalar_one_or_none()
            if device is None:
                return Envelope.fail("DEVICE_NOT_FOUND")

            if not device.is_active:
                return Envelope.ok(
                    DeviceRevoked(
                        id=device.id,
                        organization_id=device.organization_id,
                        already_revoked=True,
                        revoked_at=device.revoked_at,
                    ),
                    "Device already revoked",
                )

            now = utcnow()
            stmt = (
                update(DeviceRegistration)
                .where(*scope, DeviceRegistration.is_active.is_(True))
                .values(is_active=False, revoked_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            if result.rowcount == 0:
                # Lost a race with a concurrent revoke of the same device
                await db.rollback()
                return Envelope.ok(
                    DeviceRevoked(
                        id=device_id,
                        organization_id=organization_id,
                        already_revoked=True,
                    ),
                    "Device already revoked",
                )

            db.add(AuditLog(
                event_type=AuditEventType.DEVICE_REVOKED,
                user_id=owner_id,
                organization_id=organization_id,
                resource_type="device_registration",
                resource_id=device_id,
                details={"deviceName": device.device_name},
                ip_address=client_info.ip_address if client_info else None,
                user_agent=client_info.user_agent if client_info else None,
                request_id=client_info.request_id if client_info else None,
            ))
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error revoking device %s in organization %s", device_id, organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while revoking device")

        logger.info("Device %s revoked in organization %s", device_id, organization_id)
        return Envelope.ok(
            DeviceRevoked(
                id=device_id,
                organization_id=organization_id,
                already_revoked=False,
                revoked_at=now,
            ),
            "Device access revoked successfully",
        )
