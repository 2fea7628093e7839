# key_service.py: Release of encrypted key material to the organization owner
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Organization, DeviceRegistration, AuditLog, AuditEventType, utcnow
from responses import Envelope
from schemas import ClientInfo, DeviceKeyMaterial, KeyBundle

logger = logging.getLogger("keyvault.keys")


class KeyRetrievalService:
    """Assembles the bundle a client needs to reconstruct the organization key.

    Nothing is decrypted here: the organization's wrapped private key and
    salts are returned together with the caller's active device share, and
    the client combines the factors locally.
    """

    @staticmethod
    async def keys(
        db: AsyncSession,
        organization_id: str,
        owner_id: str,
        client_info: Optional[ClientInfo] = None,
    ) -> Envelope[KeyBundle]:
        client_info = client_info or ClientInfo()
        try:
            # Ownership is part of the lookup itself: a foreign org and a missing one look the same
            org_stmt = select(Organization).where(
                Organization.id == organization_id,
                Organization.owner_id == owner_id,
            )
            org = (await db.execute(org_stmt)).scalar_one_or_none()
            if org is None:
                return Envelope.fail("ORG_NOT_FOUND")

            device_stmt = (
                select(DeviceRegistration)
                .where(
                    DeviceRegistration.organization_id == organization_id,
                    DeviceRegistration.user_id == owner_id,
                    DeviceRegistration.is_active.is_(True),
                )
                .order_by(DeviceRegistration.last_used.desc(), DeviceRegistration.created_at.desc())
                .limit(1)
                .execution_options(populate_existing=True)
            )
            device = (await db.execute(device_stmt)).scalar_one_or_none()

            device_info = None
            if device is not None:
                now = utcnow()
                # Conditional touch: last_used only ever moves forward
                touched = await db.execute(
                    update(DeviceRegistration)
                    .where(DeviceRegistration.id == device.id, DeviceRegistration.last_used < now)
                    .values(last_used=now)
                    .execution_options(synchronize_session=False)
                )
                device_info = DeviceKeyMaterial.model_validate(device)
                if touched.rowcount:
                    device_info.last_used = now

            db.add(AuditLog(
                event_type=AuditEventType.KEYS_RETRIEVED,
                user_id=owner_id,
                organization_id=organization_id,
                resource_type="organization",
                resource_id=organization_id,
                details={"deviceId": device.id if device is not None else None},
                ip_address=client_info.ip_address,
                user_agent=client_info.user_agent,
                request_id=client_info.request_id,
            ))
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Error retrieving keys for organization %s", organization_id)
            return Envelope.fail("INTERNAL_ERROR", "Something went wrong while retrieving organization keys")

        if device_info is None:
            logger.info("No active device for organization %s; client must use another factor", organization_id)

        return Envelope.ok(
            KeyBundle(
                organization_id=org.id,
                public_key=org.public_key,
                encrypted_private_key=org.private_key_encrypted,
                key_derivation_salt=org.key_derivation_salt,
                encryption_iv=org.encryption_iv,
                mkdf_version=org.mkdf_version,
                required_factors=org.required_factors,
                factor_config=org.factor_config or {},
                recovery_threshold=org.recovery_threshold,
                device_info=device_info,
            ),
            "Organization keys retrieved successfully",
        )
