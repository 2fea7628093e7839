# tests/test_devices.py: Device listing and scoped soft revocation
from datetime import timedelta

import pytest
from sqlalchemy import select, func

from device_service import DeviceRegistry
from models import DeviceRegistration, AuditLog, AuditEventType, DeviceStatus, utcnow
from schemas import ClientInfo


async def _device_row(db_session, device_id):
    result = await db_session.execute(
        select(DeviceRegistration.is_active, DeviceRegistration.revoked_at)
        .where(DeviceRegistration.id == device_id)
    )
    return result.one()


async def _add_device(db_session, org_id, user_id, name="Firefox on Linux", last_used=None):
    device = DeviceRegistration(
        organization_id=org_id,
        user_id=user_id,
        device_name=name,
        device_fingerprint=f"fp-{name}",
        public_key="device-public-key",
        encrypted_device_key="enc",
        key_derivation_salt="salt",
        encryption_iv="iv",
        combination_salt="combo",
        last_used=last_used or utcnow(),
    )
    db_session.add(device)
    await db_session.commit()
    return device.id


# ============================================================
# LIST
# ============================================================

@pytest.mark.asyncio
async def test_list_devices_most_recent_first(db_session, owner, owned_org):
    org_id = owned_org.organization_id
    newer = await _add_device(db_session, org_id, owner.id, last_used=utcnow() + timedelta(hours=1))

    result = await DeviceRegistry.list_devices(db_session, org_id, owner.id)

    assert result.error is None
    assert [d.id for d in result.data] == [newer, owned_org.device_registration_id]
    assert all(d.status == DeviceStatus.ACTIVE for d in result.data)


@pytest.mark.asyncio
async def test_list_devices_not_owner(db_session, other_user, owned_org):
    result = await DeviceRegistry.list_devices(db_session, owned_org.organization_id, other_user.id)
    assert result.error.code == "ORG_NOT_FOUND"


@pytest.mark.asyncio
async def test_list_devices_hides_key_material(db_session, owner, owned_org):
    result = await DeviceRegistry.list_devices(db_session, owned_org.organization_id, owner.id)
    device = result.to_dict()["data"][0]
    assert "encryptedDeviceKey" not in device
    assert "combinationSalt" not in device
    assert device["status"] == "active"


# ============================================================
# REVOKE
# ============================================================

@pytest.mark.asyncio
async def test_revoke_device(db_session, owner, owned_org):
    org_id = owned_org.organization_id
    device_id = owned_org.device_registration_id
    client_info = ClientInfo(ip_address="10.0.0.7", user_agent="pytest")

    result = await DeviceRegistry.revoke_device(db_session, org_id, device_id, owner.id, client_info)

    assert result.error is None
    assert result.data.already_revoked is False
    assert result.data.status == DeviceStatus.REVOKED
    assert result.data.revoked_at is not None

    is_active, revoked_at = await _device_row(db_session, device_id)
    assert is_active is False
    assert revoked_at is not None

    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.event_type == AuditEventType.DEVICE_REVOKED)
    )).scalar_one()
    assert audit.resource_id == device_id
    assert audit.ip_address == "10.0.0.7"
    assert audit.user_agent == "pytest"


@pytest.mark.asyncio
async def test_revoke_keeps_the_row(db_session, owner, owned_org):
    await DeviceRegistry.revoke_device(
        db_session, owned_org.organization_id, owned_org.device_registration_id, owner.id,
    )
    count = (await db_session.execute(select(func.count()).select_from(DeviceRegistration))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_revoke_twice_is_idempotent(db_session, owner, owned_org):
    org_id = owned_org.organization_id
    device_id = owned_org.device_registration_id

    first = await DeviceRegistry.revoke_device(db_session, org_id, device_id, owner.id)
    second = await DeviceRegistry.revoke_device(db_session, org_id, device_id, owner.id)

    assert first.data.already_revoked is False
    assert second.error is None
    assert second.data.already_revoked is True
    assert second.data.status == DeviceStatus.REVOKED

    revocations = (await db_session.execute(
        select(func.count()).select_from(AuditLog).where(AuditLog.event_type == AuditEventType.DEVICE_REVOKED)
    )).scalar()
    assert revocations == 1


@pytest.mark.asyncio
async def test_revoke_by_non_owner_changes_nothing(db_session, other_user, owned_org):
    device_id = owned_org.device_registration_id

    result = await DeviceRegistry.revoke_device(
        db_session, owned_org.organization_id, device_id, other_user.id,
    )

    assert result.data is None
    assert result.error.code == "DEVICE_NOT_FOUND"
    assert result.error.status_code == 404
    is_active, revoked_at = await _device_row(db_session, device_id)
    assert is_active is True
    assert revoked_at is None


@pytest.mark.asyncio
async def test_revoke_device_of_another_org(db_session, owner, create_org):
    first = await create_org(owner, name="First")
    second = await create_org(owner, name="Second")

    result = await DeviceRegistry.revoke_device(
        db_session, first.organization_id, second.device_registration_id, owner.id,
    )

    assert result.error.code == "DEVICE_NOT_FOUND"
    is_active, _ = await _device_row(db_session, second.device_registration_id)
    assert is_active is True


@pytest.mark.asyncio
async def test_revoke_unknown_device(db_session, owner, owned_org):
    result = await DeviceRegistry.revoke_device(
        db_session, owned_org.organization_id, "00000000-0000-0000-0000-000000000000", owner.id,
    )
    assert result.error.code == "DEVICE_NOT_FOUND"


@pytest.mark.asyncio
async def test_revoked_device_is_never_reactivated(db_session, owner, owned_org):
    org_id = owned_org.organization_id
    device_id = owned_org.device_registration_id
    await DeviceRegistry.revoke_device(db_session, org_id, device_id, owner.id)

    listed = await DeviceRegistry.list_devices(db_session, org_id, owner.id)

    assert [d.status for d in listed.data] == [DeviceStatus.REVOKED]
    assert listed.data[0].is_active is False


@pytest.mark.asyncio
async def test_revoke_device_registered_to_another_user(db_session, owner, other_user, owned_org):
    """A device row in an owned org but registered to someone else is out of scope"""
    org_id = owned_org.organization_id
    foreign_device = await _add_device(db_session, org_id, other_user.id)

    result = await DeviceRegistry.revoke_device(db_session, org_id, foreign_device, owner.id)

    assert result.error.code == "DEVICE_NOT_FOUND"
    is_active, _ = await _device_row(db_session, foreign_device)
    assert is_active is True


@pytest.mark.asyncio
async def test_list_devices_store_failure_denies(broken_session):
    result = await DeviceRegistry.list_devices(broken_session, "org-1", "user-1")

    assert result.data is None
    assert result.error.code == "ORG_NOT_FOUND"
