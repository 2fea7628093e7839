# routers/organizations.py: Organization, device and key-custody endpoints
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from device_service import DeviceRegistry
from key_service import KeyRetrievalService
from organization_service import OrganizationRegistry
from responses import Envelope, to_response
from schemas import ClientInfo, OrganizationCreate, OrganizationUpdate

router = APIRouter(prefix="/api/v1/organizations", tags=["Organizations"])


def client_info_from(request: Request) -> ClientInfo:
    return ClientInfo(
        user_agent=request.headers.get("user-agent") or "Unknown",
        ip_address=request.client.host if request.client else "Unknown",
        request_id=getattr(request.state, "request_id", None),
    )


@router.post("")
async def create_organization(
    payload: OrganizationCreate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create an organization with MKDF key custody and its first device"""
    if payload.owner_id is not None and payload.owner_id != user.id:
        return to_response(Envelope.fail("FORBIDDEN", "Cannot create organization for another user"))

    result = await OrganizationRegistry.create(db, user.id, payload, client_info_from(request))
    return to_response(result, success_status=201)


@router.get("")
async def list_organizations(
    page: int = Query(default=1),
    limit: int = Query(default=10),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Organizations owned by the caller, newest first"""
    return to_response(await OrganizationRegistry.find_all(db, user.id, page, limit))


@router.get("/keys")
async def get_organization_keys(
    request: Request,
    org_id: Optional[str] = Query(default=None, alias="orgId"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Encrypted key bundle for MKDF reconstruction on the client"""
    if not org_id:
        return to_response(Envelope.fail("VALIDATION_ERROR", "Organization ID is required"))

    result = await KeyRetrievalService.keys(db, org_id, user.id, client_info_from(request))
    return to_response(result)


@router.get("/{org_id}")
async def get_organization(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return to_response(await OrganizationRegistry.find_one(db, org_id, user.id))


@router.patch("/{org_id}")
async def update_organization(
    org_id: str,
    payload: OrganizationUpdate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Rename an organization"""
    result = await OrganizationRegistry.update(db, org_id, user.id, payload, client_info_from(request))
    return to_response(result)


@router.delete("/{org_id}")
async def delete_organization(
    org_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete an organization with its devices, recovery backups and projects"""
    result = await OrganizationRegistry.remove(db, org_id, user.id, client_info_from(request))
    return to_response(result)


@router.get("/{org_id}/devices")
async def list_devices(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return to_response(await DeviceRegistry.list_devices(db, org_id, user.id))


@router.delete("/{org_id}/devices/{device_id}")
async def revoke_device(
    org_id: str,
    device_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Revoke one device; revoked devices can never be re-activated"""
    result = await DeviceRegistry.revoke_device(db, org_id, device_id, user.id, client_info_from(request))
    return to_response(result)
