# routers/projects.py: Project endpoints nested under an organization
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from project_service import ProjectRegistry
from responses import to_response
from schemas import ProjectCreate, ProjectUpdate

router = APIRouter(prefix="/api/v1/organizations/{org_id}/projects", tags=["Projects"])


@router.post("")
async def create_project(
    org_id: str,
    payload: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    result = await ProjectRegistry.create(db, org_id, user.id, payload)
    return to_response(result, success_status=201)


@router.get("")
async def list_projects(
    org_id: str,
    page: int = Query(default=1),
    limit: int = Query(default=10),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return to_response(await ProjectRegistry.find_all(db, org_id, user.id, page, limit))


@router.get("/{project_id}")
async def get_project(
    org_id: str,
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return to_response(await ProjectRegistry.find_one(db, project_id, org_id, user.id))


@router.patch("/{project_id}")
async def update_project(
    org_id: str,
    project_id: str,
    payload: ProjectUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return to_response(await ProjectRegistry.update(db, project_id, org_id, user.id, payload))


@router.delete("/{project_id}")
async def delete_project(
    org_id: str,
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return to_response(await ProjectRegistry.remove(db, project_id, org_id, user.id))
