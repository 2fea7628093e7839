# access_control.py: Organization ownership gate
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Organization

logger = logging.getLogger("keyvault.access")


async def has_access(db: AsyncSession, owner_id: str, organization_id: str) -> bool:
    """True iff an organization row exists with exactly this (id, owner_id) pair.

    Fails closed: a store error is logged and reported as "no access".
    """
    if not owner_id or not organization_id:
        return False
    try:
        stmt = select(Organization.id).where(
            Organization.id == organization_id,
            Organization.owner_id == owner_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None
    except SQLAlchemyError:
        logger.exception(
            "Ownership check failed for org=%s owner=%s; denying access",
            organization_id, owner_id,
        )
        return False
