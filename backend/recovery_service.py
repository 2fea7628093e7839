# recovery_service.py: Recovery backup placeholders
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from models import RecoveryBackup, BackupType, PENDING_BACKUP

DEFAULT_USAGE_LIMIT = 1


class RecoveryBackupStore:
    """Recovery backups are created empty alongside their organization.

    Populating and consuming a backup happens client-side and is not handled
    here; this store only owns the placeholder row and its teardown.
    """

    @staticmethod
    def add_placeholder(db: AsyncSession, organization_id: str, user_id: str) -> RecoveryBackup:
        """Stage a placeholder in the caller's transaction (no commit)"""
        backup = RecoveryBackup(
            organization_id=organization_id,
            user_id=user_id,
            backup_type=BackupType.RECOVERY_CODE.value,
            encrypted_backup=PENDING_BACKUP,
            backup_metadata={"usageLimit": DEFAULT_USAGE_LIMIT, "usageCount": 0},
            is_used=False,
            expires_at=None,
        )
        db.add(backup)
        return backup

    @staticmethod
    async def delete_for_organization(db: AsyncSession, organization_id: str) -> int:
        result = await db.execute(
            delete(RecoveryBackup).where(RecoveryBackup.organization_id == organization_id)
        )
        return result.rowcount or 0
