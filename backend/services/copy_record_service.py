"""Copy (CC) record queries and read tracking."""

from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AuthorizationError
from core.utils import utc_now
from db.models.copy_record import CopyRecord
from services.base import BaseService


class CopyRecordService(BaseService[CopyRecord]):
    label = "Copy record"

    def __init__(self, db: AsyncSession):
        super().__init__(CopyRecord, db)

    async def list_for_user(
        self,
        user_id: str,
        is_read: Optional[bool] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[CopyRecord], int]:
        return await self.list(
            offset=offset,
            limit=limit,
            filters={"user_id": user_id, "is_read": is_read},
        )

    async def mark_read(self, record_id: str, user_id: str) -> CopyRecord:
        """Mark one record read. Marking an already-read record is a no-op."""
        record = await self.get_or_404(record_id)
        if record.user_id != user_id:
            raise AuthorizationError("This copy was not sent to you")
        if not record.is_read:
            record.is_read = True
            record.read_at = utc_now()
            await self.db.flush()
        return record

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.db.execute(
            update(CopyRecord)
            .where(
                CopyRecord.user_id == user_id,
                CopyRecord.is_read == False,
                CopyRecord.is_deleted == False,
            )
            .values(is_read=True, read_at=utc_now())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def unread_count(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(CopyRecord)
            .where(
                CopyRecord.user_id == user_id,
                CopyRecord.is_read == False,
                CopyRecord.is_deleted == False,
            )
        )
        return result.scalar() or 0
