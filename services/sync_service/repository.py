from typing import List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import PendingItemScan


class PendingScanRepository:
    @staticmethod
    async def add(db: AsyncSession, scan: PendingItemScan) -> PendingItemScan:
        db.add(scan)
        await db.commit()
        await db.refresh(scan)
        return scan

    @staticmethod
    async def list_pending(db: AsyncSession) -> List[PendingItemScan]:
        result = await db.execute(select(PendingItemScan).order_by(PendingItemScan.id))
        return list(result.scalars().all())

    @staticmethod
    async def delete(db: AsyncSession, scan_id: int):
        await db.execute(delete(PendingItemScan).where(PendingItemScan.id == scan_id))
        await db.commit()

    @staticmethod
    async def record_attempt(db: AsyncSession, scan_id: int) -> int:
        result = await db.execute(select(PendingItemScan).where(PendingItemScan.id == scan_id))
        scan = result.scalars().first()
        if scan is None:
            return 0
        scan.attempts += 1
        await db.commit()
        return scan.attempts
