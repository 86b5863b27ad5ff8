from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import StoredCredentials

SESSION_KEY = "session"


class CredentialRepository:

    @staticmethod
    async def get(db: AsyncSession) -> Optional[StoredCredentials]:
        result = await db.execute(select(StoredCredentials).where(StoredCredentials.key == SESSION_KEY))
        return result.scalars().first()

    @staticmethod
    async def save(db: AsyncSession, access_token: str, refresh_token: Optional[str], manager: dict) -> StoredCredentials:
        stored = await CredentialRepository.get(db)
        if stored is None:
            stored = StoredCredentials(key=SESSION_KEY)
            db.add(stored)
        stored.access_token = access_token
        stored.refresh_token = refresh_token
        stored.manager = manager
        await db.commit()
        await db.refresh(stored)
        return stored

    @staticmethod
    async def clear(db: AsyncSession) -> None:
        await db.execute(delete(StoredCredentials))
        await db.commit()
