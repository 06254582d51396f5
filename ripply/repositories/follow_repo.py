import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ripply.models.follow import Follow


class FollowRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_following_ids(self, user_id: uuid.UUID) -> list[uuid.UUID]:
        stmt = select(Follow.following_id).where(Follow.follower_id == user_id).order_by(Follow.created_at)
        return list(await self.db.scalars(stmt))
