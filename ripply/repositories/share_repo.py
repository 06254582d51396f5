import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ripply.models.interactions import VoiceNoteShare
from ripply.repositories.query import Window


class ShareRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_by_sharers(self, sharer_ids: list[uuid.UUID], window: Window) -> list[dict[str, Any]]:
        stmt = (
            select(
                VoiceNoteShare.id,
                VoiceNoteShare.voice_note_id,
                VoiceNoteShare.user_id,
                VoiceNoteShare.shared_at,
            )
            .where(VoiceNoteShare.user_id.in_(sharer_ids))
            .order_by(VoiceNoteShare.shared_at.desc(), VoiceNoteShare.id)
            .offset(window.offset)
            .limit(window.limit)
        )
        return [dict(row._mapping) for row in (await self.db.execute(stmt)).all()]
