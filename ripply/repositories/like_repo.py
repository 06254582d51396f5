import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ripply.core.tag_utils import unique_tags
from ripply.models.interactions import VoiceNoteLike
from ripply.models.voice_note import VoiceNote
from ripply.models.voice_note_tag import VoiceNoteTag


@dataclass
class LikedContent:
    tags: list[str] = field(default_factory=list)
    creator_ids: list[uuid.UUID] = field(default_factory=list)


class LikeRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_liked_tags_and_creators(self, user_id: uuid.UUID, *, tag_sample: int) -> LikedContent:
        """Tags come from the user's most recent likes only; creators from all of them."""
        recent_likes = (
            select(VoiceNoteLike.voice_note_id)
            .where(VoiceNoteLike.user_id == user_id)
            .order_by(VoiceNoteLike.created_at.desc())
            .limit(tag_sample)
        )
        tag_stmt = (
            select(VoiceNoteTag.tag_name)
            .where(VoiceNoteTag.voice_note_id.in_(recent_likes))
            .order_by(VoiceNoteTag.tag_name)
        )
        creator_stmt = (
            select(VoiceNote.user_id)
            .join(VoiceNoteLike, VoiceNoteLike.voice_note_id == VoiceNote.id)
            .where(VoiceNoteLike.user_id == user_id)
            .distinct()
        )
        tags = unique_tags(await self.db.scalars(tag_stmt))
        creator_ids = list(await self.db.scalars(creator_stmt))
        return LikedContent(tags=tags, creator_ids=creator_ids)
