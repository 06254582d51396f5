import uuid
from collections import defaultdict
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ripply.models.interactions import VoiceNoteComment, VoiceNoteLike, VoiceNotePlay
from ripply.models.user import User
from ripply.models.voice_note import VoiceNote
from ripply.repositories.voice_note_repo import engagement_count


class UserRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_public_profile(self, user_id: uuid.UUID) -> dict[str, Any] | None:
        user = await self.db.scalar(select(User).where(User.id == user_id))
        if user is None:
            return None
        return {
            "id": user.id,
            "username": user.username,
            "display_name": user.display_name,
            "avatar_url": user.avatar_url,
        }

    async def list_discovery_candidates(
        self,
        *,
        exclude_ids: list[uuid.UUID],
        limit: int,
    ) -> list[dict[str, Any]]:
        """Users outside ``exclude_ids`` with the engagement counts of each of their notes."""
        users = list(
            await self.db.scalars(
                select(User)
                .where(User.id.not_in(exclude_ids))
                .order_by(User.created_at.desc(), User.id)
                .limit(limit)
            )
        )
        if not users:
            return []

        notes_stmt = select(
            VoiceNote.user_id,
            VoiceNote.id,
            engagement_count(VoiceNoteLike, "likes"),
            engagement_count(VoiceNoteComment, "comments"),
            engagement_count(VoiceNotePlay, "plays"),
        ).where(VoiceNote.user_id.in_([user.id for user in users]))

        notes_by_user: dict[uuid.UUID, list[dict[str, Any]]] = defaultdict(list)
        for author_id, note_id, likes, comments, plays in (await self.db.execute(notes_stmt)).all():
            notes_by_user[author_id].append({"id": note_id, "likes": likes, "comments": comments, "plays": plays})

        return [
            {
                "id": user.id,
                "username": user.username,
                "display_name": user.display_name,
                "avatar_url": user.avatar_url,
                "is_verified": user.is_verified,
                "bio": user.bio,
                "voice_notes": notes_by_user.get(user.id, []),
            }
            for user in users
        ]
