import uuid
from collections import defaultdict
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ripply.models.interactions import VoiceNoteComment, VoiceNoteLike, VoiceNotePlay, VoiceNoteShare
from ripply.models.user import User
from ripply.models.voice_note import VoiceNote
from ripply.models.voice_note_tag import VoiceNoteTag
from ripply.repositories.query import Window


def engagement_count(model, label: str):
    return (
        select(func.count(model.id))
        .where(model.voice_note_id == VoiceNote.id)
        .correlate(VoiceNote)
        .scalar_subquery()
        .label(label)
    )


def author_summary(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "is_verified": user.is_verified,
    }


class VoiceNoteRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _select_notes(self):
        return select(
            VoiceNote,
            User,
            engagement_count(VoiceNoteLike, "likes"),
            engagement_count(VoiceNoteComment, "comments"),
            engagement_count(VoiceNotePlay, "plays"),
        ).outerjoin(User, User.id == VoiceNote.user_id)

    async def _fetch(self, stmt) -> list[dict[str, Any]]:
        rows = (await self.db.execute(stmt)).all()
        notes = [
            {
                "id": note.id,
                "user_id": note.user_id,
                "title": note.title,
                "duration": note.duration,
                "audio_url": note.audio_url,
                "background_image": note.background_image,
                "created_at": note.created_at,
                "users": author_summary(author),
                "likes": likes,
                "comments": comments,
                "plays": plays,
                "tags": [],
            }
            for note, author, likes, comments, plays in rows
        ]
        if notes:
            tags_by_note = await self._load_tags([note["id"] for note in notes])
            for note in notes:
                note["tags"] = [{"tag_name": name} for name in tags_by_note.get(note["id"], [])]
        return notes

    async def _load_tags(self, note_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[str]]:
        stmt = (
            select(VoiceNoteTag.voice_note_id, VoiceNoteTag.tag_name)
            .where(VoiceNoteTag.voice_note_id.in_(note_ids))
            .order_by(VoiceNoteTag.voice_note_id, VoiceNoteTag.tag_name)
        )
        tags: dict[uuid.UUID, list[str]] = defaultdict(list)
        for note_id, tag_name in (await self.db.execute(stmt)).all():
            tags[note_id].append(tag_name)
        return tags

    async def list_by_authors(self, author_ids: list[uuid.UUID], window: Window) -> list[dict[str, Any]]:
        stmt = (
            self._select_notes()
            .where(VoiceNote.user_id.in_(author_ids))
            .order_by(VoiceNote.created_at.desc(), VoiceNote.id)
            .offset(window.offset)
            .limit(window.limit)
        )
        return await self._fetch(stmt)

    async def list_by_ids(self, note_ids: list[uuid.UUID]) -> list[dict[str, Any]]:
        if not note_ids:
            return []
        stmt = self._select_notes().where(VoiceNote.id.in_(note_ids))
        return await self._fetch(stmt)

    async def list_public(self, window: Window, *, ascending: bool = False) -> list[dict[str, Any]]:
        order = VoiceNote.created_at.asc() if ascending else VoiceNote.created_at.desc()
        stmt = self._select_notes().order_by(order, VoiceNote.id).offset(window.offset).limit(window.limit)
        return await self._fetch(stmt)

    async def list_discovery_candidates(
        self,
        *,
        exclude_user_ids: list[uuid.UUID],
        limit: int,
    ) -> list[dict[str, Any]]:
        stmt = (
            self._select_notes()
            .where(VoiceNote.user_id.not_in(exclude_user_ids))
            .order_by(VoiceNote.created_at.desc(), VoiceNote.id)
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def count_all(self) -> int:
        return await self.db.scalar(select(func.count(VoiceNote.id))) or 0

    async def count_shares(self, note_id: uuid.UUID) -> int:
        stmt = select(func.count(VoiceNoteShare.id)).where(VoiceNoteShare.voice_note_id == note_id)
        return await self.db.scalar(stmt) or 0

    async def list_ids_by_tag(self, tag_name: str) -> list[uuid.UUID]:
        stmt = (
            select(VoiceNote.id, VoiceNote.created_at)
            .join(VoiceNoteTag, VoiceNoteTag.voice_note_id == VoiceNote.id)
            .where(VoiceNoteTag.tag_name == tag_name)
            .distinct()
            .order_by(VoiceNote.created_at.desc(), VoiceNote.id)
        )
        return [note_id for note_id, _ in (await self.db.execute(stmt)).all()]

    async def list_tags_for_note(self, note_id: uuid.UUID) -> list[str]:
        stmt = select(VoiceNoteTag.tag_name).where(VoiceNoteTag.voice_note_id == note_id).order_by(VoiceNoteTag.tag_name)
        return list(await self.db.scalars(stmt))
