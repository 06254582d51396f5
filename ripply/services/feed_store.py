"""Read-only data access for feed composition.

Every method opens its own session, so callers may fan several lookups out
with ``asyncio.gather`` without two coroutines ever sharing a connection.
"""
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ripply.repositories.follow_repo import FollowRepository
from ripply.repositories.like_repo import LikedContent, LikeRepository
from ripply.repositories.query import Window
from ripply.repositories.share_repo import ShareRepository
from ripply.repositories.user_repo import UserRepository
from ripply.repositories.voice_note_repo import VoiceNoteRepository


class FeedStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def list_following_ids(self, user_id: uuid.UUID) -> list[uuid.UUID]:
        async with self.session_factory() as db:
            return await FollowRepository(db).list_following_ids(user_id)

    async def list_voice_notes_by_author(self, author_ids: list[uuid.UUID], window: Window) -> list[dict[str, Any]]:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).list_by_authors(author_ids, window)

    async def list_shares_by_sharer(self, sharer_ids: list[uuid.UUID], window: Window) -> list[dict[str, Any]]:
        async with self.session_factory() as db:
            return await ShareRepository(db).list_by_sharers(sharer_ids, window)

    async def list_voice_notes_by_id(self, note_ids: list[uuid.UUID]) -> list[dict[str, Any]]:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).list_by_ids(note_ids)

    async def count_shares_for_note(self, note_id: uuid.UUID) -> int:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).count_shares(note_id)

    async def get_user_profile(self, user_id: uuid.UUID) -> dict[str, Any] | None:
        async with self.session_factory() as db:
            return await UserRepository(db).get_public_profile(user_id)

    async def list_liked_tags_and_creators(self, user_id: uuid.UUID, *, tag_sample: int) -> LikedContent:
        async with self.session_factory() as db:
            return await LikeRepository(db).list_liked_tags_and_creators(user_id, tag_sample=tag_sample)

    async def list_discovery_post_candidates(
        self,
        *,
        exclude_user_ids: list[uuid.UUID],
        limit: int,
    ) -> list[dict[str, Any]]:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).list_discovery_candidates(exclude_user_ids=exclude_user_ids, limit=limit)

    async def list_discovery_user_candidates(
        self,
        *,
        exclude_ids: list[uuid.UUID],
        limit: int,
    ) -> list[dict[str, Any]]:
        async with self.session_factory() as db:
            return await UserRepository(db).list_discovery_candidates(exclude_ids=exclude_ids, limit=limit)

    async def list_public_voice_notes(self, window: Window, *, ascending: bool) -> list[dict[str, Any]]:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).list_public(window, ascending=ascending)

    async def count_voice_notes(self) -> int:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).count_all()

    async def list_voice_note_ids_by_tag(self, tag_name: str) -> list[uuid.UUID]:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).list_ids_by_tag(tag_name)

    async def list_tags_for_note(self, note_id: uuid.UUID) -> list[str]:
        async with self.session_factory() as db:
            return await VoiceNoteRepository(db).list_tags_for_note(note_id)
