from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from typing import Any, TypeVar
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from ripply.core.config import PUBLIC_FEED_SORTS, Settings, settings
from ripply.core.counts import normalize_voice_note_counts
from ripply.core.discovery import DiscoveryWeights, score_user, score_voice_note
from ripply.core.tag_utils import flatten_tags, normalize_tag_name
from ripply.db.errors import is_missing_relation
from ripply.repositories.query import Window
from ripply.schemas.feed import FeedEntry, Pagination, ScoredPost, ScoredUser, VoiceNoteItem, VoiceNotePage
from ripply.services.feed_store import FeedStore

logger = logging.getLogger(__name__)

# Failures of a per-item sidecar lookup; these degrade the item instead of the page.
LOOKUP_ERRORS = (SQLAlchemyError, OSError)

T = TypeVar("T")


def interleave_balanced(
    originals: Sequence[T],
    shared: Sequence[T],
    limit: int,
    *,
    cycle: int = 5,
    original_slots: int = 3,
) -> list[T]:
    """Mix two lists positionally: the first ``original_slots`` of every ``cycle``
    slots prefer an original entry, the rest prefer a shared one. Whichever list
    runs out, the other fills in; the page ends early once both are exhausted.
    """
    feed: list[T] = []
    original_index = 0
    shared_index = 0
    for slot in range(limit):
        if slot % cycle < original_slots and original_index < len(originals):
            feed.append(originals[original_index])
            original_index += 1
        elif shared_index < len(shared):
            feed.append(shared[shared_index])
            shared_index += 1
        elif original_index < len(originals):
            feed.append(originals[original_index])
            original_index += 1
        else:
            break
    return feed


def build_pagination(*, page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)


class FeedService:
    def __init__(self, store: FeedStore, config: Settings = settings) -> None:
        self.store = store
        self.config = config
        self.weights = DiscoveryWeights.from_settings(config)

    async def get_user_following(self, user_id: UUID) -> list[UUID]:
        return await self.store.list_following_ids(user_id)

    async def get_original_posts(
        self,
        following_ids: list[UUID],
        *,
        limit: int = 10,
        offset: int = 0,
    ) -> list[FeedEntry]:
        if not following_ids or limit <= 0:
            return []

        notes = await self.store.list_voice_notes_by_author(following_ids, Window(offset=offset, limit=limit))
        share_counts = await self._actual_share_counts([note["id"] for note in notes])
        return [
            self._feed_entry(note, shares=shares, is_shared=False)
            for note, shares in zip(notes, share_counts)
        ]

    async def get_shared_posts(
        self,
        following_ids: list[UUID],
        *,
        limit: int = 10,
        offset: int = 0,
    ) -> list[FeedEntry]:
        if not following_ids or limit <= 0:
            return []

        try:
            shares = await self.store.list_shares_by_sharer(following_ids, Window(offset=offset, limit=limit))
        except DBAPIError as exc:
            if not is_missing_relation(exc):
                raise
            logger.warning("voice_note_shares table is missing, serving no shared posts")
            return []
        if not shares:
            return []

        note_ids = list(dict.fromkeys(share["voice_note_id"] for share in shares))
        sharer_ids = list(dict.fromkeys(share["user_id"] for share in shares))

        notes, share_counts, sharers = await asyncio.gather(
            self.store.list_voice_notes_by_id(note_ids),
            self._actual_share_counts(note_ids),
            asyncio.gather(*(self._sharer_profile(sharer_id) for sharer_id in sharer_ids)),
        )
        notes_by_id = {note["id"]: note for note in notes}
        counts_by_id = dict(zip(note_ids, share_counts))
        sharers_by_id = dict(zip(sharer_ids, sharers))

        entries: list[FeedEntry] = []
        for share in shares:
            note = notes_by_id.get(share["voice_note_id"])
            if note is None:
                continue
            entries.append(
                self._feed_entry(
                    note,
                    shares=counts_by_id.get(note["id"], 0),
                    is_shared=True,
                    shared_at=share["shared_at"],
                    shared_by=sharers_by_id.get(share["user_id"]),
                )
            )
        return entries

    async def get_balanced_feed(self, user_id: UUID, *, page: int = 1, limit: int = 10) -> list[FeedEntry]:
        offset = (page - 1) * limit
        following_ids = await self.get_user_following(user_id)
        if not following_ids:
            logger.info("user follows no one, returning empty feed", extra={"user_id": str(user_id)})
            return []

        original_ratio = self.config.feed_original_ratio
        shared_ratio = self.config.feed_shared_ratio
        multiplier = self.config.feed_fetch_multiplier
        original_target = math.ceil(limit * original_ratio)
        shared_target = math.floor(limit * shared_ratio)

        originals, shared = await asyncio.gather(
            self.get_original_posts(
                following_ids,
                limit=original_target * multiplier,
                offset=math.floor(offset * original_ratio),
            ),
            self.get_shared_posts(
                following_ids,
                limit=shared_target * multiplier,
                offset=math.floor(offset * shared_ratio),
            ),
        )
        return interleave_balanced(
            originals,
            shared,
            limit,
            cycle=self.config.feed_slot_cycle,
            original_slots=self.config.feed_original_slots,
        )

    async def get_discovery_posts(self, user_id: UUID, *, page: int = 1, limit: int = 20) -> list[ScoredPost]:
        offset = (page - 1) * limit
        following_ids, liked = await asyncio.gather(
            self.get_user_following(user_id),
            self.store.list_liked_tags_and_creators(user_id, tag_sample=self.config.discovery_liked_tag_sample),
        )

        candidates = await self.store.list_discovery_post_candidates(
            exclude_user_ids=[user_id, *following_ids],
            limit=min(self.config.discovery_post_candidate_cap, limit * 3),
        )
        if not candidates:
            logger.info("no discovery posts available", extra={"user_id": str(user_id)})
            return []

        scored = [score_voice_note(post, liked.tags, liked.creator_ids, self.weights) for post in candidates]
        scored.sort(key=lambda post: post["discovery_score"], reverse=True)
        page_posts = scored[offset : offset + limit]
        share_counts = await self._actual_share_counts([post["id"] for post in page_posts])
        return [
            ScoredPost.model_validate({**post, "shares": shares})
            for post, shares in zip(page_posts, share_counts)
        ]

    async def get_discovery_users(self, user_id: UUID, *, page: int = 1, limit: int = 20) -> list[ScoredUser]:
        offset = (page - 1) * limit
        following_ids = await self.get_user_following(user_id)

        candidates = await self.store.list_discovery_user_candidates(
            exclude_ids=[user_id, *following_ids],
            limit=self.config.discovery_user_candidate_limit,
        )
        if not candidates:
            logger.info("no discovery users available", extra={"user_id": str(user_id)})
            return []

        scored = [score_user(candidate, self.weights) for candidate in candidates]
        scored.sort(key=lambda user: user["discovery_score"], reverse=True)
        return [ScoredUser.model_validate(user) for user in scored[offset : offset + limit]]

    async def get_voice_notes_by_tag(self, tag_name: str, *, page: int = 1, limit: int = 10) -> VoiceNotePage:
        tag = normalize_tag_name(tag_name)
        if not tag:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tag name is required")

        offset = (page - 1) * limit
        note_ids = await self.store.list_voice_note_ids_by_tag(tag)
        page_ids = note_ids[offset : offset + limit]
        notes = await self.store.list_voice_notes_by_id(page_ids)
        notes_by_id = {note["id"]: note for note in notes}
        page_notes = [notes_by_id[note_id] for note_id in page_ids if note_id in notes_by_id]

        share_counts = await self._actual_share_counts([note["id"] for note in page_notes])
        items = [self._voice_note_item(note, shares=shares) for note, shares in zip(page_notes, share_counts)]
        return VoiceNotePage(data=items, pagination=build_pagination(page=page, limit=limit, total=len(note_ids)))

    async def get_public_feed(self, *, page: int = 1, limit: int = 10, sort: str = "newest") -> VoiceNotePage:
        if sort not in PUBLIC_FEED_SORTS:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported sort order")

        window = Window.for_page(page, limit)
        notes, total = await asyncio.gather(
            self.store.list_public_voice_notes(window, ascending=sort == "oldest"),
            self.store.count_voice_notes(),
        )
        share_counts = await self._actual_share_counts([note["id"] for note in notes])
        items = [self._voice_note_item(note, shares=shares) for note, shares in zip(notes, share_counts)]
        return VoiceNotePage(data=items, pagination=build_pagination(page=page, limit=limit, total=total))

    async def get_voice_note_tags(self, voice_note_id: UUID) -> list[str]:
        return await self.store.list_tags_for_note(voice_note_id)

    async def _actual_share_counts(self, note_ids: list[UUID]) -> list[int]:
        return list(await asyncio.gather(*(self._actual_share_count(note_id) for note_id in note_ids)))

    async def _actual_share_count(self, note_id: UUID) -> int:
        try:
            return await self.store.count_shares_for_note(note_id)
        except LOOKUP_ERRORS:
            logger.warning(
                "share count lookup failed, falling back to 0",
                extra={"voice_note_id": str(note_id)},
                exc_info=True,
            )
            return 0

    async def _sharer_profile(self, user_id: UUID) -> dict[str, Any] | None:
        try:
            return await self.store.get_user_profile(user_id)
        except LOOKUP_ERRORS:
            logger.warning("sharer profile lookup failed", extra={"user_id": str(user_id)}, exc_info=True)
            return None

    def _normalized(self, note: dict[str, Any], shares: int) -> dict[str, Any]:
        normalized = normalize_voice_note_counts(note)
        normalized["tags"] = flatten_tags(note.get("tags"))
        normalized["shares"] = shares
        return normalized

    def _voice_note_item(self, note: dict[str, Any], *, shares: int) -> VoiceNoteItem:
        return VoiceNoteItem.model_validate(self._normalized(note, shares))

    def _feed_entry(self, note: dict[str, Any], *, shares: int, **provenance: Any) -> FeedEntry:
        return FeedEntry.model_validate({**self._normalized(note, shares), **provenance})
