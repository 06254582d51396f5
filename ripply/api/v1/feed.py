from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ripply.api.deps import enforce_rate_limit, get_current_user_id, get_feed_service
from ripply.schemas.feed import FeedEntry, ScoredPost, ScoredUser, VoiceNotePage
from ripply.services.feed_service import FeedService

router = APIRouter(prefix="/voice-notes", tags=["feed"], dependencies=[Depends(enforce_rate_limit)])


@router.get("/feed", response_model=VoiceNotePage)
async def get_public_feed(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort: str = Query(default="newest"),
    discover: bool = Query(default=False),
    service: FeedService = Depends(get_feed_service),
):
    return await service.get_public_feed(page=page, limit=limit, sort="oldest" if discover else sort)


@router.get("/feed/{user_id}", response_model=list[FeedEntry])
async def get_user_feed(
    user_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    _: UUID = Depends(get_current_user_id),
    service: FeedService = Depends(get_feed_service),
):
    return await service.get_balanced_feed(user_id, page=page, limit=limit)


@router.get("/discovery/posts/{user_id}", response_model=list[ScoredPost])
async def get_discovery_posts(
    user_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: UUID = Depends(get_current_user_id),
    service: FeedService = Depends(get_feed_service),
):
    return await service.get_discovery_posts(user_id, page=page, limit=limit)


@router.get("/discovery/users/{user_id}", response_model=list[ScoredUser])
async def get_discovery_users(
    user_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: UUID = Depends(get_current_user_id),
    service: FeedService = Depends(get_feed_service),
):
    return await service.get_discovery_users(user_id, page=page, limit=limit)


@router.get("/tags/{tag_name}", response_model=VoiceNotePage)
async def get_voice_notes_by_tag(
    tag_name: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    service: FeedService = Depends(get_feed_service),
):
    return await service.get_voice_notes_by_tag(tag_name, page=page, limit=limit)


@router.get("/{voice_note_id}/tags", response_model=list[str])
async def get_voice_note_tags(
    voice_note_id: UUID,
    service: FeedService = Depends(get_feed_service),
):
    return await service.get_voice_note_tags(voice_note_id)
