from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuthorSummary(BaseModel):
    id: UUID
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    is_verified: bool = False


class SharerProfile(BaseModel):
    id: UUID
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


class VoiceNoteItem(BaseModel):
    id: UUID
    user_id: UUID
    title: str | None = None
    duration: int | None = None
    audio_url: str | None = None
    background_image: str | None = None
    created_at: datetime | None = None
    users: AuthorSummary | None = None
    likes: int = 0
    comments: int = 0
    plays: int = 0
    shares: int = 0
    tags: list[str] = Field(default_factory=list)


class FeedEntry(VoiceNoteItem):
    is_shared: bool = False
    shared_at: datetime | None = None
    shared_by: SharerProfile | None = None


class ScoredPost(VoiceNoteItem):
    model_config = ConfigDict(populate_by_name=True)

    discovery_score: float = Field(alias="discoveryScore")


class ScoredUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    is_verified: bool = False
    bio: str | None = None
    discovery_score: float = Field(alias="discoveryScore")
    recent_posts_count: int = Field(alias="recentPostsCount")
    total_engagement: int = Field(alias="totalEngagement")


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")


class VoiceNotePage(BaseModel):
    data: list[VoiceNoteItem]
    pagination: Pagination
