from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any

from ripply.core.config import Settings
from ripply.core.counts import coerce_count, normalize_voice_note_counts
from ripply.core.tag_utils import flatten_tags

PUBLIC_PROFILE_FIELDS = ("id", "username", "display_name", "avatar_url", "is_verified", "bio")


@dataclass(frozen=True)
class DiscoveryWeights:
    base: float = 1.0
    tag_match: float = 2.0
    liked_creator: float = 3.0
    like: float = 0.3
    comment: float = 0.5
    play: float = 0.1
    user_post: float = 2.0
    verified: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> DiscoveryWeights:
        return cls(
            base=settings.discovery_base_score,
            tag_match=settings.discovery_tag_match_weight,
            liked_creator=settings.discovery_liked_creator_boost,
            like=settings.discovery_like_weight,
            comment=settings.discovery_comment_weight,
            play=settings.discovery_play_weight,
            user_post=settings.discovery_user_post_weight,
            verified=settings.discovery_verified_boost,
        )

    def engagement(self, *, likes: int, comments: int, plays: int) -> float:
        return likes * self.like + comments * self.comment + plays * self.play


DEFAULT_WEIGHTS = DiscoveryWeights()


def score_voice_note(
    post: Mapping[str, Any],
    preferred_tags: Collection[str],
    liked_creator_ids: Collection[Any],
    weights: DiscoveryWeights = DEFAULT_WEIGHTS,
) -> dict[str, Any]:
    """Score a candidate post for the discovery surface.

    The result is the post with counts normalised, tags flattened to names and
    ``discovery_score`` attached. The score depends only on the arguments.
    """
    tags = flatten_tags(post.get("tags"))
    score = weights.base

    if preferred_tags:
        preferred = set(preferred_tags)
        score += sum(1 for tag in tags if tag in preferred) * weights.tag_match

    if post.get("user_id") in set(liked_creator_ids):
        score += weights.liked_creator

    score += weights.engagement(
        likes=coerce_count(post.get("likes")),
        comments=coerce_count(post.get("comments")),
        plays=coerce_count(post.get("plays")),
    )

    scored = normalize_voice_note_counts(post)
    scored["tags"] = tags
    scored["discovery_score"] = score
    return scored


def score_user(user: Mapping[str, Any], weights: DiscoveryWeights = DEFAULT_WEIGHTS) -> dict[str, Any]:
    """Score a candidate creator and reduce it to its public profile fields."""
    total_likes = 0
    total_comments = 0
    total_plays = 0
    total_posts = 0

    voice_notes = user.get("voice_notes")
    if isinstance(voice_notes, list):
        for note in voice_notes:
            if not isinstance(note, Mapping):
                continue
            total_posts += 1
            total_likes += coerce_count(note.get("likes"))
            total_comments += coerce_count(note.get("comments"))
            total_plays += coerce_count(note.get("plays"))

    score = weights.engagement(likes=total_likes, comments=total_comments, plays=total_plays)
    score += total_posts * weights.user_post
    if user.get("is_verified"):
        score += weights.verified
    score += weights.base

    profile = {field: user.get(field) for field in PUBLIC_PROFILE_FIELDS}
    profile["is_verified"] = bool(profile["is_verified"])
    profile["discovery_score"] = score
    profile["recent_posts_count"] = total_posts
    profile["total_engagement"] = total_likes + total_comments + total_plays
    return profile
