from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError, ProgrammingError

from ripply.repositories.like_repo import LikedContent
from ripply.repositories.query import Window
from ripply.services.feed_service import FeedService, build_pagination, interleave_balanced
from ripply.services.feed_store import FeedStore

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _PgError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def _build_store() -> MagicMock:
    store = MagicMock(spec=FeedStore)
    store.list_following_ids.return_value = []
    store.list_voice_notes_by_author.return_value = []
    store.list_shares_by_sharer.return_value = []
    store.list_voice_notes_by_id.return_value = []
    store.count_shares_for_note.return_value = 0
    store.get_user_profile.return_value = None
    store.list_liked_tags_and_creators.return_value = LikedContent()
    store.list_discovery_post_candidates.return_value = []
    store.list_discovery_user_candidates.return_value = []
    store.list_public_voice_notes.return_value = []
    store.count_voice_notes.return_value = 0
    store.list_voice_note_ids_by_tag.return_value = []
    store.list_tags_for_note.return_value = []
    return store


def _note(author_id, *, title="note", minutes_ago=0, tags=("music",), likes=1, comments=0, plays=3) -> dict:
    return {
        "id": uuid4(),
        "user_id": author_id,
        "title": title,
        "duration": 42,
        "created_at": BASE_TIME - timedelta(minutes=minutes_ago),
        "users": {"id": author_id, "username": f"user-{title}", "display_name": None, "avatar_url": None},
        "likes": [{"count": likes}],
        "comments": [{"count": comments}],
        "plays": [{"count": plays}],
        "shares": [{"count": 99}],
        "tags": [{"tag_name": tag} for tag in tags],
    }


def _share(note: dict, sharer_id, *, minutes_ago=0) -> dict:
    return {
        "id": uuid4(),
        "voice_note_id": note["id"],
        "user_id": sharer_id,
        "shared_at": BASE_TIME - timedelta(minutes=minutes_ago),
    }


def _profile(user_id) -> dict:
    return {"id": user_id, "username": "sharer", "display_name": "Sharer", "avatar_url": None}


def test_interleave_fills_fixed_slot_pattern() -> None:
    feed = interleave_balanced(["o1", "o2", "o3", "o4"], ["s1", "s2", "s3"], 5)

    assert feed == ["o1", "o2", "o3", "s1", "s2"]


def test_interleave_repeats_pattern_across_cycles() -> None:
    originals = [f"o{i}" for i in range(10)]
    shared = [f"s{i}" for i in range(10)]

    feed = interleave_balanced(originals, shared, 10)

    assert feed == ["o0", "o1", "o2", "s0", "s1", "o3", "o4", "o5", "s2", "s3"]


def test_interleave_falls_through_to_shared_when_originals_run_out() -> None:
    feed = interleave_balanced(["o1"], ["s1", "s2", "s3", "s4"], 5)

    assert len(feed) == 5
    assert feed == ["o1", "s1", "s2", "s3", "s4"]


def test_interleave_falls_back_to_originals_when_shared_run_out() -> None:
    feed = interleave_balanced(["o1", "o2", "o3", "o4", "o5", "o6"], [], 5)

    assert feed == ["o1", "o2", "o3", "o4", "o5"]


def test_interleave_stops_early_when_both_sources_are_exhausted() -> None:
    assert interleave_balanced(["o1"], ["s1"], 10) == ["o1", "s1"]
    assert interleave_balanced([], [], 10) == []


def test_build_pagination_rounds_total_pages_up() -> None:
    pagination = build_pagination(page=2, limit=10, total=21)

    assert pagination.total_pages == 3
    assert pagination.model_dump(by_alias=True) == {"page": 2, "limit": 10, "total": 21, "totalPages": 3}


@pytest.mark.asyncio
async def test_fetchers_short_circuit_on_empty_following_without_queries() -> None:
    store = _build_store()
    service = FeedService(store)

    assert await service.get_original_posts([]) == []
    assert await service.get_shared_posts([]) == []
    assert await service.get_balanced_feed(uuid4()) == []

    store.list_voice_notes_by_author.assert_not_called()
    store.list_shares_by_sharer.assert_not_called()
    store.list_voice_notes_by_id.assert_not_called()
    store.count_shares_for_note.assert_not_called()


@pytest.mark.asyncio
async def test_get_original_posts_overrides_share_count_and_flattens_tags() -> None:
    store = _build_store()
    author = uuid4()
    note = _note(author, tags=("music", "jazz"), likes=4)
    store.list_voice_notes_by_author.return_value = [note]
    store.count_shares_for_note.return_value = 2
    service = FeedService(store)

    entries = await service.get_original_posts([author], limit=5, offset=10)

    store.list_voice_notes_by_author.assert_awaited_once_with([author], Window(offset=10, limit=5))
    assert len(entries) == 1
    entry = entries[0]
    assert entry.id == note["id"]
    assert entry.is_shared is False
    assert entry.shared_by is None
    assert entry.tags == ["music", "jazz"]
    assert entry.likes == 4
    assert entry.shares == 2


@pytest.mark.asyncio
async def test_get_original_posts_keeps_note_when_share_count_lookup_fails() -> None:
    store = _build_store()
    author = uuid4()
    first, second = _note(author, title="a"), _note(author, title="b", minutes_ago=5)
    store.list_voice_notes_by_author.return_value = [first, second]

    async def count_shares(note_id):
        if note_id == first["id"]:
            raise OperationalError("SELECT count", {}, Exception("connection reset"))
        return 7

    store.count_shares_for_note.side_effect = count_shares
    service = FeedService(store)

    entries = await service.get_original_posts([author])

    assert [entry.id for entry in entries] == [first["id"], second["id"]]
    assert [entry.shares for entry in entries] == [0, 7]


@pytest.mark.asyncio
async def test_get_original_posts_propagates_primary_query_failure() -> None:
    store = _build_store()
    store.list_voice_notes_by_author.side_effect = OperationalError("SELECT", {}, Exception("down"))
    service = FeedService(store)

    with pytest.raises(OperationalError):
        await service.get_original_posts([uuid4()])


@pytest.mark.asyncio
async def test_get_shared_posts_builds_one_entry_per_share_in_shared_at_order() -> None:
    store = _build_store()
    sharer_a, sharer_b = uuid4(), uuid4()
    note_x, note_y = _note(uuid4(), title="x"), _note(uuid4(), title="y")
    shares = [
        _share(note_y, sharer_a, minutes_ago=1),
        _share(note_x, sharer_b, minutes_ago=2),
        _share(note_y, sharer_b, minutes_ago=3),
    ]
    store.list_shares_by_sharer.return_value = shares
    # database order of an id lookup is arbitrary
    store.list_voice_notes_by_id.return_value = [note_x, note_y]
    store.get_user_profile.side_effect = _profile
    store.count_shares_for_note.return_value = 2
    service = FeedService(store)

    entries = await service.get_shared_posts([sharer_a, sharer_b])

    assert [entry.id for entry in entries] == [note_y["id"], note_x["id"], note_y["id"]]
    assert [entry.shared_at for entry in entries] == [share["shared_at"] for share in shares]
    assert [entry.shared_by.id for entry in entries] == [sharer_a, sharer_b, sharer_b]
    assert all(entry.is_shared for entry in entries)
    assert all(entry.shares == 2 for entry in entries)
    store.list_voice_notes_by_id.assert_awaited_once_with([note_y["id"], note_x["id"]])
    assert store.get_user_profile.await_count == 2


@pytest.mark.asyncio
async def test_get_shared_posts_skips_shares_of_deleted_notes() -> None:
    store = _build_store()
    sharer = uuid4()
    kept = _note(uuid4())
    store.list_shares_by_sharer.return_value = [_share(_note(uuid4()), sharer), _share(kept, sharer, minutes_ago=1)]
    store.list_voice_notes_by_id.return_value = [kept]
    store.get_user_profile.side_effect = _profile
    service = FeedService(store)

    entries = await service.get_shared_posts([sharer])

    assert [entry.id for entry in entries] == [kept["id"]]


@pytest.mark.asyncio
async def test_get_shared_posts_sets_shared_by_none_when_profile_lookup_fails() -> None:
    store = _build_store()
    sharer = uuid4()
    note = _note(uuid4())
    store.list_shares_by_sharer.return_value = [_share(note, sharer)]
    store.list_voice_notes_by_id.return_value = [note]
    store.get_user_profile.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
    service = FeedService(store)

    entries = await service.get_shared_posts([sharer])

    assert len(entries) == 1
    assert entries[0].shared_by is None
    assert entries[0].is_shared is True


@pytest.mark.asyncio
async def test_get_shared_posts_treats_missing_shares_table_as_empty() -> None:
    store = _build_store()
    store.list_shares_by_sharer.side_effect = ProgrammingError(
        "SELECT",
        {},
        _PgError('relation "voice_note_shares" does not exist', "42P01"),
    )
    service = FeedService(store)

    assert await service.get_shared_posts([uuid4()]) == []
    store.list_voice_notes_by_id.assert_not_called()


@pytest.mark.asyncio
async def test_get_shared_posts_propagates_other_database_errors() -> None:
    store = _build_store()
    store.list_shares_by_sharer.side_effect = ProgrammingError(
        "SELECT",
        {},
        _PgError("permission denied", "42501"),
    )
    service = FeedService(store)

    with pytest.raises(ProgrammingError):
        await service.get_shared_posts([uuid4()])


@pytest.mark.asyncio
async def test_get_balanced_feed_requests_ratio_windows() -> None:
    store = _build_store()
    user, followed = uuid4(), uuid4()
    store.list_following_ids.return_value = [followed]
    service = FeedService(store)

    await service.get_balanced_feed(user, page=3, limit=10)

    # offset 20: originals 6*2 at floor(20*0.6), shared 4*2 at floor(20*0.4)
    store.list_voice_notes_by_author.assert_awaited_once_with([followed], Window(offset=12, limit=12))
    store.list_shares_by_sharer.assert_awaited_once_with([followed], Window(offset=8, limit=8))


@pytest.mark.asyncio
async def test_get_balanced_feed_yields_three_originals_then_two_shared() -> None:
    store = _build_store()
    followed = uuid4()
    originals = [_note(followed, title=f"o{i}", minutes_ago=i) for i in range(6)]
    reshared = [_note(uuid4(), title=f"s{i}") for i in range(4)]
    store.list_following_ids.return_value = [followed]
    store.list_voice_notes_by_author.return_value = originals
    store.list_shares_by_sharer.return_value = [
        _share(note, followed, minutes_ago=i) for i, note in enumerate(reshared)
    ]
    store.list_voice_notes_by_id.return_value = reshared
    store.get_user_profile.side_effect = _profile
    service = FeedService(store)

    feed = await service.get_balanced_feed(uuid4(), page=1, limit=5)

    assert [entry.is_shared for entry in feed] == [False, False, False, True, True]
    assert [entry.id for entry in feed] == [
        originals[0]["id"],
        originals[1]["id"],
        originals[2]["id"],
        reshared[0]["id"],
        reshared[1]["id"],
    ]


@pytest.mark.asyncio
async def test_get_balanced_feed_fills_original_slots_with_shared_when_short() -> None:
    store = _build_store()
    followed = uuid4()
    original = _note(followed, title="only")
    reshared = [_note(uuid4(), title=f"s{i}") for i in range(4)]
    store.list_following_ids.return_value = [followed]
    store.list_voice_notes_by_author.return_value = [original]
    store.list_shares_by_sharer.return_value = [
        _share(note, followed, minutes_ago=i) for i, note in enumerate(reshared)
    ]
    store.list_voice_notes_by_id.return_value = reshared
    store.get_user_profile.side_effect = _profile
    service = FeedService(store)

    feed = await service.get_balanced_feed(uuid4(), page=1, limit=5)

    assert len(feed) == 5
    assert sum(1 for entry in feed if not entry.is_shared) == 1
    assert original["id"] in [entry.id for entry in feed]
    assert sum(1 for entry in feed if entry.is_shared) == 4


@pytest.mark.asyncio
async def test_get_balanced_feed_bounded_by_available_content() -> None:
    store = _build_store()
    caller, followed, third_party = uuid4(), uuid4(), uuid4()
    authored = [_note(followed, title="first"), _note(followed, title="second", minutes_ago=10)]
    reshared = _note(third_party, title="theirs")
    store.list_following_ids.return_value = [followed]
    store.list_voice_notes_by_author.return_value = authored
    store.list_shares_by_sharer.return_value = [_share(reshared, followed)]
    store.list_voice_notes_by_id.return_value = [reshared]
    store.get_user_profile.side_effect = _profile
    store.count_shares_for_note.return_value = 1
    service = FeedService(store)

    feed = await service.get_balanced_feed(caller, page=1, limit=10)

    assert len(feed) == 3
    originals = [entry for entry in feed if not entry.is_shared]
    shared = [entry for entry in feed if entry.is_shared]
    assert [entry.id for entry in originals] == [note["id"] for note in authored]
    assert len(shared) == 1
    assert shared[0].id == reshared["id"]
    assert shared[0].shared_by.id == followed
    store.list_following_ids.assert_awaited_once_with(caller)


@pytest.mark.asyncio
async def test_get_balanced_feed_with_missing_shares_table_serves_originals() -> None:
    store = _build_store()
    followed = uuid4()
    authored = [_note(followed, title=f"o{i}", minutes_ago=i) for i in range(3)]
    store.list_following_ids.return_value = [followed]
    store.list_voice_notes_by_author.return_value = authored
    store.list_shares_by_sharer.side_effect = ProgrammingError(
        "SELECT",
        {},
        _PgError('relation "voice_note_shares" does not exist', "42P01"),
    )
    service = FeedService(store)

    feed = await service.get_balanced_feed(uuid4(), limit=5)

    assert [entry.id for entry in feed] == [note["id"] for note in authored]


@pytest.mark.asyncio
async def test_get_discovery_posts_ranks_and_paginates_candidates() -> None:
    store = _build_store()
    caller, followed, liked_creator = uuid4(), uuid4(), uuid4()
    plain = _note(uuid4(), title="plain", tags=("sports",), likes=0, plays=0)
    tagged = _note(uuid4(), title="tagged", tags=("music",), likes=0, plays=0)
    favourite = _note(liked_creator, title="favourite", tags=("music",), likes=0, plays=0)
    store.list_following_ids.return_value = [followed]
    store.list_liked_tags_and_creators.return_value = LikedContent(tags=["music"], creator_ids=[liked_creator])
    store.list_discovery_post_candidates.return_value = [plain, tagged, favourite]
    store.count_shares_for_note.return_value = 5
    service = FeedService(store)

    first_page = await service.get_discovery_posts(caller, page=1, limit=2)
    second_page = await service.get_discovery_posts(caller, page=2, limit=2)

    assert [post.id for post in first_page] == [favourite["id"], tagged["id"]]
    assert [post.id for post in second_page] == [plain["id"]]
    assert first_page[0].discovery_score == pytest.approx(1 + 2 + 3)
    assert first_page[0].tags == ["music"]
    assert first_page[0].shares == 5
    store.list_discovery_post_candidates.assert_awaited_with(exclude_user_ids=[caller, followed], limit=6)


@pytest.mark.asyncio
async def test_get_discovery_posts_caps_candidate_pool() -> None:
    store = _build_store()
    service = FeedService(store)

    assert await service.get_discovery_posts(uuid4(), limit=50) == []

    assert store.list_discovery_post_candidates.await_args.kwargs["limit"] == 100


@pytest.mark.asyncio
async def test_get_discovery_posts_keeps_candidate_order_for_equal_scores() -> None:
    store = _build_store()
    candidates = [_note(uuid4(), title=f"n{i}", tags=(), likes=0, plays=0) for i in range(4)]
    store.list_discovery_post_candidates.return_value = candidates
    service = FeedService(store)

    posts = await service.get_discovery_posts(uuid4(), limit=4)

    assert [post.id for post in posts] == [note["id"] for note in candidates]


@pytest.mark.asyncio
async def test_get_discovery_users_ranks_profiles() -> None:
    store = _build_store()
    caller, followed = uuid4(), uuid4()
    quiet = {"id": uuid4(), "username": "quiet", "is_verified": False, "voice_notes": []}
    verified = {"id": uuid4(), "username": "star", "is_verified": True, "voice_notes": []}
    busy = {
        "id": uuid4(),
        "username": "busy",
        "is_verified": False,
        "voice_notes": [{"id": uuid4(), "likes": 0, "comments": 0, "plays": 0}] * 2,
    }
    store.list_following_ids.return_value = [followed]
    store.list_discovery_user_candidates.return_value = [quiet, busy, verified]
    service = FeedService(store)

    users = await service.get_discovery_users(caller, page=1, limit=20)

    assert [user.username for user in users] == ["star", "busy", "quiet"]
    assert users[0].discovery_score == pytest.approx(11.0)
    assert users[1].recent_posts_count == 2
    store.list_discovery_user_candidates.assert_awaited_once_with(exclude_ids=[caller, followed], limit=50)


@pytest.mark.asyncio
async def test_get_voice_notes_by_tag_paginates_resolved_ids() -> None:
    store = _build_store()
    notes = [_note(uuid4(), title=f"n{i}", minutes_ago=i) for i in range(3)]
    store.list_voice_note_ids_by_tag.return_value = [note["id"] for note in notes]
    store.list_voice_notes_by_id.return_value = [notes[2]]
    store.count_shares_for_note.return_value = 4
    service = FeedService(store)

    result = await service.get_voice_notes_by_tag("#Music", page=2, limit=2)

    store.list_voice_note_ids_by_tag.assert_awaited_once_with("music")
    store.list_voice_notes_by_id.assert_awaited_once_with([notes[2]["id"]])
    assert [item.id for item in result.data] == [notes[2]["id"]]
    assert result.pagination.total == 3
    assert result.pagination.total_pages == 2
    assert result.data[0].shares == 4
    store.count_shares_for_note.assert_awaited_once_with(notes[2]["id"])


@pytest.mark.asyncio
async def test_get_voice_notes_by_tag_rejects_blank_tag() -> None:
    service = FeedService(_build_store())

    with pytest.raises(HTTPException) as exc:
        await service.get_voice_notes_by_tag("  ")

    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_get_public_feed_corrects_share_counts_and_reports_pagination() -> None:
    store = _build_store()
    notes = [_note(uuid4(), title="a"), _note(uuid4(), title="b", minutes_ago=1)]
    store.list_public_voice_notes.return_value = notes
    store.count_voice_notes.return_value = 25
    store.count_shares_for_note.return_value = 3
    service = FeedService(store)

    result = await service.get_public_feed(page=2, limit=10, sort="oldest")

    store.list_public_voice_notes.assert_awaited_once_with(Window(offset=10, limit=10), ascending=True)
    assert [item.shares for item in result.data] == [3, 3]
    assert result.data[0].tags == ["music"]
    assert result.pagination.model_dump(by_alias=True) == {"page": 2, "limit": 10, "total": 25, "totalPages": 3}


@pytest.mark.asyncio
async def test_get_public_feed_rejects_unknown_sort() -> None:
    service = FeedService(_build_store())

    with pytest.raises(HTTPException) as exc:
        await service.get_public_feed(sort="random")

    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_get_voice_note_tags_delegates_to_store() -> None:
    store = _build_store()
    note_id = uuid4()
    store.list_tags_for_note.return_value = ["jazz", "music"]
    service = FeedService(store)

    assert await service.get_voice_note_tags(note_id) == ["jazz", "music"]
    store.list_tags_for_note.assert_awaited_once_with(note_id)
