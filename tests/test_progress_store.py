import pytest

from audioshelf.core.errors import NotFoundError, ValidationError
from audioshelf.services.progress_store import ProgressStore
from factories import create_track, create_user


@pytest.fixture()
async def listener(db):
    return await create_user(db, "alice")


async def test_repeated_saves_update_one_row(db, listener):
    """Saving twice for the same track keeps the row identity."""
    track = await create_track(db, duration=1200)
    store = ProgressStore(db)

    first = await store.save(listener.id, track.id, 30)
    second = await store.save(listener.id, track.id, 95)

    assert second.id == first.id
    assert second.progress == 95
    rows = await store.list_for_user(listener.id)
    assert len(rows) == 1
    assert rows[0].progress == 95


async def test_completed_is_derived_from_duration(db, listener):
    track = await create_track(db, duration=100)
    store = ProgressStore(db)

    saved = await store.save(listener.id, track.id, 99, completed=True)
    assert saved.completed is False

    saved = await store.save(listener.id, track.id, 100)
    assert saved.completed is True


async def test_progress_past_the_end_is_clamped(db, listener):
    track = await create_track(db, duration=100)

    saved = await ProgressStore(db).save(listener.id, track.id, 250)

    assert saved.progress == 100
    assert saved.completed is True


async def test_zero_length_track_is_clamped(db, listener):
    """Progress never exceeds the duration, even when the duration is 0."""
    track = await create_track(db, duration=0)
    store = ProgressStore(db)

    saved = await store.save(listener.id, track.id, 4000, completed=False)

    assert saved.progress == 0
    assert saved.progress <= track.duration
    assert saved.completed is True


async def test_client_flag_does_not_override_duration(db, listener):
    track = await create_track(db, duration=100)

    saved = await ProgressStore(db).save(listener.id, track.id, 100, completed=False)

    assert saved.completed is True


@pytest.mark.parametrize("value", [-1, 1.5, "12", True])
async def test_invalid_progress_is_rejected(db, listener, value):
    track = await create_track(db)

    with pytest.raises(ValidationError):
        await ProgressStore(db).save(listener.id, track.id, value)

    assert await ProgressStore(db).get(listener.id, track.id) is None


async def test_unknown_track_is_not_found(db, listener):
    with pytest.raises(NotFoundError):
        await ProgressStore(db).save(listener.id, 999, 10)


async def test_progress_is_kept_per_user(db, listener):
    other = await create_user(db, "bob")
    track = await create_track(db)
    store = ProgressStore(db)

    await store.save(listener.id, track.id, 10)
    await store.save(other.id, track.id, 20)

    assert (await store.get(listener.id, track.id)).progress == 10
    assert (await store.get(other.id, track.id)).progress == 20


async def test_list_is_most_recent_first(db, listener):
    older = await create_track(db, "Older")
    newer = await create_track(db, "Newer")
    store = ProgressStore(db)

    await store.save(listener.id, older.id, 10)
    await store.save(listener.id, newer.id, 20)

    listed = await store.list_for_user(listener.id)
    assert [p.audio_track_id for p in listed] == [newer.id, older.id]
