import pytest

from quran_playback.exceptions import InvalidRangeError
from quran_playback.models import AfterRepeatAction, AyahRange, AyahRef, SegmentOverride
from quran_playback.playback.queue import QueueBuilder
from quran_playback.settings import PlaybackSettingsSnapshot


def _refs(*keys):
    return [AyahRef.parse(k) for k in keys]


def _snapshot(reciters, start, end, **kwargs):
    return PlaybackSettingsSnapshot(
        range=AyahRange(AyahRef.parse(start), AyahRef.parse(end)),
        reciter_priority=tuple(reciters),
        **kwargs
    )


@pytest.fixture
def builder(index, resolver):
    return QueueBuilder(index, resolver)


def test_ayah_repeats_are_grouped(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter()], "1:1", "1:7", ayah_repeat_count=2))

    assert len(queue) == 14
    assert queue.ayahs[:4] == _refs("1:1", "1:1", "1:2", "1:2")
    assert [u.repeat_index for u in queue][:4] == [1, 2, 1, 2]
    assert all(u.range_repeat_index == 1 for u in queue)
    assert (queue.range_start, queue.range_end) == (0, 14)


def test_range_repeats_follow_each_other(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter()], "1:1", "1:3", range_repeat_count=2))

    assert queue.ayahs == _refs("1:1", "1:2", "1:3", "1:1", "1:2", "1:3")
    assert [u.range_repeat_index for u in queue] == [1, 1, 1, 2, 2, 2]
    assert (queue.range_start, queue.range_end) == (0, 3)


def test_connection_padding_played_once(builder, make_reciter):
    snapshot = _snapshot(
        [make_reciter()], "2:3", "2:4",
        connection_ayah_before=2, connection_ayah_after=1, range_repeat_count=2
    )
    queue = builder.build(snapshot)

    assert queue.ayahs == _refs("2:1", "2:2", "2:3", "2:4", "2:3", "2:4", "2:5")
    assert [u.is_connection_padding for u in queue] == [True, True, False, False, False, False, True]
    assert [u.range_repeat_index for u in queue] == [1, 1, 1, 1, 2, 2, 2]
    assert (queue.range_start, queue.range_end) == (2, 4)


def test_padding_before_first_ayah_is_omitted(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter()], "1:1", "1:2", connection_ayah_before=3))
    assert queue.ayahs == _refs("1:1", "1:2")
    assert not any(u.is_connection_padding for u in queue)


def test_padding_ignores_segment_overrides(builder, make_reciter):
    a, b = make_reciter("a"), make_reciter("b")
    override = SegmentOverride(AyahRange(AyahRef(2, 1), AyahRef(2, 10)), (b,))
    snapshot = _snapshot([a], "2:3", "2:4", connection_ayah_before=1, segment_overrides=(override,))

    queue = builder.build(snapshot)
    assert [u.audio_locator.reciter_id for u in queue] == ["a", "b", "b"]


def test_override_applies_to_single_ayah(builder, make_reciter):
    a, b = make_reciter("a"), make_reciter("b")
    override = SegmentOverride(AyahRange(AyahRef(2, 5), AyahRef(2, 5)), (b,))
    queue = builder.build(_snapshot([a], "2:4", "2:6", segment_overrides=(override,)))

    assert [u.audio_locator.reciter_id for u in queue] == ["a", "b", "a"]


def test_covered_ayahs_filter(builder, make_reciter):
    covered = frozenset(_refs("1:1", "1:3", "1:5"))
    queue = builder.build(_snapshot([make_reciter()], "1:1", "1:7", covered_ayahs=covered))
    assert queue.ayahs == _refs("1:1", "1:3", "1:5")


def test_nothing_covered_gives_empty_queue(builder, make_reciter):
    covered = frozenset(_refs("3:1"))
    queue = builder.build(_snapshot([make_reciter()], "1:1", "1:7", covered_ayahs=covered))
    assert queue.is_empty


def test_continue_ayaat_after_last_repeat(builder, make_reciter):
    snapshot = _snapshot(
        [make_reciter()], "1:6", "1:7",
        range_repeat_count=2, after_repeat_action=AfterRepeatAction.continue_ayaat(3)
    )
    queue = builder.build(snapshot)

    assert queue.ayahs == _refs("1:6", "1:7", "1:6", "1:7", "2:1", "2:2", "2:3")
    continuation = [u for u in queue if u.is_continuation]
    assert [u.ayah for u in continuation] == _refs("2:1", "2:2", "2:3")
    assert all(u.repeat_index == 1 and u.range_repeat_index == 1 for u in continuation)


def test_continuation_starts_after_padding(builder, make_reciter):
    snapshot = _snapshot(
        [make_reciter()], "1:1", "1:3",
        connection_ayah_after=2, after_repeat_action=AfterRepeatAction.continue_ayaat(2)
    )
    queue = builder.build(snapshot)
    assert queue.ayahs == _refs("1:1", "1:2", "1:3", "1:4", "1:5", "1:6", "1:7")
    assert [u.is_continuation for u in queue][-2:] == [True, True]


def test_zero_count_continuation_is_stop(builder, make_reciter):
    snapshot = _snapshot([make_reciter()], "1:1", "1:2", after_repeat_action=AfterRepeatAction.continue_ayaat(0))
    assert builder.build(snapshot).ayahs == _refs("1:1", "1:2")


def test_continue_pages(paged_index, resolver, make_reciter):
    builder = QueueBuilder(paged_index, resolver)
    snapshot = _snapshot(
        [make_reciter()], "2:1", "2:3",
        after_repeat_action=AfterRepeatAction.continue_pages(1)
    )
    queue = builder.build(snapshot)

    continuation = [u.ayah for u in queue if u.is_continuation]
    assert continuation[:2] == _refs("2:4", "2:5")
    assert continuation[2] == AyahRef(2, 6)
    assert continuation[-1] == AyahRef(2, 16)

    with_extra = builder.build(PlaybackSettingsSnapshot(
        range=snapshot.range,
        reciter_priority=snapshot.reciter_priority,
        after_repeat_action=AfterRepeatAction.continue_pages(1, extra_ayah=True)
    ))
    assert with_extra.ayahs[-1] == AyahRef(2, 17)


def test_continue_pages_from_page_end_and_mid_page(paged_index, resolver, make_reciter):
    builder = QueueBuilder(paged_index, resolver)

    at_page_end = builder.build(_snapshot(
        [make_reciter()], "2:1", "2:5",
        after_repeat_action=AfterRepeatAction.continue_pages(2)
    ))
    continuation = [u.ayah for u in at_page_end if u.is_continuation]
    assert (continuation[0], continuation[-1], len(continuation)) == (AyahRef(2, 6), AyahRef(2, 24), 19)

    mid_page = builder.build(_snapshot(
        [make_reciter()], "2:6", "2:10",
        after_repeat_action=AfterRepeatAction.continue_pages(1)
    ))
    continuation = [u.ayah for u in mid_page if u.is_continuation]
    assert (continuation[0], continuation[-1], len(continuation)) == (AyahRef(2, 11), AyahRef(2, 24), 14)


def test_range_across_surah_boundary(builder, make_reciter):
    queue = builder.build(_snapshot(
        [make_reciter()], "1:6", "2:2",
        ayah_repeat_count=2, range_repeat_count=2,
        connection_ayah_before=1, connection_ayah_after=1
    ))

    one_pass = _refs("1:6", "1:6", "1:7", "1:7", "2:1", "2:1", "2:2", "2:2")
    assert queue.ayahs == _refs("1:5") + one_pass + one_pass + _refs("2:3")
    assert [u.range_repeat_index for u in queue] == [1] * 9 + [2] * 9
    assert (queue.range_start, queue.range_end) == (1, 9)
    assert all(u.is_available for u in queue)


def test_infinite_range_materializes_one_pass(builder, make_reciter):
    snapshot = _snapshot(
        [make_reciter()], "2:3", "2:4",
        range_repeat_count=-1, connection_ayah_before=1, connection_ayah_after=1,
        after_repeat_action=AfterRepeatAction.continue_ayaat(5)
    )
    queue = builder.build(snapshot)

    assert queue.infinite_range_repeat
    assert queue.ayahs == _refs("2:2", "2:3", "2:4")
    assert (queue.range_start, queue.range_end) == (1, 3)
    assert not any(u.is_continuation for u in queue)


def test_infinite_ayah_repeat_single_unit_per_ayah(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter()], "1:1", "1:3", ayah_repeat_count=-1))
    assert queue.infinite_ayah_repeat
    assert queue.ayahs == _refs("1:1", "1:2", "1:3")
    assert all(u.is_infinite_repeat for u in queue)


def test_gap_after_every_unit_but_last(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter()], "1:1", "1:3", gap_between_ayaat_ms=250, ayah_repeat_count=2))
    gaps = [u.gap_after_ms for u in queue]
    assert gaps == [250, 250, 250, 250, 250, 0]
    assert queue.loop_gap_ms == 250


def test_unavailable_ayaat_are_kept(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter(missing=["1:2"])], "1:1", "1:3"))

    assert queue.ayahs == _refs("1:1", "1:2", "1:3")
    assert not queue[1].is_available
    assert queue.summary() == {"units": 3, "unavailable": 1, "padding": 0, "continuation": 0}


def test_no_reciters_yields_all_unavailable(builder):
    queue = builder.build(_snapshot([], "1:1", "1:3"))
    assert len(queue) == 3
    assert not queue.has_audio


def test_multi_ayah_locator_drops_covered_ayaat(builder, make_reciter, make_recording):
    reciter = make_reciter("me", recordings=[make_recording([(1, 1, 3)])])
    queue = builder.build(_snapshot([reciter], "1:1", "1:5"))

    assert queue.ayahs == _refs("1:1", "1:4", "1:5")
    assert queue[0].audio_locator.is_personal
    assert queue[0].audio_locator.last_ayah == AyahRef(1, 3)


def test_empty_and_invalid_ranges(builder, make_reciter):
    assert builder.build(_snapshot([make_reciter()], "2:5", "2:1")).is_empty

    with pytest.raises(InvalidRangeError):
        builder.build(_snapshot([make_reciter()], "1:1", "1:8"))


def test_range_section_is_monotonic(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter()], "2:280", "3:4", ayah_repeat_count=3, range_repeat_count=2))
    first_pass = queue.ayahs[queue.range_start:queue.range_end]
    assert first_pass == sorted(first_pass)
    assert first_pass[0] == AyahRef(2, 280) and first_pass[-1] == AyahRef(3, 4)


def test_find_and_blocks(builder, make_reciter):
    queue = builder.build(_snapshot([make_reciter()], "1:2", "1:4", ayah_repeat_count=2, range_repeat_count=2))

    assert queue.find(AyahRef(1, 3)) == 2
    assert queue.find(AyahRef(1, 1)) == 0
    assert queue.find(AyahRef(2, 1)) is None

    assert queue.block_start(3) == 2
    assert queue.block_end(2) == 4
    # Same ayah in the next range pass is a different block
    assert queue.block_end(4) == 6
    assert queue.block_start(6) == 6


@pytest.mark.parametrize("ayah_repeat,range_repeat,before,after", [
    (1, 1, 0, 0),
    (2, 3, 1, 2),
    (3, 2, 4, 0),
])
def test_queue_length_formula(builder, make_reciter, ayah_repeat, range_repeat, before, after):
    snapshot = _snapshot(
        [make_reciter()], "2:10", "2:14",
        ayah_repeat_count=ayah_repeat, range_repeat_count=range_repeat,
        connection_ayah_before=before, connection_ayah_after=after
    )
    queue = builder.build(snapshot)
    assert len(queue) == 5 * ayah_repeat * range_repeat + before + after


def test_build_is_idempotent(builder, make_reciter):
    snapshot = _snapshot([make_reciter(missing=["2:12"])], "2:10", "2:14", ayah_repeat_count=2, connection_ayah_before=1)
    assert builder.build(snapshot) == builder.build(snapshot)
