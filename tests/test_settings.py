from dataclasses import FrozenInstanceError

import pytest

from quran_playback.exceptions import (
    InvalidSettingsError,
    ReciterNotFoundError,
    ResolverUnavailableError,
)
from quran_playback.models import AfterRepeatAction, AfterRepeatKind, AyahRange, AyahRef, Riwayah
from quran_playback.settings import (
    PlaybackSettingsRecord,
    PlaybackSettingsSnapshot,
    PriorityEntry,
    SegmentOverrideRecord,
)

RANGE = AyahRange(AyahRef(1, 1), AyahRef(1, 7))


def _lookup(reciters):
    by_id = {r.reciter_id: r for r in reciters}

    def lookup(reciter_id):
        if reciter_id not in by_id:
            raise ReciterNotFoundError(reciter_id, by_id.keys())
        return by_id[reciter_id]

    return lookup


def test_empty_record_takes_defaults():
    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, PlaybackSettingsRecord(), _lookup([]))

    assert snapshot.riwayah == Riwayah.HAFS
    assert snapshot.speed == 1.0
    assert snapshot.ayah_repeat_count == 1
    assert snapshot.range_repeat_count == 1
    assert snapshot.connection_ayah_before == 0
    assert snapshot.gap_between_ayaat_ms == 0
    assert snapshot.after_repeat_action == AfterRepeatAction.stop()
    assert snapshot.reciter_priority == ()
    assert snapshot.covered_ayahs is None


def test_priority_sorted_and_disabled_skipped(make_reciter):
    a, b, c = make_reciter("a"), make_reciter("b"), make_reciter("c")
    record = PlaybackSettingsRecord(reciter_priority=[
        PriorityEntry("c", order=2),
        PriorityEntry("a", order=1),
        PriorityEntry("b", order=0, is_enabled=False),
        PriorityEntry("gone", order=3),
    ])

    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, record, _lookup([a, b, c]))
    assert [r.reciter_id for r in snapshot.reciter_priority] == ["a", "c"]


def test_selected_reciter_pins_priority(make_reciter):
    a, b = make_reciter("a"), make_reciter("b")
    record = PlaybackSettingsRecord(selected_reciter_id="b", reciter_priority=[PriorityEntry("a")])

    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, record, _lookup([a, b]))
    assert snapshot.reciter_priority == (b,)

    record.selected_reciter_id = "missing"
    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, record, _lookup([a, b]))
    assert snapshot.reciter_priority == (a,)


def test_auto_reciters_used_when_priority_empty(make_reciter):
    warsh = make_reciter("w", riwayah=Riwayah.WARSH)
    record = PlaybackSettingsRecord(riwayah="warsh")
    seen = []

    def auto(riwayah):
        seen.append(riwayah)
        return [warsh]

    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, record, _lookup([warsh]), auto_reciters=auto)
    assert seen == [Riwayah.WARSH]
    assert snapshot.reciter_priority == (warsh,)


def test_unavailable_reciter_source_degrades_to_empty_priority():
    def broken(reciter_id):
        raise ResolverUnavailableError("library offline")

    record = PlaybackSettingsRecord(reciter_priority=[PriorityEntry("a")])
    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, record, broken)
    assert snapshot.reciter_priority == ()


@pytest.mark.parametrize("field,value", [
    ("speed", 0),
    ("speed", 4.5),
    ("ayah_repeat_count", 0),
    ("range_repeat_count", -2),
    ("connection_ayah_before", -1),
    ("gap_between_ayaat_ms", -5),
])
def test_invalid_values_rejected(field, value):
    with pytest.raises(InvalidSettingsError) as exc:
        PlaybackSettingsSnapshot.from_record(RANGE, PlaybackSettingsRecord(**{field: value}), _lookup([]))
    assert exc.value.field == field


def test_unknown_riwayah_and_action_rejected():
    with pytest.raises(InvalidSettingsError):
        PlaybackSettingsSnapshot.from_record(RANGE, PlaybackSettingsRecord(riwayah="nope"), _lookup([]))
    with pytest.raises(InvalidSettingsError):
        PlaybackSettingsSnapshot.from_record(RANGE, PlaybackSettingsRecord(after_repeat_action="loop"), _lookup([]))


def test_infinite_repeats_accepted():
    record = PlaybackSettingsRecord(ayah_repeat_count=-1, range_repeat_count=-1)
    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, record, _lookup([]))
    assert snapshot.infinite_ayah_repeat and snapshot.infinite_range_repeat


def test_after_repeat_from_record():
    record = PlaybackSettingsRecord(
        after_repeat_action="continuePages",
        after_repeat_continue_pages_count=2,
        after_repeat_continue_pages_extra_ayah=True
    )
    action = record.after_repeat()
    assert action.kind == AfterRepeatKind.CONTINUE_PAGES
    assert action.count == 2 and action.extra_ayah

    assert PlaybackSettingsRecord(after_repeat_action="continueAyaat").after_repeat().count == 0


def test_segment_overrides_first_match_wins(make_reciter):
    a, b, c = make_reciter("a"), make_reciter("b"), make_reciter("c")
    record = PlaybackSettingsRecord(
        reciter_priority=[PriorityEntry("a")],
        segment_overrides=[
            SegmentOverrideRecord(AyahRef(1, 3), AyahRef(1, 5), order=1, reciter_priority=[PriorityEntry("c")]),
            SegmentOverrideRecord(AyahRef(1, 2), AyahRef(1, 4), order=0, reciter_priority=[PriorityEntry("b")]),
        ]
    )
    snapshot = PlaybackSettingsSnapshot.from_record(RANGE, record, _lookup([a, b, c]))

    assert snapshot.priority_for(AyahRef(1, 1)) == (a,)
    assert snapshot.priority_for(AyahRef(1, 3)) == (b,)
    assert snapshot.priority_for(AyahRef(1, 5)) == (c,)


def test_record_roundtrip_and_merge():
    record = PlaybackSettingsRecord(
        speed=1.5,
        reciter_priority=[PriorityEntry("a", order=1)],
        segment_overrides=[SegmentOverrideRecord(AyahRef(2, 1), AyahRef(2, 5))]
    )
    restored = PlaybackSettingsRecord.from_dict(record.to_dict())
    assert restored == record

    merged = record.merged(speed=None, gap_between_ayaat_ms=200)
    assert merged.speed == 1.5
    assert merged.gap_between_ayaat_ms == 200
    assert record.gap_between_ayaat_ms is None


def test_snapshot_is_frozen_and_for_recording(make_reciter):
    reciter = make_reciter("a")
    snapshot = PlaybackSettingsSnapshot.for_recording(RANGE, reciter, Riwayah.HAFS)

    assert snapshot.reciter_priority == (reciter,)
    assert snapshot.after_repeat_action.kind == AfterRepeatKind.STOP
    with pytest.raises(FrozenInstanceError):
        snapshot.speed = 2.0

    other = AyahRange(AyahRef(2, 1), AyahRef(2, 3))
    assert snapshot.with_range(other).range == other
    assert snapshot.with_range(RANGE) is snapshot
