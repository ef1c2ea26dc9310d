import asyncio

from quran_playback.models import AyahRef, PlaybackState
from quran_playback.playback.events import EventKind, EventStream, PlaybackEvent


def test_sequence_is_gapless_and_shared_by_subscribers():
    async def scenario():
        stream = EventStream()
        first = stream.subscribe()
        second = stream.subscribe()

        stream.publish(EventKind.STATE, PlaybackState.LOADING)
        stream.publish(EventKind.AYAH, PlaybackState.LOADING, ayah=AyahRef(1, 1))
        second.close()
        stream.publish(EventKind.STATE, PlaybackState.PLAYING)

        return first.drain(), second.drain(), stream.last_sequence

    first, second, last = asyncio.run(scenario())

    assert [e.sequence for e in first] == [1, 2, 3]
    assert [e.sequence for e in second] == [1, 2]
    assert [e.kind for e in first] == [EventKind.STATE, EventKind.AYAH, EventKind.STATE]
    assert last == 3


def test_async_iteration_preserves_order():
    async def scenario():
        stream = EventStream()
        subscription = stream.subscribe()
        for state in (PlaybackState.LOADING, PlaybackState.PLAYING, PlaybackState.COMPLETED):
            stream.publish(EventKind.STATE, state)

        seen = []
        async for event in subscription:
            seen.append(event.state)
            if event.state == PlaybackState.COMPLETED:
                break
        return seen

    assert asyncio.run(scenario()) == [PlaybackState.LOADING, PlaybackState.PLAYING, PlaybackState.COMPLETED]


def test_event_formatting():
    event = PlaybackEvent(
        sequence=4,
        kind=EventKind.AYAH,
        state=PlaybackState.PLAYING,
        ayah=AyahRef(2, 255),
        ayah_repetition=2,
        total_ayah_repetitions=3,
        range_repetition=5,
        total_range_repetitions=-1
    )
    assert str(event) == "#4 ayah playing 2:255 rep 2/3 range 5/∞"

    speed = PlaybackEvent(sequence=5, kind=EventKind.SPEED, state=PlaybackState.PAUSED, speed=1.5)
    assert str(speed) == "#5 speed paused 1.5x"
