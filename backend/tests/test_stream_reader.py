from __future__ import annotations

import asyncio

import pytest

from clara_chat.models import StreamClosedError, StreamSession
from clara_chat.stream_reader import StreamAccumulator, StreamReader


async def _chunks(items: list[bytes], consumed: list[bytes] | None = None, fail_at: int | None = None):
    for index, item in enumerate(items):
        if fail_at is not None and index == fail_at:
            raise ConnectionResetError("peer closed the stream")
        if consumed is not None:
            consumed.append(item)
        yield item


def test_chunks_accumulate_and_publish_after_each_chunk():
    published: list[str] = []
    reader = StreamReader(on_chunk=published.append)

    text = asyncio.run(reader.consume(_chunks([b"Hel", b"lo wor", b"ld"])))

    assert text == "Hello world"
    assert published == ["Hel", "Hello wor", "Hello world"]
    assert reader.session.status == "completed"


def test_multibyte_characters_split_across_chunks_decode_once_complete():
    original = "Café ❤️ rhythm"
    encoded = original.encode("utf-8")
    published: list[str] = []
    reader = StreamReader(on_chunk=published.append)

    text = asyncio.run(reader.consume(_chunks([encoded[i : i + 1] for i in range(len(encoded))])))

    assert text == original
    assert "�" not in text
    for previous, current in zip(published, published[1:]):
        assert current.startswith(previous)
        assert len(current) > len(previous)
    assert published[-1] == original


def test_flush_emits_truncated_trailing_sequence():
    published: list[str] = []
    reader = StreamReader(on_chunk=published.append)

    text = asyncio.run(reader.consume(_chunks([b"ok \xe2\x9d"])))

    assert text == "ok �"
    assert published == ["ok ", "ok �"]


def test_empty_chunks_are_ignored():
    published: list[str] = []
    reader = StreamReader(on_chunk=published.append)

    asyncio.run(reader.consume(_chunks([b"", b"a", b""])))

    assert published == ["a"]


def test_failure_mid_stream_marks_session_failed_and_propagates():
    published: list[str] = []
    reader = StreamReader(on_chunk=published.append)

    with pytest.raises(ConnectionResetError):
        asyncio.run(reader.consume(_chunks([b"Hel", b"lo"], fail_at=1)))

    assert published == ["Hel"]
    assert reader.session.status == "failed"
    assert reader.session.accumulated_text == "Hel"


def test_cancel_stops_reading_between_chunks():
    consumed: list[bytes] = []
    published: list[str] = []
    reader = StreamReader(on_chunk=published.append, should_cancel=lambda: bool(published))

    text = asyncio.run(reader.consume(_chunks([b"Hel", b"lo", b" world"], consumed=consumed)))

    assert text == "Hel"
    assert consumed == [b"Hel"]
    assert reader.session.status == "cancelled"


def test_accumulator_writes_into_given_session():
    session = StreamSession(session_id="12")
    accumulator = StreamAccumulator(session)
    accumulator.feed("Ré".encode("utf-8")[:2])
    assert session.accumulated_text == "R"
    accumulator.feed("Ré".encode("utf-8")[2:])
    assert accumulator.text == "Ré"


def test_finalized_session_rejects_appends():
    session = StreamSession()
    session.append("partial")
    session.finalize("completed")
    session.finalize("failed")
    assert session.status == "completed"
    with pytest.raises(StreamClosedError):
        session.append("more")
