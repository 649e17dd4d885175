from __future__ import annotations

import codecs
import logging
from typing import AsyncIterable, Callable

from .models import StreamSession

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]
CancelCheck = Callable[[], bool]


class StreamAccumulator:
    """Decode byte chunks into a growing text buffer.

    The decoder keeps incomplete multi-byte sequences between ``feed`` calls, so
    a character split across two chunks is emitted once its last byte arrives.
    ``flush`` must run after the last chunk or a truncated trailing sequence is
    silently lost.
    """

    def __init__(self, session: StreamSession | None = None, *, encoding: str = "utf-8") -> None:
        self.session = session or StreamSession()
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    @property
    def text(self) -> str:
        return self.session.accumulated_text

    def feed(self, chunk: bytes) -> str:
        decoded = self._decoder.decode(chunk, final=False)
        if decoded:
            self.session.append(decoded)
        return decoded

    def flush(self) -> str:
        decoded = self._decoder.decode(b"", final=True)
        if decoded:
            self.session.append(decoded)
        return decoded


class StreamReader:
    def __init__(
        self,
        accumulator: StreamAccumulator | None = None,
        *,
        on_chunk: ChunkCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> None:
        self.accumulator = accumulator or StreamAccumulator()
        self._on_chunk = on_chunk
        self._should_cancel = should_cancel

    @property
    def session(self) -> StreamSession:
        return self.accumulator.session

    def _publish(self) -> None:
        if self._on_chunk is not None:
            self._on_chunk(self.accumulator.text)

    async def consume(self, chunks: AsyncIterable[bytes]) -> str:
        session = self.session
        try:
            async for chunk in chunks:
                if not chunk:
                    continue
                if self.accumulator.feed(chunk):
                    self._publish()
                if self._should_cancel is not None and self._should_cancel():
                    logger.info("stream cancelled after %d characters", len(session.accumulated_text))
                    if self.accumulator.flush():
                        self._publish()
                    session.finalize("cancelled")
                    return session.accumulated_text
            if self.accumulator.flush():
                self._publish()
        except Exception:
            session.finalize("failed")
            raise
        session.finalize("completed")
        return session.accumulated_text
