"""Decoding of ``data: <json>`` Server-Sent-Events frames into typed events.

Parsing is best-effort: a frame that cannot be decoded is dropped and the
stream continues. A trailing frame with no terminating blank line is never
parsed.
"""

from typing import AsyncIterable, AsyncIterator, List, Union
import codecs
import json

import structlog
from pydantic import ValidationError

from assistant_runtime.infrastructure.observability.logging import metrics
from .schema.events import StreamEvent, UnknownEventTypeError, decode_event

logger = structlog.get_logger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_PREFIX = "data:"


class FrameParser:
    """Incremental frame parser for one stream"""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.frames = 0
        self.dropped = 0

    def feed(self, data: Union[bytes, str]) -> List[StreamEvent]:
        """Add a chunk of input and return the events completed by it"""

        if isinstance(data, bytes):
            text = self._decoder.decode(data)
        else:
            text = data
        self._buffer = (self._buffer + text).replace("\r\n", "\n")

        *complete, self._buffer = self._buffer.split(FRAME_DELIMITER)

        events: List[StreamEvent] = []
        for frame in complete:
            event = self._parse_frame(frame)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        """End of stream; any unterminated frame is discarded"""

        self._decoder.decode(b"", final=True)
        if self._buffer.strip():
            logger.debug("Discarding unterminated frame", length=len(self._buffer))
        self._buffer = ""

    def _parse_frame(self, frame: str) -> Union[StreamEvent, None]:
        frame = frame.strip()
        if not frame:
            return None

        self.frames += 1

        if not frame.startswith(DATA_PREFIX):
            self._drop("missing data prefix", frame)
            return None

        body = frame[len(DATA_PREFIX):].strip()
        if not body:
            self._drop("empty payload", frame)
            return None

        try:
            return decode_event(json.loads(body))
        except (json.JSONDecodeError, UnknownEventTypeError, ValidationError) as e:
            self._drop(str(e), frame)
            return None

    def _drop(self, reason: str, frame: str):
        self.dropped += 1
        metrics.increment_counter("frames.dropped")
        logger.debug("Dropping malformed frame", reason=reason, frame=frame[:200])


async def parse_event_stream(chunks: AsyncIterable[Union[bytes, str]]) -> AsyncIterator[StreamEvent]:
    """Yield typed events from an async stream of raw chunks, in arrival order"""

    parser = FrameParser()
    async for chunk in chunks:
        for event in parser.feed(chunk):
            yield event
    parser.close()

    if parser.dropped:
        logger.info("Stream finished with dropped frames", frames=parser.frames, dropped=parser.dropped)
