"""
============================================================================
Frame Reassembler - Logical Message Boundaries
============================================================================

Accumulates frames of one logical message until the final frame, then
emits the concatenated payload and resets. Owned by the stream's single
receive loop; no locking.

INVARIANTS:
    - An emitted message never holds bytes from two frame sequences
    - No frame's bytes are emitted twice
    - No bytes are dropped silently: trailing garbage stays in the body,
      and anything discarded is reported with its bytes

FRAME SEQUENCE POLICY:
    - A starting frame while a message is in progress: the partial
      message is discarded and reported; the new frame starts a fresh
      message.
    - A continuation frame with no message in progress: the frame is
      discarded and reported.
    Reports go to the `on_violation` callback as FrameSequenceError.
============================================================================
"""

import logging
from typing import Callable, List, Optional

from gemini_link.errors import ErrorCode, FrameSequenceError
from gemini_link.streaming.frames import Frame, LogicalMessage

logger = logging.getLogger(__name__)

ViolationCallback = Callable[[FrameSequenceError], None]


class FrameReassembler:
    """
    Turns a stream of Frames into LogicalMessages.

    Example Usage:
        reassembler = FrameReassembler()
        for frame in frames:
            message = reassembler.feed(frame)
            if message is not None:
                handle(message.text)
    """

    def __init__(self, on_violation: Optional[ViolationCallback] = None):
        self._buffer = bytearray()
        self._frames = 0
        self._in_progress = False
        self._on_violation = on_violation

    @property
    def in_progress(self) -> bool:
        """True while a message has started but not finished."""
        return self._in_progress

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, frame: Frame) -> Optional[LogicalMessage]:
        """
        Append one frame; return the completed message on its final frame.
        """
        if frame.starts_message:
            if self._in_progress:
                discarded = self._take()
                self._report(FrameSequenceError(
                    f"New message started before the previous one finished; "
                    f"discarded {len(discarded)} bytes",
                    raw=discarded,
                ))
            self._in_progress = True
        elif not self._in_progress:
            self._report(FrameSequenceError(
                f"Continuation frame with no message in progress; "
                f"discarded {len(frame.payload)} bytes",
                raw=frame.payload,
            ))
            return None

        self._buffer.extend(frame.payload)
        self._frames += 1

        if not frame.is_final:
            return None

        frame_count = self._frames
        return LogicalMessage(raw=self._take(), frame_count=frame_count)

    def feed_all(self, frames) -> List[LogicalMessage]:
        """Feed several frames; return every message they complete."""
        messages = []
        for frame in frames:
            message = self.feed(frame)
            if message is not None:
                messages.append(message)
        return messages

    def flush(self) -> bytes:
        """
        Take whatever partial message is buffered (e.g. at stream end).

        Returns the partial bytes, empty if nothing was in progress.
        """
        return self._take()

    def _take(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer = bytearray()
        self._frames = 0
        self._in_progress = False
        return data

    def _report(self, error: FrameSequenceError) -> None:
        logger.warning(f"[{ErrorCode.WS_FRAME_SEQUENCE}] {error.message}")
        if self._on_violation is not None:
            self._on_violation(error)
