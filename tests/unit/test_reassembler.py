"""
============================================================================
Unit Tests for FrameReassembler
============================================================================

This module tests logical message reassembly:
- Single-frame and multi-frame messages
- Trailing garbage kept in the message body
- Frame sequence violations (no cross-message bleed)
- Partial message flush at stream end

============================================================================
"""

import os
import sys
from typing import List

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from gemini_link.errors import FrameSequenceError, ProtocolError
from gemini_link.streaming.frames import FRAME_BUFFER_SIZE, Frame, LogicalMessage, split_payload
from gemini_link.streaming.reassembler import FrameReassembler


def first(payload: bytes) -> Frame:
    return Frame(payload, is_final=False, starts_message=True)


def middle(payload: bytes) -> Frame:
    return Frame(payload, is_final=False, starts_message=False)


def last(payload: bytes) -> Frame:
    return Frame(payload, is_final=True, starts_message=False)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def violations() -> List[FrameSequenceError]:
    return []


@pytest.fixture
def reassembler(violations: List[FrameSequenceError]) -> FrameReassembler:
    return FrameReassembler(on_violation=violations.append)


# =============================================================================
# Reassembly
# =============================================================================

class TestReassembly:

    def test_single_frame_message(self, reassembler: FrameReassembler):
        message = reassembler.feed(Frame(b'{"type":"heartbeat"}'))

        assert message == LogicalMessage(raw=b'{"type":"heartbeat"}', frame_count=1)
        assert not reassembler.in_progress

    def test_multi_frame_message(self, reassembler: FrameReassembler):
        assert reassembler.feed(first(b'{"type":')) is None
        assert reassembler.feed(middle(b'"update",')) is None
        assert reassembler.in_progress
        assert reassembler.buffered_bytes == 17

        message = reassembler.feed(last(b'"eventId":1}'))

        assert message.raw == b'{"type":"update","eventId":1}'
        assert message.frame_count == 3
        assert reassembler.buffered_bytes == 0

    def test_consecutive_messages_do_not_share_bytes(self, reassembler: FrameReassembler):
        messages = reassembler.feed_all([
            first(b"aa"), last(b"bb"),
            Frame(b"cc"),
            first(b"dd"), middle(b""), last(b"ee"),
        ])

        assert [m.raw for m in messages] == [b"aabb", b"cc", b"ddee"]

    def test_trailing_garbage_kept_in_body(self, reassembler: FrameReassembler):
        message = reassembler.feed_all([first(b'{"type":"x"}'), last(b"\x00\xffjunk")])[0]

        assert message.raw == b'{"type":"x"}\x00\xffjunk'

    def test_empty_final_frame_completes_message(self, reassembler: FrameReassembler):
        reassembler.feed(first(b"abc"))

        assert reassembler.feed(last(b"")).raw == b"abc"

    def test_invalid_utf8_raises_protocol_error_on_text(self, reassembler: FrameReassembler):
        message = reassembler.feed(Frame(b"\xff\xfe"))

        with pytest.raises(ProtocolError) as exc_info:
            message.text

        assert exc_info.value.raw == b"\xff\xfe"


# =============================================================================
# Frame Sequence Violations
# =============================================================================

class TestFrameSequencePolicy:

    def test_new_start_discards_partial_and_reports(
        self, reassembler: FrameReassembler, violations: List[FrameSequenceError]
    ):
        reassembler.feed(first(b"AAA"))
        reassembler.feed(middle(b"aaa"))

        assert reassembler.feed(first(b"BBB")) is None
        message = reassembler.feed(last(b"bbb"))

        assert message.raw == b"BBBbbb"
        assert len(violations) == 1
        assert violations[0].raw == b"AAAaaa"

    def test_interleaved_messages_never_merge(
        self, reassembler: FrameReassembler, violations: List[FrameSequenceError]
    ):
        messages = reassembler.feed_all([
            first(b"A1"), first(b"B1"), last(b"A2"), last(b"B2"),
        ])

        assert [m.raw for m in messages] == [b"B1A2"]
        assert [v.raw for v in violations] == [b"A1", b"B2"]
        for message in messages:
            assert message.raw not in (b"A1B1", b"A1A2", b"A1B1A2B2")

    def test_orphan_continuation_discarded_and_reported(
        self, reassembler: FrameReassembler, violations: List[FrameSequenceError]
    ):
        assert reassembler.feed(middle(b"stray")) is None
        assert reassembler.feed(last(b"tail")) is None

        assert [v.raw for v in violations] == [b"stray", b"tail"]
        assert reassembler.feed(Frame(b"ok")).raw == b"ok"

    def test_no_callback_still_discards(self):
        reassembler = FrameReassembler()
        reassembler.feed(first(b"x"))

        assert reassembler.feed(Frame(b"y")).raw == b"y"


# =============================================================================
# Flush
# =============================================================================

class TestFlush:

    def test_flush_returns_partial_bytes(self, reassembler: FrameReassembler):
        reassembler.feed(first(b"part"))
        reassembler.feed(middle(b"ial"))

        assert reassembler.flush() == b"partial"
        assert not reassembler.in_progress
        assert reassembler.flush() == b""


# =============================================================================
# Payload Splitting
# =============================================================================

class TestSplitPayload:

    def test_chunks_bounded_by_buffer_size(self):
        data = b"x" * (FRAME_BUFFER_SIZE * 2 + 10)

        chunks = list(split_payload(data))

        assert [len(c) for c in chunks] == [FRAME_BUFFER_SIZE, FRAME_BUFFER_SIZE, 10]
        assert b"".join(chunks) == data

    def test_empty_payload_yields_nothing(self):
        assert list(split_payload(b"", 4)) == []
