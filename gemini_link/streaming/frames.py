"""
============================================================================
Stream Frames - Wire Units of the Market Data Stream
============================================================================

A logical stream message may span any number of frames. Each frame
payload is bounded by FRAME_BUFFER_SIZE (16 KiB): the transport splits
larger WebSocket fragments before handing them on.

    Frame(payload, is_final, starts_message)
        starts_message: first frame of a logical message
        is_final:       last frame of a logical message

A single-frame message has both flags set.
============================================================================
"""

from dataclasses import dataclass

from gemini_link.errors import ProtocolError

# 16 KiB receive buffer per frame
FRAME_BUFFER_SIZE = 16384


@dataclass(frozen=True)
class Frame:
    """One bounded chunk of a logical message."""
    payload: bytes
    is_final: bool = True
    starts_message: bool = True


@dataclass(frozen=True)
class LogicalMessage:
    """A fully reassembled message: every frame payload, in order."""
    raw: bytes
    frame_count: int = 1

    def __len__(self) -> int:
        return len(self.raw)

    @property
    def text(self) -> str:
        """
        Decode as UTF-8.

        Raises:
            ProtocolError: If the bytes are not valid UTF-8
        """
        try:
            return self.raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Message is not valid UTF-8: {e}", raw=self.raw)


def split_payload(data: bytes, size: int = FRAME_BUFFER_SIZE):
    """Yield consecutive chunks of at most `size` bytes."""
    for offset in range(0, len(data), size):
        yield data[offset:offset + size]
