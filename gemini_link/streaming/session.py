"""
============================================================================
Stream Session - Connection State and Sequence Tracking
============================================================================

StreamSession is created when a StreamClient starts and is mutated only
by that client's receive loop. `last_sequence` drives gap detection: a
new sequence number must equal last_sequence + 1, or may be anything when
no sequence has been seen yet. A gap is reported, never fatal.
============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ConnectionState(Enum):
    """Stream connection states."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"


@dataclass(frozen=True)
class SequenceGap:
    """Sequence numbers skipped between two observed messages."""
    expected: int
    received: int
    previous: int

    @property
    def missing(self) -> int:
        """How many sequence numbers were skipped (negative for a regression)."""
        return self.received - self.expected


@dataclass
class StreamSession:
    state: ConnectionState = ConnectionState.DISCONNECTED
    last_sequence: Optional[int] = None
    last_heartbeat_at: Optional[datetime] = None
    messages_received: int = 0
    heartbeats_received: int = 0
    gaps_detected: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def observe_sequence(self, sequence: int) -> Optional[SequenceGap]:
        """
        Record a sequence number; return a SequenceGap if it is not
        exactly one past the previous value.
        """
        previous = self.last_sequence
        self.last_sequence = sequence

        if previous is None or sequence == previous + 1:
            return None

        self.gaps_detected += 1
        return SequenceGap(expected=previous + 1, received=sequence, previous=previous)

    def mark_heartbeat(self, at: Optional[datetime] = None) -> None:
        self.last_heartbeat_at = at or datetime.now(timezone.utc)
        self.heartbeats_received += 1

    def seconds_since_heartbeat(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.last_heartbeat_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.last_heartbeat_at).total_seconds()
