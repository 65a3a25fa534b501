"""
============================================================================
Stream Messages - Classification
============================================================================

Every logical message is UTF-8 JSON with a `type` discriminator:
    {"type": "heartbeat", "socket_sequence": 12, ...}   -> HEARTBEAT
    {"type": "update", "eventId": 5, "events": [...]}    -> DATA
    [{"type": "fill", ...}, {"type": "closed", ...}]     -> DATA (batch)

A sequence number, when present, is read from the first field found in
SEQUENCE_FIELDS.
============================================================================
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from gemini_link.errors import ProtocolError
from gemini_link.streaming.frames import LogicalMessage

TYPE_FIELD = "type"
HEARTBEAT_TYPE = "heartbeat"
SEQUENCE_FIELDS = ("sequence", "socket_sequence", "eventId")


class MessageCategory(Enum):
    HEARTBEAT = "HEARTBEAT"
    DATA = "DATA"


@dataclass(frozen=True)
class StreamMessage:
    """A parsed, classified stream message."""
    category: MessageCategory
    type: str
    payload: Any = field(repr=False)
    sequence: Optional[int] = None
    raw: bytes = field(default=b"", repr=False)

    @property
    def is_heartbeat(self) -> bool:
        return self.category is MessageCategory.HEARTBEAT


def classify(
    message: LogicalMessage,
    sequence_fields: Sequence[str] = SEQUENCE_FIELDS,
) -> StreamMessage:
    """
    Parse and classify a logical message.

    Raises:
        ProtocolError: On invalid UTF-8, malformed JSON, a missing
                       discriminator or a non-integer sequence field
    """
    text = message.text
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise ProtocolError(f"Malformed JSON: {e}", raw=message.raw)
    except RecursionError:
        raise ProtocolError("Malformed JSON: nesting too deep", raw=message.raw)

    if isinstance(payload, list):
        if not payload or not all(isinstance(item, Mapping) and TYPE_FIELD in item for item in payload):
            raise ProtocolError(
                f"Batch message elements must each carry '{TYPE_FIELD}'",
                raw=message.raw,
            )
        head = payload[0]
    elif isinstance(payload, Mapping):
        if TYPE_FIELD not in payload:
            raise ProtocolError(f"Message missing '{TYPE_FIELD}' field", raw=message.raw)
        head = payload
    else:
        raise ProtocolError(
            f"Message must be a JSON object or array, got {type(payload).__name__}",
            raw=message.raw,
        )

    message_type = str(head[TYPE_FIELD])
    category = MessageCategory.HEARTBEAT if message_type == HEARTBEAT_TYPE else MessageCategory.DATA

    return StreamMessage(
        category=category,
        type=message_type,
        payload=payload,
        sequence=_sequence_of(head, sequence_fields, message.raw),
        raw=message.raw,
    )


def _sequence_of(head: Mapping[str, Any], fields: Sequence[str], raw: bytes) -> Optional[int]:
    for name in fields:
        if name in head:
            value = head[name]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ProtocolError(f"Sequence field '{name}' is not an integer: {value!r}", raw=raw)
            return value
    return None
