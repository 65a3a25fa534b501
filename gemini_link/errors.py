# ============================================================================
# Gemini Link v0.1.0
# Error Taxonomy
# ============================================================================
#
# Purpose: Exception hierarchy shared by the signing and streaming layers
#
# Categories:
#   - ConfigurationError: no credential loaded, malformed credential
#   - InvalidPayloadError: request payload cannot be signed
#   - ProtocolError: malformed stream message or frame sequence
#   - StreamError: connection lifecycle failures
#
# Request-local failures are NOT raised from the HTTP layer; they are
# returned as Outcome values (see gemini_link.exchange.outcome).
#
# ============================================================================

from typing import Optional


class ErrorCode:
    """Error codes for audit logging."""
    CONFIG_MISSING = "GEM-CFG-001"
    NO_CREDENTIAL = "GEM-SIG-001"
    INVALID_PAYLOAD = "GEM-SIG-002"
    NONCE_WRITE_FAIL = "GEM-NONCE-001"
    NONCE_READ_FAIL = "GEM-NONCE-002"
    REMOTE_REJECTION = "GEM-HTTP-001"
    TRANSPORT_FAIL = "GEM-HTTP-002"
    INVALID_RESPONSE = "GEM-HTTP-003"
    WS_CONNECT_FAIL = "GEM-WS-001"
    WS_PROTOCOL = "GEM-WS-002"
    WS_ENDED = "GEM-WS-003"
    WS_SEQUENCE_GAP = "GEM-WS-004"
    WS_FRAME_SEQUENCE = "GEM-WS-005"
    WS_STATE = "GEM-WS-006"


class GeminiLinkError(Exception):
    """Base exception for all gemini_link errors."""

    error_code = "GEM-000"

    def __init__(self, message: str, error_code: Optional[str] = None):
        if error_code is not None:
            self.error_code = error_code
        self.message = message
        super().__init__(f"[{self.error_code}] {message}")


# ----------------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------------

class ConfigurationError(GeminiLinkError):
    """
    Raised when credentials or settings are missing or malformed.

    Fatal to the operation requesting it, not to the process. The caller
    may retry after fixing configuration.
    """
    error_code = ErrorCode.CONFIG_MISSING


class NoCredentialError(ConfigurationError):
    """Raised when a signed request is attempted with no credential loaded."""
    error_code = ErrorCode.NO_CREDENTIAL


class InvalidPayloadError(GeminiLinkError):
    """Raised when a payload lacks the endpoint path or cannot be serialized."""
    error_code = ErrorCode.INVALID_PAYLOAD


# ----------------------------------------------------------------------------
# Outcome unwrapping
# ----------------------------------------------------------------------------

class RemoteRejectionError(GeminiLinkError):
    """Raised by Outcome.unwrap() for a Failure outcome."""
    error_code = ErrorCode.REMOTE_REJECTION

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(f"{reason}: {message}")


class TransportFailureError(GeminiLinkError):
    """Raised by Outcome.unwrap() for a TransportError outcome."""
    error_code = ErrorCode.TRANSPORT_FAIL


# ----------------------------------------------------------------------------
# Streaming
# ----------------------------------------------------------------------------

class ProtocolError(GeminiLinkError):
    """
    A single stream message is malformed.

    The message is discarded; the session is not torn down.
    """
    error_code = ErrorCode.WS_PROTOCOL

    def __init__(self, message: str, raw: bytes = b""):
        self.raw = raw
        super().__init__(message)


class FrameSequenceError(ProtocolError):
    """Frames arrived out of message order; `raw` holds the discarded bytes."""
    error_code = ErrorCode.WS_FRAME_SEQUENCE


class StreamError(GeminiLinkError):
    """Base for stream transport lifecycle errors."""


class ConnectError(StreamError):
    """The stream connection could not be established."""
    error_code = ErrorCode.WS_CONNECT_FAIL


class AlreadyConnectedError(StreamError):
    """connect() was called while a connection is already open."""
    error_code = ErrorCode.WS_STATE


class NotConnectedError(StreamError):
    """A frame was requested from a transport that is not open."""
    error_code = ErrorCode.WS_STATE


class StreamClosedError(StreamError):
    """The peer closed the connection."""
    error_code = ErrorCode.WS_ENDED

    def __init__(self, message: str, code: Optional[int] = None, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(message)


class StreamTransportError(StreamError):
    """The connection failed while open (reset, TLS failure, timeout)."""
    error_code = ErrorCode.TRANSPORT_FAIL
