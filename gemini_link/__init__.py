"""
============================================================================
Gemini Link v0.1.0
============================================================================

Client for the Gemini exchange trading API:

    exchange/   Signed REST requests (credential store, HMAC signer,
                HTTP gateway, typed API client)
    streaming/  WebSocket streams (transport, frame reassembly,
                sequence tracking, consumer dispatch)

Hosts build one ClientConfig (usually ClientConfig.from_environment())
and pass it, or the objects built from it, explicitly.
============================================================================
"""

__version__ = "0.1.0"

from gemini_link.config import ClientConfig, get_config, reset_config
from gemini_link.errors import (
    ConfigurationError,
    ErrorCode,
    GeminiLinkError,
    InvalidPayloadError,
    NoCredentialError,
    ProtocolError,
    StreamError,
)

__all__ = [
    "__version__",
    "ClientConfig",
    "get_config",
    "reset_config",
    "ConfigurationError",
    "ErrorCode",
    "GeminiLinkError",
    "InvalidPayloadError",
    "NoCredentialError",
    "ProtocolError",
    "StreamError",
]
