# ============================================================================
# Gemini Link v0.1.0
# Exchange Module - Signed REST Requests
# ============================================================================
#
# Components:
#   - CredentialStore: credential and nonce counter (thread-safe)
#   - RequestSigner: HMAC-SHA384 payload signing
#   - HttpGateway: HTTP transport, response -> Outcome
#   - GeminiClient: public and private API methods
#   - ExponentialBackoff: caller-side retry delays
#
# ============================================================================

from gemini_link.exchange.backoff import ExponentialBackoff
from gemini_link.exchange.client import GeminiClient
from gemini_link.exchange.credentials import (
    Credential,
    CredentialStore,
    NonceLedger,
    SigningSnapshot,
)
from gemini_link.exchange.hmac_signer import (
    RequestSigner,
    SignatureAlgorithm,
    SignedRequest,
    canonical_payload,
    hmac_hex,
)
from gemini_link.exchange.http_gateway import HttpGateway
from gemini_link.exchange.outcome import Failure, Outcome, Success, TransportError

__all__ = [
    "ExponentialBackoff",
    "GeminiClient",
    "Credential",
    "CredentialStore",
    "NonceLedger",
    "SigningSnapshot",
    "RequestSigner",
    "SignatureAlgorithm",
    "SignedRequest",
    "canonical_payload",
    "hmac_hex",
    "HttpGateway",
    "Failure",
    "Outcome",
    "Success",
    "TransportError",
]
