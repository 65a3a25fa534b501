# ============================================================================
# Gemini Link v0.1.0
# HMAC Signer - Authenticated Request Pipeline
# ============================================================================
#
# Purpose: Signs private API requests using HMAC-SHA384
#
# MANDATE:
#   - Payload validated BEFORE a nonce is consumed
#   - API secret NEVER appears in logs
#   - Request body is empty; the payload travels in the signed header
#
# Gemini Signature Format:
#   payload   = compact JSON {"request": path, "nonce": n, ...fields}
#   encoded   = base64(payload)
#   signature = hex(HMAC-SHA384(api_secret, encoded))
#
# Error Codes:
#   - GEM-SIG-001: No credential loaded
#   - GEM-SIG-002: Invalid payload
#
# ============================================================================

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from gemini_link.errors import ConfigurationError, ErrorCode, InvalidPayloadError
from gemini_link.exchange.credentials import CredentialStore

logger = logging.getLogger(__name__)


REQUEST_FIELD = "request"
NONCE_FIELD = "nonce"
DEFAULT_HEADER_PREFIX = "X-GEMINI-"


class SignatureAlgorithm(Enum):
    """HMAC digest used for request signatures."""
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"

    @property
    def digestmod(self):
        return getattr(hashlib, self.value)

    @classmethod
    def from_name(cls, name: str) -> "SignatureAlgorithm":
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported signature algorithm: {name}")


def hmac_hex(
    message: Union[str, bytes],
    secret: Union[str, bytes],
    algorithm: SignatureAlgorithm = SignatureAlgorithm.SHA384,
) -> str:
    """Return the lowercase hex HMAC digest of `message` keyed by `secret`."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    return hmac.new(secret, message, algorithm.digestmod).hexdigest()


def canonical_payload(payload: Mapping[str, Any], nonce: int) -> bytes:
    """
    Serialize a request payload to compact JSON bytes.

    Field order: endpoint path, nonce, then the remaining fields in the
    order they were declared. Decimal values are rendered as strings.
    """
    ordered = {REQUEST_FIELD: payload[REQUEST_FIELD], NONCE_FIELD: nonce}
    for key, value in payload.items():
        if key not in ordered:
            ordered[key] = value
    try:
        return json.dumps(ordered, separators=(",", ":"), default=_json_default).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise InvalidPayloadError(f"Payload is not JSON serializable: {e}")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


# ============================================================================
# Signed Request Descriptor
# ============================================================================

@dataclass
class SignedRequest:
    """
    A signed, ready-to-send request. Sent once, then discarded.

    Resending would replay a stale nonce, so HttpGateway refuses a
    descriptor whose `sent` flag is already set.
    """
    url: str
    headers: Dict[str, str] = field(repr=False)
    raw_payload: bytes = field(repr=False)
    nonce: int = 0
    method: str = "POST"
    body: bytes = b""
    sent: bool = False

    @property
    def path(self) -> str:
        return json.loads(self.raw_payload.decode("utf-8"))[REQUEST_FIELD]


# ============================================================================
# Request Signer
# ============================================================================

class RequestSigner:
    """
    Turns an authenticated-request payload into a SignedRequest.

    Pure given its inputs except for the one nonce-consuming call to the
    CredentialStore. Safe to share across threads.

    Example Usage:
        signer = RequestSigner(store)
        signed = signer.sign({"request": "/v1/order/status", "order_id": 1})
        outcome = gateway.send(signed)
    """

    def __init__(
        self,
        store: CredentialStore,
        algorithm: SignatureAlgorithm = SignatureAlgorithm.SHA384,
        header_prefix: str = DEFAULT_HEADER_PREFIX,
        correlation_id: Optional[str] = None,
    ):
        self.store = store
        self.algorithm = algorithm
        self.header_prefix = header_prefix
        self.correlation_id = correlation_id

    def sign(self, payload: Mapping[str, Any]) -> SignedRequest:
        """
        Sign a payload, consuming one nonce.

        Args:
            payload: Field mapping; must contain the endpoint path under
                     "request". The nonce is assigned here.

        Returns:
            SignedRequest with API-KEY, PAYLOAD and SIGNATURE headers

        Raises:
            InvalidPayloadError: If the endpoint path is missing or invalid
            NoCredentialError: If no credential is loaded
        """
        self._validate(payload)
        # Serializability check before a nonce is spent
        canonical_payload(payload, 0)

        snapshot = self.store.acquire_nonce()
        raw = canonical_payload(payload, snapshot.nonce)
        encoded = base64.b64encode(raw).decode("ascii")
        signature = hmac_hex(encoded, snapshot.api_secret, self.algorithm)

        path = payload[REQUEST_FIELD]
        headers = {
            "Content-Type": "text/plain",
            "Content-Length": "0",
            "Cache-Control": "no-cache",
            f"{self.header_prefix}APIKEY": snapshot.api_key,
            f"{self.header_prefix}PAYLOAD": encoded,
            f"{self.header_prefix}SIGNATURE": signature,
        }

        logger.debug(
            f"[GEM-SIG] Request signed | path={path} | nonce={snapshot.nonce} | "
            f"algorithm={self.algorithm.value} | signature=[REDACTED] | "
            f"correlation_id={self.correlation_id}"
        )

        return SignedRequest(
            url=f"{snapshot.base_url}{path}",
            headers=headers,
            raw_payload=raw,
            nonce=snapshot.nonce,
        )

    def auth_headers(self, payload: Mapping[str, Any]) -> Dict[str, str]:
        """Sign a payload and return only the three authentication headers."""
        signed = self.sign(payload)
        return {
            name: value
            for name, value in signed.headers.items()
            if name.startswith(self.header_prefix)
        }

    def _validate(self, payload: Mapping[str, Any]) -> None:
        if not isinstance(payload, Mapping):
            raise InvalidPayloadError(f"Payload must be a mapping, got {type(payload).__name__}")

        path = payload.get(REQUEST_FIELD)
        if not isinstance(path, str) or not path.startswith("/"):
            logger.error(
                f"[{ErrorCode.INVALID_PAYLOAD}] Payload missing endpoint path | "
                f"request={path!r} | correlation_id={self.correlation_id}"
            )
            raise InvalidPayloadError(
                f"Payload must carry an endpoint path under '{REQUEST_FIELD}', got {path!r}"
            )

        if NONCE_FIELD in payload:
            raise InvalidPayloadError("Payload must not carry a nonce; it is assigned when signing")
