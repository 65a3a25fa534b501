# ============================================================================
# Gemini Link v0.1.0
# HTTP Gateway - Request Dispatch and Outcome Classification
# ============================================================================
#
# Purpose: Sends signed or anonymous requests and classifies the result
#
# MANDATE:
#   - No retries at this layer (retry policy is a caller concern)
#   - Never raises for request-local failures; returns an Outcome
#   - A SignedRequest is sent at most once
#
# Classification:
#   - 2xx                          -> Success(decoded JSON)
#   - non-2xx with error envelope  -> Failure(reason, message)
#   - non-2xx without envelope     -> Failure("HttpError", status text)
#   - network failure              -> TransportError(cause)
#
# Error Codes:
#   - GEM-HTTP-001: Remote rejection
#   - GEM-HTTP-002: Transport failure
#   - GEM-HTTP-003: Undecodable response body
#
# ============================================================================

import logging
from typing import Any, Dict, Mapping, Optional

import requests
from requests.exceptions import RequestException

from gemini_link.errors import ErrorCode, InvalidPayloadError
from gemini_link.exchange.hmac_signer import SignedRequest
from gemini_link.exchange.outcome import Failure, Outcome, Success, TransportError

logger = logging.getLogger(__name__)


INVALID_RESPONSE_REASON = "InvalidResponse"
HTTP_ERROR_REASON = "HttpError"


class HttpGateway:
    """
    Thin HTTP layer over a requests.Session.

    Calls are independent and may run concurrently; the only shared state
    is the session's connection pool.

    Example Usage:
        with HttpGateway("https://api.gemini.com") as gateway:
            outcome = gateway.get("/v1/symbols")
            if outcome.ok:
                print(outcome.value)
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str = "https://api.gemini.com",
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        correlation_id: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.correlation_id = correlation_id
        self._session = session or requests.Session()

        logger.info(
            f"[GEM-HTTP] Gateway initialized | base_url={self.base_url} | "
            f"timeout={timeout}s | correlation_id={correlation_id}"
        )

    # ========================================================================
    # Dispatch
    # ========================================================================

    def send(self, signed: SignedRequest) -> Outcome:
        """
        Send a signed request (POST with empty body).

        Raises:
            InvalidPayloadError: If the descriptor was already sent
        """
        if signed.sent:
            raise InvalidPayloadError(
                f"Signed request with nonce {signed.nonce} was already sent; sign a new one"
            )
        signed.sent = True

        return self._dispatch(
            signed.method,
            signed.url,
            headers=signed.headers,
            data=signed.body,
        )

    def get(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Outcome:
        """Send an unauthenticated GET to a public endpoint."""
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        return self._dispatch("GET", url, headers=headers, params=params)

    def _dispatch(self, method: str, url: str, **kwargs) -> Outcome:
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except RequestException as e:
            logger.warning(
                f"[{ErrorCode.TRANSPORT_FAIL}] Transport failure | "
                f"method={method} | url={url} | error={type(e).__name__}: {e} | "
                f"correlation_id={self.correlation_id}"
            )
            return TransportError(e)

        return self.classify(response)

    # ========================================================================
    # Classification
    # ========================================================================

    def classify(self, response: requests.Response) -> Outcome:
        """Map an HTTP response to Success or Failure."""
        status = response.status_code

        if 200 <= status < 300:
            try:
                return Success(response.json(), status)
            except ValueError as e:
                logger.error(
                    f"[{ErrorCode.INVALID_RESPONSE}] Undecodable response body | "
                    f"url={response.url} | status={status} | error={e} | "
                    f"correlation_id={self.correlation_id}"
                )
                return Failure(
                    INVALID_RESPONSE_REASON,
                    f"Response body is not valid JSON: {e}",
                    status_code=status,
                    body=response.text,
                )

        envelope = _error_envelope(response)
        if envelope is not None:
            reason, message = envelope
        else:
            reason = HTTP_ERROR_REASON
            message = f"HTTP {status} {response.reason or ''}".strip()

        logger.warning(
            f"[{ErrorCode.REMOTE_REJECTION}] Remote rejection | "
            f"url={response.url} | status={status} | reason={reason} | "
            f"correlation_id={self.correlation_id}"
        )
        return Failure(reason, message, status_code=status, body=response.text)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()
        logger.debug(f"[GEM-HTTP] Gateway closed | correlation_id={self.correlation_id}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _error_envelope(response: requests.Response) -> Optional[tuple]:
    """Extract (reason, message) from {"result": "error", ...} or None."""
    try:
        data = response.json()
    except ValueError:
        return None

    if not isinstance(data, dict) or "reason" not in data:
        return None
    if data.get("result", "error") != "error":
        return None

    return str(data["reason"]), str(data.get("message", ""))
