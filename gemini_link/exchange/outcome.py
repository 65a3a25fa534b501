# ============================================================================
# Gemini Link v0.1.0
# Request Outcomes
# ============================================================================
#
# Every API call returns exactly one Outcome:
#   - Success(value):            2xx, body decoded by the caller
#   - Failure(reason, message):  exchange-reported rejection (verbatim)
#   - TransportError(cause):     DNS / timeout / reset / TLS failure
#
# ============================================================================

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from gemini_link.errors import RemoteRejectionError, TransportFailureError


@dataclass(frozen=True)
class Success:
    """2xx response. `value` is the decoded body or a typed record."""
    value: Any
    status_code: int = 200

    ok = True

    def map(self, fn: Callable[[Any], Any]) -> "Outcome":
        return Success(fn(self.value), self.status_code)

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Failure:
    """
    Exchange-reported rejection, e.g. reason="InvalidNonce".

    Never retried automatically: replay-style rejections need a fresh
    nonce, not a resend.
    """
    reason: str
    message: str
    status_code: Optional[int] = None
    body: Any = field(default=None, repr=False)

    ok = False

    def map(self, fn: Callable[[Any], Any]) -> "Outcome":
        return self

    def unwrap(self) -> Any:
        raise RemoteRejectionError(self.reason, self.message)


@dataclass(frozen=True)
class TransportError:
    """Network-level failure; retry policy belongs to the caller."""
    cause: BaseException

    ok = False

    @property
    def message(self) -> str:
        return f"{type(self.cause).__name__}: {self.cause}"

    def map(self, fn: Callable[[Any], Any]) -> "Outcome":
        return self

    def unwrap(self) -> Any:
        raise TransportFailureError(self.message)


Outcome = Union[Success, Failure, TransportError]
