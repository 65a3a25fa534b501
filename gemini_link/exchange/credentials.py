# ============================================================================
# Gemini Link v0.1.0
# Credential Store - Nonce Ownership
# ============================================================================
#
# Purpose: Holds the API key pair and owns the nonce counter
#
# MANDATE:
#   - Every signed request consumes exactly one nonce, never reused
#   - Nonce increment-and-read is atomic (mutex lock)
#   - Issued nonces are persisted so a restart resumes above them
#   - API secret NEVER appears in logs or reprs
#
# Error Codes:
#   - GEM-SIG-001: No credential loaded
#   - GEM-NONCE-001: Nonce ledger write failed
#   - GEM-NONCE-002: Nonce ledger unreadable
#
# ============================================================================

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field, replace
from typing import Optional

from gemini_link.errors import ConfigurationError, ErrorCode, NoCredentialError

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Credential:
    """
    API key pair with its nonce counter.

    `nonce` is the next value to hand out. It only ever grows.
    """
    api_key: str
    api_secret: bytes = field(repr=False)
    base_url: str = "https://api.gemini.com"
    nonce: int = 1

    def redacted_key(self) -> str:
        """Return first and last 4 characters of the API key for logging."""
        if len(self.api_key) > 8:
            return f"{self.api_key[:4]}...{self.api_key[-4:]}"
        return "[REDACTED]"


@dataclass(frozen=True)
class SigningSnapshot:
    """Everything one signing operation needs, including its consumed nonce."""
    api_key: str
    api_secret: bytes = field(repr=False)
    base_url: str = ""
    nonce: int = 0


# ============================================================================
# Nonce Ledger
# ============================================================================

class NonceLedger:
    """
    JSON file recording the nonce high-water mark for one key.

    The stored value is the first nonce that has NOT been handed out.
    Writes are atomic: temp file, flush, fsync, rename.
    """

    FIELD = "nonce_high_water"

    def __init__(self, path: str):
        self.path = path

    def read(self) -> Optional[int]:
        """
        Return the persisted high-water mark, or None if no ledger exists.

        Raises:
            ConfigurationError: If the ledger exists but cannot be parsed
        """
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(f"[{ErrorCode.NONCE_READ_FAIL}] Nonce ledger unreadable | path={self.path} | error={e}")
            raise ConfigurationError(
                f"Nonce ledger {self.path} is unreadable: {e}",
                error_code=ErrorCode.NONCE_READ_FAIL,
            )

        value = data.get(self.FIELD) if isinstance(data, dict) else None
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigurationError(
                f"Nonce ledger {self.path} has no valid '{self.FIELD}' field",
                error_code=ErrorCode.NONCE_READ_FAIL,
            )
        return value

    def write(self, high_water: int) -> None:
        """
        Persist the high-water mark atomically.

        Raises:
            ConfigurationError: If the ledger cannot be written
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".nonce-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump({self.FIELD: high_water}, fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(
                f"[{ErrorCode.NONCE_WRITE_FAIL}] Nonce ledger write failed | "
                f"path={self.path} | error={e}"
            )
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise ConfigurationError(
                f"Nonce ledger {self.path} could not be written: {e}",
                error_code=ErrorCode.NONCE_WRITE_FAIL,
            )


# ============================================================================
# Credential Store
# ============================================================================

class CredentialStore:
    """
    Owner of one Credential and its nonce counter.

    Thread Safety: Mutex lock around load/unload/acquire_nonce
    Persistence: Optional NonceLedger; nonces are reserved in blocks of
                 `reserve_block` so the ledger is written once per block.

    Example Usage:
        store = CredentialStore(Credential("key", b"secret"))
        snapshot = store.acquire_nonce()   # snapshot.nonce == 1
        snapshot = store.acquire_nonce()   # snapshot.nonce == 2
    """

    def __init__(
        self,
        credential: Optional[Credential] = None,
        ledger: Optional[NonceLedger] = None,
        reserve_block: int = 1,
        correlation_id: Optional[str] = None,
    ):
        if reserve_block < 1:
            raise ConfigurationError(f"reserve_block must be at least 1, got: {reserve_block}")

        self.correlation_id = correlation_id
        self._ledger = ledger
        self._reserve_block = reserve_block
        self._credential = None  # type: Optional[Credential]
        self._reserved_until = 0

        # Only state shared across concurrent signers
        self._lock = threading.Lock()

        if credential is not None:
            self.load(credential)

    # ------------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------------

    def load(self, credential: Credential) -> None:
        """
        Load a credential, resuming above any persisted nonce.

        Raises:
            ConfigurationError: If the credential is malformed or the
                                ledger is unreadable
        """
        if not credential.api_key or not credential.api_secret:
            raise ConfigurationError("Credential requires both an API key and an API secret")

        nonce = credential.nonce
        if self._ledger is not None:
            persisted = self._ledger.read()
            if persisted is not None and persisted > nonce:
                nonce = persisted

        with self._lock:
            self._credential = replace(credential, nonce=nonce)
            self._reserved_until = nonce

        logger.info(
            f"[GEM-CRED] Credential loaded | "
            f"api_key={credential.redacted_key()} | next_nonce={nonce} | "
            f"persisted={self._ledger is not None} | correlation_id={self.correlation_id}"
        )

    def unload(self) -> None:
        with self._lock:
            self._credential = None
            self._reserved_until = 0
        logger.info(f"[GEM-CRED] Credential unloaded | correlation_id={self.correlation_id}")

    @property
    def is_loaded(self) -> bool:
        return self._credential is not None

    @property
    def base_url(self) -> str:
        return self._require().base_url

    def redacted_key(self) -> str:
        return self._require().redacted_key()

    def peek_nonce(self) -> int:
        """Return the next nonce without consuming it."""
        with self._lock:
            return self._require().nonce

    # ------------------------------------------------------------------------
    # Nonce Acquisition
    # ------------------------------------------------------------------------

    def acquire_nonce(self) -> SigningSnapshot:
        """
        Atomically consume the next nonce.

        Returns the pre-increment value inside a SigningSnapshot. When a
        ledger is configured and the reserved block is exhausted, the new
        high-water mark is written BEFORE the nonce is handed out; a failed
        write leaves the counter untouched.

        Raises:
            NoCredentialError: If no credential is loaded
            ConfigurationError: If the ledger cannot be written
        """
        with self._lock:
            credential = self._require()
            nonce = credential.nonce

            if self._ledger is not None and nonce + 1 > self._reserved_until:
                high_water = nonce + self._reserve_block
                self._ledger.write(high_water)
                self._reserved_until = high_water

            credential.nonce = nonce + 1

            return SigningSnapshot(
                api_key=credential.api_key,
                api_secret=credential.api_secret,
                base_url=credential.base_url,
                nonce=nonce,
            )

    def _require(self) -> Credential:
        if self._credential is None:
            logger.error(
                f"[{ErrorCode.NO_CREDENTIAL}] No credential loaded | "
                f"correlation_id={self.correlation_id}"
            )
            raise NoCredentialError("No API credential loaded")
        return self._credential
