"""
============================================================================
Gemini Link - Configuration
============================================================================

Configuration management for the exchange client:
- Environment variable parsing with type safety (.env supported)
- Default values for optional configuration
- Validation of credentials before any signed request is attempted

ENVIRONMENT VARIABLES:
    - GEMINI_API_KEY: API key (required for private endpoints)
    - GEMINI_API_SECRET: API secret (required for private endpoints)
    - GEMINI_BASE_URL: REST base URL (default: https://api.gemini.com)
    - GEMINI_WS_URL: Stream base URL (default: wss://api.gemini.com)
    - GEMINI_NONCE_STATE_PATH: Nonce ledger file (default: unset, in-memory)
    - GEMINI_NONCE_START: First nonce when no ledger exists (default: 1)
    - GEMINI_NONCE_RESERVE_BLOCK: Nonces reserved per ledger write (default: 1)
    - GEMINI_HTTP_TIMEOUT_SECONDS: HTTP timeout (default: 30)
    - GEMINI_WS_CLOSE_TIMEOUT_SECONDS: Close handshake bound (default: 5)
    - GEMINI_SIGNATURE_ALGORITHM: sha384 | sha512 (default: sha384)

ERROR CODES:
    - GEM-CFG-001: Required configuration missing or invalid

============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, List
import logging
import os

from dotenv import load_dotenv

from gemini_link.errors import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_BASE_URL = "https://api.gemini.com"
DEFAULT_WS_URL = "wss://api.gemini.com"
DEFAULT_NONCE_START = 1
DEFAULT_NONCE_RESERVE_BLOCK = 1
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_WS_CLOSE_TIMEOUT_SECONDS = 5.0
DEFAULT_SIGNATURE_ALGORITHM = "sha384"

SUPPORTED_SIGNATURE_ALGORITHMS = ("sha384", "sha512")


# =============================================================================
# ClientConfig
# =============================================================================

@dataclass
class ClientConfig:
    """
    Exchange client configuration.

    An explicit context object: constructed once by the host and passed to
    every component that needs it. Nothing in the library reads the
    environment on its own.
    """

    api_key: str = ""
    api_secret: str = field(default="", repr=False)
    base_url: str = DEFAULT_BASE_URL
    ws_url: str = DEFAULT_WS_URL
    nonce_state_path: Optional[str] = None
    nonce_start: int = DEFAULT_NONCE_START
    nonce_reserve_block: int = DEFAULT_NONCE_RESERVE_BLOCK
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    ws_close_timeout_seconds: float = DEFAULT_WS_CLOSE_TIMEOUT_SECONDS
    signature_algorithm: str = DEFAULT_SIGNATURE_ALGORITHM

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) and bool(self.api_secret)

    def validate(self, require_credentials: bool = False) -> None:
        """
        Validate configuration completeness.

        Args:
            require_credentials: Fail if API key or secret is missing

        Raises:
            ConfigurationError: If configuration is missing or invalid
        """
        errors: List[str] = []

        if require_credentials:
            if not self.api_key:
                errors.append("GEMINI_API_KEY must be set")
            if not self.api_secret:
                errors.append("GEMINI_API_SECRET must be set")

        if not self.base_url.startswith(("http://", "https://")):
            errors.append(f"GEMINI_BASE_URL must be an http(s) URL, got: {self.base_url}")

        if not self.ws_url.startswith(("ws://", "wss://")):
            errors.append(f"GEMINI_WS_URL must be a ws(s) URL, got: {self.ws_url}")

        if self.nonce_start < 0:
            errors.append(f"GEMINI_NONCE_START must be non-negative, got: {self.nonce_start}")

        if self.nonce_reserve_block < 1:
            errors.append(
                f"GEMINI_NONCE_RESERVE_BLOCK must be at least 1, got: {self.nonce_reserve_block}"
            )

        if self.http_timeout_seconds <= 0:
            errors.append(
                f"GEMINI_HTTP_TIMEOUT_SECONDS must be positive, got: {self.http_timeout_seconds}"
            )

        if self.signature_algorithm not in SUPPORTED_SIGNATURE_ALGORITHMS:
            errors.append(
                f"GEMINI_SIGNATURE_ALGORITHM must be one of "
                f"{', '.join(SUPPORTED_SIGNATURE_ALGORITHMS)}, got: {self.signature_algorithm}"
            )

        if errors:
            error_msg = "Client configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{ErrorCode.CONFIG_MISSING}] {error_msg}")
            raise ConfigurationError(error_msg)

        logger.info(
            f"[GEM-CONFIG] Configuration validated | "
            f"base_url={self.base_url} | ws_url={self.ws_url} | "
            f"authenticated={self.has_credentials} | "
            f"nonce_persistence={self.nonce_state_path is not None}"
        )

    def build_credential_store(self, correlation_id: Optional[str] = None):
        """
        Construct a CredentialStore from this configuration.

        Raises:
            ConfigurationError: If API key or secret is missing
        """
        from gemini_link.exchange.credentials import Credential, CredentialStore, NonceLedger

        self.validate(require_credentials=True)

        ledger = NonceLedger(self.nonce_state_path) if self.nonce_state_path else None
        credential = Credential(
            api_key=self.api_key,
            api_secret=self.api_secret.encode("utf-8"),
            base_url=self.base_url.rstrip("/"),
            nonce=self.nonce_start,
        )
        return CredentialStore(
            credential,
            ledger=ledger,
            reserve_block=self.nonce_reserve_block,
            correlation_id=correlation_id,
        )

    @classmethod
    def from_environment(cls, validate: bool = True, dotenv_path: Optional[str] = None) -> "ClientConfig":
        """
        Load configuration from environment variables (and a .env file).

        Invalid numeric values fall back to defaults with a warning.
        Credentials are not required here; they are checked when a
        CredentialStore is built.
        """
        load_dotenv(dotenv_path)

        config = cls(
            api_key=os.environ.get("GEMINI_API_KEY", "").strip(),
            api_secret=os.environ.get("GEMINI_API_SECRET", "").strip(),
            base_url=os.environ.get("GEMINI_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/"),
            ws_url=os.environ.get("GEMINI_WS_URL", DEFAULT_WS_URL).strip().rstrip("/"),
            nonce_state_path=os.environ.get("GEMINI_NONCE_STATE_PATH", "").strip() or None,
            nonce_start=_env_int("GEMINI_NONCE_START", DEFAULT_NONCE_START),
            nonce_reserve_block=_env_int("GEMINI_NONCE_RESERVE_BLOCK", DEFAULT_NONCE_RESERVE_BLOCK),
            http_timeout_seconds=_env_float(
                "GEMINI_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS
            ),
            ws_close_timeout_seconds=_env_float(
                "GEMINI_WS_CLOSE_TIMEOUT_SECONDS", DEFAULT_WS_CLOSE_TIMEOUT_SECONDS
            ),
            signature_algorithm=os.environ.get(
                "GEMINI_SIGNATURE_ALGORITHM", DEFAULT_SIGNATURE_ALGORITHM
            ).strip().lower(),
        )

        logger.info(
            f"[GEM-CONFIG] Loading configuration from environment | "
            f"GEMINI_BASE_URL={config.base_url} | "
            f"GEMINI_WS_URL={config.ws_url} | "
            f"GEMINI_API_KEY={'[SET]' if config.api_key else '[UNSET]'} | "
            f"GEMINI_SIGNATURE_ALGORITHM={config.signature_algorithm}"
        )

        if validate:
            config.validate()

        return config


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"[GEM-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(f"[GEM-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


# =============================================================================
# Host-Level Accessor
# =============================================================================

_config_instance: Optional[ClientConfig] = None


def get_config(validate: bool = True) -> ClientConfig:
    """
    Load the host's configuration once from the environment.

    For host programs only; library components take a ClientConfig
    argument instead of calling this.
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = ClientConfig.from_environment(validate=validate)

    return _config_instance


def reset_config() -> None:
    """Clear the cached host configuration (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[GEM-CONFIG] Configuration instance reset")
