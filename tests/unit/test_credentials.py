"""
============================================================================
Unit Tests for CredentialStore and NonceLedger
============================================================================

This module tests the nonce owner:
- Pre-increment nonce acquisition
- Missing / malformed credentials
- Ledger persistence and restart recovery
- Block reservation and failed writes

============================================================================
"""

import json
import os
import sys
from unittest.mock import Mock, patch

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from gemini_link.errors import ConfigurationError, ErrorCode, NoCredentialError
from gemini_link.exchange.credentials import (
    Credential,
    CredentialStore,
    NonceLedger,
    SigningSnapshot,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def credential() -> Credential:
    return Credential(api_key="account-abcd1234wxyz", api_secret=b"secret", nonce=1)


@pytest.fixture
def store(credential: Credential) -> CredentialStore:
    return CredentialStore(credential, correlation_id="test-credentials")


@pytest.fixture
def ledger_path(tmp_path) -> str:
    return str(tmp_path / "nonce.json")


# =============================================================================
# CredentialStore
# =============================================================================

class TestCredentialStore:

    def test_acquire_returns_pre_increment_value(self, store: CredentialStore):
        first = store.acquire_nonce()
        second = store.acquire_nonce()

        assert isinstance(first, SigningSnapshot)
        assert first.nonce == 1
        assert second.nonce == 2
        assert store.peek_nonce() == 3

    def test_snapshot_carries_credential(self, store: CredentialStore):
        snapshot = store.acquire_nonce()

        assert snapshot.api_key == "account-abcd1234wxyz"
        assert snapshot.api_secret == b"secret"
        assert snapshot.base_url == "https://api.gemini.com"

    def test_empty_store_raises_no_credential(self):
        store = CredentialStore()

        with pytest.raises(NoCredentialError) as exc_info:
            store.acquire_nonce()

        assert exc_info.value.error_code == ErrorCode.NO_CREDENTIAL
        assert not store.is_loaded

    def test_unload_then_acquire_raises(self, store: CredentialStore):
        store.unload()

        with pytest.raises(NoCredentialError):
            store.acquire_nonce()

    def test_no_credential_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            CredentialStore().peek_nonce()

    def test_load_rejects_missing_secret(self):
        store = CredentialStore()

        with pytest.raises(ConfigurationError):
            store.load(Credential(api_key="key", api_secret=b""))

        assert not store.is_loaded

    def test_reserve_block_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            CredentialStore(reserve_block=0)

    def test_loading_does_not_mutate_caller_credential(self, credential: Credential):
        store = CredentialStore(credential)
        store.acquire_nonce()
        store.acquire_nonce()

        assert credential.nonce == 1
        assert store.peek_nonce() == 3

    def test_redacted_key(self, store: CredentialStore):
        assert store.redacted_key() == "acco...wxyz"
        assert Credential(api_key="short", api_secret=b"s").redacted_key() == "[REDACTED]"

    def test_secret_not_in_repr(self, credential: Credential):
        assert "secret" not in repr(credential)
        assert "secret" not in repr(SigningSnapshot("key", b"secret"))


# =============================================================================
# NonceLedger
# =============================================================================

class TestNonceLedger:

    def test_read_missing_file_returns_none(self, ledger_path: str):
        assert NonceLedger(ledger_path).read() is None

    def test_write_then_read(self, ledger_path: str):
        ledger = NonceLedger(ledger_path)
        ledger.write(42)

        assert ledger.read() == 42
        with open(ledger_path, "r", encoding="utf-8") as fh:
            assert json.load(fh) == {"nonce_high_water": 42}

    def test_write_leaves_no_temp_files(self, tmp_path, ledger_path: str):
        NonceLedger(ledger_path).write(7)

        assert os.listdir(str(tmp_path)) == ["nonce.json"]

    def test_unparseable_ledger_raises(self, ledger_path: str):
        with open(ledger_path, "w", encoding="utf-8") as fh:
            fh.write("not json")

        with pytest.raises(ConfigurationError) as exc_info:
            NonceLedger(ledger_path).read()

        assert exc_info.value.error_code == ErrorCode.NONCE_READ_FAIL

    def test_ledger_without_field_raises(self, ledger_path: str):
        with open(ledger_path, "w", encoding="utf-8") as fh:
            json.dump({"nonce": "12"}, fh)

        with pytest.raises(ConfigurationError):
            NonceLedger(ledger_path).read()

    def test_write_into_missing_directory_raises(self, tmp_path):
        ledger = NonceLedger(str(tmp_path / "missing" / "nonce.json"))

        with pytest.raises(ConfigurationError) as exc_info:
            ledger.write(1)

        assert exc_info.value.error_code == ErrorCode.NONCE_WRITE_FAIL


# =============================================================================
# Persistence Through the Store
# =============================================================================

class TestNoncePersistence:

    def test_store_resumes_above_persisted_value(self, credential: Credential, ledger_path: str):
        ledger = NonceLedger(ledger_path)
        ledger.write(100)

        store = CredentialStore(credential, ledger=ledger)

        assert store.acquire_nonce().nonce == 100

    def test_credential_nonce_wins_when_higher(self, ledger_path: str):
        ledger = NonceLedger(ledger_path)
        ledger.write(5)

        store = CredentialStore(Credential("key", b"secret", nonce=50), ledger=ledger)

        assert store.acquire_nonce().nonce == 50

    def test_high_water_written_before_nonce_is_used(self, credential: Credential, ledger_path: str):
        ledger = NonceLedger(ledger_path)
        store = CredentialStore(credential, ledger=ledger)

        snapshot = store.acquire_nonce()

        assert snapshot.nonce == 1
        assert ledger.read() == 2

    def test_restart_never_reissues_a_nonce(self, credential: Credential, ledger_path: str):
        issued = []
        store = CredentialStore(credential, ledger=NonceLedger(ledger_path))
        for _ in range(5):
            issued.append(store.acquire_nonce().nonce)

        restarted = CredentialStore(
            Credential("account-abcd1234wxyz", b"secret", nonce=1),
            ledger=NonceLedger(ledger_path),
        )

        assert restarted.acquire_nonce().nonce > max(issued)

    def test_block_reservation_writes_once_per_block(self, credential: Credential, ledger_path: str):
        original_write = NonceLedger.write

        with patch.object(NonceLedger, "write", autospec=True, side_effect=original_write) as write:
            store = CredentialStore(credential, ledger=NonceLedger(ledger_path), reserve_block=10)
            nonces = [store.acquire_nonce().nonce for _ in range(12)]

        assert nonces == list(range(1, 13))
        assert write.call_count == 2
        assert NonceLedger(ledger_path).read() == 21

    def test_restart_after_block_reservation_skips_block(self, credential: Credential, ledger_path: str):
        store = CredentialStore(credential, ledger=NonceLedger(ledger_path), reserve_block=10)
        for _ in range(3):
            store.acquire_nonce()

        restarted = CredentialStore(
            Credential("account-abcd1234wxyz", b"secret", nonce=1),
            ledger=NonceLedger(ledger_path),
            reserve_block=10,
        )

        assert restarted.acquire_nonce().nonce == 11

    def test_failed_write_leaves_counter_untouched(self, credential: Credential):
        ledger = Mock(spec=NonceLedger)
        ledger.read.return_value = None
        ledger.write.side_effect = ConfigurationError(
            "disk full", error_code=ErrorCode.NONCE_WRITE_FAIL
        )
        store = CredentialStore(credential, ledger=ledger)

        with pytest.raises(ConfigurationError):
            store.acquire_nonce()

        assert store.peek_nonce() == 1
