"""
Tests for stored credential resolution.

============================================================
PURPOSE
============================================================
Verify encrypted and legacy credentials resolve correctly and
that unusable values raise CredentialError.

TEST CATEGORIES:
1. Classification
2. Encrypted credentials
3. Legacy credentials
============================================================
"""

from unittest.mock import MagicMock

import pytest

from broker_sync.credentials import (
    EncryptedCredentials,
    LegacyCredentials,
    StoredCredentials,
    resolve_credentials,
)
from broker_sync.types import CredentialError


# ============================================================
# CLASSIFICATION TESTS
# ============================================================

class TestClassification:
    """Tests for StoredCredentials.from_stored."""

    def test_string_is_encrypted(self):
        assert isinstance(StoredCredentials.from_stored("cipher"), EncryptedCredentials)

    def test_mapping_is_legacy(self):
        assert isinstance(StoredCredentials.from_stored({"apiKey": "k"}), LegacyCredentials)

    def test_already_classified_is_returned(self):
        stored = EncryptedCredentials("cipher")
        assert StoredCredentials.from_stored(stored) is stored

    @pytest.mark.parametrize("value", [None, 42, ["a", "b"], "", "   "])
    def test_unusable_values_raise(self, value):
        with pytest.raises(CredentialError):
            StoredCredentials.from_stored(value)


# ============================================================
# ENCRYPTED TESTS
# ============================================================

class TestEncryptedCredentials:
    """Tests for encrypted credential resolution."""

    def test_decrypt_is_called(self):
        decrypt = MagicMock(return_value={"apiKey": "k", "secretKey": "s"})

        resolved = resolve_credentials("cipher", decrypt)

        decrypt.assert_called_once_with("cipher")
        assert resolved == {"apiKey": "k", "secretKey": "s"}

    def test_decrypt_failure_becomes_credential_error(self):
        decrypt = MagicMock(side_effect=ValueError("bad padding"))

        with pytest.raises(CredentialError) as exc_info:
            resolve_credentials("cipher", decrypt)

        assert "bad padding" in exc_info.value.message
        assert exc_info.value.code == "INVALID_CREDENTIALS"

    def test_credential_error_passes_through(self):
        decrypt = MagicMock(side_effect=CredentialError("key rotated"))

        with pytest.raises(CredentialError, match="key rotated"):
            resolve_credentials("cipher", decrypt)

    def test_non_mapping_result_rejected(self):
        with pytest.raises(CredentialError):
            resolve_credentials("cipher", lambda stored: "plain text")

    def test_repr_hides_ciphertext(self):
        assert "secret-cipher" not in repr(EncryptedCredentials("secret-cipher"))


# ============================================================
# LEGACY TESTS
# ============================================================

class TestLegacyCredentials:
    """Tests for plain-object credentials."""

    def test_used_as_is(self):
        decrypt = MagicMock()

        resolved = resolve_credentials({"apiKey": "k", "secretKey": "s"}, decrypt)

        assert resolved == {"apiKey": "k", "secretKey": "s"}
        decrypt.assert_not_called()

    def test_resolved_copy_is_independent(self):
        stored = {"apiKey": "k"}
        resolved = resolve_credentials(stored, MagicMock())
        resolved["apiKey"] = "changed"
        assert stored["apiKey"] == "k"

    def test_repr_lists_keys_only(self):
        text = repr(LegacyCredentials({"apiKey": "k", "secretKey": "topsecret"}))
        assert "topsecret" not in text
        assert "secretKey" in text
