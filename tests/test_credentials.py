"""Unit tests for auth/credentials.py and the login path in auth/tokens.py.

Covers:
- Stored-form detection from the "$2" prefix (bcrypt vs legacy base64)
- bcrypt verification, malformed hashes, empty stored values
- Legacy base64 verification and the legacy_credentials_enabled switch
- authenticate_user(): unknown email still runs bcrypt, inactive accounts fail
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from auth.credentials import (
    encode_legacy,
    hash_password,
    parse_credential,
    serialize_credential,
    verify,
    verify_credential,
)
from auth.models import HashedCredential, LegacyEncodedCredential, User
from auth.store import UserStore
from auth.tokens import authenticate_user
from core.config import get_settings


@pytest.fixture(scope="module")
def bcrypt_hash() -> str:
    return hash_password("s3cret-pass")


@pytest.fixture
def legacy_disabled():
    settings = get_settings()
    previous = settings.legacy_credentials_enabled
    settings.legacy_credentials_enabled = False
    yield
    settings.legacy_credentials_enabled = previous


class TestParseCredential:
    def test_bcrypt_prefix(self, bcrypt_hash) -> None:
        assert isinstance(parse_credential(bcrypt_hash), HashedCredential)

    @pytest.mark.parametrize("prefix", ["$2a$", "$2b$", "$2y$"])
    def test_all_bcrypt_variants(self, prefix) -> None:
        assert isinstance(parse_credential(prefix + "12$abc"), HashedCredential)

    def test_anything_else_is_legacy(self) -> None:
        assert isinstance(parse_credential(encode_legacy("pw")), LegacyEncodedCredential)

    @pytest.mark.parametrize("stored", [None, ""])
    def test_empty_is_none(self, stored) -> None:
        assert parse_credential(stored) is None

    def test_serialize_round_trips_stored_text(self, bcrypt_hash) -> None:
        assert serialize_credential(parse_credential(bcrypt_hash)) == bcrypt_hash
        assert serialize_credential(None) is None


class TestVerify:
    def test_bcrypt_match(self, bcrypt_hash) -> None:
        assert verify(bcrypt_hash, "s3cret-pass") is True

    def test_bcrypt_mismatch(self, bcrypt_hash) -> None:
        assert verify(bcrypt_hash, "s3cret-pasS") is False

    def test_malformed_bcrypt_is_false_not_error(self) -> None:
        assert verify("$2b$not-a-real-hash", "anything") is False

    def test_legacy_match(self) -> None:
        assert verify(encode_legacy("Password123!"), "Password123!") is True

    def test_legacy_mismatch(self) -> None:
        assert verify(encode_legacy("Password123!"), "password123!") is False

    def test_legacy_known_value(self) -> None:
        """base64("secret") is the form the demo seed writes."""
        assert verify("c2VjcmV0", "secret") is True

    def test_legacy_unicode(self) -> None:
        assert verify(encode_legacy("pässwörd"), "pässwörd") is True

    @pytest.mark.parametrize("stored", [None, ""])
    def test_no_stored_credential(self, stored) -> None:
        assert verify(stored, "") is False
        assert verify(stored, "anything") is False

    def test_stored_hash_as_password_fails(self, bcrypt_hash) -> None:
        assert verify(bcrypt_hash, bcrypt_hash) is False

    def test_legacy_disabled(self, legacy_disabled) -> None:
        assert verify(encode_legacy("Password123!"), "Password123!") is False

    def test_legacy_success_logged(self, caplog) -> None:
        with caplog.at_level("WARNING", logger="kairo.auth.credentials"):
            verify_credential(LegacyEncodedCredential(b"c2VjcmV0"), "secret")
        assert any("legacy" in r.getMessage() for r in caplog.records)

    def test_unknown_variant_is_false(self) -> None:
        assert verify_credential("plain-string", "plain-string") is False


class TestAuthenticateUser:
    @pytest.fixture(scope="class")
    def store(self) -> UserStore:
        s = UserStore("sqlite:///:memory:")
        s.create_user(User(email="bcrypt@example.org", role="GP"), password=hash_password("right-password"))
        s.create_user(User(email="legacy@example.org", role="GP"), password=encode_legacy("right-password"))
        s.create_user(User(email="nopass@example.org", role="GP"))
        s.create_user(
            User(email="off@example.org", role="GP", is_active=False), password=hash_password("right-password")
        )
        yield s
        s.close()

    def test_bcrypt_user(self, store) -> None:
        user = authenticate_user(store, "bcrypt@example.org", "right-password")
        assert user is not None and user.email == "bcrypt@example.org"

    def test_legacy_user(self, store) -> None:
        assert authenticate_user(store, "legacy@example.org", "right-password") is not None

    def test_wrong_password(self, store) -> None:
        assert authenticate_user(store, "bcrypt@example.org", "wrong") is None

    def test_inactive_user(self, store) -> None:
        assert authenticate_user(store, "off@example.org", "right-password") is None

    def test_unknown_email_still_runs_bcrypt(self, store) -> None:
        with patch("auth.tokens.verify_credential", return_value=False) as check:
            assert authenticate_user(store, "ghost@example.org", "whatever") is None
        check.assert_called_once()
        assert isinstance(check.call_args.args[0], HashedCredential)

    def test_account_without_password_runs_bcrypt(self, store) -> None:
        with patch("auth.tokens.verify_credential", return_value=False) as check:
            assert authenticate_user(store, "nopass@example.org", "") is None
        check.assert_called_once()
