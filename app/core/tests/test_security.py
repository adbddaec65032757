"""Tests for tokens, passwords and pharmacy scoping."""

import pytest

from app.core.config import get_settings
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.security import (
    SecurityContext,
    create_access_token,
    decode_access_token,
    enforce_pharmacy_scope,
    hash_password,
    verify_cron_secret,
    verify_password,
)

OTHER_PHARMACY = "22222222-2222-2222-2222-222222222222"


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret")

        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_malformed_hash_never_matches(self):
        assert verify_password("s3cret", "not-a-bcrypt-hash") is False
        assert verify_password("s3cret", None) is False


class TestTokens:
    def test_round_trip(self, user_ctx):
        ctx = decode_access_token(create_access_token(user_ctx))

        assert ctx == user_ctx

    def test_expired(self, user_ctx):
        token = create_access_token(user_ctx, expires_minutes=-1)

        with pytest.raises(UnauthorizedError, match="Token expired"):
            decode_access_token(token)

    def test_tampered(self, user_ctx):
        token = create_access_token(user_ctx)

        with pytest.raises(UnauthorizedError, match="Invalid token"):
            decode_access_token(token.rsplit(".", 1)[0] + ".forged-signature")


class TestPharmacyScope:
    def test_admin_without_ids_sees_everything(self, admin_ctx):
        scope = enforce_pharmacy_scope([], admin_ctx)

        assert scope.ids == []
        assert scope.sql("s.pharmacy_id") == ""
        assert scope.params() == {}

    def test_admin_with_ids(self, admin_ctx):
        scope = enforce_pharmacy_scope([OTHER_PHARMACY], admin_ctx)

        assert scope.sql("s.pharmacy_id") == (
            "AND s.pharmacy_id = ANY(CAST(:pharmacy_ids AS uuid[]))"
        )
        assert scope.params() == {"pharmacy_ids": [OTHER_PHARMACY]}

    def test_user_is_forced_to_own_pharmacy(self, user_ctx, pharmacy_id):
        scope = enforce_pharmacy_scope([OTHER_PHARMACY], user_ctx)

        assert scope.ids == [pharmacy_id]
        assert scope.sql("s.pharmacy_id", prefix="WHERE") == (
            "WHERE s.pharmacy_id = CAST(:pharmacy_id AS uuid)"
        )
        assert scope.params() == {"pharmacy_id": pharmacy_id}

    def test_user_without_pharmacy(self):
        ctx = SecurityContext(user_id="u", role="user")

        with pytest.raises(ForbiddenError):
            enforce_pharmacy_scope([], ctx)


class TestCronSecret:
    def test_matching_secret(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "cron_secret", "abc")

        verify_cron_secret("Bearer abc")

    def test_wrong_secret(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "cron_secret", "abc")

        with pytest.raises(UnauthorizedError):
            verify_cron_secret("Bearer abd")

    def test_unconfigured_secret_rejects_everything(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "cron_secret", "")

        with pytest.raises(UnauthorizedError):
            verify_cron_secret("Bearer ")
