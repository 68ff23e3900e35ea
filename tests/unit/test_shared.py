"""Unit tests for shared helpers: crypto, tokens, generators, ip resolution, logging."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import jwt
import pytest

from shared.crypto import (
    hash_code,
    hash_password,
    hash_password_async,
    verify_password,
    verify_password_async,
)
from shared.datetime_utils import ensure_utc, utc_in, utc_now
from shared.generators import generate_otp_code, image_filename, new_id
from shared.ip_utils import get_client_ip
from shared.logging import REDACTED, redact_sensitive_fields
from shared.tokens import issue_token, verify_token


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_request(headers: dict, client_host: str = "10.0.0.1") -> MagicMock:
    request = MagicMock()
    request.headers = headers
    request.client = MagicMock()
    request.client.host = client_host
    return request


# ---------------------------------------------------------------------------
# crypto
# ---------------------------------------------------------------------------


class TestPasswordHashing:
    def test_round_trip(self):
        stored = hash_password("correct horse battery")
        assert isinstance(stored, bytes)
        assert verify_password("correct horse battery", stored)

    def test_wrong_password(self):
        assert not verify_password("nope", hash_password("correct horse battery"))

    def test_hashes_are_salted(self):
        assert hash_password("same input") != hash_password("same input")

    @pytest.mark.parametrize("stored", [None, b"", b"not-an-argon2-hash", b"\xff\xfe"])
    def test_unusable_hash_is_rejected(self, stored):
        assert verify_password("anything", stored) is False

    async def test_async_variants(self):
        stored = await hash_password_async("pw-in-a-thread")
        assert await verify_password_async("pw-in-a-thread", stored)
        assert not await verify_password_async("other", stored)


class TestHashCode:
    def test_is_sha256_digest(self):
        digest = hash_code("123456")
        assert isinstance(digest, bytes)
        assert len(digest) == 32

    def test_deterministic(self):
        assert hash_code("000111") == hash_code("000111")
        assert hash_code("000111") != hash_code("000112")


# ---------------------------------------------------------------------------
# tokens
# ---------------------------------------------------------------------------


class TestTokens:
    def test_round_trip_recovers_subject(self):
        user_id = str(uuid.uuid4())
        issued = issue_token(user_id, "s3cret", 3600)
        assert verify_token(issued.token, "s3cret") == user_id

    def test_other_secret_rejected(self):
        issued = issue_token("u1", "s3cret", 3600)
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(issued.token, "different")

    def test_registered_claims(self):
        issued = issue_token("u1", "s3cret", 600)
        claims = jwt.decode(issued.token, options={"verify_signature": False})
        assert claims["sub"] == "u1"
        assert claims["iss"] == "readmeow"
        assert claims["aud"] == ["readmeow-users"]
        assert claims["exp"] - claims["iat"] == 600
        assert claims["jti"]

    def test_expiry_matches_ttl(self):
        issued = issue_token("u1", "s3cret", 600)
        assert issued.ttl_seconds == 600
        assert abs((issued.expires_at - utc_now()).total_seconds() - 600) < 5

    def test_expired_token_rejected(self):
        issued = issue_token("u1", "s3cret", -10)
        with pytest.raises(jwt.ExpiredSignatureError):
            verify_token(issued.token, "s3cret")

    def test_missing_subject_rejected(self):
        now = int(utc_now().timestamp())
        token = jwt.encode(
            {"iat": now, "exp": now + 60, "iss": "readmeow", "aud": ["readmeow-users"]},
            "s3cret",
            algorithm="HS256",
        )
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token, "s3cret")

    def test_wrong_audience_rejected(self):
        issued = issue_token("u1", "s3cret", 60, audience="someone-else")
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(issued.token, "s3cret")


# ---------------------------------------------------------------------------
# generators
# ---------------------------------------------------------------------------


class TestGenerateOtpCode:
    def test_six_digits(self):
        code = generate_otp_code()
        assert len(code) == 6
        assert code.isdigit()

    def test_custom_length(self):
        assert len(generate_otp_code(8)) == 8


class TestIds:
    def test_new_id_is_uuid4(self):
        assert new_id().version == 4

    def test_image_filename(self):
        owner = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert image_filename(owner, 1700000000) == f"{owner}-1700000000"


# ---------------------------------------------------------------------------
# datetime
# ---------------------------------------------------------------------------


class TestDatetime:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None

    def test_utc_in(self):
        delta = utc_in(60) - utc_now()
        assert timedelta(seconds=59) < delta <= timedelta(seconds=60)

    def test_ensure_utc_naive(self):
        naive = datetime(2024, 1, 1, 12, 0)
        assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_offsets(self):
        plus_two = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(plus_two).hour == 12

    def test_ensure_utc_none(self):
        assert ensure_utc(None) is None


# ---------------------------------------------------------------------------
# ip_utils
# ---------------------------------------------------------------------------


class TestGetClientIp:
    def test_cloudflare_header_first(self):
        req = _make_request({"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "2.2.2.2"})
        assert get_client_ip(req) == "1.1.1.1"

    def test_forwarded_for_leftmost(self):
        req = _make_request({"X-Forwarded-For": "3.3.3.3, 10.0.0.2"})
        assert get_client_ip(req) == "3.3.3.3"

    def test_falls_back_to_peer(self):
        assert get_client_ip(_make_request({}, client_host="9.9.9.9")) == "9.9.9.9"

    def test_unknown_without_peer(self):
        req = _make_request({})
        req.client = None
        assert get_client_ip(req) == "unknown"


# ---------------------------------------------------------------------------
# logging
# ---------------------------------------------------------------------------


class TestRedaction:
    @pytest.mark.parametrize(
        "key",
        ["password", "new_password", "code", "token", "jwt", "cookie", "secret", "api_secret", "refresh_token"],
    )
    def test_sensitive_keys_redacted(self, key):
        event = redact_sensitive_fields(None, "info", {"event": "x", key: "value"})
        assert event[key] == REDACTED

    def test_regular_keys_untouched(self):
        event = redact_sensitive_fields(
            None, "info", {"event": "user_updated", "user_id": "u1", "error_code": "not_found"}
        )
        assert event == {"event": "user_updated", "user_id": "u1", "error_code": "not_found"}
