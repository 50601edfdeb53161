"""Tests for time-based one-time passwords."""

import base64
from urllib.parse import parse_qs, urlparse

import pytest

from helpdesk.services import totp

# RFC 6238 appendix B shared secret, base32 encoded
RFC_SECRET = base64.b32encode(b"12345678901234567890").decode()


@pytest.mark.parametrize(
    "timestamp,code",
    [
        (59, "287082"),
        (1111111109, "081804"),
        (1234567890, "005924"),
        (2000000000, "279037"),
    ],
)
def test_rfc_vectors(timestamp, code):
    assert totp.generate_code(RFC_SECRET, timestamp) == code


def test_secret_is_unpadded_base32():
    secret = totp.generate_secret()
    assert len(secret) == 32
    assert "=" not in secret
    assert base64.b32decode(secret)
    assert totp.generate_secret() != secret


def test_lowercase_secret_accepted():
    assert totp.generate_code(RFC_SECRET.lower(), 59) == "287082"


def test_verify_accepts_adjacent_steps():
    now = 1_700_000_000
    secret = totp.generate_secret()
    for offset in (-totp.INTERVAL, 0, totp.INTERVAL):
        assert totp.verify_code(secret, totp.generate_code(secret, now + offset), now)


def test_verify_rejects_codes_outside_window():
    now = 1_700_000_000
    secret = totp.generate_secret()
    stale = totp.generate_code(secret, now - 3 * totp.INTERVAL)
    fresh = totp.generate_code(secret, now)
    if stale != fresh:
        assert not totp.verify_code(secret, stale, now)


@pytest.mark.parametrize("code", [None, "", "12345", "1234567", "abcdef"])
def test_verify_rejects_malformed_codes(code):
    assert not totp.verify_code(RFC_SECRET, code, 59)


def test_verify_without_secret():
    assert not totp.verify_code(None, "287082", 59)


def test_verify_strips_whitespace():
    assert totp.verify_code(RFC_SECRET, " 287082 ", 59)


def test_invalid_secret_produces_no_code():
    assert totp.generate_code("not base32!", 59) == ""
    assert not totp.verify_code("not base32!", "000000", 59)


def test_provisioning_uri():
    uri = totp.provisioning_uri("ABCDEF", "alice@example.com", "Helpdesk")
    parsed = urlparse(uri)
    assert parsed.scheme == "otpauth"
    assert parsed.netloc == "totp"
    assert parsed.path == "/Helpdesk%3Aalice%40example.com"
    params = parse_qs(parsed.query)
    assert params["secret"] == ["ABCDEF"]
    assert params["issuer"] == ["Helpdesk"]
    assert params["digits"] == ["6"]
    assert params["period"] == ["30"]
