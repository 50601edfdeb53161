"""Time-based one-time passwords (RFC 6238) for two-factor login.

SHA-1, 6 digits and a 30 second step are what authenticator apps expect.
"""

import base64
import hashlib
import hmac
import os
import time
from urllib.parse import quote, urlencode

from helpdesk.core.logging import get_logger

logger = get_logger("totp")

INTERVAL = 30
DIGITS = 6
# Accept one step either side of "now" for clock drift
WINDOW = 1


def generate_secret() -> str:
    """Return a new base32 shared secret (160 bits, unpadded)."""
    return base64.b32encode(os.urandom(20)).decode("ascii").rstrip("=")


def generate_code(secret: str, timestamp: float | None = None) -> str:
    if timestamp is None:
        timestamp = time.time()
    padded = secret.upper() + "=" * ((8 - len(secret) % 8) % 8)
    try:
        key = base64.b32decode(padded, casefold=True)
    except ValueError:
        logger.warning("Invalid TOTP secret encountered")
        return ""
    counter = int(timestamp // INTERVAL).to_bytes(8, "big")
    digest = hmac.new(key, counter, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code_int = (int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF) % (10**DIGITS)
    return str(code_int).zfill(DIGITS)


def verify_code(secret: str | None, code: str | None, timestamp: float | None = None) -> bool:
    if not secret or not code:
        return False
    code = code.strip()
    if len(code) != DIGITS or not code.isdigit():
        return False
    if timestamp is None:
        timestamp = time.time()
    for step in range(-WINDOW, WINDOW + 1):
        generated = generate_code(secret, timestamp + step * INTERVAL)
        if generated and hmac.compare_digest(generated, code):
            return True
    return False


def provisioning_uri(secret: str, account_name: str, issuer: str) -> str:
    """Build the otpauth:// URI that authenticator apps scan as a QR code."""
    label = quote(f"{issuer}:{account_name}")
    query = urlencode({"secret": secret, "issuer": issuer, "digits": DIGITS, "period": INTERVAL})
    return f"otpauth://totp/{label}?{query}"
