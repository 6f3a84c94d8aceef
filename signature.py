# signature.py

import hashlib
import hmac
import logging
import re

logger = logging.getLogger(__name__)

BLOCK_SIZE = 64
SIGNATURE_PREFIX = "sha256="
_HEX_DIGEST = re.compile(r"[0-9a-f]{64}")


def compute(key: bytes, message: bytes) -> bytes:
    """
    Compute the HMAC-SHA256 of `message` keyed with `key`.

    Keys longer than the 64-byte block are hashed first, shorter keys are
    zero-padded, as in RFC 2104. Returns the raw 32-byte digest.
    """
    return hmac.new(key, msg=message, digestmod=hashlib.sha256).digest()


class Signature:
    """A parsed `X-Hub-Signature-256` header value."""

    def __init__(self, hexdigest: str):
        self.hexdigest = hexdigest

    @classmethod
    def parse(cls, header_value: str) -> "Signature":
        if not header_value or not header_value.startswith(SIGNATURE_PREFIX):
            raise ValueError("Signature must start with 'sha256='.")
        hexdigest = header_value[len(SIGNATURE_PREFIX):]
        if not _HEX_DIGEST.fullmatch(hexdigest):
            raise ValueError("Signature must be 64 lowercase hexadecimal characters.")
        return cls(hexdigest)

    def matches(self, digest: bytes) -> bool:
        return hmac.compare_digest(self.hexdigest, digest.hex())

    def __eq__(self, other):
        if isinstance(other, (bytes, bytearray)):
            return self.matches(bytes(other))
        if isinstance(other, Signature):
            return hmac.compare_digest(self.hexdigest, other.hexdigest)
        return NotImplemented

    def __hash__(self):
        return hash(self.hexdigest)

    def __str__(self):
        return f"{SIGNATURE_PREFIX}{self.hexdigest}"

    def __repr__(self):
        return f"Signature({self.hexdigest[:8]}...)"


def sign(key: bytes, message: bytes) -> str:
    """Return the header value a sender would attach for `message`."""
    return f"{SIGNATURE_PREFIX}{compute(key, message).hex()}"


def verify(header_value: str, key: bytes, message: bytes) -> bool:
    try:
        signature = Signature.parse(header_value)
    except ValueError as e:
        logger.warning(f"Invalid signature format: {e}")
        return False
    return signature.matches(compute(key, message))
