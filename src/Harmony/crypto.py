"""Ed25519 request signature verification for the interactions webhook."""

import structlog
from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

log = structlog.get_logger()


def verify_ed25519(public_key_hex: str, timestamp: str, body: bytes, signature_hex: str) -> bool:
    """Return True when ``signature_hex`` signs ``timestamp + body``."""
    if not public_key_hex:
        log.warning("crypto.missing_public_key")
        return False
    try:
        key = VerifyKey(bytes.fromhex(public_key_hex))
        key.verify(timestamp.encode() + body, bytes.fromhex(signature_hex))
    except (BadSignatureError, ValueError, TypeError):
        return False
    return True
