from __future__ import annotations

import base64
import hashlib
import secrets
import string

# RFC 7636 unreserved characters.
UNRESERVED_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-._~"


def generate_verifier(length: int) -> str:
    if length < 0:
        raise ValueError("length must be non-negative.")
    return "".join(secrets.choice(UNRESERVED_ALPHABET) for _ in range(length))


def derive_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
