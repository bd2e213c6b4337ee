"""
Signature for the redirect gateway.

canonical = "key1:value1;key2:value2;..." over fields sorted by key (signature excluded)
signature = sha256(canonical + ";" + secret), lowercase hex
"""
import hashlib
import hmac
from collections.abc import Mapping
from typing import Any

SIGNATURE_FIELD = "signature"
DIGEST = "sha256"


def canonical_string(fields: Mapping[str, Any]) -> str:
    return ";".join(
        f"{key}:{fields[key]}"
        for key in sorted(fields)
        if key != SIGNATURE_FIELD and fields[key] is not None
    )


def sign(fields: Mapping[str, Any], secret: str) -> str:
    payload = f"{canonical_string(fields)};{secret}"
    return hashlib.new(DIGEST, payload.encode("utf-8")).hexdigest()


def verify(fields: Mapping[str, Any], secret: str) -> bool:
    provided = str(fields.get(SIGNATURE_FIELD) or "").lower()
    if not provided or not secret:
        return False
    return hmac.compare_digest(provided, sign(fields, secret))
