from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

from reben.core.errors import PayloadSerializationError

SIGNATURE_PREFIX = "sha256="


def canonical_json(payload: Any) -> bytes:
    """Serialize with sorted keys and no whitespace so equal payloads sign equally."""
    try:
        serialized = json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise PayloadSerializationError(f"Payload is not JSON-serializable: {exc}") from exc
    return serialized.encode("utf-8")


def sign_bytes(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def sign(secret: str, payload: Any) -> str:
    return sign_bytes(secret, canonical_json(payload))


def signature_header(secret: str, payload: Any) -> str:
    return f"{SIGNATURE_PREFIX}{sign(secret, payload)}"


def verify_signature(secret: str, body: bytes, header_value: str | None) -> bool:
    if not header_value:
        return False
    candidate = header_value.strip()
    if candidate.startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX) :]
    expected = sign_bytes(secret, body)
    return hmac.compare_digest(expected, candidate.lower())
