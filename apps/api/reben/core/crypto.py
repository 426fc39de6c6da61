import base64
import hashlib
import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from fastapi import HTTPException, status

from reben.core.settings import get_settings


def _get_fernet() -> Fernet:
    secrets_key = get_settings().REBEN_SECRETS_KEY
    if not secrets_key or not secrets_key.strip():
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Secret storage is not configured.",
        )

    digest = hashlib.sha256(secrets_key.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def _undecryptable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def encrypt_text(value: str) -> str:
    return _get_fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_text(ciphertext: str) -> str:
    try:
        return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise _undecryptable("Stored secret cannot be decrypted.") from exc


def encrypt_json(obj: dict[str, Any]) -> str:
    return encrypt_text(json.dumps(obj, separators=(",", ":"), ensure_ascii=True))


def decrypt_json(ciphertext: str) -> dict[str, Any]:
    plaintext = decrypt_text(ciphertext)
    try:
        payload = json.loads(plaintext)
    except json.JSONDecodeError as exc:
        raise _undecryptable("Stored secret is invalid.") from exc

    if not isinstance(payload, dict):
        raise _undecryptable("Stored secret is invalid.")
    return payload
