"""AES-256-GCM sealing for Google credentials at rest.

Sealed blobs are ``version || nonce || ciphertext+tag``. The ``context`` string is bound
as associated data so a blob copied onto another row fails to open.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from crm_api.core.config import get_settings

_FORMAT_V1 = b"\x01"
_NONCE_BYTES = 12


class EncryptionKeyError(RuntimeError):
    pass


class SealedValueError(ValueError):
    pass


def _cipher() -> AESGCM:
    encoded = get_settings().ENCRYPTION_KEY_BASE64
    try:
        key = base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        raise EncryptionKeyError("ENCRYPTION_KEY_BASE64 is not valid base64") from e
    if len(key) != 32:
        raise EncryptionKeyError("ENCRYPTION_KEY_BASE64 must decode to exactly 32 bytes")
    return AESGCM(key)


def seal(plaintext: str, *, context: str) -> bytes:
    nonce = os.urandom(_NONCE_BYTES)
    sealed = _cipher().encrypt(nonce, plaintext.encode("utf-8"), context.encode("utf-8"))
    return _FORMAT_V1 + nonce + sealed


def open_sealed(blob: bytes, *, context: str) -> str:
    header = len(_FORMAT_V1) + _NONCE_BYTES
    if len(blob) <= header or blob[:1] != _FORMAT_V1:
        raise SealedValueError("Unrecognized sealed value")
    nonce, sealed = blob[1:header], blob[header:]
    try:
        plain = _cipher().decrypt(nonce, sealed, context.encode("utf-8"))
    except InvalidTag as e:
        raise SealedValueError("Sealed value failed authentication") from e
    return plain.decode("utf-8")
