"""Encryption at rest for daemon credentials."""

import hashlib
import secrets
import string
from typing import Protocol

from joserfc import jwe
from joserfc.jwk import OctKey

from .config import settings

_ALPHABET = string.ascii_letters + string.digits


class TokenCodec(Protocol):
    def encrypt(self, value: str) -> str: ...

    def decrypt(self, value: str) -> str: ...


class JWETokenCodec:
    """Compact JWE (direct key agreement, AES-256-GCM) keyed from the app key."""

    _protected = {"alg": "dir", "enc": "A256GCM"}
    _algorithms = ["dir", "A256GCM"]

    def __init__(self, app_key: str):
        self._key = OctKey.import_key(hashlib.sha256(app_key.encode()).digest())

    def encrypt(self, value: str) -> str:
        return jwe.encrypt_compact(
            self._protected, value.encode(), self._key, algorithms=self._algorithms
        )

    def decrypt(self, value: str) -> str:
        obj = jwe.decrypt_compact(value, self._key, algorithms=self._algorithms)
        assert obj.plaintext is not None
        return obj.plaintext.decode()


def random_string(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def get_token_codec() -> TokenCodec:
    return JWETokenCodec(settings.app_key)
