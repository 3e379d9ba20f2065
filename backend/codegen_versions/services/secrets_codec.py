from __future__ import annotations

import base64
import binascii
import json
import os
from collections.abc import Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from codegen_versions.errors import ConfigurationError, SecretsDecryptionError

NONCE_SIZE = 12


class SecretsCodec:
    """AES-256-GCM encryption for serialized environment bundles.

    Ciphertext is ``base64(nonce || ciphertext)`` with a fresh random nonce per
    call, so encrypting the same bundle twice never yields the same bytes.
    """

    def __init__(self, key_hex: str | None):
        if not key_hex:
            raise ConfigurationError("encryption_key is not configured")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as exc:
            raise ConfigurationError("encryption_key must be a hex string") from exc
        if len(key) != 32:
            raise ConfigurationError("encryption_key must be 32 bytes (64 hex characters)")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        try:
            raw = base64.b64decode(encrypted, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SecretsDecryptionError("Secrets bundle is not valid base64") from exc
        if len(raw) <= NONCE_SIZE:
            raise SecretsDecryptionError("Secrets bundle is truncated")
        try:
            plaintext = self._aesgcm.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except InvalidTag as exc:
            raise SecretsDecryptionError("Secrets bundle failed authentication") from exc
        return plaintext.decode("utf-8")

    def encrypt_bundle(self, secrets: Mapping[str, str]) -> str:
        return self.encrypt(json.dumps(dict(secrets)))

    def decrypt_bundle(self, encrypted: str) -> dict[str, str]:
        try:
            data = json.loads(self.decrypt(encrypted))
        except json.JSONDecodeError as exc:
            raise SecretsDecryptionError("Secrets bundle is not valid JSON") from exc
        if not isinstance(data, dict):
            raise SecretsDecryptionError("Secrets bundle is not a mapping")
        return {str(key): str(value) for key, value in data.items()}
