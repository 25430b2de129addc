import base64
import os
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

VERSION_HEADER = b"v1"
NONCE_SIZE = 12


class FieldCipher:
    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError(
                f"Encryption key must be 32 bytes for AES-256. Got {len(key)} bytes."
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_b64(cls, key_b64: Optional[str]) -> "FieldCipher":
        """Build from a base64 key, or a fresh one when none is configured.

        Checkpoints live in memory only, so a per-process key is enough.
        """
        if not key_b64:
            return cls(AESGCM.generate_key(bit_length=256))
        return cls(base64.b64decode(key_b64))

    @staticmethod
    def should_encrypt(key: str, encrypt_keys: frozenset) -> bool:
        return key in encrypt_keys

    def encrypt_bytes(self, plaintext: bytes, aad: bytes) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ct = self._aesgcm.encrypt(nonce, plaintext, aad)
        payload = VERSION_HEADER + nonce + ct
        return base64.b64encode(payload).decode("utf-8")

    def decrypt_bytes(self, payload_b64: str, aad: bytes) -> bytes:
        raw = base64.b64decode(payload_b64.encode("utf-8"))
        if raw[: len(VERSION_HEADER)] != VERSION_HEADER:
            raise ValueError("Not encrypted with expected format/version header")
        nonce = raw[len(VERSION_HEADER) : len(VERSION_HEADER) + NONCE_SIZE]
        ct = raw[len(VERSION_HEADER) + NONCE_SIZE :]
        return self._aesgcm.decrypt(nonce, ct, aad)
