# dbchat/crypto.py
"""
Reversible encryption for credential material sent by the UI.

The ciphertext is AES-CBC (PKCS7 padding) followed by an HMAC-SHA256 tag over
IV + ciphertext, base64 encoded as one token. Output is deterministic for a
given key provider, so the UI and the API only need to share the key and IV.
"""
import base64
import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .config import settings
from .errors import DecryptionError

TAG_SIZE = 32
BLOCK_BITS = 128


class StaticKeyProvider:
    """Fixed key + IV pair, e.g. loaded from configuration at startup."""

    def __init__(self, key: bytes, iv: bytes):
        if len(key) not in (16, 24, 32):
            raise ValueError("AES key must be 16, 24 or 32 bytes")
        if len(iv) != 16:
            raise ValueError("AES IV must be 16 bytes")
        self._key = key
        self._iv = iv

    @classmethod
    def from_base64(cls, key_b64: str, iv_b64: str) -> "StaticKeyProvider":
        return cls(base64.b64decode(key_b64), base64.b64decode(iv_b64))

    def key(self) -> bytes:
        return self._key

    def iv(self) -> bytes:
        return self._iv


class SecretCodec:
    def __init__(self, key_provider):
        self.key_provider = key_provider

    def _mac_key(self) -> bytes:
        return HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=b"dbchat secret codec mac",
        ).derive(self.key_provider.key())

    def _tag(self, iv: bytes, ciphertext: bytes) -> bytes:
        mac = hmac.HMAC(self._mac_key(), hashes.SHA256())
        mac.update(iv + ciphertext)
        return mac.finalize()

    def encrypt(self, plaintext: str) -> str:
        iv = self.key_provider.iv()
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self.key_provider.key()), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext + self._tag(iv, ciphertext)).decode("ascii")

    def decrypt(self, token: str) -> str:
        """
        Decrypts a token produced by encrypt().
        Raises DecryptionError for malformed, tampered or foreign-key input.
        """
        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"Secret is not valid base64: {e}") from e
        if len(raw) < TAG_SIZE + BLOCK_BITS // 8:
            raise DecryptionError("Secret is too short")

        ciphertext, tag = raw[:-TAG_SIZE], raw[-TAG_SIZE:]
        iv = self.key_provider.iv()
        mac = hmac.HMAC(self._mac_key(), hashes.SHA256())
        mac.update(iv + ciphertext)
        try:
            mac.verify(tag)
        except InvalidSignature as e:
            raise DecryptionError("Secret failed integrity check") from e

        try:
            decryptor = Cipher(algorithms.AES(self.key_provider.key()), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except ValueError as e:
            raise DecryptionError(f"Secret could not be decrypted: {e}") from e


def default_codec() -> SecretCodec:
    return SecretCodec(StaticKeyProvider.from_base64(settings.secret_key_b64, settings.secret_iv_b64))
