# Private Bookmarks - Encryption Service
#
# Password digest (SHA-256, hex)
# Bookmark URL encryption (AES-256-GCM)
# Key export/import as JWK so a stored key stays readable by Web Crypto

import base64
import binascii
import hmac
import json
import os
from typing import NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError


class EncryptedValue(NamedTuple):
    """Base64 ciphertext (with GCM tag) and the nonce it was sealed with."""

    ciphertext: str
    iv: str


class EncryptionService:
    """
    Handles digesting and encryption for the bookmark vault.

    Flow:
    1. Install generates one 256-bit AES-GCM key and stores it exported (JWK)
    2. The password is never stored, only its SHA-256 digest
    3. Each bookmark URL is sealed with AES-256-GCM under a fresh nonce
    4. The nonce is stored next to the ciphertext as the record's ``iv``
    """

    KEY_LENGTH = 32    # 256 bits for AES-256
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    JWK_ALGORITHM = "A256GCM"
    JWK_KEY_OPS = ["encrypt", "decrypt"]

    @staticmethod
    def digest(password: str) -> str:
        """
        One-way digest of a password.

        The input is hashed exactly as given: no trimming, no Unicode
        normalization. Callers reject empty passwords before getting here.

        Returns:
            64-character lowercase hex SHA-256 digest
        """
        h = hashes.Hash(hashes.SHA256())
        h.update(password.encode('utf-8'))
        return h.finalize().hex()

    @staticmethod
    def digests_match(a: str, b: str) -> bool:
        """Constant-time digest comparison."""
        return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))

    @staticmethod
    def generate_key() -> bytes:
        """Generate a fresh 256-bit AES-GCM key."""
        return AESGCM.generate_key(bit_length=EncryptionService.KEY_LENGTH * 8)

    @staticmethod
    def export_key(key: bytes) -> str:
        """
        Export a key as a JWK JSON string.

        Same shape Web Crypto produces for ``exportKey("jwk", ...)`` on an
        extractable AES-GCM key.
        """
        if len(key) != EncryptionService.KEY_LENGTH:
            raise ValueError(f"Expected a {EncryptionService.KEY_LENGTH}-byte key, got {len(key)}")
        return json.dumps({
            "kty": "oct",
            "k": base64.urlsafe_b64encode(key).rstrip(b"=").decode('ascii'),
            "alg": EncryptionService.JWK_ALGORITHM,
            "ext": True,
            "key_ops": EncryptionService.JWK_KEY_OPS,
        })

    @staticmethod
    def import_key(exported: str) -> bytes:
        """
        Import a key previously produced by export_key().

        Raises:
            ValueError: If the JWK is malformed or not a 256-bit AES key
        """
        try:
            jwk = json.loads(exported)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Encryption key is not valid JSON: {e}") from None

        if not isinstance(jwk, dict) or jwk.get("kty") != "oct" or not isinstance(jwk.get("k"), str):
            raise ValueError("Encryption key is not a symmetric JWK")

        if jwk.get("alg", EncryptionService.JWK_ALGORITHM) != EncryptionService.JWK_ALGORITHM:
            raise ValueError(f"Unsupported key algorithm: {jwk.get('alg')}")

        encoded = jwk["k"]
        try:
            key = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        except (binascii.Error, ValueError):
            raise ValueError("Encryption key material is not base64url") from None

        if len(key) != EncryptionService.KEY_LENGTH:
            raise ValueError(f"Expected a {EncryptionService.KEY_LENGTH}-byte key, got {len(key)}")
        return key

    @staticmethod
    def encrypt(plaintext: str, key: bytes) -> EncryptedValue:
        """
        Encrypt plaintext using AES-256-GCM.

        Args:
            plaintext: Text to encrypt (may be empty)
            key: 256-bit key (from generate_key/import_key)

        Returns:
            EncryptedValue(ciphertext, iv), both base64-encoded
        """
        # Fresh nonce every call; never reuse one under the same key
        nonce = os.urandom(EncryptionService.NONCE_LENGTH)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode('utf-8'), None)

        return EncryptedValue(
            ciphertext=EncryptionService.encode_for_storage(ciphertext),
            iv=EncryptionService.encode_for_storage(nonce),
        )

    @staticmethod
    def decrypt(ciphertext: str, iv: str, key: bytes) -> str:
        """
        Decrypt a value produced by encrypt().

        Raises:
            DecryptionError: If the ciphertext, nonce and key do not match
                             (tampering, wrong key, wrong iv) or the stored
                             values are not valid base64/UTF-8
        """
        if not isinstance(ciphertext, str) or not isinstance(iv, str):
            raise DecryptionError("Stored ciphertext and iv must be base64 strings")

        try:
            nonce = EncryptionService.decode_from_storage(iv)
            sealed = EncryptionService.decode_from_storage(ciphertext)
        except (binascii.Error, ValueError):
            raise DecryptionError("Stored ciphertext or iv is not valid base64") from None

        if len(nonce) != EncryptionService.NONCE_LENGTH:
            raise DecryptionError(f"Expected a {EncryptionService.NONCE_LENGTH}-byte iv, got {len(nonce)}")

        try:
            plaintext_bytes = AESGCM(key).decrypt(nonce, sealed, None)
        except InvalidTag:
            raise DecryptionError("Authentication failed: ciphertext, iv or key mismatch") from None
        except ValueError as e:
            # Invalid key length
            raise DecryptionError(str(e)) from None

        try:
            return plaintext_bytes.decode('utf-8')
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted value is not valid UTF-8") from None

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """Encode binary data as base64 text for the store."""
        return base64.b64encode(data).decode('ascii')

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64 text from the store (strict alphabet)."""
        return base64.b64decode(data.encode('ascii'), validate=True)
