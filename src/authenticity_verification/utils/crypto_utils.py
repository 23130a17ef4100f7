"""
Cryptographic utilities for QR payload encryption, ledger hashing and
token signing.

QR payloads use the OpenSSL "Salted__" envelope (AES-256-CBC, key and IV
derived from a passphrase with EVP_BytesToKey/MD5) so codes printed by the
product-registration flow stay readable.
"""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from typing import Any, Dict, Tuple, Union

import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = structlog.get_logger(__name__)

SALTED_MAGIC = b"Salted__"
SALT_LENGTH = 8
AES_KEY_LENGTH = 32
AES_BLOCK_LENGTH = 16


class DecryptionError(ValueError):
    """Ciphertext could not be decrypted under the given passphrase."""


class CryptoUtils:
    """Cryptographic utilities for secure operations."""

    def generate_secure_hash(
        self,
        data: Union[str, bytes, Dict[str, Any]],
        algorithm: str = "sha256"
    ) -> str:
        """
        Generate secure hash of data.

        Args:
            data: Data to hash
            algorithm: Hash algorithm to use

        Returns:
            Hex-encoded hash
        """
        if isinstance(data, str):
            data_bytes = data.encode("utf-8")
        elif isinstance(data, dict):
            data_bytes = json.dumps(data, sort_keys=True).encode("utf-8")
        else:
            data_bytes = data

        if algorithm == "sha256":
            hash_obj = hashlib.sha256()
        elif algorithm == "sha512":
            hash_obj = hashlib.sha512()
        else:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")

        hash_obj.update(data_bytes)
        return hash_obj.hexdigest()

    def generate_hmac(
        self,
        data: Union[str, bytes],
        key: Union[str, bytes],
        algorithm: str = "sha256"
    ) -> str:
        """
        Generate HMAC for data with key.

        Args:
            data: Data to authenticate
            key: Secret key
            algorithm: HMAC algorithm

        Returns:
            Hex-encoded HMAC
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        if isinstance(key, str):
            key = key.encode("utf-8")

        if algorithm == "sha256":
            h = hmac.new(key, data, hashlib.sha256)
        elif algorithm == "sha512":
            h = hmac.new(key, data, hashlib.sha512)
        else:
            raise ValueError(f"Unsupported HMAC algorithm: {algorithm}")

        return h.hexdigest()

    def verify_hmac(
        self,
        data: Union[str, bytes],
        key: Union[str, bytes],
        expected_hmac: str,
        algorithm: str = "sha256"
    ) -> bool:
        """Verify HMAC authenticity."""
        try:
            calculated_hmac = self.generate_hmac(data, key, algorithm)
            return hmac.compare_digest(calculated_hmac, expected_hmac)
        except Exception as e:
            logger.error("Failed to verify HMAC", error=str(e))
            return False

    @staticmethod
    def derive_key_and_iv(passphrase: bytes, salt: bytes) -> Tuple[bytes, bytes]:
        """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
        derived = b""
        block = b""
        while len(derived) < AES_KEY_LENGTH + AES_BLOCK_LENGTH:
            block = hashlib.md5(block + passphrase + salt).digest()
            derived += block
        return derived[:AES_KEY_LENGTH], derived[AES_KEY_LENGTH:AES_KEY_LENGTH + AES_BLOCK_LENGTH]

    def encrypt_with_passphrase(self, plaintext: Union[str, bytes], passphrase: str) -> str:
        """
        Encrypt data into a base64 OpenSSL "Salted__" envelope.

        Args:
            plaintext: Data to encrypt
            passphrase: Shared secret

        Returns:
            Base64 ciphertext
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        salt = secrets.token_bytes(SALT_LENGTH)
        key, iv = self.derive_key_and_iv(passphrase.encode("utf-8"), salt)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return base64.b64encode(SALTED_MAGIC + salt + ciphertext).decode("ascii")

    def decrypt_with_passphrase(self, envelope: str, passphrase: str) -> bytes:
        """
        Decrypt a base64 OpenSSL "Salted__" envelope.

        Args:
            envelope: Base64 ciphertext
            passphrase: Shared secret

        Returns:
            Decrypted bytes

        Raises:
            DecryptionError: If the envelope is malformed or the key is wrong
        """
        try:
            raw = base64.b64decode(envelope.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e

        header_length = len(SALTED_MAGIC) + SALT_LENGTH
        if not raw.startswith(SALTED_MAGIC) or len(raw) <= header_length:
            raise DecryptionError("Missing salted envelope header")

        ciphertext = raw[header_length:]
        if len(ciphertext) % AES_BLOCK_LENGTH:
            raise DecryptionError("Ciphertext is not block aligned")

        salt = raw[len(SALTED_MAGIC):header_length]
        key, iv = self.derive_key_and_iv(passphrase.encode("utf-8"), salt)

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionError("Invalid padding") from e
