"""
QR payload codec.

Encrypts the signed payload embedded in a product's QR code at registration
time and decrypts it again on every scan.
"""

import json
from typing import Optional, Tuple

import structlog

from ..models.schemas import Product, QRPayload
from ..utils.crypto_utils import AES_BLOCK_LENGTH, CryptoUtils
from ..utils.time_utils import to_epoch_ms, utc_now

logger = structlog.get_logger(__name__)

_crypto = CryptoUtils()


def encode_qr_payload(payload: QRPayload, secret: str) -> str:
    """Encrypt a QR payload with the shared secret."""
    payload_string = json.dumps(payload.to_wire(), separators=(",", ":"))
    return _crypto.encrypt_with_passphrase(payload_string, secret)


def decode_qr_payload(encrypted: str, secret: str) -> Optional[QRPayload]:
    """
    Decrypt and validate a QR payload.

    Fails closed: any cryptographic or structural problem yields ``None``.
    """
    try:
        plaintext = _crypto.decrypt_with_passphrase(encrypted, secret)
        data = json.loads(plaintext.decode("utf-8"))
        return QRPayload.model_validate(data)
    except Exception as e:
        logger.warning(
            "Failed to decrypt QR payload",
            error=str(e),
            error_type=type(e).__name__,
            payload_length=len(encrypted) if isinstance(encrypted, str) else None
        )
        return None


def qr_size_class(encrypted: str) -> int:
    """Number of cipher blocks implied by an encrypted payload's length."""
    return (len(encrypted.strip()) * 3 // 4) // AES_BLOCK_LENGTH


class QRCodec:
    """QR codec bound to the process-wide secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("QR secret must not be empty")
        self._secret = secret

    def encode(self, payload: QRPayload) -> str:
        return encode_qr_payload(payload, self._secret)

    def decode(self, encrypted: str) -> Optional[QRPayload]:
        return decode_qr_payload(encrypted, self._secret)

    def issue_for_product(self, product: Product) -> Tuple[str, QRPayload]:
        """
        Build and encrypt the payload printed on a newly registered product.

        Args:
            product: Registered product

        Returns:
            Tuple of (encrypted payload, payload)
        """
        payload = QRPayload(
            product_id=product.product_id,
            manufacturer_id=product.manufacturer_id,
            org_id=product.org_id,
            issued_at_ms=to_epoch_ms(utc_now())
        )
        encrypted = self.encode(payload)
        logger.info("QR payload issued", product_id=product.product_id, org_id=product.org_id)
        return encrypted, payload

    @staticmethod
    def size_class(encrypted: str) -> int:
        return qr_size_class(encrypted)
