"""
Image forensics service adapter.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from ..models.schemas import ImageVerificationResult

logger = structlog.get_logger(__name__)


class ImageForensicsError(RuntimeError):
    """The forensics service could not produce a result."""


class ImageForensicsClient(ABC):
    """Contract of the external image forensics service."""

    @abstractmethod
    async def verify_image(self, image_url: str, product_id: str) -> ImageVerificationResult:
        """
        Analyse a verification photo against the product's reference data.

        Raises:
            ImageForensicsError: If the service fails or times out
        """

    async def close(self) -> None:
        return None


class HttpImageForensicsClient(ImageForensicsClient):
    """Forensics client speaking JSON over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def verify_image(self, image_url: str, product_id: str) -> ImageVerificationResult:
        try:
            response = await self._client.post(
                f"{self.base_url}/verify",
                json={"imageUrl": image_url, "productId": product_id},
                timeout=self.timeout_seconds
            )
        except httpx.TimeoutException as e:
            logger.warning("Image forensics timeout", product_id=product_id)
            raise ImageForensicsError("Image forensics service timeout") from e
        except httpx.HTTPError as e:
            logger.warning("Image forensics request failed", product_id=product_id, error=str(e))
            raise ImageForensicsError(str(e)) from e

        if response.status_code != 200:
            logger.warning(
                "Image forensics returned error status",
                product_id=product_id,
                status=response.status_code
            )
            raise ImageForensicsError(f"HTTP {response.status_code}")

        try:
            return ImageVerificationResult.model_validate(response.json())
        except ValueError as e:
            raise ImageForensicsError("Malformed image forensics response") from e

    async def close(self) -> None:
        await self._client.aclose()
