"""
Repository for registered products.
"""

from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...models.database import ProductRow
from ...models.schemas import Product
from ...utils.time_utils import ensure_utc
from .base import ProductStatusStore, ProductStore


def _to_product(row: ProductRow) -> Product:
    return Product(
        product_id=row.product_id,
        org_id=row.org_id,
        manufacturer_id=row.manufacturer_id,
        status=row.status,
        created_at=ensure_utc(row.created_at) if row.created_at else None,
        name=row.name,
        sku=row.sku,
        category=row.category,
        batch_id=row.batch_id,
    )


class ProductRepository(ProductStore, ProductStatusStore):
    """Products backed by the ``products`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = structlog.get_logger(component="product_repository")

    async def get_product(self, product_id: str) -> Optional[Product]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ProductRow).where(ProductRow.product_id == product_id)
                )
                row = result.scalar_one_or_none()
                return _to_product(row) if row else None

        except Exception as e:
            self.logger.error("Failed to get product", product_id=product_id, error=str(e))
            raise

    async def add_product(self, product: Product) -> Product:
        """
        Register a product.

        Args:
            product: Product to store

        Returns:
            The stored product
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(ProductRow(**product.model_dump()))

            self.logger.info(
                "Product registered",
                product_id=product.product_id,
                org_id=product.org_id
            )
            return product

        except Exception as e:
            self.logger.error("Failed to add product", product_id=product.product_id, error=str(e))
            raise

    async def set_product_status(self, product_id: str, status: str) -> int:
        return await self._set_status(ProductRow.product_id == product_id, status, product_id=product_id)

    async def set_batch_status(self, batch_id: str, status: str) -> int:
        return await self._set_status(ProductRow.batch_id == batch_id, status, batch_id=batch_id)

    async def set_manufacturer_status(self, manufacturer_id: str, status: str) -> int:
        return await self._set_status(
            ProductRow.manufacturer_id == manufacturer_id, status, manufacturer_id=manufacturer_id
        )

    async def _set_status(self, condition, status: str, **target: str) -> int:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(ProductRow).where(condition).values(status=status)
                    )

            self.logger.info("Product status updated", status=status, updated=result.rowcount, **target)
            return result.rowcount

        except Exception as e:
            self.logger.error("Failed to update product status", status=status, error=str(e), **target)
            raise
