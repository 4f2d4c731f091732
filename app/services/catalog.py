"""
Catalog Lookup - Resolves external product ids to catalog items.

NO DICTIONARIES - All data uses strongly typed models.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import CatalogItem
from app.exceptions import ProductNotFoundError
from app.models.domain import CatalogItemData

logger = get_logger(__name__)


def to_catalog_item_data(item: CatalogItem) -> CatalogItemData:
    return CatalogItemData(
        catalog_item_id=item.id,
        product_id=item.product_id,
        title=item.title,
        price_minor=item.price_minor,
        currency=item.currency,
        purchasable=item.is_purchasable,
    )


class CatalogService:
    """Read-only access to the catalog store."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def resolve(self, product_id: str) -> CatalogItemData:
        """
        Resolve an external product id to its catalog item.

        Raises:
            ProductNotFoundError: No item carries the id, or the item is not purchasable
        """
        stmt = select(CatalogItem).where(CatalogItem.product_id == product_id)
        result = await self.session.execute(stmt)
        item = result.scalar_one_or_none()

        if item is None:
            logger.info("catalog_item_not_found", product_id=product_id)
            raise ProductNotFoundError(product_id)

        if not item.is_purchasable:
            logger.info(
                "catalog_item_not_purchasable",
                product_id=product_id,
                catalog_item_id=str(item.id),
            )
            raise ProductNotFoundError(product_id)

        return to_catalog_item_data(item)

    async def get(self, catalog_item_id: UUID) -> CatalogItemData | None:
        """Fetch a catalog item by its catalog id, regardless of purchasable flag."""
        item = await self.session.get(CatalogItem, catalog_item_id)
        return to_catalog_item_data(item) if item is not None else None
