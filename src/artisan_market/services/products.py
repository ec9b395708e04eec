"""Product image reference updates."""

import structlog

from ..domain.errors import NotFound, ValidationFailed
from ..repositories.base import DataAccess

logger = structlog.get_logger()


async def update_product_image(data_access: DataAccess, product_id: str, image_url: str) -> None:
    """Point a product at a new image url."""
    if not product_id or not image_url:
        raise ValidationFailed("Product ID and image URL are required")

    changed = await data_access.update("products", {"id": product_id}, {"image_url": image_url})
    if not changed:
        logger.warning("product_not_found", product_id=product_id)
        raise NotFound(f"Product {product_id} not found")
    logger.info("product_image_updated", product_id=product_id)
