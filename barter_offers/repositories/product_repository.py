from typing import Optional

from barter_offers.config import settings
from barter_offers.models.trade import first_image_url
from barter_offers.repositories.base import MarketplaceRepository
from barter_offers.schemas.product import ProductSummary


def _display_text(value) -> Optional[str]:
    """Catalog fields are free-form; numbers are shown as-is, anything else is dropped."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class ProductRepository(MarketplaceRepository):
    async def lookup_product(self, product_id: int) -> ProductSummary:
        envelope = await self._send("GET", f"/api/products/{product_id}")
        product = envelope.data if isinstance(envelope.data, dict) else {}
        image = (
            first_image_url(product.get("image_urls"))
            or first_image_url(product.get("images"))
            or _display_text(product.get("image_url"))
            or _display_text(product.get("imageUrl"))
        )
        return ProductSummary(
            product_id=product_id,
            title=_display_text(product.get("title")) or settings.placeholder_title,
            image_url=image,
        )
