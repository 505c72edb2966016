from typing import Optional

from pydantic import BaseModel


class ProductSummary(BaseModel):
    """Display data for a catalog product, as much as the trade cards need."""

    product_id: int
    title: str
    image_url: Optional[str] = None
