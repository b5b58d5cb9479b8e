"""Host catalog service clients.

This package provides:
- Shop lookup for the calling seller
- Bulk upsert and batch deletion of catalog items
"""

from app.services.catalog.items import ItemsClient
from app.services.catalog.shops import ShopsClient

__all__ = [
    "ItemsClient",
    "ShopsClient",
]
