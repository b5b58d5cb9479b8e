"""Page through a seller's listings and resolve their full detail."""

from typing import Optional
import logging

from app.config import get_settings
from app.core.errors import BadGatewayError, BadRequestError
from app.models.meli_credential import MeliCredential
from app.services.meli.client import MeliClient

logger = logging.getLogger(__name__)
settings = get_settings()


class CatalogFetcher:
    """Retrieve every listing of a seller.

    Listing ids are collected page by page from the user items search until
    a short or empty page comes back, then resolved in one multi-get call.
    """

    def __init__(
        self,
        client: Optional[MeliClient] = None,
        max_pages: Optional[int] = None,
    ):
        """Initialize the fetcher.

        Args:
            client: MercadoLibre API client
            max_pages: Safety ceiling on listing pages (defaults to SYNC_MAX_PAGES)
        """
        self.client = client or MeliClient()
        self.max_pages = max_pages or settings.SYNC_MAX_PAGES

    async def list_item_ids(
        self,
        credential: MeliCredential,
        page_size: int,
    ) -> list[str]:
        """Collect every listing id of the credential's seller.

        Raises:
            BadRequestError: If the credential has no seller id or page_size < 1
            BadGatewayError: If the listing never ends within ``max_pages``
        """
        if not credential.meli_user_id:
            raise BadRequestError("seller_id not found in credentials")
        if page_size < 1:
            raise BadRequestError("page size must be positive")

        item_ids: list[str] = []
        offset = 0
        pages = 0
        while True:
            if pages >= self.max_pages:
                raise BadGatewayError(
                    f"MercadoLibre listing exceeded {self.max_pages} pages"
                )

            page = await self.client.get_user_items_page(
                credential.meli_user_id,
                credential.access_token,
                offset=offset,
                limit=page_size,
            )
            pages += 1

            if not page.results:
                break
            item_ids.extend(page.results)
            offset += page_size
            if len(page.results) < page_size:
                break

        logger.info(
            f"Listed {len(item_ids)} MercadoLibre items for seller "
            f"{credential.meli_user_id} in {pages} pages"
        )
        return item_ids

    async def fetch_all_items(
        self,
        credential: MeliCredential,
        page_size: Optional[int] = None,
    ) -> list[dict]:
        """Fetch the full detail of every listing of the seller.

        Args:
            credential: A valid (non-stale) credential
            page_size: Listing page size (defaults to SYNC_PAGE_SIZE)

        Returns:
            Raw item payloads, possibly empty
        """
        item_ids = await self.list_item_ids(
            credential, page_size or settings.SYNC_PAGE_SIZE
        )
        if not item_ids:
            return []
        return await self.client.get_items(item_ids, credential.access_token)
