"""One MercadoLibre to host catalog synchronization run."""

from datetime import datetime
from typing import Callable, Optional
import logging

from pydantic import ValidationError

from app.core.errors import CatalogSyncError, NotFoundError, SyncFailedError
from app.schemas.catalog import Item
from app.schemas.meli import MeliItem, MeliSizeChart
from app.schemas.sync import FailedItem, FailureStage, SyncResult
from app.services.catalog.items import ItemsClient
from app.services.catalog.shops import ShopsClient
from app.services.meli.client import MeliClient
from app.services.meli.credentials import CredentialLifecycleManager, utcnow
from app.services.meli.fetcher import CatalogFetcher
from app.services.meli.size_charts import SizeChartResolver
from app.services.meli.transformer import (
    TransformOutcome,
    describe_raw,
    extract_size_chart_id,
    parse_item,
    transform_safely,
)

logger = logging.getLogger(__name__)

BATCH_ID_PREFIX = "meli-"


def batch_id_for(owner_id: str) -> str:
    return f"{BATCH_ID_PREFIX}{owner_id}"


class SyncOrchestrator:
    """Extract, transform and load a seller's whole MercadoLibre catalog.

    Items fail individually: a listing that cannot be transformed, or a
    whole batch the host rejects, ends up in ``SyncResult.failed_items``.
    The run itself fails only when nothing at all was loaded.
    """

    def __init__(
        self,
        lifecycle: CredentialLifecycleManager,
        meli_client: Optional[MeliClient] = None,
        shops_client: Optional[ShopsClient] = None,
        items_client: Optional[ItemsClient] = None,
        fetcher: Optional[CatalogFetcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.lifecycle = lifecycle
        self.meli_client = meli_client or MeliClient()
        self.shops_client = shops_client or ShopsClient()
        self.items_client = items_client or ItemsClient()
        self.fetcher = fetcher or CatalogFetcher(self.meli_client)
        self.clock = clock

    async def run(
        self,
        owner_id: str,
        authorization: str,
        page_size: Optional[int] = None,
    ) -> SyncResult:
        """Synchronize every listing of the owner into the host catalog.

        Args:
            owner_id: Authenticated seller identity
            authorization: Caller's Authorization header, forwarded to the shops service
            page_size: Listing page size (defaults to SYNC_PAGE_SIZE)

        Returns:
            The run result, possibly listing partial failures

        Raises:
            NotFoundError: If the owner has no shop, no credential or no items
            SyncFailedError: If every item failed
        """
        shop = await self.shops_client.get_shop(authorization)
        credential = await self.lifecycle.ensure_valid(owner_id)
        batch_id = batch_id_for(owner_id)

        raw_items = await self.fetcher.fetch_all_items(credential, page_size)
        if not raw_items:
            raise NotFoundError("no items found from MercadoLibre")
        logger.info(f"Extracted {len(raw_items)} MercadoLibre items for owner {owner_id}")

        imported_at = self.clock()
        resolver = SizeChartResolver(self.meli_client)
        items: list[Item] = []
        failed: list[FailedItem] = []

        for raw in raw_items:
            outcome = await self._transform(
                raw,
                shop_id=shop.id,
                owner_id=owner_id,
                batch_id=batch_id,
                access_token=credential.access_token,
                resolver=resolver,
                imported_at=imported_at,
            )
            if outcome.ok:
                items.append(outcome.item)
            else:
                logger.warning(
                    f"Item {outcome.error.external_id} failed to transform: "
                    f"{outcome.error.message}"
                )
                failed.append(
                    FailedItem(
                        external_id=outcome.error.external_id,
                        title=outcome.error.title,
                        failure_stage=FailureStage.TRANSFORM,
                        error_message=outcome.error.message,
                    )
                )

        created = updated = 0
        if items:
            try:
                response = await self.items_client.bulk_upsert(items)
            except CatalogSyncError as e:
                logger.error(f"Bulk upsert of {len(items)} items failed: {e.message}")
                failed.extend(
                    FailedItem(
                        external_id=item.source.external_id,
                        title=item.name,
                        failure_stage=FailureStage.LOAD,
                        error_message=e.message,
                    )
                    for item in items
                )
            else:
                created = response.created_count
                updated = response.updated_count

        result = SyncResult(
            batch_id=batch_id,
            total_items=len(raw_items),
            created_count=created,
            updated_count=updated,
            failure_count=len(failed),
            failed_items=tuple(failed),
        )
        logger.info(
            f"Sync {batch_id} finished: {result.created_count} created, "
            f"{result.updated_count} updated, {result.failure_count} failed "
            f"of {result.total_items}"
        )

        if result.success_count == 0 and result.failure_count > 0:
            raise SyncFailedError(
                f"all {result.failure_count} items failed to load", result
            )
        return result

    async def _transform(
        self,
        raw: dict,
        shop_id: str,
        owner_id: str,
        batch_id: str,
        access_token: str,
        resolver: SizeChartResolver,
        imported_at: datetime,
    ) -> TransformOutcome:
        try:
            meli_item = parse_item(raw)
        except ValidationError as e:
            external_id, title = describe_raw(raw)
            return TransformOutcome.failure(
                external_id, title, f"invalid item payload: {e.error_count()} validation errors"
            )

        size_chart = await self._size_chart(meli_item, access_token, resolver)
        return transform_safely(
            meli_item,
            shop_id,
            owner_id,
            batch_id,
            size_chart=size_chart,
            imported_at=imported_at,
        )

    async def _size_chart(
        self,
        meli_item: MeliItem,
        access_token: str,
        resolver: SizeChartResolver,
    ) -> Optional[MeliSizeChart]:
        chart_id = extract_size_chart_id(meli_item.attributes)
        if not chart_id:
            return None
        try:
            return await resolver.resolve(chart_id, access_token)
        except CatalogSyncError as e:
            # Items are still loaded, just without a size guide
            logger.warning(
                f"Size chart {chart_id} for item {meli_item.id} unavailable: {e.message}"
            )
            return None
