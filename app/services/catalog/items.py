"""Client for the host items (catalog) service."""

from typing import Optional
import logging

import httpx
from pydantic import ValidationError

from app.config import get_settings
from app.core.errors import BadGatewayError, BadRequestError, InternalServerError
from app.schemas.catalog import BulkUpsertRequest, BulkUpsertResponse, Item

logger = logging.getLogger(__name__)
settings = get_settings()

BULK_UPSERT_ENDPOINT = "/items/bulk-upsert"
BATCH_ENDPOINT = "/items/batch/{batch_id}"


class ItemsClient:
    """Bulk load into the host catalog."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=settings.ITEMS_API_BASE,
            timeout=settings.CATALOG_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    async def bulk_upsert(self, items: list[Item]) -> BulkUpsertResponse:
        """Upsert a batch of items keyed by their external id.

        Args:
            items: Transformed catalog items

        Returns:
            Created/updated counts reported by the items service

        Raises:
            BadGatewayError: If the items service rejects the batch or times out
        """
        payload = BulkUpsertRequest(items=items).model_dump(mode="json")

        async with self._client() as client:
            try:
                response = await client.post(BULK_UPSERT_ENDPOINT, json=payload)
            except httpx.TimeoutException as e:
                logger.error(f"Items service timed out on bulk upsert: {e}")
                raise BadGatewayError("timeout hitting items api bulk upsert") from e
            except httpx.HTTPError as e:
                logger.error(f"Items service unreachable: {e}")
                raise BadGatewayError("unexpected error hitting items api bulk upsert") from e

        if not response.is_success:
            logger.error(
                f"Items service bulk upsert error: {response.status_code} - {response.text}"
            )
            raise BadGatewayError(
                f"unexpected response from items api bulk upsert, status: {response.status_code}",
                causes=[response.text],
            )

        try:
            return BulkUpsertResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InternalServerError(
                "error decoding items api bulk upsert response"
            ) from e

    async def delete_batch(self, batch_id: str) -> None:
        """Delete every item imported under a batch id."""
        if not batch_id.strip():
            raise BadRequestError("empty required batch_id")

        async with self._client() as client:
            try:
                response = await client.delete(BATCH_ENDPOINT.format(batch_id=batch_id))
            except httpx.HTTPError as e:
                logger.error(f"Items service unreachable: {e}")
                raise BadGatewayError("unexpected error hitting items api batch delete") from e

        if not response.is_success:
            raise BadGatewayError(
                f"unexpected response from items api batch delete, status: {response.status_code}"
            )
        logger.info(f"Deleted items of batch {batch_id}")
