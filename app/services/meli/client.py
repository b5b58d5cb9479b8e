"""Async HTTP client for the MercadoLibre catalog read API."""

from typing import Any, Optional
import logging

import httpx
from pydantic import ValidationError

from app.config import get_settings
from app.core.errors import BadGatewayError, BadRequestError, InternalServerError
from app.schemas.meli import MeliBatchEntry, MeliSizeChart, MeliUserItemsSearch

logger = logging.getLogger(__name__)
settings = get_settings()


class MeliAPIError(BadGatewayError):
    """MercadoLibre returned a non-success response or could not be reached."""

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        response_body: Any = None,
    ):
        self.upstream_status = upstream_status
        self.response_body = response_body
        super().__init__(message, causes=[response_body] if response_body else None)


class MeliClient:
    """Async HTTP client for MercadoLibre items, listings and size charts.

    Every call is authenticated with the seller's access token and bounded
    by ``MELI_TIMEOUT_SECONDS``.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Optional httpx transport (used to fake the upstream)
        """
        self._transport = transport

    async def _get(
        self,
        endpoint: str,
        access_token: str,
        resource: str,
        params: Optional[dict] = None,
    ) -> Any:
        """Make an authenticated GET request and return the decoded JSON.

        Args:
            endpoint: API path (e.g. "/items")
            access_token: Seller access token
            resource: Human-readable endpoint name for error messages
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            MeliAPIError: On timeout, transport failure or non-200 status
            InternalServerError: If the body is not valid JSON
        """
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        async with httpx.AsyncClient(
            base_url=settings.MELI_API_BASE,
            timeout=settings.MELI_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(endpoint, headers=headers, params=params)
            except httpx.TimeoutException as e:
                logger.error(f"MercadoLibre {resource} endpoint timed out: {e}")
                raise MeliAPIError(
                    f"timeout calling MercadoLibre {resource} endpoint"
                ) from e
            except httpx.HTTPError as e:
                logger.error(f"MercadoLibre {resource} endpoint unreachable: {e}")
                raise MeliAPIError(
                    f"unexpected error calling MercadoLibre {resource} endpoint"
                ) from e

        if response.status_code != httpx.codes.OK:
            logger.error(
                f"MercadoLibre {resource} error: {response.status_code} - {response.text}"
            )
            raise MeliAPIError(
                f"unexpected response from MercadoLibre {resource} endpoint, "
                f"status: {response.status_code}",
                upstream_status=response.status_code,
                response_body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise InternalServerError(
                f"error decoding MercadoLibre {resource} response"
            ) from e

    async def get_item(self, item_id: str, access_token: str) -> dict:
        """Get a single listing's full detail.

        Args:
            item_id: MercadoLibre item id (e.g. "MLA123")
            access_token: Seller access token

        Returns:
            Raw item payload
        """
        if not item_id.strip():
            raise BadRequestError("meli item id is required")
        return await self._get(f"/items/{item_id}", access_token, "items")

    async def get_user_items_page(
        self,
        meli_user_id: int,
        access_token: str,
        offset: int = 0,
        limit: int = 50,
    ) -> MeliUserItemsSearch:
        """Get one page of a seller's listing ids.

        Args:
            meli_user_id: MercadoLibre seller id
            access_token: Seller access token
            offset: Pagination offset
            limit: Page size

        Returns:
            Search response with "results" ids and "paging"
        """
        if not meli_user_id:
            raise BadRequestError(
                "meli_user_id is required for MercadoLibre user items search"
            )

        data = await self._get(
            f"/users/{meli_user_id}/items/search",
            access_token,
            "user items",
            params={"offset": offset, "limit": limit},
        )
        try:
            return MeliUserItemsSearch.model_validate(data)
        except ValidationError as e:
            raise InternalServerError(
                "error decoding MercadoLibre user items search response",
                causes=[e],
            ) from e

    async def get_items(self, item_ids: list[str], access_token: str) -> list[dict]:
        """Batch-get full listing details with the multi-get endpoint.

        The upstream wraps every item in a ``{code, body}`` envelope. Only
        ``code == 200`` bodies are returned, in response order; the rest are
        dropped.

        Args:
            item_ids: Listing ids to resolve
            access_token: Seller access token

        Returns:
            Raw item payloads
        """
        if not item_ids:
            raise BadRequestError("meli item ids are required")

        data = await self._get(
            "/items",
            access_token,
            "batch items",
            params={"ids": ",".join(item_ids)},
        )
        if not isinstance(data, list):
            raise InternalServerError(
                "error decoding MercadoLibre batch items response"
            )

        items: list[dict] = []
        dropped = 0
        for raw_entry in data:
            try:
                entry = MeliBatchEntry.model_validate(raw_entry)
            except ValidationError:
                dropped += 1
                continue
            if entry.code == httpx.codes.OK and isinstance(entry.body, dict):
                items.append(entry.body)
            else:
                dropped += 1

        if dropped:
            logger.warning(
                f"Dropped {dropped} of {len(data)} batch entries without a 200 code"
            )
        return items

    async def get_size_chart(self, chart_id: str, access_token: str) -> MeliSizeChart:
        """Get a size chart by id.

        Args:
            chart_id: Size chart (SIZE_GRID_ID) id
            access_token: Seller access token

        Returns:
            Parsed size chart
        """
        if not chart_id.strip():
            raise BadRequestError("chart_id is required for MercadoLibre size chart")

        data = await self._get(f"/catalog/charts/{chart_id}", access_token, "size chart")
        try:
            return MeliSizeChart.model_validate(data)
        except ValidationError as e:
            raise InternalServerError(
                "error decoding MercadoLibre size chart response",
                causes=[e],
            ) from e
