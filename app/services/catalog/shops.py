"""Client for the host shops service."""

from typing import Optional
import logging

import httpx
from pydantic import ValidationError

from app.config import get_settings
from app.core.errors import BadGatewayError, InternalServerError, NotFoundError
from app.schemas.catalog import Shop

logger = logging.getLogger(__name__)
settings = get_settings()

SHOPS_ENDPOINT = "/shops"


class ShopsClient:
    """Resolve the shop owned by the calling seller."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._transport = transport

    async def get_shop(self, authorization: str) -> Shop:
        """Get the caller's shop.

        Args:
            authorization: Caller's Authorization header, forwarded as-is

        Returns:
            The caller's shop

        Raises:
            NotFoundError: If the caller has no shop
            BadGatewayError: If the shops service fails or times out
        """
        async with httpx.AsyncClient(
            base_url=settings.SHOPS_API_BASE,
            timeout=settings.CATALOG_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(
                    SHOPS_ENDPOINT,
                    headers={"Authorization": authorization},
                )
            except httpx.HTTPError as e:
                logger.error(f"Shops service unreachable: {e}")
                raise BadGatewayError(
                    f"unexpected error getting shop, url: {SHOPS_ENDPOINT}"
                ) from e

        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError("shop not found")

        if response.status_code != httpx.codes.OK:
            logger.error(f"Shops service error: {response.status_code} - {response.text}")
            raise BadGatewayError(
                f"unexpected response code from shops api: {response.status_code}"
            )

        try:
            return Shop.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InternalServerError(
                "unexpected error decoding response body from shops api"
            ) from e
