"""MercadoLibre OAuth 2.0 authorization-code and refresh-token flows."""

from typing import Optional
from urllib.parse import urlencode
import logging

import httpx
from pydantic import ValidationError

from app.config import get_settings
from app.core.errors import BadGatewayError, InternalServerError
from app.schemas.meli import MeliAuthResponse

logger = logging.getLogger(__name__)
settings = get_settings()

MELI_TOKEN_PATH = "/oauth/token"


class MeliOAuthError(BadGatewayError):
    """The MercadoLibre token endpoint rejected a grant or was unreachable."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class MeliOAuthClient:
    """Talk to the MercadoLibre OAuth endpoints.

    Handles:
    - Authorization URL generation
    - Authorization code exchange
    - Refresh token exchange
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the OAuth client.

        Args:
            transport: Optional httpx transport (used to fake the upstream)
        """
        self._transport = transport

    def get_authorization_url(self) -> str:
        """Build the URL the seller visits to authorize the app.

        Returns:
            Authorization URL
        """
        params = {
            "response_type": "code",
            "client_id": settings.MELI_CLIENT_ID,
            "redirect_uri": settings.MELI_REDIRECT_URI,
        }
        return f"{settings.MELI_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> MeliAuthResponse:
        """Exchange an authorization code for an access/refresh token pair.

        Args:
            code: Authorization code from the MercadoLibre redirect

        Returns:
            Parsed token response

        Raises:
            MeliOAuthError: If the token endpoint rejects the code
        """
        logger.info("Exchanging MercadoLibre authorization code for access token")
        return await self._request_token(
            {
                "grant_type": "authorization_code",
                "client_id": settings.MELI_CLIENT_ID,
                "client_secret": settings.MELI_CLIENT_SECRET,
                "code": code,
                "redirect_uri": settings.MELI_REDIRECT_URI,
            },
            action="Token exchange",
        )

    async def refresh(self, refresh_token: str) -> MeliAuthResponse:
        """Exchange a refresh token for a new token pair.

        A revoked refresh token fails here; the seller then has to go
        through the authorization-code flow again.

        Args:
            refresh_token: The stored refresh token

        Returns:
            Parsed token response

        Raises:
            MeliOAuthError: If the refresh is rejected or the call fails
        """
        logger.info("Refreshing MercadoLibre access token")
        return await self._request_token(
            {
                "grant_type": "refresh_token",
                "client_id": settings.MELI_CLIENT_ID,
                "client_secret": settings.MELI_CLIENT_SECRET,
                "refresh_token": refresh_token,
            },
            action="Token refresh",
        )

    async def _request_token(self, data: dict, action: str) -> MeliAuthResponse:
        async with httpx.AsyncClient(
            base_url=settings.MELI_API_BASE,
            timeout=settings.MELI_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    MELI_TOKEN_PATH,
                    data=data,
                    headers={"Accept": "application/json"},
                )
            except httpx.TimeoutException as e:
                logger.error(f"{action} timed out: {e}")
                raise MeliOAuthError(f"{action} timed out") from e
            except httpx.HTTPError as e:
                logger.error(f"{action} failed: {e}")
                raise MeliOAuthError(f"{action} failed: {e}") from e

        if not response.is_success:
            error_msg = f"{action} failed: {response.status_code} - {response.text}"
            logger.error(error_msg)
            raise MeliOAuthError(error_msg, response.status_code)

        try:
            return MeliAuthResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InternalServerError(
                f"error decoding MercadoLibre token response: {e}"
            ) from e
