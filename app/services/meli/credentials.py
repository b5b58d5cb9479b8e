"""MercadoLibre credential storage and lifecycle.

The access token is refreshed proactively once it is inside the refresh
window (``TOKEN_REFRESH_MARGIN_SECONDS`` before hard expiry). Refresh and
persist happen under a per-owner lock so concurrent sync runs in this process
refresh at most once; the stored ``version`` column turns the write into a
compare-and-swap so a run in another process that loses the race re-reads
the fresh credential instead of overwriting it.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.errors import InternalServerError, NotFoundError
from app.models.meli_credential import MeliCredential
from app.schemas.meli import MeliAuthResponse
from app.services.catalog.shops import ShopsClient
from app.services.meli.oauth import MeliOAuthClient

logger = logging.getLogger(__name__)
settings = get_settings()

# Lost swaps tolerated when a new code replaces an existing credential
MAX_REPLACE_ATTEMPTS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialStore:
    """Durable lookup and update of credentials by owner."""

    def __init__(self, db: AsyncSession):
        """Initialize the store with a database session.

        Args:
            db: Async database session
        """
        self.db = db

    async def get_by_owner(self, owner_id: str) -> Optional[MeliCredential]:
        # populate_existing: always observe the latest committed row, even if
        # this session already holds the object
        result = await self.db.execute(
            select(MeliCredential)
            .where(MeliCredential.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_shop(self, shop_id: str) -> Optional[MeliCredential]:
        result = await self.db.execute(
            select(MeliCredential)
            .where(MeliCredential.shop_id == shop_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def create(self, credential: MeliCredential) -> MeliCredential:
        self.db.add(credential)
        await self.db.commit()
        await self.db.refresh(credential)
        return credential

    async def replace_tokens(
        self,
        credential_id: int,
        expected_version: int,
        token: MeliAuthResponse,
        issued_at: datetime,
        shop_id: Optional[str] = None,
    ) -> bool:
        """Swap in a new token pair if the row is still at ``expected_version``.

        Record identity, owner and ``created_at`` are never touched.

        Returns:
            True if this call won the swap, False if the row changed meanwhile
        """
        values = {
            "access_token": token.access_token,
            "refresh_token": token.refresh_token,
            "token_type": token.token_type,
            "scope": token.scope,
            "expires_in": token.expires_in,
            "issued_at": issued_at,
            "version": expected_version + 1,
            "updated_at": func.now(),
        }
        if token.user_id:
            values["meli_user_id"] = token.user_id
        if shop_id:
            values["shop_id"] = shop_id

        result = await self.db.execute(
            update(MeliCredential)
            .where(
                MeliCredential.id == credential_id,
                MeliCredential.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return False

        await self.db.commit()
        return True

    async def delete_by_owner(self, owner_id: str) -> bool:
        result = await self.db.execute(
            delete(MeliCredential).where(MeliCredential.owner_id == owner_id)
        )
        await self.db.commit()
        return result.rowcount > 0


class KeyedLock:
    """One asyncio lock per key, discarded once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._locks


# Shared across requests: refresh is a critical section per owner
credential_locks = KeyedLock()


class CredentialLifecycleManager:
    """Hand out credentials that are guaranteed to be outside the refresh window."""

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: Optional[MeliOAuthClient] = None,
        locks: Optional[KeyedLock] = None,
        refresh_margin: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.oauth_client = oauth_client or MeliOAuthClient()
        self.locks = locks if locks is not None else credential_locks
        if refresh_margin is None:
            refresh_margin = timedelta(seconds=settings.TOKEN_REFRESH_MARGIN_SECONDS)
        self.refresh_margin = refresh_margin
        self.clock = clock

    def _is_stale(self, credential: MeliCredential) -> bool:
        return credential.is_stale(self.refresh_margin, now=self.clock())

    async def load(self, owner_id: str) -> MeliCredential:
        credential = await self.store.get_by_owner(owner_id)
        if credential is None:
            raise NotFoundError(f"no MercadoLibre credentials found for owner {owner_id}")
        return credential

    async def ensure_valid(self, owner_id: str) -> MeliCredential:
        """Return the owner's credential, refreshing it first if stale.

        Args:
            owner_id: Authenticated seller identity

        Returns:
            A credential outside the refresh window

        Raises:
            NotFoundError: If the owner never completed OAuth
            MeliOAuthError: If the refresh is rejected (verbatim)
        """
        credential = await self.load(owner_id)
        if not self._is_stale(credential):
            return credential

        async with self.locks.hold(owner_id):
            # Whoever held the lock before us may already have refreshed
            credential = await self.load(owner_id)
            if not self._is_stale(credential):
                logger.debug(f"Credential for owner {owner_id} refreshed concurrently")
                return credential

            logger.info(
                f"Credential for owner {owner_id} is stale "
                f"(expires {credential.expires_at.isoformat()}), refreshing"
            )
            token = await self.oauth_client.refresh(credential.refresh_token)

            won = await self.store.replace_tokens(
                credential.id,
                credential.version,
                token,
                issued_at=self.clock(),
            )
            if not won:
                logger.warning(
                    f"Credential for owner {owner_id} was replaced by another "
                    "writer during refresh, re-reading"
                )
            else:
                logger.info(f"Refreshed MercadoLibre token for owner {owner_id}")

            return await self.load(owner_id)

    async def ensure_valid_for_shop(self, shop_id: str) -> MeliCredential:
        """Return the credential connected to a host shop, refreshing it if stale.

        Raises:
            NotFoundError: If no seller connected MercadoLibre for the shop
        """
        credential = await self.store.get_by_shop(shop_id)
        if credential is None:
            raise NotFoundError(f"no MercadoLibre credentials found for shop {shop_id}")
        return await self.ensure_valid(credential.owner_id)


class MeliCredentialService:
    """OAuth onboarding: authorization URL, code exchange, status, disconnect."""

    def __init__(
        self,
        db: AsyncSession,
        oauth_client: Optional[MeliOAuthClient] = None,
        shops_client: Optional[ShopsClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = CredentialStore(db)
        self.oauth_client = oauth_client or MeliOAuthClient()
        self.shops_client = shops_client or ShopsClient()
        self.clock = clock
        self.lifecycle = CredentialLifecycleManager(
            self.store, self.oauth_client, clock=clock
        )

    def get_oauth_url(self) -> str:
        return self.oauth_client.get_authorization_url()

    async def create_from_code(
        self,
        owner_id: str,
        code: str,
        authorization: str,
    ) -> MeliCredential:
        """Exchange an authorization code and store the resulting credential.

        An existing credential for the owner is replaced in place, keeping its
        record identity and creation timestamp.

        Args:
            owner_id: Authenticated seller identity
            code: Authorization code from the MercadoLibre redirect
            authorization: Caller's Authorization header, forwarded to the shops service

        Returns:
            The stored credential
        """
        shop = await self.shops_client.get_shop(authorization)
        token = await self.oauth_client.exchange_code(code)
        issued_at = self.clock()

        async with self.lifecycle.locks.hold(owner_id):
            for _ in range(MAX_REPLACE_ATTEMPTS):
                existing = await self.store.get_by_owner(owner_id)
                if existing is None:
                    credential = MeliCredential(
                        owner_id=owner_id,
                        shop_id=shop.id,
                        access_token=token.access_token,
                        refresh_token=token.refresh_token,
                        token_type=token.token_type,
                        scope=token.scope,
                        expires_in=token.expires_in,
                        issued_at=issued_at,
                        meli_user_id=token.user_id,
                        version=1,
                    )
                    logger.info(f"Storing new MercadoLibre credential for owner {owner_id}")
                    return await self.store.create(credential)

                version = existing.version
                won = await self.store.replace_tokens(
                    existing.id,
                    version,
                    token,
                    issued_at=issued_at,
                    shop_id=shop.id,
                )
                if won:
                    logger.info(f"Replaced MercadoLibre credential for owner {owner_id}")
                    return await self.lifecycle.load(owner_id)

                logger.warning(
                    f"Credential for owner {owner_id} changed at version "
                    f"{version} while storing a new code, retrying"
                )

        raise InternalServerError(
            f"credential for owner {owner_id} kept changing while storing a new code"
        )

    async def get_shop_status(self, authorization: str) -> MeliCredential:
        """Credential connected to the caller's host shop, refreshed if due.

        Args:
            authorization: Caller's Authorization header, forwarded to the shops service
        """
        shop = await self.shops_client.get_shop(authorization)
        return await self.lifecycle.ensure_valid_for_shop(shop.id)

    async def get_status(self, owner_id: str) -> MeliCredential:
        return await self.lifecycle.ensure_valid(owner_id)

    async def disconnect(self, owner_id: str) -> None:
        """Delete the owner's credential.

        Raises:
            NotFoundError: If there was nothing to delete
        """
        async with self.lifecycle.locks.hold(owner_id):
            deleted = await self.store.delete_by_owner(owner_id)
        if not deleted:
            raise NotFoundError(f"no MercadoLibre credentials found for owner {owner_id}")
        logger.info(f"Disconnected MercadoLibre account for owner {owner_id}")
