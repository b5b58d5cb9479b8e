"""Shared API dependencies."""

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.session import async_session_maker
from app.services.catalog import ItemsClient
from app.services.meli import (
    CredentialLifecycleManager,
    CredentialStore,
    MeliClient,
    MeliCredentialService,
    SyncOrchestrator,
)

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def _decode_token(token: str) -> str:
    """Decode and validate JWT token, return the owner id."""
    payload = jwt.decode(
        token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
    )
    owner_id: str | None = payload.get("sub")
    if not owner_id:
        raise JWTError("No subject in token")
    return owner_id


async def get_current_owner(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Get the authenticated seller from the bearer JWT."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        return _decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception


def get_authorization(request: Request) -> str:
    """Raw Authorization header, forwarded to host services."""
    return request.headers.get("Authorization", "")


def get_credential_service(
    db: AsyncSession = Depends(get_db),
) -> MeliCredentialService:
    return MeliCredentialService(db)


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
) -> CredentialLifecycleManager:
    return CredentialLifecycleManager(CredentialStore(db))


def get_meli_client() -> MeliClient:
    return MeliClient()


def get_items_client() -> ItemsClient:
    return ItemsClient()


def get_sync_orchestrator(
    lifecycle: CredentialLifecycleManager = Depends(get_lifecycle),
    meli_client: MeliClient = Depends(get_meli_client),
    items_client: ItemsClient = Depends(get_items_client),
) -> SyncOrchestrator:
    return SyncOrchestrator(lifecycle, meli_client=meli_client, items_client=items_client)
