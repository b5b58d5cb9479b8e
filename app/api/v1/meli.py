"""MercadoLibre integration API endpoints."""

from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import (
    get_authorization,
    get_credential_service,
    get_current_owner,
    get_items_client,
    get_lifecycle,
    get_meli_client,
    get_sync_orchestrator,
)
from app.config import get_settings
from app.core.errors import BadRequestError
from app.schemas.sync import (
    CredentialStatusResponse,
    ListingPageResponse,
    OAuthCodeRequest,
    OAuthURLResponse,
    SyncResult,
)
from app.services.catalog import ItemsClient
from app.services.meli import (
    CredentialLifecycleManager,
    MeliClient,
    MeliCredentialService,
    SyncOrchestrator,
)

router = APIRouter()
settings = get_settings()


# OAuth / credentials


@router.get("/oauth", response_model=OAuthURLResponse)
async def get_oauth_url(
    service: MeliCredentialService = Depends(get_credential_service),
    _: str = Depends(get_current_owner),
) -> OAuthURLResponse:
    """Get the MercadoLibre authorization URL the seller should visit."""
    return OAuthURLResponse(url=service.get_oauth_url())


@router.post("/oauth", status_code=status.HTTP_204_NO_CONTENT)
async def create_oauth_credentials(
    body: OAuthCodeRequest,
    service: MeliCredentialService = Depends(get_credential_service),
    owner_id: str = Depends(get_current_owner),
    authorization: str = Depends(get_authorization),
) -> Response:
    """Exchange the authorization code from the MercadoLibre redirect."""
    await service.create_from_code(owner_id, body.code, authorization)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/credentials", response_model=CredentialStatusResponse)
async def get_credential_status(
    service: MeliCredentialService = Depends(get_credential_service),
    owner_id: str = Depends(get_current_owner),
) -> CredentialStatusResponse:
    """Current credential (refreshed if due), without its tokens."""
    credential = await service.get_status(owner_id)
    return CredentialStatusResponse.model_validate(credential)


@router.get("/credentials/shop", response_model=CredentialStatusResponse)
async def get_shop_credential_status(
    service: MeliCredentialService = Depends(get_credential_service),
    _: str = Depends(get_current_owner),
    authorization: str = Depends(get_authorization),
) -> CredentialStatusResponse:
    """Credential connected to the caller's host shop, without its tokens."""
    credential = await service.get_shop_status(authorization)
    return CredentialStatusResponse.model_validate(credential)


@router.delete("/credentials", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect(
    service: MeliCredentialService = Depends(get_credential_service),
    owner_id: str = Depends(get_current_owner),
) -> Response:
    """Disconnect the seller's MercadoLibre account."""
    await service.disconnect(owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Sync


@router.post("/sync", response_model=SyncResult)
async def sync_catalog(
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
    owner_id: str = Depends(get_current_owner),
    authorization: str = Depends(get_authorization),
) -> SyncResult:
    """Synchronize the seller's whole MercadoLibre catalog.

    A 200 response may still carry failed items; check ``failed_items``.
    """
    return await orchestrator.run(owner_id, authorization)


# Listings


@router.get("/items", response_model=ListingPageResponse)
async def list_items(
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.SYNC_PAGE_SIZE, ge=1, le=100),
    lifecycle: CredentialLifecycleManager = Depends(get_lifecycle),
    client: MeliClient = Depends(get_meli_client),
    owner_id: str = Depends(get_current_owner),
) -> ListingPageResponse:
    """One page of the seller's listing ids."""
    credential = await lifecycle.ensure_valid(owner_id)
    if not credential.meli_user_id:
        raise BadRequestError("seller_id not found in credentials")

    page = await client.get_user_items_page(
        credential.meli_user_id, credential.access_token, offset=offset, limit=limit
    )
    return ListingPageResponse(
        results=page.results,
        total=page.paging.total,
        offset=offset,
        limit=limit,
    )


@router.get("/items/{item_id}")
async def get_item(
    item_id: str,
    lifecycle: CredentialLifecycleManager = Depends(get_lifecycle),
    client: MeliClient = Depends(get_meli_client),
    owner_id: str = Depends(get_current_owner),
) -> dict:
    """Raw MercadoLibre listing detail."""
    if not item_id.strip():
        raise BadRequestError("meli item id is required")
    credential = await lifecycle.ensure_valid(owner_id)
    return await client.get_item(item_id, credential.access_token)


@router.delete("/batches/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_batch(
    batch_id: str,
    client: ItemsClient = Depends(get_items_client),
    _: str = Depends(get_current_owner),
) -> Response:
    """Delete every host item imported under a sync batch."""
    await client.delete_batch(batch_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
