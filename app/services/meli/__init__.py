"""MercadoLibre integration services.

This package provides:
- OAuth 2.0 authorization-code flow and token refresh
- Credential storage with single-flight refresh
- Catalog read client and paginated fetcher
- Listing to catalog item transformation
- Sync orchestration
"""

from app.services.meli.oauth import (
    MeliOAuthClient,
    MeliOAuthError,
)
from app.services.meli.client import (
    MeliClient,
    MeliAPIError,
)
from app.services.meli.credentials import (
    CredentialStore,
    CredentialLifecycleManager,
    KeyedLock,
    MeliCredentialService,
    credential_locks,
)
from app.services.meli.fetcher import CatalogFetcher
from app.services.meli.size_charts import SizeChartResolver
from app.services.meli.transformer import (
    TransformError,
    TransformOutcome,
    transform_item,
    transform_safely,
)
from app.services.meli.sync import (
    SyncOrchestrator,
    batch_id_for,
)

__all__ = [
    # OAuth
    "MeliOAuthClient",
    "MeliOAuthError",
    # Client
    "MeliClient",
    "MeliAPIError",
    # Credentials
    "CredentialStore",
    "CredentialLifecycleManager",
    "KeyedLock",
    "MeliCredentialService",
    "credential_locks",
    # Extraction
    "CatalogFetcher",
    "SizeChartResolver",
    # Transformation
    "TransformError",
    "TransformOutcome",
    "transform_item",
    "transform_safely",
    # Sync
    "SyncOrchestrator",
    "batch_id_for",
]
