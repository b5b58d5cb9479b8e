"""Sync run and credential API schemas."""

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FailureStage(str, enum.Enum):
    """Pipeline stage at which an item failed."""

    TRANSFORM = "transform"
    LOAD = "load"


class FailedItem(BaseModel):
    """An item that did not make it into the host catalog."""

    model_config = ConfigDict(frozen=True)

    external_id: str
    title: str = ""
    failure_stage: FailureStage
    error_message: str


class SyncResult(BaseModel):
    """Aggregate outcome of one synchronization run."""

    model_config = ConfigDict(frozen=True)

    batch_id: str
    total_items: int
    created_count: int = 0
    updated_count: int = 0
    failure_count: int = 0
    failed_items: tuple[FailedItem, ...] = ()

    @property
    def success_count(self) -> int:
        return self.created_count + self.updated_count


class OAuthURLResponse(BaseModel):
    url: str


class OAuthCodeRequest(BaseModel):
    """Body posted after MercadoLibre redirects back with an auth code."""

    code: str = Field(..., min_length=1)


class CredentialStatusResponse(BaseModel):
    """Stored credential without its tokens."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    shop_id: str
    token_type: str
    scope: Optional[str] = None
    expires_in: int
    issued_at: datetime
    expires_at: datetime
    meli_user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ListingPageResponse(BaseModel):
    """One page of a seller's listing ids."""

    results: list[str]
    total: int
    offset: int
    limit: int
