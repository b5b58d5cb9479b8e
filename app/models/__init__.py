"""Database models package."""

from app.models.base import Base
from app.models.meli_credential import MeliCredential

__all__ = [
    "Base",
    "MeliCredential",
]
