"""MercadoLibre OAuth credential storage model."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MeliCredential(Base, TimestampMixin):
    """A seller's MercadoLibre OAuth 2.0 credential, one per owner."""

    __tablename__ = "meli_credentials"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    shop_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    token_type: Mapped[str] = mapped_column(String(50), default="Bearer", nullable=False)
    scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_in: Mapped[int] = mapped_column(Integer, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    meli_user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    @property
    def expires_at(self) -> datetime:
        """Hard expiry of the access token."""
        return _as_utc(self.issued_at) + timedelta(seconds=self.expires_in)

    def stale_at(self, margin: timedelta) -> datetime:
        """Instant after which the credential should be proactively refreshed."""
        return self.expires_at - margin

    def is_stale(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        """Check whether the token is inside the refresh window (or expired)."""
        now = now or datetime.now(timezone.utc)
        return now > self.stale_at(margin)
