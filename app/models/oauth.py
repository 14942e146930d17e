"""
Domain models for OAuth token storage.
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field


class TokenRecord(BaseModel):
    """The access/refresh token pair held for the connected WHOOP identity."""

    access_token: str
    refresh_token: Optional[str] = Field(
        None,
        description="Absent when the provider issued no refresh token.",
    )
    issued_at: datetime
    expires_at: datetime = Field(
        ..., description="issued_at + expires_in, fixed when the token was issued."
    )
    scope: Optional[str] = None
    token_type: str = "bearer"

    @classmethod
    def issue(
        cls,
        *,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: int,
        issued_at: datetime,
        scope: Optional[str] = None,
        token_type: Optional[str] = None,
    ) -> "TokenRecord":
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=expires_in),
            scope=scope,
            token_type=token_type or "bearer",
        )

    def is_stale(self, now: datetime, skew: timedelta) -> bool:
        """True once ``now`` has entered the skew window before expiry."""
        return now >= self.expires_at - skew


__all__ = ["TokenRecord"]
