"""In-memory credential storage for the connected WHOOP identity."""

from __future__ import annotations

from typing import Dict, Optional

from app.models.oauth import TokenRecord

DEFAULT_IDENTITY = "default"


class InMemoryCredentialStore:
    """Token records keyed by identity; the service only ever uses one key."""

    def __init__(self) -> None:
        self._records: Dict[str, TokenRecord] = {}

    def get(self, identity: str = DEFAULT_IDENTITY) -> Optional[TokenRecord]:
        return self._records.get(identity)

    def set(self, record: TokenRecord, identity: str = DEFAULT_IDENTITY) -> None:
        self._records[identity] = record

    def clear(self, identity: str = DEFAULT_IDENTITY) -> None:
        self._records.pop(identity, None)

    def has_record(self, identity: str = DEFAULT_IDENTITY) -> bool:
        return identity in self._records


__all__ = ["DEFAULT_IDENTITY", "InMemoryCredentialStore"]
