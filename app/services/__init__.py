"""Service layer exports."""

from .token_lifecycle import TokenLifecycleManager
from .whoop_data import WhoopDataService

__all__ = [
    "TokenLifecycleManager",
    "WhoopDataService",
]
