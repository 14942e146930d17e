"""Public schema exports."""

from .auth import OAuthCallbackPayload
from .whoop import (
    AuthStatus,
    DailySummary,
    HeartRateZoneMinutes,
    Page,
    ProfileSummary,
    RecoverySummary,
    SleepSummary,
    StrainSummary,
    WorkoutSummary,
)

__all__ = [
    "AuthStatus",
    "DailySummary",
    "HeartRateZoneMinutes",
    "OAuthCallbackPayload",
    "Page",
    "ProfileSummary",
    "RecoverySummary",
    "SleepSummary",
    "StrainSummary",
    "WorkoutSummary",
]
