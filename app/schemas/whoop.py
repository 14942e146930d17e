"""Public response schemas for the simplified WHOOP data API."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

RecordT = TypeVar("RecordT")


class Page(BaseModel, Generic[RecordT]):
    """One page of records plus the cursor for the next page."""

    records: List[RecordT] = Field(default_factory=list)
    next_token: Optional[str] = None


class ProfileSummary(BaseModel):
    user_id: Optional[int] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    height_meter: Optional[float] = None
    weight_kilogram: Optional[float] = None
    max_heart_rate: Optional[int] = None


class RecoverySummary(BaseModel):
    cycle_id: Optional[int] = None
    sleep_id: Optional[str] = None
    created_at: Optional[datetime] = None
    score_state: Optional[str] = None
    recovery_score: Optional[float] = None
    resting_heart_rate: Optional[float] = None
    hrv_rmssd_milli: Optional[float] = None
    spo2_percentage: Optional[float] = None
    skin_temp_celsius: Optional[float] = None
    user_calibrating: Optional[bool] = None


class SleepSummary(BaseModel):
    id: Optional[str] = None
    cycle_id: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    nap: bool = False
    score_state: Optional[str] = None
    performance_percentage: Optional[float] = None
    efficiency_percentage: Optional[float] = None
    consistency_percentage: Optional[float] = None
    respiratory_rate: Optional[float] = None
    time_in_bed_hours: Optional[float] = None
    total_sleep_hours: Optional[float] = None
    light_sleep_hours: Optional[float] = None
    deep_sleep_hours: Optional[float] = None
    rem_sleep_hours: Optional[float] = None
    awake_hours: Optional[float] = None
    disturbance_count: Optional[int] = None
    sleep_cycle_count: Optional[int] = None


class StrainSummary(BaseModel):
    cycle_id: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    score_state: Optional[str] = None
    strain: Optional[float] = None
    kilojoule: Optional[float] = None
    average_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None


class HeartRateZoneMinutes(BaseModel):
    zone_zero: Optional[float] = None
    zone_one: Optional[float] = None
    zone_two: Optional[float] = None
    zone_three: Optional[float] = None
    zone_four: Optional[float] = None
    zone_five: Optional[float] = None


class WorkoutSummary(BaseModel):
    id: Optional[str] = None
    sport_name: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    score_state: Optional[str] = None
    strain: Optional[float] = None
    average_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    kilojoule: Optional[float] = None
    distance_meter: Optional[float] = None
    altitude_gain_meter: Optional[float] = None
    zone_minutes: Optional[HeartRateZoneMinutes] = None


class DailySummary(BaseModel):
    """Latest physiological cycle with its recovery and sleep."""

    strain: StrainSummary
    recovery: Optional[RecoverySummary] = None
    sleep: Optional[SleepSummary] = None


class AuthStatus(BaseModel):
    authenticated: bool
    expires_at: Optional[datetime] = None


__all__ = [
    "AuthStatus",
    "DailySummary",
    "HeartRateZoneMinutes",
    "Page",
    "ProfileSummary",
    "RecoverySummary",
    "SleepSummary",
    "StrainSummary",
    "WorkoutSummary",
]
