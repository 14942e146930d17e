"""
Fetch WHOOP resources and reshape them into the public response schemas.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

from app.clients.whoop_api import UpstreamDataError, WhoopApiClient
from app.schemas.whoop import (
    DailySummary,
    HeartRateZoneMinutes,
    Page,
    ProfileSummary,
    RecoverySummary,
    SleepSummary,
    StrainSummary,
    WorkoutSummary,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 25
_MILLIS_PER_HOUR = 3_600_000
_MILLIS_PER_MINUTE = 60_000


def _score(record: Dict[str, Any]) -> Dict[str, Any]:
    score = record.get("score")
    return score if isinstance(score, dict) else {}


def _millis_to(value: Any, divisor: int) -> Optional[float]:
    if value is None:
        return None
    return round(float(value) / divisor, 2)


def _sum_millis(*values: Any) -> Optional[float]:
    present = [float(value) for value in values if value is not None]
    if not present:
        return None
    return sum(present)


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def collection_window(
    *,
    day: Optional[date] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> tuple[Optional[str], Optional[str]]:
    """Resolve a UTC day or explicit bounds into WHOOP ``start``/``end`` params."""
    if day is not None:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
    return (
        _isoformat(start) if start else None,
        _isoformat(end) if end else None,
    )


def normalize_profile(
    profile: Dict[str, Any], body: Optional[Dict[str, Any]] = None
) -> ProfileSummary:
    body = body or {}
    return ProfileSummary(
        user_id=profile.get("user_id"),
        email=profile.get("email"),
        first_name=profile.get("first_name"),
        last_name=profile.get("last_name"),
        height_meter=body.get("height_meter"),
        weight_kilogram=body.get("weight_kilogram"),
        max_heart_rate=body.get("max_heart_rate"),
    )


def normalize_recovery(record: Dict[str, Any]) -> RecoverySummary:
    score = _score(record)
    return RecoverySummary(
        cycle_id=record.get("cycle_id"),
        sleep_id=record.get("sleep_id"),
        created_at=record.get("created_at"),
        score_state=record.get("score_state"),
        recovery_score=score.get("recovery_score"),
        resting_heart_rate=score.get("resting_heart_rate"),
        hrv_rmssd_milli=score.get("hrv_rmssd_milli"),
        spo2_percentage=score.get("spo2_percentage"),
        skin_temp_celsius=score.get("skin_temp_celsius"),
        user_calibrating=score.get("user_calibrating"),
    )


def normalize_sleep(record: Dict[str, Any]) -> SleepSummary:
    score = _score(record)
    stages = score.get("stage_summary") or {}
    light = stages.get("total_light_sleep_time_milli")
    deep = stages.get("total_slow_wave_sleep_time_milli")
    rem = stages.get("total_rem_sleep_time_milli")
    return SleepSummary(
        id=record.get("id"),
        cycle_id=record.get("cycle_id"),
        start=record.get("start"),
        end=record.get("end"),
        nap=bool(record.get("nap", False)),
        score_state=record.get("score_state"),
        performance_percentage=score.get("sleep_performance_percentage"),
        efficiency_percentage=score.get("sleep_efficiency_percentage"),
        consistency_percentage=score.get("sleep_consistency_percentage"),
        respiratory_rate=score.get("respiratory_rate"),
        time_in_bed_hours=_millis_to(stages.get("total_in_bed_time_milli"), _MILLIS_PER_HOUR),
        total_sleep_hours=_millis_to(_sum_millis(light, deep, rem), _MILLIS_PER_HOUR),
        light_sleep_hours=_millis_to(light, _MILLIS_PER_HOUR),
        deep_sleep_hours=_millis_to(deep, _MILLIS_PER_HOUR),
        rem_sleep_hours=_millis_to(rem, _MILLIS_PER_HOUR),
        awake_hours=_millis_to(stages.get("total_awake_time_milli"), _MILLIS_PER_HOUR),
        disturbance_count=stages.get("disturbance_count"),
        sleep_cycle_count=stages.get("sleep_cycle_count"),
    )


def normalize_cycle(record: Dict[str, Any]) -> StrainSummary:
    score = _score(record)
    return StrainSummary(
        cycle_id=record.get("id"),
        start=record.get("start"),
        end=record.get("end"),
        score_state=record.get("score_state"),
        strain=score.get("strain"),
        kilojoule=score.get("kilojoule"),
        average_heart_rate=score.get("average_heart_rate"),
        max_heart_rate=score.get("max_heart_rate"),
    )


def normalize_workout(record: Dict[str, Any]) -> WorkoutSummary:
    score = _score(record)
    zones = score.get("zone_durations")
    zone_minutes = None
    if isinstance(zones, dict):
        zone_minutes = HeartRateZoneMinutes(
            zone_zero=_millis_to(zones.get("zone_zero_milli"), _MILLIS_PER_MINUTE),
            zone_one=_millis_to(zones.get("zone_one_milli"), _MILLIS_PER_MINUTE),
            zone_two=_millis_to(zones.get("zone_two_milli"), _MILLIS_PER_MINUTE),
            zone_three=_millis_to(zones.get("zone_three_milli"), _MILLIS_PER_MINUTE),
            zone_four=_millis_to(zones.get("zone_four_milli"), _MILLIS_PER_MINUTE),
            zone_five=_millis_to(zones.get("zone_five_milli"), _MILLIS_PER_MINUTE),
        )
    return WorkoutSummary(
        id=record.get("id"),
        sport_name=record.get("sport_name"),
        start=record.get("start"),
        end=record.get("end"),
        score_state=record.get("score_state"),
        strain=score.get("strain"),
        average_heart_rate=score.get("average_heart_rate"),
        max_heart_rate=score.get("max_heart_rate"),
        kilojoule=score.get("kilojoule"),
        distance_meter=score.get("distance_meter"),
        altitude_gain_meter=score.get("altitude_gain_meter"),
        zone_minutes=zone_minutes,
    )


class WhoopDataService:
    """Proxy WHOOP collections and nested cycle resources."""

    def __init__(self, api_client: WhoopApiClient) -> None:
        self._api = api_client

    async def get_profile(self) -> ProfileSummary:
        profile = await self._api.get("user/profile/basic")
        try:
            body = await self._api.get("user/measurement/body")
        except UpstreamDataError as exc:
            # Body measurements need their own scope; the profile stands alone.
            if exc.status_code not in (401, 403, 404):
                raise
            logger.info("WHOOP body measurements unavailable (status %s)", exc.status_code)
            body = None
        return normalize_profile(profile, body)

    async def list_recoveries(self, **window: Any) -> Page[RecoverySummary]:
        return await self._collection("recovery", normalize_recovery, **window)

    async def list_sleeps(self, **window: Any) -> Page[SleepSummary]:
        return await self._collection("activity/sleep", normalize_sleep, **window)

    async def list_cycles(self, **window: Any) -> Page[StrainSummary]:
        return await self._collection("cycle", normalize_cycle, **window)

    async def list_workouts(self, **window: Any) -> Page[WorkoutSummary]:
        return await self._collection("activity/workout", normalize_workout, **window)

    async def latest_recovery(self) -> RecoverySummary:
        cycle = await self._latest_cycle()
        payload = await self._api.get(f"cycle/{cycle['id']}/recovery")
        return normalize_recovery(payload)

    async def latest_sleep(self) -> SleepSummary:
        cycle = await self._latest_cycle()
        payload = await self._api.get(f"cycle/{cycle['id']}/sleep")
        return normalize_sleep(payload)

    async def today(self) -> DailySummary:
        """Latest cycle plus whichever of its recovery and sleep are available."""
        cycle = await self._latest_cycle()
        recovery = await self._optional(f"cycle/{cycle['id']}/recovery", normalize_recovery)
        sleep = await self._optional(f"cycle/{cycle['id']}/sleep", normalize_sleep)
        return DailySummary(strain=normalize_cycle(cycle), recovery=recovery, sleep=sleep)

    async def _latest_cycle(self) -> Dict[str, Any]:
        """Most recent cycle; the returned record always carries an ``id``."""
        payload = await self._api.get("cycle", {"limit": 1})
        records = payload.get("records") or []
        if not records:
            raise UpstreamDataError("WHOOP returned no cycles.", status_code=404)
        cycle = records[0]
        if not isinstance(cycle, dict) or cycle.get("id") is None:
            raise UpstreamDataError(
                "WHOOP returned a cycle without an id.",
                status_code=502,
                body=str(cycle)[:2000],
            )
        return cycle

    async def _optional(
        self, path: str, normalize: Callable[[Dict[str, Any]], T]
    ) -> Optional[T]:
        try:
            payload = await self._api.get(path)
        except UpstreamDataError as exc:
            if exc.status_code != 404:
                raise
            return None
        return normalize(payload)

    async def _collection(
        self,
        path: str,
        normalize: Callable[[Dict[str, Any]], T],
        *,
        limit: int = 10,
        day: Optional[date] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        next_token: Optional[str] = None,
    ) -> Page[T]:
        window_start, window_end = collection_window(day=day, start=start, end=end)
        params = {
            "limit": max(1, min(limit, MAX_PAGE_SIZE)),
            "start": window_start,
            "end": window_end,
            "nextToken": next_token,
        }
        payload = await self._api.get(path, params)
        records = [normalize(record) for record in payload.get("records") or []]
        return Page(records=records, next_token=payload.get("next_token"))


__all__ = [
    "MAX_PAGE_SIZE",
    "WhoopDataService",
    "collection_window",
    "normalize_cycle",
    "normalize_profile",
    "normalize_recovery",
    "normalize_sleep",
    "normalize_workout",
]
