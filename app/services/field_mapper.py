"""Translate raw Garmin Connect payloads into the canonical column names."""
from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Iterable


# Garmin activity field -> Activity column
ACTIVITY_FIELD_MAP: dict[str, str] = {
    "activityId": "garmin_activity_id",
    "startTimeLocal": "activity_date",
    "activityName": "activity_name",
    "distance": "distance_meters",
    "duration": "duration_seconds",
    "averageHR": "average_hr_bpm",
    "maxHR": "max_hr_bpm",
    "hrTimeInZone_1": "hr_time_in_zone1",
    "hrTimeInZone_2": "hr_time_in_zone2",
    "hrTimeInZone_3": "hr_time_in_zone3",
    "hrTimeInZone_4": "hr_time_in_zone4",
    "hrTimeInZone_5": "hr_time_in_zone5",
    "aerobicTrainingEffect": "aerobic_training_effect",
    "anaerobicTrainingEffect": "anaerobic_training_effect",
    "trainingEffectLabel": "training_effect_label",
    "elevationGain": "elevation_gain",
    "elevationLoss": "elevation_loss",
    "locationName": "location_name",
}

INTEGER_ACTIVITY_FIELDS = {
    "garmin_activity_id",
    "duration_seconds",
    "average_hr_bpm",
    "max_hr_bpm",
    "hr_time_in_zone1",
    "hr_time_in_zone2",
    "hr_time_in_zone3",
    "hr_time_in_zone4",
    "hr_time_in_zone5",
}

FLOAT_ACTIVITY_FIELDS = {
    "distance_meters",
    "aerobic_training_effect",
    "anaerobic_training_effect",
    "elevation_gain",
    "elevation_loss",
}

# Garmin race prediction field -> RunningFitnessProfile column
RACE_PREDICTION_MAP: dict[str, str] = {
    "time5K": "predicted_5k_seconds",
    "time10K": "predicted_10k_seconds",
    "timeHalfMarathon": "predicted_half_seconds",
    "timeMarathon": "predicted_marathon_seconds",
}

VOLUME_WINDOW_WEEKS = 4


def as_dict(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def as_number(value: Any) -> float | int | None:
    """Accept finite ints/floats and numeric strings; reject bools and junk."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def as_integer(value: Any) -> int | None:
    numeric = as_number(value)
    if numeric is None:
        return None
    return int(numeric)  # truncates toward zero


def as_string(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def as_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def extract_activity_type(raw: Any) -> str | None:
    """Read the type key from ``activityType`` as a nested object or a bare string."""

    source = as_dict(raw)
    if source is None:
        return None
    activity_type = source.get("activityType")
    nested = as_dict(activity_type)
    if nested is not None:
        return as_string(nested.get("typeKey"))
    return as_string(activity_type)


def is_running_activity(raw: Any, mapped_type: str | None = None) -> bool:
    if mapped_type and "running" in mapped_type.lower():
        return True
    type_key = extract_activity_type(raw)
    return bool(type_key and "running" in type_key.lower())


def extract_activity_day(raw: Any) -> date | None:
    """Calendar day of an activity, taken from its local (or GMT) start time."""

    source = as_dict(raw)
    if source is None:
        return None
    for key in ("startTimeLocal", "startTimeGMT", "activityDate"):
        text = as_string(source.get(key))
        if text and len(text) >= 10:
            try:
                return date.fromisoformat(text[:10])
            except ValueError:
                continue
    return None


def map_activity(raw: Any) -> dict[str, Any]:
    """Map one raw Garmin activity onto Activity columns, skipping absent values."""

    source = as_dict(raw)
    if source is None:
        return {}

    mapped: dict[str, Any] = {}
    for garmin_field, column in ACTIVITY_FIELD_MAP.items():
        value = source.get(garmin_field)
        if value is None:
            continue

        if column == "activity_date":
            converted = as_datetime(value)
        elif column in INTEGER_ACTIVITY_FIELDS:
            converted = as_integer(value)
        elif column in FLOAT_ACTIVITY_FIELDS:
            converted = as_number(value)
            converted = float(converted) if converted is not None else None
        else:
            converted = as_string(value)

        if converted is not None:
            mapped[column] = converted

    activity_type = extract_activity_type(source)
    if activity_type:
        mapped["activity_type"] = activity_type

    if isinstance(source.get("splitSummaries"), list):
        mapped["split_summaries_json"] = source["splitSummaries"]

    description = as_string(source.get("description"))
    if description is not None:
        mapped["activity_description"] = description

    return mapped


def map_daily_health(
    reading_date: date,
    sleep: Any = None,
    hrv: Any = None,
    resting_heart_rate: Any = None,
) -> dict[str, Any]:
    """
    Merge the three per-day Garmin payloads into DailyHealthReading columns.

    Always contains ``reading_date``; any other key means at least one metric
    was present. The sleep score is read from the current
    ``sleepScores.overall.value`` shape, falling back to the legacy
    ``overallSleepScore.value``.
    """
    mapped: dict[str, Any] = {"reading_date": reading_date}

    sleep_payload = as_dict(sleep)
    if sleep_payload is not None:
        avg_overnight_hrv = as_number(sleep_payload.get("avgOvernightHrv"))
        if avg_overnight_hrv is not None:
            mapped["avg_overnight_hrv"] = float(avg_overnight_hrv)

        hrv_status = as_string(sleep_payload.get("hrvStatus"))
        if hrv_status is not None:
            mapped["hrv_status"] = hrv_status

        resting_hr = as_integer(sleep_payload.get("restingHeartRate"))
        if resting_hr is not None:
            mapped["resting_hr"] = resting_hr

        daily_sleep = as_dict(sleep_payload.get("dailySleepDTO"))
        if daily_sleep is not None:
            scores = as_dict(daily_sleep.get("sleepScores")) or {}
            overall = as_dict(scores.get("overall")) or {}
            score = as_integer(overall.get("value"))
            if score is None:
                legacy = as_dict(daily_sleep.get("overallSleepScore")) or {}
                score = as_integer(legacy.get("value"))
            if score is not None:
                mapped["sleep_score"] = score

            total_sleep = as_integer(daily_sleep.get("sleepTimeSeconds"))
            if total_sleep is not None:
                mapped["total_sleep_seconds"] = total_sleep

            sleep_stress = as_integer(daily_sleep.get("sleepStress"))
            if sleep_stress is not None:
                mapped["sleep_stress"] = sleep_stress

            feedback = as_string(daily_sleep.get("sleepScoreGarminFeedback"))
            if feedback is not None:
                mapped["sleep_score_garmin_feedback"] = feedback

    hrv_payload = as_dict(hrv)
    if hrv_payload is not None:
        summary = as_dict(hrv_payload.get("hrvSummary")) or {}
        weekly_avg = as_number(summary.get("weeklyAvg"))
        if weekly_avg is not None:
            mapped["hrv_7day_avg"] = float(weekly_avg)
        if "avg_overnight_hrv" not in mapped:
            last_night = as_number(summary.get("lastNightAvg"))
            if last_night is not None:
                mapped["avg_overnight_hrv"] = float(last_night)
        if "hrv_status" not in mapped:
            status = as_string(summary.get("status"))
            if status is not None:
                mapped["hrv_status"] = status

    rhr_payload = as_dict(resting_heart_rate)
    if rhr_payload is not None:
        weekly_rhr = as_integer(rhr_payload.get("lastSevenDaysAvgRestingHeartRate"))
        if weekly_rhr is not None:
            mapped["resting_hr_7day_avg"] = weekly_rhr
        if "resting_hr" not in mapped:
            resting_hr = as_integer(rhr_payload.get("restingHeartRate"))
            if resting_hr is not None:
                mapped["resting_hr"] = resting_hr

    return mapped


def has_health_metrics(mapped: dict[str, Any]) -> bool:
    return any(key != "reading_date" for key in mapped)


def map_race_predictions(raw: Any) -> dict[str, int]:
    source = as_dict(raw)
    if source is None:
        return {}

    mapped: dict[str, int] = {}
    for garmin_field, column in RACE_PREDICTION_MAP.items():
        value = as_integer(source.get(garmin_field))
        if value is not None:
            mapped[column] = value
    return mapped


def map_running_volume(raw_activities: Iterable[Any]) -> dict[str, float]:
    """
    Summarise four weeks of running volume.

    The weekly average is total distance over the window divided by four weeks,
    not by the number of runs.

    Returns:
        weekly_volume_avg_km, longest_run_km, running_distance_avg_km
        (empty when there are no running activities with positive distance)
    """
    distances_m: list[float] = []
    for activity in raw_activities:
        source = as_dict(activity)
        if source is None or not is_running_activity(source):
            continue
        distance = as_number(source.get("distance"))
        if distance is not None and distance > 0:
            distances_m.append(float(distance))

    if not distances_m:
        return {}

    total_m = sum(distances_m)
    return {
        "weekly_volume_avg_km": round(total_m / VOLUME_WINDOW_WEEKS / 1000, 2),
        "longest_run_km": round(max(distances_m) / 1000, 2),
        "running_distance_avg_km": round(total_m / len(distances_m) / 1000, 2),
    }
