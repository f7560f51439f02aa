"""Tests for translating raw Garmin payloads into column values."""
from datetime import date, datetime

import pytest

from app.services.field_mapper import (
    as_integer,
    as_number,
    extract_activity_day,
    has_health_metrics,
    is_running_activity,
    map_activity,
    map_daily_health,
    map_race_predictions,
    map_running_volume,
)


def test_map_activity_coerces_and_skips_missing_values():
    raw = {
        "activityId": "12345",
        "activityName": "Lunch Run",
        "startTimeLocal": "2026-02-03 12:15:00",
        "activityType": {"typeKey": "trail_running"},
        "distance": "10000.5",
        "duration": 2999.9,
        "averageHR": 151.6,
        "maxHR": None,
        "elevationGain": 120,
        "splitSummaries": [{"splitType": "INTERVAL_ACTIVE"}],
        "description": "Felt good",
    }

    mapped = map_activity(raw)

    assert mapped["garmin_activity_id"] == 12345
    assert mapped["activity_date"] == datetime(2026, 2, 3, 12, 15)
    assert mapped["distance_meters"] == 10000.5
    assert mapped["duration_seconds"] == 2999
    assert mapped["average_hr_bpm"] == 151
    assert mapped["elevation_gain"] == 120.0
    assert mapped["activity_type"] == "trail_running"
    assert mapped["split_summaries_json"] == [{"splitType": "INTERVAL_ACTIVE"}]
    assert mapped["activity_description"] == "Felt good"
    assert "max_hr_bpm" not in mapped


def test_map_activity_ignores_non_objects():
    assert map_activity(None) == {}
    assert map_activity(["activityId"]) == {}


@pytest.mark.parametrize(
    "value, expected",
    [(True, None), ("abc", None), ("", None), (float("nan"), None), ("42.5", 42.5), (7, 7)],
)
def test_as_number(value, expected):
    assert as_number(value) == expected


def test_as_integer_truncates():
    assert as_integer(59.9) == 59
    assert as_integer("-3.7") == -3


def test_running_detection():
    assert is_running_activity({"activityType": {"typeKey": "treadmill_running"}})
    assert is_running_activity({"activityType": "running"})
    assert is_running_activity({}, mapped_type="Running")
    assert not is_running_activity({"activityType": {"typeKey": "cycling"}})
    assert not is_running_activity(None)


def test_extract_activity_day_prefers_local_time():
    assert extract_activity_day({"startTimeLocal": "2026-02-01 23:30:00", "startTimeGMT": "2026-02-02 05:30:00"}) == date(
        2026, 2, 1
    )
    assert extract_activity_day({"startTimeGMT": "2026-02-02T05:30:00Z"}) == date(2026, 2, 2)
    assert extract_activity_day({"startTimeLocal": "garbage"}) is None


def test_map_daily_health_merges_three_sources():
    day = date(2026, 2, 2)
    sleep = {
        "avgOvernightHrv": 61,
        "bodyBatteryChange": 45,
        "dailySleepDTO": {
            "sleepTimeSeconds": 26100,
            "sleepStress": 14.2,
            "sleepScoreGarminFeedback": "POSITIVE_DEEP",
            "sleepScores": {"overall": {"value": 84}},
        },
    }
    hrv = {"hrvSummary": {"weeklyAvg": 58.5, "lastNightAvg": 70, "status": "BALANCED"}}
    rhr = {"restingHeartRate": 47, "lastSevenDaysAvgRestingHeartRate": 48}

    mapped = map_daily_health(day, sleep, hrv, rhr)

    assert mapped == {
        "reading_date": day,
        "avg_overnight_hrv": 61.0,
        "sleep_score": 84,
        "total_sleep_seconds": 26100,
        "sleep_stress": 14,
        "sleep_score_garmin_feedback": "POSITIVE_DEEP",
        "hrv_7day_avg": 58.5,
        "hrv_status": "BALANCED",
        "resting_hr_7day_avg": 48,
        "resting_hr": 47,
    }


def test_map_daily_health_reads_legacy_sleep_score():
    mapped = map_daily_health(date(2026, 2, 2), {"dailySleepDTO": {"overallSleepScore": {"value": 77}}})

    assert mapped["sleep_score"] == 77


def test_overnight_body_battery_change_is_not_a_level():
    mapped = map_daily_health(date(2026, 2, 1), {"bodyBatteryChange": -12})

    assert mapped == {"reading_date": date(2026, 2, 1)}
    assert not has_health_metrics(mapped)


def test_empty_day_has_no_metrics():
    mapped = map_daily_health(date(2026, 2, 2), None, {"hrvSummary": None}, "not-a-dict")

    assert mapped == {"reading_date": date(2026, 2, 2)}
    assert not has_health_metrics(mapped)


def test_map_race_predictions():
    assert map_race_predictions({"time5K": 1150.7, "time10K": 2400, "timeMarathon": "11200"}) == {
        "predicted_5k_seconds": 1150,
        "predicted_10k_seconds": 2400,
        "predicted_marathon_seconds": 11200,
    }
    assert map_race_predictions([]) == {}


def test_running_volume_divides_by_four_weeks():
    activities = [
        {"activityType": {"typeKey": "running"}, "distance": 10000},
        {"activityType": {"typeKey": "running"}, "distance": 6000},
        {"activityType": {"typeKey": "trail_running"}, "distance": 21000},
        {"activityType": {"typeKey": "cycling"}, "distance": 40000},
        {"activityType": {"typeKey": "running"}, "distance": 0},
    ]

    assert map_running_volume(activities) == {
        "weekly_volume_avg_km": 9.25,
        "longest_run_km": 21.0,
        "running_distance_avg_km": 12.33,
    }


def test_running_volume_empty_without_runs():
    assert map_running_volume([{"activityType": {"typeKey": "cycling"}, "distance": 1000}]) == {}
