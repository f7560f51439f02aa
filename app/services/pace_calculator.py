"""Training pace zones derived from a predicted 10K time."""

from __future__ import annotations

import logging
import math


logger = logging.getLogger(__name__)

# Multipliers applied to 10K race pace (seconds per km).
PACE_MULTIPLIERS: dict[str, float] = {
    "easy_pace_low": 1.24,
    "easy_pace_high": 1.36,
    "tempo_pace": 1.09,
    "threshold_pace": 1.03,
    "interval_pace": 0.95,
    "repetition_pace": 0.89,
}


def calculate_training_paces(predicted_10k_seconds: float) -> dict[str, int]:
    """
    Calculate six VDOT-style pace zones from a predicted 10K finish time.

    The 10K time is converted to a per-kilometre base pace and each zone is the
    base multiplied by a fixed factor, floored to whole seconds per km.

    Args:
        predicted_10k_seconds: Predicted 10K finish time in seconds

    Returns:
        Dictionary with easy_pace_low, easy_pace_high, tempo_pace,
        threshold_pace, interval_pace and repetition_pace (seconds per km)

    Raises:
        ValueError: If the prediction is not a positive finite number

    Example:
        >>> calculate_training_paces(2400)["threshold_pace"]
        247
    """
    if (
        isinstance(predicted_10k_seconds, bool)
        or not isinstance(predicted_10k_seconds, (int, float))
        or not math.isfinite(predicted_10k_seconds)
        or predicted_10k_seconds <= 0
    ):
        raise ValueError("predicted_10k_seconds must be a positive number.")

    base = predicted_10k_seconds / 10
    paces = {zone: math.floor(base * multiplier) for zone, multiplier in PACE_MULTIPLIERS.items()}
    logger.debug("Derived paces from 10K=%ss: %s", predicted_10k_seconds, paces)
    return paces


def format_pace(seconds_per_km: int | None) -> str:
    """Render seconds per km as ``m:ss/km`` for prompts and logs."""

    if seconds_per_km is None:
        return "n/a"
    minutes, seconds = divmod(int(seconds_per_km), 60)
    return f"{minutes}:{seconds:02d}/km"
