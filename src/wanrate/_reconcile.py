"""
Measurement reconciliation.

Turns one raw throughput measurement into a recommended maximum rate by
blending it with the learned hourly baseline, adding protocol overhead,
and applying the safety ceilings.

Example:
    >>> from wanrate import RateControlConfig, reconcile
    >>> config = RateControlConfig(min_rate_mbps=50, max_rate_mbps=100, absolute_max_rate_mbps=100)
    >>> reconcile(measured_mbps=95, baseline_mbps=100, config=config)
    95
"""

from __future__ import annotations

import logging

from wanrate._baseline import ThroughputSample
from wanrate._config import RateControlConfig
from wanrate._utils import is_finite_number, round_down, round_half_up

logger = logging.getLogger(__name__)

# Measurements at or above this share of the baseline count as "within range"
WITHIN_BASELINE_RATIO = 0.90

# Reconciled rates never exceed this share of the configured maximum
MAX_RATE_SAFETY_RATIO = 0.95

# Plausible download range for a single measurement
MIN_PLAUSIBLE_DOWNLOAD_MBPS = 1.0
MAX_PLAUSIBLE_DOWNLOAD_MBPS = 10_000.0


class InvalidMeasurementError(ValueError):
    """
    Raised when a measurement or baseline value cannot be reconciled.

    Attributes:
        field: Name of the offending input.
        value: The rejected value.
    """

    def __init__(self, field: str, value: object, message: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r}. {message}")


def _validate_inputs(measured_mbps: float, baseline_mbps: float | None) -> None:
    if not is_finite_number(measured_mbps) or measured_mbps <= 0:
        raise InvalidMeasurementError("measured_mbps", measured_mbps, "Must be a finite number greater than 0.")
    if baseline_mbps is not None and (not is_finite_number(baseline_mbps) or baseline_mbps < 0):
        raise InvalidMeasurementError("baseline_mbps", baseline_mbps, "Must be a finite number >= 0.")


def blend(measured_mbps: float, baseline_mbps: float | None, config: RateControlConfig) -> float:
    """
    Blend a measurement with the hourly baseline.

    Without a baseline (None or 0) the measurement is returned unchanged.
    Otherwise the baseline is weighted by `blend_weight_within` when the
    measurement is at least 90% of it, and by the heavier
    `blend_weight_below` when it falls further below, so a single bad
    reading cannot drag the rate down by itself.

    The measurement is expected to be already floored at `min_rate_mbps`.
    """
    if not baseline_mbps:
        return float(measured_mbps)

    if measured_mbps >= baseline_mbps * WITHIN_BASELINE_RATIO:
        weight = config.blend_weight_within
    else:
        weight = config.blend_weight_below
    return baseline_mbps * weight + measured_mbps * (1 - weight)


def reconcile(
    measured_mbps: float,
    baseline_mbps: float | None,
    config: RateControlConfig,
) -> int:
    """
    Compute the recommended maximum rate for one measurement.

    Args:
        measured_mbps: Download throughput just measured.
        baseline_mbps: Learned baseline for the current hour-of-week slot,
            or None/0 when the slot has no data yet.
        config: Reconciler tuning (floor, ceiling, weights, overhead).

    Returns:
        Whole Mbps, never above 95% of `config.max_rate_mbps`.

    Raises:
        InvalidMeasurementError: If `measured_mbps` is not a finite positive
            number or `baseline_mbps` is negative.

    Example:
        >>> reconcile(95, 100, config)  # blended 98, overhead 102.9, capped to 95
        95
    """
    _validate_inputs(measured_mbps, baseline_mbps)

    measured = max(float(measured_mbps), config.min_rate_mbps)
    blended = blend(measured, baseline_mbps, config)

    ceiling = config.max_rate_mbps * MAX_RATE_SAFETY_RATIO
    effective = blended * config.overhead_multiplier
    effective = min(effective, config.max_rate_mbps)
    effective = min(effective, ceiling)

    # Rounding half-up may step over a fractional ceiling
    result = int(min(round_half_up(effective), round_down(ceiling)))
    assert result <= ceiling, \
        "🌀 Sanity check | reconciled rate must respect the safety ceiling."

    logger.debug(
        f"Reconciler | measured={measured_mbps} baseline={baseline_mbps} "
        f"blended={blended:.2f} effective={effective:.2f} -> {result} Mbps"
    )
    return result


def variance_percent(measured_mbps: float, baseline_mbps: float | None) -> float:
    """
    Return how far a measurement deviates from the baseline, in percent.

    Positive when the measurement exceeds the baseline. Returns 0 when
    there is no baseline.
    """
    if not baseline_mbps:
        return 0.0
    return (measured_mbps - baseline_mbps) / baseline_mbps * 100.0


def bytes_per_sec_to_mbps(bytes_per_sec: float) -> float:
    """Convert a bandwidth figure in bytes/second to megabits/second."""
    return bytes_per_sec * 8 / 1_000_000


def is_plausible_measurement(sample: ThroughputSample) -> bool:
    """
    Return True if a sample looks like a real measurement.

    Rejects zero or negative readings and downloads outside 1..10000 Mbps,
    which usually mean the measurement tool failed silently.
    """
    values = (sample.download_mbps, sample.upload_mbps, sample.latency_ms)
    if not all(is_finite_number(v) and v > 0 for v in values):
        return False
    return MIN_PLAUSIBLE_DOWNLOAD_MBPS <= sample.download_mbps <= MAX_PLAUSIBLE_DOWNLOAD_MBPS
