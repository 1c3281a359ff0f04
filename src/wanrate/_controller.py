"""
Latency-driven rate controller.

Each cycle classifies one latency sample against the configured baseline
latency and derives the next shaped rate from the last known maximum:

- Congested: latency at or above baseline + threshold. The rate decays
  geometrically with the number of threshold-sized deviations.
- Relieved: latency well under baseline. The rate recovers towards 94%
  of the link capacity.
- Normal: everything else. The rate creeps towards 92% of capacity, but
  only while latency stays within 0.3 ms of baseline.

Every result is clamped to 95% of link capacity and to the configured
maximum, then rounded to one decimal.

Example:
    >>> from wanrate import RateController, RateControlConfig
    >>> controller = RateController(RateControlConfig())
    >>> adjustment = controller.adjust(latency_ms=24.5, current_max_rate_mbps=250.0)
    >>> adjustment.regime
    <Regime.CONGESTED: 'congested'>
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from enum import StrEnum

from wanrate._config import RateControlConfig
from wanrate._utils import is_finite_number, round_down, round_half_up

logger = logging.getLogger(__name__)

# Latency this far under baseline counts as relieved
RELIEVED_MARGIN_MS = 0.4

# Normal-regime recovery only happens while latency is within this of baseline
NORMAL_TOLERANCE_MS = 0.3

# Shares of absolute_max_rate_mbps
RELIEVED_LOWER_RATIO = 0.92
RELIEVED_MID_RATIO = 0.94
NORMAL_LOWER_RATIO = 0.90
NORMAL_MID_RATIO = 0.92
SAFETY_CAP_RATIO = 0.95

_PING_SUMMARY = re.compile(r"rtt min/avg/max/mdev\s*=\s*([^\s/]+)/([^\s/]+)/")


class Regime(StrEnum):
    """
    Latency classification of a control cycle.

    Attributes:
        CONGESTED: Latency reached baseline + threshold; rate decreased.
        RELIEVED: Latency more than 0.4 ms under baseline; rate may recover.
        NORMAL: Latency near baseline; rate may creep up or hold.
        UNAVAILABLE: No usable latency sample; rate held.
    """

    CONGESTED = "congested"
    RELIEVED = "relieved"
    NORMAL = "normal"
    UNAVAILABLE = "unavailable"

    def __str__(self) -> str:
        return self.value


class InvalidRateError(ValueError):
    """Raised when the rate to adjust from is not a finite positive number."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid current rate: {value!r}. Must be a finite number greater than 0.")


@dataclass(frozen=True)
class RateAdjustment:
    """
    Outcome of one control cycle.

    Attributes:
        rate_mbps: Rate to hand to enforcement, rounded to one decimal.
        regime: Which rule produced it.
        reason: Human-readable explanation, suitable for status displays.
    """

    rate_mbps: float
    regime: Regime
    reason: str


@dataclass(frozen=True)
class ControllerState:
    """
    Controller state carried between cycles.

    A new value is produced on every cycle; nothing is mutated in place.

    Attributes:
        current_rate_mbps: Rate currently handed to enforcement.
        last_known_max_rate_mbps: Latest reconciled maximum, what latency
            adjustments start from.
        last_adjustment_reason: Explanation of the most recent change.
    """

    current_rate_mbps: float
    last_known_max_rate_mbps: float
    last_adjustment_reason: str = ""

    @classmethod
    def initial(cls, config: RateControlConfig) -> ControllerState:
        """Start at the optimal rate (94% of capacity) until a measurement arrives."""
        rate = min(
            round_half_up(config.absolute_max_rate_mbps * RELIEVED_MID_RATIO, 1),
            round_down(min(config.absolute_max_rate_mbps * SAFETY_CAP_RATIO, config.max_rate_mbps), 1),
        )
        return cls(
            current_rate_mbps=rate,
            last_known_max_rate_mbps=rate,
            last_adjustment_reason="Initial rate",
        )

    def with_measurement(self, rate_mbps: float, reason: str) -> ControllerState:
        """Return a state whose maximum and current rate are a fresh reconciled rate."""
        return replace(
            self,
            current_rate_mbps=rate_mbps,
            last_known_max_rate_mbps=rate_mbps,
            last_adjustment_reason=reason,
        )

    def with_adjustment(self, adjustment: RateAdjustment) -> ControllerState:
        """Return a state carrying a latency adjustment; the known maximum is kept."""
        return replace(
            self,
            current_rate_mbps=adjustment.rate_mbps,
            last_adjustment_reason=adjustment.reason,
        )


class RateController:
    """
    Stateless latency-to-rate controller.

    Holds only its configuration; every call is a pure function of the
    latency sample and the rate passed in.

    Args:
        config: Rate control tuning. Validated at construction.
    """

    def __init__(self, config: RateControlConfig):
        self.config = config

    # -------------------------------------------------------------------------
    # Control cycle
    # -------------------------------------------------------------------------

    def adjust(self, latency_ms: float | None, current_max_rate_mbps: float) -> RateAdjustment:
        """
        Compute the next shaped rate from one latency sample.

        Args:
            latency_ms: Average round-trip time to the ping host. None, NaN,
                infinite or non-positive values mean the sample is missing.
            current_max_rate_mbps: Rate to adjust from (last reconciled maximum).

        Returns:
            A RateAdjustment. A missing sample yields Regime.UNAVAILABLE and
            holds the rate (ceilings still apply).

        Raises:
            InvalidRateError: If `current_max_rate_mbps` is not a finite positive number.
        """
        if not is_finite_number(current_max_rate_mbps) or current_max_rate_mbps <= 0:
            raise InvalidRateError(current_max_rate_mbps)

        current = float(current_max_rate_mbps)

        if not is_finite_number(latency_ms) or latency_ms <= 0:
            logger.warning(f"RateController | Latency unavailable ({latency_ms!r}), holding rate at {current} Mbps")
            return self._finish(current, Regime.UNAVAILABLE, "Latency unavailable, keeping current rate")

        assert latency_ms is not None
        if self.is_latency_high(latency_ms):
            adjustment = self._congested(latency_ms, current)
        elif latency_ms < self.config.baseline_latency_ms - RELIEVED_MARGIN_MS:
            adjustment = self._relieved(latency_ms, current)
        else:
            adjustment = self._normal(latency_ms, current)

        if adjustment.rate_mbps != current:
            logger.info(f"RateController | {current} -> {adjustment.rate_mbps} Mbps ({adjustment.reason})")
        return adjustment

    def _congested(self, latency_ms: float, current: float) -> RateAdjustment:
        threshold = self.config.baseline_latency_ms + self.config.latency_threshold_ms
        deviations = self.deviation_count(latency_ms)
        multiplier = self.config.decrease_factor ** deviations
        rate = max(current * multiplier, self.config.min_rate_mbps)
        return self._finish(
            rate,
            Regime.CONGESTED,
            f"High latency: {latency_ms:.1f}ms (threshold: {threshold:.1f}ms), "
            f"decreased by {(1 - multiplier) * 100:.1f}% ({deviations:.2f} deviations)",
        )

    def _relieved(self, latency_ms: float, current: float) -> RateAdjustment:
        lower = self.config.absolute_max_rate_mbps * RELIEVED_LOWER_RATIO
        mid = self.config.absolute_max_rate_mbps * RELIEVED_MID_RATIO

        if current < lower:
            rate = current * self.config.increase_factor ** 2
            reason = f"Latency reduced: {latency_ms:.1f}ms, rate well below optimal, applying double increase"
        elif current < mid:
            rate = mid
            reason = f"Latency reduced: {latency_ms:.1f}ms, normalizing to optimal bandwidth"
        else:
            rate = current
            reason = f"Latency reduced: {latency_ms:.1f}ms, keeping current rate"
        return self._finish(rate, Regime.RELIEVED, reason)

    def _normal(self, latency_ms: float, current: float) -> RateAdjustment:
        lower = self.config.absolute_max_rate_mbps * NORMAL_LOWER_RATIO
        mid = self.config.absolute_max_rate_mbps * NORMAL_MID_RATIO
        near_baseline = latency_ms - self.config.baseline_latency_ms <= NORMAL_TOLERANCE_MS

        if near_baseline and current < lower:
            rate = current * self.config.increase_factor
            reason = f"Normal latency: {latency_ms:.1f}ms (within {NORMAL_TOLERANCE_MS}ms), applying increase"
        elif near_baseline and current < mid:
            rate = mid
            reason = f"Normal latency: {latency_ms:.1f}ms (within {NORMAL_TOLERANCE_MS}ms), normalizing to optimal bandwidth"
        else:
            rate = current
            reason = f"Normal latency: {latency_ms:.1f}ms, maintaining current rate"
        return self._finish(rate, Regime.NORMAL, reason)

    def _finish(self, rate: float, regime: Regime, reason: str) -> RateAdjustment:
        """Apply the safety ceilings and round to one decimal."""
        ceiling = min(self.config.absolute_max_rate_mbps * SAFETY_CAP_RATIO, self.config.max_rate_mbps)
        # Rounding half-up may step over a ceiling with more than one decimal
        rate = min(round_half_up(min(rate, ceiling), 1), round_down(ceiling, 1))
        return RateAdjustment(rate_mbps=rate, regime=regime, reason=reason)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def is_latency_high(self, latency_ms: float) -> bool:
        return latency_ms >= self.config.baseline_latency_ms + self.config.latency_threshold_ms

    def deviation_count(self, latency_ms: float) -> float:
        """Return how many thresholds `latency_ms` sits above baseline (fractional)."""
        return (latency_ms - self.config.baseline_latency_ms) / self.config.latency_threshold_ms

    def needs_recovery(self, rate_mbps: float) -> bool:
        """True when a rate sits below 92% of link capacity."""
        return rate_mbps < self.config.absolute_max_rate_mbps * RELIEVED_LOWER_RATIO

    def rate_bounds(self) -> tuple[float, float, float]:
        """Return (minimum, optimal, maximum) rates for the current configuration."""
        return (
            self.config.min_rate_mbps,
            self.config.absolute_max_rate_mbps * RELIEVED_MID_RATIO,
            self.config.absolute_max_rate_mbps * SAFETY_CAP_RATIO,
        )


def parse_ping_output(output: str) -> float | None:
    """
    Extract the average round-trip time from `ping -q` output.

    Looks for the summary line `rtt min/avg/max/mdev = a/b/c/d ms`.
    Returns None when the line is missing or the average is not a number.

    Example:
        >>> parse_ping_output("rtt min/avg/max/mdev = 10.123/12.456/15.789/2.345 ms")
        12.456
    """
    match = _PING_SUMMARY.search(output or "")
    if match is None:
        return None
    try:
        return float(match.group(2))
    except ValueError:
        return None
