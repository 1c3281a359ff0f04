"""
Connection profiles.

Each WAN technology behaves differently: fiber rarely drifts from its
advertised speed, DOCSIS sags at peak hours, Starlink swings widely from
hour to hour. A `ConnectionProfile` turns a connection type plus the
advertised (nominal) speed into a ready-to-use `RateControlConfig` and a
seed hourly baseline for learning mode.

Example:
    >>> from wanrate import ConnectionProfile, ConnectionType
    >>> profile = ConnectionProfile(ConnectionType.DOCSIS_CABLE, nominal_download_mbps=300)
    >>> profile.max_download_mbps, profile.min_download_mbps
    (285, 195)
    >>> config = profile.to_rate_control_config()
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from wanrate._config import RateControlConfig
from wanrate._utils import slot_key


class ConnectionType(StrEnum):
    """Supported WAN connection technologies."""

    DOCSIS_CABLE = "docsis_cable"
    STARLINK = "starlink"
    FIBER = "fiber"
    DSL = "dsl"
    FIXED_WIRELESS = "fixed_wireless"
    CELLULAR_HOME = "cellular_home"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class _ProfileTuning:
    max_multiplier: float
    min_multiplier: float
    absolute_max_multiplier: float
    overhead_multiplier: float
    baseline_latency_ms: float
    latency_threshold_ms: float
    decrease_factor: float
    increase_factor: float
    blend_weight_within: float
    blend_weight_below: float
    display_name: str
    description: str


_TUNING: dict[ConnectionType, _ProfileTuning] = {
    ConnectionType.DOCSIS_CABLE: _ProfileTuning(
        max_multiplier=0.95, min_multiplier=0.65, absolute_max_multiplier=0.98,
        overhead_multiplier=1.05, baseline_latency_ms=18.0, latency_threshold_ms=2.5,
        decrease_factor=0.97, increase_factor=1.04,
        blend_weight_within=0.60, blend_weight_below=0.80,
        display_name="DOCSIS Cable",
        description="Stable with peak-hour congestion (190-285 Mbps typical for 300 Mbps plan)",
    ),
    ConnectionType.STARLINK: _ProfileTuning(
        max_multiplier=1.10, min_multiplier=0.35, absolute_max_multiplier=1.15,
        overhead_multiplier=1.15, baseline_latency_ms=25.0, latency_threshold_ms=4.0,
        decrease_factor=0.97, increase_factor=1.04,
        blend_weight_within=0.50, blend_weight_below=0.70,
        display_name="Starlink",
        description="Variable speeds (50-300+ Mbps), weather-sensitive, 20-80ms latency",
    ),
    ConnectionType.FIBER: _ProfileTuning(
        max_multiplier=1.05, min_multiplier=0.90, absolute_max_multiplier=1.02,
        overhead_multiplier=1.02, baseline_latency_ms=5.0, latency_threshold_ms=2.0,
        decrease_factor=0.98, increase_factor=1.03,
        blend_weight_within=0.70, blend_weight_below=0.85,
        display_name="Fiber (FTTH)",
        description="Very stable, low latency (~5ms), typically exceeds advertised speeds",
    ),
    ConnectionType.DSL: _ProfileTuning(
        max_multiplier=0.95, min_multiplier=0.85, absolute_max_multiplier=0.98,
        overhead_multiplier=1.03, baseline_latency_ms=20.0, latency_threshold_ms=3.0,
        decrease_factor=0.97, increase_factor=1.03,
        blend_weight_within=0.65, blend_weight_below=0.80,
        display_name="DSL",
        description="Stable but speed limited by distance from DSLAM, 10-100 Mbps typical",
    ),
    ConnectionType.FIXED_WIRELESS: _ProfileTuning(
        max_multiplier=1.10, min_multiplier=0.50, absolute_max_multiplier=1.15,
        overhead_multiplier=1.10, baseline_latency_ms=15.0, latency_threshold_ms=4.0,
        decrease_factor=0.96, increase_factor=1.05,
        blend_weight_within=0.50, blend_weight_below=0.65,
        display_name="Fixed Wireless (WISP)",
        description="Variable (25-500 Mbps), weather and interference sensitive",
    ),
    ConnectionType.CELLULAR_HOME: _ProfileTuning(
        max_multiplier=1.20, min_multiplier=0.40, absolute_max_multiplier=1.25,
        overhead_multiplier=1.12, baseline_latency_ms=35.0, latency_threshold_ms=5.0,
        decrease_factor=0.95, increase_factor=1.05,
        blend_weight_within=0.50, blend_weight_below=0.65,
        display_name="Fixed LTE/5G",
        description="Variable (100-1000 Mbps), cell congestion affects speeds",
    ),
}


def _uniform_week(daily: tuple[float, ...]) -> tuple[tuple[float, ...], ...]:
    assert len(daily) == 24, "🌀 Sanity check | a daily pattern must have 24 hourly entries."
    return tuple(daily for _ in range(7))


_DOCSIS_WEEKDAY = (
    0.87, 0.87, 0.87, 0.87, 0.87, 0.87, 0.85, 0.85, 0.85, 0.85, 0.85, 0.85,
    0.85, 0.85, 0.85, 0.85, 0.85, 0.85, 0.75, 0.75, 0.75, 0.75, 0.87, 0.87,
)
_DOCSIS_SUNDAY = (
    0.87, 0.87, 0.87, 0.87, 0.87, 0.87, 0.85, 0.85, 0.85, 0.85, 0.85, 0.85,
    0.85, 0.85, 0.85, 0.85, 0.85, 0.85, 0.77, 0.77, 0.77, 0.79, 0.85, 0.87,
)

# Fraction of nominal download speed per (day, hour), Monday first.
_PATTERNS: dict[ConnectionType, tuple[tuple[float, ...], ...]] = {
    ConnectionType.DOCSIS_CABLE: (_DOCSIS_WEEKDAY,) * 6 + (_DOCSIS_SUNDAY,),
    # Normalized from 150-417 Mbps observations on a ~400 Mbps plan
    ConnectionType.STARLINK: (
        (0.75, 0.77, 0.47, 0.46, 0.44, 0.44, 0.41, 0.91, 0.66, 0.42, 0.41, 0.38,
         0.80, 0.76, 0.73, 0.71, 0.68, 0.65, 0.42, 0.85, 0.51, 0.48, 0.43, 0.38),
        (0.90, 0.98, 0.78, 0.84, 0.86, 0.73, 0.89, 0.79, 0.87, 0.85, 0.72, 0.74,
         0.74, 0.68, 0.58, 0.84, 0.64, 0.70, 0.49, 0.66, 0.62, 0.59, 0.56, 0.75),
        (0.64, 0.65, 0.56, 0.47, 0.40, 0.42, 0.55, 0.68, 0.73, 0.43, 0.44, 0.38,
         1.04, 0.76, 0.61, 0.94, 0.79, 0.65, 0.54, 0.69, 0.73, 0.64, 0.63, 0.80),
        (0.72, 0.80, 0.67, 0.50, 0.49, 0.55, 0.48, 0.50, 0.57, 0.88, 0.86, 0.84,
         0.82, 0.80, 0.78, 0.65, 0.67, 0.68, 0.66, 0.64, 0.49, 0.39, 0.57, 0.75),
        (0.59, 0.73, 0.74, 0.59, 0.45, 0.43, 0.44, 0.68, 0.80, 0.55, 0.48, 0.55,
         0.45, 0.55, 0.65, 0.60, 0.40, 0.77, 0.77, 0.77, 1.01, 0.74, 0.54, 0.73),
        (0.64, 0.56, 0.85, 0.76, 0.69, 0.58, 0.53, 0.54, 0.41, 0.62, 0.40, 0.53,
         0.66, 0.80, 0.81, 0.74, 0.68, 0.61, 0.55, 0.45, 0.85, 0.74, 0.66, 0.51),
        (0.77, 0.75, 0.79, 0.67, 0.49, 0.44, 0.41, 0.43, 0.52, 0.87, 0.71, 0.55,
         0.60, 0.51, 0.66, 0.77, 0.72, 0.71, 0.71, 0.70, 0.70, 0.48, 0.41, 0.62),
    ),
    ConnectionType.FIBER: _uniform_week((
        0.98, 0.98, 0.98, 0.98, 0.98, 0.98, 0.97, 0.97, 0.97, 0.97, 0.97, 0.97,
        0.97, 0.97, 0.97, 0.97, 0.97, 0.97, 0.95, 0.95, 0.95, 0.95, 0.98, 0.98,
    )),
    ConnectionType.DSL: _uniform_week((
        0.92, 0.92, 0.92, 0.92, 0.92, 0.92, 0.90, 0.90, 0.90, 0.90, 0.90, 0.90,
        0.90, 0.90, 0.90, 0.90, 0.90, 0.90, 0.85, 0.85, 0.85, 0.85, 0.92, 0.92,
    )),
    ConnectionType.FIXED_WIRELESS: _uniform_week((
        0.85, 0.85, 0.85, 0.85, 0.85, 0.85, 0.80, 0.80, 0.80, 0.75, 0.75, 0.75,
        0.75, 0.75, 0.75, 0.70, 0.70, 0.70, 0.65, 0.65, 0.65, 0.70, 0.80, 0.85,
    )),
    ConnectionType.CELLULAR_HOME: _uniform_week((
        0.90, 0.90, 0.90, 0.90, 0.90, 0.85, 0.75, 0.70, 0.70, 0.75, 0.75, 0.75,
        0.70, 0.70, 0.70, 0.70, 0.65, 0.60, 0.55, 0.55, 0.60, 0.70, 0.80, 0.85,
    )),
}


@dataclass(frozen=True)
class ConnectionProfile:
    """
    A WAN connection described by its technology and advertised speeds.

    Derived limits are truncated to whole Mbps, as the shaping scripts
    expect integer rates.

    Attributes:
        type: Connection technology.
        nominal_download_mbps: Advertised download speed.
        nominal_upload_mbps: Advertised upload speed (informational).
        ping_host: Reference host for latency sampling.
    """

    type: ConnectionType
    nominal_download_mbps: int
    nominal_upload_mbps: int = 0
    ping_host: str = "1.1.1.1"

    def __post_init__(self) -> None:
        assert self.nominal_download_mbps > 0, "nominal_download_mbps must be greater than 0."
        assert self.nominal_upload_mbps >= 0, "nominal_upload_mbps must be >= 0."

    @property
    def _tuning(self) -> _ProfileTuning:
        return _TUNING[self.type]

    @property
    def max_download_mbps(self) -> int:
        return int(self.nominal_download_mbps * self._tuning.max_multiplier)

    @property
    def min_download_mbps(self) -> int:
        return int(self.nominal_download_mbps * self._tuning.min_multiplier)

    @property
    def absolute_max_download_mbps(self) -> int:
        return int(self.nominal_download_mbps * self._tuning.absolute_max_multiplier)

    @property
    def display_name(self) -> str:
        return self._tuning.display_name

    @property
    def description(self) -> str:
        return self._tuning.description

    def blend_weights(self) -> tuple[float, float]:
        """Return the baseline weights (within 10%, more than 10% below)."""
        return self._tuning.blend_weight_within, self._tuning.blend_weight_below

    def hourly_baseline(self) -> dict[str, str]:
        """
        Return a seed baseline in shell format, scaled by the nominal speed.

        Keys are `"{day}_{hour}"` (0=Monday), values are whole Mbps strings.
        Feed it to `BaselineModel.import_shell_format()` to start with a
        plausible table before any measurement has been learned.
        """
        pattern = _PATTERNS[self.type]
        return {
            slot_key(day, hour): str(int(pattern[day][hour] * self.nominal_download_mbps))
            for day in range(7)
            for hour in range(24)
        }

    def to_rate_control_config(self) -> RateControlConfig:
        """Build a validated RateControlConfig from this profile."""
        tuning = self._tuning
        return RateControlConfig(
            ping_host=self.ping_host,
            baseline_latency_ms=tuning.baseline_latency_ms,
            latency_threshold_ms=tuning.latency_threshold_ms,
            decrease_factor=tuning.decrease_factor,
            increase_factor=tuning.increase_factor,
            min_rate_mbps=float(self.min_download_mbps),
            max_rate_mbps=float(self.max_download_mbps),
            absolute_max_rate_mbps=float(self.absolute_max_download_mbps),
            blend_weight_within=tuning.blend_weight_within,
            blend_weight_below=tuning.blend_weight_below,
            overhead_multiplier=tuning.overhead_multiplier,
        )

    def summary(self) -> str:
        """Return a human-readable multi-line summary of the derived parameters."""
        tuning = self._tuning
        return (
            f"Connection: {self.display_name}\n"
            f"Nominal Speed: {self.nominal_download_mbps}/{self.nominal_upload_mbps} Mbps (down/up)\n"
            f"Speed Range: {self.min_download_mbps}-{self.max_download_mbps} Mbps (floor-ceiling)\n"
            f"Absolute Max: {self.absolute_max_download_mbps} Mbps\n"
            f"Overhead: {(tuning.overhead_multiplier - 1) * 100:.0f}%\n"
            f"Latency: {tuning.baseline_latency_ms}ms baseline, {tuning.latency_threshold_ms}ms threshold\n"
            f"Rate Adjust: -{(1 - tuning.decrease_factor) * 100:.0f}% / +{(tuning.increase_factor - 1) * 100:.0f}%"
        )
