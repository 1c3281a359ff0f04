"""
Adaptive bandwidth controller for a shaped WAN link.

Learns what throughput the link typically sustains at each hour of the
week, blends fresh measurements against that baseline, and steers the
shaped download rate from live latency samples.

Quick Start:
    >>> from datetime import datetime
    >>> from wanrate import RateManager, ThroughputSample
    >>> manager = RateManager()
    >>> manager.start_learning()
    >>> manager.apply_measurement(ThroughputSample.at(datetime.now(), 262.4, 31.0, 18.1))
    270
    >>> manager.apply_latency(23.7).rate_mbps
    249.2

Connection Profiles:
    >>> from wanrate import RateControlConfig
    >>> config = RateControlConfig.from_profile("starlink", nominal_download_mbps=400)

Global Configuration:
    >>> from wanrate import WANRATE
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> ceiling = WANRATE.config.rate_control.max_rate_mbps
    >>>
    >>> # Custom configuration
    >>> WANRATE.configure(
    ...     rate_control={"max_rate_mbps": 500, "absolute_max_rate_mbps": 490, "min_rate_mbps": 300},
    ...     baseline={"learning_mode": True, "storage_path": "/var/lib/wanrate/baseline.json"},
    ...     reporter={"enabled": True, "bucket": "network", "token": "..."},
    ... )

Main Classes:
    - BaselineModel: Hour-of-week throughput baseline (168 buckets).
    - BaselineTable / HourlyBaseline: Immutable baseline values.
    - ThroughputSample: One completed throughput measurement.
    - RateController: Latency-driven rate controller.
    - RateAdjustment / Regime: Outcome of one control cycle.
    - ControllerState: Controller state carried between cycles.
    - RateManager: Drives the core for one link (learning, persistence, reporting).
    - ConnectionProfile / ConnectionType: Presets per connection technology.

Functions:
    - reconcile: One measurement + baseline -> recommended maximum rate.
    - blend: Baseline-weighted average of a measurement.
    - parse_ping_output: Average RTT from `ping -q` output.

Configuration:
    - WANRATE: Global singleton for configuration.
    - WanRateConfig: Root configuration dataclass.
    - RateControlConfig: Reconciler and controller tuning.
    - BaselineConfig: Learning and persistence.
    - ReporterConfig: InfluxDB status reporting.
    - ConfigEnvVarError: Exception raised when env var parsing fails.
    - ConfigValidationError: Exception raised when config validation fails.

Errors:
    - InvalidMeasurementError: Measurement or baseline cannot be reconciled.
    - InvalidRateError: Rate to adjust from is not a finite positive number.

Reporting / Retry:
    - InfluxDbReporter: Writes status points to InfluxDB.
    - Retrying: Context manager for retry with exponential backoff.
    - RetryableError: Base class for exceptions that trigger automatic retry.
    - MaxRetriesExceededError: Exception raised when all retry attempts are exhausted.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("wanrate")

from wanrate._baseline import (
    BaselineModel,
    BaselineTable,
    HourlyBaseline,
    ThroughputSample,
)
from wanrate._config import (
    WANRATE,
    BaselineConfig,
    ConfigEntry,
    ConfigEnvVarError,
    ConfigValidationError,
    RateControlConfig,
    ReporterConfig,
    WanRateConfig,
)
from wanrate._controller import (
    ControllerState,
    InvalidRateError,
    RateAdjustment,
    RateController,
    Regime,
    parse_ping_output,
)
from wanrate._manager import ManagerStatus, RateManager
from wanrate._profiles import ConnectionProfile, ConnectionType
from wanrate._reconcile import (
    InvalidMeasurementError,
    blend,
    bytes_per_sec_to_mbps,
    is_plausible_measurement,
    reconcile,
    variance_percent,
)
from wanrate._report import InfluxDbReporter
from wanrate._retry import (
    MaxRetriesExceededError,
    RetryableError,
    Retrying,
)

__all__ = [
    "__version__",
    # Configuration
    "WANRATE",
    "WanRateConfig",
    "ConfigEntry",
    "ConfigEnvVarError",
    "ConfigValidationError",
    "RateControlConfig",
    "BaselineConfig",
    "ReporterConfig",
    # Profiles
    "ConnectionProfile",
    "ConnectionType",
    # Baseline
    "BaselineModel",
    "BaselineTable",
    "HourlyBaseline",
    "ThroughputSample",
    # Reconciler
    "reconcile",
    "blend",
    "variance_percent",
    "bytes_per_sec_to_mbps",
    "is_plausible_measurement",
    "InvalidMeasurementError",
    # Controller
    "RateController",
    "RateAdjustment",
    "Regime",
    "ControllerState",
    "InvalidRateError",
    "parse_ping_output",
    # Manager
    "RateManager",
    "ManagerStatus",
    # Reporting / Retry
    "InfluxDbReporter",
    "Retrying",
    "RetryableError",
    "MaxRetriesExceededError",
]
