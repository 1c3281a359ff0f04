"""
Rate manager.

Drives the pure core for one WAN link: feeds throughput measurements to
the baseline model and the reconciler, feeds latency samples to the rate
controller, and keeps the resulting `ControllerState`. It also owns
baseline persistence and optional status reporting.

Calls are synchronous and must not overlap; the scheduler that invokes
`apply_measurement()` and `apply_latency()` is expected to serialize them.

Example:
    >>> from wanrate import RateManager, ThroughputSample
    >>> manager = RateManager()
    >>> manager.start_learning()
    >>> manager.apply_measurement(ThroughputSample.at(datetime.now(), 262.4, 31.0, 18.1))
    270
    >>> manager.apply_latency(23.7).rate_mbps
    249.2
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from wanrate._baseline import BaselineModel, BaselineTable, ThroughputSample
from wanrate._config import WANRATE, BaselineConfig, RateControlConfig, ReporterConfig
from wanrate._controller import ControllerState, RateAdjustment, RateController, Regime
from wanrate._reconcile import InvalidMeasurementError, is_plausible_measurement, reconcile
from wanrate._report import InfluxDbReporter
from wanrate._utils import load_json_file, save_json_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManagerStatus:
    """
    Snapshot of the manager after a cycle.

    Attributes:
        timestamp: When the snapshot was taken.
        learning_mode_active: Whether measurements refine the baseline.
        learning_progress: Share of populated hour-of-week slots, 0..100.
        baseline_complete: True once all 168 slots have data.
        current_rate_mbps: Rate currently handed to enforcement.
        last_known_max_rate_mbps: Latest reconciled maximum.
        last_adjustment_reason: Explanation of the most recent change.
        last_latency_ms: Latest latency sample, None if none was usable.
        baseline_speed_mbps: Baseline for the snapshot's slot, None if unknown.
    """

    timestamp: datetime
    learning_mode_active: bool
    learning_progress: float
    baseline_complete: bool
    current_rate_mbps: float
    last_known_max_rate_mbps: float
    last_adjustment_reason: str
    last_latency_ms: float | None = None
    baseline_speed_mbps: int | None = None


class RateManager:
    """
    Owner of the controller state and the baseline model for one link.

    Args:
        config: Rate control tuning. Defaults to `WANRATE.config.rate_control`.
        baseline_config: Learning and persistence settings. Defaults to
            `WANRATE.config.baseline`; a configured `storage_path` is loaded
            on construction when the file exists.
        reporter: Optional status reporter. When omitted and
            `WANRATE.config.reporter.enabled` is set, an InfluxDbReporter is
            built from the global reporter config.
        model: Optional baseline model to start from.
    """

    def __init__(
        self,
        config: RateControlConfig | None = None,
        baseline_config: BaselineConfig | None = None,
        reporter: InfluxDbReporter | None = None,
        model: BaselineModel | None = None,
    ):
        self.config = config or WANRATE.config.rate_control
        self.baseline_config = baseline_config or WANRATE.config.baseline
        self.reporter = reporter if reporter is not None else self._default_reporter(WANRATE.config.reporter)
        self.model = model or BaselineModel()
        self.controller = RateController(self.config)
        self.state = ControllerState.initial(self.config)
        self.learning_mode = self.baseline_config.learning_mode
        self.last_latency_ms: float | None = None

        storage_path = self.baseline_config.storage_path
        if model is None and storage_path and Path(storage_path).exists():
            self.load_baseline(Path(storage_path))

    @staticmethod
    def _default_reporter(config: ReporterConfig) -> InfluxDbReporter | None:
        return InfluxDbReporter(config) if config.enabled else None

    # -------------------------------------------------------------------------
    # Learning mode
    # -------------------------------------------------------------------------

    def start_learning(self) -> None:
        self.learning_mode = True
        logger.info(f"RateManager | Learning mode started ({self.model.completion_percentage():.1f}% complete)")

    def stop_learning(self) -> None:
        self.learning_mode = False
        logger.info(f"RateManager | Learning mode stopped ({self.model.completion_percentage():.1f}% complete)")

    # -------------------------------------------------------------------------
    # Cycles
    # -------------------------------------------------------------------------

    def apply_measurement(self, sample: ThroughputSample) -> int:
        """
        Reconcile a throughput measurement into a new maximum rate.

        In learning mode the sample first refines its hour-of-week bucket.
        The reconciled rate becomes both the current and the last known
        maximum rate.

        Raises:
            InvalidMeasurementError: If the sample is implausible. State is left untouched.
        """
        if not is_plausible_measurement(sample):
            raise InvalidMeasurementError(
                "sample", sample,
                "Download, upload and latency must be positive and download within 1..10000 Mbps.",
            )

        if self.learning_mode:
            self.model.update_bucket(sample)

        baseline = self.model.baseline_speed(sample.timestamp)
        rate = reconcile(sample.download_mbps, baseline, self.config)
        self.state = self.state.with_measurement(
            rate, f"Measurement: {sample.download_mbps:.0f} Mbps -> {rate} Mbps"
        )
        logger.info(
            f"RateManager | Measured {sample.download_mbps:.1f} Mbps "
            f"(baseline {baseline if baseline is not None else 'n/a'}) -> max rate {rate} Mbps"
        )

        self._persist_if_learning()
        self._report(sample.timestamp)
        return rate

    def apply_latency(self, latency_ms: float | None, now: datetime | None = None) -> RateAdjustment:
        """Adjust the shaped rate from one latency sample, starting from the last known maximum."""
        adjustment = self.controller.adjust(latency_ms, self.state.last_known_max_rate_mbps)
        self.state = self.state.with_adjustment(adjustment)
        self.last_latency_ms = latency_ms if adjustment.regime != Regime.UNAVAILABLE else None
        self._report(now)
        return adjustment

    def status(self, now: datetime | None = None) -> ManagerStatus:
        now = now or datetime.now()
        return ManagerStatus(
            timestamp=now,
            learning_mode_active=self.learning_mode,
            learning_progress=self.model.completion_percentage(),
            baseline_complete=self.model.is_complete,
            current_rate_mbps=self.state.current_rate_mbps,
            last_known_max_rate_mbps=self.state.last_known_max_rate_mbps,
            last_adjustment_reason=self.state.last_adjustment_reason,
            last_latency_ms=self.last_latency_ms,
            baseline_speed_mbps=self.model.baseline_speed(now),
        )

    def rate_bounds(self) -> tuple[float, float, float]:
        return self.controller.rate_bounds()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save_baseline(self, path: Path) -> None:
        """
        Write the baseline table as JSON.

        Raises:
            RuntimeError: If the file cannot be written.
        """
        save_json_file(self.model.table.to_dict(), path)
        logger.info(f"RateManager | Baseline saved to {path} ({len(self.model.table)} buckets)")

    def load_baseline(self, path: Path) -> None:
        """
        Replace the baseline table with one read from a JSON file.

        Raises:
            RuntimeError: If the file cannot be read or parsed.
        """
        data = load_json_file(path)
        try:
            table = BaselineTable.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(
                f"❌ RateManager | Baseline file {path.name} is malformed: {e}",
                exc_info=logger.isEnabledFor(logging.DEBUG)
            )
            raise RuntimeError(f"It's not possible to load the baseline from {path.name}: {e}") from e
        self.model.load_table(table)

    def _persist_if_learning(self) -> None:
        storage_path = self.baseline_config.storage_path
        if self.learning_mode and storage_path:
            try:
                self.save_baseline(Path(storage_path))
            except RuntimeError:
                logger.warning("RateManager | Baseline not persisted, keeping it in memory")

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _report(self, now: datetime | None) -> None:
        if self.reporter is None:
            return
        try:
            self.reporter.report(self.status(now))
        except Exception as e:
            logger.error(
                f"❌ RateManager | Status report failed: {e}",
                exc_info=logger.isEnabledFor(logging.DEBUG)
            )
