"""
Hour-of-week throughput baseline.

The baseline keeps one statistical bucket per (day-of-week, hour) slot,
168 in total, describing the throughput historically achievable at that
time. Days count from Monday (0) to Sunday (6).

Tables and buckets are immutable values. `recompute_from_samples()` and
`apply_sample()` are pure functions; `BaselineModel` holds the current
table for callers that want a single owner, replacing it on each update.
A model instance expects a single writer: batch recomputes and
incremental updates must not race on the same instance.

Example:
    >>> from wanrate import BaselineModel, ThroughputSample
    >>> model = BaselineModel()
    >>> model.update_bucket(ThroughputSample.at(datetime.now(), 250.0, 30.0, 18.2))
    >>> model.completion_percentage()
    0.5952380952380952
"""

from __future__ import annotations

import logging
import math
import statistics
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any

from wanrate._utils import HOURS_PER_WEEK, day_of_week, round_half_up, slot_key

logger = logging.getLogger(__name__)

# Weight of a new sample in the incremental (EMA) update
SMOOTHING_ALPHA = 0.2


@dataclass(frozen=True)
class ThroughputSample:
    """
    One completed throughput measurement.

    Attributes:
        timestamp: When the measurement completed.
        day_of_week: 0=Monday..6=Sunday.
        hour: 0..23.
        download_mbps: Measured download throughput.
        upload_mbps: Measured upload throughput.
        latency_ms: Idle latency reported by the measurement.
    """

    timestamp: datetime
    day_of_week: int
    hour: int
    download_mbps: float
    upload_mbps: float
    latency_ms: float

    def __post_init__(self) -> None:
        assert 0 <= self.day_of_week <= 6, f"day_of_week must be in [0, 6], got {self.day_of_week}"
        assert 0 <= self.hour <= 23, f"hour must be in [0, 23], got {self.hour}"

    @classmethod
    def at(
        cls,
        timestamp: datetime,
        download_mbps: float,
        upload_mbps: float,
        latency_ms: float,
    ) -> ThroughputSample:
        """Create a sample whose slot is derived from `timestamp`."""
        return cls(
            timestamp=timestamp,
            day_of_week=day_of_week(timestamp),
            hour=timestamp.hour,
            download_mbps=download_mbps,
            upload_mbps=upload_mbps,
            latency_ms=latency_ms,
        )

    @property
    def key(self) -> str:
        return slot_key(self.day_of_week, self.hour)


@dataclass(frozen=True)
class HourlyBaseline:
    """
    Throughput statistics for one hour-of-week slot.

    Note:
        `median` is an exact order statistic only after a batch recompute.
        Incremental updates move it with the same EMA as `mean`, so after
        `update_bucket()` it is a second smoothed average, not a median.
    """

    day_of_week: int
    hour: int
    mean: float
    stddev: float
    min: float
    max: float
    median: float
    sample_count: int
    last_updated: datetime

    @property
    def key(self) -> str:
        return slot_key(self.day_of_week, self.hour)

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "hour": self.hour,
            "mean": self.mean,
            "stddev": self.stddev,
            "min": self.min,
            "max": self.max,
            "median": self.median,
            "sample_count": self.sample_count,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HourlyBaseline:
        """
        Rebuild a bucket serialized by `to_dict()`.

        Raises:
            ValueError: If the slot lies outside 0..6 / 0..23.
        """
        day, hour = int(data["day_of_week"]), int(data["hour"])
        if not (0 <= day <= 6 and 0 <= hour <= 23):
            raise ValueError(f"Baseline slot out of range: day_of_week={day}, hour={hour}")
        return cls(
            day_of_week=day,
            hour=hour,
            mean=float(data["mean"]),
            stddev=float(data["stddev"]),
            min=float(data["min"]),
            max=float(data["max"]),
            median=float(data["median"]),
            sample_count=int(data["sample_count"]),
            last_updated=datetime.fromisoformat(data["last_updated"]),
        )


@dataclass(frozen=True)
class BaselineTable:
    """
    All hourly baselines, keyed `"{day}_{hour}"`.

    Attributes:
        baselines: Read-only mapping of slot key to HourlyBaseline.
        collection_started: Timestamp of the oldest contributing sample.
        last_updated: When the table last changed.
    """

    baselines: Mapping[str, HourlyBaseline] = field(default_factory=dict)
    collection_started: datetime | None = None
    last_updated: datetime | None = None

    def __post_init__(self) -> None:
        # Private read-only copy; published tables never change
        object.__setattr__(self, "baselines", MappingProxyType(dict(self.baselines)))
        assert len(self.baselines) <= HOURS_PER_WEEK, \
            f"🌀 Sanity check | a baseline table holds at most {HOURS_PER_WEEK} buckets."

    @property
    def is_complete(self) -> bool:
        """True iff every one of the 168 slots has data."""
        return len(self.baselines) == HOURS_PER_WEEK

    def __len__(self) -> int:
        return len(self.baselines)

    def get(self, day: int, hour: int) -> HourlyBaseline | None:
        return self.baselines.get(slot_key(day, hour))

    def to_dict(self) -> dict[str, Any]:
        """Serialize the table to a JSON-compatible dict (keys sorted)."""
        return {
            "collection_started": self.collection_started.isoformat() if self.collection_started else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "is_complete": self.is_complete,
            "baselines": {key: self.baselines[key].to_dict() for key in sorted(self.baselines)},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BaselineTable:
        """Rebuild a table serialized by `to_dict()`."""
        started = data.get("collection_started")
        updated = data.get("last_updated")
        buckets = (HourlyBaseline.from_dict(raw) for raw in (data.get("baselines") or {}).values())
        return cls(
            baselines={bucket.key: bucket for bucket in buckets},
            collection_started=datetime.fromisoformat(started) if started else None,
            last_updated=datetime.fromisoformat(updated) if updated else None,
        )


# =============================================================================
# Pure functions
# =============================================================================


def recompute_from_samples(
    samples: Iterable[ThroughputSample],
    now: datetime | None = None,
) -> BaselineTable:
    """
    Build a baseline table from raw samples.

    Samples are grouped by slot; each group yields mean, population
    standard deviation, min, max and median of the download throughput.
    The result does not depend on sample order.

    Args:
        samples: Measurements to learn from. May be empty.
        now: Timestamp recorded as `last_updated` (defaults to datetime.now()).

    Returns:
        A new BaselineTable. Empty input yields an empty, incomplete table.
    """
    now = now or datetime.now()
    groups: dict[tuple[int, int], list[float]] = {}
    oldest: datetime | None = None

    for sample in samples:
        groups.setdefault((sample.day_of_week, sample.hour), []).append(sample.download_mbps)
        if oldest is None or sample.timestamp < oldest:
            oldest = sample.timestamp

    baselines: dict[str, HourlyBaseline] = {}
    for (day, hour), speeds in groups.items():
        speeds.sort()
        mean = statistics.fmean(speeds)
        baselines[slot_key(day, hour)] = HourlyBaseline(
            day_of_week=day,
            hour=hour,
            mean=mean,
            stddev=statistics.pstdev(speeds, mu=mean),
            min=speeds[0],
            max=speeds[-1],
            median=statistics.median(speeds),
            sample_count=len(speeds),
            last_updated=now,
        )

    return BaselineTable(
        baselines=baselines,
        collection_started=oldest or now,
        last_updated=now,
    )


def apply_sample(table: BaselineTable, sample: ThroughputSample) -> BaselineTable:
    """
    Return a new table with `sample` folded into its slot.

    An unseen slot is initialized from the sample alone. An existing slot
    moves mean and median by an EMA (alpha 0.2), widens min/max, and
    smooths the variance against the updated mean.
    """
    x = sample.download_mbps
    existing = table.baselines.get(sample.key)

    if existing is None:
        bucket = HourlyBaseline(
            day_of_week=sample.day_of_week,
            hour=sample.hour,
            mean=x,
            stddev=0.0,
            min=x,
            max=x,
            median=x,
            sample_count=1,
            last_updated=sample.timestamp,
        )
    else:
        mean = SMOOTHING_ALPHA * x + (1 - SMOOTHING_ALPHA) * existing.mean
        variance = (1 - SMOOTHING_ALPHA) * existing.stddev ** 2 + SMOOTHING_ALPHA * (x - mean) ** 2
        bucket = replace(
            existing,
            mean=mean,
            median=SMOOTHING_ALPHA * x + (1 - SMOOTHING_ALPHA) * existing.median,
            min=min(existing.min, x),
            max=max(existing.max, x),
            stddev=math.sqrt(variance),
            sample_count=existing.sample_count + 1,
            last_updated=sample.timestamp,
        )

    baselines = dict(table.baselines)
    baselines[bucket.key] = bucket
    return BaselineTable(
        baselines=baselines,
        collection_started=table.collection_started or sample.timestamp,
        last_updated=sample.timestamp,
    )


def table_from_shell_format(
    shell_baseline: Mapping[str, str],
    now: datetime | None = None,
) -> BaselineTable:
    """
    Build a table from the flat `"{day}_{hour}" -> "Mbps"` interchange map.

    Entries with a malformed key, a non-integer value, or an out-of-range
    slot are skipped.
    """
    now = now or datetime.now()
    baselines: dict[str, HourlyBaseline] = {}

    for key, value in shell_baseline.items():
        parts = str(key).split("_")
        try:
            if len(parts) != 2:
                raise ValueError("expected '{day}_{hour}'")
            day, hour, speed = int(parts[0]), int(parts[1]), int(value)
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping baseline entry {key!r}={value!r}: {e}")
            continue
        if not (0 <= day <= 6 and 0 <= hour <= 23):
            logger.debug(f"Skipping baseline entry {key!r}: slot out of range")
            continue

        baselines[slot_key(day, hour)] = HourlyBaseline(
            day_of_week=day,
            hour=hour,
            mean=speed,
            stddev=0.0,
            min=speed,
            max=speed,
            median=speed,
            sample_count=1,
            last_updated=now,
        )

    return BaselineTable(baselines=baselines, collection_started=now, last_updated=now)


def table_to_shell_format(table: BaselineTable) -> dict[str, str]:
    """Return the `"{day}_{hour}" -> rounded median` map, in sorted key order."""
    return {
        key: str(int(round_half_up(table.baselines[key].median)))
        for key in sorted(table.baselines)
    }


# =============================================================================
# Model (single owner of a table)
# =============================================================================


class BaselineModel:
    """
    Owner of the current baseline table.

    Example:
        >>> model = BaselineModel()
        >>> model.recompute_from_samples(samples)
        >>> bucket = model.lookup_bucket(datetime.now())
        >>> speed = model.baseline_speed(datetime.now())  # rounded median or None
    """

    def __init__(self, table: BaselineTable | None = None):
        self._table = table or BaselineTable()

    @property
    def table(self) -> BaselineTable:
        return self._table

    def load_table(self, table: BaselineTable) -> None:
        """Replace the current table wholesale."""
        self._table = table
        logger.info(f"BaselineModel | Loaded baseline table ({self.completion_percentage():.1f}% complete)")

    def recompute_from_samples(
        self,
        samples: Iterable[ThroughputSample],
        now: datetime | None = None,
    ) -> BaselineTable:
        """Rebuild the table from raw samples and return it."""
        self._table = recompute_from_samples(samples, now=now)
        logger.info(
            f"BaselineModel | Recomputed {len(self._table)} buckets "
            f"({self.completion_percentage():.1f}% complete)"
        )
        return self._table

    def update_bucket(self, sample: ThroughputSample) -> None:
        """Fold one sample into its slot (incremental learning)."""
        self._table = apply_sample(self._table, sample)

    def lookup_bucket(self, moment: datetime) -> HourlyBaseline | None:
        """Return the bucket for the slot containing `moment`, or None when it has no data."""
        return self._table.get(day_of_week(moment), moment.hour)

    def baseline_speed(self, moment: datetime) -> int | None:
        """Return the slot's median rounded to whole Mbps, or None when it has no data."""
        bucket = self.lookup_bucket(moment)
        return int(round_half_up(bucket.median)) if bucket is not None else None

    def completion_percentage(self) -> float:
        """Return the share of populated slots, 0..100."""
        return 100.0 * len(self._table) / HOURS_PER_WEEK

    @property
    def is_complete(self) -> bool:
        return self._table.is_complete

    def export_shell_format(self) -> dict[str, str]:
        return table_to_shell_format(self._table)

    def import_shell_format(self, shell_baseline: Mapping[str, str]) -> None:
        """Replace the current table with one built from the interchange map."""
        self.load_table(table_from_shell_format(shell_baseline))
