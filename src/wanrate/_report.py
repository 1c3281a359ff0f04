"""
InfluxDB status reporter.

Pushes one line-protocol point per control cycle to an InfluxDB v2 write
endpoint, so rate decisions can be graphed next to the link's latency.

Example:
    >>> from wanrate import InfluxDbReporter, ReporterConfig
    >>> reporter = InfluxDbReporter(ReporterConfig(enabled=True, bucket="network", token="..."))
    >>> reporter.report(manager.status())
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING

import requests

from wanrate._config import ReporterConfig
from wanrate._retry import Retrying

if TYPE_CHECKING:
    from wanrate._manager import ManagerStatus

logger = logging.getLogger(__name__)

FieldValue = float | int | bool | str


def _escape_key(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _escape_measurement(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _format_field_value(value: FieldValue) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def to_nanoseconds(timestamp: datetime) -> int:
    """Return `timestamp` as integer nanoseconds since the epoch."""
    return int(timestamp.timestamp()) * 1_000_000_000 + timestamp.microsecond * 1_000


def format_line(
    measurement: str,
    tags: Mapping[str, str],
    fields: Mapping[str, FieldValue | None],
    timestamp: datetime,
) -> str:
    """
    Build one InfluxDB line-protocol record.

    Fields whose value is None are omitted; tags are written in sorted
    order. Integers get the `i` suffix, strings are quoted.

    Raises:
        ValueError: If no field has a value (InfluxDB rejects such points).

    Example:
        >>> format_line("wan_rate", {"host": "gw"}, {"rate_mbps": 250.5}, datetime(2024, 1, 1, tzinfo=UTC))
        'wan_rate,host=gw rate_mbps=250.5 1704067200000000000'
    """
    field_parts = [
        f"{_escape_key(name)}={_format_field_value(value)}"
        for name, value in fields.items()
        if value is not None
    ]
    if not field_parts:
        raise ValueError("A line-protocol point needs at least one field.")

    tag_parts = [f"{_escape_key(k)}={_escape_key(v)}" for k, v in sorted(tags.items()) if v]
    head = ",".join([_escape_measurement(measurement), *tag_parts])
    return f"{head} {','.join(field_parts)} {to_nanoseconds(timestamp)}"


class InfluxDbReporter:
    """
    Writes controller status points to InfluxDB over HTTP.

    Args:
        config: Reporter configuration (endpoint, credentials, retry policy).
        session: Optional requests session, mostly for tests and connection reuse.
    """

    def __init__(self, config: ReporterConfig, session: requests.Session | None = None):
        assert config.bucket, "🌀 Sanity check | InfluxDbReporter requires a bucket."
        self.config = config
        self.session = session or requests.Session()

    @property
    def write_url(self) -> str:
        return f"{self.config.url.rstrip('/')}/api/v2/write"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "text/plain; charset=utf-8"}
        if self.config.token:
            headers["Authorization"] = f"Token {self.config.token}"
        return headers

    def status_line(self, status: ManagerStatus, timestamp: datetime | None = None) -> str:
        """Render `status` as the line-protocol record `report()` sends."""
        return format_line(
            measurement=self.config.measurement,
            tags={"host": self.config.host_tag},
            fields={
                "rate_mbps": float(status.current_rate_mbps),
                "max_rate_mbps": float(status.last_known_max_rate_mbps),
                "latency_ms": status.last_latency_ms,
                "baseline_mbps": status.baseline_speed_mbps,
                "learning_progress": float(status.learning_progress),
                "learning_mode": status.learning_mode_active,
            },
            timestamp=timestamp or status.timestamp,
        )

    def report(self, status: ManagerStatus, timestamp: datetime | None = None) -> None:
        """
        Write one status point.

        Raises:
            requests.HTTPError: For a non-retryable HTTP status (e.g. 400, 401).
            MaxRetriesExceededError: When transient failures outlast the retry budget.
        """
        line = self.status_line(status, timestamp)
        params = {"bucket": self.config.bucket, "precision": "ns"}
        if self.config.org:
            params["org"] = self.config.org

        for attempt in Retrying(
            max_retries=self.config.retry_max_retries,
            initial_delay=self.config.retry_initial_delay,
            logger_prefix="InfluxDbReporter",
        ):
            with attempt as current:
                logger.debug(
                    f"InfluxDbReporter | Writing point to '{self.config.bucket}' "
                    f"(attempt {current.attempt_number}/{current.max_attempts})..."
                )
                response = self.session.post(
                    self.write_url,
                    params=params,
                    data=line.encode("utf-8"),
                    headers=self._headers(),
                    timeout=self.config.request_timeout,
                )
                response.raise_for_status()
                return
