"""
Global configuration for the wanrate package.

This module provides a simple configuration system following Convention over Configuration (CoC).
Users can optionally call WANRATE.configure() at startup to customize defaults.
If not called, sensible defaults are used.

Hierarchy of precedence (highest to lowest):
1. Config objects passed directly to RateManager / RateController / reconcile()
2. Values set via WANRATE.configure()
3. Environment variables (WANRATE_*) - when allow_env_override=True
4. Hardcoded defaults (in dataclass fields)

Example:
    >>> from wanrate import WANRATE
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> ceiling = WANRATE.config.rate_control.max_rate_mbps
    >>>
    >>> # Custom configuration
    >>> WANRATE.configure(
    ...     rate_control={"max_rate_mbps": 500, "absolute_max_rate_mbps": 490},
    ...     baseline={"learning_mode": True},
    ... )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from wanrate._profiles import ConnectionType

_SECTIONS = ("rate_control", "baseline", "reporter")


# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ValueError):
    """Raised when an environment variable has an invalid value."""

    def __init__(
        self,
        env_var: str,
        value: str,
        expected_type: str,
        cause: Exception | None = None,
    ):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"Invalid value for {env_var}: '{value}' (expected {expected_type})")
        self.__cause__ = cause


class ConfigValidationError(ValueError):
    """Raised when a configuration value fails validation."""

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        section: str | None = None,
    ):
        self.field = field
        self.value = value
        self.section = section
        prefix = f"[{section}] " if section else ""
        super().__init__(f"{prefix}Invalid value for '{field}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


class EnvVars:
    """
    Utility class for reading environment variables with type conversion.

    Example:
        >>> EnvVars.get("WANRATE_RATE_MAX_RATE_MBPS", type_hint=float)
        285.0
        >>> EnvVars.get("UNDEFINED_VAR")
        None
    """

    @staticmethod
    def get(
        var_name: str,
        type_hint: Any = str,
        converter: Callable[[str], Any] | None = None,
    ) -> Any:
        """
        Read an environment variable with optional type conversion.

        Args:
            var_name: The environment variable name.
            type_hint: Type hint used to infer the converter (ignored if converter is provided).
            converter: Custom converter function (takes precedence over type_hint).

        Returns:
            The converted value, or None if env var is not set/empty.

        Raises:
            ConfigEnvVarError: If the value cannot be converted.
        """
        raw_value = os.environ.get(var_name)
        if not raw_value:  # None or empty string
            return None

        actual_converter = converter or EnvVars._infer_converter(type_hint)
        try:
            return actual_converter(raw_value)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(
                env_var=var_name,
                value=raw_value,
                expected_type=type_hint.__name__ if hasattr(type_hint, "__name__") else str(type_hint),
                cause=e,
            ) from e

    @staticmethod
    def _infer_converter(type_hint: Any) -> Callable[[str], Any]:
        """
        Infer converter function from type hint.

        Handles both actual types and string annotations (PEP 563).
        """
        type_str = str(type_hint)

        if type_hint is int or type_str == "int":
            return int
        if type_hint is float or type_str == "float":
            return float
        if type_hint is bool or type_str == "bool":
            return lambda v: v.lower() in ("true", "1", "yes")
        return str


# =============================================================================
# Base Class
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Base class for immutable configuration dataclasses.

    Provides `.with_overrides()` for creating new instances with partial
    field updates, and `.with_env_vars()` for layering environment
    variables declared in field metadata.

    Example:
        >>> config = RateControlConfig()
        >>> custom = config.with_overrides({"max_rate_mbps": 500})
        >>> custom.max_rate_mbps
        500
    """

    def with_overrides(
        self,
        overrides: dict[str, Any],
        allow_none_fields: set[str] | None = None,
    ) -> Self:
        """
        Return a new instance with specified fields overridden.

        Args:
            overrides: Dict of field names to new values.
                       Only existing fields are allowed.
            allow_none_fields: Set of field names that accept None as a valid value.
                       By default, None values are filtered out.

        Returns:
            New instance with updated values.

        Raises:
            ValueError: If overrides contains unknown field names.
        """
        if not overrides:
            return self

        valid_fields = {f.name for f in fields(self)}
        invalid_fields = set(overrides.keys()) - valid_fields

        if invalid_fields:
            raise ValueError(
                f"Unknown config fields: {invalid_fields}. "
                f"Valid fields are: {valid_fields}"
            )

        allow_none = allow_none_fields or set()
        filtered = {k: v for k, v in overrides.items() if v is not None or k in allow_none}
        return replace(self, **filtered) if filtered else self

    def with_env_vars(self) -> Self:
        """
        Return new instance with environment variables applied.

        Raises:
            ConfigEnvVarError: If an env var has an invalid value.
            ConfigValidationError: If the resulting config is invalid.
        """
        overrides: dict[str, Any] = {}
        for f in fields(self):
            env_var = f.metadata.get("env")
            if env_var:
                value = EnvVars.get(
                    var_name=env_var,
                    type_hint=f.type,
                    converter=f.metadata.get("converter"),
                )
                if value is not None:
                    overrides[f.name] = value
        return self.with_overrides(overrides)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass(frozen=True)
class RateControlConfig(OverridableConfig):
    """
    Tuning for the measurement reconciler and the latency-driven rate controller.

    Immutable for the duration of a cycle. Invariants are checked when the
    instance is built (including through `with_overrides()`), never per cycle.

    Attributes:
        ping_host: Reference host the latency source pings.
            Env var: WANRATE_RATE_PING_HOST

        baseline_latency_ms: Unloaded round-trip time to ping_host.
            Env var: WANRATE_RATE_BASELINE_LATENCY_MS

        latency_threshold_ms: Deviation above baseline counted as one congestion step.
            Env var: WANRATE_RATE_LATENCY_THRESHOLD_MS

        decrease_factor: Multiplicative decrease per deviation, in (0, 1).
            Env var: WANRATE_RATE_DECREASE_FACTOR

        increase_factor: Multiplicative increase per recovery step, > 1.
            Env var: WANRATE_RATE_INCREASE_FACTOR

        min_rate_mbps: Floor for measured and decreased rates.
            Env var: WANRATE_RATE_MIN_RATE_MBPS

        max_rate_mbps: Configured ceiling. Reconciled rates never exceed 95% of it.
            Env var: WANRATE_RATE_MAX_RATE_MBPS

        absolute_max_rate_mbps: Link capacity reference for the controller's bounds.
            Env var: WANRATE_RATE_ABSOLUTE_MAX_RATE_MBPS

        blend_weight_within: Baseline weight when the measurement is within 10% of baseline.
            Env var: WANRATE_RATE_BLEND_WEIGHT_WITHIN

        blend_weight_below: Baseline weight when the measurement is more than 10% below.
            Must be >= blend_weight_within.
            Env var: WANRATE_RATE_BLEND_WEIGHT_BELOW

        overhead_multiplier: Headroom applied to the blended rate, in [1.0, 1.2].
            Env var: WANRATE_RATE_OVERHEAD_MULTIPLIER

    Example:
        >>> config = RateControlConfig(max_rate_mbps=500, absolute_max_rate_mbps=490)
        >>> config.decrease_factor
        0.97
    """

    ping_host: str = field(default="1.1.1.1", metadata={"env": "WANRATE_RATE_PING_HOST"})
    baseline_latency_ms: float = field(default=17.9, metadata={"env": "WANRATE_RATE_BASELINE_LATENCY_MS"})
    latency_threshold_ms: float = field(default=2.2, metadata={"env": "WANRATE_RATE_LATENCY_THRESHOLD_MS"})
    decrease_factor: float = field(default=0.97, metadata={"env": "WANRATE_RATE_DECREASE_FACTOR"})
    increase_factor: float = field(default=1.04, metadata={"env": "WANRATE_RATE_INCREASE_FACTOR"})
    min_rate_mbps: float = field(default=190.0, metadata={"env": "WANRATE_RATE_MIN_RATE_MBPS"})
    max_rate_mbps: float = field(default=285.0, metadata={"env": "WANRATE_RATE_MAX_RATE_MBPS"})
    absolute_max_rate_mbps: float = field(default=280.0, metadata={"env": "WANRATE_RATE_ABSOLUTE_MAX_RATE_MBPS"})
    blend_weight_within: float = field(default=0.60, metadata={"env": "WANRATE_RATE_BLEND_WEIGHT_WITHIN"})
    blend_weight_below: float = field(default=0.80, metadata={"env": "WANRATE_RATE_BLEND_WEIGHT_BELOW"})
    overhead_multiplier: float = field(default=1.05, metadata={"env": "WANRATE_RATE_OVERHEAD_MULTIPLIER"})

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> Self:
        """Validate rate control configuration fields."""
        if not self.ping_host or not self.ping_host.strip():
            raise ConfigValidationError(
                "ping_host", self.ping_host,
                "Must not be empty.", section="rate_control"
            )
        if self.baseline_latency_ms <= 0:
            raise ConfigValidationError(
                "baseline_latency_ms", self.baseline_latency_ms,
                "Must be greater than 0.", section="rate_control"
            )
        if self.latency_threshold_ms <= 0:
            raise ConfigValidationError(
                "latency_threshold_ms", self.latency_threshold_ms,
                "Must be greater than 0.", section="rate_control"
            )
        if self.decrease_factor <= 0 or self.decrease_factor >= 1:
            raise ConfigValidationError(
                "decrease_factor", self.decrease_factor,
                "Must be greater than 0 and less than 1.", section="rate_control"
            )
        if self.increase_factor <= 1:
            raise ConfigValidationError(
                "increase_factor", self.increase_factor,
                "Must be greater than 1.", section="rate_control"
            )
        if self.min_rate_mbps <= 0:
            raise ConfigValidationError(
                "min_rate_mbps", self.min_rate_mbps,
                "Must be greater than 0.", section="rate_control"
            )
        if self.min_rate_mbps >= self.max_rate_mbps:
            raise ConfigValidationError(
                "min_rate_mbps", self.min_rate_mbps,
                f"Must be less than max_rate_mbps ({self.max_rate_mbps}).", section="rate_control"
            )
        if self.absolute_max_rate_mbps <= 0:
            raise ConfigValidationError(
                "absolute_max_rate_mbps", self.absolute_max_rate_mbps,
                "Must be greater than 0.", section="rate_control"
            )
        for name in ("blend_weight_within", "blend_weight_below"):
            weight = getattr(self, name)
            if weight < 0 or weight > 1:
                raise ConfigValidationError(
                    name, weight,
                    "Must be between 0 and 1 (inclusive).", section="rate_control"
                )
        if self.blend_weight_below < self.blend_weight_within:
            raise ConfigValidationError(
                "blend_weight_below", self.blend_weight_below,
                f"Must be >= blend_weight_within ({self.blend_weight_within}).", section="rate_control"
            )
        if self.overhead_multiplier < 1.0 or self.overhead_multiplier > 1.2:
            raise ConfigValidationError(
                "overhead_multiplier", self.overhead_multiplier,
                "Must be between 1.0 and 1.2 (0-20% overhead).", section="rate_control"
            )
        return self

    # -------------------------------------------------------------------------
    # Presets
    # -------------------------------------------------------------------------

    @classmethod
    def from_profile(
        cls,
        connection_type: ConnectionType | str,
        nominal_download_mbps: int,
        **overrides: Any,
    ) -> RateControlConfig:
        """
        Build a config tuned for a connection type and advertised download speed.

        Limits, latency tuning and blend weights come from the connection
        profile; keyword overrides are applied on top (and re-validated).

        Example:
            >>> config = RateControlConfig.from_profile("starlink", 400)
            >>> (config.blend_weight_within, config.blend_weight_below)
            (0.5, 0.7)
            >>> config = RateControlConfig.from_profile("fiber", 1000, ping_host="9.9.9.9")
        """
        from wanrate._profiles import ConnectionProfile, ConnectionType

        profile = ConnectionProfile(
            type=ConnectionType(connection_type),
            nominal_download_mbps=nominal_download_mbps,
        )
        return profile.to_rate_control_config().with_overrides(overrides)


@dataclass(frozen=True)
class BaselineConfig(OverridableConfig):
    """
    Baseline learning configuration.

    Attributes:
        learning_mode: Whether fresh measurements refine the hourly baseline.
            Env var: WANRATE_BASELINE_LEARNING_MODE

        storage_path: Optional JSON file where RateManager persists the baseline table.
            Env var: WANRATE_BASELINE_STORAGE_PATH
    """

    learning_mode: bool = field(default=False, metadata={"env": "WANRATE_BASELINE_LEARNING_MODE"})
    storage_path: str | None = field(default=None, metadata={"env": "WANRATE_BASELINE_STORAGE_PATH"})

    def validate(self) -> Self:
        """Validate baseline configuration fields."""
        if self.storage_path is not None and not self.storage_path.strip():
            raise ConfigValidationError(
                "storage_path", self.storage_path,
                "Must not be empty string.", section="baseline"
            )
        return self


@dataclass(frozen=True)
class ReporterConfig(OverridableConfig):
    """
    InfluxDB status reporter configuration.

    Attributes:
        enabled: Whether RateManager pushes a status point after each cycle.
            Env var: WANRATE_REPORTER_ENABLED

        url: InfluxDB base URL.
            Env var: WANRATE_REPORTER_URL

        org: InfluxDB organization.
            Env var: WANRATE_REPORTER_ORG

        bucket: InfluxDB bucket. Required when enabled.
            Env var: WANRATE_REPORTER_BUCKET

        token: InfluxDB API token (masked by WANRATE.explain()).
            Env var: WANRATE_REPORTER_TOKEN

        measurement: Line-protocol measurement name.
            Env var: WANRATE_REPORTER_MEASUREMENT

        host_tag: Value of the `host` tag attached to every point.
            Env var: WANRATE_REPORTER_HOST_TAG

        request_timeout: HTTP request timeout in seconds.
            Env var: WANRATE_REPORTER_REQUEST_TIMEOUT

        retry_max_retries: Maximum retry attempts for a failed write. 0 disables retries.
            Env var: WANRATE_REPORTER_RETRY_MAX_RETRIES

        retry_initial_delay: Initial backoff delay in seconds (doubles each attempt).
            Env var: WANRATE_REPORTER_RETRY_INITIAL_DELAY
    """

    enabled: bool = field(default=False, metadata={"env": "WANRATE_REPORTER_ENABLED"})
    url: str = field(default="http://localhost:8086", metadata={"env": "WANRATE_REPORTER_URL"})
    org: str | None = field(default=None, metadata={"env": "WANRATE_REPORTER_ORG"})
    bucket: str | None = field(default=None, metadata={"env": "WANRATE_REPORTER_BUCKET"})
    token: str | None = field(default=None, metadata={"env": "WANRATE_REPORTER_TOKEN"})
    measurement: str = field(default="wan_rate", metadata={"env": "WANRATE_REPORTER_MEASUREMENT"})
    host_tag: str = field(default="gateway", metadata={"env": "WANRATE_REPORTER_HOST_TAG"})
    request_timeout: int = field(default=10, metadata={"env": "WANRATE_REPORTER_REQUEST_TIMEOUT"})
    retry_max_retries: int = field(default=3, metadata={"env": "WANRATE_REPORTER_RETRY_MAX_RETRIES"})
    retry_initial_delay: float = field(default=0.5, metadata={"env": "WANRATE_REPORTER_RETRY_INITIAL_DELAY"})

    def validate(self) -> Self:
        """Validate reporter configuration fields."""
        if self.url and not (self.url.startswith("http://") or self.url.startswith("https://")):
            raise ConfigValidationError(
                "url", self.url,
                "Must start with 'http://' or 'https://'.", section="reporter"
            )
        if self.enabled and not self.bucket:
            raise ConfigValidationError(
                "bucket", self.bucket,
                "Must be set when the reporter is enabled.", section="reporter"
            )
        if not self.measurement:
            raise ConfigValidationError(
                "measurement", self.measurement,
                "Must not be empty.", section="reporter"
            )
        if self.request_timeout <= 0:
            raise ConfigValidationError(
                "request_timeout", self.request_timeout,
                "Must be greater than 0.", section="reporter"
            )
        if self.retry_max_retries < 0:
            raise ConfigValidationError(
                "retry_max_retries", self.retry_max_retries,
                "Must be >= 0.", section="reporter"
            )
        if self.retry_initial_delay <= 0:
            raise ConfigValidationError(
                "retry_initial_delay", self.retry_initial_delay,
                "Must be greater than 0.", section="reporter"
            )
        return self


@dataclass(frozen=True)
class ConfigEntry:
    """
    A configuration field with its resolved value and source.

    Attributes:
        name: The field name (e.g., "max_rate_mbps").
        value: The resolved value.
        source: Where the value came from:
            - "default": Hardcoded default value
            - "env:VAR_NAME": Environment variable
            - "configure": Set via WANRATE.configure()

    Example:
        >>> entry = ConfigEntry("max_rate_mbps", 500, "configure")
        >>> entry.formatted_value
        '500'
    """

    name: str
    value: Any
    source: str

    @property
    def formatted_value(self) -> str:
        """
        Return value formatted for display.

        Masks sensitive fields (the reporter token) showing only a suffix,
        and truncates long strings.

        Examples:
            >>> ConfigEntry("token", "super-secret-token", "configure").formatted_value
            'supe********oken'
            >>> ConfigEntry("token", "short", "configure").formatted_value
            '********t'
        """
        if self.name in ("token",) and self.value is not None:
            secret = str(self.value)
            if len(secret) >= 12:
                return f"{secret[:4]}********{secret[-4:]}"
            if len(secret) >= 3:
                visible = max(1, len(secret) // 3)
                return f"********{secret[-visible:]}"
            return "********"

        if self.value is None:
            return "None"

        str_value = str(self.value)
        max_length = 50
        if len(str_value) > max_length:
            return str_value[: max_length - 3] + "..."

        return str_value


@dataclass(frozen=True)
class WanRateConfigTracker:
    """
    Tracks the source of config field values.

    Attributes:
        sources: Dict tracking source of each field value.
            Structure: {"section": {"field": "source"}}
            Source values: "default", "env:VAR_NAME", "configure"
    """

    sources: dict[str, dict[str, str]] = field(default_factory=dict)

    @staticmethod
    def track_changes(
        source_type: str,
    ) -> Callable[[Callable[..., WanRateConfig]], Callable[..., WanRateConfig]]:
        """
        Decorator that tracks config changes made by the decorated method.

        Args:
            source_type: Source label for tracking ("env" or "user").
        """

        def decorator(
            method: Callable[..., WanRateConfig],
        ) -> Callable[..., WanRateConfig]:
            @wraps(method)
            def wrapper(self: WanRateConfig, *args: Any, **kwargs: Any) -> WanRateConfig:
                new_config = method(self, *args, **kwargs)
                new_tracker = self._tracker.with_changes_tracked(
                    new_config, source_type, overrides=kwargs
                )
                return replace(new_config, _tracker=new_tracker)

            return wrapper

        return decorator

    def with_changes_tracked(
        self,
        new_config: WanRateConfig,
        source_type: str,
        overrides: dict[str, Any] | None = None,
    ) -> WanRateConfigTracker:
        """Return new tracker with the fields touched by the source recorded."""
        new_sources = {section: dict(flds) for section, flds in self.sources.items()}

        for section_name in _SECTIONS:
            section_config = getattr(new_config, section_name)
            section_sources = new_sources.setdefault(section_name, {})

            for f in fields(section_config):
                if source_type == "env":
                    # Touched if its env var is set and non-empty (consistent with EnvVars.get)
                    env_var = f.metadata.get("env")
                    if env_var and os.environ.get(env_var):
                        section_sources[f.name] = f"env:{env_var}"
                elif source_type == "user" and overrides:
                    section_overrides = overrides.get(section_name) or {}
                    if f.name in section_overrides:
                        section_sources[f.name] = "configure"

        return WanRateConfigTracker(sources={k: v for k, v in new_sources.items() if v})


@dataclass(frozen=True)
class WanRateConfig:
    """
    Global configuration for the wanrate package.

    Aggregates all configuration sections. Access via the global
    `WANRATE.config` property.

    Attributes:
        rate_control: Reconciler and rate controller tuning.
        baseline: Baseline learning and persistence.
        reporter: InfluxDB status reporting.

    Example:
        >>> from wanrate import WANRATE
        >>> WANRATE.config.rate_control.decrease_factor
        0.97
        >>> WANRATE.config.baseline.learning_mode
        False
    """

    rate_control: RateControlConfig = field(default_factory=RateControlConfig)
    baseline: BaselineConfig = field(default_factory=BaselineConfig)
    reporter: ReporterConfig = field(default_factory=ReporterConfig)
    _tracker: WanRateConfigTracker = field(default_factory=WanRateConfigTracker, repr=False)

    @WanRateConfigTracker.track_changes("env")
    def with_env_vars(self) -> WanRateConfig:
        """
        Return a new config with WANRATE_* environment variables applied on top.

        Example:
            >>> config = WanRateConfig().with_env_vars()
        """
        return WanRateConfig(
            rate_control=self.rate_control.with_env_vars(),
            baseline=self.baseline.with_env_vars(),
            reporter=self.reporter.with_env_vars(),
        )

    @WanRateConfigTracker.track_changes("user")
    def with_section_overrides(
        self,
        *,
        rate_control: dict[str, Any] | None = None,
        baseline: dict[str, Any] | None = None,
        reporter: dict[str, Any] | None = None,
    ) -> WanRateConfig:
        """
        Return a new config with overrides applied to nested sections.

        Example:
            >>> custom = WanRateConfig().with_section_overrides(
            ...     rate_control={"max_rate_mbps": 500},
            ... )
        """
        return WanRateConfig(
            rate_control=self.rate_control.with_overrides(rate_control or {}),
            baseline=self.baseline.with_overrides(baseline or {}),
            reporter=self.reporter.with_overrides(reporter or {}),
        )

    def explain_data(self) -> dict[str, list[ConfigEntry]]:
        """
        Return config data structured for explain output.

        Returns:
            Dict mapping section names to list of ConfigEntry objects.
        """
        result: dict[str, list[ConfigEntry]] = {}
        for section_name in _SECTIONS:
            section_config = getattr(self, section_name)
            section_sources = self._tracker.sources.get(section_name, {})
            result[section_name] = [
                ConfigEntry(
                    name=f.name,
                    value=getattr(section_config, f.name),
                    source=section_sources.get(f.name, "default"),
                )
                for f in fields(section_config)
            ]
        return result


# =============================================================================
# Global Configuration Singleton
# =============================================================================


class _WANRATE:
    """
    Singleton for package configuration.

    Use `WANRATE.configure()` to customize settings and `WANRATE.config`
    to access current configuration.

    Example:
        >>> from wanrate import WANRATE
        >>> WANRATE.configure(rate_control={"ping_host": "9.9.9.9"})
        >>> print(WANRATE.config.rate_control.ping_host)
    """

    def __init__(self) -> None:
        """Initialize with defaults and environment variables."""
        self._config: WanRateConfig = WanRateConfig().with_env_vars()

    def configure(
        self,
        *,
        rate_control: dict[str, Any] | None = None,
        baseline: dict[str, Any] | None = None,
        reporter: dict[str, Any] | None = None,
        allow_env_override: bool = True,
    ) -> WanRateConfig:
        """
        Configure package settings.

        Args:
            rate_control: RateControlConfig overrides (limits, latency tuning, blend weights).
            baseline: BaselineConfig overrides (learning_mode, storage_path).
            reporter: ReporterConfig overrides (enabled, url, bucket, token, ...).
            allow_env_override: If True (default), env vars are used as fallback
                for fields NOT provided. If False, ignores env vars entirely.

        Returns:
            The configured WanRateConfig instance.

        Raises:
            ValueError: If any dict contains unknown field names.
            ConfigValidationError: If any config value fails validation.

        Precedence:
            WANRATE.configure() > ENV vars > defaults
        """
        base = WanRateConfig()
        if allow_env_override:
            base = base.with_env_vars()

        self._config = base.with_section_overrides(
            rate_control=rate_control,
            baseline=baseline,
            reporter=reporter,
        )

        return self.validate()

    @property
    def config(self) -> WanRateConfig:
        """Access current configuration (read-only)."""
        return self._config

    def reset(self) -> WanRateConfig:
        """
        Reset configuration to defaults + env vars.

        Useful for testing to ensure clean state between tests.
        """
        self._config = WanRateConfig().with_env_vars()
        return self.validate()

    def validate(self) -> WanRateConfig:
        """
        Validate current configuration.

        Raises:
            ConfigValidationError: If any config value is invalid.
        """
        self._config.rate_control.validate()
        self._config.baseline.validate()
        self._config.reporter.validate()
        return self._config

    def explain(
        self,
        output: Callable[[str], None] = print,
    ) -> None:
        """
        Print current configuration with sources.

        Args:
            output: Callable to output each line. Defaults to print.
                    Can be used with logging: `WANRATE.explain(logger.info)`

        Example:
            >>> from wanrate import WANRATE
            >>> WANRATE.explain()
            WANRATE Configuration:
            ====================
            [rate_control]
              max_rate_mbps ........... 500 ✎ configure
            ...
        """
        name_width = 25
        value_width = 50
        total_width = 2 + name_width + 2 + (value_width + 2) + 1 + 8

        output("WANRATE Configuration:")
        output("=" * total_width)

        output(f"  {'Field':<{name_width}} │ {'Value':<{value_width}} │ Source")
        output(f"--{'-' * name_width}-+{'-' * (value_width + 2)}+--------")

        for section_name, entries in self._config.explain_data().items():
            output(f"[{section_name}]")
            for entry in entries:
                dots = "." * (name_width - len(entry.name))
                value_padded = entry.formatted_value.ljust(value_width)
                marker = "✎" if entry.source != "default" else " "
                output(f"  {entry.name} {dots} {value_padded} {marker} {entry.source}")

        output("=" * total_width)

    def __repr__(self) -> str:
        return f"WANRATE(config={self._config!r})"


# Global singleton instance - always reflects current configuration
WANRATE: _WANRATE = _WANRATE()
WANRATE.validate()  # Validate defaults + env vars on module load
