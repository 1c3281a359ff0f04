"""Tests for global configuration module."""

import io
import os
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from wanrate._config import (
    WANRATE,
    BaselineConfig,
    ConfigEntry,
    ConfigEnvVarError,
    ConfigValidationError,
    EnvVars,
    RateControlConfig,
    ReporterConfig,
    WanRateConfig,
)


class TestDefaults(unittest.TestCase):
    """Tests for default configuration values."""

    def setUp(self):
        WANRATE.reset()

    def tearDown(self):
        WANRATE.reset()

    def test_rate_control_defaults(self):
        """Should return the reference link tuning by default."""
        rc = WANRATE.config.rate_control
        self.assertEqual(rc.ping_host, "1.1.1.1")
        self.assertEqual(rc.baseline_latency_ms, 17.9)
        self.assertEqual(rc.latency_threshold_ms, 2.2)
        self.assertEqual(rc.decrease_factor, 0.97)
        self.assertEqual(rc.increase_factor, 1.04)
        self.assertEqual(rc.min_rate_mbps, 190.0)
        self.assertEqual(rc.max_rate_mbps, 285.0)
        self.assertEqual(rc.absolute_max_rate_mbps, 280.0)
        self.assertEqual(rc.blend_weight_within, 0.60)
        self.assertEqual(rc.blend_weight_below, 0.80)
        self.assertEqual(rc.overhead_multiplier, 1.05)

    def test_baseline_defaults(self):
        self.assertFalse(WANRATE.config.baseline.learning_mode)
        self.assertIsNone(WANRATE.config.baseline.storage_path)

    def test_reporter_defaults(self):
        reporter = WANRATE.config.reporter
        self.assertFalse(reporter.enabled)
        self.assertEqual(reporter.url, "http://localhost:8086")
        self.assertEqual(reporter.measurement, "wan_rate")
        self.assertEqual(reporter.request_timeout, 10)
        self.assertEqual(reporter.retry_max_retries, 3)
        self.assertEqual(reporter.retry_initial_delay, 0.5)


class TestWanRateConfigure(unittest.TestCase):
    """Tests for WANRATE.configure() method."""

    def setUp(self):
        WANRATE.reset()

    def tearDown(self):
        WANRATE.reset()

    def test_configure_rate_control_values(self):
        """Should override rate control defaults and keep the rest."""
        WANRATE.configure(rate_control={"max_rate_mbps": 500.0, "absolute_max_rate_mbps": 490.0})
        self.assertEqual(WANRATE.config.rate_control.max_rate_mbps, 500.0)
        self.assertEqual(WANRATE.config.rate_control.absolute_max_rate_mbps, 490.0)
        self.assertEqual(WANRATE.config.rate_control.decrease_factor, 0.97)

    def test_configure_returns_instance(self):
        result = WANRATE.configure(baseline={"learning_mode": True})
        self.assertIsInstance(result, WanRateConfig)
        self.assertTrue(result.baseline.learning_mode)
        self.assertTrue(WANRATE.config.baseline.learning_mode)

    def test_configure_section_isolation(self):
        WANRATE.configure(reporter={"enabled": True, "bucket": "network"})
        self.assertTrue(WANRATE.config.reporter.enabled)
        self.assertEqual(WANRATE.config.rate_control, RateControlConfig())

    def test_configure_invalid_value_raises(self):
        with self.assertRaises(ConfigValidationError):
            WANRATE.configure(rate_control={"decrease_factor": 1.5})

    def test_configure_unknown_field_raises(self):
        with self.assertRaises(ValueError) as ctx:
            WANRATE.configure(rate_control={"max_rate": 300})
        self.assertIn("Unknown config fields", str(ctx.exception))

    @patch.dict(os.environ, {"WANRATE_RATE_PING_HOST": "9.9.9.9"})
    def test_configure_without_env_override_ignores_env(self):
        WANRATE.configure(allow_env_override=False)
        self.assertEqual(WANRATE.config.rate_control.ping_host, "1.1.1.1")

    @patch.dict(os.environ, {"WANRATE_RATE_PING_HOST": "9.9.9.9"})
    def test_configure_beats_env(self):
        WANRATE.configure(rate_control={"ping_host": "8.8.8.8"})
        self.assertEqual(WANRATE.config.rate_control.ping_host, "8.8.8.8")


class TestEnvVars(unittest.TestCase):
    """Tests for environment variable override."""

    def setUp(self):
        WANRATE.reset()

    def tearDown(self):
        WANRATE.reset()

    @patch.dict(os.environ, {"WANRATE_RATE_MAX_RATE_MBPS": "300"})
    def test_float_env_var(self):
        WANRATE.reset()
        self.assertEqual(WANRATE.config.rate_control.max_rate_mbps, 300.0)

    @patch.dict(os.environ, {"WANRATE_RATE_PING_HOST": "9.9.9.9"})
    def test_string_env_var(self):
        WANRATE.reset()
        self.assertEqual(WANRATE.config.rate_control.ping_host, "9.9.9.9")

    @patch.dict(os.environ, {"WANRATE_BASELINE_LEARNING_MODE": "yes"})
    def test_bool_env_var(self):
        WANRATE.reset()
        self.assertTrue(WANRATE.config.baseline.learning_mode)

    @patch.dict(os.environ, {"WANRATE_REPORTER_RETRY_MAX_RETRIES": "7", "WANRATE_REPORTER_TOKEN": "tok"})
    def test_reporter_env_vars(self):
        WANRATE.reset()
        self.assertEqual(WANRATE.config.reporter.retry_max_retries, 7)
        self.assertEqual(WANRATE.config.reporter.token, "tok")

    @patch.dict(os.environ, {"WANRATE_RATE_MAX_RATE_MBPS": "fast"})
    def test_invalid_env_var_raises(self):
        with self.assertRaises(ConfigEnvVarError) as ctx:
            WANRATE.reset()
        self.assertEqual(ctx.exception.env_var, "WANRATE_RATE_MAX_RATE_MBPS")
        self.assertIn("float", str(ctx.exception))

    @patch.dict(os.environ, {"WANRATE_RATE_MAX_RATE_MBPS": ""})
    def test_empty_env_var_is_ignored(self):
        WANRATE.reset()
        self.assertEqual(WANRATE.config.rate_control.max_rate_mbps, 285.0)

    @patch.dict(os.environ, {"UNRELATED": "1"})
    def test_env_vars_get_returns_none_when_unset(self):
        self.assertIsNone(EnvVars.get("WANRATE_NOT_A_VARIABLE"))


class TestWithOverrides(unittest.TestCase):
    """Tests for OverridableConfig.with_overrides() method."""

    def test_returns_new_instance(self):
        original = RateControlConfig()
        modified = original.with_overrides({"increase_factor": 1.05})
        self.assertIsNot(original, modified)
        self.assertEqual(original.increase_factor, 1.04)
        self.assertEqual(modified.increase_factor, 1.05)

    def test_empty_dict_returns_same_instance(self):
        original = RateControlConfig()
        self.assertIs(original.with_overrides({}), original)

    def test_none_values_ignored(self):
        original = RateControlConfig()
        self.assertIs(original.with_overrides({"ping_host": None}), original)

    def test_invalid_field_raises(self):
        with self.assertRaises(ValueError) as ctx:
            RateControlConfig().with_overrides({"max_rate": 300})
        self.assertIn("max_rate", str(ctx.exception))

    def test_override_is_validated(self):
        with self.assertRaises(ConfigValidationError):
            RateControlConfig().with_overrides({"min_rate_mbps": 400.0})

    def test_is_frozen(self):
        config = RateControlConfig()
        with self.assertRaises(AttributeError):
            config.max_rate_mbps = 999.0  # type: ignore


class TestRateControlValidation(unittest.TestCase):
    """Invariants are checked when a RateControlConfig is built."""

    def assert_invalid(self, field_name: str, **kwargs):
        with self.assertRaises(ConfigValidationError) as ctx:
            RateControlConfig(**kwargs)
        self.assertEqual(ctx.exception.field, field_name)
        self.assertEqual(ctx.exception.section, "rate_control")
        self.assertIn("[rate_control]", str(ctx.exception))

    def test_empty_ping_host(self):
        self.assert_invalid("ping_host", ping_host=" ")

    def test_non_positive_latency(self):
        self.assert_invalid("baseline_latency_ms", baseline_latency_ms=0)
        self.assert_invalid("latency_threshold_ms", latency_threshold_ms=-1)

    def test_decrease_factor_range(self):
        self.assert_invalid("decrease_factor", decrease_factor=1.0)
        self.assert_invalid("decrease_factor", decrease_factor=0.0)

    def test_increase_factor_must_exceed_one(self):
        self.assert_invalid("increase_factor", increase_factor=1.0)

    def test_min_rate_must_be_positive_and_below_max(self):
        self.assert_invalid("min_rate_mbps", min_rate_mbps=0)
        self.assert_invalid("min_rate_mbps", min_rate_mbps=285.0)

    def test_absolute_max_must_be_positive(self):
        self.assert_invalid("absolute_max_rate_mbps", absolute_max_rate_mbps=0)

    def test_blend_weights_range(self):
        self.assert_invalid("blend_weight_within", blend_weight_within=-0.1)
        self.assert_invalid("blend_weight_below", blend_weight_below=1.1)

    def test_blend_below_must_not_be_lighter_than_within(self):
        self.assert_invalid("blend_weight_below", blend_weight_within=0.7, blend_weight_below=0.6)

    def test_overhead_multiplier_range(self):
        self.assert_invalid("overhead_multiplier", overhead_multiplier=0.99)
        self.assert_invalid("overhead_multiplier", overhead_multiplier=1.21)

    def test_boundary_values_are_valid(self):
        config = RateControlConfig(
            overhead_multiplier=1.2,
            blend_weight_within=0.0,
            blend_weight_below=0.0,
        )
        self.assertEqual(config.overhead_multiplier, 1.2)
        self.assertIs(config.validate(), config)


class TestOtherSectionsValidation(unittest.TestCase):
    """Tests for BaselineConfig and ReporterConfig validation."""

    def test_storage_path_cannot_be_blank(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            BaselineConfig(storage_path="  ").validate()
        self.assertEqual(ctx.exception.section, "baseline")

    def test_reporter_url_must_be_http(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            ReporterConfig(url="udp://influx:8089").validate()
        self.assertIn("url", str(ctx.exception))

    def test_reporter_enabled_requires_bucket(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            ReporterConfig(enabled=True).validate()
        self.assertEqual(ctx.exception.field, "bucket")

    def test_reporter_numeric_limits(self):
        for kwargs in ({"request_timeout": 0}, {"retry_max_retries": -1}, {"retry_initial_delay": 0}):
            with self.subTest(**kwargs):
                with self.assertRaises(ConfigValidationError):
                    ReporterConfig(**kwargs).validate()

    def test_reporter_valid_config_passes(self):
        config = ReporterConfig(enabled=True, url="https://influx.lan:8086", bucket="network")
        self.assertIs(config.validate(), config)


class TestFromProfile(unittest.TestCase):
    """Tests for RateControlConfig.from_profile()."""

    def test_starlink_weights(self):
        config = RateControlConfig.from_profile("starlink", 400)
        self.assertEqual((config.blend_weight_within, config.blend_weight_below), (0.5, 0.7))
        self.assertEqual(config.overhead_multiplier, 1.15)

    def test_overrides_applied_on_top(self):
        config = RateControlConfig.from_profile("fiber", 1000, ping_host="9.9.9.9")
        self.assertEqual(config.ping_host, "9.9.9.9")
        self.assertEqual(config.max_rate_mbps, 1050.0)

    def test_unknown_connection_type_raises(self):
        with self.assertRaises(ValueError):
            RateControlConfig.from_profile("carrier_pigeon", 1)


class TestSourceTracking(unittest.TestCase):
    """Tests for _tracker.sources tracking in WanRateConfig."""

    def setUp(self):
        WANRATE.reset()

    def tearDown(self):
        WANRATE.reset()

    def test_defaults_have_empty_sources(self):
        self.assertEqual(WanRateConfig()._tracker.sources, {})

    @patch.dict(os.environ, {"WANRATE_RATE_MIN_RATE_MBPS": "150"})
    def test_env_vars_tracked(self):
        config = WanRateConfig().with_env_vars()
        self.assertEqual(
            config._tracker.sources["rate_control"]["min_rate_mbps"],
            "env:WANRATE_RATE_MIN_RATE_MBPS",
        )

    @patch.dict(os.environ, {"WANRATE_REPORTER_RETRY_MAX_RETRIES": "5"})
    def test_sources_from_multiple_origins(self):
        WANRATE.configure(rate_control={"ping_host": "9.9.9.9"})
        sources = WANRATE.config._tracker.sources
        self.assertEqual(sources["rate_control"]["ping_host"], "configure")
        self.assertEqual(sources["reporter"]["retry_max_retries"], "env:WANRATE_REPORTER_RETRY_MAX_RETRIES")
        self.assertNotIn("baseline", sources)


class TestExplain(unittest.TestCase):
    """Tests for WANRATE.explain() method."""

    def setUp(self):
        WANRATE.reset()

    def tearDown(self):
        WANRATE.reset()

    def _capture_explain(self) -> str:
        captured = io.StringIO()
        with redirect_stdout(captured):
            WANRATE.explain()
        return captured.getvalue()

    def test_explain_lists_sections(self):
        WANRATE.configure(allow_env_override=False)
        output = self._capture_explain()
        self.assertIn("WANRATE Configuration:", output)
        self.assertIn("[rate_control]", output)
        self.assertIn("[baseline]", output)
        self.assertIn("[reporter]", output)

    def test_explain_shows_configure_source(self):
        WANRATE.configure(rate_control={"ping_host": "9.9.9.9"}, allow_env_override=False)
        output = self._capture_explain()
        self.assertIn("9.9.9.9", output)
        self.assertIn("✎ configure", output)

    def test_explain_masks_token(self):
        WANRATE.configure(reporter={"token": "influx-super-secret-token"}, allow_env_override=False)
        output = self._capture_explain()
        self.assertNotIn("influx-super-secret-token", output)
        self.assertIn("infl********oken", output)

    def test_explain_with_custom_output(self):
        lines: list[str] = []
        WANRATE.explain(output=lines.append)
        self.assertEqual(lines[0], "WANRATE Configuration:")
        self.assertTrue(any("max_rate_mbps" in line for line in lines))


class TestConfigEntryFormattedValue(unittest.TestCase):
    """Tests for ConfigEntry.formatted_value property."""

    def test_long_token_shows_first_and_last_four(self):
        self.assertEqual(ConfigEntry("token", "123456789012", "configure").formatted_value, "1234********9012")

    def test_short_token_shows_last_third(self):
        self.assertEqual(ConfigEntry("token", "123456", "configure").formatted_value, "********56")

    def test_tiny_token_fully_masked(self):
        self.assertEqual(ConfigEntry("token", "ab", "configure").formatted_value, "********")

    def test_none_value(self):
        self.assertEqual(ConfigEntry("org", None, "default").formatted_value, "None")

    def test_long_value_truncated(self):
        value = "x" * 80
        formatted = ConfigEntry("url", value, "default").formatted_value
        self.assertEqual(len(formatted), 50)
        self.assertTrue(formatted.endswith("..."))


class TestWanRateRepr(unittest.TestCase):

    def test_repr_contains_config(self):
        self.assertIn("WANRATE(config=", repr(WANRATE))


if __name__ == "__main__":
    unittest.main()
