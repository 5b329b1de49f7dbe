"""
Tests for fleet_config: YAML loading, validation and the config trace.
"""

import pytest
from decimal import Decimal

import yaml

from fleet_config import DEFAULT_CONFIG_PATH, get_active_config
from fleet_config.loader import compute_checksum, load_config, parse_config
from fleet_kernel.exceptions import ConfigurationError


class TestPackagedDefaults:
    def test_defaults(self, finance_config):
        assert finance_config.config_id == "fleet-finance-default"
        assert finance_config.currency == "BRL"
        assert finance_config.required_minimum.amount == Decimal("200000.00")
        assert finance_config.reserve.alert_threshold_percent == Decimal("110")
        assert finance_config.critical_deficit.amount == Decimal("50000.00")
        assert finance_config.reserve.report_window_days == 30
        assert finance_config.rateio.manual_split_tolerance == Decimal("0.01")
        assert finance_config.dashboard.expense_average_months == 3
        assert finance_config.tbo_rate_per_hour.amount == Decimal("2800.00")
        assert finance_config.reference_rates.cdi_annual == Decimal("13.25")

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64

    def test_config_trace_is_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "FLEET_CONFIG_TRACE"]
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["source"] == str(DEFAULT_CONFIG_PATH)


class TestParsing:
    def test_empty_mapping_gives_defaults(self):
        config = parse_config({})
        assert config.config_id == "default"
        assert config.reserve.required_minimum == Decimal("200000")

    def test_float_values_become_exact_decimals(self):
        config = parse_config({"reserve": {"alert_threshold_percent": 112.5}})
        assert config.reserve.alert_threshold_percent == Decimal("112.5")

    def test_overrides_from_file(self, tmp_path):
        path = tmp_path / "fleet.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "config_id": "hangar-b",
                    "version": 3,
                    "reserve": {"required_minimum": "150000", "report_window_days": 60},
                    "reference_rates": {"selic_annual": "10.5"},
                }
            )
        )
        config = get_active_config(path)
        assert config.config_id == "hangar-b"
        assert config.version == 3
        assert config.required_minimum.amount == Decimal("150000")
        assert config.reserve.report_window_days == 60
        assert config.reference_rates.selic_annual == Decimal("10.5")
        assert config.reference_rates.cdi_annual == Decimal("13.25")

    def test_with_reference_rates(self, finance_config):
        updated = finance_config.with_reference_rates(cdi_annual=Decimal("11"))
        assert updated.reference_rates.cdi_annual == Decimal("11")
        assert finance_config.reference_rates.cdi_annual == Decimal("13.25")

    def test_checksum_changes_with_data(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestValidation:
    @pytest.mark.parametrize(
        "data, field",
        [
            ({"reserve": {"alert_threshold_percent": "99"}}, "reserve.alert_threshold_percent"),
            ({"reserve": {"required_minimum": "0"}}, "reserve.required_minimum"),
            ({"reserve": {"report_window_days": 0}}, "reserve.report_window_days"),
            ({"rateio": {"manual_split_tolerance": "-0.01"}}, "rateio.manual_split_tolerance"),
            ({"dashboard": {"expense_average_months": 0}}, "dashboard.expense_average_months"),
            ({"tbo": {"rate_per_hour": "-1"}}, "tbo.rate_per_hour"),
            ({"reserve": {"critical_deficit": "abc"}}, "reserve.critical_deficit"),
            ({"currency": "XYZ"}, "currency"),
            ({"reserve": ["not", "a", "mapping"]}, "reserve"),
        ],
    )
    def test_bad_values_name_the_field(self, data, field):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(data)
        assert exc_info.value.field == field
        assert exc_info.value.code == "INVALID_CONFIGURATION"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("reserve: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_config(path)
