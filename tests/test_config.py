import json
from dataclasses import FrozenInstanceError

import pytest

from segmented import AnalysisConfig, ColumnSpec, ConfigurationError, load_config


class TestColumnSpec:
    def test_defaults(self):
        spec = ColumnSpec()
        assert spec.required == ["year", "month", "time", "outcome", "intervention", "pop", "stdpop"]

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            ColumnSpec().outcome = "x"


class TestAnalysisConfig:
    def test_defaults(self):
        config = AnalysisConfig()
        assert config.harmonics == 2
        assert config.period == 12
        assert config.per == 100_000
        assert config.columns == ColumnSpec()

    @pytest.mark.parametrize(
        "kwargs, match",
        [
            ({"harmonics": 0}, "harmonics"),
            ({"period": 1}, "period"),
            ({"max_lag": 0}, "max_lag"),
            ({"per": 0}, "per"),
            ({"grid_resolution": 0}, "grid_resolution"),
            ({"alpha": 1.5}, "alpha"),
            ({"reference_month": 0}, "reference_month"),
            ({"reference_month": 40}, "reference_month"),
            ({"period": 6, "reference_month": 7}, "reference_month"),
        ],
    )
    def test_invalid_values_raise(self, kwargs, match):
        with pytest.raises(ConfigurationError, match=match):
            AnalysisConfig(**kwargs)


class TestLoadConfig:
    def test_yaml(self, tmp_path):
        path = tmp_path / "analysis.yaml"
        path.write_text(
            "columns:\n"
            "  outcome: aces\n"
            "  intervention: smokban\n"
            "harmonics: 3\n"
            "per: 1000\n"
        )
        config = load_config(path)
        assert config.columns.outcome == "aces"
        assert config.columns.intervention == "smokban"
        assert config.columns.time == "time"
        assert config.harmonics == 3
        assert config.per == 1000.0
        assert config.max_lag == 24

    def test_json(self, tmp_path):
        path = tmp_path / "analysis.json"
        path.write_text(json.dumps({"max_lag": 12, "reference_month": 7}))
        config = load_config(path)
        assert config.max_lag == 12
        assert config.reference_month == 7.0

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == AnalysisConfig()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_not_a_mapping_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_unknown_key_raises(self, tmp_path):
        path = tmp_path / "typo.yaml"
        path.write_text("harmonic: 2\n")
        with pytest.raises(ConfigurationError, match="Unknown configuration keys"):
            load_config(path)

    def test_unknown_column_role_raises(self, tmp_path):
        path = tmp_path / "roles.yaml"
        path.write_text("columns:\n  rate: r\n")
        with pytest.raises(ConfigurationError, match="Unknown column roles"):
            load_config(path)

    def test_wrong_type_raises(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text("harmonics: two\n")
        with pytest.raises(ConfigurationError, match="integer"):
            load_config(path)

    def test_boolean_is_not_a_number(self, tmp_path):
        path = tmp_path / "bool.yaml"
        path.write_text("alpha: true\n")
        with pytest.raises(ConfigurationError, match="number"):
            load_config(path)

    def test_reference_month_outside_period_raises(self, tmp_path):
        path = tmp_path / "month.yaml"
        path.write_text("reference_month: 13\n")
        with pytest.raises(ConfigurationError, match="reference_month"):
            load_config(path)

    def test_invalid_value_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("harmonics: 0\n")
        with pytest.raises(ConfigurationError, match="harmonics"):
            load_config(path)
