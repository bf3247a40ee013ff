import numpy as np
import pandas as pd
import pytest

from segmented import (
    ColumnSpec,
    DataValidationError,
    add_harmonics,
    load_observations,
    make_prediction_grid,
    simulate_series,
)


def make_data():
    return simulate_series(seed=11)


class TestLoadObservations:
    def test_valid_frame_loads(self):
        df = make_data()
        loaded = load_observations(df)
        pd.testing.assert_frame_equal(loaded, df)

    def test_sorts_by_time(self):
        df = make_data()
        loaded = load_observations(df.sample(frac=1.0, random_state=3))
        assert loaded["time"].is_monotonic_increasing
        assert list(loaded.index) == list(range(len(df)))

    def test_does_not_modify_input(self):
        df = make_data().sample(frac=1.0, random_state=3)
        before = df.copy()
        load_observations(df)
        pd.testing.assert_frame_equal(df, before)

    def test_reads_csv(self, tmp_path):
        df = make_data()
        path = tmp_path / "series.csv"
        df.to_csv(path, index=False)
        loaded = load_observations(path)
        assert len(loaded) == len(df)
        assert loaded["outcome"].sum() == df["outcome"].sum()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_observations(tmp_path / "nope.csv")

    def test_custom_column_names(self):
        columns = ColumnSpec(outcome="aces", intervention="smokban")
        df = simulate_series(columns=columns, seed=1)
        loaded = load_observations(df, columns)
        assert "aces" in loaded.columns

    def test_empty_raises(self):
        with pytest.raises(DataValidationError, match="empty"):
            load_observations(make_data().iloc[0:0])

    def test_missing_column_raises(self):
        with pytest.raises(DataValidationError, match="stdpop"):
            load_observations(make_data().drop(columns=["stdpop"]))

    def test_missing_values_raise(self):
        df = make_data().astype({"outcome": float})
        df.loc[5, "outcome"] = np.nan
        with pytest.raises(DataValidationError, match="missing values"):
            load_observations(df)

    def test_non_numeric_column_raises(self):
        df = make_data().astype({"year": str})
        with pytest.raises(DataValidationError, match="numeric"):
            load_observations(df)

    def test_negative_count_raises(self):
        df = make_data()
        df.loc[2, "outcome"] = -3
        with pytest.raises(DataValidationError, match="negative"):
            load_observations(df)

    def test_fractional_count_raises(self):
        df = make_data().astype({"outcome": float})
        df.loc[2, "outcome"] = 10.5
        with pytest.raises(DataValidationError, match="whole-number"):
            load_observations(df)

    def test_non_positive_population_raises(self):
        df = make_data()
        df.loc[0, "pop"] = 0
        with pytest.raises(DataValidationError, match="'pop'"):
            load_observations(df)

    def test_non_binary_indicator_raises(self):
        df = make_data()
        df.loc[50, "intervention"] = 2
        with pytest.raises(DataValidationError, match="binary"):
            load_observations(df)

    def test_reverting_indicator_raises(self):
        df = make_data()
        df.loc[50, "intervention"] = 0
        with pytest.raises(DataValidationError, match="switches back"):
            load_observations(df)

    def test_duplicate_time_raises(self):
        df = make_data()
        df.loc[1, "time"] = df.loc[0, "time"]
        with pytest.raises(DataValidationError, match="duplicate"):
            load_observations(df)

    def test_month_out_of_range_raises(self):
        df = make_data()
        df.loc[0, "month"] = 13
        with pytest.raises(DataValidationError, match="between 1 and 12"):
            load_observations(df)


class TestHarmonics:
    def test_columns_and_values(self):
        df = pd.DataFrame({"month": [1, 3, 6, 12]})
        out = add_harmonics(df, "month", pairs=2)

        assert list(out.columns) == ["month", "month_sin1", "month_cos1", "month_sin2", "month_cos2"]
        np.testing.assert_allclose(out["month_sin1"], np.sin(2 * np.pi * df["month"] / 12))
        np.testing.assert_allclose(out["month_cos2"], np.cos(4 * np.pi * df["month"] / 12))

    def test_period_is_respected(self):
        df = pd.DataFrame({"month": [1.0, 2.0]})
        out = add_harmonics(df, "month", pairs=1, period=4)
        np.testing.assert_allclose(out["month_sin1"], [1.0, 0.0], atol=1e-12)

    def test_zero_pairs_returns_copy(self):
        df = pd.DataFrame({"month": [1, 2]})
        out = add_harmonics(df, "month", pairs=0)
        assert out is not df
        pd.testing.assert_frame_equal(out, df)


class TestPredictionGrid:
    def test_monthly_grid(self):
        grid = make_prediction_grid(n_pre=3, n_post=3, standardized_population=1000.0)
        assert list(grid["time"]) == [1, 2, 3, 4, 5, 6]
        assert list(grid["intervention"]) == [0, 0, 0, 1, 1, 1]
        assert list(grid["month"]) == [1, 2, 3, 4, 5, 6]
        assert (grid["stdpop"] == 1000.0).all()

    def test_fine_grid_month_cycles(self):
        grid = make_prediction_grid(n_pre=12, n_post=12, standardized_population=1.0, resolution=10)
        assert len(grid) == 240
        assert grid["month"].iloc[0] == pytest.approx(0.1)
        assert grid["month"].max() == pytest.approx(12.0)
        assert grid["month"].iloc[120] == pytest.approx(0.1)
        assert grid.loc[grid["time"] > 12, "intervention"].eq(1).all()
        assert grid.loc[grid["time"] <= 12, "intervention"].eq(0).all()

    def test_start_month(self):
        grid = make_prediction_grid(n_pre=2, n_post=2, standardized_population=1.0, start_month=11)
        assert list(grid["month"]) == [11, 12, 1, 2]

    def test_custom_columns(self):
        columns = ColumnSpec(intervention="smokban", standardized_population="std")
        grid = make_prediction_grid(2, 2, 1.0, columns=columns)
        assert {"smokban", "std"} <= set(grid.columns)

    def test_invalid_arguments_raise(self):
        with pytest.raises(ValueError, match="n_pre"):
            make_prediction_grid(0, 3, 1.0)
        with pytest.raises(ValueError, match="resolution"):
            make_prediction_grid(3, 3, 1.0, resolution=0)
        with pytest.raises(ValueError, match="standardized_population"):
            make_prediction_grid(3, 3, 0.0)


class TestSimulateSeries:
    def test_schema_and_switch(self):
        df = simulate_series(n_months=24, intervention_month=13, seed=0)
        assert list(df.columns) == ["year", "month", "time", "outcome", "intervention", "pop", "stdpop"]
        assert df.loc[df["time"] < 13, "intervention"].eq(0).all()
        assert df.loc[df["time"] >= 13, "intervention"].eq(1).all()
        assert list(df["year"].unique()) == [2002, 2003]

    def test_seed_is_reproducible(self):
        pd.testing.assert_frame_equal(simulate_series(seed=4), simulate_series(seed=4))

    def test_intervention_outside_series_raises(self):
        with pytest.raises(ValueError, match="intervention_month"):
            simulate_series(n_months=12, intervention_month=13)
