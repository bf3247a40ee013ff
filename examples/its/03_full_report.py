"""
The complete analysis sequence in one call.

run_analysis() validates the data, describes it before and after the
intervention, fits the four nested models, computes residual correlograms,
tests for a change in slope and produces the prediction curves.
"""

import logging

from segmented import AnalysisConfig, ColumnSpec, run_analysis, simulate_series

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

columns = ColumnSpec(outcome="aces", intervention="smokban")
df = simulate_series(columns=columns, rate_ratio=0.89, seasonal_amplitude=0.15, seed=2002)

report = run_analysis(df, AnalysisConfig(columns=columns, harmonics=2, max_lag=24))
print(report.summary())
print(report.predictions.head(12).round(2).to_string(index=False))
