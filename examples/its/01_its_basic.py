"""
Basic interrupted time series: effect of a policy on a monthly event rate.

Five years of monthly counts, with a policy introduced at month 37. The
expected count is the standardized population times a baseline rate that
grows 0.2% per month, multiplied by the rate ratio after the policy.

The true rate ratio is 0.85.
"""

from segmented import PoissonITS, simulate_series

TRUE_RR = 0.85

df = simulate_series(n_months=60, intervention_month=37, rate_ratio=TRUE_RR, seed=42)

result = PoissonITS(outcome="outcome", intervention="intervention", offset="stdpop").fit(df)
print(result.summary())
print(result.executive_summary())

# The Poisson model assumes variance equal to the mean
print(f"Pearson dispersion: {result.pearson_dispersion:.3f}")
