"""Reporting package for Bayes Loan"""

from .interpretation import coefficient_table, describe_coefficients
from .plots import (
    plot_posterior_densities,
    plot_coefficient_forest,
    plot_trace,
    plot_posterior_predictive,
    plot_profit_distribution,
    plot_policy_curve,
    plot_loo_comparison,
)

__all__ = [
    "coefficient_table",
    "describe_coefficients",
    "plot_posterior_densities",
    "plot_coefficient_forest",
    "plot_trace",
    "plot_posterior_predictive",
    "plot_profit_distribution",
    "plot_policy_curve",
    "plot_loo_comparison",
]
