"""
Plotting Module

Posterior, posterior-predictive, profit and model-comparison figures.
ArviZ draws the Bayesian diagnostics; matplotlib/seaborn the rest.
Figures are returned open so the deck renderer can capture them.
"""

import numpy as np
import pandas as pd
from typing import Optional, Dict, Any, Union
from pathlib import Path
import logging

import arviz as az
import matplotlib.pyplot as plt
import seaborn as sns

from ..config import HDI_PROB, PLOT_CONFIG
from ..models.bayesian_logit import BayesianLogisticModel

logger = logging.getLogger(__name__)


def _figure_of(axes) -> plt.Figure:
    return np.atleast_1d(axes).ravel()[0].figure


def _finish(fig: plt.Figure, save_path: Optional[Union[str, Path]]) -> plt.Figure:
    fig.tight_layout()
    if save_path is not None:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=PLOT_CONFIG["dpi"], bbox_inches="tight")
        logger.info(f"Saved figure to {save_path}")
    return fig


def plot_posterior_densities(
    model: BayesianLogisticModel,
    hdi_prob: float = HDI_PROB,
    save_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """Marginal posterior of each coefficient with its HDI and a zero reference."""
    axes = az.plot_posterior(
        model.idata,
        var_names=model.coefficient_names,
        hdi_prob=hdi_prob,
        ref_val=0,
    )
    return _finish(_figure_of(axes), save_path)


def plot_coefficient_forest(
    models: Dict[str, BayesianLogisticModel],
    hdi_prob: float = HDI_PROB,
    save_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """Forest plot of coefficients, one row per model when several are given."""
    names = list(models)
    var_names = sorted(
        {v for m in models.values() for v in m.coefficient_names if v != "Intercept"}
    )
    axes = az.plot_forest(
        [models[n].idata for n in names],
        model_names=names,
        var_names=var_names,
        combined=True,
        hdi_prob=hdi_prob,
        figsize=PLOT_CONFIG["figsize"],
    )
    ax = np.atleast_1d(axes).ravel()[0]
    ax.axvline(0, color="grey", linestyle="--", linewidth=1)
    ax.set_title(f"Coefficients on the logit scale ({hdi_prob:.0%} HDI)")
    return _finish(ax.figure, save_path)


def plot_trace(
    model: BayesianLogisticModel,
    save_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """Trace plot of the sampler for each coefficient."""
    axes = az.plot_trace(model.idata, var_names=model.coefficient_names, compact=True)
    return _finish(_figure_of(axes), save_path)


def plot_posterior_predictive(
    model: BayesianLogisticModel,
    data: Optional[pd.DataFrame] = None,
    num_pp_samples: int = PLOT_CONFIG["num_pp_samples"],
    save_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """Posterior predictive check of the repayment outcome."""
    idata = model.posterior_predictive_idata(data)
    ax = az.plot_ppc(idata, num_pp_samples=num_pp_samples, figsize=PLOT_CONFIG["figsize"])
    return _finish(_figure_of(ax), save_path)


def plot_profit_distribution(
    profit_draws: np.ndarray,
    summary: Dict[str, Any],
    save_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """Histogram of portfolio profit with the HDI and break-even marked."""
    sns.set_style(PLOT_CONFIG["style"])
    fig, ax = plt.subplots(figsize=PLOT_CONFIG["figsize"])

    sns.histplot(np.asarray(profit_draws), bins=40, kde=True, color="#3498DB", ax=ax)
    ax.axvline(summary["hdi_low"], color="#E74C3C", linestyle="--",
               label=f"{summary['hdi_prob']:.0%} HDI")
    ax.axvline(summary["hdi_high"], color="#E74C3C", linestyle="--")
    ax.axvline(summary["mean"], color="#27AE60", linewidth=2,
               label=f"mean {summary['mean']:,.0f}")
    ax.axvline(0, color="black", linewidth=1)

    ax.set_xlabel("Portfolio profit")
    ax.set_ylabel("Posterior draws")
    ax.set_title(f"Profit distribution (P(loss) = {summary['prob_loss']:.1%})", fontsize=14)
    ax.legend()
    return _finish(fig, save_path)


def plot_policy_curve(
    curve: pd.DataFrame,
    save_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """Expected profit against the approval threshold."""
    sns.set_style(PLOT_CONFIG["style"])
    fig, ax = plt.subplots(figsize=PLOT_CONFIG["figsize"])

    ax.plot(curve["threshold"], curve["expected_profit"], marker="o", color="#27AE60")
    ax.fill_between(curve["threshold"], curve["hdi_low"], curve["hdi_high"],
                    color="#27AE60", alpha=0.2)
    ax.axhline(0, color="black", linewidth=1)

    ax.set_xlabel("Minimum predicted repayment probability")
    ax.set_ylabel("Expected portfolio profit")
    ax.set_title("Profit by approval threshold", fontsize=14)
    return _finish(fig, save_path)


def plot_loo_comparison(
    comparison: pd.DataFrame,
    save_path: Optional[Union[str, Path]] = None
) -> plt.Figure:
    """ArviZ comparison plot of ELPD-LOO with standard errors."""
    ax = az.plot_compare(comparison, figsize=PLOT_CONFIG["figsize"])
    return _finish(_figure_of(ax), save_path)
