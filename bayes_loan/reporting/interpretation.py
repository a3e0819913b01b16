"""
Coefficient Interpretation Module

Translates posterior coefficients on the logit scale into odds ratios
and short sentences suitable for slides.
"""

import numpy as np
import pandas as pd
from typing import List
import arviz as az
import logging

from ..config import HDI_PROB
from ..models.bayesian_logit import BayesianLogisticModel

logger = logging.getLogger(__name__)

TERM_LABELS = {
    "loan_amnt_z": "loan amount (1 SD on the log scale)",
    "annual_inc_z": "annual income (1 SD on the log scale)",
    "emp_length": "each extra year of employment",
}


def coefficient_table(
    model: BayesianLogisticModel,
    hdi_prob: float = HDI_PROB,
    include_intercept: bool = False
) -> pd.DataFrame:
    """
    Posterior coefficients with odds ratios.

    Categorical terms produce one row per non-reference level, labelled
    "term[level]".

    Returns:
        DataFrame with columns term, mean, odds_ratio, or_hdi_low,
        or_hdi_high, prob_positive
    """
    names = [n for n in model.coefficient_names if include_intercept or n != "Intercept"]
    draws = az.extract(model.idata, var_names=names, keep_dataset=True)

    rows = []
    for name in names:
        da = draws[name]
        level_dims = [d for d in da.dims if d != "sample"]
        if not level_dims:
            series = {name: da.values}
        else:
            dim = level_dims[0]
            series = {
                f"{name}[{level}]": da.sel({dim: level}).values
                for level in da.coords[dim].values
            }

        for label, values in series.items():
            odds = np.exp(values)
            or_low, or_high = az.hdi(odds, hdi_prob=hdi_prob)
            rows.append({
                "term": label,
                "mean": float(values.mean()),
                "odds_ratio": float(np.exp(values.mean())),
                "or_hdi_low": float(or_low),
                "or_hdi_high": float(or_high),
                "prob_positive": float((values > 0).mean()),
            })

    return pd.DataFrame(rows)


def _term_label(term: str) -> str:
    if term in TERM_LABELS:
        return TERM_LABELS[term]
    if "[" in term:
        base, level = term[:-1].split("[", 1)
        return f"{base.replace('_', ' ')} = {level}"
    return term.replace("_", " ")


def describe_coefficients(table: pd.DataFrame, hdi_prob: float = HDI_PROB) -> List[str]:
    """One plain-language sentence per coefficient row."""
    sentences = []
    for _, row in table.iterrows():
        direction = "raises" if row["odds_ratio"] >= 1 else "lowers"
        sentences.append(
            f"{_term_label(row['term']).capitalize()} {direction} the odds of repayment "
            f"by a factor of {row['odds_ratio']:.2f} "
            f"({hdi_prob:.0%} HDI {row['or_hdi_low']:.2f}-{row['or_hdi_high']:.2f}; "
            f"P(positive effect) = {row['prob_positive']:.0%})."
        )
    return sentences
