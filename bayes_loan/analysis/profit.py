"""
Profit Distribution Module

Turns posterior-predictive repayment draws into a distribution of
portfolio profit, and evaluates simple approval policies.
"""

import numpy as np
import pandas as pd
from typing import Optional, Dict, Any, List
import arviz as az
import logging

from ..config import PROFIT_CONFIG, HDI_PROB

logger = logging.getLogger(__name__)


class ProfitSimulator:
    """
    Portfolio profit under posterior uncertainty.

    A repaid loan earns the total interest of a fully amortised loan at its
    own rate and term. A defaulted loan loses principal * loss_given_default.
    """

    def __init__(
        self,
        default_interest_rate: float = PROFIT_CONFIG["default_interest_rate"],
        loss_given_default: float = PROFIT_CONFIG["loss_given_default"],
        default_term_months: int = PROFIT_CONFIG["default_term_months"]
    ):
        if not 0 <= loss_given_default <= 1:
            raise ValueError(f"loss_given_default must be in [0, 1], got {loss_given_default}")
        self.default_interest_rate = default_interest_rate
        self.loss_given_default = loss_given_default
        self.default_term_months = default_term_months

    def _annual_rates(self, loans: pd.DataFrame) -> np.ndarray:
        if "int_rate" not in loans.columns:
            return np.full(len(loans), self.default_interest_rate)
        rates = loans["int_rate"].astype(float).fillna(self.default_interest_rate * 100)
        # int_rate is stored in percent
        return rates.values / 100

    def total_interest(self, loans: pd.DataFrame) -> np.ndarray:
        """Total interest paid over the life of each loan if repaid."""
        principal = loans["loan_amnt"].astype(float).values
        if "term_months" in loans.columns:
            n = loans["term_months"].astype(float).fillna(self.default_term_months).values
        else:
            n = np.full(len(loans), float(self.default_term_months))
        r = self._annual_rates(loans) / 12

        growth = (1 + r) ** n
        with np.errstate(divide="ignore", invalid="ignore"):
            installment = np.where(r > 0, principal * r * growth / (growth - 1), principal / n)
        return installment * n - principal

    def loan_payoffs(self, loans: pd.DataFrame) -> Dict[str, np.ndarray]:
        """Per-loan payoff if repaid and if defaulted."""
        principal = loans["loan_amnt"].astype(float).values
        return {
            "repaid": self.total_interest(loans),
            "default": -principal * self.loss_given_default,
        }

    def simulate(self, loans: pd.DataFrame, repaid_draws: np.ndarray) -> np.ndarray:
        """
        Portfolio profit for each posterior-predictive draw.

        Args:
            loans: Loan records (loan_amnt, int_rate, term_months)
            repaid_draws: 0/1 array of shape (n_draws, n_loans)

        Returns:
            Array of shape (n_draws,)
        """
        repaid_draws = np.asarray(repaid_draws)
        if repaid_draws.ndim != 2 or repaid_draws.shape[1] != len(loans):
            raise ValueError(
                f"repaid_draws must have shape (n_draws, {len(loans)}), got {repaid_draws.shape}"
            )

        payoffs = self.loan_payoffs(loans)
        return repaid_draws @ payoffs["repaid"] + (1 - repaid_draws) @ payoffs["default"]

    def summarize(self, profit_draws: np.ndarray, hdi_prob: float = HDI_PROB) -> Dict[str, Any]:
        """Summary statistics of a profit distribution."""
        profit_draws = np.asarray(profit_draws, dtype=float)
        if profit_draws.size == 0:
            raise ValueError("profit_draws is empty")

        hdi_low, hdi_high = az.hdi(profit_draws, hdi_prob=hdi_prob)
        return {
            "mean": float(profit_draws.mean()),
            "median": float(np.median(profit_draws)),
            "sd": float(profit_draws.std(ddof=1)) if profit_draws.size > 1 else 0.0,
            "hdi_prob": hdi_prob,
            "hdi_low": float(hdi_low),
            "hdi_high": float(hdi_high),
            "prob_loss": float((profit_draws < 0).mean()),
            "n_draws": int(profit_draws.size),
        }

    def policy_curve(
        self,
        loans: pd.DataFrame,
        repaid_draws: np.ndarray,
        repay_probability: np.ndarray,
        thresholds: Optional[List[float]] = None,
        hdi_prob: float = HDI_PROB
    ) -> pd.DataFrame:
        """
        Expected profit when only loans above a repayment-probability
        threshold are approved.

        Args:
            loans: Loan records
            repaid_draws: 0/1 array of shape (n_draws, n_loans)
            repay_probability: Predicted repayment probability per loan
            thresholds: Approval thresholds. 0.0 (approve all) is always included.

        Returns:
            One row per threshold
        """
        thresholds = sorted(set([0.0] + list(thresholds or PROFIT_CONFIG["policy_thresholds"])))
        repay_probability = np.asarray(repay_probability)
        if len(repay_probability) != len(loans):
            raise ValueError("repay_probability must have one entry per loan")

        rows = []
        for threshold in thresholds:
            mask = repay_probability >= threshold
            if mask.any():
                profit = self.simulate(loans.loc[mask], np.asarray(repaid_draws)[:, mask])
            else:
                profit = np.zeros(np.asarray(repaid_draws).shape[0])
            summary = self.summarize(profit, hdi_prob=hdi_prob)
            rows.append({
                "threshold": threshold,
                "n_approved": int(mask.sum()),
                "expected_profit": summary["mean"],
                "hdi_low": summary["hdi_low"],
                "hdi_high": summary["hdi_high"],
                "prob_loss": summary["prob_loss"],
            })

        curve = pd.DataFrame(rows)
        best = curve.loc[curve["expected_profit"].idxmax()]
        logger.info(
            f"Best approval threshold {best['threshold']:.2f}: "
            f"expected profit {best['expected_profit']:,.0f} on {best['n_approved']} loans"
        )
        return curve
