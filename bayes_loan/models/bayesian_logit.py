"""
Bayesian Logistic Regression Module

Wraps a bambi Bernoulli model (sampled with PyMC) for loan repayment.
Posterior summaries, log-likelihood and LOO come from ArviZ.
"""

import numpy as np
import pandas as pd
from typing import Optional, Dict, Any, List
import arviz as az
import bambi as bmb
from sklearn.metrics import (
    roc_auc_score,
    accuracy_score,
    brier_score_loss,
    log_loss,
    confusion_matrix,
)
import logging
import joblib
from pathlib import Path

from ..config import (
    MODEL_FORMULAS,
    PRIOR_CONFIG,
    SAMPLER_CONFIG,
    HDI_PROB,
    CONVERGENCE_CONFIG,
    MODELS_DIR,
)

logger = logging.getLogger(__name__)


def build_priors(prior_config: Optional[Dict[str, Dict[str, Any]]]) -> Optional[Dict[str, bmb.Prior]]:
    """Convert {"term": {"dist": ..., **params}} into bambi priors."""
    if not prior_config:
        return None
    priors = {}
    for term, settings in prior_config.items():
        settings = dict(settings)
        dist = settings.pop("dist")
        priors[term] = bmb.Prior(dist, **settings)
    return priors


def _stack_draws(data_array) -> np.ndarray:
    """Flatten (chain, draw, obs) to (chain * draw, obs)."""
    return data_array.stack(sample=("chain", "draw")).transpose("sample", ...).values


class BayesianLogisticModel:
    """
    Bayesian logistic regression for the probability of repayment.

    Supports:
    - Fitting with configurable priors and sampler settings
    - Posterior summaries and convergence checks
    - Posterior mean probabilities and posterior-predictive draws
    - Leave-one-out cross-validation
    """

    def __init__(
        self,
        name: str = "full",
        formula: Optional[str] = None,
        priors: Optional[Dict[str, Dict[str, Any]]] = None,
        sampler_params: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the model.

        Args:
            name: Model name. Also selects the formula from config when
                  formula is None.
            formula: Model formula with the binary response on the left.
            priors: Prior configuration. Defaults to PRIOR_CONFIG.
            sampler_params: Overrides for SAMPLER_CONFIG.
        """
        if formula is None:
            if name not in MODEL_FORMULAS:
                raise KeyError(f"No formula configured for '{name}'. Available: {list(MODEL_FORMULAS)}")
            formula = MODEL_FORMULAS[name]

        self.name = name
        self.formula = formula
        self.response = formula.split("~")[0].strip()
        self.prior_config = PRIOR_CONFIG if priors is None else priors
        self.sampler_params = {**SAMPLER_CONFIG, **(sampler_params or {})}

        self.model: Optional[bmb.Model] = None
        self.idata: Optional[az.InferenceData] = None
        self.train_data: Optional[pd.DataFrame] = None
        self._fitted = False

    def _build(self, data: pd.DataFrame) -> bmb.Model:
        return bmb.Model(
            self.formula,
            data,
            family="bernoulli",
            priors=build_priors(self.prior_config),
        )

    def __getstate__(self):
        # The bambi/PyMC graph is rebuilt from the training data on unpickle
        state = self.__dict__.copy()
        state["model"] = None
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        if self.train_data is not None:
            self.model = self._build(self.train_data)
            self.model.build()

    def _check_fitted(self):
        if not self._fitted:
            raise ValueError("Model not fitted. Call fit() first.")

    @property
    def parent(self) -> str:
        """Name of the response parameter (the repayment probability)."""
        return self.model.family.likelihood.parent

    def fit(self, train: pd.DataFrame, **sampler_overrides) -> "BayesianLogisticModel":
        """
        Sample the posterior.

        Args:
            train: Model frame with the response and predictor columns
            **sampler_overrides: draws, tune, chains, cores, random_seed, ...

        Returns:
            Self for method chaining
        """
        params = {**self.sampler_params, **sampler_overrides}
        self.train_data = train.reset_index(drop=True)
        self.model = self._build(self.train_data)

        logger.info(
            f"Fitting '{self.name}' ({self.formula}) on {len(train)} rows: "
            f"{params['chains']} chains x {params['draws']} draws on {params['cores']} cores"
        )
        self.idata = self.model.fit(
            idata_kwargs={"log_likelihood": True},
            **params
        )
        self.sampler_params = params
        self._fitted = True

        report = self.convergence_report()
        if not report["ok"]:
            logger.warning(f"Convergence issues for '{self.name}': {report}")
        logger.info(f"Model '{self.name}' fitted")

        return self

    @property
    def coefficient_names(self) -> List[str]:
        self._check_fitted()
        return [v for v in self.idata.posterior.data_vars if v != self.parent]

    def summary(self, hdi_prob: float = HDI_PROB) -> pd.DataFrame:
        """Posterior summary of the coefficients (mean, sd, HDI, ESS, r_hat)."""
        self._check_fitted()
        return az.summary(self.idata, var_names=self.coefficient_names, hdi_prob=hdi_prob)

    def convergence_report(self) -> Dict[str, Any]:
        """Check r_hat, bulk ESS and divergent transitions."""
        self._check_fitted()
        summary = az.summary(self.idata, var_names=self.coefficient_names, kind="diagnostics")
        divergences = int(self.idata.sample_stats["diverging"].sum())

        max_r_hat = float(summary["r_hat"].max())
        min_ess = float(summary["ess_bulk"].min())
        return {
            "max_r_hat": max_r_hat,
            "min_ess_bulk": min_ess,
            "divergences": divergences,
            "ok": (
                max_r_hat <= CONVERGENCE_CONFIG["max_r_hat"]
                and min_ess >= CONVERGENCE_CONFIG["min_ess_bulk"]
                and divergences == 0
            ),
        }

    def posterior_probabilities(self, data: Optional[pd.DataFrame] = None) -> np.ndarray:
        """
        Posterior draws of the repayment probability.

        Args:
            data: New model frame. None means the training data.

        Returns:
            Array of shape (n_draws, n_rows)
        """
        self._check_fitted()
        idata = self.model.predict(
            self.idata, kind="response_params", data=data, inplace=False
        )
        return _stack_draws(idata.posterior[self.parent])

    def predict_proba(self, data: Optional[pd.DataFrame] = None) -> np.ndarray:
        """Posterior mean probability of repayment per row."""
        return self.posterior_probabilities(data).mean(axis=0)

    def predict(self, data: Optional[pd.DataFrame] = None, threshold: float = 0.5) -> np.ndarray:
        """Point predictions (1 = repaid) from the posterior mean probability."""
        return (self.predict_proba(data) >= threshold).astype(int)

    def posterior_predictive_idata(self, data: Optional[pd.DataFrame] = None) -> az.InferenceData:
        """InferenceData with a posterior_predictive group for data."""
        self._check_fitted()
        return self.model.predict(self.idata, kind="response", data=data, inplace=False)

    def posterior_predictive(self, data: Optional[pd.DataFrame] = None) -> np.ndarray:
        """
        Simulated repayment outcomes.

        Returns:
            0/1 array of shape (n_draws, n_rows)
        """
        idata = self.posterior_predictive_idata(data)
        return _stack_draws(idata.posterior_predictive[self.response]).astype(int)

    def evaluate(self, test: pd.DataFrame, threshold: float = 0.5) -> Dict[str, Any]:
        """Evaluate posterior mean predictions on held-out data."""
        self._check_fitted()
        y_true = test[self.response].astype(int).values
        y_proba = self.predict_proba(test)
        y_pred = (y_proba >= threshold).astype(int)

        metrics = {
            "accuracy": accuracy_score(y_true, y_pred),
            "brier": brier_score_loss(y_true, y_proba),
            "log_loss": log_loss(y_true, y_proba, labels=[0, 1]),
            "confusion_matrix": confusion_matrix(y_true, y_pred, labels=[0, 1]).tolist(),
        }
        try:
            metrics["roc_auc"] = roc_auc_score(y_true, y_proba)
        except ValueError:
            metrics["roc_auc"] = None

        return metrics

    def loo(self, pointwise: bool = False) -> az.ELPDData:
        """Pareto-smoothed importance sampling leave-one-out cross-validation."""
        self._check_fitted()
        return az.loo(self.idata, pointwise=pointwise)

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "formula": self.formula,
            "fitted": self._fitted,
            "n_train": None if self.train_data is None else len(self.train_data),
            "sampler": {k: v for k, v in self.sampler_params.items() if k != "progressbar"},
        }

    def save(self, path: Optional[Path] = None):
        """Save the model state (joblib) and its posterior (netCDF)."""
        self._check_fitted()
        path = Path(path) if path else MODELS_DIR / f"bayes_logit_{self.name}.joblib"
        path.parent.mkdir(parents=True, exist_ok=True)

        idata_path = path.with_suffix(".nc")
        self.idata.to_netcdf(str(idata_path))

        state = {
            "name": self.name,
            "formula": self.formula,
            "prior_config": self.prior_config,
            "sampler_params": self.sampler_params,
            "train_data": self.train_data,
            "idata_file": idata_path.name,
            "_fitted": self._fitted,
        }
        joblib.dump(state, path)
        logger.info(f"Model saved to {path}")

    def load(self, path: Optional[Path] = None):
        """Load a saved model; rebuilds the bambi model without sampling."""
        path = Path(path) if path else MODELS_DIR / f"bayes_logit_{self.name}.joblib"
        if not path.exists():
            raise FileNotFoundError(f"Model not found at {path}")

        state = joblib.load(path)
        self.name = state["name"]
        self.formula = state["formula"]
        self.response = self.formula.split("~")[0].strip()
        self.prior_config = state["prior_config"]
        self.sampler_params = state["sampler_params"]
        self.train_data = state["train_data"]
        self.idata = az.from_netcdf(str(path.parent / state["idata_file"]))

        self.model = self._build(self.train_data)
        self.model.build()
        self._fitted = state["_fitted"]

        logger.info(f"Model loaded from {path}")
