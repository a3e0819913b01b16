"""
Loan Default Analysis Pipeline

Straight-line orchestration of the talk: load, preprocess, split, fit the
candidate models, compare them with LOO and estimate the profit distribution
of the test portfolio.
"""

import logging
from pathlib import Path
from typing import Optional, Dict, Any, List

import numpy as np
import pandas as pd

from .config import MODEL_FORMULAS, SAMPLER_CONFIG, HDI_PROB, SAMPLE_SIZE
from .data import LoanDataIngestionService, LoanPreprocessor
from .models import BayesianLogisticModel, ModelRegistry
from .analysis import ProfitSimulator

logger = logging.getLogger(__name__)


class LoanDefaultAnalysis:
    """
    End-to-end Bayesian loan default analysis.

    Every step stores its result on the instance so slides can show
    intermediate objects.
    """

    def __init__(
        self,
        data_path: Optional[Path] = None,
        use_synthetic: bool = False,
        sample_size: Optional[int] = SAMPLE_SIZE,
        formulas: Optional[Dict[str, str]] = None,
        sampler_params: Optional[Dict[str, Any]] = None,
        hdi_prob: float = HDI_PROB
    ):
        self.ingestion = LoanDataIngestionService(data_path)
        self.preprocessor = LoanPreprocessor()
        self.registry = ModelRegistry()
        self.profit_simulator = ProfitSimulator()

        self.use_synthetic = use_synthetic
        self.sample_size = sample_size
        self.formulas = formulas or dict(MODEL_FORMULAS)
        self.sampler_params = {**SAMPLER_CONFIG, **(sampler_params or {})}
        self.hdi_prob = hdi_prob

        self.raw_data: Optional[pd.DataFrame] = None
        self.frame: Optional[pd.DataFrame] = None
        self.train: Optional[pd.DataFrame] = None
        self.test: Optional[pd.DataFrame] = None
        self.comparison: Optional[pd.DataFrame] = None
        self.profit_draws: Optional[np.ndarray] = None
        self.profit_summary: Optional[Dict[str, Any]] = None

    def load(self) -> pd.DataFrame:
        self.raw_data = self.ingestion.load_data(
            use_synthetic=self.use_synthetic, sample_size=self.sample_size
        )
        return self.raw_data

    def prepare(self) -> pd.DataFrame:
        if self.raw_data is None:
            self.load()
        self.frame = self.preprocessor.fit_transform(self.raw_data)
        self.train, self.test = self.preprocessor.split_data(self.frame)
        return self.frame

    def fit_models(self, names: Optional[List[str]] = None) -> ModelRegistry:
        """Fit the named candidate models (all configured formulas by default)."""
        if self.train is None:
            self.prepare()
        for name in names or list(self.formulas):
            model = BayesianLogisticModel(
                name=name,
                formula=self.formulas[name],
                sampler_params=self.sampler_params,
            )
            model.fit(self.train)
            self.registry.register(name, model)
        return self.registry

    def compare(self) -> pd.DataFrame:
        self.comparison = self.registry.compare_models(ic="loo")
        return self.comparison

    def estimate_profit(self, model_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Profit distribution of the test portfolio under one model.

        Uses the LOO-best model when no name is given and a comparison exists,
        otherwise the first registered model.
        """
        if model_name is not None:
            model = self.registry.get(model_name)
        elif self.comparison is not None:
            model = self.registry.best_model()
        else:
            model = next(iter(self.registry.models.values()))

        repaid_draws = model.posterior_predictive(self.test)
        self.profit_draws = self.profit_simulator.simulate(self.test, repaid_draws)
        self.profit_summary = self.profit_simulator.summarize(self.profit_draws, self.hdi_prob)
        self.profit_summary["model"] = model.name

        logger.info(
            f"Expected test-portfolio profit under '{model.name}': "
            f"{self.profit_summary['mean']:,.0f} "
            f"(HDI {self.profit_summary['hdi_low']:,.0f} to {self.profit_summary['hdi_high']:,.0f})"
        )
        return self.profit_summary

    def run(self) -> Dict[str, Any]:
        """Run all steps and return the headline results."""
        logger.info("[1/5] Loading data...")
        self.load()
        logger.info("[2/5] Preprocessing and splitting...")
        self.prepare()
        logger.info("[3/5] Fitting models...")
        self.fit_models()
        logger.info("[4/5] Comparing models with LOO...")
        if len(self.registry.models) > 1:
            self.compare()
        logger.info("[5/5] Estimating profit distribution...")
        self.estimate_profit()

        return {
            "n_train": len(self.train),
            "n_test": len(self.test),
            "evaluation": {
                name: model.evaluate(self.test) for name, model in self.registry.models.items()
            },
            "comparison": self.comparison,
            "profit": self.profit_summary,
        }
