"""
Model Registry Module

Keeps the candidate models of the talk together and compares them
with leave-one-out cross-validation.
"""

import logging
from typing import Dict, Optional, Any
from pathlib import Path
import json

import arviz as az
import pandas as pd

from .bayesian_logit import BayesianLogisticModel
from ..config import MODELS_DIR

logger = logging.getLogger(__name__)


class ModelRegistry:
    """
    Registry for fitted Bayesian models.

    Provides:
    - Centralized model storage
    - LOO model comparison
    - Saving and loading all models at once
    """

    def __init__(self):
        self.models: Dict[str, BayesianLogisticModel] = {}
        self.last_comparison: Optional[pd.DataFrame] = None

    def register(self, name: str, model: BayesianLogisticModel):
        """
        Register a fitted model.

        Args:
            name: Unique name for the model (e.g., "full")
            model: Model instance
        """
        self.models[name] = model
        logger.info(f"Registered model: {name}")

    def get(self, name: str) -> BayesianLogisticModel:
        if name not in self.models:
            raise KeyError(f"Model '{name}' not found. Available: {list(self.models.keys())}")
        return self.models[name]

    def list_models(self) -> Dict[str, Dict[str, Any]]:
        """List all registered models with their info."""
        return {name: model.get_model_info() for name, model in self.models.items()}

    def compare_models(self, ic: str = "loo", scale: str = "log") -> pd.DataFrame:
        """
        Compare all fitted models on expected log predictive density.

        Args:
            ic: Information criterion, "loo" or "waic"
            scale: ArviZ scale for the criterion

        Returns:
            ArviZ comparison table indexed by model name, best model first
        """
        fitted = {name: m.idata for name, m in self.models.items() if m._fitted}
        if len(fitted) < 2:
            raise ValueError(f"Need at least two fitted models to compare, got {len(fitted)}")

        logger.info(f"Comparing models {list(fitted)} with {ic}")
        self.last_comparison = az.compare(fitted, ic=ic, scale=scale)
        return self.last_comparison

    def best_model(self, ic: str = "loo") -> BayesianLogisticModel:
        """Return the top-ranked model of the latest comparison."""
        comparison = self.last_comparison if self.last_comparison is not None else self.compare_models(ic=ic)
        return self.get(comparison.index[0])

    def save_all(self, directory: Optional[Path] = None):
        """Save all registered models."""
        directory = Path(directory) if directory else MODELS_DIR
        directory.mkdir(parents=True, exist_ok=True)

        for name, model in self.models.items():
            model.save(directory / f"{name}.joblib")

        meta_path = directory / "registry_metadata.json"
        with open(meta_path, "w") as f:
            json.dump({"models": list(self.models.keys())}, f, indent=2)

        logger.info(f"Saved {len(self.models)} models to {directory}")

    def load_all(self, directory: Optional[Path] = None):
        """Load all models from directory."""
        directory = Path(directory) if directory else MODELS_DIR

        meta_path = directory / "registry_metadata.json"
        if meta_path.exists():
            with open(meta_path, "r") as f:
                model_names = json.load(f).get("models", [])
        else:
            model_names = [p.stem for p in directory.glob("*.joblib")]

        for name in model_names:
            model_path = directory / f"{name}.joblib"
            if not model_path.exists():
                continue
            model = BayesianLogisticModel(name=name, formula="repaid ~ 1")
            model.load(model_path)
            self.models[name] = model

        logger.info(f"Loaded {len(self.models)} models from {directory}")


# Global registry instance
_registry: Optional[ModelRegistry] = None


def get_registry() -> ModelRegistry:
    """Get or create the global model registry."""
    global _registry
    if _registry is None:
        _registry = ModelRegistry()
    return _registry
