"""Models package for Bayes Loan"""

from .bayesian_logit import BayesianLogisticModel
from .model_registry import ModelRegistry, get_registry

__all__ = ["BayesianLogisticModel", "ModelRegistry", "get_registry"]
