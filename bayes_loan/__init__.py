"""Bayesian logistic regression walkthrough for loan default data."""

__version__ = "0.1.0"
