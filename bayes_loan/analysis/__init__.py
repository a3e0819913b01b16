"""Analysis package for Bayes Loan"""

from .profit import ProfitSimulator

__all__ = ["ProfitSimulator"]
