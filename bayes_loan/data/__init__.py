"""Data package for Bayes Loan"""

from .ingestion import LoanDataIngestionService
from .preprocessing import LoanPreprocessor

__all__ = ["LoanDataIngestionService", "LoanPreprocessor"]
