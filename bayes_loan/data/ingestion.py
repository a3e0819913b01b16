"""
Data Ingestion Service

Handles loading and initial validation of the loan dataset.
Supports both local CSV files and synthetic data generation for talks and tests.
"""

import pandas as pd
import numpy as np
from pathlib import Path
from typing import Optional, Dict, Any
import logging
import json
from datetime import datetime

from ..config import (
    RAW_DATA_DIR,
    PROCESSED_DATA_DIR,
    DATA_FILE_NAMES,
    SAMPLE_SIZE,
    RANDOM_SEED,
    REQUIRED_COLUMNS,
    TARGET_STATUS,
    TARGET_REPAID,
)

logger = logging.getLogger(__name__)


class LoanDataIngestionService:
    """
    Service for loading and validating loan records.

    Supports:
    - Loading from local CSV files
    - Generating synthetic LendingClub-style data
    - Data validation and quality checks
    """

    def __init__(self, data_path: Optional[Path] = None, seed: int = RANDOM_SEED):
        """
        Initialize the data ingestion service.

        Args:
            data_path: Optional path to the raw data file.
                       If None, will look in RAW_DATA_DIR or generate synthetic data.
            seed: Seed for the synthetic generator.
        """
        self.data_path = Path(data_path) if data_path else None
        self.seed = seed
        self.raw_data: Optional[pd.DataFrame] = None
        self.metadata: Dict[str, Any] = {}

    def load_data(
        self,
        use_synthetic: bool = False,
        sample_size: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Load the loan dataset.

        Args:
            use_synthetic: If True, generate synthetic data instead of loading real data.
            sample_size: Number of rows to load/generate. Defaults to config SAMPLE_SIZE.

        Returns:
            DataFrame with the loan data.
        """
        sample_size = sample_size or SAMPLE_SIZE

        if use_synthetic:
            logger.info(f"Generating synthetic dataset with {sample_size} samples")
            self.raw_data = self._generate_synthetic_data(sample_size)
        else:
            self.raw_data = self._load_from_file(sample_size)

        self._compute_metadata()
        self._validate_data()

        return self.raw_data

    def _load_from_file(self, sample_size: int) -> pd.DataFrame:
        """Load data from CSV file."""
        if self.data_path is not None and not self.data_path.exists():
            raise FileNotFoundError(f"Data file not found at {self.data_path}")

        possible_paths = [self.data_path] + [RAW_DATA_DIR / name for name in DATA_FILE_NAMES]

        data_file = None
        for path in possible_paths:
            if path and Path(path).exists():
                data_file = path
                break

        if data_file is None:
            logger.warning("No data file found. Generating synthetic data.")
            return self._generate_synthetic_data(sample_size)

        logger.info(f"Loading data from {data_file}")
        return pd.read_csv(data_file, nrows=sample_size, low_memory=False)

    def _generate_synthetic_data(self, n_samples: int) -> pd.DataFrame:
        """
        Generate synthetic loan records with a known default mechanism.

        Values use raw LendingClub formatting so the same cleaning path
        is exercised for real and synthetic data.
        """
        rng = np.random.default_rng(self.seed)

        emp_years = np.clip(rng.exponential(4.5, n_samples), 0, 10).astype(int)
        emp_labels = np.array(
            ["< 1 year" if y == 0 else "1 year" if y == 1 else "10+ years" if y == 10
             else f"{y} years" for y in emp_years],
            dtype=object,
        )

        # Annual income (log-normal), correlated with tenure
        annual_inc = np.clip(
            rng.lognormal(10.9, 0.45, n_samples) + emp_years * 2000,
            12000, 400000
        )

        # Loan amount scales loosely with income
        loan_amnt = np.clip(
            rng.lognormal(9.4, 0.6, n_samples) * (annual_inc / 60000) ** 0.3,
            1000, 40000
        ).round(-2)

        term = rng.choice([" 36 months", " 60 months"], n_samples, p=[0.72, 0.28])
        term_months = np.where(term == " 36 months", 36, 60)

        home_ownership = rng.choice(
            ["RENT", "OWN", "MORTGAGE", "OTHER"],
            n_samples,
            p=[0.4, 0.1, 0.46, 0.04]
        )

        int_rate = np.clip(
            rng.normal(12.5, 3.5, n_samples) + np.where(term_months == 60, 2.5, 0),
            5.0, 30.0
        ).round(2)

        log_odds = (
            1.9
            + 0.55 * (np.log(annual_inc) - 10.9)
            - 0.35 * (np.log(loan_amnt) - 9.4)
            + 0.04 * emp_years
            - 0.45 * (term_months == 60)
            + 0.15 * (home_ownership == "MORTGAGE")
            - 0.1 * (home_ownership == "RENT")
            - 0.06 * (int_rate - 12.5)
        )
        p_repay = 1 / (1 + np.exp(-log_odds))
        loan_status = np.where(rng.random(n_samples) < p_repay, "Fully Paid", "Charged Off")

        df = pd.DataFrame({
            "loan_amnt": loan_amnt,
            "annual_inc": annual_inc.round(0),
            "term": term,
            "home_ownership": home_ownership,
            "emp_length": emp_labels,
            "int_rate": int_rate,
            TARGET_STATUS: loan_status,
        })

        logger.info(f"Generated synthetic dataset with {len(df)} samples")
        return df

    def _compute_metadata(self):
        """Compute metadata about the loaded dataset."""
        if self.raw_data is None:
            return

        self.metadata = {
            "n_samples": len(self.raw_data),
            "n_features": len(self.raw_data.columns),
            "columns": list(self.raw_data.columns),
            "dtypes": {col: str(dtype) for col, dtype in self.raw_data.dtypes.items()},
            "missing_values": {k: int(v) for k, v in self.raw_data.isnull().sum().items()},
            "load_timestamp": datetime.now().isoformat(),
        }

        for target in (TARGET_STATUS, TARGET_REPAID):
            if target in self.raw_data.columns:
                self.metadata["target_distribution"] = {
                    str(k): int(v) for k, v in self.raw_data[target].value_counts().items()
                }
                break

    def _validate_data(self):
        """Validate the loaded data."""
        if self.raw_data is None:
            raise ValueError("No data loaded")

        required_cols = REQUIRED_COLUMNS
        missing_cols = [col for col in required_cols if col not in self.raw_data.columns]
        if TARGET_STATUS not in self.raw_data.columns and TARGET_REPAID not in self.raw_data.columns:
            missing_cols.append(f"{TARGET_STATUS} or {TARGET_REPAID}")

        if missing_cols:
            raise ValueError(f"Missing required columns: {missing_cols}")

        # Check for extreme missing values
        missing_pct = self.raw_data.isnull().mean()
        high_missing = missing_pct[missing_pct > 0.5]

        if len(high_missing) > 0:
            logger.warning(f"Columns with >50% missing values: {list(high_missing.index)}")

        logger.info(f"Data validation complete. Shape: {self.raw_data.shape}")

    def save_processed_data(self, df: pd.DataFrame, filename: str = "model_frame.csv") -> Path:
        """Save a processed frame and the ingestion metadata to disk."""
        output_path = PROCESSED_DATA_DIR / filename
        df.to_csv(output_path, index=False)

        meta_path = PROCESSED_DATA_DIR / f"{Path(filename).stem}_metadata.json"
        with open(meta_path, "w") as f:
            json.dump(self.metadata, f, indent=2)

        logger.info(f"Saved processed data to {output_path}")
        return output_path

    def get_data_quality_report(self) -> Dict[str, Any]:
        """Generate a data quality report."""
        if self.raw_data is None:
            raise ValueError("No data loaded")

        report = {
            "shape": self.raw_data.shape,
            "memory_usage_mb": self.raw_data.memory_usage(deep=True).sum() / 1024**2,
            "missing_values": {
                "total": int(self.raw_data.isnull().sum().sum()),
                "by_column": self.raw_data.isnull().sum().to_dict(),
            },
            "duplicates": int(self.raw_data.duplicated().sum()),
            "numeric_stats": {},
            "categorical_stats": {},
        }

        for col in self.raw_data.select_dtypes(include=[np.number]).columns:
            report["numeric_stats"][col] = {
                "mean": float(self.raw_data[col].mean()),
                "std": float(self.raw_data[col].std()),
                "min": float(self.raw_data[col].min()),
                "max": float(self.raw_data[col].max()),
                "median": float(self.raw_data[col].median()),
            }

        for col in self.raw_data.select_dtypes(exclude=[np.number]).columns:
            value_counts = self.raw_data[col].value_counts()
            report["categorical_stats"][col] = {
                "n_unique": int(self.raw_data[col].nunique()),
                "top_values": value_counts.head(5).to_dict(),
            }

        return report
