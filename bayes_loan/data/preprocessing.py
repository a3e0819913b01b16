"""
Data Preprocessing Module

Turns raw loan records into the model frame used by the Bayesian models:
cleans LendingClub formatting, derives the binary repayment target,
standardises log-scale amounts and splits train/test partitions.
"""

import pandas as pd
import numpy as np
from typing import Optional, Tuple, List, Dict, Any
from sklearn.preprocessing import StandardScaler
from sklearn.model_selection import train_test_split
import logging
import joblib
from pathlib import Path

from ..config import (
    TARGET_STATUS,
    TARGET_REPAID,
    GOOD_STATUSES,
    HOME_OWNERSHIP_LEVELS,
    PROFIT_CONFIG,
    RANDOM_SEED,
    TEST_SIZE,
    CACHE_DIR,
)

logger = logging.getLogger(__name__)

# Raw amounts standardised on the log scale
LOG_SCALED = {"loan_amnt": "loan_amnt_z", "annual_inc": "annual_inc_z"}

MODEL_INPUTS = ["loan_amnt", "annual_inc", "term", "home_ownership", "emp_length"]


class LoanPreprocessor:
    """
    Preprocessing pipeline producing the model frame.

    The frame keeps the cleaned raw columns (needed for profit estimates)
    next to the derived model inputs:
    - repaid: 1 if the loan was repaid, 0 if it defaulted
    - term: "36" or "60" (categorical), term_months: numeric
    - emp_length: years of employment, 0-10
    - home_ownership: RENT / OWN / MORTGAGE / OTHER
    - loan_amnt_z, annual_inc_z: standardised log amounts
    """

    def __init__(self):
        self.scaler: Optional[StandardScaler] = None
        self.home_ownership_levels: List[str] = list(HOME_OWNERSHIP_LEVELS)
        self.n_dropped: int = 0
        self._fitted = False

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Fit the preprocessor and build the model frame.

        Args:
            df: Raw loan records

        Returns:
            Model frame with target and derived columns
        """
        logger.info("Starting preprocessing pipeline...")

        frame = self._prepare(df, require_target=True)

        self.scaler = StandardScaler()
        log_values = np.log(frame[list(LOG_SCALED)].astype(float))
        self.scaler.fit(log_values)
        frame = self._scale(frame)

        self._fitted = True
        logger.info(f"Preprocessing complete. Shape: {frame.shape}")
        return frame

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Build a model frame for new records using the fitted scaler.

        The target column is derived when present but not required.
        """
        if not self._fitted:
            raise ValueError("Preprocessor not fitted. Call fit_transform first.")

        frame = self._prepare(df, require_target=False)
        return self._scale(frame)

    def _prepare(self, df: pd.DataFrame, require_target: bool) -> pd.DataFrame:
        df = self._clean_data(df.copy())

        if TARGET_REPAID in df.columns or TARGET_STATUS in df.columns:
            df[TARGET_REPAID] = self._prepare_target(df)
        elif require_target:
            raise ValueError(
                f"Target column '{TARGET_STATUS}' or '{TARGET_REPAID}' not found in data"
            )

        required = MODEL_INPUTS + ([TARGET_REPAID] if require_target else [])
        before = len(df)
        df = df.dropna(subset=required)
        df = df[(df["loan_amnt"] > 0) & (df["annual_inc"] > 0)]
        self.n_dropped = before - len(df)
        if self.n_dropped:
            logger.info(f"Dropped {self.n_dropped} rows with missing or invalid model inputs")

        return df.reset_index(drop=True)

    def _clean_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """Clean raw data - handle formatting issues."""
        if "term" in df.columns:
            months = df["term"].astype(str).str.extract(r"(\d+)")[0].astype(float)
            df["term_months"] = months
            df["term"] = pd.Categorical(
                months.map(lambda m: None if pd.isna(m) else str(int(m))),
                categories=["36", "60"]
            )

        if "emp_length" in df.columns and not pd.api.types.is_numeric_dtype(df["emp_length"]):
            df["emp_length"] = df["emp_length"].replace({
                "< 1 year": "0",
                "n/a": np.nan,
            }).astype(str).str.extract(r"(\d+)")[0].astype(float)
        if "emp_length" in df.columns:
            df["emp_length"] = df["emp_length"].clip(0, 10)

        if "int_rate" in df.columns:
            if not pd.api.types.is_numeric_dtype(df["int_rate"]):
                df["int_rate"] = df["int_rate"].astype(str).str.rstrip("%").astype(float)
        else:
            df["int_rate"] = PROFIT_CONFIG["default_interest_rate"] * 100

        if "home_ownership" in df.columns:
            home = df["home_ownership"].astype(str).str.upper().str.strip()
            home = home.where(home.isin(self.home_ownership_levels), "OTHER")
            df["home_ownership"] = pd.Categorical(
                home.where(df["home_ownership"].notna()),
                categories=self.home_ownership_levels
            )

        for col in ("loan_amnt", "annual_inc"):
            if col in df.columns:
                df[col] = pd.to_numeric(df[col], errors="coerce")

        return df

    def _prepare_target(self, df: pd.DataFrame) -> pd.Series:
        """Map loan status to 1 = repaid, 0 = default/charged off."""
        if TARGET_REPAID in df.columns:
            repaid = pd.to_numeric(df[TARGET_REPAID], errors="coerce")
            return repaid.apply(lambda x: np.nan if pd.isna(x) else int(x))

        status = df[TARGET_STATUS]
        return status.apply(
            lambda x: np.nan if pd.isna(x) else (1 if x in GOOD_STATUSES else 0)
        )

    def _scale(self, frame: pd.DataFrame) -> pd.DataFrame:
        log_values = np.log(frame[list(LOG_SCALED)].astype(float))
        scaled = self.scaler.transform(log_values)
        for i, name in enumerate(LOG_SCALED.values()):
            frame[name] = scaled[:, i]
        if TARGET_REPAID in frame.columns and frame[TARGET_REPAID].notna().all():
            frame[TARGET_REPAID] = frame[TARGET_REPAID].astype(int)
        return frame

    def split_data(
        self,
        frame: pd.DataFrame,
        test_size: float = TEST_SIZE,
        seed: int = RANDOM_SEED
    ) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Split the model frame into training and testing partitions.

        Returns:
            Tuple of (train, test), stratified on the repayment target
        """
        train, test = train_test_split(
            frame, test_size=test_size, random_state=seed, stratify=frame[TARGET_REPAID]
        )
        train = train.reset_index(drop=True)
        test = test.reset_index(drop=True)

        logger.info(f"Data split - Train: {len(train)}, Test: {len(test)}")
        return train, test

    def save(self, path: Optional[Path] = None):
        """Save the fitted preprocessor."""
        path = path or CACHE_DIR / "preprocessor.joblib"

        state = {
            "scaler": self.scaler,
            "home_ownership_levels": self.home_ownership_levels,
            "_fitted": self._fitted,
        }

        joblib.dump(state, path)
        logger.info(f"Preprocessor saved to {path}")

    def load(self, path: Optional[Path] = None):
        """Load a fitted preprocessor."""
        path = Path(path) if path else CACHE_DIR / "preprocessor.joblib"

        if not path.exists():
            raise FileNotFoundError(f"Preprocessor not found at {path}")

        state = joblib.load(path)
        self.scaler = state["scaler"]
        self.home_ownership_levels = state["home_ownership_levels"]
        self._fitted = state["_fitted"]

        logger.info(f"Preprocessor loaded from {path}")

    def get_feature_info(self) -> Dict[str, Any]:
        """Get information about the derived inputs."""
        return {
            "scaled_columns": dict(LOG_SCALED),
            "log_mean": list(self.scaler.mean_) if self.scaler else None,
            "log_std": list(self.scaler.scale_) if self.scaler else None,
            "home_ownership_levels": self.home_ownership_levels,
        }
