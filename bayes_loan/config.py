"""
Bayes Loan Configuration

Central configuration for all components including paths, data columns,
model formulas, priors, sampler settings, profit assumptions and deck defaults.
"""

import os
from pathlib import Path
from typing import Dict, List, Any

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
RAW_DATA_DIR = DATA_DIR / "raw"
PROCESSED_DATA_DIR = DATA_DIR / "processed"
CACHE_DIR = DATA_DIR / "cache"
MODELS_DIR = BASE_DIR / "models"
OUTPUT_DIR = BASE_DIR / "output"
PRESENTATION_DIR = BASE_DIR / "presentation"

# Create directories if they don't exist
for dir_path in [RAW_DATA_DIR, PROCESSED_DATA_DIR, CACHE_DIR, MODELS_DIR, OUTPUT_DIR]:
    dir_path.mkdir(parents=True, exist_ok=True)

# =============================================================================
# DATA CONFIGURATION
# =============================================================================

# Candidate file names looked up under RAW_DATA_DIR
DATA_FILE_NAMES = ["loan_data.csv", "loans.csv", "lending_club.csv"]

# Sample size for development (use None for full dataset)
SAMPLE_SIZE = 5000

# Random seed for reproducibility
RANDOM_SEED = 42

# Train-test split ratio
TEST_SIZE = 0.2

# =============================================================================
# FEATURE CONFIGURATION
# =============================================================================

# Raw outcome column and the derived binary target (1 = repaid)
TARGET_STATUS = "loan_status"
TARGET_REPAID = "repaid"
GOOD_STATUSES = ["Fully Paid", "Current", "In Grace Period", 1, "1"]

REQUIRED_COLUMNS = [
    "loan_amnt",
    "annual_inc",
    "term",
    "home_ownership",
    "emp_length",
]

NUMERICAL_FEATURES = ["loan_amnt", "annual_inc", "emp_length"]
CATEGORICAL_FEATURES = ["term", "home_ownership"]

# Home ownership levels kept as-is; anything else becomes "OTHER"
HOME_OWNERSHIP_LEVELS = ["RENT", "OWN", "MORTGAGE", "OTHER"]

# =============================================================================
# MODEL CONFIGURATION
# =============================================================================

# Candidate models compared with leave-one-out cross-validation
MODEL_FORMULAS: Dict[str, str] = {
    "full": "repaid ~ loan_amnt_z + annual_inc_z + emp_length + term + home_ownership",
    "reduced": "repaid ~ loan_amnt_z + annual_inc_z",
}

# Weakly informative priors on the logit scale
PRIOR_CONFIG: Dict[str, Dict[str, Any]] = {
    "Intercept": {"dist": "Normal", "mu": 0.0, "sigma": 2.5},
    "common": {"dist": "Normal", "mu": 0.0, "sigma": 2.5},
}

# The number of cores is the only parallelism option and is always passed
# explicitly to the sampler
SAMPLER_CONFIG: Dict[str, Any] = {
    "draws": 1000,
    "tune": 1000,
    "chains": 4,
    "cores": int(os.environ.get("BAYES_LOAN_CORES", min(4, os.cpu_count() or 1))),
    "target_accept": 0.9,
    "random_seed": RANDOM_SEED,
    "progressbar": False,
}

# Credible interval mass used in summaries and plots
HDI_PROB = 0.9

# Convergence thresholds
CONVERGENCE_CONFIG = {
    "max_r_hat": 1.01,
    "min_ess_bulk": 400,
}

# =============================================================================
# PROFIT CONFIGURATION
# =============================================================================

PROFIT_CONFIG = {
    "default_interest_rate": 0.12,  # annual, used when a loan has no int_rate
    "loss_given_default": 1.0,  # share of principal lost on default
    "default_term_months": 36,
    "policy_thresholds": [0.5, 0.6, 0.7, 0.8, 0.85, 0.9, 0.95],
}

# =============================================================================
# DECK CONFIGURATION
# =============================================================================

DECK_CONFIG = {
    "source": PRESENTATION_DIR / "loan_default_talk.md",
    "output_dir": OUTPUT_DIR / "deck",
    "cache_dir": CACHE_DIR / "deck",
    "figures_subdir": "figures",
    "output_name": "slides.md",
    "date_format": "%B %d, %Y",
}

# Chunk defaults applied before front matter and per-chunk options
CHUNK_DEFAULTS: Dict[str, Any] = {
    "eval": True,
    "echo": True,
    "include": True,
    "cache": False,
    "error": False,
    "results": "markup",
    "fig_width": 7.0,
    "fig_height": 4.5,
    "fig_dpi": 110,
}

# =============================================================================
# PLOT CONFIGURATION
# =============================================================================

PLOT_CONFIG = {
    "style": "whitegrid",
    "figsize": (8, 5),
    "dpi": 150,
    "num_pp_samples": 100,
}

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# Modelling stack reported by the environment check
MODELLING_PACKAGES: List[str] = ["bambi", "pymc", "arviz", "pytensor", "numpy", "pandas"]
