"""
Model Fitting Script

Runs the full analysis outside the deck: fits the candidate models,
compares them with LOO, estimates the profit distribution and saves
the fitted models.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from bayes_loan.config import MODELS_DIR, SAMPLER_CONFIG, LOGGING_CONFIG
from bayes_loan.pipeline import LoanDefaultAnalysis

logging.basicConfig(level=getattr(logging, LOGGING_CONFIG["level"]), format=LOGGING_CONFIG["format"])
logger = logging.getLogger(__name__)


def format_score(value) -> str:
    """Four-decimal score, "n/a" when the metric is undefined."""
    return "n/a" if value is None else f"{value:.4f}"


def main():
    """Main fitting function."""
    parser = argparse.ArgumentParser(description="Fit Bayesian loan default models")
    parser.add_argument("--data", type=Path, default=None,
                        help="Path to a loan CSV (default: data/raw or synthetic)")
    parser.add_argument("--synthetic", action="store_true",
                        help="Use synthetic data")
    parser.add_argument("--samples", type=int, default=None,
                        help="Number of loans to load")
    parser.add_argument("--draws", type=int, default=SAMPLER_CONFIG["draws"])
    parser.add_argument("--tune", type=int, default=SAMPLER_CONFIG["tune"])
    parser.add_argument("--chains", type=int, default=SAMPLER_CONFIG["chains"])
    parser.add_argument("--cores", type=int, default=SAMPLER_CONFIG["cores"],
                        help="Cores used by the sampler")
    args = parser.parse_args()

    logger.info("=" * 60)
    logger.info("Bayes Loan - Model Fitting")
    logger.info("=" * 60)

    analysis = LoanDefaultAnalysis(
        data_path=args.data,
        use_synthetic=args.synthetic,
        sample_size=args.samples,
        sampler_params={
            "draws": args.draws,
            "tune": args.tune,
            "chains": args.chains,
            "cores": args.cores,
        },
    )
    results = analysis.run()

    quality = analysis.ingestion.get_data_quality_report()
    logger.info(f"Missing values in raw data: {quality['missing_values']['total']}")

    for name, model in analysis.registry.models.items():
        logger.info(f"\nPosterior summary - {name}:\n{model.summary().round(3)}")
        metrics = results["evaluation"][name]
        logger.info(
            f"{name} test ROC-AUC: {format_score(metrics['roc_auc'])}, "
            f"Brier: {format_score(metrics['brier'])}"
        )

    if results["comparison"] is not None:
        logger.info(f"\nLOO comparison:\n{results['comparison'].round(2)}")

    profit = results["profit"]
    logger.info(
        f"\nTest portfolio profit ({profit['model']}): mean {profit['mean']:,.0f}, "
        f"{profit['hdi_prob']:.0%} HDI [{profit['hdi_low']:,.0f}, {profit['hdi_high']:,.0f}], "
        f"P(loss) {profit['prob_loss']:.1%}"
    )

    analysis.preprocessor.save()
    analysis.registry.save_all()

    logger.info("\n" + "=" * 60)
    logger.info("FITTING COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Models saved to: {MODELS_DIR}")

    return results


if __name__ == "__main__":
    main()
