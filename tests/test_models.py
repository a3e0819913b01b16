"""
Tests for the Bayesian Models
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from bayes_loan.data import LoanDataIngestionService, LoanPreprocessor
from bayes_loan.models import BayesianLogisticModel, ModelRegistry
from bayes_loan.reporting import coefficient_table, describe_coefficients

FAST_SAMPLER = {"draws": 200, "tune": 200, "chains": 2, "cores": 1, "random_seed": 1}


@pytest.fixture(scope="module")
def sample_data():
    """Train/test partitions of synthetic loans."""
    ingestion = LoanDataIngestionService()
    data = ingestion.load_data(use_synthetic=True, sample_size=500)

    preprocessor = LoanPreprocessor()
    frame = preprocessor.fit_transform(data)
    train, test = preprocessor.split_data(frame)

    return {"train": train, "test": test}


@pytest.fixture(scope="module")
def fitted_models(sample_data):
    """Full and reduced models fitted with a short sampler run."""
    full = BayesianLogisticModel("full", sampler_params=FAST_SAMPLER).fit(sample_data["train"])
    reduced = BayesianLogisticModel("reduced", sampler_params=FAST_SAMPLER).fit(sample_data["train"])
    return {"full": full, "reduced": reduced}


class TestBayesianLogisticModel:
    """Tests for BayesianLogisticModel."""

    def test_model_initialization(self):
        """Formula is taken from config by name."""
        model = BayesianLogisticModel("reduced")
        assert model.formula.startswith("repaid ~")
        assert model.response == "repaid"
        assert model._fitted is False

    def test_unknown_name_without_formula(self):
        with pytest.raises(KeyError):
            BayesianLogisticModel("does-not-exist")

    def test_unfitted_use_raises(self, sample_data):
        model = BayesianLogisticModel("full")
        with pytest.raises(ValueError):
            model.predict_proba(sample_data["test"])

    def test_sampler_params_merge(self):
        model = BayesianLogisticModel("full", sampler_params={"cores": 1})
        assert model.sampler_params["cores"] == 1
        assert "draws" in model.sampler_params

    def test_posterior_groups(self, fitted_models):
        """Fit stores posterior and pointwise log-likelihood."""
        idata = fitted_models["full"].idata
        assert "posterior" in idata.groups()
        assert "log_likelihood" in idata.groups()
        assert idata.posterior.sizes["draw"] == 200
        assert idata.posterior.sizes["chain"] == 2

    def test_summary(self, fitted_models):
        summary = fitted_models["full"].summary()

        assert "mean" in summary.columns
        assert "r_hat" in summary.columns
        assert any(idx.startswith("loan_amnt_z") for idx in summary.index)
        assert any(idx.startswith("Intercept") for idx in summary.index)

    def test_predict_proba(self, fitted_models, sample_data):
        proba = fitted_models["full"].predict_proba(sample_data["test"])

        assert proba.shape == (len(sample_data["test"]),)
        assert np.all((proba >= 0) & (proba <= 1))

    def test_posterior_probabilities_shape(self, fitted_models, sample_data):
        draws = fitted_models["full"].posterior_probabilities(sample_data["test"])
        assert draws.shape == (400, len(sample_data["test"]))

    def test_posterior_predictive(self, fitted_models, sample_data):
        """Posterior-predictive draws are 0/1 with shape (draws, rows)."""
        sims = fitted_models["full"].posterior_predictive(sample_data["test"])

        assert sims.shape == (400, len(sample_data["test"]))
        assert set(np.unique(sims)) <= {0, 1}

    def test_in_sample_posterior_predictive(self, fitted_models, sample_data):
        sims = fitted_models["reduced"].posterior_predictive()
        assert sims.shape[1] == len(sample_data["train"])

    def test_evaluate(self, fitted_models, sample_data):
        metrics = fitted_models["full"].evaluate(sample_data["test"])

        assert "roc_auc" in metrics
        assert "brier" in metrics
        assert 0 <= metrics["accuracy"] <= 1
        assert 0 <= metrics["roc_auc"] <= 1

    def test_loo(self, fitted_models):
        loo = fitted_models["full"].loo()
        assert np.isfinite(loo["elpd_loo"])

    def test_convergence_report(self, fitted_models):
        report = fitted_models["full"].convergence_report()
        assert set(report) == {"max_r_hat", "min_ess_bulk", "divergences", "ok"}

    def test_save_and_load(self, fitted_models, sample_data, tmp_path):
        path = tmp_path / "full.joblib"
        fitted_models["full"].save(path)

        restored = BayesianLogisticModel("full")
        restored.load(path)

        np.testing.assert_allclose(
            restored.predict_proba(sample_data["test"]),
            fitted_models["full"].predict_proba(sample_data["test"]),
        )

    def test_load_missing_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BayesianLogisticModel("full").load(tmp_path / "missing.joblib")


class TestModelRegistry:
    """Tests for ModelRegistry and LOO comparison."""

    def test_register_and_get(self, fitted_models):
        registry = ModelRegistry()
        registry.register("full", fitted_models["full"])

        assert registry.get("full") is fitted_models["full"]
        with pytest.raises(KeyError):
            registry.get("other")

    def test_compare_needs_two_models(self, fitted_models):
        registry = ModelRegistry()
        registry.register("full", fitted_models["full"])
        with pytest.raises(ValueError):
            registry.compare_models()

    def test_compare_models(self, fitted_models):
        registry = ModelRegistry()
        for name, model in fitted_models.items():
            registry.register(name, model)

        comparison = registry.compare_models(ic="loo")

        assert set(comparison.index) == {"full", "reduced"}
        assert list(comparison["rank"]) == [0, 1]
        assert comparison["weight"].sum() == pytest.approx(1.0)
        assert registry.best_model().name == comparison.index[0]

    def test_list_models(self, fitted_models):
        registry = ModelRegistry()
        registry.register("reduced", fitted_models["reduced"])
        info = registry.list_models()["reduced"]
        assert info["fitted"] is True
        assert info["formula"] == fitted_models["reduced"].formula


class TestInterpretation:
    """Tests for coefficient interpretation."""

    def test_coefficient_table(self, fitted_models):
        table = coefficient_table(fitted_models["full"])

        assert "Intercept" not in set(table["term"])
        assert "annual_inc_z" in set(table["term"])
        assert any(t.startswith("home_ownership[") for t in table["term"])
        assert (table["odds_ratio"] > 0).all()
        assert table["prob_positive"].between(0, 1).all()

    def test_describe_coefficients(self, fitted_models):
        table = coefficient_table(fitted_models["reduced"])
        sentences = describe_coefficients(table)

        assert len(sentences) == len(table)
        assert all("odds of repayment" in s for s in sentences)
