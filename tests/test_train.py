"""Tests for model specification, posterior handling and the full analysis."""

import json

import arviz as az
import numpy as np
import pandas as pd
import pytest

from pima_bayes.config.constants import COEFFICIENT_NAMES, REQUIRED_COLUMNS
from pima_bayes.config.exceptions import ModelSpecificationError
from pima_bayes.models.evaluate import evaluate_split
from pima_bayes.models.train import (
    ModelVariant,
    PosteriorFit,
    PriorSpec,
    SamplingConfig,
    build_model,
    fit_model,
    get_default_variants,
    posterior_draws,
    run_analysis,
    variants_from_config,
)


def _design(n_rows=40, seed=0):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame(rng.normal(scale=0.5, size=(n_rows, 8)), columns=REQUIRED_COLUMNS)
    y = rng.integers(0, 2, n_rows)
    return X, y


def _fake_idata(n_chains=3, n_draws=5000, seed=0):
    rng = np.random.default_rng(seed)
    draws = rng.normal(loc=np.arange(9), size=(n_chains, n_draws, 9))
    return draws, az.from_dict(
        posterior={"intercept": draws[..., 0], "beta": draws[..., 1:]},
        coords={"predictor": REQUIRED_COLUMNS},
        dims={"beta": ["predictor"]},
    )


class TestPriorSpecifications:
    """Test prior and variant definitions."""

    def test_default_variants(self):
        """Test the vague normal and weakly-informative t variants."""
        vague, weak = get_default_variants()

        assert vague.intercept_prior == PriorSpec(family="normal", mu=0.0, sigma=10.0)
        assert vague.slope_prior.sigma ** 2 == 100.0
        assert weak.intercept_prior == PriorSpec(family="student_t", mu=0.0, sigma=10.0, nu=1.0)
        assert weak.slope_prior == PriorSpec(family="student_t", mu=0.0, sigma=2.5, nu=1.0)

    def test_config_variants_match_defaults(self, config):
        """Test that the shipped config declares the default priors."""
        from_config = variants_from_config(config)
        defaults = get_default_variants()

        assert [v.name for v in from_config] == [v.name for v in defaults]
        for configured, default in zip(from_config, defaults):
            assert configured.intercept_prior == default.intercept_prior
            assert configured.slope_prior == default.slope_prior

    def test_missing_models_section_uses_defaults(self):
        """Test fallback when the config names no variants."""
        assert [v.name for v in variants_from_config({})] == ["vague_normal", "weakly_informative_t"]

    @pytest.mark.parametrize(
        "prior",
        [
            PriorSpec(family="laplace"),
            PriorSpec(family="normal", sigma=0.0),
            PriorSpec(family="student_t", sigma=1.0),
            PriorSpec(family="normal", mu=[0.0, 1.0]),
        ],
    )
    def test_invalid_priors_rejected(self, prior):
        """Test that malformed priors fail before sampling."""
        with pytest.raises(ModelSpecificationError):
            prior.validate(size=8)

    def test_unknown_prior_parameter_rejected(self):
        with pytest.raises(ModelSpecificationError):
            PriorSpec.from_dict({"family": "normal", "scale": 1.0})

    def test_unknown_sampler_rejected(self):
        with pytest.raises(ModelSpecificationError):
            SamplingConfig.from_dict({"sampler": "Gibbs"})

    def test_sampling_defaults(self):
        """Test 3 chains, 5000 retained draws and 1000 burn-in by default."""
        sampling = SamplingConfig()

        assert (sampling.chains, sampling.draws, sampling.burn_in) == (3, 5000, 1000)


class TestBuildModel:
    """Test the declarative PyMC model."""

    @pytest.mark.parametrize("variant", get_default_variants(), ids=lambda v: v.name)
    def test_free_variables_and_logp(self, variant):
        """Test intercept plus one slope per predictor with finite log density."""
        X, y = _design()

        model = build_model(variant, X, y)

        assert {rv.name for rv in model.free_RVs} == {"intercept", "beta"}
        assert list(model.coords["predictor"]) == REQUIRED_COLUMNS
        logp = model.compile_logp()(model.initial_point())
        assert np.isfinite(logp)

    def test_misaligned_labels_rejected(self):
        X, y = _design()

        with pytest.raises(ModelSpecificationError):
            build_model(get_default_variants()[0], X, y[:-1])

    def test_non_binary_labels_rejected(self):
        X, y = _design()
        y[0] = 2

        with pytest.raises(ModelSpecificationError):
            build_model(get_default_variants()[0], X, y)

    def test_non_finite_design_rejected(self):
        X, y = _design()
        X.iloc[0, 0] = np.nan

        with pytest.raises(ModelSpecificationError):
            build_model(get_default_variants()[0], X, y)


class TestPosteriorFit:
    """Test handling of posterior draws without running the sampler."""

    def test_pooling_three_chains(self):
        """Test that 3 chains of 5000 draws pool to 15000 draws per parameter."""
        draws, idata = _fake_idata()
        fit = PosteriorFit(variant=get_default_variants()[0], idata=idata)

        assert fit.draws.shape == (3, 5000, 9)
        assert fit.pooled_draws.shape == (15000, 9)
        assert fit.coefficient_names == COEFFICIENT_NAMES

    def test_pooled_draws_keep_chain_order(self):
        """Test that pooling concatenates chain 0, then chain 1, then chain 2."""
        draws, idata = _fake_idata(n_draws=10)
        fit = PosteriorFit(variant=get_default_variants()[0], idata=idata)

        np.testing.assert_array_equal(fit.pooled_draws[:10], draws[0])
        np.testing.assert_array_equal(fit.pooled_draws[20:], draws[2])

    def test_posterior_means(self):
        """Test that posterior means average the pooled draws."""
        draws, idata = _fake_idata()
        fit = PosteriorFit(variant=get_default_variants()[0], idata=idata)

        np.testing.assert_allclose(fit.posterior_means.to_numpy(), draws.reshape(-1, 9).mean(axis=0))
        np.testing.assert_allclose(fit.posterior_means.to_numpy(), np.arange(9), atol=0.05)
        assert list(fit.posterior_means.index) == COEFFICIENT_NAMES

    def test_variants_do_not_share_results(self):
        """Test that two fits keep independent coefficient vectors."""
        _, idata_a = _fake_idata(seed=1)
        _, idata_b = _fake_idata(seed=2)
        vague, weak = get_default_variants()

        fit_a = PosteriorFit(variant=vague, idata=idata_a)
        fit_b = PosteriorFit(variant=weak, idata=idata_b)
        means_a = fit_a.posterior_means.copy()
        fit_b.draws[:] = 0.0

        pd.testing.assert_series_equal(fit_a.posterior_means, means_a)

    def test_posterior_draws_stacking(self):
        draws, idata = _fake_idata(n_chains=2, n_draws=50)

        np.testing.assert_array_equal(posterior_draws(idata), draws)


@pytest.mark.slow
class TestSampling:
    """Sampling tests with reduced draws."""

    def test_tight_prior_recovers_coefficients(self):
        """Test recovery of generating coefficients from noiseless labels."""
        rng = np.random.default_rng(11)
        true = np.array([0.5, 1.5, -1.0, 0.8, 0.0, 0.3, -0.6, 1.2, 0.4])
        X = rng.normal(scale=0.5, size=(60, 8))
        eta = true[0] + X @ true[1:]
        keep = np.abs(eta) > 0.25
        X, eta = X[keep][:20], eta[keep][:20]
        y = (eta > 0).astype(int)
        X = pd.DataFrame(X, columns=REQUIRED_COLUMNS)

        variant = ModelVariant(
            name="point_prior",
            intercept_prior=PriorSpec(family="normal", mu=float(true[0]), sigma=1e-3),
            slope_prior=PriorSpec(family="normal", mu=true[1:].tolist(), sigma=1e-3),
        )
        sampling = SamplingConfig(chains=2, draws=200, burn_in=200, random_seed=1)

        fit = fit_model(variant, X.iloc[:10], y[:10], sampling)
        result = evaluate_split(fit.posterior_means.to_numpy(), X.iloc[10:], y[10:], split="test")

        np.testing.assert_allclose(fit.posterior_means.to_numpy(), true, atol=0.01)
        assert result.accuracy == 1.0

    def test_prior_choice_washes_out_with_many_rows(self):
        """Test that both priors give nearly the same posterior means for large n."""
        rng = np.random.default_rng(5)
        true = np.array([-0.5, 1.0, -0.8, 0.6, 0.0, 0.4, -0.3, 0.7, 0.2])
        X = pd.DataFrame(rng.normal(scale=0.5, size=(600, 8)), columns=REQUIRED_COLUMNS)
        p = 1 / (1 + np.exp(-(true[0] + X.to_numpy() @ true[1:])))
        y = (rng.uniform(size=600) < p).astype(int)
        sampling = SamplingConfig(chains=2, draws=300, burn_in=300, random_seed=3)

        vague, weak = get_default_variants()
        means_vague = fit_model(vague, X, y, sampling).posterior_means
        means_weak = fit_model(weak, X, y, sampling).posterior_means

        assert (means_vague - means_weak).abs().max() < 0.1

    def test_metropolis_sampler(self):
        """Test the Metropolis step returns the requested number of draws."""
        X, y = _design(n_rows=30)
        sampling = SamplingConfig(chains=2, draws=100, burn_in=100, sampler="Metropolis")

        fit = fit_model(get_default_variants()[0], X, y, sampling)

        assert fit.draws.shape == (2, 100, 9)

    def test_run_analysis_end_to_end(self, config, diabetes_csv, tmp_path):
        """Test four accuracies and saved reports from one run."""
        output_dir = tmp_path / "run"

        results = run_analysis(config, data_path=diabetes_csv, output_dir=output_dir)

        assert (results.n_train, results.n_test) == (72, 48)
        assert set(results.variants) == {"vague_normal", "weakly_informative_t"}

        accuracies = results.accuracy_table()
        assert accuracies.shape == (2, 2)
        assert ((accuracies >= 0) & (accuracies <= 1)).all().all()

        for name, result in results.variants.items():
            assert result.fit.draws.shape == (2, 200, 9)
            assert result.fit.pooled_draws.shape == (400, 9)
            assert result.evaluations["train"].n_rows == 72
            assert result.evaluations["test"].n_rows == 48
            assert np.isfinite(result.diagnostics.max_rhat)
            for filename in ["posterior_summary.csv", "convergence.csv", "trace.png", "probabilities_test.png"]:
                assert (output_dir / name / filename).exists()

        with open(output_dir / "analysis_summary.json") as f:
            summary = json.load(f)
        assert summary["accuracy"]["vague_normal"]["test"] == pytest.approx(
            results.variants["vague_normal"].accuracies["test"]
        )
        assert (output_dir / "posterior_artifacts.pkl").exists()
