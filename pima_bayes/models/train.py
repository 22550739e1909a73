"""Bayesian logistic regression for diabetes classification, fitted with PyMC.

Two model variants share the Bernoulli likelihood with a logistic link and
differ only in their priors:

    vague_normal          all coefficients ~ Normal(0, sd=10), i.e. variance 100
    weakly_informative_t  intercept ~ Student-t(df=1, 0, 10),
                          slopes    ~ Student-t(df=1, 0, 2.5)

Running this module end to end loads and imputes the data, splits it 60/40,
standardizes each split on its own statistics, samples both variants, reports
convergence diagnostics and the train/test accuracy of each.
"""

import argparse
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import arviz as az
import joblib
import mlflow
import numpy as np
import pandas as pd
import pymc as pm
import yaml

from pima_bayes.config.constants import (
    AUTOCORR_LAGS,
    DECISION_THRESHOLD,
    DEFAULT_RANDOM_SEED,
    INTERCEPT_NAME,
    N_BURN_IN,
    N_CHAINS,
    N_DRAWS,
    RHAT_WARNING_THRESHOLD,
    TARGET_COLUMN,
    TARGET_SD,
    TRAIN_FRACTION,
)
from pima_bayes.config.exceptions import ModelSpecificationError
from pima_bayes.data.validate_input import load_dataset
from pima_bayes.features.preprocess import impute_missing, split_dataset, standardize
from pima_bayes.models.diagnostics import (
    ConvergenceReport,
    check_convergence,
    plot_autocorrelation,
    plot_trace,
    print_convergence_report,
)
from pima_bayes.models.evaluate import (
    EvaluationResult,
    evaluate_split,
    generate_confusion_matrix_plot,
    plot_probability_scatter,
    print_evaluation,
)

logger = logging.getLogger(__name__)

SLOPE_NAME = "beta"
PREDICTOR_DIM = "predictor"
PRIOR_FAMILIES = ("normal", "student_t")
SAMPLERS = ("NUTS", "Metropolis")


# ---------------------------------------------------------------------------
# Model specification
# ---------------------------------------------------------------------------


@dataclass
class PriorSpec:
    """Prior for one coefficient block (the intercept or all slopes)."""

    family: str  # 'normal' or 'student_t'
    mu: Union[float, Sequence[float]] = 0.0
    sigma: float = 1.0
    nu: Optional[float] = None  # degrees of freedom, student_t only

    @classmethod
    def from_dict(cls, params: dict) -> "PriorSpec":
        unknown = set(params) - {"family", "mu", "sigma", "nu"}
        if unknown:
            raise ModelSpecificationError(f"Unknown prior parameters: {sorted(unknown)}")
        return cls(**params)

    def validate(self, size: Optional[int] = None):
        """Check family and parameter values.

        Args:
            size: Number of coefficients the prior covers (None for a scalar)
        """
        if self.family not in PRIOR_FAMILIES:
            raise ModelSpecificationError(
                f"Unknown prior family '{self.family}', expected one of {PRIOR_FAMILIES}"
            )
        if not self.sigma > 0:
            raise ModelSpecificationError(f"Prior scale must be positive, got {self.sigma}")
        if self.family == "student_t" and (self.nu is None or not self.nu > 0):
            raise ModelSpecificationError(
                f"Student-t prior needs positive degrees of freedom, got {self.nu}"
            )

        mu = np.asarray(self.mu, dtype=float)
        if mu.ndim > 1 or (mu.ndim == 1 and (size is None or mu.shape[0] != size)):
            raise ModelSpecificationError(
                f"Prior location of shape {mu.shape} does not fit {size or 1} coefficient(s)"
            )


@dataclass
class ModelVariant:
    """Named prior choice for the logistic regression."""

    name: str
    intercept_prior: PriorSpec
    slope_prior: PriorSpec
    description: str = ""

    @classmethod
    def from_dict(cls, name: str, params: dict) -> "ModelVariant":
        return cls(
            name=name,
            intercept_prior=PriorSpec.from_dict(params["intercept_prior"]),
            slope_prior=PriorSpec.from_dict(params["slope_prior"]),
            description=params.get("description", ""),
        )


def get_default_variants() -> List[ModelVariant]:
    """The vague normal and weakly-informative Student-t variants."""
    return [
        ModelVariant(
            name="vague_normal",
            intercept_prior=PriorSpec(family="normal", mu=0.0, sigma=10.0),
            slope_prior=PriorSpec(family="normal", mu=0.0, sigma=10.0),
            description="Independent Normal(0, variance 100) on all coefficients",
        ),
        ModelVariant(
            name="weakly_informative_t",
            intercept_prior=PriorSpec(family="student_t", mu=0.0, sigma=10.0, nu=1.0),
            slope_prior=PriorSpec(family="student_t", mu=0.0, sigma=2.5, nu=1.0),
            description="Cauchy(0, 10) intercept, Cauchy(0, 2.5) slopes",
        ),
    ]


def variants_from_config(config: dict) -> List[ModelVariant]:
    """Build variants from the ``models`` section, falling back to the defaults."""
    models = config.get("models")
    if not models:
        return get_default_variants()
    return [ModelVariant.from_dict(name, params) for name, params in models.items()]


@dataclass
class SamplingConfig:
    """Settings passed to ``pm.sample``."""

    chains: int = N_CHAINS
    draws: int = N_DRAWS  # retained per chain
    burn_in: int = N_BURN_IN  # discarded per chain
    sampler: str = "NUTS"
    cores: int = 1
    random_seed: int = DEFAULT_RANDOM_SEED
    progressbar: bool = False
    target_accept: float = 0.9

    @classmethod
    def from_dict(cls, params: dict) -> "SamplingConfig":
        sampling = cls(**params)
        if sampling.sampler not in SAMPLERS:
            raise ModelSpecificationError(
                f"Unknown sampler '{sampling.sampler}', expected one of {SAMPLERS}"
            )
        return sampling


def _prior(name: str, prior: PriorSpec, dims: Optional[str] = None):
    mu = np.asarray(prior.mu, dtype=float)
    if prior.family == "normal":
        return pm.Normal(name, mu=mu, sigma=prior.sigma, dims=dims)
    return pm.StudentT(name, nu=prior.nu, mu=mu, sigma=prior.sigma, dims=dims)


def _predictor_names(X) -> List[str]:
    if hasattr(X, "columns"):
        return [str(col) for col in X.columns]
    return [f"x{j + 1}" for j in range(np.asarray(X).shape[1])]


def build_model(variant: ModelVariant, X, y) -> pm.Model:
    """Declare the Bernoulli-logit model for one prior variant.

    Args:
        variant: Prior choice
        X: Standardized training design matrix (rows x predictors)
        y: Binary labels

    Returns:
        PyMC model ready for sampling
    """
    X_arr = np.asarray(X, dtype=float)
    y_arr = np.asarray(y)

    if X_arr.ndim != 2:
        raise ModelSpecificationError(f"Design matrix must be 2-D, got shape {X_arr.shape}")
    if X_arr.shape[0] != y_arr.shape[0]:
        raise ModelSpecificationError(f"{X_arr.shape[0]} design rows but {y_arr.shape[0]} labels")
    if not np.all(np.isfinite(X_arr)):
        raise ModelSpecificationError("Design matrix contains non-finite values")
    if not np.isin(y_arr, [0, 1]).all():
        raise ModelSpecificationError("Labels must be 0 or 1")

    names = _predictor_names(X)
    variant.intercept_prior.validate()
    variant.slope_prior.validate(size=len(names))

    with pm.Model(coords={PREDICTOR_DIM: names}) as model:
        intercept = _prior(INTERCEPT_NAME, variant.intercept_prior)
        beta = _prior(SLOPE_NAME, variant.slope_prior, dims=PREDICTOR_DIM)

        logit_p = intercept + pm.math.dot(X_arr, beta)
        pm.Bernoulli("y_obs", logit_p=logit_p, observed=y_arr.astype(int))

    return model


# ---------------------------------------------------------------------------
# Posterior results
# ---------------------------------------------------------------------------


def posterior_draws(idata: az.InferenceData) -> np.ndarray:
    """Stack intercept and slope draws into an array (chain, draw, 1 + p)."""
    posterior = idata.posterior
    intercept = posterior[INTERCEPT_NAME].values[..., np.newaxis]
    beta = posterior[SLOPE_NAME].values
    return np.concatenate([intercept, beta], axis=-1)


@dataclass
class PosteriorFit:
    """Posterior of one model variant. Each variant gets its own instance."""

    variant: ModelVariant
    idata: az.InferenceData
    coefficient_names: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.draws = posterior_draws(self.idata)
        if not self.coefficient_names:
            slope_names = [str(v) for v in self.idata.posterior[SLOPE_NAME].coords[PREDICTOR_DIM].values]
            self.coefficient_names = [INTERCEPT_NAME] + slope_names

    @property
    def n_chains(self) -> int:
        return self.draws.shape[0]

    @property
    def n_draws(self) -> int:
        return self.draws.shape[1]

    @property
    def pooled_draws(self) -> np.ndarray:
        """Chains concatenated in order, shape (chain * draw, 1 + p)."""
        return self.draws.reshape(-1, self.draws.shape[-1])

    @property
    def posterior_means(self) -> pd.Series:
        return pd.Series(
            self.pooled_draws.mean(axis=0), index=self.coefficient_names, name=self.variant.name
        )

    def summary(self, hdi_prob: float = 0.95) -> pd.DataFrame:
        """ArviZ posterior summary (mean, sd, HDI, R-hat, ESS)."""
        return az.summary(self.idata, var_names=[INTERCEPT_NAME, SLOPE_NAME], hdi_prob=hdi_prob)


def fit_model(variant: ModelVariant, X, y, sampling: Optional[SamplingConfig] = None) -> PosteriorFit:
    """Sample the posterior of one variant.

    Tuning iterations serve as burn-in and are discarded by PyMC. Errors
    raised by the sampler propagate unchanged.

    Args:
        variant: Prior choice
        X: Standardized training design matrix
        y: Training labels
        sampling: Sampler settings

    Returns:
        PosteriorFit holding the retained draws of every chain
    """
    sampling = sampling or SamplingConfig()
    model = build_model(variant, X, y)

    logger.info(
        "Sampling %s: %d chains x %d draws (%d burn-in), sampler=%s",
        variant.name,
        sampling.chains,
        sampling.draws,
        sampling.burn_in,
        sampling.sampler,
    )

    with model:
        if sampling.sampler == "Metropolis":
            step = pm.Metropolis()
        else:
            step = pm.NUTS(target_accept=sampling.target_accept)

        idata = pm.sample(
            draws=sampling.draws,
            tune=sampling.burn_in,
            chains=sampling.chains,
            cores=sampling.cores,
            step=step,
            random_seed=sampling.random_seed,
            progressbar=sampling.progressbar,
            return_inferencedata=True,
        )

    if "diverging" in idata.sample_stats:
        n_divergent = int(idata.sample_stats["diverging"].sum())
        if n_divergent:
            logger.warning("%s: %d divergent transitions after burn-in", variant.name, n_divergent)

    fit = PosteriorFit(variant=variant, idata=idata, coefficient_names=[INTERCEPT_NAME] + _predictor_names(X))
    logger.info("Posterior means for %s: %s", variant.name, fit.posterior_means.round(4).to_dict())
    return fit


# ---------------------------------------------------------------------------
# End-to-end analysis
# ---------------------------------------------------------------------------


@dataclass
class VariantResult:
    """Fit, diagnostics and evaluations of one variant."""

    fit: PosteriorFit
    diagnostics: ConvergenceReport
    evaluations: Dict[str, EvaluationResult]

    @property
    def accuracies(self) -> Dict[str, float]:
        return {split: result.accuracy for split, result in self.evaluations.items()}


@dataclass
class AnalysisResults:
    """Everything produced by one run of the analysis."""

    variants: Dict[str, VariantResult]
    medians: Dict[str, float]
    n_train: int
    n_test: int

    def accuracy_table(self) -> pd.DataFrame:
        return pd.DataFrame({name: result.accuracies for name, result in self.variants.items()}).T


def load_config(config_path: Path) -> dict:
    """Load analysis configuration."""
    with open(config_path, "r") as f:
        return yaml.safe_load(f)


def _save_variant_outputs(result: VariantResult, output_dir: Path, save_plots: bool, random_seed: int):
    name = result.fit.variant.name
    variant_dir = output_dir / name
    variant_dir.mkdir(parents=True, exist_ok=True)

    result.fit.summary().to_csv(variant_dir / "posterior_summary.csv")
    result.diagnostics.to_frame().to_csv(variant_dir / "convergence.csv")
    result.diagnostics.autocorrelation.to_csv(variant_dir / "autocorrelation.csv")

    for split, evaluation in result.evaluations.items():
        evaluation.confusion.to_csv(variant_dir / f"confusion_{split}.csv")

    if not save_plots:
        return

    var_names = [INTERCEPT_NAME, SLOPE_NAME]
    plot_trace(result.fit.idata, variant_dir / "trace.png", var_names=var_names)
    plot_autocorrelation(result.fit.idata, variant_dir / "autocorrelation.png", var_names=var_names)
    for split, evaluation in result.evaluations.items():
        plot_probability_scatter(
            evaluation, variant_dir / f"probabilities_{split}.png", title=name, random_seed=random_seed
        )
        generate_confusion_matrix_plot(evaluation, variant_dir / f"confusion_{split}.png", title=name)


def _log_to_mlflow(result: VariantResult, sampling: SamplingConfig, data_config: dict):
    variant = result.fit.variant
    with mlflow.start_run(run_name=variant.name):
        mlflow.log_params(
            {
                "variant": variant.name,
                "intercept_prior": json.dumps(asdict(variant.intercept_prior)),
                "slope_prior": json.dumps(asdict(variant.slope_prior)),
                **{f"sampling_{k}": v for k, v in asdict(sampling).items()},
                **{f"data_{k}": v for k, v in data_config.items()},
            }
        )
        mlflow.log_metrics(
            {
                **{f"{split}_accuracy": acc for split, acc in result.accuracies.items()},
                "max_rhat": result.diagnostics.max_rhat,
            }
        )


def run_analysis(config: dict, data_path: Optional[Path] = None, output_dir: Optional[Path] = None) -> AnalysisResults:
    """Run the full analysis once.

    Args:
        config: Analysis configuration (see configs/bayes_config.yaml)
        data_path: Input file (defaults to ``data.raw_path``)
        output_dir: Where reports are written (nothing is written if None)

    Returns:
        AnalysisResults with one VariantResult per model variant
    """
    data_config = config.get("data", {})
    prep_config = config.get("preprocessing", {})
    diag_config = config.get("diagnostics", {})
    output_config = config.get("output", {})
    mlflow_config = config.get("mlflow", {})
    threshold = config.get("evaluation", {}).get("threshold", DECISION_THRESHOLD)
    random_seed = data_config.get("random_seed", DEFAULT_RANDOM_SEED)
    target_sd = prep_config.get("target_sd", TARGET_SD)

    df = load_dataset(Path(data_path or data_config["raw_path"]))
    df, medians = impute_missing(
        df,
        columns_to_impute=prep_config.get("handle_zeros_as_missing"),
        include_sentinels=prep_config.get("median_includes_sentinels", True),
    )
    train_df, test_df = split_dataset(
        df, train_fraction=data_config.get("train_fraction", TRAIN_FRACTION), random_seed=random_seed
    )

    # Each split is scaled with its own statistics
    design = {
        "train": (standardize(train_df, target_sd=target_sd), train_df[TARGET_COLUMN].to_numpy()),
        "test": (standardize(test_df, target_sd=target_sd), test_df[TARGET_COLUMN].to_numpy()),
    }
    X_train, y_train = design["train"]

    sampling = SamplingConfig.from_dict(config.get("sampling", {}))

    if mlflow_config.get("enabled", False):
        mlflow.set_tracking_uri(mlflow_config["tracking_uri"])
        mlflow.set_experiment(mlflow_config["experiment_name"])

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    variants = {}
    for variant in variants_from_config(config):
        fit = fit_model(variant, X_train, y_train, sampling)
        diagnostics = check_convergence(
            fit.draws,
            fit.coefficient_names,
            lags=diag_config.get("autocorr_lags", AUTOCORR_LAGS),
            method=diag_config.get("rhat_method", "rank"),
            rhat_threshold=diag_config.get("rhat_threshold", RHAT_WARNING_THRESHOLD),
        )
        evaluations = {
            split: evaluate_split(fit.posterior_means.to_numpy(), X, y, split=split, threshold=threshold)
            for split, (X, y) in design.items()
        }
        result = VariantResult(fit=fit, diagnostics=diagnostics, evaluations=evaluations)
        variants[variant.name] = result

        print_convergence_report(diagnostics, title=f"({variant.name})")
        for evaluation in evaluations.values():
            print_evaluation(evaluation, title=variant.name)

        if output_dir is not None:
            _save_variant_outputs(result, output_dir, output_config.get("save_plots", True), random_seed)
        if mlflow_config.get("enabled", False):
            _log_to_mlflow(result, sampling, data_config)

    results = AnalysisResults(variants=variants, medians=medians, n_train=len(train_df), n_test=len(test_df))

    if output_dir is not None:
        _save_summary(results, config, output_dir)

    return results


def _save_summary(results: AnalysisResults, config: dict, output_dir: Path):
    summary = {
        "run_date": datetime.now().isoformat(),
        "n_train": results.n_train,
        "n_test": results.n_test,
        "imputation_medians": results.medians,
        "accuracy": results.accuracy_table().to_dict(orient="index"),
        "max_rhat": {name: r.diagnostics.max_rhat for name, r in results.variants.items()},
        "config": config,
    }
    with open(output_dir / "analysis_summary.json", "w") as f:
        json.dump(summary, f, indent=2, default=str)

    artifacts = {
        name: {
            "variant": asdict(r.fit.variant),
            "posterior_means": r.fit.posterior_means,
            "posterior_summary": r.fit.summary(),
            "accuracy": r.accuracies,
        }
        for name, r in results.variants.items()
    }
    joblib.dump(artifacts, output_dir / "posterior_artifacts.pkl")
    logger.info("Analysis summary saved to: %s", output_dir)


def main():
    """CLI entry point for the Bayesian analysis."""
    parser = argparse.ArgumentParser(description="Bayesian logistic regression on the Pima diabetes data")
    parser.add_argument(
        "--config", type=Path, default=Path("configs/bayes_config.yaml"), help="Config file path"
    )
    parser.add_argument("--data", type=Path, default=None, help="Input CSV (overrides config)")
    parser.add_argument("--output-dir", type=Path, default=None, help="Report directory (overrides config)")
    args = parser.parse_args()

    config = load_config(args.config)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    log_level = config.get("logging", {}).get("log_level", "INFO")
    logging.getLogger().setLevel(getattr(logging, log_level.upper(), logging.INFO))

    output_dir = args.output_dir or Path(config.get("output", {}).get("report_dir", "reports/bayesian"))
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    results = run_analysis(config, data_path=args.data, output_dir=output_dir / f"run_{timestamp}")

    print("\nAccuracy by model and split:")
    print(results.accuracy_table().to_string(float_format=lambda v: f"{v:.4f}"))
    return 0


if __name__ == "__main__":
    exit(main())
