"""MCMC convergence diagnostics: R-hat, effective sample size and autocorrelation.

All diagnostics are advisory. They are reported and logged, never used to
stop the analysis.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from pima_bayes.config.constants import AUTOCORR_LAGS, RHAT_WARNING_THRESHOLD

logger = logging.getLogger(__name__)


@dataclass
class ConvergenceReport:
    """Per-parameter convergence statistics for one fitted model."""

    rhat: pd.Series
    ess: pd.Series
    autocorrelation: pd.DataFrame

    @property
    def max_rhat(self) -> float:
        return float(self.rhat.max())

    def flagged(self, threshold: float = RHAT_WARNING_THRESHOLD) -> List[str]:
        """Parameters whose R-hat exceeds ``threshold``."""
        return self.rhat[self.rhat > threshold].index.tolist()

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"r_hat": self.rhat, "ess_bulk": self.ess})


def _check_draws(draws: np.ndarray, names: Sequence[str]) -> np.ndarray:
    draws = np.asarray(draws, dtype=float)
    if draws.ndim != 3:
        raise ValueError(f"Expected draws shaped (chain, draw, parameter), got {draws.shape}")
    if draws.shape[2] != len(names):
        raise ValueError(f"Got {draws.shape[2]} parameters but {len(names)} names")
    return draws


def potential_scale_reduction(
    draws: np.ndarray, names: Sequence[str], method: str = "rank"
) -> pd.Series:
    """Compute R-hat for every parameter.

    Args:
        draws: Array shaped (chain, draw, parameter), chains not pooled
        names: Parameter names in column order
        method: ArviZ R-hat method ('rank', 'split', 'folded', 'z_scale', 'identity')

    Returns:
        Series of R-hat values indexed by parameter name
    """
    draws = _check_draws(draws, names)
    values = [float(az.rhat(draws[:, :, k], method=method)) for k in range(draws.shape[2])]
    return pd.Series(values, index=list(names), name="r_hat")


def effective_sample_size(draws: np.ndarray, names: Sequence[str]) -> pd.Series:
    """Bulk effective sample size for every parameter."""
    draws = _check_draws(draws, names)
    values = [float(az.ess(draws[:, :, k], method="bulk")) for k in range(draws.shape[2])]
    return pd.Series(values, index=list(names), name="ess_bulk")


def autocorrelation(
    draws: np.ndarray, names: Sequence[str], lags: Sequence[int] = AUTOCORR_LAGS
) -> pd.DataFrame:
    """Autocorrelation of each chain and parameter at the requested lags.

    Lags longer than the chain are dropped.

    Args:
        draws: Array shaped (chain, draw, parameter)
        names: Parameter names in column order
        lags: Lags to report

    Returns:
        DataFrame indexed by (chain, parameter) with one column per lag
    """
    draws = _check_draws(draws, names)
    n_chains, n_draws, n_params = draws.shape
    lags = [lag for lag in lags if 0 <= lag < n_draws]

    rows = {}
    for chain in range(n_chains):
        for k, name in enumerate(names):
            acf = az.autocorr(draws[chain, :, k])
            rows[(chain, name)] = [float(acf[lag]) for lag in lags]

    frame = pd.DataFrame.from_dict(rows, orient="index", columns=[f"lag_{lag}" for lag in lags])
    frame.index = pd.MultiIndex.from_tuples(frame.index, names=["chain", "parameter"])
    return frame


def check_convergence(
    draws: np.ndarray,
    names: Sequence[str],
    lags: Sequence[int] = AUTOCORR_LAGS,
    method: str = "rank",
    rhat_threshold: float = RHAT_WARNING_THRESHOLD,
) -> ConvergenceReport:
    """Run all diagnostics and log parameters that look poorly mixed.

    Args:
        draws: Array shaped (chain, draw, parameter)
        names: Parameter names in column order
        lags: Autocorrelation lags
        method: R-hat method
        rhat_threshold: R-hat above which a warning is logged

    Returns:
        ConvergenceReport
    """
    report = ConvergenceReport(
        rhat=potential_scale_reduction(draws, names, method=method),
        ess=effective_sample_size(draws, names),
        autocorrelation=autocorrelation(draws, names, lags=lags),
    )

    flagged = report.flagged(rhat_threshold)
    if flagged:
        logger.warning(
            "R-hat above %.2f for %s (max %.4f); inspect trace plots",
            rhat_threshold,
            flagged,
            report.max_rhat,
        )
    else:
        logger.info("All R-hat values <= %.2f (max %.4f)", rhat_threshold, report.max_rhat)

    return report


def print_convergence_report(report: ConvergenceReport, title: str = ""):
    """Print R-hat, ESS and autocorrelation tables."""
    print("\n" + "=" * 60)
    print(f"CONVERGENCE DIAGNOSTICS {title}".rstrip())
    print("=" * 60)
    print(report.to_frame().to_string(float_format=lambda v: f"{v:.4f}"))
    print("\nAutocorrelation (mean over chains):")
    mean_acf = report.autocorrelation.groupby(level="parameter", sort=False).mean()
    print(mean_acf.to_string(float_format=lambda v: f"{v:.3f}"))


def _save_current_figure(axes, output_path: Path):
    fig = np.ravel(axes)[0].figure
    fig.tight_layout()
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)


def plot_trace(idata, output_path: Path, var_names: Optional[List[str]] = None):
    """Save trace plots (draws over iterations and marginal densities).

    Args:
        idata: ArviZ InferenceData holding the posterior
        output_path: Path to save plot
        var_names: Variables to plot (all if None)
    """
    axes = az.plot_trace(idata, var_names=var_names, compact=True, figsize=(12, 8))
    _save_current_figure(axes, output_path)
    logger.info("Trace plot saved to: %s", output_path)


def plot_autocorrelation(
    idata, output_path: Path, var_names: Optional[List[str]] = None, max_lag: int = 50
):
    """Save autocorrelation curves per chain and parameter.

    Args:
        idata: ArviZ InferenceData holding the posterior
        output_path: Path to save plot
        var_names: Variables to plot (all if None)
        max_lag: Longest lag drawn
    """
    axes = az.plot_autocorr(idata, var_names=var_names, max_lag=max_lag, combined=False)
    _save_current_figure(axes, output_path)
    logger.info("Autocorrelation plot saved to: %s", output_path)
