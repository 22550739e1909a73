"""Prediction and accuracy evaluation from posterior mean coefficients."""

import logging
from dataclasses import dataclass
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.metrics import confusion_matrix

from pima_bayes.config.constants import CLASS_LABELS, DECISION_THRESHOLD

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Predictions and confusion counts for one row set."""

    split: str
    probabilities: np.ndarray
    predictions: np.ndarray
    actual: np.ndarray
    confusion: pd.DataFrame

    @property
    def accuracy(self) -> float:
        return accuracy_from_confusion(self.confusion)

    @property
    def n_rows(self) -> int:
        return int(self.confusion.to_numpy().sum())


def linear_predictor(coefficients, X) -> np.ndarray:
    """Intercept plus the design matrix times the slope coefficients.

    Args:
        coefficients: Vector [intercept, slope_1, ..., slope_p]
        X: Design matrix with p columns

    Returns:
        Linear predictor per row
    """
    coefficients = np.asarray(coefficients, dtype=float)
    X = np.asarray(X, dtype=float)
    if X.ndim != 2 or X.shape[1] != coefficients.shape[0] - 1:
        raise ValueError(
            f"Design matrix with shape {X.shape} does not match "
            f"{coefficients.shape[0]} coefficients (intercept + slopes)"
        )
    return coefficients[0] + X @ coefficients[1:]


def predict_proba(coefficients, X) -> np.ndarray:
    """Predicted probability of Outcome == 1 through the logistic link."""
    eta = linear_predictor(coefficients, X)
    # 1 / (1 + exp(-eta)) without overflow for large |eta|
    return np.exp(-np.logaddexp(0.0, -eta))


def classify(probabilities, threshold: float = DECISION_THRESHOLD) -> np.ndarray:
    """Label 1 when probability is strictly above threshold, else 0."""
    return (np.asarray(probabilities) > threshold).astype(int)


def confusion_table(predicted, actual) -> pd.DataFrame:
    """2x2 counts with predicted labels as rows and actual labels as columns."""
    cm = confusion_matrix(np.asarray(actual), np.asarray(predicted), labels=CLASS_LABELS)
    return pd.DataFrame(
        cm.T,
        index=pd.Index(CLASS_LABELS, name="predicted"),
        columns=pd.Index(CLASS_LABELS, name="actual"),
    )


def accuracy_from_confusion(table: pd.DataFrame) -> float:
    """Share of rows on the diagonal of the confusion table."""
    counts = table.to_numpy()
    total = counts.sum()
    if total == 0:
        raise ValueError("Cannot compute accuracy of an empty confusion table")
    return float(np.trace(counts) / total)


def evaluate_split(
    coefficients, X, y, split: str = "test", threshold: float = DECISION_THRESHOLD
) -> EvaluationResult:
    """Predict, threshold and tabulate one row set.

    Args:
        coefficients: Posterior mean vector [intercept, slopes...]
        X: Standardized design matrix
        y: True labels
        split: Name of the row set (for reports)
        threshold: Decision threshold

    Returns:
        EvaluationResult
    """
    actual = np.asarray(y)
    if not np.isin(actual, CLASS_LABELS).all():
        raise ValueError(f"Labels must be in {CLASS_LABELS}, got {np.unique(actual).tolist()}")
    actual = actual.astype(int)
    probabilities = predict_proba(coefficients, X)
    if probabilities.shape[0] != actual.shape[0]:
        raise ValueError(f"{probabilities.shape[0]} predictions for {actual.shape[0]} labels")
    predictions = classify(probabilities, threshold)

    return EvaluationResult(
        split=split,
        probabilities=probabilities,
        predictions=predictions,
        actual=actual,
        confusion=confusion_table(predictions, actual),
    )


def print_evaluation(result: EvaluationResult, title: str = ""):
    """Print the confusion table and accuracy of one row set."""
    print("\n" + "=" * 60)
    print(f"{title} {result.split.upper()} SET".strip())
    print("=" * 60)
    print(result.confusion.to_string())
    print(f"Accuracy: {result.accuracy:.4f} ({result.n_rows} rows)")


def plot_probability_scatter(
    result: EvaluationResult, output_path: Path, title: str = "", jitter: float = 0.05, random_seed: int = 0
):
    """Plot predicted probability against the jittered actual outcome.

    Args:
        result: Evaluation of one row set
        output_path: Path to save plot
        title: Plot title prefix
        jitter: Half-width of uniform vertical jitter
        random_seed: Seed of the jitter
    """
    rng = np.random.default_rng(random_seed)
    jittered = result.actual + rng.uniform(-jitter, jitter, size=result.actual.shape[0])

    fig, ax = plt.subplots(figsize=(8, 6))
    sns.scatterplot(
        x=result.probabilities,
        y=jittered,
        hue=np.where(result.predictions == result.actual, "correct", "incorrect"),
        palette={"correct": "tab:blue", "incorrect": "tab:red"},
        alpha=0.6,
        ax=ax,
    )
    ax.axvline(x=DECISION_THRESHOLD, color="gray", linestyle="--", alpha=0.7)
    ax.set_xlabel("Predicted probability", fontsize=12)
    ax.set_ylabel("Outcome (jittered)", fontsize=12)
    ax.set_yticks(CLASS_LABELS)
    ax.set_xlim(0, 1)
    ax.set_title(
        f"{title} {result.split} set (accuracy = {result.accuracy:.3f})".strip(),
        fontsize=14,
        fontweight="bold",
    )
    ax.legend(title="Prediction", loc="center right")
    ax.grid(alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info("Probability scatter saved to: %s", output_path)


def generate_confusion_matrix_plot(result: EvaluationResult, output_path: Path, title: str = ""):
    """Generate confusion matrix heatmap.

    Args:
        result: Evaluation of one row set
        output_path: Path to save plot
        title: Plot title prefix
    """
    fig, ax = plt.subplots(figsize=(6, 5))
    sns.heatmap(result.confusion, annot=True, fmt="d", cmap="Blues", cbar=False, ax=ax)

    ax.set_title(f"{title} {result.split} confusion".strip(), fontsize=14, fontweight="bold")
    ax.set_xlabel("Actual", fontsize=12)
    ax.set_ylabel("Predicted", fontsize=12)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info("Confusion matrix saved to: %s", output_path)
