"""Shared fixtures: seeded synthetic data and a reduced sampling config."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from pima_bayes.config.constants import REQUIRED_COLUMNS, TARGET_COLUMN
from pima_bayes.models.train import load_config

CONFIG_PATH = Path(__file__).resolve().parents[1] / "configs" / "bayes_config.yaml"


def make_diabetes_frame(n_rows=120, zero_share=0.05, seed=0):
    """Synthetic rows in the shape of the Pima file, with sentinel zeros."""
    rng = np.random.default_rng(seed)
    df = pd.DataFrame(
        {
            "Pregnancies": rng.integers(0, 12, n_rows),
            "Glucose": rng.normal(120, 30, n_rows).clip(50, 200).round(),
            "BloodPressure": rng.normal(70, 12, n_rows).clip(30, 120).round(),
            "SkinThickness": rng.normal(25, 9, n_rows).clip(5, 60).round(),
            "Insulin": rng.normal(120, 60, n_rows).clip(15, 400).round(),
            "BMI": rng.normal(32, 6, n_rows).clip(18, 60).round(1),
            "DiabetesPedigreeFunction": rng.gamma(2.0, 0.25, n_rows).round(3),
            "Age": rng.integers(21, 80, n_rows),
        }
    )

    eta = -8.0 + 0.045 * df["Glucose"] + 0.08 * df["BMI"] + 0.02 * df["Age"]
    df[TARGET_COLUMN] = (rng.uniform(size=n_rows) < 1 / (1 + np.exp(-eta))).astype(int)

    for col in ["Glucose", "BloodPressure", "SkinThickness", "Insulin", "BMI"]:
        mask = rng.uniform(size=n_rows) < zero_share
        df.loc[mask, col] = 0

    return df[REQUIRED_COLUMNS + [TARGET_COLUMN]]


@pytest.fixture
def diabetes_df():
    return make_diabetes_frame()


@pytest.fixture
def diabetes_csv(tmp_path, diabetes_df):
    path = tmp_path / "diabetes.csv"
    diabetes_df.to_csv(path, index=False)
    return path


@pytest.fixture
def config():
    """Shipped config with sampling reduced for tests and tracking disabled."""
    config = load_config(CONFIG_PATH)
    config["sampling"].update({"chains": 2, "draws": 200, "burn_in": 200, "cores": 1})
    config["mlflow"]["enabled"] = False
    return config
