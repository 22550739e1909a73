"""Shared constants for the Bayesian diabetes classification analysis."""

# Predictor columns, in the order they appear in the raw file
REQUIRED_COLUMNS = [
    "Pregnancies",
    "Glucose",
    "BloodPressure",
    "SkinThickness",
    "Insulin",
    "BMI",
    "DiabetesPedigreeFunction",
    "Age",
]

# Target column name
TARGET_COLUMN = "Outcome"

# Zero marks a missing measurement in every predictor except Pregnancies
ZERO_IMPUTE_COLUMNS = [
    "Glucose",
    "BloodPressure",
    "SkinThickness",
    "Insulin",
    "BMI",
    "DiabetesPedigreeFunction",
    "Age",
]

SENTINEL_VALUE = 0

INTERCEPT_NAME = "intercept"
COEFFICIENT_NAMES = [INTERCEPT_NAME] + REQUIRED_COLUMNS

# Split and scaling
DEFAULT_RANDOM_SEED = 42
TRAIN_FRACTION = 0.6
TARGET_SD = 0.5

# Sampling
N_CHAINS = 3
N_DRAWS = 5000
N_BURN_IN = 1000

# Evaluation
DECISION_THRESHOLD = 0.5
CLASS_LABELS = [0, 1]

# Diagnostics
RHAT_WARNING_THRESHOLD = 1.01
AUTOCORR_LAGS = [0, 1, 2, 5, 10, 20]
