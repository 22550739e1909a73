"""Data loading and validation for the diabetes dataset."""

import logging
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd
import pandera.pandas as pa
from pandera.errors import SchemaErrors
from pandera.pandas import Column, DataFrameSchema

from pima_bayes.config.constants import REQUIRED_COLUMNS, TARGET_COLUMN
from pima_bayes.config.exceptions import DataValidationError

logger = logging.getLogger(__name__)

# Counts are read as floats so a fractional value fails instead of being truncated
WHOLE_NUMBER = pa.Check(lambda s: s % 1 == 0, error="whole number")
INTEGER_COLUMNS = ["Pregnancies", TARGET_COLUMN]


class DiabetesDataValidator:
    """Validates raw observation rows before any modeling step."""

    REQUIRED_COLUMNS = REQUIRED_COLUMNS + [TARGET_COLUMN]

    def __init__(self):
        """Initialize validator with schema."""
        self.schema = DataFrameSchema(
            {
                "Pregnancies": Column(
                    float, checks=[pa.Check.ge(0), WHOLE_NUMBER], nullable=False, coerce=True
                ),
                "Glucose": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "BloodPressure": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "SkinThickness": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "Insulin": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "BMI": Column(float, checks=[pa.Check.ge(0)], nullable=False, coerce=True),
                "DiabetesPedigreeFunction": Column(
                    float, checks=[pa.Check.ge(0)], nullable=False, coerce=True
                ),
                "Age": Column(float, checks=[pa.Check.ge(0), pa.Check.le(120)], nullable=False, coerce=True),
                TARGET_COLUMN: Column(float, checks=[pa.Check.isin([0, 1])], nullable=False, coerce=True),
            },
            strict=False,
        )

    def validate_schema(self, df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate dataframe schema against required columns and data types.

        Checks for:
        - Empty input
        - Missing required columns (predictors and Outcome)
        - Values that cannot be coerced to numbers
        - Value constraints (non-negative predictors, age <= 120, binary outcome)

        Args:
            df: Input dataframe

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors = []

        if df.empty:
            errors.append("Dataset contains no rows")
            return False, errors

        missing_cols = [col for col in self.REQUIRED_COLUMNS if col not in df.columns]
        if missing_cols:
            errors.append(f"Missing required columns: {missing_cols}")
            return False, errors

        try:
            self.schema.validate(df[self.REQUIRED_COLUMNS], lazy=True)
            return True, []
        except SchemaErrors as e:
            for _, row in e.failure_cases.iterrows():
                errors.append(
                    f"Column '{row['column']}' failed check '{row['check']}' "
                    f"at index {row['index']}"
                )
            return False, errors

    def coerce(self, df: pd.DataFrame) -> pd.DataFrame:
        """Return the required columns with schema dtypes applied.

        Args:
            df: Dataframe that already passed validate_schema

        Returns:
            Dataframe restricted to predictors and Outcome, in file order
        """
        df = self.schema.validate(df[self.REQUIRED_COLUMNS].copy())
        df[INTEGER_COLUMNS] = df[INTEGER_COLUMNS].astype(int)
        return df

    def detect_outliers(self, df: pd.DataFrame) -> Dict[str, List[int]]:
        """Detect outliers using z-score method.

        Args:
            df: Input dataframe

        Returns:
            Dictionary mapping column names to list of outlier indices
        """
        outliers = {}
        z_threshold = 3.0

        for col in REQUIRED_COLUMNS:
            if col in df.columns and len(df) > 3:
                mean = df[col].mean()
                std = df[col].std()
                if std > 0:
                    z_scores = ((df[col] - mean) / std).abs()
                    outlier_indices = df[z_scores > z_threshold].index.tolist()
                    if outlier_indices:
                        outliers[col] = outlier_indices

        return outliers


def load_dataset(data_path: Path, validator: DiabetesDataValidator = None) -> pd.DataFrame:
    """Load and validate the raw diabetes file, failing fast on bad input.

    Args:
        data_path: Path to delimited file with a header row
        validator: Validator to use (a default one is created if None)

    Returns:
        Validated dataframe with the 8 predictors and Outcome

    Raises:
        FileNotFoundError: If the file does not exist
        DataValidationError: If the file cannot be parsed or fails the schema
    """
    data_path = Path(data_path)
    if not data_path.exists():
        raise FileNotFoundError(f"Input data not found: {data_path}")

    try:
        df = pd.read_csv(data_path)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise DataValidationError(f"Failed to read {data_path.name}: {e}") from e

    validator = validator or DiabetesDataValidator()
    is_valid, errors = validator.validate_schema(df)
    if not is_valid:
        raise DataValidationError(
            f"{data_path.name} failed validation with {len(errors)} error(s): {errors[:5]}",
            errors=errors,
        )

    df = validator.coerce(df)

    outliers = validator.detect_outliers(df)
    if outliers:
        logger.warning(
            "Outliers detected (|z| > 3): %s",
            {col: len(indices) for col, indices in outliers.items()},
        )

    logger.info(
        "Loaded %d rows from %s (positive rate %.3f)",
        len(df),
        data_path.name,
        df[TARGET_COLUMN].mean(),
    )
    return df
