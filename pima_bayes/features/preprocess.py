"""Imputation, train/test split and scaling for the diabetes dataset."""

import logging

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline

from pima_bayes.config.constants import (
    DEFAULT_RANDOM_SEED,
    REQUIRED_COLUMNS,
    SENTINEL_VALUE,
    TARGET_SD,
    TRAIN_FRACTION,
    ZERO_IMPUTE_COLUMNS,
)
from pima_bayes.config.exceptions import SplitValidationError

logger = logging.getLogger(__name__)


class ZeroImputer(BaseEstimator, TransformerMixin):
    """Replace sentinel zeros with the column median.

    By default the median is taken over the whole column, sentinels included.
    This reproduces the reference analysis even though the zeros bias the
    median downwards; set ``include_sentinels=False`` to use the median of
    the non-zero values instead.
    """

    def __init__(self, columns_to_impute=None, include_sentinels=True, sentinel=SENTINEL_VALUE):
        """Initialize imputer.

        Args:
            columns_to_impute: List of column names to impute zeros
            include_sentinels: Whether sentinel values take part in the median
            sentinel: Value that marks a missing measurement
        """
        self.columns_to_impute = columns_to_impute
        self.include_sentinels = include_sentinels
        self.sentinel = sentinel

    def _columns(self):
        if self.columns_to_impute is None:
            return list(ZERO_IMPUTE_COLUMNS)
        return list(self.columns_to_impute)

    def fit(self, X, y=None):
        """Fit imputer by calculating medians.

        Args:
            X: Input features
            y: Target (unused)

        Returns:
            self
        """
        columns = self._columns()
        X_df = pd.DataFrame(X, columns=columns)

        self.medians_ = {}
        for col in columns:
            values = X_df[col].astype(float)
            if not self.include_sentinels:
                non_sentinel = values[values != self.sentinel]
                if len(non_sentinel) > 0:
                    values = non_sentinel
            self.medians_[col] = float(values.median())

        return self

    def transform(self, X):
        """Transform by replacing sentinels with medians.

        Args:
            X: Input features

        Returns:
            Transformed DataFrame
        """
        if isinstance(X, pd.DataFrame):
            X_df = X.copy()
        else:
            X_df = pd.DataFrame(X, columns=self._columns())

        for col in self._columns():
            if col in X_df.columns:
                X_df[col] = X_df[col].astype(float)
                X_df.loc[X_df[col] == self.sentinel, col] = self.medians_[col]

        return X_df


class HalfStandardScaler(BaseEstimator, TransformerMixin):
    """Center each column and scale it to a fixed sample standard deviation.

    With the default ``target_sd=0.5`` this is the z-score divided by two.
    Sample standard deviation (ddof=1) is used. Columns with zero or
    undefined spread are centered only.
    """

    def __init__(self, target_sd=TARGET_SD):
        self.target_sd = target_sd

    def fit(self, X, y=None):
        """Fit scaler by calculating column means and standard deviations.

        Args:
            X: Input features
            y: Target (unused)

        Returns:
            self
        """
        X_arr = np.asarray(X, dtype=float)
        self.mean_ = X_arr.mean(axis=0)
        if X_arr.shape[0] > 1:
            std = X_arr.std(axis=0, ddof=1)
        else:
            std = np.zeros(X_arr.shape[1])
        self.scale_ = np.where(std > 0, std / self.target_sd, 1.0)
        if hasattr(X, "columns"):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        return self

    def transform(self, X):
        """Transform by centering and rescaling.

        Args:
            X: Input features

        Returns:
            Scaled array
        """
        X_arr = np.asarray(X, dtype=float)
        return (X_arr - self.mean_) / self.scale_


def create_preprocessing_pipeline(target_sd=TARGET_SD):
    """Create the scaling pipeline applied to a single row set.

    Args:
        target_sd: Standard deviation of every output column

    Returns:
        sklearn Pipeline
    """
    return Pipeline([("scaler", HalfStandardScaler(target_sd=target_sd))])


def impute_missing(df, columns_to_impute=None, include_sentinels=True):
    """Impute sentinel zeros over the full dataset.

    Args:
        df: Validated dataset
        columns_to_impute: Columns where zeros mark missing values
        include_sentinels: Whether sentinel values take part in the median

    Returns:
        Tuple of (imputed dataframe, medians used per column)
    """
    imputer = ZeroImputer(columns_to_impute=columns_to_impute, include_sentinels=include_sentinels)
    imputed = imputer.fit_transform(df)

    for col, median in imputer.medians_.items():
        n_missing = int((df[col] == imputer.sentinel).sum())
        if n_missing:
            logger.info("Imputed %d sentinel values in %s with median %.3f", n_missing, col, median)

    return imputed, imputer.medians_


def split_dataset(df, train_fraction=TRAIN_FRACTION, random_seed=DEFAULT_RANDOM_SEED):
    """Split rows into disjoint training and testing sets.

    The training set has exactly floor(train_fraction * n) rows drawn without
    replacement; the same seed always yields the same partition.

    Args:
        df: Imputed dataset
        train_fraction: Share of rows assigned to training
        random_seed: Seed of the permutation

    Returns:
        Tuple of (train_df, test_df)

    Raises:
        SplitValidationError: If either side of the split would be empty
    """
    n_rows = len(df)
    if not 0 < train_fraction < 1:
        raise SplitValidationError(f"train_fraction must be in (0, 1), got {train_fraction}")

    n_train = int(np.floor(train_fraction * n_rows))
    if n_train == 0 or n_train == n_rows:
        raise SplitValidationError(
            f"Splitting {n_rows} rows with train_fraction={train_fraction} "
            f"leaves an empty {'training' if n_train == 0 else 'testing'} set"
        )

    train_df, test_df = train_test_split(
        df, train_size=n_train, test_size=n_rows - n_train, random_state=random_seed, shuffle=True
    )

    logger.info("Train size: %d, Test size: %d", len(train_df), len(test_df))
    return train_df, test_df


def standardize(df, feature_columns=None, target_sd=TARGET_SD):
    """Scale the predictors of one row set using only that set's statistics.

    Args:
        df: Row set (train or test)
        feature_columns: Predictor columns to keep (label excluded)
        target_sd: Standard deviation of every output column

    Returns:
        Standardized design matrix as a DataFrame indexed like ``df``
    """
    feature_columns = feature_columns or REQUIRED_COLUMNS
    pipeline = create_preprocessing_pipeline(target_sd=target_sd)
    X = pipeline.fit_transform(df[feature_columns])
    return pd.DataFrame(X, columns=feature_columns, index=df.index)
