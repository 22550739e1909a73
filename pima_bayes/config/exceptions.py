"""Errors raised by the analysis pipeline."""


class PimaBayesError(Exception):
    """Base class for pipeline errors."""


class DataValidationError(PimaBayesError, ValueError):
    """Input file is empty, lacks required columns or holds non-numeric values."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class SplitValidationError(PimaBayesError, ValueError):
    """Requested split leaves the training or testing set empty."""


class ModelSpecificationError(PimaBayesError, ValueError):
    """Prior, sampler or data given to the model builder is malformed."""
