"""Error kinds raised by the recommendation pipeline.

Every stage raises one of these and the pipeline hands it to the caller unchanged.
None of them is retried internally: each one points at a config defect or at
data that is genuinely insufficient.
"""


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigError(PipelineError, ValueError):
    """Raised for invalid configuration or when a required result set is empty."""


class DomainError(PipelineError, ValueError):
    """Raised when a numeric transform is applied outside its domain."""


class TrainingError(PipelineError, RuntimeError):
    """Raised when the factorization solver fails or gets no usable input."""


class DataError(PipelineError, ValueError):
    """Raised when raw input is malformed (missing columns, null identifiers...)."""
