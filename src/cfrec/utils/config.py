"""Pipeline configuration surface and feedback-mode definitions."""
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path

import yaml

from cfrec.utils.errors import ConfigError, DomainError

RATIO_TOLERANCE = 1e-6


class FeedbackMode(str, Enum):
    """Which rating signal the factor model is trained on."""

    EXPLICIT = "explicit"
    IMPLICIT = "implicit"

    @property
    def rating_column(self) -> str:
        return "explicit_rating" if self is FeedbackMode.EXPLICIT else "implicit_rating"

    @classmethod
    def parse(cls, value: "str | FeedbackMode") -> "FeedbackMode":
        try:
            return cls(value.lower() if isinstance(value, str) else value)
        except ValueError as err:
            raise ConfigError(f"Unknown feedback mode: {value!r}. Expected one of {[m.value for m in cls]}") from err


@dataclass(frozen=True)
class TrainerConfig:
    """Hyperparameters handed to the factorization solver for a single mode.

    `alpha` only has meaning for implicit feedback and is left as None otherwise.
    """

    rank: int = 10
    max_iterations: int = 10
    reg_param: float = 0.1
    alpha: float | None = None
    nonnegative: bool = False
    seed: int = 42

    def __post_init__(self):
        if self.rank <= 0:
            raise ConfigError(f"rank must be positive, got {self.rank}")
        if self.max_iterations <= 0:
            raise ConfigError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.reg_param < 0:
            raise ConfigError(f"reg_param must be non-negative, got {self.reg_param}")
        if self.alpha is not None and self.alpha < 0:
            raise ConfigError(f"alpha must be non-negative, got {self.alpha}")


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a caller can tune about a pipeline run.

    Parameters
    ----------
    min_interaction_count : int, default 5
        (user, item) pairs seen this many times or fewer are dropped.
    num_rating_buckets : int, default 5
        Number of quantile buckets for the explicit rating signal.
    train_ratio : float, default 0.8
        Expected share of records in the training subset; the rest is testing.
    top_n : int, default 5
        Length of each user's recommendation list.
    rank, max_iterations, reg_param : solver hyperparameters.
    implicit_alpha : float, default 1.0
        Confidence scaling, only used in implicit mode.
    nonnegative : bool, default False
        Constrain latent factors to be >= 0.
    random_seed : int, default 42
        Seed for partitioning and for the solver.
    learning_rate, batch_size : knobs of the default torch solver.
    ranking_batch_size : int, default 1024
        Users scored per block during top-N extraction.
    """

    min_interaction_count: int = 5
    num_rating_buckets: int = 5
    train_ratio: float = 0.8
    top_n: int = 5
    rank: int = 10
    max_iterations: int = 10
    reg_param: float = 0.1
    implicit_alpha: float = 1.0
    nonnegative: bool = False
    random_seed: int = 42
    learning_rate: float = 0.05
    batch_size: int = 1024
    ranking_batch_size: int = 1024

    def __post_init__(self):
        if self.min_interaction_count < 0:
            raise ConfigError(f"min_interaction_count must be >= 0, got {self.min_interaction_count}")
        if self.num_rating_buckets <= 0:
            raise DomainError(f"num_rating_buckets must be positive, got {self.num_rating_buckets}")
        if not 0.0 < self.train_ratio < 1.0:
            raise ConfigError(f"train_ratio must be in (0, 1), got {self.train_ratio}")
        if self.top_n <= 0:
            raise ConfigError(f"top_n must be positive, got {self.top_n}")
        if self.learning_rate <= 0:
            raise ConfigError(f"learning_rate must be positive, got {self.learning_rate}")
        if self.batch_size <= 0:
            raise ConfigError(f"batch_size must be positive, got {self.batch_size}")
        if self.ranking_batch_size <= 0:
            raise ConfigError(f"ranking_batch_size must be positive, got {self.ranking_batch_size}")
        # rank / iterations / reg / alpha are validated by TrainerConfig
        self.trainer_config(FeedbackMode.IMPLICIT)

    @property
    def ratios(self) -> dict[str, float]:
        return {"training": self.train_ratio, "testing": 1.0 - self.train_ratio}

    def trainer_config(self, mode: FeedbackMode) -> TrainerConfig:
        """Derive the solver hyperparameters for *mode* (alpha only for implicit)."""
        return TrainerConfig(
            rank=self.rank,
            max_iterations=self.max_iterations,
            reg_param=self.reg_param,
            alpha=self.implicit_alpha if FeedbackMode.parse(mode) is FeedbackMode.IMPLICIT else None,
            nonnegative=self.nonnegative,
            seed=self.random_seed,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: dict) -> "PipelineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
        try:
            return cls(**values)
        except TypeError as err:
            raise ConfigError(f"Invalid config values: {err}") from err

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PipelineConfig":
        """Load a config file; keys may sit at the top level or under `pipeline:`."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                conf = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as err:
            raise ConfigError(f"Cannot read config file {path}: {err}") from err
        if not isinstance(conf, dict):
            raise ConfigError(f"Config file {path} must contain a mapping, got {type(conf).__name__}")
        section = conf["pipeline"] if "pipeline" in conf else conf
        section = {} if section is None else section
        if not isinstance(section, dict):
            raise ConfigError(f"Config section `pipeline` in {path} must be a mapping, got {type(section).__name__}")
        return cls.from_dict(section)
