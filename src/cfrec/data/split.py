import math

import numpy as np
import pandas as pd

from cfrec.utils.config import RATIO_TOLERANCE
from cfrec.utils.errors import ConfigError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)


def _validate_ratios(ratios: dict[str, float]) -> float:
    missing = {"training", "testing"} - set(ratios)
    if missing:
        raise ConfigError(f"Split ratios missing keys: {sorted(missing)}")

    train, test = float(ratios["training"]), float(ratios["testing"])
    if not (0.0 <= train <= 1.0 and 0.0 <= test <= 1.0):
        raise ConfigError(f"Split ratios must lie in [0, 1], got training={train}, testing={test}")
    if not math.isclose(train + test, 1.0, abs_tol=RATIO_TOLERANCE):
        raise ConfigError(f"Split ratios must sum to 1.0, got {train + test}")
    return train


def partition_records(
    records: pd.DataFrame,
    ratios: dict[str, float] | None = None,
    *,
    seed: int = 42,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Randomly assign every record to exactly **one** of training / testing.

    Each row gets one uniform draw from a generator seeded with *seed*; rows whose
    draw falls below the training ratio go to training. Same seed and same input
    order always give the same partition.
    """
    ratios = ratios or {"training": 0.8, "testing": 0.2}
    train_ratio = _validate_ratios(ratios)

    rng = np.random.default_rng(seed)
    in_train = rng.random(len(records)) < train_ratio

    train_df = records[in_train].reset_index(drop=True)
    test_df = records[~in_train].reset_index(drop=True)

    logger.info(f"Partitioned {len(records):,} records | training: {len(train_df):,} | testing: {len(test_df):,}")
    return train_df, test_df
