"""Rating signals derived from interaction counts."""
import numpy as np
import pandas as pd

from cfrec.utils.errors import DataError, DomainError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)

RATING_COLUMNS = ["user", "item", "count", "explicit_rating", "implicit_rating"]


def quantile_buckets(counts: np.ndarray, num_buckets: int, tie_keys: tuple[np.ndarray, ...] = ()) -> np.ndarray:
    """
    Assign each count an ordinal bucket in [0, num_buckets - 1] so buckets hold equal shares.

    Records are ranked by count (ties broken by *tie_keys*, then by position) and
    bucket = floor(rank * B / N). Every bucket ends up with floor(N/B) or ceil(N/B)
    records; with fewer records than buckets the upper buckets are simply sparse.

    Returns:
        np.ndarray: Bucket per input position (input order is preserved).
    """
    if num_buckets <= 0:
        raise DomainError(f"num_buckets must be positive, got {num_buckets}")

    counts = np.asarray(counts)
    total = len(counts)
    if total == 0:
        return np.empty(0, dtype=np.int64)

    # np.lexsort sorts by the last key first
    order = np.lexsort(tuple(reversed(tie_keys)) + (counts,))
    ranks = np.empty(total, dtype=np.int64)
    ranks[order] = np.arange(total)

    buckets = (ranks * num_buckets) // total
    return np.clip(buckets, 0, num_buckets - 1)


def log_ratings(counts: np.ndarray) -> np.ndarray:
    """Natural log of each count; counts must be strictly positive."""
    counts = np.asarray(counts, dtype=np.float64)
    if (counts <= 0).any():
        raise DomainError(f"Cannot take log of non-positive counts: {np.unique(counts[counts <= 0]).tolist()}")
    return np.log(counts)


def encode_ratings(interactions: pd.DataFrame, num_buckets: int = 5) -> pd.DataFrame:
    """Attach explicit (quantile bucket) and implicit (log count) ratings to each interaction.

    Args:
        interactions: DataFrame with columns `user`, `item`, `count`.
        num_buckets: Number of quantile buckets for the explicit signal.

    Returns:
        DataFrame with columns [user, item, count, explicit_rating, implicit_rating],
        rows in input order.
    """
    missing = {"user", "item", "count"} - set(interactions.columns)
    if missing:
        raise DataError(f"Interactions missing required columns: {sorted(missing)}")

    counts = interactions["count"].to_numpy()
    records = interactions[["user", "item", "count"]].assign(
        explicit_rating=quantile_buckets(
            counts,
            num_buckets,
            tie_keys=(interactions["user"].to_numpy(), interactions["item"].to_numpy()),
        ),
        implicit_rating=log_ratings(counts),
    )

    if len(records):
        sizes = records["explicit_rating"].value_counts().sort_index()
        logger.info(f"Encoded {len(records):,} ratings | bucket sizes: {sizes.to_dict()}")
    return records.reset_index(drop=True)
