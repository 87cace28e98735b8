from dataclasses import dataclass

import pandas as pd

from cfrec.utils.errors import ConfigError, DataError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    """Hit rate of held-out interactions against top-N lists.

    `accuracy` is a percentage in [0, 100]; `excluded` counts testing records
    dropped because their user had no top-N list (cold start).
    """

    accuracy: float
    hits: int
    considered: int
    excluded: int
    n: int

    def as_dict(self) -> dict[str, float]:
        return {
            f"HitRate@{self.n}": self.accuracy,
            "hits": self.hits,
            "considered": self.considered,
            "excluded": self.excluded,
        }


def evaluate_hit_rate(testing: pd.DataFrame, top_n: dict[int, list[int]]) -> EvaluationResult:
    """Share (in %) of testing interactions whose item is in that user's top-N list.

    Records of users without a list are cold-start users: they are left out of
    the denominator rather than counted as misses.
    """
    missing = {"user", "item"} - set(testing.columns)
    if missing:
        raise DataError(f"Testing records missing required columns: {sorted(missing)}")

    known = testing["user"].isin(list(top_n))
    considered = testing.loc[known, ["user", "item"]]
    if considered.empty:
        raise ConfigError(
            f"No testing records left to evaluate ({len(testing):,} testing records, "
            f"none belong to users with recommendations)"
        )

    # pre-compute sets so membership checks are O(1)
    recommended = {user: set(items) for user, items in top_n.items()}
    hits = sum(item in recommended[user] for user, item in considered.itertuples(index=False, name=None))

    n = max((len(items) for items in top_n.values()), default=0)
    result = EvaluationResult(
        accuracy=100.0 * hits / len(considered),
        hits=int(hits),
        considered=len(considered),
        excluded=int((~known).sum()),
        n=n,
    )
    logger.info(
        f"HitRate@{n}: {result.accuracy:.2f}% | hits: {result.hits:,} / {result.considered:,} "
        f"| cold-start records excluded: {result.excluded:,}"
    )
    return result
