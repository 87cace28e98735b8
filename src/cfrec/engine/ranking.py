from collections.abc import Iterable, Iterator

import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from cfrec.data.preprocess import IdentityRegistry
from cfrec.models.factor_model import FactorModel
from cfrec.utils.errors import ConfigError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)


class PredictionMatrix:
    """Predicted affinities score(u, i) = U_u · I_i, computed lazily from a `FactorModel`.

    Nothing dense is stored: rows are produced on demand, in blocks of users for
    top-N extraction. `to_frame` materialises the full |users| x |items| matrix
    and is meant for small models only.
    """

    def __init__(self, model: FactorModel):
        self.model = model

    @property
    def user_ids(self) -> np.ndarray:
        return self.model.user_ids

    @property
    def item_ids(self) -> np.ndarray:
        return self.model.item_ids

    @property
    def shape(self) -> tuple[int, int]:
        return self.model.num_users, self.model.num_items

    def score(self, user: int, item: int) -> float:
        return float(self.model.user_vector(user) @ self.model.item_vector(item))

    def row(self, user: int) -> np.ndarray:
        """Scores of *user* for every item, aligned with `item_ids`."""
        return self.model.item_factors @ self.model.user_vector(user)

    def iter_rows(self, batch_size: int = 1024, users: Iterable[int] | None = None) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        """Yield (user_ids, scores) blocks; scores has shape [len(user_ids), num_items]."""
        if users is None:
            positions = np.arange(self.model.num_users)
        else:
            positions = np.array([self.model.user_position(u) for u in users], dtype=np.int64)

        for start in range(0, len(positions), batch_size):
            block = positions[start : start + batch_size]
            yield self.user_ids[block], self.model.user_factors[block] @ self.model.item_factors.T

    def to_frame(self) -> pd.DataFrame:
        dense = self.model.user_factors @ self.model.item_factors.T
        return pd.DataFrame(
            dense,
            index=pd.Index(self.user_ids, name="user"),
            columns=pd.Index(self.item_ids, name="item"),
        )


def build_prediction_matrix(model: FactorModel) -> PredictionMatrix:
    return PredictionMatrix(model)


def _rank_row(scores: np.ndarray, item_ids: np.ndarray, n: int) -> list[int]:
    """Top *n* item ids by descending score; equal scores fall back to ascending item id."""
    order = np.lexsort((item_ids, -scores))
    return item_ids[order[:n]].tolist()


def recommend_top_n(
    matrix: PredictionMatrix | FactorModel,
    n: int = 5,
    *,
    users: Iterable[int] | None = None,
    batch_size: int = 1024,
) -> dict[int, list[int]]:
    """Per user, the *n* highest-scoring items in descending order.

    Users with fewer than *n* items get all of them. Tie-breaking is
    deterministic: score descending, then item index ascending.
    """
    if n <= 0:
        raise ConfigError(f"n must be positive, got {n}")
    if isinstance(matrix, FactorModel):
        matrix = build_prediction_matrix(matrix)

    item_ids = matrix.item_ids
    num_users = matrix.shape[0] if users is None else None
    top_n: dict[int, list[int]] = {}

    for user_block, score_block in tqdm(
        matrix.iter_rows(batch_size, users),
        total=None if num_users is None else -(-num_users // batch_size),
        desc="Top-N",
        unit="batch",
        disable=None,
    ):
        for user, scores in zip(user_block.tolist(), score_block):
            top_n[user] = _rank_row(scores, item_ids, n)

    logger.info(f"Extracted top-{n} lists for {len(top_n):,} users over {len(item_ids):,} items")
    return top_n


def decode_recommendations(
    top_n: dict[int, list[int]],
    user_registry: IdentityRegistry,
    item_registry: IdentityRegistry,
) -> pd.DataFrame:
    """Flatten top-N lists into raw identifiers → DataFrame [user_id, rank, item_id]."""
    rows = [(user, rank, item) for user, items in top_n.items() for rank, item in enumerate(items, 1)]
    if not rows:
        return pd.DataFrame(columns=["user_id", "rank", "item_id"])

    users, ranks, items = map(list, zip(*rows))
    return pd.DataFrame({
        "user_id": user_registry.inverse(users),
        "rank": ranks,
        "item_id": item_registry.inverse(items),
    })
