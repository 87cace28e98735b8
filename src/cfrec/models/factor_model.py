from dataclasses import dataclass

import numpy as np
import pandas as pd

from cfrec.utils.config import FeedbackMode
from cfrec.utils.errors import TrainingError


def _readonly(array: np.ndarray, dtype) -> np.ndarray:
    out = np.array(array, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class FactorModel:
    """Trained user / item latent factors for one feedback mode.

    `user_ids` and `item_ids` are sorted ascending and row *k* of each factor
    matrix belongs to the *k*-th id. Arrays are read-only once built.
    """

    mode: FeedbackMode
    user_ids: np.ndarray
    user_factors: np.ndarray
    item_ids: np.ndarray
    item_factors: np.ndarray

    def __post_init__(self):
        user_order = np.argsort(self.user_ids, kind="stable")
        item_order = np.argsort(self.item_ids, kind="stable")
        object.__setattr__(self, "user_ids", _readonly(np.asarray(self.user_ids)[user_order], np.int64))
        object.__setattr__(self, "user_factors", _readonly(np.asarray(self.user_factors)[user_order], np.float64))
        object.__setattr__(self, "item_ids", _readonly(np.asarray(self.item_ids)[item_order], np.int64))
        object.__setattr__(self, "item_factors", _readonly(np.asarray(self.item_factors)[item_order], np.float64))

        if self.user_factors.ndim != 2 or self.item_factors.ndim != 2:
            raise TrainingError("Factor matrices must be two-dimensional")
        if len(self.user_ids) != len(self.user_factors) or len(self.item_ids) != len(self.item_factors):
            raise TrainingError("Factor matrices must have one row per id")
        if self.user_factors.shape[1] != self.item_factors.shape[1]:
            raise TrainingError(
                f"User and item factors disagree on rank: {self.user_factors.shape[1]} vs {self.item_factors.shape[1]}"
            )
        if len(np.unique(self.user_ids)) != len(self.user_ids) or len(np.unique(self.item_ids)) != len(self.item_ids):
            raise TrainingError("Factor tables contain duplicated ids")

    @property
    def rank(self) -> int:
        return int(self.user_factors.shape[1])

    @property
    def num_users(self) -> int:
        return len(self.user_ids)

    @property
    def num_items(self) -> int:
        return len(self.item_ids)

    def user_position(self, user: int) -> int:
        return self._position(self.user_ids, user, "user")

    def user_vector(self, user: int) -> np.ndarray:
        return self.user_factors[self.user_position(user)]

    def item_vector(self, item: int) -> np.ndarray:
        return self.item_factors[self._position(self.item_ids, item, "item")]

    @staticmethod
    def _position(ids: np.ndarray, key: int, kind: str) -> int:
        pos = int(np.searchsorted(ids, key))
        if pos >= len(ids) or ids[pos] != key:
            raise KeyError(f"No factors for {kind} {key}")
        return pos

    @classmethod
    def from_frames(cls, mode: FeedbackMode, user_frame: pd.DataFrame, item_frame: pd.DataFrame) -> "FactorModel":
        """Build from solver factor tables with columns `id` and `features`."""
        return cls(
            mode=mode,
            user_ids=user_frame["id"].to_numpy(),
            user_factors=_stack(user_frame["features"]),
            item_ids=item_frame["id"].to_numpy(),
            item_factors=_stack(item_frame["features"]),
        )

    def to_frames(self) -> tuple[pd.DataFrame, pd.DataFrame]:
        """Inverse of `from_frames`."""
        users = pd.DataFrame({"id": self.user_ids, "features": list(self.user_factors)})
        items = pd.DataFrame({"id": self.item_ids, "features": list(self.item_factors)})
        return users, items


def _stack(features: pd.Series) -> np.ndarray:
    if len(features) == 0:
        return np.empty((0, 0))
    try:
        return np.vstack([np.asarray(f, dtype=np.float64) for f in features])
    except ValueError as err:
        raise TrainingError(f"Factor vectors have inconsistent lengths: {err}") from err
