from collections.abc import Hashable, Iterable

import numpy as np
import pandas as pd
from sklearn.preprocessing import LabelEncoder

from cfrec.data.loader import validate_events
from cfrec.utils.errors import ConfigError, DataError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)

INDEX_BASE = 1


class IdentityRegistry:
    """Bidirectional mapping between raw identifiers and dense integer indices.

    Indices are assigned in ascending order of the raw identifier, starting at
    `base`. `LabelEncoder` keeps its `classes_` sorted, so the encoder position
    plus `base` is the index.
    """

    def __init__(self, *, base: int = INDEX_BASE):
        self.base = base
        self._encoder = LabelEncoder()
        self._mapping: dict[Hashable, int] = {}

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign(self, raw_ids: Iterable[Hashable]) -> dict[Hashable, int]:
        """Return {raw_id: index} for the distinct ids in *raw_ids* without storing it."""
        distinct = pd.unique(pd.Series(list(raw_ids), dtype=object))
        if len(distinct) == 0:
            return {}

        try:
            encoder = LabelEncoder().fit(distinct)
        except TypeError as err:
            raise DataError(f"Identifiers must be uniformly strings or numbers: {err}") from err
        return {raw: pos + self.base for pos, raw in enumerate(encoder.classes_.tolist())}

    def fit(self, raw_ids: Iterable[Hashable]) -> "IdentityRegistry":
        """Assign indices for *raw_ids* and keep the mapping for lookups."""
        self._mapping = self.assign(raw_ids)
        self._encoder = LabelEncoder()
        if self._mapping:
            self._encoder.fit(list(self._mapping))
        return self

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def transform(self, raw_ids: Iterable[Hashable]) -> np.ndarray:
        """Map raw ids to indices; every id must have been seen by `fit`."""
        series = pd.Series(list(raw_ids), dtype=object)
        indices = series.map(self._mapping)
        unknown = indices.isna()
        if unknown.any():
            sample = series[unknown].unique()[:5].tolist()
            raise DataError(f"{int(unknown.sum())} identifiers are not registered, e.g. {sample}")
        return indices.to_numpy(dtype=np.int64)

    def inverse(self, indices: Iterable[int]) -> list[Hashable]:
        """Map indices back to their raw ids."""
        positions = np.asarray(list(indices), dtype=np.int64) - self.base
        if positions.size and (positions.min() < 0 or positions.max() >= len(self)):
            raise DataError(f"Index out of range for registry of size {len(self)} (base {self.base})")
        if positions.size == 0:
            return []
        return self._encoder.inverse_transform(positions).tolist()

    @property
    def mapping(self) -> dict[Hashable, int]:
        return dict(self._mapping)

    def to_frame(self, id_col: str = "raw_id", index_col: str = "index") -> pd.DataFrame:
        return pd.DataFrame({id_col: list(self._mapping), index_col: list(self._mapping.values())})

    def __len__(self) -> int:
        return len(self._mapping)

    def __contains__(self, raw_id: Hashable) -> bool:
        return raw_id in self._mapping


def aggregate_interactions(events: pd.DataFrame, min_count: int = 5) -> pd.DataFrame:
    """Collapse raw events into (user_id, item_id, count) and keep pairs with count > *min_count*.

    A pair seen exactly *min_count* times is dropped.
    """
    if min_count < 0:
        raise ConfigError(f"min_count must be >= 0, got {min_count}")

    events = validate_events(events)
    counts = (
        events.groupby(["user_id", "item_id"], sort=True)
        .size()
        .rename("count")
        .reset_index()
    )
    kept = counts[counts["count"] > min_count].reset_index(drop=True)

    logger.info(
        f"Aggregated {len(events):,} events into {len(counts):,} pairs | "
        f"kept: {len(kept):,} | dropped (count <= {min_count}): {len(counts) - len(kept):,}"
    )
    return kept


class InteractionPreprocessor:
    """Turn a raw event log into indexed interaction counts.

    Parameters
    ----------
    events : pd.DataFrame
        Must contain columns `user_id`, `item_id`; one row per raw event.
    min_count : int, default 5
        Pairs with count <= `min_count` are dropped before indexing.
    """

    def __init__(self, events: pd.DataFrame, *, min_count: int = 5):
        self._raw = events
        self.min_count = min_count

        # public artefacts filled by .process()
        self.interactions: pd.DataFrame
        self.user_registry = IdentityRegistry()
        self.item_registry = IdentityRegistry()

    def process(self) -> pd.DataFrame:
        """Run aggregation and indexing → DataFrame with columns [user, item, count]."""
        df = aggregate_interactions(self._raw, self.min_count)

        # index AFTER filtering so that indices are dense over retained pairs
        self.user_registry.fit(df.user_id)
        self.item_registry.fit(df.item_id)

        df = df.assign(
            user=self.user_registry.transform(df.user_id),
            item=self.item_registry.transform(df.item_id),
        )

        self.interactions = df[["user", "item", "count"]]
        logger.info(f"Indexed {self.num_users():,} users and {self.num_items():,} items")
        return self.interactions

    # helpers
    def num_users(self) -> int:
        return len(self.user_registry)

    def num_items(self) -> int:
        return len(self.item_registry)
