import numpy as np
import pandas as pd
import pytest

from cfrec.engine.solver import SolverParams


class StubSolver:
    """Deterministic stand-in for a factorization backend.

    Uses the given factor vectors where provided; otherwise every user gets a
    vector of ones and item *i* a vector filled with *i*, so higher item
    indices always score higher.
    """

    def __init__(self, user_factors=None, item_factors=None):
        self.user_factors = user_factors or {}
        self.item_factors = item_factors or {}
        self.calls: list[tuple[pd.DataFrame, SolverParams]] = []

    def fit(self, ratings: pd.DataFrame, params: SolverParams):
        self.calls.append((ratings.copy(), params))
        users = sorted(ratings["user"].unique().tolist())
        items = sorted(ratings["item"].unique().tolist())
        return (
            pd.DataFrame({
                "id": users,
                "features": [self.user_factors.get(u, np.ones(params.rank)) for u in users],
            }),
            pd.DataFrame({
                "id": items,
                "features": [self.item_factors.get(i, np.full(params.rank, float(i))) for i in items],
            }),
        )


def build_events(counts: list[tuple[str, str, int]]) -> pd.DataFrame:
    rows = [(user, item) for user, item, n in counts for _ in range(n)]
    return pd.DataFrame(rows, columns=["user_id", "item_id"])


@pytest.fixture
def make_events():
    """Expand (user, item, count) triples into one event row per occurrence."""
    return build_events


@pytest.fixture
def synthetic_events() -> pd.DataFrame:
    """20 users x 12 items, every pair active enough to survive the default filter."""
    rng = np.random.default_rng(0)
    counts = []
    for u in range(20):
        for i in rng.choice(12, size=6, replace=False):
            counts.append((f"u{u:02d}", f"i{i:02d}", int(rng.integers(6, 30))))
    return build_events(counts)


@pytest.fixture
def stub_solver() -> StubSolver:
    return StubSolver()


@pytest.fixture
def make_solver():
    """Build a `StubSolver` with explicit factor vectors."""
    return StubSolver
