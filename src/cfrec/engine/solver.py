"""Factorization solver contract and the default torch implementation behind it.

The pipeline only relies on `FactorizationSolver.fit`: a labelled table of
(user, item, rating) plus `SolverParams` in, two factor tables keyed by user and
item index out. Anything satisfying that contract (e.g. a Spark ALS wrapper)
can be passed to `FactorModelTrainer` instead of `TorchFactorizationSolver`.
"""
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import pandas as pd
import torch
from torch.utils.data import DataLoader

from cfrec.data.pytorch_datasets import RatingDataset
from cfrec.engine.losses import explicit_loss, implicit_loss
from cfrec.models.mf import MatrixFactorization
from cfrec.utils.errors import TrainingError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class SolverParams:
    rank: int
    max_iterations: int
    reg_param: float
    nonnegative: bool = False
    implicit_prefs: bool = False
    alpha: float = 1.0
    seed: int = 42


class FactorizationSolver(Protocol):
    def fit(self, ratings: pd.DataFrame, params: SolverParams) -> tuple[pd.DataFrame, pd.DataFrame]:
        """Return (user_factors, item_factors) frames with columns `id` and `features`."""
        ...


class TorchFactorizationSolver:
    """Gradient-based matrix factorization on top of `MatrixFactorization`.

    One iteration is one shuffled pass over the observed ratings. Explicit mode
    minimises squared error on observed pairs; implicit mode minimises the
    confidence-weighted loss over all pairs (see `implicit_loss`). Both add an L2
    penalty of `reg_param` on the factors touched by each batch. With
    `nonnegative` the factors are clamped to >= 0 after every step.
    """

    def __init__(
        self,
        *,
        learning_rate: float = 0.05,
        batch_size: int = 1024,
        device: str | torch.device = "cuda" if torch.cuda.is_available() else "cpu",
    ):
        self.learning_rate = learning_rate
        self.batch_size = batch_size
        self.device = device

    def fit(self, ratings: pd.DataFrame, params: SolverParams) -> tuple[pd.DataFrame, pd.DataFrame]:
        if ratings.empty:
            raise TrainingError("Cannot factorize an empty rating table")

        # embeddings need contiguous positions; map indices back on the way out
        user_ids, user_pos = np.unique(ratings["user"].to_numpy(), return_inverse=True)
        item_ids, item_pos = np.unique(ratings["item"].to_numpy(), return_inverse=True)

        torch.manual_seed(params.seed)
        model = MatrixFactorization(
            len(user_ids), len(item_ids), params.rank, nonnegative=params.nonnegative
        ).to(self.device)
        optimiser = torch.optim.Adam(model.parameters(), lr=self.learning_rate)

        loader = DataLoader(
            RatingDataset(user_pos, item_pos, ratings["rating"].to_numpy()),
            batch_size=self.batch_size,
            shuffle=True,
            generator=torch.Generator().manual_seed(params.seed),
        )
        num_observed = len(ratings)

        for epoch_idx in range(1, params.max_iterations + 1):
            model.train()
            epoch_loss = 0.0

            for user_batch, item_batch, rating_batch in loader:
                user_batch = user_batch.to(self.device)
                item_batch = item_batch.to(self.device)
                rating_batch = rating_batch.to(self.device)

                scores = model(user_batch, item_batch)
                if params.implicit_prefs:
                    loss = implicit_loss(
                        scores,
                        rating_batch,
                        model.user_emb.weight,
                        model.item_emb.weight,
                        alpha=params.alpha,
                        num_observed=num_observed,
                    )
                else:
                    loss = explicit_loss(scores, rating_batch)

                penalty = (
                    model.user_emb(user_batch).pow(2).sum(1).mean()
                    + model.item_emb(item_batch).pow(2).sum(1).mean()
                )
                loss = loss + params.reg_param * penalty

                if not torch.isfinite(loss):
                    raise TrainingError(f"Loss diverged to {loss.item()} in iteration {epoch_idx}")

                optimiser.zero_grad(set_to_none=True)
                loss.backward()
                optimiser.step()
                if params.nonnegative:
                    model.project()

                epoch_loss += loss.item()

            logger.debug(f"Iteration {epoch_idx}/{params.max_iterations} | mean loss = {epoch_loss / len(loader):.4f}")

        logger.info(f"Solver finished {params.max_iterations} iterations | final mean loss = {epoch_loss / len(loader):.4f}")

        user_factors = model.user_emb.weight.detach().cpu().numpy()
        item_factors = model.item_emb.weight.detach().cpu().numpy()
        if not (np.isfinite(user_factors).all() and np.isfinite(item_factors).all()):
            raise TrainingError("Solver produced non-finite factors")

        return (
            pd.DataFrame({"id": user_ids, "features": list(user_factors)}),
            pd.DataFrame({"id": item_ids, "features": list(item_factors)}),
        )
