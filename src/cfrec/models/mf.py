"""Module containing the Matrix Factorization (MF) pytorch model used by the default solver."""
import torch
import torch.nn as nn


class MatrixFactorization(nn.Module):
    """
    Plain latent-factor model for collaborative filtering.

    Each user and item is a vector of size `rank`; the predicted affinity is
    their dot product. There are no bias terms, so the learned factors alone
    reproduce every score.

    Attributes:
        user_emb (nn.Embedding): Latent factors per (local) user position.
        item_emb (nn.Embedding): Latent factors per (local) item position.
    """
    def __init__(self, num_users: int, num_items: int, rank: int = 10, *, nonnegative: bool = False) -> None:
        super().__init__()
        self.nonnegative = nonnegative
        self.user_emb = nn.Embedding(num_users, rank)
        self.item_emb = nn.Embedding(num_items, rank)

        nn.init.normal_(self.user_emb.weight, std=0.1)
        nn.init.normal_(self.item_emb.weight, std=0.1)
        if nonnegative:
            self.project()

    def forward(self, users: torch.Tensor, items: torch.Tensor) -> torch.Tensor:
        """Scores for aligned (user, item) position pairs."""
        return (self.user_emb(users) * self.item_emb(items)).sum(1)

    @torch.no_grad()
    def project(self) -> None:
        """Clamp factors onto the non-negative orthant (projected gradient step)."""
        self.user_emb.weight.clamp_(min=0.0)
        self.item_emb.weight.clamp_(min=0.0)
