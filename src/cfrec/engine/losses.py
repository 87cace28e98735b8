"""Module containing the loss functions used by the default factorization solver."""
import torch


def explicit_loss(scores: torch.Tensor, ratings: torch.Tensor) -> torch.Tensor:
    """Mean squared error between predicted scores and observed explicit ratings.

    Args:
        scores (torch.Tensor): Predicted scores for a batch of observed pairs; shape [batch_size].
        ratings (torch.Tensor): Observed ratings for the same pairs; shape [batch_size].

    Returns:
        torch.Tensor: Scalar mean squared error over the batch.
    """
    return ((ratings - scores) ** 2).mean()


def implicit_loss(
    scores: torch.Tensor,
    ratings: torch.Tensor,
    user_factors: torch.Tensor,
    item_factors: torch.Tensor,
    *,
    alpha: float,
    num_observed: int,
) -> torch.Tensor:
    """Confidence-weighted preference loss for implicit feedback (Hu, Koren & Volinsky, 2008).

    Every user-item pair contributes c * (p - s)^2 where p = 1, c = 1 + alpha * r
    for observed pairs and p = 0, c = 1 for all others. The sum over unobserved
    pairs is rewritten as

        sum_all s^2  -  sum_observed s^2,   sum_all s^2 = <U^T U, V^T V>

    so the dense user x item matrix is never built. The full-matrix term is
    scaled by the batch's share of observed pairs, making the batch mean an
    unbiased estimate of the total loss divided by *num_observed*.

    Args:
        scores (torch.Tensor): Predicted scores for the observed pairs in the batch; shape [batch_size].
        ratings (torch.Tensor): Implicit ratings of those pairs; shape [batch_size].
        user_factors (torch.Tensor): All user factors; shape [num_users, rank].
        item_factors (torch.Tensor): All item factors; shape [num_items, rank].
        alpha (float): Confidence scaling.
        num_observed (int): Number of observed pairs in the whole training set.

    Returns:
        torch.Tensor: Scalar loss for the batch.
    """
    confidence = 1.0 + alpha * ratings
    observed = (confidence * (1.0 - scores) ** 2 - scores ** 2).sum()

    gram = (user_factors.T @ user_factors * (item_factors.T @ item_factors)).sum()
    share = scores.shape[0] / num_observed

    return (observed + share * gram) / scores.shape[0]
