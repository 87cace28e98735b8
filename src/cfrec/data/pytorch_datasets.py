import numpy as np
import torch
from torch.utils.data import Dataset


class RatingDataset(Dataset):
    """Observed (user position, item position, rating) triples for the torch solver."""

    def __init__(self, users: np.ndarray, items: np.ndarray, ratings: np.ndarray):
        self.users: torch.LongTensor = torch.as_tensor(users, dtype=torch.long)
        self.items: torch.LongTensor = torch.as_tensor(items, dtype=torch.long)
        self.ratings: torch.FloatTensor = torch.as_tensor(ratings, dtype=torch.float32)

    def __len__(self) -> int:
        return len(self.ratings)

    def __getitem__(self, idx: int) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        return self.users[idx], self.items[idx], self.ratings[idx]
