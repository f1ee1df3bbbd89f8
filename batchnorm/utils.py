import numpy as np
import torch


def set_random_seed(seed=0):
    """Seed numpy's global RNG and torch, returning a numpy Generator."""
    np.random.seed(seed)
    torch.manual_seed(seed)
    # set CUDA seeds
    torch.cuda.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)  # multi-GPU
    return np.random.default_rng(seed)
