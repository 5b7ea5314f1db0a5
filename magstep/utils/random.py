"""Random initial magnetization configurations."""

import numpy as np
from typing import Optional


def random_magnetization(n_nodes: int, seed: Optional[int] = None) -> np.ndarray:
    """
    Random unit vectors, uniformly distributed on the sphere.

    Args:
        n_nodes: Number of vectors to generate
        seed: Optional random seed

    Returns:
        Array of shape (n_nodes, 3) with unit vectors
    """
    rng = np.random.default_rng(seed)
    # Normalized Gaussian samples are isotropic
    v = rng.normal(size=(n_nodes, 3))
    return v / np.linalg.norm(v, axis=1, keepdims=True)


def tilted_magnetization(m: np.ndarray, amplitude: float,
                         seed: Optional[int] = None) -> np.ndarray:
    """
    Perturb a magnetization field by random tilts and renormalize.

    Args:
        m: (n_nodes, 3) magnetization
        amplitude: Standard deviation of the added Gaussian noise
        seed: Optional random seed

    Returns:
        New (n_nodes, 3) array of unit vectors
    """
    rng = np.random.default_rng(seed)
    tilted = np.asarray(m, dtype=float) + amplitude * rng.normal(size=np.shape(m))
    return tilted / np.linalg.norm(tilted, axis=1, keepdims=True)
