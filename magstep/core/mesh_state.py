"""
Double-buffered magnetization and field state for all mesh nodes.
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, List, Optional

from .errors import InvalidArgumentError


@dataclass(frozen=True)
class NodeState:
    """Magnetization and effective field of one node at steps n-1 and n."""
    m_old: np.ndarray
    m: np.ndarray
    H_old: np.ndarray
    H: np.ndarray


@dataclass
class StepDiagnostics:
    """Outcome of one corrector loop."""
    residual: float
    iterations: int
    converged: bool


class MeshDiagnostics:
    """Per-node corrector diagnostics for one global step."""

    def __init__(self, residuals: np.ndarray, iterations: np.ndarray,
                 converged: np.ndarray):
        self.residuals = np.asarray(residuals, dtype=float)
        self.iterations = np.asarray(iterations, dtype=np.int64)
        self.converged = np.asarray(converged, dtype=bool)

    @classmethod
    def from_steps(cls, steps: List[StepDiagnostics]) -> "MeshDiagnostics":
        return cls(
            np.array([s.residual for s in steps], dtype=float),
            np.array([s.iterations for s in steps], dtype=np.int64),
            np.array([s.converged for s in steps], dtype=bool),
        )

    @property
    def n_nodes(self) -> int:
        return len(self.residuals)

    @property
    def all_converged(self) -> bool:
        return bool(np.all(self.converged))

    @property
    def n_unconverged(self) -> int:
        return int(np.count_nonzero(~self.converged))

    @property
    def max_residual(self) -> float:
        return float(np.max(self.residuals)) if self.n_nodes else 0.0

    @property
    def max_iterations(self) -> int:
        return int(np.max(self.iterations)) if self.n_nodes else 0

    def node(self, i: int) -> StepDiagnostics:
        return StepDiagnostics(float(self.residuals[i]), int(self.iterations[i]),
                               bool(self.converged[i]))

    def __repr__(self) -> str:
        return (f"MeshDiagnostics(n_nodes={self.n_nodes}, "
                f"unconverged={self.n_unconverged}, "
                f"max_residual={self.max_residual:.2e}, "
                f"max_iterations={self.max_iterations})")


def _field_array(name: str, arr, n_nodes: Optional[int] = None) -> np.ndarray:
    arr = np.ascontiguousarray(arr, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidArgumentError(f"{name} must have shape (n_nodes, 3), got {arr.shape}")
    if n_nodes is not None and arr.shape[0] != n_nodes:
        raise InvalidArgumentError(
            f"{name} has {arr.shape[0]} nodes, expected {n_nodes}")
    if not np.all(np.isfinite(arr)):
        raise InvalidArgumentError(f"{name} contains non-finite values")
    return arr


class MeshState:
    """
    Magnetization and effective field of every node at steps n-1 and n.

    Arrays are copied on construction and marked read-only, so a state can
    be shared between workers during a step. ``advance`` never mutates the
    current state; it returns a new one.
    """

    def __init__(
        self,
        m: np.ndarray,
        H: np.ndarray,
        m_old: Optional[np.ndarray] = None,
        H_old: Optional[np.ndarray] = None,
        volumes: Optional[np.ndarray] = None
    ):
        """
        Initialize mesh state.

        Args:
            m: (n_nodes, 3) magnetization at step n
            H: (n_nodes, 3) effective field at step n
            m_old: Magnetization at step n-1 (defaults to m)
            H_old: Effective field at step n-1 (defaults to H)
            volumes: Optional (n_nodes,) node volumes used as averaging weights
        """
        self.m = _field_array("m", m)
        n_nodes = self.m.shape[0]
        if n_nodes < 1:
            raise InvalidArgumentError("m must contain at least one node")
        self.H = _field_array("H", H, n_nodes)
        self.m_old = _field_array("m_old", self.m if m_old is None else m_old, n_nodes)
        self.H_old = _field_array("H_old", self.H if H_old is None else H_old, n_nodes)

        if np.any(np.linalg.norm(self.m, axis=1) == 0):
            raise InvalidArgumentError("m contains zero-norm vectors")

        if volumes is not None:
            volumes = np.ascontiguousarray(volumes, dtype=float)
            if volumes.shape != (n_nodes,):
                raise InvalidArgumentError(
                    f"volumes must have shape ({n_nodes},), got {volumes.shape}")
            if np.any(volumes < 0) or not np.any(volumes > 0):
                raise InvalidArgumentError("volumes must be non-negative with a positive sum")
            volumes = volumes.copy()
            volumes.setflags(write=False)
        self.volumes = volumes

        for name in ("m", "H", "m_old", "H_old"):
            arr = getattr(self, name).copy()
            arr.setflags(write=False)
            setattr(self, name, arr)

    @classmethod
    def uniform(
        cls,
        n_nodes: int,
        direction,
        field_evaluator: Callable[[np.ndarray], np.ndarray],
        volumes: Optional[np.ndarray] = None
    ) -> "MeshState":
        """
        Uniformly magnetized initial state.

        The first step has no history, so m_old = m and H_old = H.
        """
        if n_nodes < 1:
            raise InvalidArgumentError(f"n_nodes must be positive, got {n_nodes}")
        direction = np.asarray(direction, dtype=float)
        norm = np.linalg.norm(direction)
        if direction.shape != (3,) or not norm > 0:
            raise InvalidArgumentError(f"direction must be a non-zero 3-vector, got {direction}")
        m = np.tile(direction / norm, (n_nodes, 1))
        return cls(m, field_evaluator(m), volumes=volumes)

    @property
    def n_nodes(self) -> int:
        return self.m.shape[0]

    @property
    def weights(self) -> np.ndarray:
        """Averaging weights: node volumes, or ones if none were given."""
        if self.volumes is None:
            return np.ones(self.n_nodes)
        return self.volumes

    def node(self, i: int) -> NodeState:
        return NodeState(self.m_old[i], self.m[i], self.H_old[i], self.H[i])

    def advance(self, m_new: np.ndarray, H_new: np.ndarray) -> "MeshState":
        """
        Swap buffers: (m_old, m) <- (m, m_new) and (H_old, H) <- (H, H_new).

        Returns:
            New MeshState; ``self`` is unchanged
        """
        return MeshState(m_new, H_new, m_old=self.m, H_old=self.H, volumes=self.volumes)

    def __repr__(self) -> str:
        return f"MeshState(n_nodes={self.n_nodes})"
