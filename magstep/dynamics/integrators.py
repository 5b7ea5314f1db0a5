"""
Numerical integrators for advancing the LLG equation one time step.

The building blocks are pure functions on single-node 3-vectors:

- ``rotation_step``: implicit Cayley-type step, unit length by construction
- ``extrapolate_field``: second-order half-step field estimate
- ``yang_step``: predictor-corrector step on the implicit midpoint rule

The ``Integrator`` classes apply them to a whole mesh, either through the
Numba kernels in ``magstep.core.fast_ops`` or node by node in Python.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.linalg import solve

from ..core.errors import InvalidArgumentError, NumericalInstabilityError
from ..core.mesh_state import MeshDiagnostics, MeshState, NodeState, StepDiagnostics
from ..core.fast_ops import (
    STATUS_OK, rotation_step_nodes, yang_step_nodes
)

logger = logging.getLogger(__name__)

HALF_STEP_RULES = ("yang", "midpoint")


@dataclass
class StepConfig:
    """
    Scalar parameters shared by all nodes for one step.

    Attributes:
        dt: Time increment (> 0)
        damp: Gilbert damping coefficient, expected in [0, 1]
        tolerance: Corrector convergence threshold
        max_attempts: Corrector iteration cap
        half_step: Half-step magnetization rule, "yang" or "midpoint"
        renormalize: Normalize each corrector iterate to unit length
        strict: Treat non-convergence as an error in the driver
    """
    dt: float
    damp: float = 1.0
    tolerance: float = 1e-5
    max_attempts: int = 10
    half_step: str = "yang"
    renormalize: bool = True
    strict: bool = False

    def validate(self) -> "StepConfig":
        _check_dt(self.dt)
        if not np.isfinite(self.damp):
            raise InvalidArgumentError(f"damp must be finite, got {self.damp}")
        if not (np.isfinite(self.tolerance) and self.tolerance > 0):
            raise InvalidArgumentError(
                f"tolerance must be positive, got {self.tolerance}")
        _check_max_attempts(self.max_attempts)
        if self.half_step not in HALF_STEP_RULES:
            raise InvalidArgumentError(
                f"half_step must be one of {HALF_STEP_RULES}, got {self.half_step!r}")
        return self


def _check_dt(dt):
    if not (np.isfinite(dt) and dt > 0):
        raise InvalidArgumentError(f"dt must be a positive finite number, got {dt}")


def _check_max_attempts(max_attempts):
    message = f"max_attempts must be a positive integer, got {max_attempts!r}"
    if isinstance(max_attempts, bool):
        raise InvalidArgumentError(message)
    try:
        as_int = int(max_attempts)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidArgumentError(message) from e
    if as_int != max_attempts or as_int < 1:
        raise InvalidArgumentError(message)


def _as_vector(name: str, v) -> np.ndarray:
    arr = np.asarray(v, dtype=float)
    if arr.shape != (3,):
        raise InvalidArgumentError(f"{name} must have shape (3,), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidArgumentError(f"{name} contains non-finite values")
    return arr


def cayley_matrix(center: np.ndarray, damp: float) -> np.ndarray:
    """
    Identity plus ``damp`` times the negative cross-product matrix of ``center``.

    ``cayley_matrix(c, a) @ v == v - a * cross(c, v)``. Its determinant is
    ``1 + a^2 |c|^2``, so it is never singular.
    """
    c1, c2, c3 = center
    return np.array([
        [1.0, damp * c3, -damp * c2],
        [-damp * c3, 1.0, damp * c1],
        [damp * c2, -damp * c1, 1.0],
    ])


def _solve(center: np.ndarray, rhs: np.ndarray, damp: float) -> np.ndarray:
    x = solve(cayley_matrix(center, damp), rhs, check_finite=False)
    if not np.all(np.isfinite(x)):
        raise NumericalInstabilityError(
            f"linear solve produced non-finite output {x}")
    return x


def rotation_step(m, H, dt: float, damp: float = 1.0) -> np.ndarray:
    """
    Single implicit (Cayley-type) step for one node.

    Solves ``M m' = m - dt (m x H)`` with ``M = cayley_matrix(m, damp)`` and
    returns ``m' / |m'|``. Unconditionally stable in ``dt``.

    Args:
        m: Magnetization, shape (3,), non-zero
        H: Effective field, shape (3,)
        dt: Time increment (> 0)
        damp: Damping coefficient

    Returns:
        Unit magnetization after the step
    """
    _check_dt(dt)
    m = _as_vector("m", m)
    H = _as_vector("H", H)
    if not np.linalg.norm(m) > 0:
        raise InvalidArgumentError("m must have non-zero norm")

    m_new = _solve(m, m - dt * np.cross(m, H), damp)
    return m_new / np.linalg.norm(m_new)


def extrapolate_field(H, H_old) -> np.ndarray:
    """
    Linear extrapolation of the effective field to the half step n + 1/2.

    Works on single vectors and on (n_nodes, 3) arrays alike.
    """
    H = np.asarray(H, dtype=float)
    H_old = np.asarray(H_old, dtype=float)
    if H.shape != H_old.shape:
        raise InvalidArgumentError(
            f"H and H_old shapes differ: {H.shape} vs {H_old.shape}")
    if H.shape[-1:] != (3,):
        raise InvalidArgumentError(f"field vectors must have 3 components, got {H.shape}")
    return 1.5 * H - 0.5 * H_old


def _half_step(m_pred, m, m_half0, rule):
    if rule == "midpoint":
        return 0.5 * (m_pred + m)
    return m_pred + 3.0 * m - m_half0


def yang_step(
    m,
    m_old,
    H,
    H_old,
    dt: float,
    damp: float = 1.0,
    tolerance: float = 1e-5,
    max_attempts: int = 10,
    half_step: str = "yang",
    renormalize: bool = True
) -> Tuple[np.ndarray, StepDiagnostics]:
    """
    Advance one node from step n to n+1 (Yang 2021 predictor-corrector).

    The prediction is a ``rotation_step``; the correction is a fixed-point
    iteration on the implicit midpoint rule evaluated at the extrapolated
    half-step magnetization and field.

    Args:
        m: Magnetization at step n
        m_old: Magnetization at step n-1
        H: Effective field at step n
        H_old: Effective field at step n-1
        dt: Time increment (> 0)
        damp: Damping coefficient
        tolerance: Stop when |m_new - m_pred| < tolerance
        max_attempts: Corrector iteration cap
        half_step: "yang" (m_pred + 3 m - (m + m_old)/2) or "midpoint"
        renormalize: Normalize every corrector iterate

    Returns:
        Tuple of (m at step n+1, diagnostics). Non-convergence is reported
        through ``diagnostics.converged``, never raised.
    """
    StepConfig(dt, damp, tolerance, max_attempts, half_step).validate()
    m = _as_vector("m", m)
    m_old = _as_vector("m_old", m_old)
    H = _as_vector("H", H)
    H_old = _as_vector("H_old", H_old)

    m_half0 = 0.5 * (m + m_old)
    m_pred = rotation_step(m, H, dt, damp)
    m_half = _half_step(m_pred, m, m_half0, half_step)
    H_half = extrapolate_field(H, H_old)
    drive = damp * m + dt * H_half

    residual = np.inf
    attempts = 0
    while residual >= tolerance and attempts < max_attempts:
        m_new = _solve(m_half, m - np.cross(m_half, drive), damp)
        if renormalize:
            m_new = m_new / np.linalg.norm(m_new)
            if not np.all(np.isfinite(m_new)):
                raise NumericalInstabilityError("corrector iterate has zero norm")
        residual = float(np.linalg.norm(m_new - m_pred))
        attempts += 1

        m_pred = m_new
        m_half = _half_step(m_pred, m, m_half0, half_step)

    return m_pred, StepDiagnostics(residual, attempts, residual < tolerance)


class Integrator(ABC):
    """Abstract base class for mesh integrators."""

    def __init__(self, config: StepConfig, use_fast: bool = True,
                 n_workers: Optional[int] = None):
        """
        Initialize integrator.

        Args:
            config: Step parameters
            use_fast: Use the Numba kernels instead of per-node Python calls
            n_workers: Thread count for the Python backend (None = executor default)
        """
        self.config = config.validate()
        self.use_fast = use_fast
        self.n_workers = n_workers

    @abstractmethod
    def step_mesh(self, state: MeshState):
        """
        Advance every node of ``state`` by one step.

        Returns:
            Tuple of (new magnetization (n_nodes, 3), MeshDiagnostics)
        """

    @abstractmethod
    def step(self, node: NodeState) -> Tuple[np.ndarray, StepDiagnostics]:
        """Advance a single node."""

    def _map_nodes(self, func, n_nodes: int):
        """Run ``func(i)`` for every node index, in parallel, ordered by index."""
        with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
            return list(executor.map(func, range(n_nodes)))


class YangIntegrator(Integrator):
    """
    Second-order predictor-corrector integrator (Yang 2021).

    Needs the magnetization and effective field at both steps n and n-1.
    """

    def step(self, node: NodeState) -> Tuple[np.ndarray, StepDiagnostics]:
        cfg = self.config
        return yang_step(
            node.m, node.m_old, node.H, node.H_old, cfg.dt, cfg.damp,
            cfg.tolerance, cfg.max_attempts, cfg.half_step, cfg.renormalize
        )

    def step_mesh(self, state: MeshState):
        cfg = self.config
        if self.use_fast:
            m_next, residuals, iterations, status = yang_step_nodes(
                state.m, state.m_old, state.H, state.H_old,
                float(cfg.dt), float(cfg.damp), float(cfg.tolerance),
                int(cfg.max_attempts), cfg.half_step == "midpoint",
                bool(cfg.renormalize)
            )
            _raise_on_status(status)
            return m_next, MeshDiagnostics(residuals, iterations, residuals < cfg.tolerance)

        results = self._map_nodes(lambda i: self.step(state.node(i)), state.n_nodes)
        m_next = np.array([r[0] for r in results]).reshape(state.n_nodes, 3)
        return m_next, MeshDiagnostics.from_steps([r[1] for r in results])


class CayleyIntegrator(Integrator):
    """
    First-order integrator using the implicit rotation step alone.

    One linear solve per node and no corrector loop; every node reports a
    single iteration with zero residual.
    """

    def step(self, node: NodeState) -> Tuple[np.ndarray, StepDiagnostics]:
        m_new = rotation_step(node.m, node.H, self.config.dt, self.config.damp)
        return m_new, StepDiagnostics(0.0, 1, True)

    def step_mesh(self, state: MeshState):
        if self.use_fast:
            m_next, status = rotation_step_nodes(
                state.m, state.H, float(self.config.dt), float(self.config.damp))
            _raise_on_status(status)
            n = state.n_nodes
            return m_next, MeshDiagnostics(
                np.zeros(n), np.ones(n, dtype=np.int64), np.ones(n, dtype=bool))

        results = self._map_nodes(lambda i: self.step(state.node(i)), state.n_nodes)
        m_next = np.array([r[0] for r in results]).reshape(state.n_nodes, 3)
        return m_next, MeshDiagnostics.from_steps([r[1] for r in results])


def _raise_on_status(status: np.ndarray):
    bad = np.flatnonzero(status != STATUS_OK)
    if bad.size:
        raise NumericalInstabilityError(
            f"linear solve produced non-finite output at {bad.size} node(s), "
            f"first at node {bad[0]}")


INTEGRATORS = {
    "yang": YangIntegrator,
    "cayley": CayleyIntegrator,
}


def create_integrator(name: str, config: StepConfig, use_fast: bool = True,
                      n_workers: Optional[int] = None) -> Integrator:
    """Create an integrator by name ("yang" or "cayley")."""
    if name not in INTEGRATORS:
        raise InvalidArgumentError(f"Unknown integrator: {name}")
    logger.debug("Using %s integrator (%s backend)", name, "numba" if use_fast else "python")
    return INTEGRATORS[name](config, use_fast=use_fast, n_workers=n_workers)
