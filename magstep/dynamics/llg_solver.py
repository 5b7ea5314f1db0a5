"""
Landau-Lifshitz-Gilbert (LLG) time-stepping driver for a meshed magnetic body.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from ..core.errors import InvalidArgumentError, NonConvergenceError
from ..core.fast_ops import torque_magnitudes, weighted_average
from ..core.mesh_state import MeshDiagnostics, MeshState
from ..utils.io import save_simulation_results
from .integrators import StepConfig, create_integrator

logger = logging.getLogger(__name__)

FieldEvaluator = Callable[[np.ndarray], np.ndarray]


def average_magnetization(m: np.ndarray, volumes: Optional[np.ndarray] = None) -> np.ndarray:
    """Mesh-averaged magnetization <m>, weighted by node volumes if given."""
    m = np.ascontiguousarray(m, dtype=float)
    weights = np.ones(m.shape[0]) if volumes is None else np.ascontiguousarray(volumes, dtype=float)
    return weighted_average(m, weights)


def torque(m: np.ndarray, H: np.ndarray) -> float:
    """Largest |m x H| over all nodes; zero at equilibrium."""
    return float(np.max(torque_magnitudes(np.ascontiguousarray(m, dtype=float),
                                          np.ascontiguousarray(H, dtype=float))))


def field_energy(m: np.ndarray, H: np.ndarray, volumes: Optional[np.ndarray] = None) -> float:
    """
    Energy density estimate -1/2 <m . H>.

    Exact for fields linear in m (exchange, demagnetizing, anisotropy); the
    Zeeman term is counted at half weight. Pass ``energy_fn`` to the solver
    when the field evaluator can report its own energy.
    """
    density = -0.5 * np.einsum('ij,ij->i', m, H)
    if volumes is None:
        return float(np.mean(density))
    return float(np.sum(volumes * density) / np.sum(volumes))


def advance_step(
    state: MeshState,
    dt: float,
    damp: float = 1.0,
    tolerance: float = 1e-5,
    max_attempts: int = 10,
    half_step: str = "yang",
    renormalize: bool = True,
    integrator: str = "yang",
    use_fast: bool = True,
    n_workers: Optional[int] = None
) -> Tuple[np.ndarray, MeshDiagnostics]:
    """
    Advance every node of ``state`` by one step.

    Each node is updated independently from its own (m, m_old, H, H_old);
    the result does not depend on node order or worker count.

    Returns:
        Tuple of (magnetization at step n+1, per-node diagnostics)
    """
    config = StepConfig(dt, damp, tolerance, max_attempts, half_step, renormalize)
    stepper = create_integrator(integrator, config, use_fast=use_fast, n_workers=n_workers)
    return stepper.step_mesh(state)


class LLGSolver:
    """
    Time-stepping driver for the LLG equation.

    Each ``step`` advances all nodes with the configured integrator, then
    evaluates the effective field once on the new magnetization and swaps
    the double buffer. Time and fields are in reduced units
    (see ``magstep.utils.constants``).
    """

    def __init__(
        self,
        state: MeshState,
        field_evaluator: FieldEvaluator,
        dt: float,
        damping: float = 1.0,
        tolerance: float = 1e-5,
        max_attempts: int = 10,
        integrator: str = "yang",
        half_step: str = "yang",
        renormalize: bool = True,
        strict: bool = False,
        energy_fn: Optional[Callable] = None,
        use_fast: bool = True,
        n_workers: Optional[int] = None
    ):
        """
        Initialize LLG solver.

        Args:
            state: Initial mesh state
            field_evaluator: Callable mapping (n_nodes, 3) magnetization to
                (n_nodes, 3) effective field
            dt: Time step (reduced units)
            damping: Gilbert damping parameter
            tolerance: Corrector convergence threshold
            max_attempts: Corrector iteration cap
            integrator: Integration method ("yang", "cayley")
            half_step: Half-step rule for the Yang corrector ("yang", "midpoint")
            renormalize: Normalize corrector iterates to unit length
            strict: Raise NonConvergenceError instead of logging a warning
            energy_fn: Optional ``energy_fn(m, H, weights) -> float``
            use_fast: Whether to use the Numba kernels
            n_workers: Thread count for the Python backend
        """
        self.config = StepConfig(
            dt=dt, damp=damping, tolerance=tolerance, max_attempts=max_attempts,
            half_step=half_step, renormalize=renormalize, strict=strict
        ).validate()
        self.state = state
        self.field_evaluator = field_evaluator
        self.energy_fn = energy_fn
        self.integrator = create_integrator(integrator, self.config, use_fast=use_fast,
                                            n_workers=n_workers)
        self.last_diagnostics: Optional[MeshDiagnostics] = None

        # Current state
        self.time = 0.0
        self.step_count = 0

        # Data storage
        self.time_history: List[float] = []
        self.energy_history: List[float] = []
        self.magnetization_history: List[np.ndarray] = []
        self.torque_history: List[float] = []
        self.delta_m_history: List[float] = []
        self.unconverged_history: List[int] = []

        self.timing_info = {}

    @property
    def dt(self) -> float:
        return self.config.dt

    @property
    def damping(self) -> float:
        return self.config.damp

    def calculate_effective_field(self, m: np.ndarray) -> np.ndarray:
        """Evaluate the external field evaluator and check its output."""
        H = np.asarray(self.field_evaluator(m), dtype=float)
        if H.shape != m.shape:
            raise InvalidArgumentError(
                f"field evaluator returned shape {H.shape}, expected {m.shape}")
        if not np.all(np.isfinite(H)):
            raise InvalidArgumentError("field evaluator returned non-finite values")
        return H

    def step(self) -> np.ndarray:
        """
        Perform one global time step.

        Returns:
            Magnetization at the new step
        """
        m_new, diagnostics = self.integrator.step_mesh(self.state)
        self.last_diagnostics = diagnostics

        if not diagnostics.all_converged:
            message = (f"step {self.step_count + 1}: corrector did not converge at "
                       f"{diagnostics.n_unconverged}/{diagnostics.n_nodes} nodes "
                       f"(max residual {diagnostics.max_residual:.3e}, "
                       f"{diagnostics.max_iterations} iterations)")
            if self.config.strict:
                raise NonConvergenceError(message, diagnostics)
            logger.warning(message)

        H_new = self.calculate_effective_field(m_new)
        self.state = self.state.advance(m_new, H_new)
        self.time += self.config.dt
        self.step_count += 1

        return self.state.m

    def run(
        self,
        total_time: Optional[float] = None,
        max_steps: int = 15_000,
        max_torque: float = 0.0,
        sampling_interval: int = 1,
        callback: Optional[Callable] = None,
        verbose: bool = True
    ) -> Dict[str, Any]:
        """
        Run LLG dynamics.

        With ``total_time`` set, runs ``round(total_time / dt)`` steps.
        Without it, runs until the torque drops below ``max_torque`` or
        ``max_steps`` is reached. Stopping only ever happens between steps.

        Args:
            total_time: Simulated time (reduced units), or None for relaxation
            max_steps: Step cap when ``total_time`` is None
            max_torque: Relaxation criterion on max |m x H|
            sampling_interval: Steps between recorded samples (the final
                state is always recorded)
            callback: Optional ``callback(solver, step)``; returning True stops the run
            verbose: Whether to show progress

        Returns:
            Dictionary with simulation results
        """
        if sampling_interval < 1:
            raise InvalidArgumentError(f"sampling_interval must be >= 1, got {sampling_interval}")
        if total_time is not None and np.isfinite(total_time):
            if total_time <= 0:
                raise InvalidArgumentError(f"total_time must be positive, got {total_time}")
            n_steps = max(1, int(round(total_time / self.config.dt)))
            relax = False
        else:
            n_steps = max_steps
            relax = True

        start_time = time.time()
        pbar = tqdm(total=n_steps, desc="LLG Steps", disable=not verbose)

        self._clear_history()
        self._record_data(self.state.m)

        converged = False
        interrupted = False
        steps_done = 0
        m_prev = self.state.m
        last_recorded = 0
        try:
            for step in range(n_steps):
                m_before = self.state.m
                self.step()
                steps_done += 1
                m_prev = m_before

                if (step + 1) % sampling_interval == 0:
                    self._record_data(m_prev)
                    last_recorded = steps_done

                pbar.update(1)

                if relax and torque(self.state.m, self.state.H) < max_torque:
                    converged = True
                    break
                if callback is not None and callback(self, step):
                    logger.info("Run stopped by callback after %d steps", steps_done)
                    break
        except KeyboardInterrupt:
            interrupted = True
            logger.warning("Run interrupted after %d steps", steps_done)
        finally:
            pbar.close()

        # Final state is always part of the series
        if steps_done != last_recorded:
            self._record_data(m_prev)

        total_sim_time = time.time() - start_time
        self.timing_info = {
            'total_time': total_sim_time,
            'time_per_step': total_sim_time / max(steps_done, 1),
            'steps_per_second': steps_done / total_sim_time if total_sim_time > 0 else 0.0,
            'simulated_time': self.time
        }

        if relax:
            logger.info("Relaxation %s after %d steps (torque %.3e)",
                        "converged" if converged else "stopped", steps_done,
                        torque(self.state.m, self.state.H))

        return {
            'times': np.array(self.time_history),
            'energies': np.array(self.energy_history),
            'magnetizations': np.array(self.magnetization_history),
            'torques': np.array(self.torque_history),
            'delta_m': np.array(self.delta_m_history),
            'unconverged': np.array(self.unconverged_history),
            'final_magnetization': np.array(self.state.m),
            'final_average_magnetization': average_magnetization(self.state.m, self.state.volumes),
            'final_energy': self._energy(),
            'converged': converged,
            'interrupted': interrupted,
            'steps': steps_done,
            'timing': self.timing_info
        }

    def relax(self, max_torque: float = 1e-4, max_steps: int = 15_000,
              verbose: bool = True) -> Dict[str, Any]:
        """Run until max |m x H| < ``max_torque`` or ``max_steps`` steps."""
        return self.run(total_time=None, max_steps=max_steps, max_torque=max_torque,
                        verbose=verbose)

    def _energy(self) -> float:
        state = self.state
        if self.energy_fn is not None:
            return float(self.energy_fn(state.m, state.H, state.weights))
        return field_energy(state.m, state.H, state.volumes)

    def _record_data(self, m_prev: np.ndarray):
        """Record current state data."""
        state = self.state
        m_avg = average_magnetization(state.m, state.volumes)
        m_avg_prev = average_magnetization(m_prev, state.volumes)

        self.time_history.append(self.time)
        self.energy_history.append(self._energy())
        self.magnetization_history.append(m_avg)
        self.torque_history.append(torque(state.m, state.H))
        self.delta_m_history.append(float(np.linalg.norm(m_avg - m_avg_prev)))
        if self.last_diagnostics is None:
            self.unconverged_history.append(0)
        else:
            self.unconverged_history.append(self.last_diagnostics.n_unconverged)

    def reset(self):
        """Reset time, step count and history (the mesh state is kept)."""
        self.time = 0.0
        self.step_count = 0
        self.last_diagnostics = None
        self._clear_history()

    def _clear_history(self):
        self.time_history.clear()
        self.energy_history.clear()
        self.magnetization_history.clear()
        self.torque_history.clear()
        self.delta_m_history.clear()
        self.unconverged_history.clear()
        self.timing_info = {}

    def save_trajectory(self, filename: str, format: str = "auto"):
        """Save the recorded series; the format follows the suffix unless given."""
        data = {
            'times': np.array(self.time_history),
            'energies': np.array(self.energy_history),
            'magnetizations': np.array(self.magnetization_history),
            'torques': np.array(self.torque_history),
            'delta_m': np.array(self.delta_m_history),
            'unconverged': np.array(self.unconverged_history),
            'final_magnetization': np.array(self.state.m),
            'parameters': {
                'dt': self.config.dt,
                'damping': self.config.damp,
                'tolerance': self.config.tolerance,
                'max_attempts': self.config.max_attempts,
                'half_step': self.config.half_step,
                'renormalize': self.config.renormalize
            }
        }
        save_simulation_results(filename, data, format=format)

    def __repr__(self) -> str:
        return (f"LLGSolver(damping={self.config.damp}, "
                f"dt={self.config.dt:.2e}, "
                f"n_nodes={self.state.n_nodes}, "
                f"steps={self.step_count})")
