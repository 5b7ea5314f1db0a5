"""
magstep: norm-preserving time integration of the Landau-Lifshitz-Gilbert equation.

Advances per-node magnetization on a finite-element mesh with an implicit
Cayley step and the second-order predictor-corrector scheme of Yang et al.
(J. Comput. Phys. 2021), given an external effective-field evaluator.
"""

__version__ = "0.1.0"

from . import core
from . import dynamics
from . import utils

from .core import (
    MeshState, NodeState, StepDiagnostics, MeshDiagnostics, EffectiveField,
    MagstepError, InvalidArgumentError, NumericalInstabilityError, NonConvergenceError,
    check_numba_availability
)
from .dynamics import (
    StepConfig, LLGSolver, advance_step, rotation_step, extrapolate_field, yang_step
)
from .utils import setup_logging

__all__ = [
    "MeshState",
    "NodeState",
    "StepDiagnostics",
    "MeshDiagnostics",
    "EffectiveField",
    "MagstepError",
    "InvalidArgumentError",
    "NumericalInstabilityError",
    "NonConvergenceError",
    "check_numba_availability",
    "StepConfig",
    "LLGSolver",
    "advance_step",
    "rotation_step",
    "extrapolate_field",
    "yang_step",
    "setup_logging",
    "core",
    "dynamics",
    "utils"
]
