"""Core data structures, kernels and reference field terms."""

from .errors import (
    MagstepError, InvalidArgumentError, NumericalInstabilityError, NonConvergenceError
)
from .mesh_state import NodeState, MeshState, StepDiagnostics, MeshDiagnostics
from .fast_ops import check_numba_availability
from .fields import EffectiveField, ZeemanTerm, UniaxialAnisotropyTerm

__all__ = [
    "MagstepError", "InvalidArgumentError", "NumericalInstabilityError", "NonConvergenceError",
    "NodeState", "MeshState", "StepDiagnostics", "MeshDiagnostics",
    "check_numba_availability",
    "EffectiveField", "ZeemanTerm", "UniaxialAnisotropyTerm"
]
