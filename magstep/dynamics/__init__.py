"""Time integration of the LLG equation."""

from .integrators import (
    StepConfig, rotation_step, extrapolate_field, yang_step,
    YangIntegrator, CayleyIntegrator, create_integrator
)
from .llg_solver import LLGSolver, advance_step

__all__ = [
    "StepConfig", "rotation_step", "extrapolate_field", "yang_step",
    "YangIntegrator", "CayleyIntegrator", "create_integrator",
    "LLGSolver", "advance_step"
]
