"""
Local reference effective-field evaluators.

The integrator only needs a callable ``f(m) -> H`` on (n_nodes, 3) arrays.
Exchange and demagnetizing contributions come from the FEM/BEM side and are
not modelled here; these terms are purely local and serve macrospin runs,
examples and tests. Fields and energy densities are in reduced units
(field / Ms, energy / (mu_0 Ms^2)).
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import List

from .errors import InvalidArgumentError
from ..utils.constants import PHYSICAL_CONSTANTS


class FieldTerm(ABC):
    """A single local contribution to the effective field."""

    @abstractmethod
    def field(self, m: np.ndarray) -> np.ndarray:
        """Field at each node, shape (n_nodes, 3)."""

    @abstractmethod
    def energy_density(self, m: np.ndarray) -> np.ndarray:
        """Energy density at each node, shape (n_nodes,)."""


class ZeemanTerm(FieldTerm):
    """Uniform applied field."""

    def __init__(self, applied_field):
        applied_field = np.asarray(applied_field, dtype=float)
        if applied_field.shape != (3,) or not np.all(np.isfinite(applied_field)):
            raise InvalidArgumentError(
                f"applied_field must be a finite 3-vector, got {applied_field}")
        self.applied_field = applied_field

    def field(self, m):
        return np.broadcast_to(self.applied_field, m.shape).copy()

    def energy_density(self, m):
        return -(m @ self.applied_field)

    def __repr__(self):
        return f"ZeemanTerm({self.applied_field.tolist()})"


class UniaxialAnisotropyTerm(FieldTerm):
    """
    Uniaxial anisotropy H = strength (m . u) u.

    ``strength`` is the reduced anisotropy field 2 K / (mu_0 Ms^2).
    """

    def __init__(self, strength: float, axis=(1.0, 0.0, 0.0)):
        axis = np.asarray(axis, dtype=float)
        norm = np.linalg.norm(axis)
        if axis.shape != (3,) or not norm > 0:
            raise InvalidArgumentError(f"axis must be a non-zero 3-vector, got {axis}")
        self.strength = float(strength)
        self.axis = axis / norm

    @classmethod
    def from_material(cls, K: float, Ms: float, axis=(1.0, 0.0, 0.0)):
        """Build from an anisotropy constant K (J/m^3) and saturation Ms (A/m)."""
        if Ms <= 0:
            raise InvalidArgumentError(f"Ms must be positive, got {Ms}")
        mu_0 = PHYSICAL_CONSTANTS['mu_0']
        return cls(2.0 * K / (mu_0 * Ms**2), axis)

    def field(self, m):
        return self.strength * np.outer(m @ self.axis, self.axis)

    def energy_density(self, m):
        return -0.5 * self.strength * (m @ self.axis) ** 2

    def __repr__(self):
        return f"UniaxialAnisotropyTerm(strength={self.strength}, axis={self.axis.tolist()})"


class EffectiveField:
    """
    Sum of local field terms, usable as the solver's field evaluator.

    Example:
        >>> heff = EffectiveField().add_zeeman([0, 0.05, 0])
        >>> H = heff(m)
    """

    def __init__(self, terms: List[FieldTerm] = None):
        self.terms: List[FieldTerm] = list(terms) if terms else []

    def add_term(self, term: FieldTerm) -> "EffectiveField":
        self.terms.append(term)
        return self

    def add_zeeman(self, applied_field) -> "EffectiveField":
        return self.add_term(ZeemanTerm(applied_field))

    def add_anisotropy(self, strength: float, axis=(1.0, 0.0, 0.0)) -> "EffectiveField":
        return self.add_term(UniaxialAnisotropyTerm(strength, axis))

    def __call__(self, m: np.ndarray) -> np.ndarray:
        m = np.asarray(m, dtype=float)
        H = np.zeros_like(m)
        for term in self.terms:
            H += term.field(m)
        return H

    def energy(self, m: np.ndarray, H: np.ndarray = None, weights: np.ndarray = None) -> float:
        """Weighted mean energy density of the configuration."""
        m = np.asarray(m, dtype=float)
        density = np.zeros(m.shape[0])
        for term in self.terms:
            density += term.energy_density(m)
        if weights is None:
            return float(np.mean(density))
        return float(np.sum(weights * density) / np.sum(weights))

    def __repr__(self):
        return f"EffectiveField({self.terms})"
