"""Utility functions and helpers."""

from .constants import PHYSICAL_CONSTANTS
from .io import save_state, load_state, save_simulation_results, load_simulation_results
from .logging_config import setup_logging
from .random import random_magnetization, tilted_magnetization

__all__ = [
    "PHYSICAL_CONSTANTS",
    "save_state",
    "load_state",
    "save_simulation_results",
    "load_simulation_results",
    "setup_logging",
    "random_magnetization",
    "tilted_magnetization"
]
