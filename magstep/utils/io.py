"""Input/output utilities for mesh states and simulation results."""

import numpy as np
import h5py
from typing import Dict, Any
from pathlib import Path

from ..core.errors import InvalidArgumentError
from ..core.mesh_state import MeshState

STATE_ARRAYS = ("m", "m_old", "H", "H_old")
FORMATS = ("npz", "hdf5")


def _detect_format(filename: str, format: str) -> str:
    """Resolve "auto" from the file suffix and reject unknown formats."""
    if format == "auto":
        suffix = Path(filename).suffix
        if suffix in [".h5", ".hdf5"]:
            return "hdf5"
        elif suffix == ".npz":
            return "npz"
        raise InvalidArgumentError(f"Cannot determine format from filename: {filename}")
    if format not in FORMATS:
        raise InvalidArgumentError(f"Unknown format: {format}")
    return format


def save_state(filename: str, state: MeshState, format: str = "auto"):
    """
    Save a mesh state (both buffers) so a run can be resumed.

    Args:
        filename: Output filename
        state: Mesh state to save
        format: File format ("auto", "npz", "hdf5")
    """
    format = _detect_format(filename, format)
    arrays = {name: np.asarray(getattr(state, name)) for name in STATE_ARRAYS}
    if state.volumes is not None:
        arrays["volumes"] = np.asarray(state.volumes)

    if format == "npz":
        np.savez(filename, **arrays)
    else:
        with h5py.File(filename, 'w') as f:
            for key, value in arrays.items():
                f.create_dataset(key, data=value)
            f.attrs['n_nodes'] = state.n_nodes


def load_state(filename: str, format: str = "auto") -> MeshState:
    """
    Load a mesh state written by ``save_state``.

    Args:
        filename: Input filename
        format: File format ("auto", "npz", "hdf5")

    Returns:
        MeshState
    """
    format = _detect_format(filename, format)

    if format == "npz":
        with np.load(filename) as data:
            arrays = {key: data[key] for key in data.files}
    else:
        with h5py.File(filename, 'r') as f:
            arrays = {key: f[key][:] for key in f.keys()}

    missing = [name for name in STATE_ARRAYS if name not in arrays]
    if missing:
        raise InvalidArgumentError(f"{filename} is missing arrays: {missing}")

    return MeshState(arrays["m"], arrays["H"], m_old=arrays["m_old"],
                     H_old=arrays["H_old"], volumes=arrays.get("volumes"))


def _flatten(results: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dicts become ``key_subkey`` entries (npz has no groups)."""
    flat = {}
    for key, value in results.items():
        if isinstance(value, dict):
            for subkey, subvalue in value.items():
                flat[f"{key}_{subkey}"] = subvalue
        else:
            flat[key] = value
    return flat


def _write_hdf5_entry(group, key, value):
    if isinstance(value, dict):
        subgroup = group.create_group(key)
        for subkey, subvalue in value.items():
            _write_hdf5_entry(subgroup, subkey, subvalue)
    elif isinstance(value, np.ndarray):
        group.create_dataset(key, data=value)
    else:
        group.attrs[key] = value


def _read_hdf5_group(group) -> Dict[str, Any]:
    data = dict(group.attrs)
    for key, item in group.items():
        if isinstance(item, h5py.Group):
            data[key] = _read_hdf5_group(item)
        else:
            data[key] = item[()]
    return data


def save_simulation_results(
    filename: str,
    results: Dict[str, Any],
    format: str = "auto"
):
    """
    Save a results dictionary, e.g. from ``LLGSolver.run``.

    Arrays become datasets; scalars and strings become attributes. Nested
    dicts become hdf5 groups, or ``key_subkey`` entries in npz files.

    Args:
        filename: Output filename
        results: Results dictionary
        format: File format ("auto", "npz", "hdf5")
    """
    format = _detect_format(filename, format)

    if format == "hdf5":
        with h5py.File(filename, 'w') as f:
            for key, value in results.items():
                _write_hdf5_entry(f, key, value)
    else:
        np.savez_compressed(filename, **_flatten(results))


def load_simulation_results(
    filename: str,
    format: str = "auto"
) -> Dict[str, Any]:
    """
    Load a results dictionary written by ``save_simulation_results``.

    Args:
        filename: Input filename
        format: File format ("auto", "npz", "hdf5")

    Returns:
        Results dictionary
    """
    format = _detect_format(filename, format)

    if format == "hdf5":
        with h5py.File(filename, 'r') as f:
            return _read_hdf5_group(f)

    with np.load(filename) as data:
        return {key: data[key] for key in data.files}
