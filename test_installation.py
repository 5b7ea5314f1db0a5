#!/usr/bin/env python3
"""
Verify the magstep installation and its dependencies.
Run this after setting up your virtual environment.
"""

import importlib

import pytest


@pytest.mark.parametrize("module_name", ["numpy", "scipy", "numba", "tqdm", "h5py"])
def test_dependency_imports(module_name):
    importlib.import_module(module_name)


@pytest.mark.parametrize("module_name", [
    "magstep",
    "magstep.core.fast_ops",
    "magstep.core.fields",
    "magstep.dynamics.integrators",
    "magstep.dynamics.llg_solver",
    "magstep.utils.io",
    "magstep.cli",
])
def test_package_modules_import(module_name):
    importlib.import_module(module_name)


def test_numba_available():
    import magstep

    available, msg = magstep.check_numba_availability()
    assert available, msg
    assert "threads" in msg


def test_version():
    import magstep

    assert magstep.__version__ == "0.1.0"


def main():
    print("magstep Installation Test")
    print("=" * 40)
    import magstep

    print(f"Version: {magstep.__version__}")
    available, msg = magstep.check_numba_availability()
    print(f"Numba: {msg}")

    m_next, diag = magstep.yang_step([1, 0, 0], [1, 0, 0], [0, 1, 0], [0, 1, 0], dt=0.1, damp=0.1)
    print(f"Single step: m = {m_next}, iterations = {diag.iterations}, "
          f"converged = {diag.converged}")


if __name__ == "__main__":
    main()
