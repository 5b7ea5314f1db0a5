#!/usr/bin/env python3
"""
Numba Performance Demonstration for magstep.

Compares the parallel Numba kernels with the per-node Python backend on
random magnetization states of increasing size.
"""

import time

import numpy as np

from magstep import MeshState, advance_step, check_numba_availability
from magstep.utils.random import random_magnetization, tilted_magnetization


def make_state(n_nodes, seed=42):
    rng = np.random.default_rng(seed)
    m_old = random_magnetization(n_nodes, seed=seed)
    m = tilted_magnetization(m_old, 0.01, seed=seed + 1)
    H_old = rng.normal(size=(n_nodes, 3))
    H = H_old + 0.01 * rng.normal(size=(n_nodes, 3))
    return MeshState(m, H, m_old=m_old, H_old=H_old)


def time_step(state, n_iterations, **kwargs):
    start_time = time.time()
    for _ in range(n_iterations):
        m_next, diagnostics = advance_step(state, dt=0.01, damp=0.1, **kwargs)
    return (time.time() - start_time) / n_iterations, m_next, diagnostics


def main():
    """Run Numba performance demonstration."""

    print("magstep: Numba Performance Demonstration")
    print("=" * 50)

    numba_available, message = check_numba_availability()
    print(f"Numba status: {message}")

    if not numba_available:
        print("Numba kernels failed to compile; check the Numba installation.")
        return

    # Compile outside the timings
    advance_step(make_state(2), dt=0.01)

    print(f"\n{'Nodes':>8} {'Numba (ms)':>12} {'Python (ms)':>12} {'Speedup':>8} {'Max diff':>10}")
    print("-" * 56)

    for n_nodes in [100, 1_000, 10_000]:
        state = make_state(n_nodes)
        t_fast, m_fast, diag = time_step(state, 10, use_fast=True)
        t_slow, m_slow, _ = time_step(state, 1, use_fast=False)
        max_diff = np.max(np.abs(m_fast - m_slow))
        print(f"{n_nodes:>8} {t_fast*1e3:>12.3f} {t_slow*1e3:>12.1f} "
              f"{t_slow/t_fast:>7.0f}x {max_diff:>10.1e}")

    print(f"\nCorrector iterations (last run): mean {diag.iterations.mean():.2f}, "
          f"max {diag.max_iterations}")


if __name__ == "__main__":
    main()
