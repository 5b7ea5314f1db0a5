#!/usr/bin/env python3
"""
Benchmark magstep time-stepping throughput for growing mesh sizes.
"""

import time

import numba
import numpy as np

from magstep import EffectiveField, LLGSolver, MeshState
from magstep.core.fast_ops import check_numba_availability
from magstep.utils.random import tilted_magnetization


def create_system(n_nodes, seed=0):
    """Uniform field plus easy-axis anisotropy on a slightly tilted state."""
    heff = EffectiveField().add_zeeman([0.0, 0.05, 0.0]).add_anisotropy(0.1, [1.0, 0.0, 0.0])
    m = tilted_magnetization(np.tile([1.0, 0.0, 0.0], (n_nodes, 1)), 0.1, seed=seed)
    return MeshState(m, heff(m)), heff


def benchmark_steps(n_nodes, n_steps=200, use_fast=True):
    """Time ``n_steps`` LLG steps on ``n_nodes`` nodes."""
    state, heff = create_system(n_nodes)
    llg = LLGSolver(state, heff, dt=0.01, damping=0.1, use_fast=use_fast)

    start_time = time.time()
    results = llg.run(total_time=n_steps * 0.01, sampling_interval=n_steps, verbose=False)
    total_time = time.time() - start_time

    return {
        'nodes': n_nodes,
        'steps_per_second': results['steps'] / total_time,
        'node_updates_per_second': results['steps'] * n_nodes / total_time,
        'unconverged_steps': int(np.count_nonzero(results['unconverged']))
    }


def benchmark_threads(n_nodes=100_000, n_steps=50):
    """Scaling of the Numba kernels with the thread count."""
    print(f"\nThread scaling ({n_nodes} nodes)")
    print("=" * 60)
    max_threads = numba.config.NUMBA_NUM_THREADS
    for n_threads in sorted({1, 2, 4, max_threads}):
        if n_threads > max_threads:
            continue
        numba.set_num_threads(n_threads)
        r = benchmark_steps(n_nodes, n_steps)
        print(f"  {n_threads:>3} threads: {r['node_updates_per_second']/1e6:8.2f} M node-steps/s")
    numba.set_num_threads(max_threads)


def main():
    """Run speed benchmark."""
    print("magstep Performance Benchmark")
    print("=" * 60)

    numba_available, message = check_numba_availability()
    print(f"Numba status: {message}")

    # Warm up the JIT
    benchmark_steps(10, n_steps=2)

    print(f"\n{'Nodes':<10} {'Steps/s':<12} {'M node-steps/s':<16} {'Unconverged':<12}")
    print("-" * 52)
    for n_nodes in [1_000, 10_000, 100_000]:
        r = benchmark_steps(n_nodes)
        print(f"{r['nodes']:<10} {r['steps_per_second']:<12.1f} "
              f"{r['node_updates_per_second']/1e6:<16.2f} {r['unconverged_steps']:<12}")

    r = benchmark_steps(1_000, n_steps=20, use_fast=False)
    print(f"\nPython backend, 1000 nodes: {r['steps_per_second']:.2f} steps/s")

    benchmark_threads()


if __name__ == "__main__":
    main()
