"""
Tests for the mesh driver: advance_step backends and LLGSolver.
"""

import logging

import numpy as np
import pytest

from magstep import (
    EffectiveField, InvalidArgumentError, LLGSolver, MeshState,
    NonConvergenceError, advance_step
)
from magstep.dynamics.llg_solver import average_magnetization, field_energy, torque
from magstep.utils.io import load_simulation_results
from magstep.utils.random import random_magnetization, tilted_magnetization


def _random_state(n_nodes=50, seed=0):
    rng = np.random.default_rng(seed)
    m_old = random_magnetization(n_nodes, seed=seed)
    m = tilted_magnetization(m_old, 0.05, seed=seed + 1)
    H_old = rng.normal(size=(n_nodes, 3))
    H = H_old + 0.1 * rng.normal(size=(n_nodes, 3))
    return MeshState(m, H, m_old=m_old, H_old=H_old)


class CountingField:
    """Uniform field that counts its evaluations."""

    def __init__(self, field):
        self.heff = EffectiveField().add_zeeman(field)
        self.calls = 0

    def __call__(self, m):
        self.calls += 1
        return self.heff(m)


# --- advance_step ------------------------------------------------------------

def test_fast_and_python_backends_agree():
    state = _random_state()
    # Tiny tolerance runs both correctors to their fixed point
    kwargs = dict(dt=0.01, damp=0.5, tolerance=1e-300, max_attempts=10)
    m_fast, diag_fast = advance_step(state, use_fast=True, **kwargs)
    m_py, diag_py = advance_step(state, use_fast=False, **kwargs)
    np.testing.assert_allclose(m_fast, m_py, atol=1e-12)
    assert diag_fast.max_iterations <= 10
    assert diag_py.max_iterations <= 10
    np.testing.assert_allclose(np.linalg.norm(m_fast, axis=1), 1.0, atol=1e-12)


def test_result_independent_of_worker_count():
    state = _random_state(n_nodes=20, seed=5)
    m_1, _ = advance_step(state, dt=0.01, damp=0.2, use_fast=False, n_workers=1)
    m_4, _ = advance_step(state, dt=0.01, damp=0.2, use_fast=False, n_workers=4)
    np.testing.assert_array_equal(m_1, m_4)


@pytest.mark.parametrize("use_fast", [True, False])
def test_result_independent_of_node_order(use_fast):
    state = _random_state(n_nodes=30, seed=9)
    perm = np.random.default_rng(2).permutation(state.n_nodes)
    shuffled = MeshState(state.m[perm], state.H[perm],
                         m_old=state.m_old[perm], H_old=state.H_old[perm])

    m_ref, diag_ref = advance_step(state, dt=0.02, damp=0.1, use_fast=use_fast)
    m_shuf, diag_shuf = advance_step(shuffled, dt=0.02, damp=0.1, use_fast=use_fast)
    np.testing.assert_allclose(m_shuf, m_ref[perm], rtol=0, atol=1e-15)
    np.testing.assert_allclose(diag_shuf.residuals, diag_ref.residuals[perm], rtol=0, atol=1e-15)


def test_advance_step_does_not_touch_state():
    state = _random_state(n_nodes=10)
    before = [state.m.copy(), state.m_old.copy(), state.H.copy(), state.H_old.copy()]
    advance_step(state, dt=0.05, damp=0.3)
    for saved, arr in zip(before, (state.m, state.m_old, state.H, state.H_old)):
        np.testing.assert_array_equal(saved, arr)


def test_cayley_integrator_on_mesh():
    state = _random_state(n_nodes=8)
    m_fast, diag = advance_step(state, dt=0.05, damp=0.3, integrator="cayley")
    m_py, _ = advance_step(state, dt=0.05, damp=0.3, integrator="cayley", use_fast=False)
    np.testing.assert_allclose(m_fast, m_py, atol=1e-12)
    assert diag.all_converged
    assert diag.max_iterations == 1


def test_unknown_integrator():
    with pytest.raises(InvalidArgumentError, match="Unknown integrator"):
        advance_step(_random_state(n_nodes=2), dt=0.1, integrator="rk4")


def test_pathological_node_on_mesh_is_reported():
    m = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    H = np.array([[0.0, 1e8, 0.0], [0.0, 0.0, 1.0]])
    m_next, diag = advance_step(MeshState(m, H), dt=0.1, damp=0.1, max_attempts=1)
    assert np.all(np.isfinite(m_next))
    assert not diag.converged[0]
    assert diag.converged[1]
    assert diag.n_unconverged == 1
    assert not diag.all_converged


# --- LLGSolver ---------------------------------------------------------------

def test_field_evaluated_once_per_step():
    heff = CountingField([0.0, 0.0, 1.0])
    state = MeshState.uniform(5, [1.0, 0.0, 0.0], heff)
    assert heff.calls == 1

    llg = LLGSolver(state, heff, dt=0.01, damping=0.1)
    for _ in range(3):
        llg.step()
    assert heff.calls == 4
    assert llg.step_count == 3
    assert llg.time == pytest.approx(0.03)


def test_step_swaps_buffers():
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(3, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.01, damping=0.1)
    m_before = state.m.copy()
    m_new = llg.step()
    np.testing.assert_array_equal(llg.state.m_old, m_before)
    np.testing.assert_array_equal(llg.state.m, m_new)
    np.testing.assert_array_equal(state.m, m_before)


def test_strict_mode_raises_and_keeps_state():
    heff = EffectiveField().add_zeeman([0.0, 1e8, 0.0])
    state = MeshState.uniform(2, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.1, damping=0.1, max_attempts=1, strict=True)
    with pytest.raises(NonConvergenceError) as excinfo:
        llg.step()
    assert excinfo.value.diagnostics.n_unconverged == 2
    assert llg.state is state
    assert llg.step_count == 0


def test_non_strict_mode_logs_and_continues(caplog):
    heff = EffectiveField().add_zeeman([0.0, 1e8, 0.0])
    state = MeshState.uniform(2, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.1, damping=0.1, max_attempts=1)
    with caplog.at_level(logging.WARNING, logger="magstep"):
        llg.step()
    assert "did not converge" in caplog.text
    assert llg.step_count == 1
    assert np.all(np.isfinite(llg.state.m))


def test_bad_field_evaluator_output():
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(4, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, lambda m: np.zeros((3, 3)), dt=0.01)
    with pytest.raises(InvalidArgumentError, match="field evaluator"):
        llg.step()


def test_invalid_solver_configuration():
    heff = EffectiveField()
    state = MeshState.uniform(1, [1.0, 0.0, 0.0], heff)
    with pytest.raises(InvalidArgumentError, match="dt"):
        LLGSolver(state, heff, dt=-0.01)
    with pytest.raises(InvalidArgumentError, match="max_attempts"):
        LLGSolver(state, heff, dt=0.01, max_attempts=0)


def test_run_fixed_time_records_series():
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(4, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.1, damping=0.1, energy_fn=heff.energy)
    results = llg.run(total_time=1.0, verbose=False)

    assert results['steps'] == 10
    assert results['times'].shape == (11,)
    assert results['magnetizations'].shape == (11, 3)
    assert results['torques'].shape == (11,)
    assert results['times'][-1] == pytest.approx(1.0)
    np.testing.assert_allclose(np.linalg.norm(results['final_magnetization'], axis=1),
                               1.0, atol=1e-12)
    # Damping lowers the Zeeman energy
    assert results['energies'][-1] < results['energies'][0]


def test_relaxation_aligns_with_field():
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(3, [1.0, 0.0, 1.0], heff)
    llg = LLGSolver(state, heff, dt=0.05, damping=0.5, max_attempts=50)
    results = llg.relax(max_torque=1e-3, max_steps=5000, verbose=False)

    assert results['converged']
    assert results['final_average_magnetization'][2] > 0.99
    assert torque(llg.state.m, llg.state.H) < 1e-3


def test_callback_stops_between_steps():
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(2, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.01)
    results = llg.run(total_time=1.0, callback=lambda solver, step: step == 2, verbose=False)
    assert results['steps'] == 3
    assert llg.step_count == 3


def test_save_trajectory_round_trip(tmp_path):
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(2, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.01, damping=0.2)
    llg.run(total_time=0.05, verbose=False)

    npz_file = tmp_path / "traj.npz"
    llg.save_trajectory(str(npz_file))
    data = load_simulation_results(str(npz_file))
    assert data['magnetizations'].shape == (6, 3)
    assert float(data['parameters_damping']) == pytest.approx(0.2)

    h5_file = tmp_path / "traj.h5"
    llg.save_trajectory(str(h5_file), format="hdf5")
    data = load_simulation_results(str(h5_file))
    np.testing.assert_allclose(data['final_magnetization'], llg.state.m)
    assert data['parameters']['half_step'] == "yang"


# --- diagnostics -------------------------------------------------------------

def test_average_magnetization_weights():
    m = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    np.testing.assert_allclose(average_magnetization(m), [0.5, 0.5, 0.0])
    np.testing.assert_allclose(average_magnetization(m, np.array([3.0, 1.0])),
                               [0.75, 0.25, 0.0])


def test_torque_and_energy():
    m = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    H = np.array([[0.0, 2.0, 0.0], [0.0, 0.0, 2.0]])
    assert torque(m, H) == pytest.approx(2.0)
    assert field_energy(m, H) == pytest.approx(-0.5)
    assert field_energy(m, H, np.array([1.0, 0.0])) == pytest.approx(0.0)


def test_run_always_records_final_state():
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(2, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.1, damping=0.1)
    results = llg.run(total_time=1.0, sampling_interval=3, verbose=False)

    assert results['steps'] == 10
    np.testing.assert_allclose(results['times'], [0.0, 0.3, 0.6, 0.9, 1.0])
    np.testing.assert_allclose(results['magnetizations'][-1],
                               results['final_average_magnetization'])
    assert len(results['delta_m']) == len(results['times'])


def test_run_with_dividing_interval_records_once_per_sample():
    heff = EffectiveField().add_zeeman([0.0, 0.0, 1.0])
    state = MeshState.uniform(2, [1.0, 0.0, 0.0], heff)
    llg = LLGSolver(state, heff, dt=0.1, damping=0.1)
    results = llg.run(total_time=1.0, sampling_interval=5, verbose=False)
    np.testing.assert_allclose(results['times'], [0.0, 0.5, 1.0])
