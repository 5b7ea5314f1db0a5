"""
Command-line interface for magstep.
"""

import argparse
import logging
import sys

import numpy as np

from . import MeshState, LLGSolver, EffectiveField, MagstepError, yang_step
from .utils.logging_config import setup_logging
from .utils.random import tilted_magnetization


def _add_step_options(parser):
    parser.add_argument('-dt', '--timestep', type=float, default=0.01,
                        help='Time step in reduced units (default: 0.01)')
    parser.add_argument('-a', '--damping', type=float, default=0.1,
                        help='Gilbert damping parameter (default: 0.1)')
    parser.add_argument('--tolerance', type=float, default=1e-5,
                        help='Corrector convergence tolerance (default: 1e-5)')
    parser.add_argument('--max-attempts', type=int, default=10,
                        help='Corrector iteration cap (default: 10)')
    parser.add_argument('--half-step', default='yang', choices=['yang', 'midpoint'],
                        help='Half-step magnetization rule (default: yang)')
    parser.add_argument('--no-renormalize', action='store_true',
                        help='Do not normalize corrector iterates')


def _vector(text):
    try:
        values = [float(v) for v in text.split(',')]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected x,y,z, got {text!r}")
    if len(values) != 3:
        raise argparse.ArgumentTypeError(f"expected 3 components, got {text!r}")
    return np.array(values)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='magstep',
        description="magstep: LLG time integration with the Yang predictor-corrector",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: WARNING)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Uncoupled nodes in a uniform field
    macro_parser = subparsers.add_parser('macrospin', help='Run uncoupled nodes in an applied field')
    macro_parser.add_argument('-n', '--nodes', type=int, default=1,
                              help='Number of nodes (default: 1)')
    macro_parser.add_argument('-t', '--time', type=float, default=10.0,
                              help='Simulated time in reduced units (default: 10)')
    macro_parser.add_argument('--field', type=_vector, default=np.array([0.0, 0.05, 0.0]),
                              help='Applied field x,y,z in units of Ms (default: 0,0.05,0)')
    macro_parser.add_argument('--anisotropy', type=float, default=0.0,
                              help='Reduced uniaxial anisotropy field (default: 0)')
    macro_parser.add_argument('--axis', type=_vector, default=np.array([1.0, 0.0, 0.0]),
                              help='Anisotropy easy axis x,y,z (default: 1,0,0)')
    macro_parser.add_argument('--m0', type=_vector, default=np.array([1.0, 0.0, 0.0]),
                              help='Initial magnetization direction (default: 1,0,0)')
    macro_parser.add_argument('--tilt', type=float, default=0.0,
                              help='Random tilt amplitude added to the initial state (default: 0)')
    macro_parser.add_argument('--seed', type=int, default=None,
                              help='Random seed for --tilt')
    macro_parser.add_argument('--strict', action='store_true',
                              help='Abort when the corrector does not converge')
    macro_parser.add_argument('--python', action='store_true',
                              help='Use the per-node Python backend instead of Numba')
    macro_parser.add_argument('-o', '--output', default='macrospin_results',
                              help='Output prefix (default: macrospin_results)')
    _add_step_options(macro_parser)

    # Single node, single step
    step_parser = subparsers.add_parser('step', help='Advance one node by one step')
    step_parser.add_argument('--m', type=_vector, required=True, help='m at step n (x,y,z)')
    step_parser.add_argument('--m-old', type=_vector, default=None,
                             help='m at step n-1 (default: same as --m)')
    step_parser.add_argument('--H', type=_vector, required=True, help='H at step n (x,y,z)')
    step_parser.add_argument('--H-old', type=_vector, default=None,
                             help='H at step n-1 (default: same as --H)')
    _add_step_options(step_parser)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(getattr(logging, args.log_level))

    try:
        if args.command == 'macrospin':
            run_macrospin(args)
        elif args.command == 'step':
            run_single_step(args)
    except MagstepError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def run_macrospin(args):
    """Run uncoupled nodes in a uniform applied field."""
    print(f"Running macrospin dynamics...")
    print(f"Nodes: {args.nodes}")
    print(f"Time: {args.time}")
    print(f"Timestep: {args.timestep}")
    print(f"Damping: {args.damping}")

    heff = EffectiveField().add_zeeman(args.field)
    if args.anisotropy:
        heff.add_anisotropy(args.anisotropy, args.axis)

    state = MeshState.uniform(args.nodes, args.m0, heff)
    if args.tilt > 0:
        m = tilted_magnetization(state.m, args.tilt, seed=args.seed)
        state = MeshState(m, heff(m))

    llg = LLGSolver(
        state, heff, dt=args.timestep, damping=args.damping,
        tolerance=args.tolerance, max_attempts=args.max_attempts,
        half_step=args.half_step, renormalize=not args.no_renormalize,
        strict=args.strict, energy_fn=heff.energy, use_fast=not args.python
    )
    results = llg.run(total_time=args.time, verbose=True)

    llg.save_trajectory(f"{args.output}.npz")
    print(f"Results saved to {args.output}.npz")

    m_avg = results['final_average_magnetization']
    print(f"\nFinal <m>: ({m_avg[0]:.6f}, {m_avg[1]:.6f}, {m_avg[2]:.6f})")
    print(f"Final energy: {results['final_energy']:.6e}")
    print(f"Steps with unconverged nodes: {int(np.count_nonzero(results['unconverged']))}")


def run_single_step(args):
    """Advance one node once and print the result."""
    m_old = args.m if args.m_old is None else args.m_old
    H_old = args.H if args.H_old is None else args.H_old

    m_next, diag = yang_step(
        args.m, m_old, args.H, H_old, args.timestep, args.damping,
        tolerance=args.tolerance, max_attempts=args.max_attempts,
        half_step=args.half_step, renormalize=not args.no_renormalize
    )
    print(f"m_next: {m_next[0]:.12f} {m_next[1]:.12f} {m_next[2]:.12f}")
    print(f"|m_next|: {np.linalg.norm(m_next):.12f}")
    print(f"residual: {diag.residual:.3e}")
    print(f"iterations: {diag.iterations}")
    print(f"converged: {diag.converged}")


if __name__ == "__main__":
    sys.exit(main())
