#!/usr/bin/env python3
"""Run the smooth and cliff scenarios under the same step budget and compare them."""

import argparse
import logging

from antclock import RunConfig, make_scenario, run_antclock, setup_logging
from antclock.analysis import (analyze_adaptivity, cf_signature_overlap, extract_worldline,
                               worldline_distance, worldline_signature)
from antclock.core.rhs import probe_interface


def peak_flux(result, couplings):
    return max(abs(probe_interface(s, couplings).energy_flux) for s in result.trajectory)


def main():
    parser = argparse.ArgumentParser(
        description="Compare smooth and cliff scenarios under the Antclock scheduler"
    )
    parser.add_argument('--steps', type=int, default=150, help='Accepted-step budget per run')
    parser.add_argument('--n', type=int, default=32, help='Grid points')
    parser.add_argument('--length', type=float, default=2.0, help='Domain length L')
    parser.add_argument('--config', help='Optional JSON file with RunConfig overrides')
    parser.add_argument('--verbose', '-v', action='store_true', help='JSON logs at INFO level')
    args = parser.parse_args()

    setup_logging(logging.INFO if args.verbose else logging.WARNING)

    config = RunConfig.from_file(args.config) if args.config else RunConfig()
    config.update({'max_steps': args.steps, 'tau_max': 1e9})
    config.validate()
    couplings = config.couplings()

    worldlines, signatures = {}, {}
    print("-" * 60)
    for name in ('smooth', 'cliff'):
        initial = make_scenario(name, n=args.n, L=args.length)
        result = run_antclock(initial, config)
        summary = analyze_adaptivity(result, dt_min=config.dt_min)
        signature = worldline_signature(result.trajectory)

        print(f"{name}: status={summary['status']} steps={summary['n_steps']} "
              f"rejected={summary['n_rejected']} t={summary['t_span']:.4f}")
        print(f"  entropy: {initial.interface.s:.6f} -> {result.final_state.interface.s:.6f}")
        print(f"  peak |energy flux|: {peak_flux(result, couplings):.6e}")
        print(f"  regime ticks: {summary['n_regime_ticks']}  counts: {summary['tick_counts']}")
        print(f"  dt avg/min/max: {summary['avg_dt']:.3e} / {summary['min_dt']:.3e} / "
              f"{summary['max_dt']:.3e}")
        print(f"  semantic efficiency: {summary['semantic_efficiency']:.4f}  "
              f"residual improvement: {summary['residual_improvement_fraction']:.4f}")
        for key, entry in signature.items():
            print(f"  {key}: {entry['value']:.6f} cf={entry['coefficients']}")
        print("-" * 60)
        worldlines[name] = extract_worldline(result.trajectory)
        signatures[name] = signature

    print(f"worldline distance: "
          f"{worldline_distance(worldlines['smooth'], worldlines['cliff']):.6e}")
    for key in signatures['smooth']:
        overlap = cf_signature_overlap(signatures['smooth'][key]['coefficients'],
                                       signatures['cliff'][key]['coefficients'])
        print(f"  {key} cf overlap: {overlap}")


if __name__ == "__main__":
    main()
