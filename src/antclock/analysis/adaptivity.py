"""Post-run summary of how the scheduler spent its steps."""

from typing import Any, Dict

import numpy as np

from antclock.core.scheduler import RunResult

# keeps the ratios finite for runs that never advanced
RATIO_GUARD = 1e-10


def residual_improvement_fraction(result: RunResult) -> float:
    """Summed per-step residual decrease over the summed pre-step residual.

    Positive when accepted steps leave the state closer to equilibrium than
    they found it.
    """
    history = np.asarray(result.residual_history, dtype=np.float64)
    if history.size < 2:
        return 0.0
    before, after = history[:-1], history[1:]
    return float(np.sum(before - after) / (np.sum(before) + RATIO_GUARD))


def analyze_adaptivity(result: RunResult, dt_min: float = None) -> Dict[str, Any]:
    """Step statistics, tick counts and semantic efficiency for one run.

    ``semantic_efficiency`` is semantic time gained per unit of coordinate
    time. If ``dt_min`` is given, ``fixed_steps_at_dt_min`` is the number of
    steps a fixed-step run at that size needs to cover the same coordinate
    span, and ``speedup`` compares it with the accepted-step count.
    """
    dts = np.asarray(result.dt_history, dtype=np.float64)
    t_span = result.t - result.trajectory[0].t
    n_steps = result.accepted_steps

    summary = {
        'status': result.status.value,
        'n_steps': n_steps,
        'n_rejected': result.rejected_steps,
        'n_ticks': len(result.ticks),
        'n_regime_ticks': len(result.regime_ticks),
        'tick_counts': result.tick_counts(),
        'tau_sched': result.tau_sched,
        't_span': t_span,
        'avg_dt': float(np.mean(dts)) if dts.size else 0.0,
        'min_dt': float(np.min(dts)) if dts.size else 0.0,
        'max_dt': float(np.max(dts)) if dts.size else 0.0,
        'avg_semantic_step': result.tau_sched / n_steps if n_steps else 0.0,
        'semantic_efficiency': result.tau_sched / (t_span + RATIO_GUARD),
        'residual_improvement_fraction': residual_improvement_fraction(result),
    }
    if dt_min is not None:
        fixed = int(np.ceil(t_span / dt_min - 1e-9))
        summary['fixed_steps_at_dt_min'] = fixed
        summary['speedup'] = fixed / n_steps if n_steps else float('inf')
    return summary
