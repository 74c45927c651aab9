# stepper.py
# =============================================================================
# Fixed-step RK4 integrator for the coupled bulk/interface system
# =============================================================================
#
# Classical four-stage Runge-Kutta applied jointly to the six bulk sequences
# and the five interface scalars (11 coupled quantities):
#   Stage 1: k1 = RHS(u0)
#   Stage 2: u1 = u0 + (dt/2)*k1,  k2 = RHS(u1)
#   Stage 3: u2 = u0 + (dt/2)*k2,  k3 = RHS(u2)
#   Stage 4: u3 = u0 + dt*k3,      k4 = RHS(u3)
#   Combined: u_{n+1} = u0 + (dt/6)*(k1 + 2*k2 + 2*k3 + k4)
#
# Stages are built by scaled addition into fresh states; the input state is
# never touched. No constraint checking happens here. The interface entropy is
# clamped at zero after the combination (s >= 0); x_b is wrapped into [0, L)
# and i_b recomputed by SystemState.

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .fields import InterfaceState, SystemState
from .policy import CouplingConstants, DEFAULT_COUPLINGS
from .rhs import StateDerivative, evaluate
from .diagnostics import ConservationReport, conservation_report, total_energy
from .hard_invariants import HardInvariantChecker
from antclock.logging_config import Timer

logger = logging.getLogger('antclock.stepper')


def _interface_combine(base: InterfaceState, terms) -> dict:
    out = {}
    for name in ('x_b', 'v_b', 's', 'tau', 'theta'):
        value = getattr(base, name)
        for coeff, rates in terms:
            value += coeff * getattr(rates, name)
        out[name] = value
    return out


def _stage(state: SystemState, k: StateDerivative, h: float) -> SystemState:
    fields = state.fields.combine((h, k.fields))
    interface = InterfaceState(**_interface_combine(state.interface, [(h, k.interface)]))
    return state.evolve(fields, interface, state.t + h)


def rk4_step(state: SystemState, dt: float,
             couplings: CouplingConstants = DEFAULT_COUPLINGS) -> SystemState:
    """Advance ``state`` by one coordinate-time increment ``dt``.

    Returns a new, independent SystemState with t' = t + dt.
    """
    k1 = evaluate(state, couplings)
    k2 = evaluate(_stage(state, k1, 0.5 * dt), couplings)
    k3 = evaluate(_stage(state, k2, 0.5 * dt), couplings)
    k4 = evaluate(_stage(state, k3, dt), couplings)

    w1, w2 = dt / 6.0, dt / 3.0
    fields = state.fields.combine(
        (w1, k1.fields), (w2, k2.fields), (w2, k3.fields), (w1, k4.fields)
    )
    scalars = _interface_combine(
        state.interface,
        [(w1, k1.interface), (w2, k2.interface), (w2, k3.interface), (w1, k4.interface)],
    )
    # NaN must survive the clamp
    if scalars['s'] < 0.0:
        scalars['s'] = 0.0
    return state.evolve(fields, InterfaceState(**scalars), state.t + dt)


def integrate(initial: SystemState, n_steps: int, dt: float,
              couplings: CouplingConstants = DEFAULT_COUPLINGS) -> List[SystemState]:
    """Run ``n_steps`` fixed RK4 steps; returns the trajectory including ``initial``."""
    if n_steps < 0:
        raise ValueError(f"n_steps must be >= 0, got {n_steps}")
    if not dt > 0:
        raise ValueError(f"dt must be positive, got {dt}")
    trajectory = [initial]
    state = initial
    for _ in range(n_steps):
        state = rk4_step(state, dt, couplings)
        trajectory.append(state)
    return trajectory


@dataclass
class SimulationResult:
    trajectory: List[SystemState]
    reports: List[ConservationReport] = field(default_factory=list)

    @property
    def final(self) -> SystemState:
        return self.trajectory[-1]


def simulate(initial: SystemState, duration: float, dt: float,
             report_interval: Optional[int] = None,
             couplings: CouplingConstants = DEFAULT_COUPLINGS) -> SimulationResult:
    """Fixed-step run over ``duration`` with periodic conservation reports.

    A report is taken at the start, every ``report_interval`` steps and at the
    end. Raises NumericalFailureError as soon as a step produces NaN/inf.
    """
    if not duration >= 0:
        raise ValueError(f"duration must be non-negative, got {duration}")
    if not dt > 0:
        raise ValueError(f"dt must be positive, got {dt}")
    if report_interval is not None and report_interval <= 0:
        raise ValueError(f"report_interval must be positive, got {report_interval}")

    n_steps = int(np.ceil(duration / dt - 1e-9))
    checker = HardInvariantChecker()
    e0 = total_energy(initial, couplings)

    result = SimulationResult(trajectory=[initial])
    result.reports.append(conservation_report(initial, e0, couplings))

    logger.info("Fixed-step run started", extra={"extra_data": {
        "n_steps": n_steps, "dt": dt, "N": initial.N, "L": initial.L,
        "initial_energy": e0,
    }})

    state = initial
    with Timer("simulate") as timer:
        for step in range(1, n_steps + 1):
            state = rk4_step(state, dt, couplings)
            checker.require_finite(state, step)
            result.trajectory.append(state)
            if report_interval is not None and step % report_interval == 0 and step != n_steps:
                result.reports.append(conservation_report(state, e0, couplings))

    if n_steps > 0:
        result.reports.append(conservation_report(state, e0, couplings))

    final = result.reports[-1]
    logger.info("Fixed-step run finished", extra={"extra_data": {
        "t": state.t, "energy_change": final.energy_change,
        "second_law_violation": final.second_law_violation,
        "elapsed_ms": timer.elapsed_ms(),
    }})
    return result
