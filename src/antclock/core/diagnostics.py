"""Diagnostics: pure functions of SystemState (and of trajectories).

Energy uses forward-difference gradients, which pair with the centered
Laplacian under summation by parts; with all non-conservative couplings off,
the semi-discrete energy is then exactly conserved and any drift comes from
the couplings or from the time integrator.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np

from antclock.numerics.stencils import forward_difference
from .fields import SystemState
from .policy import CouplingConstants, DEFAULT_COUPLINGS
from .rhs import (BulkTerms, InterfaceProbe, bulk_terms, geometric_sources,
                  interface_energy, interface_exchange, interface_source, probe_interface)


def energy_components(state: SystemState,
                      couplings: CouplingConstants = DEFAULT_COUPLINGS) -> Dict[str, float]:
    f = state.fields
    dx = state.dx
    kinetic = 0.5 * np.sum(f.rho_dot ** 2 + f.X_dot ** 2 + f.psi_dot ** 2) * dx
    gradient = 0.5 * np.sum(
        forward_difference(f.rho, dx) ** 2
        + forward_difference(f.X, dx) ** 2
        + forward_difference(f.psi, dx) ** 2
    ) * dx
    potential = 0.5 * couplings.Lambda * np.sum(f.rho ** 2 + f.X ** 2) * dx
    interface = interface_energy(state.interface.s, couplings)
    bulk = kinetic + gradient + potential
    return {
        'kinetic': float(kinetic),
        'gradient': float(gradient),
        'potential': float(potential),
        'bulk': float(bulk),
        'interface': float(interface),
        'total': float(bulk + interface),
    }


def total_energy(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS) -> float:
    """Field kinetic + gradient + restoring energy plus E_sigma(s)."""
    return energy_components(state, couplings)['total']


def bulk_energy(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS) -> float:
    return energy_components(state, couplings)['bulk']


def entropy_production_rate(state: SystemState,
                            couplings: CouplingConstants = DEFAULT_COUPLINGS,
                            probe: Optional[InterfaceProbe] = None) -> float:
    """ds/dt at the current state."""
    if probe is None:
        probe = probe_interface(state, couplings)
    ds_dtau = (probe.phi_in - couplings.kappa * state.interface.s) / couplings.T_sigma
    return float(ds_dtau * probe.clock_rate)


def junction_residual(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS,
                      signed: bool = False, probe: Optional[InterfaceProbe] = None) -> float:
    """[X_x] - 8*pi*E_sigma(s) at the interface; absolute value unless ``signed``."""
    if probe is None:
        probe = probe_interface(state, couplings)
    mismatch = probe.junction_mismatch
    return float(mismatch if signed else abs(mismatch))


def energy_balance_rate(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS,
                        terms: Optional[BulkTerms] = None,
                        probe: Optional[InterfaceProbe] = None) -> float:
    """dE_total/dt evaluated analytically from the non-conservative sources.

    Wave and restoring terms cancel exactly against the energy definition, so
    only the matter-to-geometry work, the localized interface source, the
    exchange power paid by psi and the interface heating remain. The last two
    cancel up to the relaxation regularizer.
    """
    if terms is None:
        terms = bulk_terms(state)
    if probe is None:
        probe = probe_interface(state, couplings, terms)
    f = state.fields
    dx = state.dx
    work = couplings.lambda_matter * np.sum(f.rho_dot * terms.T00 + f.X_dot * terms.T01) * dx
    work += f.X_dot[state.i_b] * interface_source(state, couplings) * dx
    exchange = np.sum(f.psi_dot * interface_exchange(state, probe, couplings)) * dx
    heating = couplings.T_sigma * entropy_production_rate(state, couplings, probe)
    return float(work + exchange + heating)


def bulk_equation_residual(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS,
                           terms: Optional[BulkTerms] = None) -> float:
    """Deviation of rho and X from their matter-sourced equilibrium (RMS sum)."""
    if terms is None:
        terms = bulk_terms(state)
    s_rho, s_X = geometric_sources(state, couplings, terms)
    r_rho = terms.rho_xx + s_rho
    r_X = terms.X_xx + s_X
    return float(np.sqrt(np.mean(r_rho ** 2)) + np.sqrt(np.mean(r_X ** 2)))


def spectral_acceleration(times: Sequence[float], theta: Sequence[float],
                          window: int = 1) -> np.ndarray:
    """Windowed second difference of the expansion scalar.

    For uniform steps this is |theta_i - 2 theta_{i-w} + theta_{i-2w}| / (w dt)^2.
    Non-uniform spacing uses the three-point divided second difference. Returns
    one value per index i >= 2w (empty if the history is too short).
    """
    if window < 1:
        raise ValueError(f"window must be >= 1, got {window}")
    t = np.asarray(times, dtype=np.float64)
    th = np.asarray(theta, dtype=np.float64)
    if t.shape != th.shape:
        raise ValueError("times and theta must have the same length")
    w = window
    if t.shape[0] < 2 * w + 1:
        return np.zeros(0)

    a, b, c = th[:-2 * w], th[w:-w], th[2 * w:]
    h1 = t[w:-w] - t[:-2 * w]
    h2 = t[2 * w:] - t[w:-w]
    second = 2.0 * (h1 * c - (h1 + h2) * b + h2 * a) / (h1 * h2 * (h1 + h2))
    return np.abs(second)


def trajectory_spectral_acceleration(trajectory: Sequence[SystemState],
                                     window: int = 1) -> np.ndarray:
    return spectral_acceleration([s.t for s in trajectory],
                                 [s.interface.theta for s in trajectory], window)


@dataclass(frozen=True)
class ConservationReport:
    t: float
    total_energy: float
    entropy_rate: float
    energy_change: float
    relative_drift: float
    second_law_violation: bool


def conservation_report(state: SystemState, initial_energy: float,
                        couplings: CouplingConstants = DEFAULT_COUPLINGS,
                        tolerance: float = 1e-9) -> ConservationReport:
    energy = total_energy(state, couplings)
    rate = entropy_production_rate(state, couplings)
    change = energy - initial_energy
    scale = abs(initial_energy) if initial_energy != 0 else 1.0
    return ConservationReport(
        t=state.t,
        total_energy=energy,
        entropy_rate=rate,
        energy_change=change,
        relative_drift=abs(change) / scale,
        second_law_violation=rate < -tolerance,
    )


def energy_audit(trajectory: Sequence[SystemState],
                 couplings: CouplingConstants = DEFAULT_COUPLINGS) -> Dict[str, float]:
    """Bulk energy lost against interface energy gained between the ends of a run."""
    if not trajectory:
        raise ValueError("energy_audit needs a non-empty trajectory")
    first = energy_components(trajectory[0], couplings)
    last = energy_components(trajectory[-1], couplings)
    bulk_lost = first['bulk'] - last['bulk']
    interface_gained = last['interface'] - first['interface']
    return {
        'bulk_lost': bulk_lost,
        'interface_gained': interface_gained,
        'imbalance': interface_gained - bulk_lost,
        'total_change': last['total'] - first['total'],
        'entropy_gained': trajectory[-1].interface.s - trajectory[0].interface.s,
    }
