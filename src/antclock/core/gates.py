"""Regime detectors and the monotonicity gate for tentative steps.

Regime detectors are binary threshold tests comparing the current state with
the previous accepted one. The monotonicity gate decides whether a tentative
step may be accepted:

- entropy must not drop by more than ``entropy_tolerance``
- the junction residual must stay below ``junction_tolerance``
- no coherent work extraction: the interface pushing against the matter energy
  flux, so doing work on the bulk, faster than ``coherent_work_tolerance`` while
  producing no entropy to pay for it
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .fields import SystemState
from .policy import CouplingConstants, DEFAULT_COUPLINGS
from .rhs import InterfaceProbe, probe_interface
from .diagnostics import entropy_production_rate


class RegimeTag(str, enum.Enum):
    MARGINALLY_TRAPPED = "marginally_trapped"
    ENTROPY_BURST = "entropy_burst"
    CURVATURE_SPIKE = "curvature_spike"
    JUNCTION_SIGN_FLIP = "junction_sign_flip"
    MONOTONICITY_VIOLATION = "monotonicity_violation"


REGIME_CHANGE_TAGS = (
    RegimeTag.MARGINALLY_TRAPPED,
    RegimeTag.ENTROPY_BURST,
    RegimeTag.CURVATURE_SPIKE,
    RegimeTag.JUNCTION_SIGN_FLIP,
)


@dataclass(frozen=True)
class RegimeSignals:
    """Already-computed scalars the detectors look at."""
    t: float
    theta: float
    entropy_rate: float
    measured_jump: float
    junction_mismatch: float
    energy_flux: float


def regime_signals(state: SystemState,
                   couplings: CouplingConstants = DEFAULT_COUPLINGS) -> RegimeSignals:
    probe = probe_interface(state, couplings)
    return RegimeSignals(
        t=state.t,
        theta=state.interface.theta,
        entropy_rate=entropy_production_rate(state, couplings, probe),
        measured_jump=probe.measured_jump,
        junction_mismatch=probe.junction_mismatch,
        energy_flux=probe.energy_flux,
    )


def detect_regimes(current: RegimeSignals, previous: Optional[RegimeSignals],
                   config) -> List[RegimeTag]:
    """Return the detectors that fired, in a fixed order.

    Nothing fires without a previous accepted state.
    """
    if previous is None:
        return []
    fired = []

    if abs(previous.theta) >= config.trap_threshold > abs(current.theta):
        fired.append(RegimeTag.MARGINALLY_TRAPPED)

    if previous.entropy_rate < config.burst_threshold <= current.entropy_rate:
        fired.append(RegimeTag.ENTROPY_BURST)

    elapsed = current.t - previous.t
    if elapsed > 0:
        jump_rate = abs(current.measured_jump - previous.measured_jump) / elapsed
        if jump_rate > config.curvature_spike_threshold:
            fired.append(RegimeTag.CURVATURE_SPIKE)

    floor = config.junction_flip_floor
    if (abs(current.junction_mismatch) > floor and abs(previous.junction_mismatch) > floor
            and (current.junction_mismatch > 0) != (previous.junction_mismatch > 0)):
        fired.append(RegimeTag.JUNCTION_SIGN_FLIP)

    return fired


@dataclass
class GateVerdict:
    accepted: bool
    reasons: List[str] = field(default_factory=list)
    margins: Dict[str, float] = field(default_factory=dict)

    @property
    def entropy_violated(self) -> bool:
        return any(r.startswith('entropy') for r in self.reasons)


class MonotonicityGate:
    """Checks a tentative step (before -> after) against the hard monotonicity rules."""

    def __init__(self, config, couplings: CouplingConstants = DEFAULT_COUPLINGS):
        self.entropy_tolerance = config.entropy_tolerance
        self.junction_tolerance = config.junction_tolerance
        self.coherent_work_tolerance = config.coherent_work_tolerance
        self.couplings = couplings

    def work_on_bulk(self, state: SystemState, probe: InterfaceProbe = None) -> float:
        """Power the moving interface delivers to the matter: -F_flux * v_b."""
        if probe is None:
            probe = probe_interface(state, self.couplings)
        return self.couplings.lambda_flux * probe.energy_flux * state.interface.v_b

    def check(self, before: SystemState, after: SystemState) -> GateVerdict:
        reasons = []
        margins = {}

        entropy_drop = before.interface.s - after.interface.s
        margins['entropy_drop'] = entropy_drop
        if entropy_drop > self.entropy_tolerance:
            reasons.append(f"entropy decreased by {entropy_drop:.3e}")

        probe = probe_interface(after, self.couplings)
        junction = abs(probe.junction_mismatch)
        margins['junction_residual'] = junction
        if junction > self.junction_tolerance:
            reasons.append(f"junction residual {junction:.3e} above {self.junction_tolerance:.3e}")

        work = 0.5 * (self.work_on_bulk(before) + self.work_on_bulk(after, probe))
        margins['coherent_work'] = work
        if work > self.coherent_work_tolerance and -entropy_drop <= self.entropy_tolerance:
            reasons.append(f"coherent work extraction {work:.3e} above "
                           f"{self.coherent_work_tolerance:.3e} without entropy production")

        return GateVerdict(accepted=not reasons, reasons=reasons, margins=margins)
