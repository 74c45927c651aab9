"""Composite residual and flux novelty driving the adaptive step law."""

from collections import deque
from dataclasses import dataclass
from typing import Dict, Optional

from .fields import SystemState
from .policy import CouplingConstants, DEFAULT_COUPLINGS
from .rhs import bulk_terms, probe_interface
from .diagnostics import (bulk_equation_residual, energy_balance_rate,
                          entropy_production_rate)

DEFAULT_WEIGHTS = {'bulk': 1.0, 'junction': 1.0, 'conservation': 1.0}


@dataclass(frozen=True)
class Residual:
    """Named non-negative sub-residuals and their weighted total."""
    bulk: float
    junction: float
    conservation: float
    total: float

    def to_dict(self) -> Dict[str, float]:
        return {'bulk': self.bulk, 'junction': self.junction,
                'conservation': self.conservation, 'total': self.total}


def compute_residual(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS,
                     weights: Optional[Dict[str, float]] = None) -> Residual:
    if weights is None:
        weights = DEFAULT_WEIGHTS
    terms = bulk_terms(state)
    probe = probe_interface(state, couplings, terms)

    bulk = bulk_equation_residual(state, couplings, terms)
    junction = abs(probe.junction_mismatch)
    conservation = abs(energy_balance_rate(state, couplings, terms, probe))
    total = (weights['bulk'] * bulk
             + weights['junction'] * junction
             + weights['conservation'] * conservation)
    return Residual(bulk=bulk, junction=junction, conservation=conservation, total=total)


@dataclass(frozen=True)
class FluxSample:
    energy_flux: float
    momentum_flux: float
    entropy_rate: float


def flux_sample(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS) -> FluxSample:
    probe = probe_interface(state, couplings)
    return FluxSample(
        energy_flux=probe.energy_flux,
        momentum_flux=probe.momentum_flux,
        entropy_rate=entropy_production_rate(state, couplings, probe),
    )


class FluxNoveltyTracker:
    """Short-horizon prediction of the interface fluxes.

    The prediction is a linear extrapolation of the last two recorded samples
    (the last sample alone if only one exists). Novelty is the summed absolute
    deviation of a new sample from that prediction; with no history it is 0.
    Owned by a single run.
    """

    def __init__(self):
        self.history = deque(maxlen=2)

    def predict(self) -> Optional[FluxSample]:
        if not self.history:
            return None
        last = self.history[-1]
        if len(self.history) == 1:
            return last
        prev = self.history[0]
        return FluxSample(
            energy_flux=2.0 * last.energy_flux - prev.energy_flux,
            momentum_flux=2.0 * last.momentum_flux - prev.momentum_flux,
            entropy_rate=2.0 * last.entropy_rate - prev.entropy_rate,
        )

    def novelty(self, sample: FluxSample) -> float:
        pred = self.predict()
        if pred is None:
            return 0.0
        return (abs(sample.energy_flux - pred.energy_flux)
                + abs(sample.momentum_flux - pred.momentum_flux)
                + abs(sample.entropy_rate - pred.entropy_rate))

    def record(self, sample: FluxSample) -> None:
        self.history.append(sample)
