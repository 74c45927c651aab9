"""
Utility functions for antclock tests.
"""

import numpy as np

from antclock.core.diagnostics import total_energy
from antclock.core.policy import DEFAULT_COUPLINGS
from antclock.core.rhs import probe_interface


def rms(x: np.ndarray) -> float:
    x = np.asarray(x)
    return float(np.sqrt(np.mean(x * x)))


def relative_drift(trajectory, couplings=DEFAULT_COUPLINGS) -> float:
    e0 = total_energy(trajectory[0], couplings)
    e1 = total_energy(trajectory[-1], couplings)
    return abs(e1 - e0) / abs(e0)


def peak_energy_flux(trajectory, couplings=DEFAULT_COUPLINGS) -> float:
    return max(abs(probe_interface(s, couplings).energy_flux) for s in trajectory)


def all_finite(state) -> bool:
    if not all(np.all(np.isfinite(arr)) for _, arr in state.fields.items()):
        return False
    return all(np.isfinite(v) for v in state.interface.scalars().values())


def assert_states_identical(a, b):
    assert a.t == b.t
    assert a.L == b.L
    for (name, x), (_, y) in zip(a.fields.items(), b.fields.items()):
        assert np.array_equal(x, y), name
    assert a.interface == b.interface
