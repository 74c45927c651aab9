# fields.py
# =============================================================================
# Bulk fields, interface worldline state and the composite system state
# =============================================================================
#
# Three bulk fields live on a uniform periodic grid of N points, dx = L / N:
#   rho  conformal factor
#   X    dilaton
#   psi  matter field
# each paired with its time derivative. A single moving interface carries
# (x_b, v_b, s, tau, theta) plus a cached nearest grid index i_b.
#
# Values are immutable: arrays are stored read-only and every integration
# stage produces a fresh SystemState.

from dataclasses import dataclass, replace, fields as dc_fields
from typing import Dict, Iterator, Tuple

import numpy as np

from .policy import ConfigurationError

FIELD_NAMES = ('rho', 'rho_dot', 'X', 'X_dot', 'psi', 'psi_dot')
INTERFACE_SCALARS = ('x_b', 'v_b', 's', 'tau', 'theta')


def _frozen_array(value) -> np.ndarray:
    arr = np.array(value, dtype=np.float64)
    arr.setflags(write=False)
    return arr


def nearest_index(x_b: float, dx: float, n: int) -> int:
    """Nearest grid index to x_b with periodic wrap (round half up)."""
    if not np.isfinite(x_b):
        # reported by the hard-invariant check, not here
        return 0
    return int(np.floor(x_b / dx + 0.5)) % n


def wrap_position(x_b: float, L: float) -> float:
    x = x_b % L
    # float modulo can return L itself for tiny negative inputs
    if x >= L:
        x -= L
    return x


@dataclass(frozen=True)
class FieldSet:
    """Six equal-length bulk sequences: three fields and their time derivatives."""
    rho: np.ndarray
    rho_dot: np.ndarray
    X: np.ndarray
    X_dot: np.ndarray
    psi: np.ndarray
    psi_dot: np.ndarray

    def __post_init__(self):
        n = None
        for name in FIELD_NAMES:
            arr = _frozen_array(getattr(self, name))
            if arr.ndim != 1:
                raise ConfigurationError(f"{name} must be one-dimensional, got shape {arr.shape}")
            if n is None:
                n = arr.shape[0]
            elif arr.shape[0] != n:
                raise ConfigurationError(
                    f"{name} has length {arr.shape[0]}, expected {n}"
                )
            object.__setattr__(self, name, arr)
        if n == 0:
            raise ConfigurationError("Grid size N must be positive")

    @classmethod
    def zeros(cls, n: int) -> 'FieldSet':
        if n <= 0:
            raise ConfigurationError(f"Grid size N must be positive, got {n}")
        return cls(**{name: np.zeros(n) for name in FIELD_NAMES})

    @property
    def N(self) -> int:
        return self.rho.shape[0]

    def items(self) -> Iterator[Tuple[str, np.ndarray]]:
        for name in FIELD_NAMES:
            yield name, getattr(self, name)

    def combine(self, *terms: Tuple[float, 'FieldSet']) -> 'FieldSet':
        """Return self + sum(c * d for c, d in terms) as a new FieldSet."""
        out = {}
        for name in FIELD_NAMES:
            acc = getattr(self, name).copy()
            for coeff, other in terms:
                acc += coeff * getattr(other, name)
            out[name] = acc
        return FieldSet(**out)


@dataclass(frozen=True)
class InterfaceState:
    """Moving interface: position, velocity, entropy, proper time, expansion.

    ``theta`` is advanced by the one-step proxy d(theta)/dt = v_b * d(rho)/dx
    at x_b. It approximates the log-derivative of the clock-stretch factor and
    is sensitive to curvature changes; it is not the exact expansion.

    ``i_b`` is a cache of the nearest grid index. SystemState recomputes it
    from x_b on construction, so it can never drift from the position.
    """
    x_b: float
    v_b: float = 0.0
    s: float = 0.0
    tau: float = 0.0
    theta: float = 0.0
    i_b: int = 0

    def scalars(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in INTERFACE_SCALARS}


@dataclass(frozen=True)
class SystemState:
    """Bulk fields + interface + grid metadata at coordinate time t."""
    fields: FieldSet
    interface: InterfaceState
    L: float
    t: float = 0.0

    def __post_init__(self):
        if not self.L > 0:
            raise ConfigurationError(f"Domain length L must be positive, got {self.L}")
        x_b = wrap_position(float(self.interface.x_b), self.L)
        i_b = nearest_index(x_b, self.dx, self.N)
        if x_b != self.interface.x_b or i_b != self.interface.i_b:
            object.__setattr__(self, 'interface', replace(self.interface, x_b=x_b, i_b=i_b))

    @property
    def N(self) -> int:
        return self.fields.N

    @property
    def dx(self) -> float:
        return self.L / self.fields.N

    @property
    def x(self) -> np.ndarray:
        return np.arange(self.N) * self.dx

    @property
    def i_b(self) -> int:
        return self.interface.i_b

    def evolve(self, fields: FieldSet, interface: InterfaceState, t: float) -> 'SystemState':
        return SystemState(fields=fields, interface=interface, L=self.L, t=t)

    def with_interface(self, **changes) -> 'SystemState':
        return SystemState(fields=self.fields, interface=replace(self.interface, **changes),
                           L=self.L, t=self.t)

    def validate(self) -> None:
        """Eager checks for a scenario-supplied initial state."""
        if self.interface.s < 0:
            raise ConfigurationError(f"Initial entropy must be non-negative, got {self.interface.s}")
        for f in dc_fields(InterfaceState):
            value = getattr(self.interface, f.name)
            if not np.isfinite(value):
                raise ConfigurationError(f"Initial interface {f.name} is not finite: {value}")
        for name, arr in self.fields.items():
            if np.any(~np.isfinite(arr)):
                raise ConfigurationError(f"Initial field {name} contains NaN/inf")
