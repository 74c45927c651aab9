"""Canonical initial conditions.

``smooth``: low energy. A Gaussian matter pulse at rest centred on the
interface (width L/8), geometry flat, interface at rest with no entropy.

``cliff``: high energy. A right-moving matter wave (half its energy kinetic)
sweeping across a pre-stressed interface that already stores entropy and
carries a positive expansion scalar.

Both place the interface at L/2.
"""

from typing import Callable, Dict

import numpy as np

from .core.fields import FieldSet, InterfaceState, SystemState
from .core.policy import ConfigurationError


def _grid(n: int, L: float) -> np.ndarray:
    if n <= 0:
        raise ConfigurationError(f"Grid size N must be positive, got {n}")
    if not L > 0:
        raise ConfigurationError(f"Domain length L must be positive, got {L}")
    return np.arange(n) * (L / n)


def smooth(n: int = 32, L: float = 2.0, amplitude: float = 1.0) -> SystemState:
    x = _grid(n, L)
    width = L / 8.0
    psi = amplitude * np.exp(-0.5 * ((x - 0.5 * L) / width) ** 2)
    fields = FieldSet(
        rho=np.zeros(n), rho_dot=np.zeros(n),
        X=np.zeros(n), X_dot=np.zeros(n),
        psi=psi, psi_dot=np.zeros(n),
    )
    interface = InterfaceState(x_b=0.5 * L, v_b=0.0, s=0.0, tau=0.0, theta=0.0)
    return SystemState(fields=fields, interface=interface, L=L, t=0.0)


def cliff(n: int = 32, L: float = 2.0, amplitude: float = 0.5,
          entropy: float = 0.1, theta: float = 0.5) -> SystemState:
    x = _grid(n, L)
    k = 2.0 * np.pi / L
    # psi(x, t) = A cos(k (x - t)); the flux through x_b starts at zero
    psi = amplitude * np.cos(k * x)
    psi_dot = amplitude * k * np.sin(k * x)
    fields = FieldSet(
        rho=np.zeros(n), rho_dot=np.zeros(n),
        X=np.zeros(n), X_dot=np.zeros(n),
        psi=psi, psi_dot=psi_dot,
    )
    interface = InterfaceState(x_b=0.5 * L, v_b=0.0, s=entropy, tau=0.0, theta=theta)
    return SystemState(fields=fields, interface=interface, L=L, t=0.0)


SCENARIOS: Dict[str, Callable[..., SystemState]] = {
    'smooth': smooth,
    'cliff': cliff,
}


def make_scenario(name: str, **kwargs) -> SystemState:
    try:
        factory = SCENARIOS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown scenario '{name}', expected one of {sorted(SCENARIOS)}"
        ) from None
    return factory(**kwargs)
