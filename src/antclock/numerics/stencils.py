# stencils.py
# =============================================================================
# Periodic finite-difference stencils on a uniform 1-D grid
# =============================================================================
#
# All kernels treat index -1 as N-1 and index N as 0. They are total: NaN/inf
# inputs propagate to the output and are detected by the caller.
#
# Kernels are serial on purpose; prange reductions would make the summation
# order (and so the trajectory bits) depend on the thread count.

import numpy as np
from numba import jit


@jit(nopython=True)
def derivative(field, dx):
    """Centered first derivative: (f[i+1] - f[i-1]) / (2 dx)."""
    n = field.shape[0]
    out = np.empty(n, dtype=np.float64)
    inv = 0.5 / dx
    for i in range(n):
        out[i] = (field[(i + 1) % n] - field[i - 1]) * inv
    return out


@jit(nopython=True)
def laplacian(field, dx):
    """Centered second difference: (f[i+1] - 2 f[i] + f[i-1]) / dx^2."""
    n = field.shape[0]
    out = np.empty(n, dtype=np.float64)
    inv = 1.0 / (dx * dx)
    for i in range(n):
        out[i] = (field[(i + 1) % n] - 2.0 * field[i] + field[i - 1]) * inv
    return out


@jit(nopython=True)
def forward_difference(field, dx):
    """One-sided slope (f[i+1] - f[i]) / dx.

    This is the difference whose squared sum pairs with ``laplacian`` under
    summation by parts, so gradient energies built from it are the ones the
    semi-discrete wave equation conserves.
    """
    n = field.shape[0]
    out = np.empty(n, dtype=np.float64)
    for i in range(n):
        out[i] = (field[(i + 1) % n] - field[i]) / dx
    return out


@jit(nopython=True)
def sample_at(field, x, L, dx):
    """Linear interpolation of a periodic grid field at real position x.

    Two lookups and one lerp; no temporaries are allocated.
    """
    n = field.shape[0]
    xw = x % L
    pos = xw / dx
    i0 = int(np.floor(pos))
    frac = pos - i0
    i0 = i0 % n
    i1 = (i0 + 1) % n
    return field[i0] * (1.0 - frac) + field[i1] * frac
