# rhs.py
# =============================================================================
# Coupled equation evaluator: time derivatives of bulk fields and interface
# =============================================================================
#
# Bulk (periodic grid, dx = L/N):
#   rho_tt = rho_xx - Lambda*rho + lambda_matter*T00
#   X_tt   = X_xx   - Lambda*X   + lambda_matter*T01 + S_sigma
#   psi_tt = psi_xx + H + R*psi_t
# with T00 = (psi_t^2 + psi_x^2)/2, T01 = psi_t*psi_x and the interface source
# S_sigma = -lambda_stress * 8*pi*E_sigma(s) / dx injected at i_b only.
#
# The interface heat is paid for by psi:
#   H = -lambda_flux*|psi_x(x_b)|*sign(psi_t(x_b))*dtau/dt / dx, spread over the
#       two cells straddling x_b with the interpolation weights, so its power
#       is exactly -Phi_in*dtau/dt
#   R = kappa*s*dtau/dt / (dx*sum(psi_t^2) + RELAX_REGULARIZER), which hands the
#       relaxed interface energy back to the matter kinetic energy
# Together they make the bulk lose what T_sigma*ds/dt gains.
#
# Interface:
#   dx_b/dt   = v_b
#   dv_b/dt   = (F_flux + F_junction) / m_eff
#                F_flux     = -lambda_flux * psi_t(x_b) * psi_x(x_b)
#                F_junction =  lambda_jump * ([X_x] - 8*pi*E_sigma(s))
#   dtheta/dt = v_b * rho_x(x_b)                      (one-step proxy)
#   dtau/dt   = exp(rho(x_b)) * sqrt(max(0, 1 - v_b^2))
#   ds/dt     = (Phi_in - kappa*s) / T_sigma * dtau/dt,  Phi_in = lambda_flux*|T01(x_b)|
#
# E_sigma(s) = T_sigma * s. The gradient jump [X_x] across the interface is the
# difference of one-sided slopes, dx * X_xx sampled at x_b.
#
# Nothing here raises on bad numbers; NaN/inf propagate to the caller.

from dataclasses import dataclass

import numpy as np

from antclock.numerics.stencils import derivative, laplacian, sample_at
from .fields import FieldSet, SystemState
from .policy import CouplingConstants, DEFAULT_COUPLINGS

EIGHT_PI = 8.0 * np.pi
RELAX_REGULARIZER = 1e-12


@dataclass(frozen=True)
class BulkTerms:
    """Spatial operators and matter stress evaluated on the grid."""
    rho_xx: np.ndarray
    X_xx: np.ndarray
    psi_xx: np.ndarray
    rho_x: np.ndarray
    psi_x: np.ndarray
    T00: np.ndarray
    T01: np.ndarray


@dataclass(frozen=True)
class InterfaceProbe:
    """Bulk quantities sampled at the interface position."""
    psi_t: float
    psi_x: float
    rho: float
    rho_x: float
    measured_jump: float
    target_jump: float
    clock_rate: float
    phi_in: float

    @property
    def energy_flux(self) -> float:
        return self.psi_t * self.psi_x

    @property
    def momentum_flux(self) -> float:
        return 0.5 * (self.psi_t ** 2 + self.psi_x ** 2)

    @property
    def junction_mismatch(self) -> float:
        return self.measured_jump - self.target_jump


@dataclass(frozen=True)
class InterfaceRates:
    x_b: float
    v_b: float
    s: float
    tau: float
    theta: float


@dataclass(frozen=True)
class StateDerivative:
    fields: FieldSet
    interface: InterfaceRates


def interface_energy(s: float, couplings: CouplingConstants = DEFAULT_COUPLINGS) -> float:
    """E_sigma(s) = T_sigma * s."""
    return couplings.T_sigma * s


def bulk_terms(state: SystemState) -> BulkTerms:
    f = state.fields
    dx = state.dx
    psi_x = derivative(f.psi, dx)
    return BulkTerms(
        rho_xx=laplacian(f.rho, dx),
        X_xx=laplacian(f.X, dx),
        psi_xx=laplacian(f.psi, dx),
        rho_x=derivative(f.rho, dx),
        psi_x=psi_x,
        T00=0.5 * (f.psi_dot ** 2 + psi_x ** 2),
        T01=f.psi_dot * psi_x,
    )


def interface_source(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS) -> float:
    """Strength of the localized X source at i_b (per unit length)."""
    e_sigma = interface_energy(state.interface.s, couplings)
    return -couplings.lambda_stress * EIGHT_PI * e_sigma / state.dx


def probe_interface(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS,
                    terms: BulkTerms = None) -> InterfaceProbe:
    if terms is None:
        terms = bulk_terms(state)
    f = state.fields
    iface = state.interface
    L, dx = state.L, state.dx
    x_b = iface.x_b

    psi_t = sample_at(f.psi_dot, x_b, L, dx)
    psi_x = sample_at(terms.psi_x, x_b, L, dx)
    rho_b = sample_at(f.rho, x_b, L, dx)
    rho_x = sample_at(terms.rho_x, x_b, L, dx)
    measured = dx * sample_at(terms.X_xx, x_b, L, dx)
    target = EIGHT_PI * interface_energy(iface.s, couplings)

    clock_rate = np.exp(rho_b) * np.sqrt(max(0.0, 1.0 - iface.v_b ** 2))
    phi_in = couplings.lambda_flux * abs(psi_t * psi_x)

    return InterfaceProbe(
        psi_t=float(psi_t),
        psi_x=float(psi_x),
        rho=float(rho_b),
        rho_x=float(rho_x),
        measured_jump=float(measured),
        target_jump=float(target),
        clock_rate=float(clock_rate),
        phi_in=float(phi_in),
    )


def geometric_sources(state: SystemState, couplings: CouplingConstants, terms: BulkTerms):
    """Grid sources for rho and X excluding the localized interface term."""
    f = state.fields
    s_rho = -couplings.Lambda * f.rho + couplings.lambda_matter * terms.T00
    s_X = -couplings.Lambda * f.X + couplings.lambda_matter * terms.T01
    return s_rho, s_X


def interface_exchange(state: SystemState, probe: InterfaceProbe,
                       couplings: CouplingConstants = DEFAULT_COUPLINGS) -> np.ndarray:
    """psi_dot source that removes from the bulk the energy the interface stores.

    The heating sink sits on the two cells sampled for psi_t(x_b), weighted as
    in ``sample_at``; the relaxation return is proportional to psi_t everywhere.
    """
    f = state.fields
    n, dx = state.N, state.dx
    out = np.zeros(n, dtype=np.float64)

    heat = couplings.lambda_flux * abs(probe.psi_x) * probe.clock_rate
    pos = (state.interface.x_b % state.L) / dx
    if not np.isfinite(pos):
        out[:] = np.nan
        return out
    if heat != 0.0:
        i0 = int(np.floor(pos))
        frac = pos - i0
        i0 %= n
        amp = -np.sign(probe.psi_t) * heat / dx
        out[i0] += amp * (1.0 - frac)
        out[(i0 + 1) % n] += amp * frac

    relax = couplings.kappa * state.interface.s * probe.clock_rate
    if relax != 0.0:
        out += relax * f.psi_dot / (dx * np.sum(f.psi_dot ** 2) + RELAX_REGULARIZER)
    return out


def interface_rates(state: SystemState, probe: InterfaceProbe,
                    couplings: CouplingConstants = DEFAULT_COUPLINGS) -> InterfaceRates:
    iface = state.interface
    f_flux = -couplings.lambda_flux * probe.energy_flux
    f_junction = couplings.lambda_jump * probe.junction_mismatch
    ds_dtau = (probe.phi_in - couplings.kappa * iface.s) / couplings.T_sigma
    return InterfaceRates(
        x_b=iface.v_b,
        v_b=(f_flux + f_junction) / couplings.m_eff,
        s=ds_dtau * probe.clock_rate,
        tau=probe.clock_rate,
        theta=iface.v_b * probe.rho_x,
    )


def evaluate(state: SystemState, couplings: CouplingConstants = DEFAULT_COUPLINGS) -> StateDerivative:
    """Right-hand side of every bulk sequence and interface scalar."""
    f = state.fields
    terms = bulk_terms(state)
    s_rho, s_X = geometric_sources(state, couplings, terms)

    X_tt = terms.X_xx + s_X
    X_tt[state.i_b] += interface_source(state, couplings)
    probe = probe_interface(state, couplings, terms)

    bulk = FieldSet(
        rho=f.rho_dot,
        rho_dot=terms.rho_xx + s_rho,
        X=f.X_dot,
        X_dot=X_tt,
        psi=f.psi_dot,
        psi_dot=terms.psi_xx + interface_exchange(state, probe, couplings),
    )
    return StateDerivative(fields=bulk, interface=interface_rates(state, probe, couplings))
