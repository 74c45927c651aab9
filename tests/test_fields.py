"""Tests for FieldSet / InterfaceState / SystemState value semantics."""

import numpy as np
import pytest

from antclock.core.fields import FieldSet, InterfaceState, SystemState, nearest_index
from antclock.core.policy import ConfigurationError


def make_state(n=16, L=2.0, x_b=1.0, s=0.0):
    return SystemState(fields=FieldSet.zeros(n), interface=InterfaceState(x_b=x_b, s=s), L=L)


class TestFieldSet:

    def test_mismatched_lengths_rejected(self):
        with pytest.raises(ConfigurationError):
            FieldSet(rho=np.zeros(4), rho_dot=np.zeros(4), X=np.zeros(4),
                     X_dot=np.zeros(4), psi=np.zeros(5), psi_dot=np.zeros(4))

    def test_empty_grid_rejected(self):
        with pytest.raises(ConfigurationError):
            FieldSet.zeros(0)
        with pytest.raises(ConfigurationError):
            FieldSet.zeros(-3)

    def test_arrays_are_read_only_copies(self):
        psi = np.ones(8)
        fs = FieldSet(rho=np.zeros(8), rho_dot=np.zeros(8), X=np.zeros(8),
                      X_dot=np.zeros(8), psi=psi, psi_dot=np.zeros(8))
        psi[0] = 5.0
        assert fs.psi[0] == 1.0
        with pytest.raises(ValueError):
            fs.psi[0] = 2.0

    def test_combine_does_not_touch_inputs(self):
        a = FieldSet.zeros(4)
        b = FieldSet(**{name: np.full(4, 2.0) for name, _ in a.items()})
        c = a.combine((0.5, b), (1.0, b))
        assert np.all(c.psi == 3.0)
        assert np.all(a.psi == 0.0)
        assert np.all(b.psi == 2.0)


class TestInterfaceIndex:

    def test_index_recomputed_from_position(self):
        state = make_state(n=16, L=2.0, x_b=1.0)
        assert state.i_b == 8
        moved = state.with_interface(x_b=1.30)
        assert moved.i_b == 10

    def test_stale_cached_index_is_replaced(self):
        state = SystemState(fields=FieldSet.zeros(16),
                            interface=InterfaceState(x_b=1.0, i_b=3), L=2.0)
        assert state.i_b == 8

    def test_position_wraps_into_domain(self):
        state = make_state(n=16, L=2.0, x_b=2.5)
        assert state.interface.x_b == pytest.approx(0.5)
        state = make_state(n=16, L=2.0, x_b=-0.25)
        assert state.interface.x_b == pytest.approx(1.75)
        assert state.i_b == 14

    def test_nearest_index_wraps_last_half_cell(self):
        # x just below L rounds to N which is index 0
        assert nearest_index(1.99, 0.125, 16) == 0

    def test_non_finite_position_does_not_raise(self):
        assert nearest_index(float('nan'), 0.125, 16) == 0


class TestSystemState:

    def test_grid_metadata(self):
        state = make_state(n=32, L=2.0)
        assert state.N == 32
        assert state.dx == pytest.approx(0.0625)
        assert state.x[-1] == pytest.approx(2.0 - 0.0625)

    def test_non_positive_length_rejected(self):
        with pytest.raises(ConfigurationError):
            make_state(L=0.0)

    def test_validate_negative_entropy(self):
        with pytest.raises(ConfigurationError):
            make_state(s=-0.1).validate()

    def test_validate_non_finite_field(self):
        fields = FieldSet.zeros(8)
        bad = fields.combine()
        psi = bad.psi.copy()
        psi[2] = np.inf
        bad = FieldSet(rho=bad.rho, rho_dot=bad.rho_dot, X=bad.X, X_dot=bad.X_dot,
                       psi=psi, psi_dot=bad.psi_dot)
        state = SystemState(fields=bad, interface=InterfaceState(x_b=0.0), L=1.0)
        with pytest.raises(ConfigurationError, match="psi"):
            state.validate()
