"""
Test suite for hard invariant checks on accepted states.

Non-finite values are fatal and must be reported with the offending quantity
and the step index.
"""

import logging

import numpy as np
import pytest
from unittest.mock import Mock

from antclock.core.fields import FieldSet, InterfaceState
from antclock.core.hard_invariants import HardInvariantChecker, NumericalFailureError
from antclock.scenarios import cliff


def state_with(field_name=None, bad_index=3, interface=None, t=0.0):
    """Mock state: zero fields except one poisoned entry."""
    arrays = {name: np.zeros(8) for name, _ in FieldSet.zeros(8).items()}
    if field_name is not None:
        arrays[field_name][bad_index] = np.nan
    state = Mock()
    state.fields.items.return_value = list(arrays.items())
    state.interface = interface if interface is not None else InterfaceState(x_b=0.5)
    state.t = t
    return state


class TestHardInvariantChecker:

    def test_clean_state_passes(self):
        checker = HardInvariantChecker()
        is_valid, violations, margins = checker.check_hard_invariants(cliff())
        assert is_valid is True
        assert violations == []
        assert margins['psi_max_abs'] == pytest.approx(0.5)
        assert checker.get_report()['total_violations'] == 0

    @pytest.mark.parametrize("name", ['rho', 'X_dot', 'psi_dot'])
    def test_nan_field_names_quantity(self, name):
        checker = HardInvariantChecker()
        is_valid, violations, _ = checker.check_hard_invariants(state_with(name))
        assert is_valid is False
        assert violations == [f"{name} contains NaN/inf"]

    def test_non_finite_interface_scalar(self):
        checker = HardInvariantChecker()
        state = state_with(interface=InterfaceState(x_b=0.5, v_b=np.inf))
        is_valid, violations, _ = checker.check_hard_invariants(state)
        assert not is_valid
        assert "interface.v_b is NaN/inf" in violations

    def test_negative_entropy_is_violation(self):
        checker = HardInvariantChecker()
        state = state_with(interface=InterfaceState(x_b=0.5, s=-1e-3))
        is_valid, violations, margins = checker.check_hard_invariants(state)
        assert not is_valid
        assert margins['s'] == -1e-3
        assert violations[0].startswith("interface.s negative")

    def test_entropy_within_tolerance(self):
        checker = HardInvariantChecker(tolerance=1e-6)
        state = state_with(interface=InterfaceState(x_b=0.5, s=-1e-9))
        assert checker.check_hard_invariants(state)[0]

    def test_report_and_reset(self):
        checker = HardInvariantChecker()
        checker.check_hard_invariants(state_with('psi'))
        checker.check_hard_invariants(state_with('X'))
        report = checker.get_report()
        assert report['total_violations'] == 2
        checker.reset()
        assert checker.get_report()['total_violations'] == 0

    def test_warning_carries_field_stats(self, caplog):
        checker = HardInvariantChecker()
        with caplog.at_level(logging.WARNING, logger='antclock.hard_invariants'):
            checker.check_hard_invariants(state_with('psi_dot'))
        record = caplog.records[-1]
        stats = record.extra_data['fields']
        assert [entry['name'] for entry in stats] == ['psi_dot']
        assert stats[0]['non_finite'] == 1
        assert stats[0]['max_abs'] == 0.0


class TestRequireFinite:

    def test_passes_silently(self):
        HardInvariantChecker().require_finite(cliff(), 1)

    def test_raises_with_quantity_and_step(self):
        with pytest.raises(NumericalFailureError) as excinfo:
            HardInvariantChecker().require_finite(state_with('X', t=0.25), 7)
        err = excinfo.value
        assert err.quantity == 'X'
        assert err.step_index == 7
        assert err.t == 0.25
        assert "step 7" in str(err)

    def test_first_quantity_wins(self):
        state = state_with('psi', interface=InterfaceState(x_b=0.5, theta=np.nan))
        with pytest.raises(NumericalFailureError) as excinfo:
            HardInvariantChecker().require_finite(state, 2)
        assert excinfo.value.quantity == 'psi'

    def test_interface_quantity(self):
        state = state_with(interface=InterfaceState(x_b=0.5, s=np.nan))
        with pytest.raises(NumericalFailureError) as excinfo:
            HardInvariantChecker().require_finite(state, 3)
        assert excinfo.value.quantity == 'interface.s'

    def test_negative_entropy_alone_does_not_raise(self):
        state = state_with(interface=InterfaceState(x_b=0.5, s=-1.0))
        HardInvariantChecker().require_finite(state, 1)

    def test_is_runtime_error(self):
        assert issubclass(NumericalFailureError, RuntimeError)
