# hard_invariants.py
# =============================================================================
# Hard invariant validation for accepted states
# =============================================================================
#
# Hard invariants:
# 1. Every bulk sequence finite (no NaN/inf)
# 2. Every interface scalar finite
# 3. Stored entropy s >= 0
#
# A finiteness failure is fatal for a run. The checker reports the first
# offending quantity so the scheduler can name it together with the step index.

import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .fields import INTERFACE_SCALARS, SystemState
from antclock.logging_config import field_stats

logger = logging.getLogger('antclock.hard_invariants')


class NumericalFailureError(RuntimeError):
    """NaN/inf detected in a state produced by the integrator."""

    def __init__(self, quantity: str, step_index: int, t: Optional[float] = None):
        self.quantity = quantity
        self.step_index = step_index
        self.t = t
        super().__init__(
            f"Non-finite value in {quantity} at step {step_index}"
            + (f" (t={t:.6g})" if t is not None else "")
        )


class HardInvariantChecker:
    """Validates the hard invariants of a SystemState."""

    def __init__(self, tolerance: float = 1e-14):
        """
        Args:
            tolerance: allowed negative excursion of s before it counts as a violation
        """
        self.tolerance = tolerance
        self.violations = []

    def check_hard_invariants(self, state: SystemState) -> Tuple[bool, List[str], Dict[str, Any]]:
        """Verify the hard invariants for ``state``.

        Returns:
            (is_valid, violations_list, margin_dict) where violations name the
            offending quantity first, e.g. "psi_dot contains NaN/inf".
        """
        violations = []
        margins = {}
        bad_fields = []

        for name, arr in state.fields.items():
            stats = field_stats(arr, name)
            if stats["non_finite"]:
                violations.append(f"{name} contains NaN/inf")
                margins[f'{name}_max_abs'] = float('nan')
                bad_fields.append(stats)
            else:
                margins[f'{name}_max_abs'] = stats["max_abs"]

        for name in INTERFACE_SCALARS:
            value = getattr(state.interface, name)
            if not np.isfinite(value):
                violations.append(f"interface.{name} is NaN/inf")

        s = state.interface.s
        margins['s'] = float(s)
        if np.isfinite(s) and s < -self.tolerance:
            violations.append(f"interface.s negative: {s}")

        if not np.isfinite(state.t):
            violations.append("t is NaN/inf")

        is_valid = len(violations) == 0
        if not is_valid:
            self.violations.extend(violations)
            logger.warning("Hard invariant violation", extra={"extra_data": {
                "t": state.t, "violations": violations, "fields": bad_fields,
            }})
        return is_valid, violations, margins

    def require_finite(self, state: SystemState, step_index: int) -> None:
        """Raise NumericalFailureError naming the first non-finite quantity."""
        is_valid, violations, _ = self.check_hard_invariants(state)
        if is_valid:
            return
        for violation in violations:
            if 'NaN/inf' in violation:
                quantity = violation.split(' ')[0]
                raise NumericalFailureError(quantity, step_index, state.t)

    def get_report(self) -> Dict[str, Any]:
        return {
            'total_violations': len(self.violations),
            'violations': list(self.violations),
        }

    def reset(self):
        self.violations = []
