"""Coupled 1-D bulk fields with a moving dissipative interface, integrated by
fixed-step RK4 or by the residual-driven Antclock scheduler."""

from .core import (ConfigurationError, CouplingConstants, RunConfig,
                   FieldSet, InterfaceState, SystemState,
                   rk4_step, integrate, simulate,
                   total_energy, entropy_production_rate, junction_residual,
                   compute_residual, RegimeTag,
                   Antclock, RunResult, RunStatus, TickEvent, run_antclock)
from .scenarios import smooth, cliff, make_scenario, SCENARIOS
from .logging_config import setup_logging

__version__ = "0.1.0"
