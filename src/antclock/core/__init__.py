from .policy import ConfigurationError, CouplingConstants, DEFAULT_COUPLINGS, RunConfig
from .fields import FieldSet, InterfaceState, SystemState
from .rhs import evaluate, probe_interface
from .stepper import rk4_step, integrate, simulate, SimulationResult
from .diagnostics import (total_energy, energy_components, entropy_production_rate,
                          junction_residual, spectral_acceleration, conservation_report,
                          energy_audit, ConservationReport)
from .constraints import Residual, compute_residual, FluxNoveltyTracker
from .gates import RegimeTag, MonotonicityGate, detect_regimes
from .hard_invariants import HardInvariantChecker, NumericalFailureError
from .receipts import ReceiptChain, StepReceipt
from .scheduler import (Antclock, RetryCounter, RunResult, RunStatus, TickEvent,
                        NumericalFailure, run_antclock)
