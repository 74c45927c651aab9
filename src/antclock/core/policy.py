"""Run configuration for the coupled bulk/interface integrator.

Every tunable lives here as a flat, named numeric parameter with a safe
default. ``RunConfig`` follows the externalized-threshold pattern: defaults in
``__init__``, JSON loading via ``from_file``, export via ``to_dict`` for
reproducibility, and eager ``validate`` so misconfiguration is never discovered
mid-run.
"""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Any

logger = logging.getLogger('antclock.policy')


class ConfigurationError(ValueError):
    """Raised for parameter or initial-state misconfiguration at run start."""


@dataclass(frozen=True)
class CouplingConstants:
    """Coupling constants consumed by the equation evaluator."""
    lambda_flux: float = 0.05     # energy-flux force and interface heating
    lambda_jump: float = 0.01     # junction penalty spring
    m_eff: float = 1.0            # interface inertia
    T_sigma: float = 1.0          # interface temperature, E_sigma = T_sigma * s
    kappa: float = 0.05           # entropy relaxation
    Lambda: float = 1.0           # restoring stiffness of rho and X
    lambda_matter: float = 0.01   # matter stress -> geometry
    lambda_stress: float = 0.01   # interface energy -> localized X source

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


DEFAULT_COUPLINGS = CouplingConstants()

_COUPLING_KEYS = tuple(DEFAULT_COUPLINGS.to_dict().keys())


class RunConfig:
    """Flat scheduler configuration.

    Step-size control:
        epsilon: target residual scale; dtau = boost * epsilon / (R + delta)
        delta: regularizer keeping dtau finite at zero residual
        tau_min_step, tau_max_step: clamp on the semantic step
        dt_min, dt_max: clamp on the coordinate step
        cfl: coordinate step is also capped at cfl * dx
        clock_rate_floor: lower bound on the dtau/dt estimate
        regime_boost: multiplier applied to dtau when a regime detector fired

    Residual weights:
        w_bulk, w_junction, w_conservation, w_novelty

    Termination and retries:
        tau_max: target semantic time
        max_steps: accepted-step ceiling
        max_retries: dt halvings per step before accepting with a violation
        max_total_retries: run-wide retry ceiling

    Gates and detectors:
        entropy_tolerance, junction_tolerance, coherent_work_tolerance,
        trap_threshold, burst_threshold, curvature_spike_threshold,
        junction_flip_floor

    Coupling constants (see CouplingConstants) are carried flat as well.
    """

    def __init__(self, **overrides):
        self.epsilon = 0.01
        self.delta = 1e-10
        self.tau_min_step = 1e-4
        self.tau_max_step = 0.05
        self.dt_min = 1e-4
        self.dt_max = 0.05
        self.cfl = 0.5
        self.clock_rate_floor = 0.01
        self.regime_boost = 2.0

        self.w_bulk = 1.0
        self.w_junction = 1.0
        self.w_conservation = 1.0
        self.w_novelty = 0.5

        self.tau_max = 1.0
        self.max_steps = 10000
        self.max_retries = 4
        self.max_total_retries = 10000

        self.entropy_tolerance = 1e-4
        self.junction_tolerance = 5.0
        self.coherent_work_tolerance = 0.05
        self.trap_threshold = 0.01
        self.burst_threshold = 0.05
        self.curvature_spike_threshold = 5.0
        self.junction_flip_floor = 1e-6

        for key, value in DEFAULT_COUPLINGS.to_dict().items():
            setattr(self, key, value)

        self.update(overrides)

    def update(self, values: Dict[str, Any]) -> None:
        """Apply named overrides; unknown names are rejected."""
        for key, value in values.items():
            if not hasattr(self, key):
                raise ConfigurationError(f"Unknown configuration parameter: {key}")
            setattr(self, key, value)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'RunConfig':
        config = cls(**config_dict)
        config.validate()
        return config

    @classmethod
    def from_file(cls, config_path: str) -> 'RunConfig':
        """Load RunConfig from a JSON file of flat parameter overrides.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the JSON is malformed or a value is invalid
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                config_dict = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file: {e}")

        if not isinstance(config_dict, dict):
            raise ValueError("Config file must contain a JSON object")

        config = cls.from_dict(config_dict)
        logger.info(f"Loaded run config from {config_path}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Export every parameter for reproducibility."""
        return dict(sorted(vars(self).items()))

    def couplings(self) -> CouplingConstants:
        return CouplingConstants(**{key: float(getattr(self, key)) for key in _COUPLING_KEYS})

    def validate(self) -> None:
        """Validate ranges and orderings.

        Raises:
            ConfigurationError: If any parameter is invalid
        """
        for name, value in self.to_dict().items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be numeric, got {type(value).__name__}")
            if value != value:
                raise ConfigurationError(f"{name} must not be NaN")

        strictly_positive = ['epsilon', 'delta', 'tau_min_step', 'tau_max_step',
                             'dt_min', 'dt_max', 'cfl', 'clock_rate_floor',
                             'tau_max', 'm_eff', 'T_sigma', 'junction_tolerance',
                             'coherent_work_tolerance']
        for name in strictly_positive:
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        non_negative = ['w_bulk', 'w_junction', 'w_conservation', 'w_novelty',
                        'entropy_tolerance', 'trap_threshold', 'burst_threshold',
                        'curvature_spike_threshold', 'junction_flip_floor',
                        'lambda_flux', 'lambda_jump', 'kappa', 'Lambda',
                        'lambda_matter', 'lambda_stress']
        for name in non_negative:
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")

        if self.dt_min > self.dt_max:
            raise ConfigurationError(
                f"dt_min ({self.dt_min}) must not exceed dt_max ({self.dt_max})"
            )
        if self.tau_min_step > self.tau_max_step:
            raise ConfigurationError(
                f"tau_min_step ({self.tau_min_step}) must not exceed "
                f"tau_max_step ({self.tau_max_step})"
            )
        if self.regime_boost < 1.0:
            raise ConfigurationError(f"regime_boost must be >= 1, got {self.regime_boost}")

        for name in ('max_steps', 'max_retries', 'max_total_retries'):
            value = getattr(self, name)
            if int(value) != value:
                raise ConfigurationError(f"{name} must be an integer, got {value}")
        if self.max_steps <= 0:
            raise ConfigurationError(f"max_steps must be > 0, got {self.max_steps}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.max_total_retries < 0:
            raise ConfigurationError(
                f"max_total_retries must be >= 0, got {self.max_total_retries}"
            )
