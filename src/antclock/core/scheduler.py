# scheduler.py
# =============================================================================
# Antclock: residual-driven adaptive scheduler around the fixed-step RK4
# =============================================================================
#
# Per accepted step:
#   1. composite residual R of the current state
#   2. flux novelty dF against a short-horizon prediction
#   3. regime detectors (current vs previous accepted state)
#   4. dtau = boost * epsilon / (R + w_novelty*dF + delta), clamped to
#      [tau_min_step, tau_max_step]; boost = regime_boost only if 3 fired
#   5. dt = dtau / max(dtau/dt, clock_rate_floor), clamped to [dt_min, dt_max]
#      and capped at cfl*dx
#   6. tentative RK4 step
#   7. finiteness check (fatal), then the monotonicity gate; on failure halve dt
#      and retry, bounded by RetryCounter; on exhaustion accept with a
#      monotonicity_violation event
#   8. accept: project s onto max(s_new, s_old), append state and tick events,
#      advance tau_sched by the semantic span actually covered
#
# Semantic time tau_sched is the scheduler's own progress variable; it is
# distinct from coordinate time t and from the interface proper time tau.
# Runs are deterministic: nothing here reads clocks or random state except the
# Timer used for log payloads.

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .constraints import FluxNoveltyTracker, compute_residual, flux_sample
from .fields import SystemState
from .gates import (MonotonicityGate, RegimeTag, REGIME_CHANGE_TAGS, detect_regimes,
                    regime_signals)
from .hard_invariants import HardInvariantChecker, NumericalFailureError
from .policy import RunConfig
from .receipts import ReceiptChain
from .rhs import probe_interface
from .stepper import rk4_step
from antclock.logging_config import Timer, field_stats

logger = logging.getLogger('antclock.scheduler')


class RetryCounter:
    """Bounds the attempts spent on a single step.

    attempts <= 1 + max_retries. ``increment`` raises once the bound is
    exceeded, so a caller that forgets ``can_retry`` fails loudly instead of
    looping.
    """

    def __init__(self, max_retries: int = 4):
        self.max_retries = max_retries
        self.attempt = 0
        self.max_attempts = 1 + max_retries

    def increment(self):
        """Increment attempt counter.

        Raises:
            RuntimeError: If attempts exceed max_attempts limit
        """
        self.attempt += 1
        if self.attempt > self.max_attempts:
            raise RuntimeError(
                f"Retry limit exceeded: {self.attempt} > {self.max_attempts} "
                f"(max_retries={self.max_retries})"
            )

    def reset(self):
        self.attempt = 0

    def can_retry(self) -> bool:
        return self.attempt < self.max_attempts


class RunStatus(str, enum.Enum):
    OK = "ok"
    NUMERICAL_FAILURE = "numerical_failure"
    DID_NOT_CONVERGE = "did_not_converge"


@dataclass(frozen=True)
class TickEvent:
    """Append-only record of a regime change or a flagged step."""
    step: int
    tau_sched: float
    t: float
    tag: RegimeTag
    residual_before: float
    residual_after: float
    dt_before: float
    dt_after: float
    detail: str = ""


@dataclass(frozen=True)
class NumericalFailure:
    quantity: str
    step_index: int
    t: float
    message: str


@dataclass
class RunResult:
    status: RunStatus
    trajectory: List[SystemState]
    ticks: List[TickEvent]
    accepted_steps: int
    rejected_steps: int
    tau_sched: float
    dt_history: List[float] = field(default_factory=list)
    # composite residual of each trajectory state, aligned with trajectory
    residual_history: List[float] = field(default_factory=list)
    receipts: ReceiptChain = field(default_factory=ReceiptChain)
    failure: Optional[NumericalFailure] = None

    @property
    def final_state(self) -> SystemState:
        return self.trajectory[-1]

    @property
    def t(self) -> float:
        return self.trajectory[-1].t

    @property
    def regime_ticks(self) -> List[TickEvent]:
        return [tick for tick in self.ticks if tick.tag in REGIME_CHANGE_TAGS]

    def tick_counts(self) -> Dict[str, int]:
        counts = {tag.value: 0 for tag in RegimeTag}
        for tick in self.ticks:
            counts[tick.tag.value] += 1
        return counts


class Antclock:
    """Adaptive scheduler driving rk4_step from physical residuals."""

    def __init__(self, config: Optional[RunConfig] = None):
        self.config = config if config is not None else RunConfig()
        self.config.validate()
        self.couplings = self.config.couplings()
        self.weights = {
            'bulk': self.config.w_bulk,
            'junction': self.config.w_junction,
            'conservation': self.config.w_conservation,
        }
        self.gate = MonotonicityGate(self.config, self.couplings)
        self.checker = HardInvariantChecker()

    def semantic_step(self, residual_total: float, novelty: float, regime_fired: bool) -> float:
        cfg = self.config
        boost = cfg.regime_boost if regime_fired else 1.0
        dtau = boost * cfg.epsilon / (residual_total + cfg.w_novelty * novelty + cfg.delta)
        if not np.isfinite(dtau):
            return cfg.tau_min_step
        return min(max(dtau, cfg.tau_min_step), cfg.tau_max_step)

    def coordinate_step(self, dtau: float, clock_rate: float, dx: float) -> float:
        cfg = self.config
        rate = max(clock_rate, cfg.clock_rate_floor)
        dt = min(max(dtau / rate, cfg.dt_min), cfg.dt_max)
        # CFL wins over dt_min
        return min(dt, cfg.cfl * dx)

    def run(self, initial: SystemState) -> RunResult:
        """Integrate until tau_sched >= tau_max or a ceiling is hit.

        Raises:
            ConfigurationError: If the initial state is malformed
        """
        cfg = self.config
        initial.validate()

        result = RunResult(status=RunStatus.OK, trajectory=[initial], ticks=[],
                           accepted_steps=0, rejected_steps=0, tau_sched=0.0)
        tracker = FluxNoveltyTracker()
        total_retries = 0
        state = initial
        residual = compute_residual(state, self.couplings, self.weights)
        prev_signals = None
        result.residual_history.append(residual.total)

        logger.info("Antclock run started", extra={"extra_data": {
            "N": initial.N, "L": initial.L, "tau_max": cfg.tau_max,
            "max_steps": cfg.max_steps, "residual": residual.to_dict(),
            "psi": field_stats(initial.fields.psi, 'psi'),
        }})

        with Timer("antclock_run") as timer:
            while result.tau_sched < cfg.tau_max:
                if result.accepted_steps >= cfg.max_steps:
                    result.status = RunStatus.DID_NOT_CONVERGE
                    logger.warning("Step ceiling reached before tau_max", extra={"extra_data": {
                        "max_steps": cfg.max_steps, "tau_sched": result.tau_sched,
                    }})
                    break

                step = result.accepted_steps + 1
                sample = flux_sample(state, self.couplings)
                novelty = tracker.novelty(sample)
                signals = regime_signals(state, self.couplings)
                fired = detect_regimes(signals, prev_signals, cfg)

                dtau = self.semantic_step(residual.total, novelty, bool(fired))
                clock_rate = probe_interface(state, self.couplings).clock_rate
                dt = self.coordinate_step(dtau, clock_rate, state.dx)
                dt_proposed = dt

                counter = RetryCounter(cfg.max_retries)
                candidate, verdict = None, None
                while True:
                    counter.increment()
                    candidate = rk4_step(state, dt, self.couplings)
                    try:
                        self.checker.require_finite(candidate, step)
                    except NumericalFailureError as exc:
                        result.status = RunStatus.NUMERICAL_FAILURE
                        result.failure = NumericalFailure(
                            quantity=exc.quantity, step_index=exc.step_index,
                            t=candidate.t, message=str(exc),
                        )
                        result.receipts.emit(step, counter.attempt, 'STEP_REJECT', candidate, dt,
                                             result.tau_sched, residual.total, (str(exc),))
                        logger.error("Numerical failure, aborting run", extra={"extra_data": {
                            "step": step, "quantity": exc.quantity, "t": candidate.t, "dt": dt,
                        }})
                        candidate = None
                        break

                    verdict = self.gate.check(state, candidate)
                    if verdict.accepted:
                        break

                    can_shrink = dt > cfg.dt_min
                    if not (counter.can_retry() and can_shrink):
                        break
                    result.rejected_steps += 1
                    result.receipts.emit(step, counter.attempt, 'STEP_REJECT', candidate, dt,
                                         result.tau_sched, residual.total, verdict.reasons)
                    if total_retries >= cfg.max_total_retries:
                        result.status = RunStatus.DID_NOT_CONVERGE
                        logger.warning("Run-wide retry ceiling reached", extra={"extra_data": {
                            "max_total_retries": cfg.max_total_retries, "step": step,
                            "rejected_steps": result.rejected_steps,
                        }})
                        candidate = None
                        break

                    total_retries += 1
                    logger.debug(f"Retry attempt {counter.attempt}/{counter.max_retries}",
                                 extra={"extra_data": {
                                     "step": step, "dt": dt, "reasons": verdict.reasons,
                                 }})
                    dt = max(0.5 * dt, cfg.dt_min)

                if candidate is None:
                    break

                flagged = not verdict.accepted
                if candidate.interface.s < state.interface.s:
                    candidate = candidate.with_interface(s=state.interface.s)

                dtau_used = min(dtau, dt * max(clock_rate, cfg.clock_rate_floor))
                result.tau_sched += dtau_used
                result.trajectory.append(candidate)
                result.dt_history.append(dt)
                result.accepted_steps += 1

                residual_after = compute_residual(candidate, self.couplings, self.weights)
                result.residual_history.append(residual_after.total)
                for tag in fired:
                    result.ticks.append(TickEvent(
                        step=step, tau_sched=result.tau_sched, t=candidate.t, tag=tag,
                        residual_before=residual.total, residual_after=residual_after.total,
                        dt_before=dt_proposed, dt_after=dt,
                    ))
                if flagged:
                    detail = "; ".join(verdict.reasons)
                    result.ticks.append(TickEvent(
                        step=step, tau_sched=result.tau_sched, t=candidate.t,
                        tag=RegimeTag.MONOTONICITY_VIOLATION,
                        residual_before=residual.total, residual_after=residual_after.total,
                        dt_before=dt_proposed, dt_after=dt, detail=detail,
                    ))
                    logger.warning("Step accepted with monotonicity violation", extra={"extra_data": {
                        "step": step, "t": candidate.t, "dt": dt, "reasons": verdict.reasons,
                    }})
                if fired:
                    logger.info("Regime change", extra={"extra_data": {
                        "step": step, "t": candidate.t, "tau_sched": result.tau_sched,
                        "tags": [tag.value for tag in fired],
                    }})

                event = 'STEP_ACCEPT_FLAGGED' if flagged else 'STEP_ACCEPT'
                result.receipts.emit(step, counter.attempt, event, candidate, dt,
                                     result.tau_sched, residual_after.total, verdict.reasons)
                logger.debug("Step accepted", extra={"extra_data": {
                    "step": step, "t": candidate.t, "dt": dt, "dtau": dtau_used,
                    "tau_sched": result.tau_sched, "residual": residual_after.total,
                    "novelty": novelty, "attempts": counter.attempt,
                }})

                tracker.record(sample)
                prev_signals = signals
                state = candidate
                residual = residual_after

        logger.info("Antclock run finished", extra={"extra_data": {
            "status": result.status.value,
            "accepted_steps": result.accepted_steps,
            "rejected_steps": result.rejected_steps,
            "ticks": len(result.ticks),
            "tau_sched": result.tau_sched,
            "t": result.t,
            "elapsed_ms": timer.elapsed_ms(),
        }})
        return result


def run_antclock(initial: SystemState, config: Optional[RunConfig] = None, **overrides) -> RunResult:
    """Convenience wrapper: build a config from overrides and run once."""
    if config is None:
        config = RunConfig(**overrides)
    elif overrides:
        config = RunConfig(**{**config.to_dict(), **overrides})
    return Antclock(config).run(initial)
