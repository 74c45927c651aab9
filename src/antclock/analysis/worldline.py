"""Interface worldline extraction and its continued-fraction signature.

The worldline is read off a trajectory as plain arrays. A handful of
dimensionless ratios summarise it (characteristic scalars), and each ratio is
expanded as a continued fraction, whose partial quotients serve as a compact
structural signature of the run. Two runs are compared either directly, by the
RMS velocity difference of their worldlines under a small time shift, or
through their signatures, by the length of the common coefficient prefix.
"""

from typing import Dict, List, Sequence

import numpy as np

from antclock.core.fields import SystemState

WORLDLINE_DTYPE = np.dtype([
    ('t', np.float64),
    ('x_b', np.float64),
    ('v_b', np.float64),
    ('s', np.float64),
    ('tau', np.float64),
    ('theta', np.float64),
])

CF_MAX_DEPTH = 15
CF_REMAINDER_TOL = 1e-10
CF_COEFF_LIMIT = 1e6
VELOCITY_EPS = 1e-6

SCALAR_NAMES = ('velocity_ratio', 'displacement_time_ratio', 'entropy_velocity_ratio')


def extract_worldline(trajectory: Sequence[SystemState]) -> np.ndarray:
    """Structured array of (t, x_b, v_b, s, tau, theta) per state."""
    out = np.empty(len(trajectory), dtype=WORLDLINE_DTYPE)
    for i, state in enumerate(trajectory):
        iface = state.interface
        out[i] = (state.t, iface.x_b, iface.v_b, iface.s, iface.tau, iface.theta)
    return out


def unwrapped_displacement(worldline: np.ndarray, L: float) -> np.ndarray:
    """x_b relative to the start with periodic jumps removed."""
    x = worldline['x_b']
    if x.size == 0:
        return x.copy()
    steps = np.diff(x)
    steps -= L * np.round(steps / L)
    return np.concatenate(([0.0], np.cumsum(steps)))


def characteristic_scalars(worldline: np.ndarray, L: float) -> Dict[str, float]:
    """Dimensionless summaries of a worldline.

    velocity_ratio: peak speed over (slowest speed + 1e-6)
    displacement_time_ratio: |net displacement| over elapsed coordinate time
    entropy_velocity_ratio: final entropy over mean speed

    A worldline with fewer than two samples, or one spanning no time, gives 1.0
    for the affected ratios. An interface that never moves gives an
    entropy_velocity_ratio of 10.0 when it holds entropy and 1.0 otherwise.
    """
    if worldline.size < 2:
        return {name: 1.0 for name in SCALAR_NAMES}
    speed = np.abs(worldline['v_b'])
    elapsed = worldline['t'][-1] - worldline['t'][0]
    displacement = unwrapped_displacement(worldline, L)[-1]
    final_s = float(worldline['s'][-1])
    mean_speed = float(np.mean(speed))

    velocity_ratio = float(np.max(speed) / (np.min(speed) + VELOCITY_EPS))
    if elapsed < CF_REMAINDER_TOL:
        displacement_time_ratio = 1.0
    else:
        displacement_time_ratio = float(abs(displacement) / elapsed)
    if mean_speed < VELOCITY_EPS:
        entropy_velocity_ratio = 10.0 if final_s > 0 else 1.0
    else:
        entropy_velocity_ratio = final_s / mean_speed

    return {
        'velocity_ratio': velocity_ratio,
        'displacement_time_ratio': displacement_time_ratio,
        'entropy_velocity_ratio': entropy_velocity_ratio,
    }


def continued_fraction(value: float, max_depth: int = CF_MAX_DEPTH) -> List[int]:
    """Partial quotients [a0; a1, a2, ...] of ``value``.

    Expansion stops after ``max_depth`` terms, when the fractional remainder
    falls below 1e-10, or when the next quotient would exceed 1e6.
    """
    if not np.isfinite(value):
        raise ValueError(f"continued fraction of non-finite value {value}")
    coeffs = []
    x = float(value)
    for _ in range(max_depth):
        a = int(np.floor(x))
        coeffs.append(a)
        remainder = x - a
        if remainder < CF_REMAINDER_TOL:
            break
        x = 1.0 / remainder
        if x > CF_COEFF_LIMIT:
            break
    return coeffs


def reconstruct_continued_fraction(coeffs: Sequence[int]) -> float:
    if not coeffs:
        raise ValueError("need at least one coefficient")
    value = float(coeffs[-1])
    for a in reversed(coeffs[:-1]):
        value = a + 1.0 / value
    return value


def cf_reconstruction_error(value: float, reconstruction: float) -> float:
    """Relative error of a reconstruction; absolute when ``value`` is zero."""
    if value == 0:
        return abs(reconstruction)
    return abs((value - reconstruction) / value)


def worldline_signature(trajectory: Sequence[SystemState]) -> Dict[str, Dict]:
    """Characteristic scalars of a run and their continued-fraction expansions."""
    if not trajectory:
        raise ValueError("empty trajectory")
    worldline = extract_worldline(trajectory)
    scalars = characteristic_scalars(worldline, trajectory[0].L)
    signature = {}
    for name, value in scalars.items():
        coeffs = continued_fraction(value)
        signature[name] = {
            'value': value,
            'coefficients': coeffs,
            'depth': len(coeffs),
            'reconstruction_error': cf_reconstruction_error(
                value, reconstruct_continued_fraction(coeffs)),
        }
    return signature


def worldline_distance(first: np.ndarray, second: np.ndarray,
                       max_shift: float = 0.1, num_shifts: int = 21) -> float:
    """Smallest RMS difference of v_b between two worldlines over time shifts.

    Each shift in [-max_shift, max_shift] moves the first worldline's sample
    times; ``second`` is linearly interpolated there, and samples falling
    outside its time span are skipped. Returns inf when either worldline is
    too short to compare or no shift overlaps.
    """
    if first.size < 2 or second.size < 2:
        return float('inf')
    t1, t2 = first['t'], second['t']
    if t1[-1] - t1[0] < CF_REMAINDER_TOL or t2[-1] - t2[0] < CF_REMAINDER_TOL:
        return float('inf')

    best = float('inf')
    for shift in np.linspace(-max_shift, max_shift, num_shifts):
        target = t1 + shift
        inside = (target >= t2[0]) & (target <= t2[-1])
        if not np.any(inside):
            continue
        v2 = np.interp(target[inside], t2, second['v_b'])
        dv = first['v_b'][inside] - v2
        best = min(best, float(np.sqrt(np.mean(dv ** 2))))
    return best


def cf_signature_overlap(first: Sequence[int], second: Sequence[int]) -> int:
    """Number of leading continued-fraction coefficients the two share."""
    overlap = 0
    for a, b in zip(first, second):
        if a != b:
            break
        overlap += 1
    return overlap


def classify_trajectory(coefficients: Sequence[int],
                        references: Dict[str, Sequence[int]]) -> Dict[str, object]:
    """Nearest reference signature by common prefix, ties broken by L2 distance.

    The L2 distance pads the shorter coefficient list with zeros. Confidence is
    the overlap over max(depth, 3), capped at 1.
    """
    nearest, best_distance, best_overlap = None, float('inf'), 0
    for name, ref in references.items():
        overlap = cf_signature_overlap(coefficients, ref)
        width = max(len(coefficients), len(ref))
        a = np.zeros(width)
        b = np.zeros(width)
        a[:len(coefficients)] = coefficients
        b[:len(ref)] = ref
        distance = float(np.sqrt(np.sum((a - b) ** 2)))
        if nearest is None or overlap > best_overlap or (
                overlap == best_overlap and distance < best_distance):
            nearest, best_distance, best_overlap = name, distance, overlap

    confidence = best_overlap / max(len(coefficients), 3) if best_overlap > 0 else 0.0
    return {
        'nearest': nearest,
        'distance': best_distance,
        'overlap': best_overlap,
        'confidence': min(1.0, confidence),
    }
