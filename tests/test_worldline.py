"""Tests for worldline extraction, comparison and continued-fraction signatures."""

import math

import numpy as np
import pytest

from antclock.analysis.worldline import (WORLDLINE_DTYPE, cf_reconstruction_error,
                                         cf_signature_overlap, characteristic_scalars,
                                         classify_trajectory, continued_fraction,
                                         extract_worldline, reconstruct_continued_fraction,
                                         unwrapped_displacement, worldline_distance,
                                         worldline_signature)
from antclock.core.stepper import integrate
from antclock.scenarios import cliff


def make_worldline(t, v_b, x_b=None, s=None):
    out = np.zeros(len(t), dtype=WORLDLINE_DTYPE)
    out['t'] = t
    out['v_b'] = v_b
    if x_b is not None:
        out['x_b'] = x_b
    if s is not None:
        out['s'] = s
    return out


class TestContinuedFraction:

    def test_sqrt_two(self):
        coeffs = continued_fraction(math.sqrt(2), max_depth=10)
        assert coeffs == [1] + [2] * 9

    def test_golden_ratio(self):
        phi = (1 + math.sqrt(5)) / 2
        assert continued_fraction(phi, max_depth=12) == [1] * 12

    def test_rational_terminates(self):
        assert continued_fraction(0.75) == [0, 1, 3]
        assert continued_fraction(3.0) == [3]

    def test_negative_value(self):
        coeffs = continued_fraction(-0.5)
        assert coeffs == [-1, 2]

    def test_reconstruct_pi(self):
        coeffs = continued_fraction(math.pi)
        assert coeffs[:4] == [3, 7, 15, 1]
        assert reconstruct_continued_fraction(coeffs) == pytest.approx(math.pi, rel=1e-9)

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            continued_fraction(float('nan'))
        with pytest.raises(ValueError):
            reconstruct_continued_fraction([])

    def test_reconstruction_error(self):
        assert cf_reconstruction_error(2.0, 1.5) == pytest.approx(0.25)
        assert cf_reconstruction_error(-2.0, -1.5) == pytest.approx(0.25)
        assert cf_reconstruction_error(0.0, 0.3) == pytest.approx(0.3)
        assert cf_reconstruction_error(math.pi, 22 / 7) < 1e-3


class TestCharacteristicScalars:

    def test_ratios(self):
        worldline = make_worldline(t=[0.0, 1.0, 2.0], v_b=[0.1, -0.3, 0.2],
                                   x_b=[0.5, 0.6, 0.9], s=[0.0, 0.1, 0.4])
        scalars = characteristic_scalars(worldline, 2.0)
        assert scalars['velocity_ratio'] == pytest.approx(0.3 / (0.1 + 1e-6))
        assert scalars['displacement_time_ratio'] == pytest.approx(0.2)
        assert scalars['entropy_velocity_ratio'] == pytest.approx(2.0)

    def test_resting_interface(self):
        holding = make_worldline(t=[0.0, 1.0], v_b=[0.0, 0.0], s=[0.2, 0.4])
        empty = make_worldline(t=[0.0, 1.0], v_b=[0.0, 0.0])
        assert characteristic_scalars(holding, 2.0)['entropy_velocity_ratio'] == 10.0
        assert characteristic_scalars(empty, 2.0)['entropy_velocity_ratio'] == 1.0
        assert characteristic_scalars(empty, 2.0)['velocity_ratio'] == 0.0

    def test_no_elapsed_time(self):
        worldline = make_worldline(t=[1.0, 1.0], v_b=[0.1, 0.1], x_b=[0.0, 0.5])
        assert characteristic_scalars(worldline, 2.0)['displacement_time_ratio'] == 1.0

    def test_single_sample(self):
        scalars = characteristic_scalars(make_worldline(t=[0.0], v_b=[0.4]), 2.0)
        assert scalars == {'velocity_ratio': 1.0, 'displacement_time_ratio': 1.0,
                           'entropy_velocity_ratio': 1.0}


class TestWorldline:

    @pytest.fixture(scope="class")
    def trajectory(self):
        return integrate(cliff(), 30, 0.01)

    def test_extract(self, trajectory):
        worldline = extract_worldline(trajectory)
        assert worldline.shape == (31,)
        assert worldline['t'][-1] == pytest.approx(0.3)
        assert worldline['s'][0] == pytest.approx(0.1)
        assert worldline['theta'][0] == pytest.approx(0.5)

    def test_unwrapped_displacement(self):
        worldline = make_worldline(t=[0.0, 0.1, 0.2], v_b=[0.0] * 3, x_b=[1.9, 0.05, 0.2])
        disp = unwrapped_displacement(worldline, 2.0)
        assert np.allclose(disp, [0.0, 0.15, 0.3])

    def test_scalars_of_cliff_run(self, trajectory):
        worldline = extract_worldline(trajectory)
        scalars = characteristic_scalars(worldline, trajectory[0].L)
        speed = np.abs(worldline['v_b'])
        # the interface starts at rest
        assert scalars['velocity_ratio'] == pytest.approx(speed.max() / (speed.min() + 1e-6))
        assert scalars['velocity_ratio'] > 1.0
        assert scalars['entropy_velocity_ratio'] > 0.0

    def test_signature(self, trajectory):
        signature = worldline_signature(trajectory)
        for entry in signature.values():
            assert entry['coefficients'][0] == math.floor(entry['value'])
            assert entry['depth'] == len(entry['coefficients'])
            assert entry['reconstruction_error'] < 1e-6
            assert reconstruct_continued_fraction(entry['coefficients']) == \
                pytest.approx(entry['value'], rel=1e-6, abs=1e-9)

    def test_distance_to_itself(self, trajectory):
        worldline = extract_worldline(trajectory)
        assert worldline_distance(worldline, worldline) == pytest.approx(0.0, abs=1e-12)


class TestWorldlineDistance:

    def test_constant_offset(self):
        t = np.linspace(0.0, 1.0, 11)
        first = make_worldline(t, np.full(11, 0.2))
        second = make_worldline(t, np.full(11, 0.7))
        assert worldline_distance(first, second) == pytest.approx(0.5)

    def test_time_shift_is_absorbed(self):
        t = np.arange(201) * 0.01
        first = make_worldline(t, np.sin(t))
        second = make_worldline(t, np.sin(t - 0.05))
        aligned = worldline_distance(first, second)
        unshifted = worldline_distance(first, second, max_shift=0.0, num_shifts=1)
        assert aligned < 1e-4
        assert unshifted > 10 * aligned

    def test_incomparable_worldlines(self):
        t = np.linspace(0.0, 1.0, 5)
        line = make_worldline(t, np.zeros(5))
        assert worldline_distance(line[:1], line) == float('inf')
        assert worldline_distance(make_worldline([0.5, 0.5], [0.0, 0.0]), line) == float('inf')
        later = make_worldline(t + 5.0, np.zeros(5))
        assert worldline_distance(line, later) == float('inf')


class TestSignatureComparison:

    def test_overlap(self):
        assert cf_signature_overlap([1, 2, 3], [1, 2, 4]) == 2
        assert cf_signature_overlap([1, 2], [1, 2, 5]) == 2
        assert cf_signature_overlap([1], [2]) == 0
        assert cf_signature_overlap([], [1]) == 0

    def test_longest_prefix_wins(self):
        references = {'a': [1, 2, 2, 2], 'b': [1, 2, 3], 'c': [2]}
        verdict = classify_trajectory([1, 2, 3, 7], references)
        assert verdict['nearest'] == 'b'
        assert verdict['overlap'] == 3
        assert verdict['confidence'] == pytest.approx(0.75)
        assert verdict['distance'] == pytest.approx(7.0)

    def test_distance_breaks_ties(self):
        verdict = classify_trajectory([1, 2], {'x': [1, 5], 'y': [1, 3]})
        assert verdict['nearest'] == 'y'
        assert verdict['overlap'] == 1
        # short signatures are measured against a depth of three
        assert verdict['confidence'] == pytest.approx(1 / 3)

    def test_no_match(self):
        verdict = classify_trajectory([4], {'x': [1]})
        assert verdict['nearest'] == 'x'
        assert verdict['confidence'] == 0.0
        empty = classify_trajectory([1, 2], {})
        assert empty['nearest'] is None
        assert empty['distance'] == float('inf')
