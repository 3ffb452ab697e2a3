"""
Tests of the fixed-structure controller parametrization.
"""

import numpy as np
import control as ct
import pytest

from datadriven import ControllerSpec, MalformedFixedFactorError
from datadriven.controller import deconv, tfdata


class TestDeconv:

    def test_exact_division(self):
        q = deconv([1, -1, 0, 0], [1, -1])
        assert np.allclose(q, [1, 0, 0])

    def test_trivial_factor(self):
        q = deconv([50, -40, 0, 0], [1])
        assert np.allclose(q, [50, -40, 0, 0])

    def test_leading_zeros_keep_length(self):
        q = deconv([0, 0, 1, -1], [1, -1])
        assert q.size == 3
        assert np.allclose(q, [0, 0, 1])

    def test_remainder_raises(self):
        with pytest.raises(MalformedFixedFactorError):
            deconv([1, 0.5, 0, 0], [1, -1])

    def test_factor_too_long_raises(self):
        with pytest.raises(MalformedFixedFactorError):
            deconv([1, -1], [1, -2, 1])


class TestTfdata:

    def test_strictly_proper_is_left_padded(self):
        num, den = tfdata(ct.tf([1], [1, -1], 1))
        assert np.allclose(num, [0, 1])
        assert np.allclose(den, [1, -1])

    def test_pair(self):
        num, den = tfdata(([2, 1], [1, 0.5]))
        assert np.allclose(num, [2, 1])
        assert np.allclose(den, [1, 0.5])


class TestFromInitial:

    def test_padding_and_integrator(self, initial_controller):
        spec = ControllerSpec.from_initial(initial_controller, 3, Fy=[1, -1])
        assert np.allclose(spec.num, [101, -96, 0, 0])
        assert np.allclose(spec.den, [1, 0, 0])
        assert spec.nnum == 4
        assert spec.nden == 2
        assert spec.order == 3

    def test_reconstruct_is_padded_initial(self, initial_controller):
        spec = ControllerSpec.from_initial(initial_controller, 3, Fy=[1, -1])
        num, den = spec.reconstruct()
        assert np.allclose(num, [101, -96, 0, 0])
        assert np.allclose(den, [1, -1, 0, 0])

    def test_same_frequency_response(self, initial_controller, omega):
        spec = ControllerSpec.from_initial(initial_controller, 5, Fy=[1, -1])
        z = np.exp(1j * omega)
        expected = initial_controller.horner(z)[0, 0]
        assert np.allclose(spec.frequency_response(omega), expected)

    def test_strictly_proper_initial_controller(self, omega):
        K0 = ct.tf([0.5], [1, -1], 1)
        spec = ControllerSpec.from_initial(K0, 3, Fy=[1, -1])
        z = np.exp(1j * omega)
        assert np.allclose(spec.frequency_response(omega), K0.horner(z)[0, 0])

    def test_normalization(self):
        spec = ControllerSpec.from_initial(([4, 2], [2, -2]), 2, Fy=[1, -1], Ts=0.1)
        assert spec.den[0] == 1
        assert np.allclose(spec.num, [2, 1, 0])

    def test_fixed_factor_must_divide(self):
        K0 = ct.tf([1, 0], [1, -0.5], 1)
        with pytest.raises(MalformedFixedFactorError):
            ControllerSpec.from_initial(K0, 3, Fy=[1, -1])

    def test_order_too_low(self, initial_controller):
        with pytest.raises(ValueError):
            ControllerSpec.from_initial(initial_controller, 0)

    def test_improper_controller(self):
        with pytest.raises(ValueError):
            ControllerSpec.from_initial(([1, 0, 0], [1, -1]), 3, Ts=1)

    def test_missing_sampling_period(self):
        with pytest.raises(ValueError):
            ControllerSpec.from_initial(([1], [1, -1]), 3)

    def test_sampling_period_from_controller(self, initial_controller):
        spec = ControllerSpec.from_initial(initial_controller, 2, Fy=[1, -1])
        assert spec.Ts == 1.0


class TestRoundTrip:
    """Reconstruction followed by deconvolution is lossless"""

    @pytest.mark.parametrize("Fx, Fy", [
        ([1], [1, -1]),
        ([1, 0.5], [1, -1]),
        ([1], [1, -2, 1]),
        ([2, 1, 0.3], [1, -1.5, 0.56]),
    ])
    def test_round_trip(self, Fx, Fy):
        rng = np.random.default_rng(0)
        order = 6
        free_num = rng.normal(size=order + 2 - len(Fx))
        free_den = rng.normal(size=order + 1 - len(Fy))
        spec = ControllerSpec(free_num, np.concatenate(([1.0], free_den)), 1.0, Fx, Fy)
        num, den = spec.reconstruct(free_num, free_den)
        assert np.allclose(deconv(num, Fx), free_num, atol=1e-9)
        assert np.allclose(deconv(den, Fy), np.concatenate(([1.0], free_den)), atol=1e-9)

    def test_from_initial_of_reconstruction(self):
        spec = ControllerSpec([1.0, -0.3, 0.2], [1.0, 0.1], 0.5, Fx=[1], Fy=[1, -1])
        num, den = spec.reconstruct()
        again = ControllerSpec.from_initial((num, den), spec.order, Fx=[1], Fy=[1, -1], Ts=0.5)
        assert np.allclose(again.coefficients, spec.coefficients, atol=1e-9)


class TestOrder:

    @pytest.mark.parametrize("order", [1, 2, 3, 5, 8])
    def test_true_degree_equals_order(self, initial_controller, order):
        spec = ControllerSpec.from_initial(initial_controller, order, Fy=[1, -1])
        num, den = spec.reconstruct()
        assert num.size == order + 1
        assert den.size == order + 1
        assert den[0] == 1

    def test_with_coefficients_keeps_structure(self, spec):
        theta = np.arange(spec.nnum + spec.nden, dtype=float)
        new = spec.with_coefficients(theta)
        assert np.allclose(new.coefficients, theta)
        assert np.allclose(new.Fy, spec.Fy)
        assert new.order == spec.order

    def test_wrong_number_of_coefficients(self, spec):
        with pytest.raises(ValueError):
            spec.with_coefficients(np.zeros(2))

    def test_tf(self, spec):
        K = spec.tf()
        assert K.dt == spec.Ts
        num, den = tfdata(K)
        assert np.allclose(num, [101, -96, 0, 0])
        assert np.allclose(den, [1, -1, 0, 0])

    def test_tf_minreal(self, spec):
        K = spec.tf(minreal_tol=1e-6)
        assert len(ct.poles(K)) == 1
