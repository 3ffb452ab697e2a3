"""
Tests of frequency grids, frequency response models and weights.
"""

import numpy as np
import control as ct
import pytest

from datadriven import (
    FrequencyResponseModel, Weight, WeightSet, freqresp, integration_weights,
    logspace2, makeweight, weightS, weightU,
)


class TestGrid:

    def test_logspace2_endpoints(self):
        w = logspace2(0.01, np.pi, 100)
        assert w.size == 100
        assert np.isclose(w[0], 0.01)
        assert np.isclose(w[-1], np.pi)
        assert np.all(np.diff(w) > 0)

    def test_logspace2_rejects_bad_range(self):
        with pytest.raises(ValueError):
            logspace2(1.0, 0.5, 10)

    def test_integration_of_constant(self):
        # ||1||_2 = 1 for a discrete-time static gain
        Ts = 0.01
        w = np.linspace(0, np.pi / Ts, 1000)[1:]
        weights = integration_weights(w, Ts)
        assert np.isclose(weights.sum(), 1.0, atol=2e-3)

    def test_integration_of_first_order(self):
        # ||1/(1 - a z^-1)||_2^2 = 1/(1 - a^2)
        a = 0.5
        w = np.linspace(1e-6, np.pi, 20001)
        g = freqresp(ct.tf([1, 0], [1, -a], 1), w)
        value = integration_weights(w, 1) @ np.abs(g)**2
        assert np.isclose(value, 1 / (1 - a**2), rtol=1e-4)


class TestFreqresp:

    def test_discrete(self):
        w = np.array([0.1, 1.0])
        g = freqresp(ct.tf([1], [1, -0.5], 0.1), w)
        z = np.exp(1j * w * 0.1)
        assert np.allclose(g, 1 / (z - 0.5))

    def test_continuous(self):
        w = np.array([0.1, 1.0])
        g = freqresp(ct.tf([1], [1, 1]), w)
        assert np.allclose(g, 1 / (1j * w + 1))

    def test_scalar_and_array(self):
        w = np.array([0.1, 1.0, 2.0])
        assert np.allclose(freqresp(2.0, w), 2.0)
        assert np.allclose(freqresp([1, 2, 3], w), [1, 2, 3])

    def test_callable(self):
        w = np.array([0.1, 1.0])
        assert np.allclose(freqresp(lambda omega: 1j * omega, w), 1j * w)

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            freqresp([1, 2], np.array([0.1, 1.0, 2.0]))


class TestFrequencyResponseModel:

    def test_from_system(self, plant, omega):
        model = FrequencyResponseModel.from_system(plant, omega)
        assert model.Ts == 1.0
        assert len(model) == omega.size
        assert np.allclose(model.response, 0.002 / (np.exp(1j * omega) - 1.002))
        assert model.system is plant

    def test_read_only(self, model):
        with pytest.raises(ValueError):
            model.response[0] = 0
        with pytest.raises(ValueError):
            model.omega[0] = 0

    def test_grid_beyond_nyquist(self):
        with pytest.raises(ValueError):
            FrequencyResponseModel([1.0, 4.0], [1, 1], Ts=1.0)

    def test_grid_not_increasing(self):
        with pytest.raises(ValueError):
            FrequencyResponseModel([1.0, 0.5], [1, 1], Ts=0.1)

    def test_system_sampling_period_mismatch(self, omega):
        with pytest.raises(ValueError):
            FrequencyResponseModel(omega, np.ones(omega.size), Ts=1.0,
                                   system=ct.tf([1], [1, -0.5], 0.5))

    def test_continuous_system_rejected(self, omega):
        with pytest.raises(ValueError):
            FrequencyResponseModel(omega, np.ones(omega.size), Ts=1.0,
                                   system=ct.tf([1], [1, 1]))


class TestWeights:

    def test_weight_normalization(self):
        w = Weight('a', 's', 1.0, norm=np.inf, bound=2)
        assert w.channel == 'S'
        assert w.norm == 'inf'
        assert w.bound == 2.0
        assert not w.is_objective

    def test_bad_channel(self):
        with pytest.raises(ValueError):
            Weight('a', 'X')

    def test_bad_norm(self):
        with pytest.raises(ValueError):
            Weight('a', 'S', norm='1')

    def test_bad_bound(self):
        with pytest.raises(ValueError):
            Weight('a', 'S', bound=0)

    def test_weight_set_needs_objective(self):
        with pytest.raises(ValueError):
            WeightSet([Weight('c', 'T', 1.0, 'inf', bound=1.0)])

    def test_weight_set_unique_names(self):
        with pytest.raises(ValueError):
            WeightSet([Weight('a', 'S'), Weight('a', 'T')])

    def test_from_structs(self, performance_weight, lowpass):
        ws = WeightSet.from_structs(o2={'W1': performance_weight}, con={'W2': lowpass})
        assert [w.name for w in ws] == ['o2.W1', 'con.W2']
        assert ws['o2.W1'].channel == 'S'
        assert ws['con.W2'].channel == 'T'
        assert ws['con.W2'].bound == 1.0
        assert len(ws.objectives) == 1
        assert len(ws.constraints) == 1

    def test_from_structs_unknown_slot(self):
        with pytest.raises(ValueError):
            WeightSet.from_structs(o2={'W5': 1.0})


class TestWeightGenerators:

    def test_makeweight_continuous(self):
        W = makeweight(2, 1.0, 0.1)
        assert np.isclose(abs(W.horner(0j)[0, 0]), 2)
        assert np.isclose(abs(W.horner(1j)[0, 0]), 1)
        assert np.isclose(abs(W.horner(1e8j)[0, 0]), 0.1, rtol=1e-3)

    def test_makeweight_discrete(self):
        Ts = 0.01
        W = makeweight(0.5, 10.0, 5, Ts)
        assert W.dt == Ts
        assert np.isclose(abs(W.horner(1.0)[0, 0]), 0.5)
        assert np.isclose(abs(W.horner(-1.0)[0, 0]), 5)
        assert np.isclose(abs(freqresp(W, [10.0])[0]), 1.0)

    def test_makeweight_invalid(self):
        with pytest.raises(ValueError):
            makeweight(2, 1.0, 3)

    def test_weightS(self):
        Ts = 0.01
        W = weightS(10.0, 2.0, 0.01, 1, Ts)
        assert W.dt == Ts
        # Low frequency gain 1/e, high frequency gain tends to 1/M
        assert np.isclose(abs(W.horner(1.0)[0, 0]), 100, rtol=1e-6)
        assert np.isclose(abs(W.horner(-1.0)[0, 0]), 0.5, rtol=1e-6)

    def test_weightU(self):
        Ts = 0.01
        W = weightU(10.0, 2.0, 0.01, 1, Ts)
        assert np.isclose(abs(W.horner(1.0)[0, 0]), 0.5, rtol=1e-6)
        assert np.isclose(abs(W.horner(-1.0)[0, 0]), 100, rtol=1e-6)
