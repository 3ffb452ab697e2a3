import numpy as np
import control as ct
import pytest

from datadriven import ControllerSpec, FrequencyResponseModel, Weight, WeightSet, logspace2


TS = 1.0


@pytest.fixture
def plant():
    # Unstable plant, pole at z = 1.002
    return ct.tf([0.002], [1, -1.002], TS)


@pytest.fixture
def initial_controller():
    # Discrete PI placing a double closed-loop pole at z = 0.9
    return ct.tf([101, -96], [1, -1], TS)


@pytest.fixture
def omega():
    return logspace2(0.01, np.pi / TS, 100)


@pytest.fixture
def model(plant, omega):
    return FrequencyResponseModel.from_system(plant, omega)


@pytest.fixture
def spec(initial_controller):
    return ControllerSpec.from_initial(initial_controller, 3, Fx=[1], Fy=[1, -1])


@pytest.fixture
def performance_weight():
    return ct.tf([1], [1, -1], TS)


@pytest.fixture
def lowpass():
    '''
    Inverse of a first order low-pass with DC gain 2, unit gain at 0.1*pi/Ts and
    no high frequency gain, discretized with a zero order hold.
    The denominator gets a factor z to stay proper, |z| = 1 on the grid.
    '''
    p = 0.1 * np.pi / TS / np.sqrt(3)
    a = np.exp(-p * TS)
    return ct.tf([1, -a], [2 * (1 - a), 0], TS)


@pytest.fixture
def weights(performance_weight, lowpass):
    return WeightSet([
        Weight('performance', 'S', performance_weight, norm='2'),
        Weight('robustness', 'T', lowpass, norm='inf', bound=1.0),
    ])
