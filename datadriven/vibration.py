from dataclasses import dataclass, fields, replace
import logging
import warnings
import numpy as np
import control as ct

from .controller import ControllerSpec
from .errors import UnstabilizingControllerError
from .frd import FrequencyResponseModel, freqresp
from .synthesis import design
from .validate import closed_loop_poles, is_stable
from .weights import Weight, WeightSet


'''
Vibration controller for the tip/tilt loop of an adaptive optics system

The loop is modelled as WFS integration plus read-out (z^-1 (z+1)/2) and a
pure delay for the wavefront corrector lag. The data-driven controller starts
from an integrator and minimizes the H2 norm of the disturbance-weighted
sensitivity plus the H2 norm of the control sensitivity.
'''

logger = logging.getLogger(__name__)

# Pole/zero pairs closer than this are cancelled in the final controller
MINREAL_TOL = 1e-3


@dataclass
class VibrationParameters:
    '''
    Hyper-parameters of the vibration controller
    gain      - gain of the initial integrator
    order     - order of the data-driven controller
    bandwidth - frequency in Hz where the disturbance weight is normalized
    alpha     - scaling of the disturbance weight
    '''
    gain: float = 0.63
    order: int = 10
    bandwidth: float = 50.0
    alpha: float = 40.0

    def update(self, **kwargs):
        '''Set parameters by name, unknown names are skipped with a warning'''
        names = {f.name for f in fields(self)}
        for name, value in kwargs.items():
            if name in names:
                setattr(self, name, value)
            else:
                warnings.warn(f"Parameter name '{name}' is invalid for the vibration controller")
        return self


def ao_plant(Ts, tau_lag):
    '''
    Discrete-time model of WFS + wavefront corrector
    G = ao_plant(Ts, tau_lag)
    Ts      - sampling period, s
    tau_lag - corrector lag, s, rounded up to a whole number of samples
    '''
    nlag = int(np.ceil(round(tau_lag / Ts, 9)))
    wfs = ct.tf([1, 1], [2, 0], Ts)
    lag = ct.tf([1], np.concatenate(([1.0], np.zeros(nlag))), Ts)
    return wfs * lag


def integrator(gain, Ts):
    '''Discrete integrator gain/(1 - z^-1)'''
    return ct.tf([gain, 0], [1, -1], Ts)


def _disturbance_response(disturbance, omega, Ts):
    if isinstance(disturbance, FrequencyResponseModel):
        # Magnitude data on its own grid, interpolated in log frequency
        mag = np.interp(np.log(omega), np.log(disturbance.omega), np.abs(disturbance.response))
        return mag.astype(complex)
    return freqresp(disturbance, omega, Ts)


def design_vibration_controller(Ts, tau_lag, disturbance=None, flux_noise_rms=0.0,
                                parameters=None, nfreq=100, **kwargs):
    '''
    Design the data-driven vibration controller
    result = design_vibration_controller(Ts, tau_lag, disturbance, flux_noise_rms, parameters)
    Ts             - sampling period, s
    tau_lag        - corrector lag, s
    disturbance    - disturbance shaping filter: LTI object, FrequencyResponseModel,
                     callable of omega or array on the design grid.
                     White noise of level 2*Ts when omitted.
    flux_noise_rms - rms of the expected flux noise, ignored when 0
    parameters     - VibrationParameters
    nfreq          - number of grid points between 10^0.1 rad/s and pi/Ts
    kwargs         - passed to datadriven.design (backend, tol, max_iter, verbose, ...)
    result         - ControllerDesign, with the controller after pole/zero
                     cancellation (tolerance MINREAL_TOL) as result.reduced
    '''
    p = parameters or VibrationParameters()
    if disturbance is None:
        warnings.warn("Disturbance model is not defined, assuming band-limited "
                      "white noise with rms of 1")
        disturbance = 2 * Ts
    if flux_noise_rms == 0:
        warnings.warn("RMS value of expected flux noise is set to 0, "
                      "ignoring effects of flux noise")
        flux_noise_rms = 1.0

    G = ao_plant(Ts, tau_lag)
    K0 = integrator(p.gain, Ts)
    if not is_stable(closed_loop_poles(K0, G)):
        raise UnstabilizingControllerError("Initial integrator does not stabilize the loop")

    omega = np.logspace(0.1, np.log10(np.pi / Ts), int(nfreq))
    model = FrequencyResponseModel.from_system(G, omega, Ts)

    D = _disturbance_response(disturbance, omega, Ts)
    omega_b = 2 * np.pi * p.bandwidth
    if isinstance(disturbance, (FrequencyResponseModel, np.ndarray, list, tuple)):
        val = np.interp(np.log(omega_b), np.log(omega), np.abs(D))
    else:
        val = np.abs(freqresp(disturbance, [omega_b], Ts)[0])
    W1 = D / val / p.alpha / flux_noise_rms / 1.1

    weights = WeightSet([
        Weight('disturbance', 'S', W1, norm='2'),
        Weight('control', 'U', 1.0, norm='2'),
    ])
    controller = ControllerSpec.from_initial(K0, p.order, Fx=[1], Fy=[1, -1])
    logger.info("Designing order %d vibration controller, Ts=%g, lag=%g", p.order, Ts, tau_lag)
    result = design(controller, model, weights, **kwargs)

    K = result.tf(minreal_tol=MINREAL_TOL)
    poles = closed_loop_poles(K, G)
    if not is_stable(poles):
        raise UnstabilizingControllerError(
            "Reduced controller does not stabilize the loop", poles=poles)
    return replace(result, reduced=K)
