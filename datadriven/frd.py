import logging
import numpy as np
import control as ct


'''
Frequency grids and frequency response models
'''

logger = logging.getLogger(__name__)


def logspace2(wmin, wmax, n):
    '''
    Logarithmically spaced frequency grid between wmin and wmax (both included)
    omega = logspace2(wmin, wmax, n)
    wmin - first frequency, rad/s, > 0
    wmax - last frequency, rad/s, usually pi/Ts
    n - number of points
    '''
    if wmin <= 0 or wmax <= wmin:
        raise ValueError("Frequency grid must satisfy 0 < wmin < wmax")
    return np.logspace(np.log10(wmin), np.log10(wmax), int(n))


def freqresp(g, omega, Ts=None):
    '''
    Complex response of g on the frequency grid omega
    r = freqresp(g, omega, Ts)
    g - control LTI object (SISO), callable of omega, array over the grid, or scalar
    omega - frequencies, rad/s, length m
    Ts - sampling period used for discrete-time objects whose dt is not a number
    r - complex array of length m

    Continuous-time objects are evaluated at s = j*omega, discrete-time
    objects at z = exp(j*omega*Ts).
    '''
    omega = np.asarray(omega, dtype=float).reshape(-1)
    if isinstance(g, ct.LTI):
        if g.ninputs != 1 or g.noutputs != 1:
            raise ValueError("Only SISO systems are supported")
        if ct.isdtime(g, strict=True):
            dt = g.dt if g.dt is not True else Ts
            if dt is None:
                raise ValueError("Sampling period of discrete-time system is not known")
            x = np.exp(1j * omega * dt)
        else:
            x = 1j * omega
        r = g.horner(x)[0, 0]
    elif callable(g):
        r = g(omega)
    else:
        r = g
    r = np.asarray(r, dtype=complex)
    if r.ndim == 0:
        r = np.full(omega.shape, complex(r))
    r = r.reshape(-1)
    if r.shape != omega.shape:
        raise ValueError(f"Response has {r.size} points, grid has {omega.size}")
    return r


def integration_weights(omega, Ts):
    '''
    Trapezoidal weights for the discrete-time H2 norm on a frequency grid
    w = integration_weights(omega, Ts)
    sum(w * |G(omega)|**2) approximates ||G||_2**2 = Ts/pi * int_0^{pi/Ts} |G|^2 domega
    '''
    omega = np.asarray(omega, dtype=float).reshape(-1)
    w = np.zeros_like(omega)
    if omega.size > 1:
        d = np.diff(omega)
        w[:-1] += d / 2
        w[1:] += d / 2
    return Ts / np.pi * w


class FrequencyResponseModel:
    '''
    Sampled frequency response of a SISO discrete-time plant

    omega:    strictly increasing positive frequencies, rad/s, at most pi/Ts
    response: complex gain at each frequency
    Ts:       sampling period
    system:   parametric discrete-time model the data was sampled from, if any.
              It is needed to check closed-loop poles of the final controller.

    Arrays are copied and made read-only.
    '''

    def __init__(self, omega, response, Ts, system=None):
        omega = np.array(omega, dtype=float).reshape(-1)
        response = np.array(response, dtype=complex).reshape(-1)
        if Ts is None or Ts <= 0:
            raise ValueError("Sampling period must be positive")
        if omega.size == 0:
            raise ValueError("Empty frequency grid")
        if omega.shape != response.shape:
            raise ValueError("omega and response must have the same length")
        if np.any(omega <= 0) or np.any(np.diff(omega) <= 0):
            raise ValueError("Frequency grid must be positive and strictly increasing")
        if omega[-1] > np.pi / Ts * (1 + 1e-9):
            raise ValueError("Frequency grid exceeds the Nyquist frequency pi/Ts")
        if not np.all(np.isfinite(response)):
            raise ValueError("Frequency response must be finite")
        if system is not None:
            if not ct.isdtime(system, strict=True):
                raise ValueError("Parametric model must be discrete-time")
            if system.dt is not True and not np.isclose(system.dt, Ts):
                raise ValueError(f"Parametric model has dt={system.dt}, expected {Ts}")
        omega.flags.writeable = False
        response.flags.writeable = False
        self.omega = omega
        self.response = response
        self.Ts = float(Ts)
        self.system = system

    @classmethod
    def from_system(cls, system, omega, Ts=None):
        '''
        Sample a discrete-time control system on the grid omega
        '''
        if Ts is None:
            Ts = system.dt
        if Ts is None or Ts is True:
            raise ValueError("Sampling period of the system is not specified")
        return cls(omega, freqresp(system, omega, Ts), Ts, system=system)

    @property
    def z(self):
        return np.exp(1j * self.omega * self.Ts)

    def __len__(self):
        return self.omega.size

    def __repr__(self):
        return (f"FrequencyResponseModel({self.omega.size} points, "
                f"{self.omega[0]:.3g}..{self.omega[-1]:.3g} rad/s, Ts={self.Ts})")
