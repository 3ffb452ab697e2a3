import logging
import numpy as np
import control as ct
from scipy import signal

from .errors import MalformedFixedFactorError


'''
Fixed-structure parametrization of discrete-time controllers

K(z) = (num(z) * Fx(z)) / (den(z) * Fy(z))

Fx, Fy are fixed factors (e.g. Fy = [1, -1] for integral action), num and den
are the free polynomials. den[0] is normalized to 1 and is not a decision variable.
All polynomials are in descending powers of z.
'''

logger = logging.getLogger(__name__)

# Tolerance on the remainder of the fixed factor deconvolution
DECONV_TOL = 1e-9


def deconv(p, f, tol=DECONV_TOL):
    '''
    Exact polynomial division q = p / f
    Raises MalformedFixedFactorError if f does not divide p
    '''
    p = np.atleast_1d(np.asarray(p, dtype=float))
    f = np.atleast_1d(np.asarray(f, dtype=float))
    if f.size == 0 or f[0] == 0:
        raise MalformedFixedFactorError("Fixed factor must have a nonzero leading coefficient")
    if f.size > p.size:
        raise MalformedFixedFactorError(
            f"Fixed factor of degree {f.size - 1} does not fit a polynomial of degree {p.size - 1}")
    q, r = signal.deconvolve(p, f)
    scale = max(1.0, np.max(np.abs(p)))
    if np.max(np.abs(r), initial=0.0) > tol * scale:
        raise MalformedFixedFactorError(
            f"Fixed factor {f.tolist()} does not divide {p.tolist()} (remainder {r.tolist()})")
    return q


def tfdata(K):
    '''
    Numerator and denominator of a SISO controller as float arrays of equal length
    K - control TransferFunction, or (num, den) pair
    '''
    if isinstance(K, ct.TransferFunction):
        num, den = ct.tfdata(K)
        num, den = num[0][0], den[0][0]
    else:
        num, den = K
    num = np.trim_zeros(np.atleast_1d(np.asarray(num, dtype=float)), 'f')
    den = np.trim_zeros(np.atleast_1d(np.asarray(den, dtype=float)), 'f')
    if den.size == 0:
        raise ValueError("Controller denominator is zero")
    if num.size == 0:
        num = np.zeros(1)
    # Left padding keeps the relative degree
    n = max(num.size, den.size)
    num = np.concatenate((np.zeros(n - num.size), num))
    den = np.concatenate((np.zeros(n - den.size), den))
    return num, den


class ControllerSpec:
    '''
    Controller split into free polynomials num, den and fixed factors Fx, Fy

    num:   free numerator, length order + 2 - len(Fx)
    den:   free denominator with den[0] == 1, length order + 2 - len(Fy)
    Ts:    sampling period
    Fx:    fixed numerator factor
    Fy:    fixed denominator factor
    order: degree of the true numerator and denominator
    '''

    def __init__(self, num, den, Ts, Fx=(1.0,), Fy=(1.0,)):
        num = np.array(num, dtype=float).reshape(-1)
        den = np.array(den, dtype=float).reshape(-1)
        Fx = np.array(Fx, dtype=float).reshape(-1)
        Fy = np.array(Fy, dtype=float).reshape(-1)
        if Fx[0] == 0 or Fy[0] == 0:
            raise MalformedFixedFactorError("Fixed factors must have a nonzero leading coefficient")
        if den.size == 0 or den[0] == 0:
            raise ValueError("Leading coefficient of the free denominator must be nonzero")
        order = den.size + Fy.size - 2
        if num.size + Fx.size - 2 != order:
            raise ValueError(
                f"True numerator degree {num.size + Fx.size - 2} differs from "
                f"true denominator degree {order}")
        # Normalization: den[0] = 1
        num = num / den[0]
        den = den / den[0]
        for a in (num, den, Fx, Fy):
            a.flags.writeable = False
        self.num = num
        self.den = den
        self.Ts = float(Ts)
        self.Fx = Fx
        self.Fy = Fy
        self.order = order

    @classmethod
    def from_initial(cls, K0, order, Fx=(1.0,), Fy=(1.0,), Ts=None):
        '''
        Parametrize an initial controller at the requested order
        spec = ControllerSpec.from_initial(K0, order, Fx, Fy, Ts)
        K0    - initial stabilizing controller, discrete TransferFunction or (num, den)
        order - degree of the final controller numerator and denominator
        Fx    - fixed factor of the numerator
        Fy    - fixed factor of the denominator, must divide the (padded) initial denominator
        Ts    - sampling period, taken from K0 if not given

        Numerator and denominator are zero padded to order + 1 coefficients,
        i.e. multiplied by the same power of z, then the fixed factors are divided out.
        '''
        if Ts is None:
            Ts = getattr(K0, 'dt', None)
        if Ts is None or Ts is True or Ts == 0:
            raise ValueError("Sampling period of the controller is not specified")
        num, den = tfdata(K0)
        if den[0] == 0:
            raise ValueError("Initial controller must be proper")
        if num.size > order + 1:
            raise ValueError(
                f"Initial controller has degree {num.size - 1}, larger than order {order}")
        num = np.pad(num, (0, order + 1 - num.size))
        den = np.pad(den, (0, order + 1 - den.size))
        num_free = deconv(num, Fx)
        den_free = deconv(den, Fy)
        logger.debug("Initial controller parametrized: num=%s den=%s", num_free, den_free)
        return cls(num_free, den_free, Ts, Fx, Fy)

    @property
    def nnum(self):
        '''Number of free numerator coefficients'''
        return self.num.size

    @property
    def nden(self):
        '''Number of tunable denominator coefficients (den[0] excluded)'''
        return self.den.size - 1

    @property
    def coefficients(self):
        '''Tunable coefficient vector [num, den[1:]]'''
        return np.concatenate((self.num, self.den[1:]))

    def split(self, theta):
        theta = np.asarray(theta, dtype=float).reshape(-1)
        if theta.size != self.nnum + self.nden:
            raise ValueError(f"Expected {self.nnum + self.nden} coefficients, got {theta.size}")
        return theta[:self.nnum], theta[self.nnum:]

    def with_coefficients(self, theta):
        '''Same structure, new tunable coefficients'''
        num, den = self.split(theta)
        return ControllerSpec(num, np.concatenate(([1.0], den)), self.Ts, self.Fx, self.Fy)

    def reconstruct(self, free_num=None, free_den=None):
        '''
        True numerator and denominator
        num, den = reconstruct(free_num, free_den)
        free_den excludes the leading 1; the current coefficients are used when omitted
        '''
        if free_num is None:
            free_num = self.num
        if free_den is None:
            free_den = self.den[1:]
        num = np.convolve(np.asarray(free_num, dtype=float), self.Fx)
        den = np.convolve(np.concatenate(([1.0], np.asarray(free_den, dtype=float))), self.Fy)
        return num, den

    def frequency_response(self, omega):
        '''Controller response at z = exp(j*omega*Ts), Horner evaluation'''
        z = np.exp(1j * np.asarray(omega, dtype=float) * self.Ts)
        num, den = self.reconstruct()
        return np.polyval(num, z) / np.polyval(den, z)

    def tf(self, minreal_tol=None):
        '''
        Controller as a control TransferFunction
        minreal_tol - if given, cancel pole/zero pairs closer than this tolerance
        '''
        num, den = self.reconstruct()
        K = ct.tf(num, den, self.Ts)
        if minreal_tol is not None:
            K = ct.minreal(K, minreal_tol, verbose=False)
        return K

    def __repr__(self):
        return (f"ControllerSpec(order={self.order}, num={self.num.tolist()}, "
                f"den={self.den.tolist()}, Fx={self.Fx.tolist()}, Fy={self.Fy.tolist()}, Ts={self.Ts})")
