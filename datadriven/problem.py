from dataclasses import dataclass
import logging
import numpy as np

from .frd import FrequencyResponseModel, integration_weights


'''
Convex sub-problem of the data-driven synthesis

At the current controller estimate Kc = Xc/Yc the closed-loop denominator
D = P*X + Y is replaced in every weighted closed-loop term |W*N/D|^2 by the
affine lower bound

    PHI = 2*Re(conj(Dc)*D) - |Dc|^2 <= |D|^2

which is exact at the current estimate. Every bound |W*N|^2 <= gamma*PHI is
then a rotated second-order cone in the controller coefficients.

The program is stored in conic form, independent of the solver:

    minimize    c @ x
    subject to  A_lin @ x <= b_lin
                s_i = b_soc[i] - A_soc[i] @ x,  ||s_i[1:]|| <= s_i[0]

Every cone block has dimension 4.
'''

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Term:
    '''
    Bookkeeping of one weighted term in the program
    blocks   - indices of its cone blocks, one array per model
    epigraph - slices of its epigraph variables, one per model (H2),
               or a single slice of the shared peak variable (Hinf objective)
    integ    - trapezoidal weights, one array per model (H2 terms)
    '''
    name: str
    norm: str
    bound: float
    blocks: tuple
    epigraph: tuple
    integ: tuple


@dataclass(frozen=True)
class ConvexProgram:
    c: np.ndarray
    A_lin: np.ndarray
    b_lin: np.ndarray
    A_soc: np.ndarray
    b_soc: np.ndarray
    variables: dict
    terms: tuple

    @property
    def n(self):
        return self.c.size

    @property
    def ncones(self):
        return self.b_soc.shape[0]

    def theta(self, x):
        '''Controller coefficients from a solution vector'''
        return np.asarray(x)[self.variables['theta']]

    def slacks(self, x):
        '''Cone vectors s_i = b_soc[i] - A_soc[i] @ x'''
        return self.b_soc - self.A_soc @ np.asarray(x)

    def term_values(self, x):
        '''
        Norm values of the linearized terms at the solution x
        h2, hinf = term_values(x)
        h2   - name -> sqrt of the trapezoidal integral of the epigraph variables
                (summed over models for objectives, worst model for constraints)
        hinf - name -> square root of the worst per-frequency cone ratio |F|^2/PHI,
                times the bound for constraints
        '''
        x = np.asarray(x)
        s = self.slacks(x)
        h2, hinf = {}, {}
        for term in self.terms:
            if term.norm == '2':
                vals = [float(w @ np.maximum(x[sl], 0)) for w, sl in zip(term.integ, term.epigraph)]
                total = max(vals) if term.bound is not None else sum(vals)
                h2[term.name] = np.sqrt(total)
            elif term.bound is None:
                hinf[term.name] = np.sqrt(max(float(x[term.epigraph[0]][0]), 0.0))
            else:
                idx = np.concatenate(term.blocks)
                sb = s[idx]
                v = np.maximum((sb[:, 0] - sb[:, 3]) / 2, np.finfo(float).tiny)
                ratio = (sb[:, 1]**2 + sb[:, 2]**2) / 4 / v
                hinf[term.name] = term.bound * np.sqrt(np.max(ratio))
        return h2, hinf


def as_models(models):
    if isinstance(models, FrequencyResponseModel):
        models = [models]
    models = list(models)
    if not models:
        raise ValueError("At least one plant model is required")
    for m in models:
        if not isinstance(m, FrequencyResponseModel):
            raise TypeError(f"Expected FrequencyResponseModel, got {type(m).__name__}")
    return models


def basis(controller, z):
    '''
    Affine maps of the true numerator and denominator at the points z
    AX, AY, y0 = basis(controller, z)
    X(theta) = AX @ theta, Y(theta) = AY @ theta + y0, with theta = [num, den[1:]]
    '''
    nx, ny = controller.nnum, controller.nden
    Fxz = np.polyval(controller.Fx, z)
    Fyz = np.polyval(controller.Fy, z)
    Zx = np.power.outer(z, np.arange(nx - 1, -1, -1))
    Zy = np.power.outer(z, np.arange(ny, -1, -1))
    AX = np.zeros((z.size, nx + ny), dtype=complex)
    AY = np.zeros((z.size, nx + ny), dtype=complex)
    AX[:, :nx] = Fxz[:, None] * Zx
    AY[:, nx:] = Fyz[:, None] * Zy[:, 1:]
    y0 = Fyz * Zy[:, 0]
    return AX, AY, y0


def numerator(channel, P, AX, AY, y0):
    '''Affine map of the closed-loop numerator of channel (A, b): N = A @ theta + b'''
    if channel == 'S':
        return AY, y0
    if channel == 'T':
        return P[:, None] * AX, np.zeros_like(y0)
    if channel == 'U':
        return AX, np.zeros_like(y0)
    if channel == 'V':
        return P[:, None] * AY, P * y0
    raise ValueError(f"Unknown channel {channel!r}")


def closed_contour(A, b, omega, Ts):
    '''
    Vertices of the full contour from the grid points of a real-coefficient map
    A, b = closed_contour(A, b, omega, Ts)
    v(theta) = A @ theta + b at the grid points; the response at -omega is the
    conjugate, so the mirrored first and last vertices close the contour through
    omega = 0 and omega = pi/Ts.
    '''
    last = -2 if A.shape[0] > 1 and np.isclose(omega[-1] * Ts, np.pi) else -1
    A = np.concatenate((np.conj(A[:1]), A, np.conj(A[[last]])))
    b = np.concatenate((np.conj(b[:1]), b, np.conj(b[[last]])))
    return A, b


def polygon_rows(A, b, current, eps):
    '''
    Linear rows keeping every segment of a polygon on the same side of the origin
    G, h = polygon_rows(A, b, current, eps)
    A, b    - vertices v(theta) = A @ theta + b, in contour order
    current - vertices at the current controller
    G, h    - rows G @ theta <= h

    Segment k must satisfy Re(conj(n_k)*v) >= eps at both of its vertices, with
    n_k the unit bisector of the current vertices k and k+1. The current polygon
    satisfies every row, and the winding number about the origin is kept.
    '''
    mag = np.abs(current)
    u = current / np.where(mag > 0, mag, 1.0)
    n = u[:-1] + u[1:]
    n = n / np.where(np.abs(n) > 0, np.abs(n), 1.0)
    nc = np.conj(np.concatenate((n, n)))
    V = np.concatenate((A[:-1], A[1:]))
    v0 = np.concatenate((b[:-1], b[1:]))
    G = -np.real(nc[:, None] * V)
    h = np.real(nc * v0) - eps
    return G, h


class _Builder:
    '''Accumulates cone blocks and linear rows over a fixed variable layout'''

    def __init__(self, n, theta):
        self.n = n
        self.theta = theta
        self.A_soc, self.b_soc = [], []
        self.A_lin, self.b_lin = [], []
        self.ncones = 0

    def embed(self, A):
        '''Map coefficients acting on theta to the full variable vector'''
        out = np.zeros((A.shape[0], self.n), dtype=A.dtype)
        out[:, self.theta] = A
        return out

    def rotated_cone(self, AF, f0, Au, u0, Av, v0):
        '''
        |F|^2 <= u*v for every row, i.e. ||[2 Re F, 2 Im F, u - v]|| <= u + v
        F = AF @ x + f0, u = Au @ x + u0, v = Av @ x + v0
        Returns the indices of the new blocks
        '''
        A = -np.stack((Au + Av, 2*AF.real, 2*AF.imag, Au - Av), axis=1)
        b = np.stack((u0 + v0, 2*f0.real, 2*f0.imag, u0 - v0), axis=1)
        self.A_soc.append(A)
        self.b_soc.append(b)
        idx = np.arange(self.ncones, self.ncones + A.shape[0])
        self.ncones += A.shape[0]
        return idx

    def linear(self, A, b):
        '''A @ x <= b'''
        self.A_lin.append(np.atleast_2d(A))
        self.b_lin.append(np.atleast_1d(b))

    def soc(self):
        if not self.A_soc:
            return np.zeros((0, 4, self.n)), np.zeros((0, 4))
        return np.concatenate(self.A_soc), np.concatenate(self.b_soc)

    def lin(self):
        if not self.A_lin:
            return np.zeros((0, self.n)), np.zeros(0)
        return np.concatenate(self.A_lin), np.concatenate(self.b_lin)


def _layout(controller, models, weights):
    nth = controller.nnum + controller.nden
    variables = {'theta': slice(0, nth)}
    n = nth
    for w in weights:
        if w.norm == '2':
            for k, m in enumerate(models):
                variables[(w.name, k)] = slice(n, n + len(m))
                n += len(m)
        elif w.is_objective:
            variables[(w.name,)] = slice(n, n + 1)
            n += 1
    return variables, n


def build_subproblem(controller, models, weights, radius=1.0, eps=1e-5):
    '''
    Convex program whose solution is the next controller estimate
    program = build_subproblem(controller, models, weights, radius, eps)
    controller - ControllerSpec holding the current estimate
    models     - FrequencyResponseModel or list of them
    weights    - WeightSet
    radius     - the free denominator is kept free of zeros outside this radius
    eps        - margin of the Nyquist and denominator conditions
    '''
    models = as_models(models)
    variables, n = _layout(controller, models, weights)
    B = _Builder(n, variables['theta'])
    theta_c = controller.coefficients
    c = np.zeros(n)
    blocks = {w.name: [] for w in weights}
    epigraph = {w.name: [] for w in weights}
    integ = {w.name: [] for w in weights}

    for k, m in enumerate(models):
        z = m.z
        P = m.response
        npts = len(m)
        AX, AY, y0 = basis(controller, z)
        AD = P[:, None] * AX + AY
        Dc = AD @ theta_c + y0

        # Linearized |D|^2
        phi_A = B.embed(2 * np.real(np.conj(Dc)[:, None] * AD))
        phi_b = 2 * np.real(np.conj(Dc) * y0) - np.abs(Dc)**2

        # Nyquist condition on the closed polygon of D
        ADp, y0p = closed_contour(AD, y0, m.omega, m.Ts)
        G, h = polygon_rows(ADp, y0p, ADp @ theta_c + y0p, eps)
        B.linear(B.embed(G), h)

        zeros = np.zeros((npts, n))
        for w in weights:
            Wr = w.response(m.omega, m.Ts)
            AN, bN = numerator(w.channel, P, AX, AY, y0)
            AF = B.embed(Wr[:, None] * AN)
            f0 = Wr * bN
            if w.norm == '2':
                sl = variables[(w.name, k)]
                Au = zeros.copy()
                Au[np.arange(npts), np.arange(sl.start, sl.stop)] = 1.0
                idx = B.rotated_cone(AF, f0, Au, np.zeros(npts), phi_A, phi_b)
                wk = integration_weights(m.omega, m.Ts)
                if w.is_objective:
                    c[sl] += wk
                else:
                    row = np.zeros(n)
                    row[sl] = wk
                    B.linear(row, w.bound**2)
                epigraph[w.name].append(sl)
                integ[w.name].append(wk)
            elif w.is_objective:
                sl = variables[(w.name,)]
                Au = zeros.copy()
                Au[:, sl.start] = 1.0
                idx = B.rotated_cone(AF, f0, Au, np.zeros(npts), phi_A, phi_b)
                c[sl] = 1.0
                if not epigraph[w.name]:
                    epigraph[w.name].append(sl)
            else:
                idx = B.rotated_cone(AF / w.bound, f0 / w.bound,
                                     zeros, np.ones(npts), phi_A, phi_b)
            blocks[w.name].append(idx)

        # Free denominator keeps its zeros inside the radius
        if controller.nden > 0:
            Zy = np.power.outer(radius * z, np.arange(controller.nden, -1, -1))
            AYr = np.zeros((npts, controller.nnum + controller.nden), dtype=complex)
            AYr[:, controller.nnum:] = Zy[:, 1:]
            AYr, y0r = closed_contour(AYr, Zy[:, 0], m.omega, m.Ts)
            G, h = polygon_rows(AYr, y0r, AYr @ theta_c + y0r, eps)
            B.linear(B.embed(G), h)

    A_soc, b_soc = B.soc()
    A_lin, b_lin = B.lin()
    terms = tuple(
        Term(w.name, w.norm, w.bound, tuple(blocks[w.name]),
             tuple(epigraph[w.name]), tuple(integ[w.name]))
        for w in weights)
    logger.debug("Sub-problem: %d variables, %d cones, %d linear constraints",
                 n, A_soc.shape[0], A_lin.shape[0])
    return ConvexProgram(c, A_lin, b_lin, A_soc, b_soc, variables, terms)
