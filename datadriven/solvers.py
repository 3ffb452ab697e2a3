from dataclasses import dataclass, field
from enum import Enum
import logging
import time
import numpy as np
import cvxpy as cp
import clarabel
from scipy import sparse

from .errors import UnknownSolverError, SolverInfeasibleError, SolverNumericalError


'''
Solver backends for the convex sub-problems

Both backends solve the same ConvexProgram:
  CVXPY    - generic conic modelling layer, any installed cvxpy solver can be used
  CLARABEL - the program data is handed directly to the Clarabel interior point
             solver, without a modelling layer in between
'''

logger = logging.getLogger(__name__)

OPTIMAL = 'optimal'
INFEASIBLE = 'infeasible'
NUMERICAL_ERROR = 'numerical_error'


class Backend(Enum):
    CVXPY = 'cvxpy'
    CLARABEL = 'clarabel'


_ALIASES = {
    'cvxpy': Backend.CVXPY,
    'generic': Backend.CVXPY,
    'clarabel': Backend.CLARABEL,
    'direct': Backend.CLARABEL,
}


def get_backend(name):
    '''
    Backend from its name or enum value
    Raises UnknownSolverError for anything else
    '''
    if isinstance(name, Backend):
        return name
    try:
        return _ALIASES[str(name).lower()]
    except KeyError:
        raise UnknownSolverError(
            f"Unknown solver backend {name!r}, use one of {sorted(_ALIASES)}") from None


@dataclass
class SolverResult:
    '''
    Outcome of one sub-problem solve
    status     - 'optimal', 'infeasible' or 'numerical_error'
    objective  - optimal value of the linearized program
    x          - full solution vector
    theta      - controller coefficients [num, den[1:]]
    h2, hinf   - per-term values of the linearized norms
    backend    - backend used
    solve_time - wall clock time of the solver call, s
    raw_status - status reported by the solver
    '''
    status: str
    objective: float = np.nan
    x: np.ndarray = None
    theta: np.ndarray = None
    h2: dict = field(default_factory=dict)
    hinf: dict = field(default_factory=dict)
    backend: Backend = None
    solve_time: float = 0.0
    raw_status: str = ''


def _solve_cvxpy(program, solver=None, verbose=False, **kwargs):
    x = cp.Variable(program.n)
    constraints = []
    if program.A_lin.shape[0] > 0:
        constraints += [program.A_lin @ x <= program.b_lin]
    if program.ncones > 0:
        s = [program.b_soc[:, i] - program.A_soc[:, i, :] @ x for i in range(4)]
        constraints += [cp.SOC(s[0], cp.vstack(s[1:]), axis=0)]
    problem = cp.Problem(cp.Minimize(program.c @ x), constraints)
    try:
        problem.solve(solver=solver, verbose=verbose, **kwargs)
    except cp.error.SolverError as e:
        return NUMERICAL_ERROR, None, np.nan, str(e)
    if problem.status in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE) and x.value is not None:
        if problem.status == cp.OPTIMAL_INACCURATE:
            logger.warning("cvxpy reports an inaccurate optimal solution")
        return OPTIMAL, np.asarray(x.value), float(problem.value), problem.status
    if problem.status in (cp.INFEASIBLE, cp.INFEASIBLE_INACCURATE):
        return INFEASIBLE, None, np.nan, problem.status
    return NUMERICAL_ERROR, None, np.nan, problem.status


def _solve_clarabel(program, verbose=False, **kwargs):
    n = program.n
    p = program.A_lin.shape[0]
    m = program.ncones
    P = sparse.csc_matrix((n, n))
    A = sparse.csc_matrix(np.vstack((program.A_lin, program.A_soc.reshape(m * 4, n))))
    b = np.concatenate((program.b_lin, program.b_soc.reshape(-1)))
    cones = []
    if p > 0:
        cones.append(clarabel.NonnegativeConeT(p))
    cones += [clarabel.SecondOrderConeT(4) for i in range(m)]

    settings = clarabel.DefaultSettings()
    settings.verbose = verbose
    for key, value in kwargs.items():
        setattr(settings, key, value)

    try:
        solver = clarabel.DefaultSolver(P, np.asarray(program.c, dtype=float), A, b, cones, settings)
        solution = solver.solve()
    except (ValueError, RuntimeError) as e:
        return NUMERICAL_ERROR, None, np.nan, str(e)
    raw = str(solution.status).split('.')[-1]
    if raw in ('Solved', 'AlmostSolved'):
        if raw == 'AlmostSolved':
            logger.warning("Clarabel reports an inaccurate optimal solution")
        return OPTIMAL, np.asarray(solution.x), float(solution.obj_val), raw
    if raw in ('PrimalInfeasible', 'AlmostPrimalInfeasible'):
        return INFEASIBLE, None, np.nan, raw
    return NUMERICAL_ERROR, None, np.nan, raw


def solve(program, backend=Backend.CLARABEL, **options):
    '''
    Solve a ConvexProgram
    result = solve(program, backend, **options)
    program - ConvexProgram from build_subproblem
    backend - Backend or its name
    options - passed to the backend: for CVXPY solver=<cvxpy solver name> and
              solver keyword arguments, for CLARABEL Clarabel settings
              (tol_gap_abs, tol_feas, max_iter, ...). verbose=True prints solver output.

    Raises SolverInfeasibleError or SolverNumericalError when no optimal point is found.
    '''
    backend = get_backend(backend)
    t_start = time.perf_counter()
    if backend is Backend.CVXPY:
        status, x, objective, raw = _solve_cvxpy(program, **options)
    elif backend is Backend.CLARABEL:
        status, x, objective, raw = _solve_clarabel(program, **options)
    else:
        raise UnknownSolverError(f"Unsupported backend {backend!r}")
    elapsed = time.perf_counter() - t_start

    result = SolverResult(status, objective, x, backend=backend,
                          solve_time=elapsed, raw_status=str(raw))
    logger.debug("%s: %s (%s) in %.3f s", backend.value, status, raw, elapsed)
    if status == INFEASIBLE:
        raise SolverInfeasibleError(
            f"Sub-problem is infeasible ({backend.value}: {raw})", result)
    if status != OPTIMAL:
        raise SolverNumericalError(
            f"Solver failed ({backend.value}: {raw})", result)

    result.theta = program.theta(x)
    result.h2, result.hinf = program.term_values(x)
    return result
