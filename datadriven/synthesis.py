from dataclasses import dataclass, field, replace
from enum import Enum
import logging
import time
import numpy as np

from .controller import ControllerSpec
from .errors import SolverError
from .problem import as_models, build_subproblem
from .solvers import Backend, get_backend, solve
from .validate import ControllerDesign, closed_loop_norms, validate


'''
Iterative data-driven controller synthesis

Every iteration linearizes the closed-loop terms around the current controller,
solves the resulting convex program and takes its solution as the next
controller. The iterations stop when the objective changes by less than tol,
or after max_iter solver calls. The final controller is then validated.

The stopping rule is practical: the objective of the linearized programs is
non-increasing, but no global or local optimality is guaranteed.
'''

logger = logging.getLogger(__name__)


class Status(Enum):
    RUNNING = 'running'
    CONVERGED = 'converged'
    MAX_ITER = 'max_iter'
    FAILED = 'failed'


@dataclass
class DesignParameters:
    '''
    Tuning of the synthesis
    tol            - stop when the objective changes by less than tol
    max_iter       - maximum number of solver calls
    radius         - zeros of the free controller denominator are kept inside this radius
    stability_eps  - margin of the Nyquist and denominator conditions
    constraint_tol - relative tolerance of the final constraint check
    backend        - solver backend, see datadriven.solvers.Backend
    solver_options - keyword arguments for the backend
    verbose        - log every iteration at INFO level instead of DEBUG
    '''
    tol: float = 1e-4
    max_iter: int = 10000
    radius: float = 1.0
    stability_eps: float = 1e-5
    constraint_tol: float = 1e-3
    backend: object = Backend.CLARABEL
    solver_options: dict = field(default_factory=dict)
    verbose: bool = False

    def __post_init__(self):
        if not self.tol > 0:
            raise ValueError("tol must be positive")
        if int(self.max_iter) < 1:
            raise ValueError("max_iter must be at least 1")
        if not self.radius > 0:
            raise ValueError("radius must be positive")


@dataclass(frozen=True)
class IterationState:
    '''
    Controller estimate between two iterations
    theta     - tunable coefficients [num, den[1:]]
    objective - objective of the last solved program (inf before the first one)
    previous  - objective of the program before it
    iteration - number of solver calls so far
    status    - Status of the iterations
    result    - SolverResult of the last iteration
    '''
    theta: np.ndarray
    objective: float = np.inf
    previous: float = np.inf
    iteration: int = 0
    status: Status = Status.RUNNING
    result: object = None


@dataclass(frozen=True)
class Context:
    '''Fixed data of one design call'''
    controller: ControllerSpec
    models: tuple
    weights: object
    parameters: DesignParameters


def step(state, context):
    '''
    One iteration: linearize at state, solve, return the next state
    new_state = step(state, context)
    Solver failures propagate as SolverInfeasibleError / SolverNumericalError,
    with the failed state attached as .state
    '''
    p = context.parameters
    controller = context.controller.with_coefficients(state.theta)
    program = build_subproblem(controller, context.models, context.weights,
                               radius=p.radius, eps=p.stability_eps)
    iteration = state.iteration + 1
    try:
        result = solve(program, p.backend, **p.solver_options)
    except SolverError as e:
        e.iteration = iteration
        e.state = replace(state, iteration=iteration, status=Status.FAILED)
        raise

    if abs(result.objective - state.objective) < p.tol:
        status = Status.CONVERGED
    elif iteration >= p.max_iter:
        status = Status.MAX_ITER
    else:
        status = Status.RUNNING
    return IterationState(result.theta, result.objective, state.objective,
                          iteration, status, result)


def iterate(state, context):
    '''
    Run steps until the status is not RUNNING
    state, history = iterate(state, context)
    '''
    log = logger.info if context.parameters.verbose else logger.debug
    history = []
    while state.status is Status.RUNNING:
        state = step(state, context)
        history.append(state.objective)
        log("iter %d obj = %.5f diff = %.5f", state.iteration, state.objective,
            abs(state.previous - state.objective))
    log("Stopped after %d iterations: %s", state.iteration, state.status.value)
    return state, history


def design(controller, models, weights, parameters=None, **kwargs):
    '''
    Data-driven controller synthesis
    result = design(controller, models, weights, parameters, **kwargs)
    controller - ControllerSpec of an initial controller stabilizing all models
    models     - FrequencyResponseModel (with a parametric system) or list of them
    weights    - WeightSet with at least one objective
    parameters - DesignParameters; keyword arguments override its fields
    result     - ControllerDesign

    Raises UnknownSolverError, SolverInfeasibleError, SolverNumericalError,
    UnstabilizingControllerError or ConstraintViolationError. No controller is
    returned when an error is raised.
    '''
    parameters = replace(parameters or DesignParameters(), **kwargs)
    parameters = replace(parameters, backend=get_backend(parameters.backend))
    if not isinstance(controller, ControllerSpec):
        raise TypeError("controller must be a ControllerSpec, see ControllerSpec.from_initial")
    models = tuple(as_models(models))
    for k, m in enumerate(models):
        if not np.isclose(m.Ts, controller.Ts):
            raise ValueError(f"Model {k} has Ts={m.Ts}, controller has Ts={controller.Ts}")
        if m.system is None:
            raise ValueError(f"Model {k} has no parametric system to check closed-loop poles")

    log = logger.info if parameters.verbose else logger.debug
    initial_h2, initial_hinf = closed_loop_norms(controller, models, weights)
    log("Initial controller: H2 %s, Hinf %s", initial_h2, initial_hinf)

    context = Context(controller, models, weights, parameters)
    t_start = time.perf_counter()
    state, history = iterate(IterationState(controller.coefficients), context)
    log("Controller found in %.6f seconds.", time.perf_counter() - t_start)

    final = controller.with_coefficients(state.theta)
    poles, h2, hinf = validate(final, models, weights, parameters.constraint_tol)
    num, den = final.reconstruct()
    return ControllerDesign(final, num, den, final.Ts, poles, h2, hinf,
                            initial_h2, initial_hinf, history, state.status,
                            state.iteration, state.result)
