from .errors import (
    DataDrivenError,
    MalformedFixedFactorError,
    UnknownSolverError,
    SolverError,
    SolverInfeasibleError,
    SolverNumericalError,
    UnstabilizingControllerError,
    ConstraintViolationError,
)
from .frd import FrequencyResponseModel, logspace2, freqresp, integration_weights
from .weights import Weight, WeightSet, makeweight, weightS, weightU
from .controller import ControllerSpec
from .problem import ConvexProgram, build_subproblem
from .solvers import Backend, SolverResult, get_backend, solve
from .validate import ControllerDesign, closed_loop_poles, closed_loop_norms, validate
from .synthesis import DesignParameters, IterationState, Status, design, iterate, step
from .vibration import VibrationParameters, ao_plant, integrator, design_vibration_controller
