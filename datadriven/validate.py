from dataclasses import dataclass, field
import logging
import numpy as np
import control as ct

from .controller import ControllerSpec, tfdata
from .errors import UnstabilizingControllerError, ConstraintViolationError
from .frd import integration_weights
from .problem import as_models


'''
Validation of synthesized controllers

The optimizer only works with linearized closed-loop terms on a frequency grid,
so the final controller is checked against the parametric plant models
(closed-loop poles) and against the true closed-loop responses (constraints).
'''

logger = logging.getLogger(__name__)


@dataclass
class ControllerDesign:
    '''
    Validated controller and its diagnostics
    controller   - ControllerSpec with the final coefficients
    num, den     - true numerator and denominator, descending powers of z
    Ts           - sampling period
    poles        - closed-loop poles, one array per model
    h2, hinf     - achieved (true) norms of the weighted terms
    initial_h2, initial_hinf - the same norms with the initial controller
    history      - objective of the linearized program at every iteration
    status       - termination status of the iterations
    iterations   - number of solver calls
    solver_result - SolverResult of the last iteration
    reduced      - controller after pole/zero cancellation, when requested
    '''
    controller: ControllerSpec
    num: np.ndarray
    den: np.ndarray
    Ts: float
    poles: list
    h2: dict
    hinf: dict
    initial_h2: dict = field(default_factory=dict)
    initial_hinf: dict = field(default_factory=dict)
    history: list = field(default_factory=list)
    status: object = None
    iterations: int = 0
    solver_result: object = None
    reduced: object = None

    @property
    def objective(self):
        return self.history[-1] if self.history else np.nan

    def tf(self, minreal_tol=None):
        return self.controller.tf(minreal_tol)


def closed_loop_poles(K, system):
    '''
    Poles of the feedback loop 1/(1 + P*K)
    p = closed_loop_poles(K, system)
    K      - ControllerSpec, control TransferFunction or (num, den)
    system - discrete-time plant model (control LTI object)

    The poles are the roots of nP*nK + dP*dK, so pole/zero cancellations
    between plant and controller are kept.
    '''
    if isinstance(K, ControllerSpec):
        nK, dK = K.reconstruct()
    else:
        nK, dK = tfdata(K)
    if not isinstance(system, ct.TransferFunction):
        system = ct.tf(system)
    nP, dP = tfdata(system)
    char = np.polyadd(np.polymul(dP, dK), np.polymul(nP, nK))
    char = np.trim_zeros(char, 'f')
    if char.size == 0:
        raise UnstabilizingControllerError("Closed loop is not well posed (1 + P*K = 0)")
    return np.roots(char)


def is_stable(poles):
    return bool(np.all(np.abs(poles) < 1))


def closed_loop_responses(K, P):
    '''
    Closed-loop channels from controller and plant responses on a grid
    Returns dict channel -> response for S, T, U, V
    '''
    S = 1 / (1 + P * K)
    return {'S': S, 'T': P * K * S, 'U': K * S, 'V': P * S}


def closed_loop_norms(controller, models, weights):
    '''
    True (not linearized) norms of every weighted term
    h2, hinf = closed_loop_norms(controller, models, weights)
    H2 terms use the trapezoidal integral on the grid (summed over models for
    objectives, worst model for constraints), Hinf terms the peak on the grid
    over all models.
    '''
    models = as_models(models)
    h2, hinf = {}, {}
    for w in weights:
        values = []
        for m in models:
            K = controller.frequency_response(m.omega)
            G = closed_loop_responses(K, m.response)[w.channel]
            WG = w.response(m.omega, m.Ts) * G
            if w.norm == '2':
                values.append(float(integration_weights(m.omega, m.Ts) @ np.abs(WG)**2))
            else:
                values.append(float(np.max(np.abs(WG))))
        if w.norm == '2':
            total = sum(values) if w.is_objective else max(values)
            h2[w.name] = np.sqrt(total)
        else:
            hinf[w.name] = max(values)
    return h2, hinf


def validate(controller, models, weights, constraint_tol=1e-3):
    '''
    Check the final controller
    poles, h2, hinf = validate(controller, models, weights, constraint_tol)
    Raises UnstabilizingControllerError if a closed-loop pole of any model has
    magnitude >= 1, ConstraintViolationError if a constraint exceeds its bound
    by more than the relative tolerance constraint_tol on the true responses.
    '''
    models = as_models(models)
    poles = []
    for k, m in enumerate(models):
        if m.system is None:
            raise ValueError(f"Model {k} has no parametric system to check closed-loop poles")
        p = closed_loop_poles(controller, m.system)
        radius = np.max(np.abs(p), initial=0.0)
        logger.debug("Model %d: closed-loop spectral radius %.6f", k, radius)
        if not is_stable(p):
            raise UnstabilizingControllerError(
                f"Controller does not stabilize model {k}: closed-loop pole with "
                f"magnitude {radius:.6f}", poles=p)
        poles.append(p)

    h2, hinf = closed_loop_norms(controller, models, weights)
    violated = {}
    for w in weights.constraints:
        value = h2[w.name] if w.norm == '2' else hinf[w.name]
        if value > w.bound * (1 + constraint_tol):
            violated[w.name] = value
    if violated:
        raise ConstraintViolationError(
            "Constraints violated by the true closed loop: " +
            ", ".join(f"{name}={value:.6g}" for name, value in violated.items()),
            values=violated)
    return poles, h2, hinf
