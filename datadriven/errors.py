'''
Errors raised by the data-driven controller synthesis
'''


class DataDrivenError(Exception):
    '''
    Base class of all synthesis errors
    '''


class MalformedFixedFactorError(DataDrivenError, ValueError):
    '''
    A fixed factor Fx/Fy does not divide the padded controller polynomial
    '''


class UnknownSolverError(DataDrivenError, ValueError):
    '''
    The requested solver backend is not known
    '''


class SolverError(DataDrivenError):
    '''
    The conic solver did not return a usable solution.
    result is the SolverResult of the failed call, when there is one,
    state the iteration state that failed when raised from the design loop.
    '''
    def __init__(self, message, result=None, iteration=None, state=None):
        super().__init__(message)
        self.result = result
        self.iteration = iteration
        self.state = state


class SolverInfeasibleError(SolverError):
    '''
    The convex sub-problem has no feasible point
    '''


class SolverNumericalError(SolverError):
    '''
    The solver failed for numerical reasons (ill-conditioning, internal error)
    '''


class UnstabilizingControllerError(DataDrivenError):
    '''
    A controller does not stabilize the closed loop.
    poles holds the closed-loop poles found for the offending model.
    '''
    def __init__(self, message, poles=None):
        super().__init__(message)
        self.poles = poles


class ConstraintViolationError(DataDrivenError):
    '''
    A constraint is violated by the true (not linearized) closed loop.
    values maps constraint names to the achieved norm.
    '''
    def __init__(self, message, values=None):
        super().__init__(message)
        self.values = values
