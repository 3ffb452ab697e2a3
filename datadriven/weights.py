from dataclasses import dataclass
import numpy as np
import control as ct

from .frd import freqresp


'''
Weighting functions for the closed-loop objectives and constraints
'''

# Closed-loop channels, with S = 1/(1+PK):
#   S: sensitivity, T: complementary sensitivity P*K*S,
#   U: control sensitivity K*S, V: process sensitivity P*S
CHANNELS = ("S", "T", "U", "V")

# Slots of the objective/constraint structures W1..W4
SLOTS = {"W1": "S", "W2": "T", "W3": "U", "W4": "V"}

_NORMS = {"2": "2", "h2": "2", "inf": "inf", "hinf": "inf"}


def _norm_kind(norm):
    if norm == 2:
        return "2"
    if norm == np.inf:
        return "inf"
    try:
        return _NORMS[str(norm).lower()]
    except KeyError:
        raise ValueError(f"Unknown norm kind {norm!r}, use '2' or 'inf'") from None


@dataclass(frozen=True)
class Weight:
    '''
    One weighted closed-loop term
    name    - unique name of the term
    channel - 'S', 'T', 'U' or 'V'
    weight  - LTI object, callable of omega, array over the grid or scalar
    norm    - '2' (energy, trapezoidal integral) or 'inf' (peak)
    bound   - None for an objective, upper bound on the weighted norm for a constraint
    '''
    name: str
    channel: str
    weight: object = 1.0
    norm: str = "2"
    bound: float = None

    def __post_init__(self):
        channel = str(self.channel).upper()
        if channel not in CHANNELS:
            raise ValueError(f"Unknown channel {self.channel!r}, use one of {CHANNELS}")
        object.__setattr__(self, "channel", channel)
        object.__setattr__(self, "norm", _norm_kind(self.norm))
        if self.bound is not None:
            bound = float(self.bound)
            if not bound > 0:
                raise ValueError(f"Bound of {self.name!r} must be positive")
            object.__setattr__(self, "bound", bound)

    @property
    def is_objective(self):
        return self.bound is None

    def response(self, omega, Ts):
        return freqresp(self.weight, omega, Ts)


class WeightSet:
    '''
    Immutable, ordered collection of named objectives and constraints.
    At least one objective is required.
    '''

    def __init__(self, weights):
        weights = tuple(weights)
        names = [w.name for w in weights]
        if len(set(names)) != len(names):
            raise ValueError("Weight names must be unique")
        if not any(w.is_objective for w in weights):
            raise ValueError("At least one objective is required")
        self._weights = weights

    @classmethod
    def from_structs(cls, o2=None, oinf=None, con=None, con2=None):
        '''
        Build a weight set from dictionaries keyed by slot W1..W4
        ws = WeightSet.from_structs(o2={'W1': W1}, con={'W2': W2})
        o2   - H2 objectives
        oinf - Hinf objectives
        con  - Hinf constraints ||W T||_inf <= 1
        con2 - H2 constraints ||W T||_2 <= 1
        '''
        groups = (("o2", o2, "2", None), ("oinf", oinf, "inf", None),
                  ("con", con, "inf", 1.0), ("con2", con2, "2", 1.0))
        weights = []
        for prefix, slots, norm, bound in groups:
            for slot, w in (slots or {}).items():
                if slot not in SLOTS:
                    raise ValueError(f"Unknown slot {slot!r}, use one of {tuple(SLOTS)}")
                weights.append(Weight(f"{prefix}.{slot}", SLOTS[slot], w, norm, bound))
        return cls(weights)

    @property
    def objectives(self):
        return tuple(w for w in self._weights if w.is_objective)

    @property
    def constraints(self):
        return tuple(w for w in self._weights if not w.is_objective)

    def __iter__(self):
        return iter(self._weights)

    def __len__(self):
        return len(self._weights)

    def __getitem__(self, name):
        for w in self._weights:
            if w.name == name:
                return w
        raise KeyError(name)

    def __repr__(self):
        return f"WeightSet({[w.name for w in self._weights]})"


def makeweight(dcgain, mid, hfgain, Ts=0):
    '''
    First order weight with given low frequency, crossover and high frequency gains
    W = makeweight(dcgain, mid, hfgain, Ts)
    dcgain - gain at zero frequency
    mid    - frequency where |W| = 1, or (frequency, magnitude)
    hfgain - gain at high frequency (at pi/Ts for discrete-time weights)
    Ts     - 0 for a continuous-time weight, otherwise the weight is discretized
             with a bilinear transform prewarped at the crossover frequency
    '''
    if np.isscalar(mid):
        freq, mag = float(mid), 1.0
    else:
        freq, mag = float(mid[0]), float(mid[1])
    ratio = ((hfgain / mag)**2 - 1) / (1 - (dcgain / mag)**2)
    if not ratio > 0:
        raise ValueError("Magnitude at mid frequency must lie between dcgain and hfgain")
    p = freq * np.sqrt(ratio)
    if Ts == 0:
        return ct.tf([hfgain, dcgain*p], [1, p])
    # Prewarped bilinear transform, s = c*(z-1)/(z+1) with c = freq/tan(freq*Ts/2)
    c = freq / np.tan(freq * Ts / 2)
    return ct.tf([hfgain*c + dcgain*p, dcgain*p - hfgain*c], [p + c, p - c], Ts)


def weightS(wb, M, e, n, Ts):
    '''
    Generate a typical discrete-time sensitivity weight function
    We = weightS(wb, M, e, n, Ts)
    wb - design frequency (where |We| is approximately 1)
    M - high frequency gain of 1/We; should be > 1
    e - low frequency gain of 1/We; should be < 1
    n - order of the weight
    Ts - sampling period, the continuous weight is discretized with a bilinear transform
    '''
    s = ct.tf('s')
    w1 = (s/pow(M, (1/n)) + wb) / (s + wb*pow(e, 1/n))
    w = ct.tf(1, 1)
    for i in range(n):
        w = w * w1
    return ct.sample_system(w, Ts, method='bilinear', prewarp_frequency=wb)


def weightU(wbc, M, e, n, Ts):
    '''
    Generate a typical discrete-time input sensitivity weight function
    Wu = weightU(wbc, M, e, n, Ts)
    wbc - design frequency (where |Wu| is approximately 1)
    M - low frequency gain of 1/Wu; should be > 1
    e - high frequency gain of 1/Wu; should be < 1
    n - order of the weight
    Ts - sampling period, the continuous weight is discretized with a bilinear transform
    '''
    s = ct.tf('s')
    w1 = (s + wbc/pow(M, (1/n))) / (pow(e, 1/n)*s + wbc)
    w = ct.tf(1, 1)
    for i in range(n):
        w = w * w1
    return ct.sample_system(w, Ts, method='bilinear', prewarp_frequency=wbc)
