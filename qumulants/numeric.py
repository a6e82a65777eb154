"""
Numeric right-hand sides for closed sets of averaged equations.

Right-hand sides are compiled once into trees of Python closures; evaluating
the ODE function then only walks these trees. Every average is looked up as
a state entry u[i], adjoints of variables as conj(u[i]); parameters come
from a flat parameter vector p.
"""

import cmath
import logging

import numpy as np
import sympy

from .average import Average, average
from .errors import MissingAverageError
from .operators import QNumber
from .scaling import scale_aons, substitute_redundants

__all__ = ['ODEFunction', 'build_ode', 'generate_ode', 'get_solution', 'flatten_parameters']

logger = logging.getLogger(__name__)


_FUNCTIONS = {
    sympy.exp: cmath.exp,
    sympy.sin: cmath.sin,
    sympy.cos: cmath.cos,
    sympy.tan: cmath.tan,
    sympy.sinh: cmath.sinh,
    sympy.cosh: cmath.cosh,
    sympy.log: cmath.log,
}


def flatten_parameters(ps):
    """Flatten nested parameter sequences (e.g. one symbol per cluster)."""
    if isinstance(ps, np.ndarray):
        ps = ps.tolist()
    if not isinstance(ps, (list, tuple)):
        return [ps]
    flat = []
    for p in ps:
        flat.extend(flatten_parameters(p))
    return flat


# ============================================================================
# COMPILER
# ============================================================================

class _Compiler:
    """Turns SymPy expressions into closures f(u, p).

    Args:
        slots: Dict symbol -> (source, index, conjugate) where source is
            'u' (state) or 'p' (parameters)
        aons: Cluster-member indices used to canonicalize unknown averages
    """

    def __init__(self, slots, aons=()):
        self.slots = slots
        self.aons = aons

    def lookup(self, symbol):
        slot = self.slots.get(symbol)
        if slot is None and self.aons and isinstance(symbol, Average):
            slot = self.slots.get(substitute_redundants(symbol, self.aons))
        if slot is None:
            raise MissingAverageError(f"{symbol} is neither a variable nor a parameter")
        return slot

    def compile(self, expr):
        expr = sympy.sympify(expr)
        if not expr.free_symbols:
            value = complex(sympy.N(expr))
            return lambda u, p: value

        if isinstance(expr, sympy.Symbol):
            source, idx, conj = self.lookup(expr)
            if source == 'u':
                if conj:
                    return lambda u, p: u[idx].conjugate()
                return lambda u, p: u[idx]
            if conj:
                return lambda u, p: p[idx].conjugate()
            return lambda u, p: p[idx]

        if expr.is_Add:
            terms = [self.compile(a) for a in expr.args]

            def add(u, p):
                total = 0
                for f in terms:
                    total += f(u, p)
                return total
            return add

        if expr.is_Mul:
            coeff, rest = expr.as_coeff_Mul()
            const = complex(coeff)
            factors = [self.compile(a) for a in sympy.Mul.make_args(rest)]

            def mul(u, p):
                result = const
                for f in factors:
                    result *= f(u, p)
                return result
            return mul

        if expr.is_Pow:
            base = self.compile(expr.base)
            exponent = expr.exp
            if exponent.is_Integer:
                n = int(exponent)
                return lambda u, p: base(u, p) ** n
            power = self.compile(exponent)
            return lambda u, p: base(u, p) ** power(u, p)

        if isinstance(expr, sympy.conjugate):
            arg = self.compile(expr.args[0])
            return lambda u, p: complex(arg(u, p)).conjugate()

        if isinstance(expr, sympy.re):
            arg = self.compile(expr.args[0])
            return lambda u, p: complex(arg(u, p)).real

        if isinstance(expr, sympy.im):
            arg = self.compile(expr.args[0])
            return lambda u, p: complex(arg(u, p)).imag

        if isinstance(expr, sympy.Abs):
            arg = self.compile(expr.args[0])
            return lambda u, p: abs(arg(u, p))

        func = _FUNCTIONS.get(expr.func)
        if func is not None:
            arg = self.compile(expr.args[0])
            return lambda u, p: func(arg(u, p))

        raise TypeError(f"Cannot compile {expr} ({type(expr).__name__})")


def _variable_slots(variables, aons):
    slots = {}
    for i, v in enumerate(variables):
        slots[v] = ('u', i, False)
    for i, v in enumerate(variables):
        if isinstance(v, Average):
            adj = sympy.conjugate(v)
            if aons:
                adj = substitute_redundants(adj, aons)
            slots.setdefault(adj, ('u', i, True))
    return slots


def _add_parameter_slots(slots, parameters, aons):
    for k, s in enumerate(parameters):
        slots.setdefault(s, ('p', k, False))
        if isinstance(s, Average):
            adj = sympy.conjugate(s)
            if aons:
                adj = substitute_redundants(adj, aons)
            slots.setdefault(adj, ('p', k, True))
    return slots


# ============================================================================
# ODE FUNCTION
# ============================================================================

class ODEFunction:
    """Numeric right-hand side of a closed set of averaged equations.

    Called as ``f(t, u, p)`` it returns du/dt, which matches the calling
    convention of ``scipy.integrate.solve_ivp(f, t_span, u0, args=(p,))``.

    Attributes:
        variables: Averages in state-vector order
        parameters: Flat list of parameter symbols in vector order
    """

    def __init__(self, equations, parameters=()):
        self.variables = list(equations.lhs)
        self.parameters = flatten_parameters(list(parameters))
        aons = scale_aons(equations.hilbert)
        slots = _variable_slots(self.variables, aons)
        _add_parameter_slots(slots, self.parameters, aons)
        compiler = _Compiler(slots, aons)
        self._aons = aons
        self._slots = slots
        self._functions = [compiler.compile(r) for r in equations.rhs]
        logger.debug("Compiled %d equations with %d parameters",
                     len(self._functions), len(self.parameters))

    def __len__(self):
        return len(self.variables)

    def _parameter_values(self, p):
        if p is None:
            p = ()
        if isinstance(p, dict):
            return self.parameter_vector(p)
        values = flatten_parameters(p)
        if len(values) != len(self.parameters):
            raise ValueError(
                f"Expected {len(self.parameters)} parameter values, got {len(values)}"
            )
        return values

    def __call__(self, t, u, p=()):
        values = self._parameter_values(p)
        du = np.empty(len(self._functions), dtype=complex)
        for i, f in enumerate(self._functions):
            du[i] = f(u, values)
        return du

    def inplace(self, du, u, p, t):
        """Write du/dt into `du`."""
        values = self._parameter_values(p)
        for i, f in enumerate(self._functions):
            du[i] = f(u, values)
        return du

    def index(self, x):
        """State index of a variable and whether it enters conjugated.

        Args:
            x: Average or operator product

        Returns:
            Tuple (index, conjugate)
        """
        if isinstance(x, QNumber):
            x = average(x)
        source, idx, conj = _Compiler(self._slots, self._aons).lookup(x)
        if source != 'u':
            raise MissingAverageError(f"{x} is a parameter, not a variable")
        return idx, conj

    def initial_state(self, values=None, dtype=complex):
        """State vector with the given entries, zero elsewhere.

        Args:
            values: Dict mapping averages (or operators, or their adjoints)
                to initial values
        """
        u0 = np.zeros(len(self.variables), dtype=dtype)
        for key, value in (values or {}).items():
            idx, conj = self.index(key)
            u0[idx] = np.conj(value) if conj else value
        return u0

    def parameter_vector(self, values):
        """Flat parameter vector from a dict symbol -> value.

        Values of sequence-valued entries are flattened alongside.
        """
        flat = {}
        for key, value in values.items():
            if isinstance(key, (list, tuple)):
                value = flatten_parameters(value)
                for k, v in zip(flatten_parameters(key), value):
                    flat[k] = v
            else:
                flat[key] = value
        try:
            return [flat[s] for s in self.parameters]
        except KeyError as e:
            raise MissingAverageError(f"No value given for parameter {e.args[0]}") from None


def build_ode(he, ps=()):
    """Build the numeric ODE function of a closed set of averaged equations.

    Args:
        he: Averaged HeisenbergEquation
        ps: Parameter symbols; nested sequences are flattened

    Returns:
        ODEFunction

    Raises:
        MissingAverageError: If a right-hand side contains a symbol that is
            neither a variable (or adjoint of one) nor a parameter

    Example:
        >>> f = build_ode(he, (Δ, g, κ))
        >>> sol = solve_ivp(f, (0, 10), f.initial_state(), args=([0, 1, 1],))
    """
    return ODEFunction(he, ps)


generate_ode = build_ode


# ============================================================================
# SOLUTIONS
# ============================================================================

def _trajectory(sol):
    if hasattr(sol, 'y'):
        return np.asarray(sol.y).T
    if hasattr(sol, 'u'):
        return np.asarray(sol.u)
    states = np.asarray(sol)
    if states.ndim == 1:
        return states[np.newaxis, :]
    return states


def get_solution(op, sol, he):
    """Time series of an operator's average along a solution.

    Args:
        op: Operator expression or expression in averages
        sol: SciPy OdeResult (states in `y` as (n, T)), or a (T, n) array /
            sequence of state vectors
        he: The equations the solution belongs to (averaged or operator-level)

    Returns:
        Complex array with one value per time point

    Example:
        >>> n = get_solution(a.dag * a, sol, he).real
    """
    states = _trajectory(sol)
    aons = scale_aons(he.hilbert)
    expr = average(op) if isinstance(op, QNumber) else sympy.sympify(op)
    variables = he.lhs
    if not he.is_averaged:
        variables = [average(l) for l in variables]
        if aons:
            variables = [substitute_redundants(v, aons) for v in variables]
    compiler = _Compiler(_variable_slots(variables, aons), aons)
    if isinstance(expr, Average):
        _, idx, conj = compiler.lookup(expr)
        column = states[:, idx]
        return np.conj(column) if conj else np.array(column)
    f = compiler.compile(expr)
    return np.array([f(u, ()) for u in states], dtype=complex)
