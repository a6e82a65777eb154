"""
Two-time correlation functions ⟨op1(τ) op2(0)⟩ and their spectra.

By the quantum regression theorem the correlation obeys the same equations
as ⟨op1 op2⟩ with op2 frozen at τ = 0. To keep op2 from evolving, its
component is duplicated; op2 is placed on the copy, which takes part in no
Hamiltonian or dissipator, and then follows the usual derivation/closure.
"""

import logging

import numpy as np
import scipy.linalg
import sympy

from .average import Average, average, average_symbols
from .completion import _complete
from .config import get_default_settings
from .cumulant import cumulant_expansion
from .equations import HeisenbergEquation, heisenberg
from .errors import ConfigurationError, MissingAverageError
from .hilbertspace import ClusterAon, FockSpace, NLevelSpace, component, space_index, tensor
from .numeric import ODEFunction, _Compiler, _add_parameter_slots, _variable_slots, flatten_parameters
from .operators import (
    QNumber, _from_terms, acts_on, as_terms, embed_operator, get_order
)
from .scaling import scale_aons, substitute_redundants

__all__ = ['CorrelationFunction', 'initial_values', 'Spectrum']

logger = logging.getLogger(__name__)


def _copy_space(space):
    if isinstance(space, FockSpace):
        return FockSpace(f"{space.name}0")
    if isinstance(space, NLevelSpace):
        return NLevelSpace(f"{space.name}0", space.levels, space.GS)
    raise ConfigurationError(f"Cannot copy {space}")


def _embed_expression(x, hilbert):
    """Re-embed operators or averages on a larger space."""
    if isinstance(x, (list, tuple)):
        return [_embed_expression(y, hilbert) for y in x]
    if isinstance(x, QNumber):
        return embed_operator(x, hilbert)
    if isinstance(x, sympy.Basic):
        mapping = {
            avg: Average(tuple(f.embed(hilbert) for f in avg.factors))
            for avg in average_symbols(x)
        }
        return x.xreplace(mapping) if mapping else x
    return x


class CorrelationFunction:
    """Equations of the two-time correlation ⟨op1(τ) op2(0)⟩.

    Args:
        op1: Operator evaluated at time τ
        op2: Operator at time 0, acting on a single non-cluster component
        de0: Closed averaged equations of the system (the state at τ = 0)
        steady_state: Treat averages of de0 as constants (steady values)
        add_subscript: Suffix appended to the names of op2's operators
        filter_func: Filter passed to the completion
        mix_choice: See cumulant_expansion
        settings: CompletionSettings for the completion

    Attributes:
        op1, op2: Operators on the extended space (op2 on the copy)
        op2_0: op2 on its original component
        de0: de0 re-embedded on the extended space
        de: Closed equations of the correlation, de.lhs[0] = ⟨op1 op2⟩
        hilbert: Extended space
        aon0: Acts-on index of the copied component
        order: Cumulant order used
        order0: Highest order among the variables of de0

    Example:
        >>> c = CorrelationFunction(a.dag, a, he_steady, steady_state=True)
        >>> f = c.build_ode(ps)
    """

    def __init__(self, op1, op2, de0, steady_state=False, add_subscript=0,
                 filter_func=None, mix_choice=max, settings=None):
        if not de0.is_averaged:
            raise ConfigurationError("Correlation functions need averaged equations of the system")
        aons2 = acts_on(op2)
        if len(aons2) != 1 or isinstance(aons2[0], ClusterAon):
            raise ConfigurationError(
                f"op2 must act on a single non-cluster component, got acts-on {aons2}"
            )
        h0 = de0.hilbert
        original_aon = aons2[0]
        h = tensor(h0, _copy_space(component(h0, original_aon)))
        self.hilbert = h
        self.aon0 = len(h.spaces)
        self.original_aon = original_aon
        self.steady_state = steady_state

        suffix = "" if add_subscript is None else f"_{add_subscript}"
        self._copy_names = {}
        self.op1 = embed_operator(op1, h)
        self.op2_0 = embed_operator(op2, h)
        self.op2 = self._to_copy(self.op2_0, suffix)

        H = embed_operator(de0.hamiltonian, h)
        J = [embed_operator(j, h) for j in de0.jumps]
        self.de0 = HeisenbergEquation(
            _embed_expression(de0.lhs, h), _embed_expression(de0.rhs, h), H, J, de0.rates, h
        )

        order_lhs = max(get_order(l) for l in de0.lhs)
        order_corr = get_order(self.op1 * self.op2)
        self.order = max(order_lhs, order_corr)
        if self.order <= 1:
            raise ConfigurationError(
                "Cannot compute a correlation function at order 1; "
                "the system equations need at least second order"
            )
        self.order0 = order_lhs
        self._aons = scale_aons(h)
        self._steady_lhs = set(self.de0.lhs)

        he = heisenberg(self.op1 * self.op2, H, J, de0.rates)
        he = average(he, self.order, mix_choice=mix_choice)
        settings = (settings or get_default_settings()).override(mix_choice=mix_choice)
        self.de = _complete(he, self.order, filter_func, settings, aon_filter=self._filter_aon)
        logger.debug("Correlation function %s with %d equations", self.de.lhs[0], len(self.de))

    def _to_copy(self, op, suffix):
        terms = []
        for c, fs in as_terms(op):
            moved = []
            for f in fs:
                copy = f.embed(self.hilbert, aon=self.aon0, name=f"{f.name}{suffix}")
                self._copy_names[copy.name] = f.name
                moved.append(copy)
            terms.append((c, tuple(moved)))
        return _from_terms(terms)

    def _filter_aon(self, avg):
        aons = acts_on(avg)
        indices = {space_index(a) for a in aons}
        if self.aon0 in indices:
            return len(indices) > 1
        if self.steady_state:
            if avg in self._steady_lhs:
                return False
            adj = sympy.conjugate(avg)
            if self._aons:
                adj = substitute_redundants(adj, self._aons)
            return adj not in self._steady_lhs
        return True

    def _restore_leaf(self, f):
        if f.aon != self.aon0:
            return f
        if f.name not in self._copy_names:
            raise ConfigurationError(f"{f} is not an operator of the copied component")
        return f.embed(self.hilbert, aon=self.original_aon, name=self._copy_names[f.name])

    def restore(self, avg):
        """Average at τ = 0: copied operators moved back to their component."""
        return average(_from_terms([(1, tuple(self._restore_leaf(f) for f in avg.factors))]))

    def _is_copy_only(self, avg):
        return {space_index(a) for a in acts_on(avg)} == {self.aon0}

    def copy_averages(self):
        """Averages acting only on the copied component, in order of appearance."""
        found = []
        for r in self.de.rhs:
            for avg in average_symbols(r):
                if self._is_copy_only(avg) and avg not in found:
                    found.append(avg)
        return found

    def steady_expression(self, expr):
        """Express averages at τ = 0 through the variables of de0.

        Averages that are not variables of de0 (nor adjoints of one) are
        expanded to the order de0 was closed at.
        """
        known = _variable_slots(self.de0.lhs, self._aons)
        compiler = _Compiler(known, self._aons)
        try:
            for avg in average_symbols(expr):
                compiler.lookup(avg)
            return expr
        except MissingAverageError:
            expanded = cumulant_expansion(expr, self.order0)
            return substitute_redundants(expanded, self._aons) if self._aons else expanded

    def _steady_mapping(self):
        return {avg: self.steady_expression(self.restore(avg)) for avg in self.copy_averages()}

    def build_ode(self, ps=()):
        """Numeric ODE function of the correlation.

        In steady state the averages of op2 at τ = 0 are replaced by steady
        values, and the variables of de0 are appended to the parameters;
        otherwise the averages of op2 at τ = 0 are appended.
        """
        ps = flatten_parameters(list(ps))
        if self.steady_state:
            de = self.de.substitute(self._steady_mapping())
            return ODEFunction(de, ps + list(self.de0.lhs))
        return ODEFunction(self.de, ps + self.copy_averages())

    def __len__(self):
        return len(self.de)

    def __repr__(self):
        return f"CorrelationFunction({self.de.lhs[0]}, {len(self.de)} equations)"


def initial_values(corr, u_end):
    """Initial state of the correlation equations at τ = 0.

    Args:
        corr: CorrelationFunction
        u_end: State of de0 at the time the correlation starts

    Returns:
        Complex array in the order of corr.de.lhs

    Raises:
        MissingAverageError: If a value cannot be expressed through de0
    """
    aons = scale_aons(corr.hilbert)
    compiler = _Compiler(_variable_slots(corr.de0.lhs, aons), aons)
    values = []
    for l in corr.de.lhs:
        expr = corr.steady_expression(corr.restore(l))
        try:
            values.append(compiler.compile(expr)(u_end, ()))
        except MissingAverageError:
            raise MissingAverageError(f"Could not find an initial value for {l}") from None
    return np.array(values, dtype=complex)


class Spectrum:
    """Spectrum of a steady-state correlation function.

    The Laplace transform of the linear correlation equations
    dx/dτ = M x + c reads (iω - M) x(ω) = x(0) + c/(iω); the spectrum is
    S(ω) = 2 Re x_1(ω).

    Args:
        corr: CorrelationFunction with steady_state=True
        ps: Parameter symbols
    """

    def __init__(self, corr, ps=()):
        if not corr.steady_state:
            raise ConfigurationError(
                "Cannot use Laplace transform when not in steady state; "
                "use CorrelationFunction(..., steady_state=True)"
            )
        self.corr = corr
        self.omega = sympy.Symbol('ω', real=True)
        self.parameters = flatten_parameters(list(ps))
        de = corr.de.substitute(corr._steady_mapping())
        self.variables = list(de.lhs)
        self._matrix, self._constant = self._linear_system(de)
        self._initial = [corr.steady_expression(corr.restore(l)) for l in self.variables]

        aons = scale_aons(corr.hilbert)
        slots = _variable_slots(corr.de0.lhs, aons)
        _add_parameter_slots(slots, self.parameters + [self.omega], aons)
        compiler = _Compiler(slots, aons)
        n = len(self.variables)
        self._matrix_f = [
            (i, j, compiler.compile(self._matrix[i, j]))
            for i in range(n) for j in range(n) if self._matrix[i, j] != 0
        ]
        self._constant_f = [compiler.compile(c) for c in self._constant]
        self._initial_f = [compiler.compile(b) for b in self._initial]

    def _linear_system(self, de):
        n = len(self.variables)
        index = {v: k for k, v in enumerate(self.variables)}
        M = sympy.zeros(n, n)
        c = []
        for i, r in enumerate(de.rhs):
            constant = sympy.S.Zero
            for term in sympy.Add.make_args(sympy.expand(r)):
                found = [a for a in average_symbols(term) if a in index]
                if not found:
                    constant += term
                    continue
                if len(found) > 1 or sympy.degree(term, found[0]) != 1:
                    raise ConfigurationError(f"Correlation equation {self.variables[i]} is not linear")
                v = found[0]
                M[i, index[v]] += term / v
            c.append(constant)
        return M, c

    def symbolic(self, omega=None):
        """SymPy system (A, b) with A x(ω) = b."""
        omega = self.omega if omega is None else sympy.sympify(omega)
        n = len(self.variables)
        A = sympy.I * self.omega * sympy.eye(n) - self._matrix
        b = sympy.Matrix([x0 + c / (sympy.I * self.omega)
                          for x0, c in zip(self._initial, self._constant)])
        if omega is not self.omega:
            A, b = A.subs(self.omega, omega), b.subs(self.omega, omega)
        return A, b

    def __call__(self, omega, usteady, ps=(), wtol=0):
        """Evaluate the spectrum.

        Args:
            omega: Frequency or array of frequencies
            usteady: Steady state of the system equations
            ps: Parameter values
            wtol: Constant terms are dropped for |ω| <= wtol

        Returns:
            Real spectrum value (array for array input)
        """
        if np.ndim(omega) > 0:
            return np.array([self(w, usteady, ps, wtol) for w in omega])
        p = flatten_parameters(list(ps)) + [float(omega)]
        n = len(self.variables)
        A = 1j * omega * np.eye(n, dtype=complex)
        for i, j, f in self._matrix_f:
            A[i, j] -= f(usteady, p)
        b = np.array([f(usteady, p) for f in self._initial_f], dtype=complex)
        if abs(omega) > wtol:
            b += np.array([f(usteady, p) for f in self._constant_f], dtype=complex) / (1j * omega)
        x = scipy.linalg.solve(A, b)
        return 2 * x[0].real
