"""
Expectation values of operator products as SymPy symbols.

An Average is a commutative SymPy symbol that carries the normal-ordered
product of leaf operators it stands for. Two averages are equal iff their
products are equal, so right-hand sides built from averages can be handled
by SymPy (expansion, substitution, conjugation) like any other scalar
expression.
"""

import sympy

from .operators import BasicOperator, QMul, QNumber, as_terms, simplify_operators

__all__ = ['Average', 'average', 'average_symbols', 'cnumbers', 'cnumber', 'is_average']


class Average(sympy.Symbol):
    """Expectation value ⟨X1 X2 ... Xn⟩ of a product of leaf operators.

    Attributes:
        factors: Tuple of leaf operators in normal order
    """

    def __new__(cls, operator):
        """Create average of a single product.

        Args:
            operator: Leaf operator, QMul with unit coefficient, or a tuple of
                leaf operators already in normal order
        """
        if isinstance(operator, BasicOperator):
            factors = (operator,)
        elif isinstance(operator, QMul):
            if operator.coeff != 1:
                raise ValueError(f"Average needs a product with unit coefficient, got {operator}")
            factors = operator.factors
        elif isinstance(operator, tuple):
            factors = operator
        else:
            raise TypeError(f"Cannot average {type(operator)}; use average() for sums")
        if not factors:
            raise ValueError("Average of the identity is 1, not a variable")
        name = "⟨" + "*".join(str(f) for f in factors) + "⟩"
        obj = sympy.Symbol.__xnew__(cls, name)
        obj.factors = factors
        return obj

    def __getnewargs_ex__(self):
        return ((self.factors,), {})

    def _hashable_content(self):
        return super()._hashable_content() + (self.factors,)

    def _eval_conjugate(self):
        return average(QMul(1, self.factors).adjoint())

    @property
    def operator(self):
        """The averaged operator product."""
        if len(self.factors) == 1:
            return self.factors[0]
        return QMul(1, self.factors)

    @property
    def order(self):
        return len(self.factors)


def is_average(x):
    return isinstance(x, Average)


def average(x, order=None, mix_choice=max):
    """Expectation value of an operator expression.

    Averaging is linear: sums and scalar coefficients are pulled out, the
    identity averages to 1.

    Args:
        x: Operator expression, list of them, or a HeisenbergEquation
        order: If given, apply the cumulant expansion of this order
        mix_choice: Chooses the order of terms spanning components with
            different orders (only used when `order` is a sequence)

    Returns:
        SymPy expression in averages (or averaged HeisenbergEquation)

    Example:
        >>> average(a.dag * a + 2)
        ⟨a†*a⟩ + 2
    """
    from .equations import HeisenbergEquation

    if isinstance(x, HeisenbergEquation):
        from .cumulant import average_equations
        return average_equations(x, order, mix_choice=mix_choice)
    if isinstance(x, (list, tuple)):
        return [average(y, order, mix_choice) for y in x]
    if isinstance(x, QNumber):
        x = simplify_operators(x)
    if isinstance(x, sympy.Basic):
        expr = x
    else:
        expr = sympy.Add(*[
            coeff * (Average(factors) if factors else sympy.S.One)
            for coeff, factors in as_terms(x)
        ])
    if order is not None:
        from .cumulant import cumulant_expansion
        expr = cumulant_expansion(expr, order, mix_choice=mix_choice)
    return expr


def average_symbols(expr):
    """Averages occurring in an expression, in order of first appearance."""
    seen = set()
    found = []
    for node in sympy.preorder_traversal(expr):
        if isinstance(node, Average) and node not in seen:
            seen.add(node)
            found.append(node)
    return found


def cnumbers(names):
    """Create real-valued symbolic parameters.

    Args:
        names: Whitespace/comma separated string or sequence of names

    Returns:
        Tuple of SymPy symbols (conjugation leaves them unchanged)

    Example:
        >>> Δ, g, κ = cnumbers("Δ g κ")
    """
    if isinstance(names, str):
        names = names.replace(',', ' ').split()
    return tuple(sympy.Symbol(n, real=True) for n in names)


def cnumber(name):
    """Create a single real-valued symbolic parameter."""
    return sympy.Symbol(name, real=True)
