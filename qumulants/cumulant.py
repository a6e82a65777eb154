"""
Cumulant expansion of averages and averaging of Heisenberg equations.

The joint cumulant of n operators vanishes above the truncation order, which
expresses every higher moment through lower ones:

    ⟨X1...Xn⟩ = Σ_{partitions P, |P| ≥ 2} (-1)^|P| (|P|-1)! Π_{B ∈ P} ⟨Π_{k∈B} Xk⟩

Blocks that are still above the order are expanded again.
"""

import logging
import math

import sympy
from sympy.utilities.iterables import multiset_partitions

from .average import Average, average, average_symbols
from .equations import HeisenbergEquation
from .errors import ConfigurationError
from .hilbertspace import space_index
from .scaling import scale_aons, scale_rhs, substitute_redundants

__all__ = ['cumulant_expansion', 'average_equations', 'check_order']

logger = logging.getLogger(__name__)


def check_order(order):
    """Validate a truncation order (int or per-component sequence)."""
    if isinstance(order, (list, tuple)):
        if not order:
            raise ConfigurationError("Per-component order must not be empty")
        for o in order:
            check_order(o)
        return
    if isinstance(order, bool) or not isinstance(order, int) or order < 1:
        raise ConfigurationError(f"Cumulant order must be a positive integer, got {order!r}")


def max_order(order):
    if isinstance(order, (list, tuple)):
        return max(order)
    return order


def _order_of(factors, order, mix_choice):
    if isinstance(order, int):
        return order
    try:
        return mix_choice([order[space_index(f.aon) - 1] for f in factors])
    except IndexError:
        raise ConfigurationError(
            f"Per-component order {order} does not cover {[str(f) for f in factors]}"
        ) from None


def _expand_factors(factors, order, mix_choice, cache):
    if len(factors) <= _order_of(factors, order, mix_choice):
        return Average(factors)
    if factors in cache:
        return cache[factors]
    result = sympy.S.Zero
    for partition in multiset_partitions(list(range(len(factors)))):
        p = len(partition)
        if p < 2:
            continue
        term = sympy.Integer((-1) ** p * math.factorial(p - 1))
        for block in partition:
            term *= _expand_factors(tuple(factors[k] for k in block), order, mix_choice, cache)
        result += term
    result = sympy.expand(result)
    cache[factors] = result
    return result


def cumulant_expansion(x, order, mix_choice=max):
    """Express averages above `order` through lower-order averages.

    Args:
        x: SymPy expression in averages (or a list of them)
        order: Truncation order, int or one entry per Hilbert-space component
        mix_choice: Picks the order of an average spanning components with
            different orders (default: max)

    Returns:
        Expanded expression in which no average exceeds the order

    Example:
        >>> cumulant_expansion(average(a.dag*a*b), 2)
        ⟨a†*a⟩*⟨b⟩ + ⟨a†*b⟩*⟨a⟩ + ⟨a*b⟩*⟨a†⟩ - 2*⟨a†⟩*⟨a⟩*⟨b⟩
    """
    check_order(order)
    if isinstance(x, (list, tuple)):
        return [cumulant_expansion(y, order, mix_choice) for y in x]
    x = sympy.sympify(x)
    cache = {}
    mapping = {}
    for avg in average_symbols(x):
        if avg.order > _order_of(avg.factors, order, mix_choice):
            mapping[avg] = _expand_factors(avg.factors, order, mix_choice, cache)
    if not mapping:
        return x
    return sympy.expand(x.xreplace(mapping))


def _unique_lhs(lhs, rhs):
    seen = set()
    kept_lhs, kept_rhs = [], []
    for l, r in zip(lhs, rhs):
        if l in seen:
            continue
        seen.add(l)
        kept_lhs.append(l)
        kept_rhs.append(r)
    return kept_lhs, kept_rhs


def average_equations(he, order=None, mix_choice=max):
    """Average a set of Heisenberg equations.

    Operator-level equations are averaged term by term after rescaling
    member sums to the cluster sizes; averaged equations are only expanded.

    Args:
        he: HeisenbergEquation
        order: Cumulant order (None: no truncation)
        mix_choice: See cumulant_expansion

    Returns:
        HeisenbergEquation with averages on both sides
    """
    if order is not None:
        check_order(order)
    aons = scale_aons(he.hilbert)
    if he.is_averaged:
        lhs, rhs = list(he.lhs), list(he.rhs)
    else:
        ops = he.lhs
        rhs_ops = scale_rhs(ops, he.rhs, he.hilbert) if aons else he.rhs
        lhs = [average(op) for op in ops]
        rhs = [average(r) for r in rhs_ops]
    if order is not None:
        rhs = [cumulant_expansion(r, order, mix_choice) for r in rhs]
    if aons:
        lhs = [substitute_redundants(l, aons) for l in lhs]
        rhs = [substitute_redundants(r, aons) for r in rhs]
        lhs, rhs = _unique_lhs(lhs, rhs)
    logger.debug("Averaged %d equations (order %s)", len(lhs), order)
    return HeisenbergEquation(lhs, rhs, he.hamiltonian, he.jumps, he.rates, he.hilbert)
