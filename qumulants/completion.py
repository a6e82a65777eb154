"""
Closing a set of averaged equations.

Every average occurring on a right-hand side must itself be a variable (or
the adjoint of one). Missing averages are collected, their equations derived
with the stored Hamiltonian and dissipator and appended until the set closes.
Averages rejected by a filter are not derived but set to zero.
"""

import logging

import sympy

from .average import average_symbols
from .config import get_default_settings
from .cumulant import average_equations, check_order, cumulant_expansion, max_order
from .equations import HeisenbergEquation, heisenberg
from .errors import ClosureDivergenceError, ConfigurationError
from .operators import embed_operator, get_order
from .scaling import scale_aons, substitute_redundants

__all__ = ['find_missing', 'unique_ops', 'complete']

logger = logging.getLogger(__name__)


def _adjoint_average(avg, aons):
    adj = sympy.conjugate(avg)
    return substitute_redundants(adj, aons) if aons else adj


def unique_ops(avgs, aons=()):
    """Drop duplicates and adjoints of earlier entries, keeping order.

    Args:
        avgs: Sequence of averages
        aons: Cluster-member indices used to canonicalize adjoints

    Returns:
        List containing one representative of every pair X, X†
    """
    seen = set()
    unique = []
    for avg in avgs:
        if avg in seen:
            continue
        # self-adjoint averages are their own representative
        seen.add(avg)
        seen.add(_adjoint_average(avg, aons))
        unique.append(avg)
    return unique


def find_missing(rhs, lhs=None, aons=None):
    """Averages on the right-hand sides that are not variables.

    An average counts as known when it or its adjoint is a left-hand side.

    Args:
        rhs: HeisenbergEquation, or list of right-hand side expressions
        lhs: Left-hand sides (taken from the equation set if omitted)
        aons: Cluster-member indices (taken from the equation set if omitted)

    Returns:
        List of missing averages in order of appearance

    Example:
        >>> find_missing(average(he))
        [⟨a⟩]
    """
    if isinstance(rhs, HeisenbergEquation):
        he = rhs
        rhs = he.rhs
        if lhs is None:
            lhs = he.lhs
        if aons is None:
            aons = scale_aons(he.hilbert)
    aons = aons or ()
    known = set(lhs or ())
    missing, seen = [], set()
    for r in rhs:
        if not isinstance(r, sympy.Basic):
            continue
        for avg in average_symbols(r):
            if avg in seen:
                continue
            seen.add(avg)
            if avg in known or _adjoint_average(avg, aons) in known:
                continue
            missing.append(avg)
    return missing


def _pending(rhs, lhs, aons, filter_func, aon_filter):
    missing = unique_ops(find_missing(rhs, lhs, aons), aons)
    if aon_filter is not None:
        missing = [m for m in missing if aon_filter(m)]
    if filter_func is not None:
        missing = [m for m in missing if filter_func(m)]
    return missing


def complete(he, order=None, filter_func=None, mix_choice=None, multithread=None,
             max_iterations=None, settings=None, verbose=None):
    """Extend an averaged set of equations until it is closed.

    Args:
        he: Averaged HeisenbergEquation
        order: Cumulant order (default: highest order in lhs and rhs)
        filter_func: Predicate on averages; rejected averages are not
            derived and are set to zero in the final right-hand sides
        mix_choice: See cumulant_expansion
        multithread: Derive missing equations in a thread pool
        max_iterations: Maximum number of completion rounds
        settings: CompletionSettings providing defaults for the options
        verbose: Print progress of every round

    Returns:
        Closed HeisenbergEquation (input equations first, in order)

    Raises:
        ConfigurationError: If the order is below the order of a lhs
        ClosureDivergenceError: If the set did not close within the cap

    Example:
        >>> he = complete(average(heisenberg(a.dag*a, H, J, rates), 2))
    """
    settings = (settings or get_default_settings()).override(
        mix_choice=mix_choice, multithread=multithread,
        max_iterations=max_iterations, verbose=verbose
    )
    return _complete(he, order, filter_func, settings)


def _complete(he, order, filter_func, settings, aon_filter=None):
    if not he.is_averaged:
        raise ConfigurationError("complete() needs averaged equations; use average(he) first")
    lhs, rhs = list(he.lhs), list(he.rhs)
    order_lhs = max(get_order(l) for l in lhs)
    if order is None:
        order = max([order_lhs] + [get_order(r) for r in rhs])
    check_order(order)
    if max_order(order) < order_lhs:
        raise ConfigurationError(
            f"Cannot form cumulant expansion of a derivative of order {order_lhs} "
            f"at order {order}; use a higher order"
        )
    aons = scale_aons(he.hilbert)
    rhs = [cumulant_expansion(r, order, settings.mix_choice) for r in rhs]
    if aons:
        rhs = [substitute_redundants(r, aons) for r in rhs]

    missing = _pending(rhs, lhs, aons, filter_func, aon_filter)
    iteration = 0
    while missing:
        iteration += 1
        if iteration > settings.max_iterations:
            raise ClosureDivergenceError(
                f"Equations did not close after {settings.max_iterations} iterations at order "
                f"{order}; {len(missing)} averages still missing",
                order=order, missing=missing
            )
        logger.debug("Completion iteration %d: %d missing averages", iteration, len(missing))
        if settings.verbose:
            print(f"Iteration {iteration}: deriving {len(missing)} equations")
        ops = [embed_operator(m.operator, he.hilbert) for m in missing]
        new = heisenberg(ops, he.hamiltonian, he.jumps, he.rates,
                         multithread=settings.multithread, max_workers=settings.max_workers)
        new = average_equations(new, order, mix_choice=settings.mix_choice)
        lhs.extend(new.lhs)
        rhs.extend(new.rhs)
        missing = _pending(rhs, lhs, aons, filter_func, aon_filter)

    if filter_func is not None:
        dropped = [m for m in unique_ops(find_missing(rhs, lhs, aons), aons)
                   if aon_filter is None or aon_filter(m)]
        zeros = {}
        for m in dropped:
            zeros[m] = sympy.S.Zero
            zeros[_adjoint_average(m, aons)] = sympy.S.Zero
        if zeros:
            logger.debug("Setting %d filtered averages to zero", len(dropped))
            rhs = [r.xreplace(zeros) if isinstance(r, sympy.Basic) else r for r in rhs]
    if settings.verbose:
        print(f"Closed set of {len(lhs)} equations after {iteration} iterations")
    return HeisenbergEquation(lhs, rhs, he.hamiltonian, he.jumps, he.rates, he.hilbert)
