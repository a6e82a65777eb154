"""
Permutation symmetry of cluster members.

All members of a ClusterSpace are identical, so an average only depends on
which operators act on the same member, not on the member labels. Every
average is mapped to a canonical representative: member groups are sorted
by the reference order and relabelled 1, 2, ... in that order.

Sums over the explicit members of a cluster are rescaled to the true cluster
size N: a term that involves m members not present in the left-hand side
stands for (N - n)(N - n - 1)... choices of those members, represented by
(M - n)(M - n - 1)... explicit ones (n members in the lhs, M explicit).
"""

import logging

import sympy

from .average import Average, average_symbols
from .errors import ConfigurationError
from .hilbertspace import ClusterAon, aon_key, cluster_aons
from .operators import Create, Destroy, Transition, _from_terms, as_terms

__all__ = [
    'substitute_redundants', 'lt_reference_order',
    'scale_aons', 'scale_rhs', 'scale_factor'
]

logger = logging.getLogger(__name__)


# ============================================================================
# REFERENCE ORDER
# ============================================================================

def _leaf_reference_key(op):
    if isinstance(op, Create):
        return (op.name, 0)
    if isinstance(op, Destroy):
        return (op.name, 1)
    if isinstance(op, Transition):
        space = op.space
        i, j = space.level_index(op.i), space.level_index(op.j)
        return (op.name, 0 if i == j else 1, -i, j)
    raise TypeError(f"No reference order for {type(op)}")


def lt_reference_order(a, b):
    """Strict total order of operators of one type, ignoring the member.

    Creation comes before annihilation; populations come before
    coherences, higher upper levels first, then lower lower levels.

    Example:
        >>> lt_reference_order(σ('e','g')[0], σ('g','e')[1])
        True
    """
    return _leaf_reference_key(a) < _leaf_reference_key(b)


def _reference_key(group):
    """Sort key of the factors acting on one member: longer groups first."""
    return (-len(group), tuple(_leaf_reference_key(f) for f in group))


# ============================================================================
# CANONICAL REPRESENTATIVES
# ============================================================================

def scale_aons(hilbert):
    """All cluster-member acts-on indices of a space."""
    if hilbert is None:
        return []
    aons = []
    for _, (_, members) in cluster_aons(hilbert).items():
        aons.extend(members)
    return aons


def _allowed_members(aons):
    allowed = {}
    for aon in aons:
        allowed.setdefault(aon.i, []).append(aon.j)
    return {i: sorted(js) for i, js in allowed.items()}


def _canonical_factors(factors, allowed):
    relabel = {}
    for i, free in allowed.items():
        members = {}
        for f in factors:
            if isinstance(f.aon, ClusterAon) and f.aon.i == i:
                members.setdefault(f.aon.j, []).append(f)
        if not members:
            continue
        if len(members) > len(free):
            raise ConfigurationError(
                f"Average {[str(f) for f in factors]} uses {len(members)} members of "
                f"cluster {i}, but only {len(free)} are available"
            )
        ranked = sorted(members, key=lambda j: (_reference_key(members[j]), j))
        for new_j, old_j in zip(free, ranked):
            relabel[ClusterAon(i, old_j)] = ClusterAon(i, new_j)
    if not relabel:
        return factors
    moved = [f.embed(f.hilbert, aon=relabel[f.aon]) if f.aon in relabel else f for f in factors]
    moved.sort(key=lambda f: aon_key(f.aon))
    return tuple(moved)


def substitute_redundants(x, aons):
    """Replace averages by their canonical cluster representative.

    Args:
        x: Average or SymPy expression containing averages
        aons: ClusterAon indices of all members that may be used

    Returns:
        Expression where permutation-equivalent averages coincide

    Example:
        >>> substitute_redundants(average(σeg[0]*σee[1]), aons)
        ⟨σee_1*σeg_2⟩
    """
    if not aons:
        return x
    allowed = _allowed_members(aons)
    if isinstance(x, Average):
        factors = _canonical_factors(x.factors, allowed)
        return x if factors == x.factors else Average(factors)
    if isinstance(x, (list, tuple)):
        return [substitute_redundants(y, aons) for y in x]
    if not isinstance(x, sympy.Basic):
        return x
    mapping = {}
    for avg in average_symbols(x):
        factors = _canonical_factors(avg.factors, allowed)
        if factors != avg.factors:
            mapping[avg] = Average(factors)
    return x.xreplace(mapping) if mapping else x


# ============================================================================
# SCALING OF MEMBER SUMS
# ============================================================================

def _members(factors, i):
    return {f.aon.j for f in factors if isinstance(f.aon, ClusterAon) and f.aon.i == i}


def scale_factor(lhs_factors, term_factors, clusters):
    """Weight of a term involving cluster members absent from the lhs.

    Args:
        lhs_factors: Factors of the left-hand side product
        term_factors: Factors of the right-hand side term
        clusters: Dict component position -> ClusterSpace

    Returns:
        SymPy expression Π (N - n - k)/(M - n - k)
    """
    factor = sympy.S.One
    for i, space in clusters.items():
        lhs_members = _members(lhs_factors, i)
        n = len(lhs_members)
        m = len(_members(term_factors, i) - lhs_members)
        for k in range(m):
            explicit = space.order - n - k
            if explicit <= 0:
                raise ConfigurationError(
                    f"Term uses more members of cluster {i} than the {space.order} explicit ones"
                )
            factor *= (space.N - n - k) / sympy.Integer(explicit)
    return factor


def scale_rhs(lhs, rhs, hilbert):
    """Rescale operator-level right-hand sides to the true cluster sizes.

    Args:
        lhs: Left-hand side operator products
        rhs: Right-hand side operator expressions
        hilbert: Space containing the clusters

    Returns:
        List of rescaled right-hand sides
    """
    clusters = {i: space for i, (space, _) in cluster_aons(hilbert).items()}
    if not clusters:
        return list(rhs)
    scaled = []
    for l, r in zip(lhs, rhs):
        lhs_factors = as_terms(l)[0][1]
        _warn_saturated(lhs_factors, clusters)
        scaled.append(_from_terms(
            (coeff * scale_factor(lhs_factors, factors, clusters), factors)
            for coeff, factors in as_terms(r)
        ))
    return scaled


def _warn_saturated(lhs_factors, clusters):
    for i, space in clusters.items():
        if len(_members(lhs_factors, i)) == space.order and \
                any(not (isinstance(f.aon, ClusterAon) and f.aon.i == i) for f in lhs_factors):
            logger.warning(
                "%s uses all %d explicit members of cluster %d; couplings to further "
                "members are not represented", "*".join(str(f) for f in lhs_factors),
                space.order, i
            )
