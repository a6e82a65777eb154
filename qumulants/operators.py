"""
Operator algebra: ladder and transition operators, products and sums.

Operator expressions form a closed set of kinds:
- leaves: Destroy, Create, Transition
- composites: QMul (coefficient times an ordered product of leaves) and
  QAdd (sum of QMul terms)

Every arithmetic operation returns its result in normal form:
- factors with different acts-on indices commute and are sorted by acts-on
- ladder operators of one mode are normal ordered (a a† = a† a + 1)
- transitions of one component merge (σij σkl = δjk σil)
- the ground-state projector σgg is rewritten as 1 - Σ σkk (k ≠ g)

Scalar coefficients are SymPy expressions.
"""

import itertools
import numbers

import sympy

from .errors import ConfigurationError
from .hilbertspace import (
    ClusterAon, ClusterSpace, FockSpace, NLevelSpace, ProductSpace,
    aon_key, component, space_index
)

__all__ = [
    'QNumber', 'BasicOperator', 'Destroy', 'Create', 'Transition', 'QMul', 'QAdd',
    'destroy', 'create', 'transition', 'comm', 'acomm', 'adjoint', 'acts_on',
    'get_order', 'simplify_operators', 'substitute_operators', 'as_terms',
    'operator_hilbert', 'embed_operator'
]


def _is_scalar(x):
    return isinstance(x, (numbers.Number, sympy.Basic)) and not isinstance(x, bool)


# ============================================================================
# ARITHMETIC
# ============================================================================

class QNumber:
    """Arithmetic shared by all operator expressions.

    Subclasses implement `as_terms()`, returning a list of
    (coefficient, factors) pairs, and `adjoint()`.

    Products are tuples of leaf operators, not SymPy non-commutative
    symbols: the commutation rules depend on the component each leaf acts
    on, which `sympy.physics.quantum.Operator` does not carry. Coefficients
    are always SymPy expressions.
    """

    __slots__ = ()

    def __mul__(self, other):
        """Non-commutative multiplication."""
        if isinstance(other, QNumber):
            return _from_terms(
                (c1 * c2, f1 + f2)
                for c1, f1 in self.as_terms()
                for c2, f2 in other.as_terms()
            )
        if _is_scalar(other):
            other = sympy.sympify(other)
            return _from_terms((c * other, f) for c, f in self.as_terms())
        return NotImplemented

    def __rmul__(self, other):
        """Right multiplication (for scalar * operator)."""
        if _is_scalar(other):
            other = sympy.sympify(other)
            return _from_terms((other * c, f) for c, f in self.as_terms())
        return NotImplemented

    def __truediv__(self, other):
        """Division by scalar."""
        if _is_scalar(other):
            return self * (sympy.S.One / sympy.sympify(other))
        return NotImplemented

    def __add__(self, other):
        if isinstance(other, QNumber):
            return _from_terms(self.as_terms() + other.as_terms())
        if _is_scalar(other):
            return _from_terms(self.as_terms() + [(sympy.sympify(other), ())])
        return NotImplemented

    def __radd__(self, other):
        if _is_scalar(other):
            return _from_terms([(sympy.sympify(other), ())] + self.as_terms())
        return NotImplemented

    def __sub__(self, other):
        if isinstance(other, QNumber) or _is_scalar(other):
            return self + (-1) * other
        return NotImplemented

    def __rsub__(self, other):
        if _is_scalar(other):
            return (-1) * self + other
        return NotImplemented

    def __neg__(self):
        return (-1) * self

    @property
    def dag(self):
        """Dagger shortcut: A.dag is the same as A.adjoint()"""
        return self.adjoint()

    @property
    def H(self):
        """Hermitian conjugate shortcut: A.H (numpy convention)"""
        return self.adjoint()


# ============================================================================
# LEAF OPERATORS
# ============================================================================

class BasicOperator(QNumber):
    """Operator acting on a single component (or a single cluster member).

    Attributes:
        hilbert: Space the operator was defined on
        name: Operator name
        aon: Acts-on index (int, or ClusterAon for cluster members)
    """

    __slots__ = ('hilbert', 'name', 'aon')

    _kind_rank = 0

    def _key(self):
        raise NotImplementedError("Subclasses must implement _key()")

    def __eq__(self, other):
        return type(self) is type(other) and self._key() == other._key()

    def __hash__(self):
        return hash((type(self).__name__,) + self._key())

    def __lt__(self, other):
        if not isinstance(other, BasicOperator):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def sort_key(self):
        return (aon_key(self.aon), self._kind_rank, self.name) + self._level_key()

    def _level_key(self):
        return ()

    def as_terms(self):
        return [(sympy.S.One, (self,))]

    def embed(self, hilbert, aon=None, name=None):
        """Copy of this operator on another space, acts-on index or name."""
        new = object.__new__(type(self))
        for slot in _all_slots(type(self)):
            object.__setattr__(new, slot, getattr(self, slot))
        new.hilbert = hilbert
        if aon is not None:
            new.aon = aon
        if name is not None:
            new.name = name
        return new

    def _suffix(self):
        if isinstance(self.aon, ClusterAon):
            return f"_{self.aon.j}"
        return ""

    def __repr__(self):
        return str(self)


def _all_slots(cls):
    slots = []
    for klass in cls.__mro__:
        slots.extend(getattr(klass, '__slots__', ()))
    return slots


def _resolve_aon(hilbert, aon, kind):
    """Find the acts-on position of a component of type `kind`."""
    if aon is not None:
        return aon
    if not isinstance(hilbert, ProductSpace):
        return 1
    candidates = []
    for idx, space in enumerate(hilbert.spaces, start=1):
        inner = space.original_space if isinstance(space, ClusterSpace) else space
        if isinstance(inner, kind):
            candidates.append(idx)
    if not candidates:
        raise ConfigurationError(f"No {kind.__name__} in {hilbert}")
    if len(candidates) > 1:
        raise ConfigurationError(
            f"More than one {kind.__name__} in {hilbert}! "
            f"Specify on which component the operator acts."
        )
    return candidates[0]


def _check_component(hilbert, aon, kind):
    if isinstance(hilbert, ProductSpace) and not isinstance(aon, ClusterAon):
        if isinstance(hilbert[aon], ClusterSpace):
            raise ConfigurationError(
                f"Component {aon} of {hilbert} is a cluster; "
                f"pass a ClusterAon or use the factory functions"
            )
    comp = component(hilbert, aon)
    if not isinstance(comp, kind):
        raise ConfigurationError(f"Cannot create {kind.__name__} operator on {comp}")
    return comp


class Destroy(BasicOperator):
    """Bosonic annihilation operator."""

    __slots__ = ()
    _kind_rank = 1

    def __init__(self, hilbert, name, aon=None):
        aon = _resolve_aon(hilbert, aon, FockSpace)
        _check_component(hilbert, aon, FockSpace)
        self.hilbert = hilbert
        self.name = name
        self.aon = aon

    def _key(self):
        return (self.name, self.aon)

    def adjoint(self):
        new = object.__new__(Create)
        new.hilbert, new.name, new.aon = self.hilbert, self.name, self.aon
        return new

    def __str__(self):
        return f"{self.name}{self._suffix()}"


class Create(BasicOperator):
    """Bosonic creation operator."""

    __slots__ = ()
    _kind_rank = 0

    def __init__(self, hilbert, name, aon=None):
        aon = _resolve_aon(hilbert, aon, FockSpace)
        _check_component(hilbert, aon, FockSpace)
        self.hilbert = hilbert
        self.name = name
        self.aon = aon

    def _key(self):
        return (self.name, self.aon)

    def adjoint(self):
        new = object.__new__(Destroy)
        new.hilbert, new.name, new.aon = self.hilbert, self.name, self.aon
        return new

    def __str__(self):
        return f"{self.name}{self._suffix()}†"


class Transition(BasicOperator):
    """Transition operator σij = |i⟩⟨j| on a discrete-level component.

    For i == j it is the projector on level i.
    """

    __slots__ = ('i', 'j')
    _kind_rank = 2

    def __init__(self, hilbert, name, i, j, aon=None):
        aon = _resolve_aon(hilbert, aon, NLevelSpace)
        comp = _check_component(hilbert, aon, NLevelSpace)
        for level in (i, j):
            if level not in comp.levels:
                raise ConfigurationError(f"Level {level!r} not in {comp.levels} of {comp}")
        self.hilbert = hilbert
        self.name = name
        self.aon = aon
        self.i = i
        self.j = j

    @property
    def space(self):
        return component(self.hilbert, self.aon)

    def _key(self):
        return (self.name, self.aon, self.i, self.j)

    def _level_key(self):
        space = self.space
        return (space.level_index(self.i), space.level_index(self.j))

    def with_levels(self, i, j):
        new = self.embed(self.hilbert)
        new.i = i
        new.j = j
        return new

    def adjoint(self):
        return self.with_levels(self.j, self.i)

    def __str__(self):
        return f"{self.name}{self.i}{self.j}{self._suffix()}"


# ============================================================================
# COMPOSITES
# ============================================================================

class QMul(QNumber):
    """Coefficient times an ordered product of leaf operators."""

    __slots__ = ('coeff', 'factors')

    def __init__(self, coeff, factors):
        self.coeff = sympy.sympify(coeff)
        self.factors = tuple(factors)

    def as_terms(self):
        return [(self.coeff, self.factors)]

    def adjoint(self):
        return _from_terms([(sympy.conjugate(self.coeff),
                             tuple(f.adjoint() for f in reversed(self.factors)))])

    def __eq__(self, other):
        if isinstance(other, QMul):
            return self.coeff == other.coeff and self.factors == other.factors
        return False

    def __hash__(self):
        return hash((self.coeff, self.factors))

    def __str__(self):
        ops = "*".join(str(f) for f in self.factors)
        if self.coeff == 1:
            return ops
        return f"({self.coeff})*{ops}"

    def __repr__(self):
        return str(self)


class QAdd(QNumber):
    """Sum of QMul terms (and possibly a scalar term with no factors)."""

    __slots__ = ('terms',)

    def __init__(self, terms):
        self.terms = tuple(terms)

    def as_terms(self):
        return [(t.coeff, t.factors) for t in self.terms]

    def adjoint(self):
        return _from_terms(
            (sympy.conjugate(c), tuple(f.adjoint() for f in reversed(fs)))
            for c, fs in self.as_terms()
        )

    def __eq__(self, other):
        if isinstance(other, QAdd):
            return dict((t.factors, t.coeff) for t in self.terms) == \
                dict((t.factors, t.coeff) for t in other.terms)
        return False

    def __hash__(self):
        return hash(frozenset((t.factors, t.coeff) for t in self.terms))

    def __str__(self):
        parts = []
        for t in self.terms:
            if not t.factors:
                parts.append(f"({t.coeff})")
            else:
                parts.append(str(t))
        return " + ".join(parts)

    def __repr__(self):
        return str(self)


# ============================================================================
# NORMAL FORM
# ============================================================================

def _merge_transitions(group):
    """Merge a product of transitions acting on one component."""
    if not all(isinstance(t, Transition) for t in group):
        raise TypeError(f"Cannot multiply {[str(g) for g in group]} on the same component")
    first = group[0]
    i, j = first.i, first.j
    for t in group[1:]:
        if t.i != j:
            return []
        j = t.j
    space = first.space
    merged = first if (i, j) == (first.i, first.j) else first.with_levels(i, j)
    if i == j == space.GS:
        alts = [(1, ())]
        for k in space.levels:
            if k != space.GS:
                alts.append((-1, (merged.with_levels(k, k),)))
        return alts
    return [(1, (merged,))]


def _normal_order_ladder(group):
    """Normal order a product of ladder operators of one mode."""
    if not all(isinstance(f, (Create, Destroy)) for f in group):
        raise TypeError(f"Cannot multiply {[str(g) for g in group]} on the same component")
    for k in range(len(group) - 1):
        if isinstance(group[k], Destroy) and isinstance(group[k + 1], Create):
            swapped = group[:k] + (group[k + 1], group[k]) + group[k + 2:]
            contracted = group[:k] + group[k + 2:]
            return _normal_order_ladder(swapped) + _normal_order_ladder(contracted)
    return [(1, group)]


def _normal_form(factors):
    """Expand a product of leaves into normal-ordered products.

    Returns:
        List of (integer coefficient, factors) pairs
    """
    if not factors:
        return [(1, ())]
    ordered = sorted(factors, key=lambda f: aon_key(f.aon))
    expansions = []
    for _, group in itertools.groupby(ordered, key=lambda f: f.aon):
        group = tuple(group)
        if isinstance(group[0], Transition):
            alts = _merge_transitions(group) if len(group) > 1 or _is_ground(group[0]) \
                else [(1, group)]
        elif len(group) > 1:
            alts = _normal_order_ladder(group)
        else:
            alts = [(1, group)]
        if not alts:
            return []
        expansions.append(alts)
    result = []
    for combo in itertools.product(*expansions):
        coeff = 1
        fs = ()
        for c, f in combo:
            coeff *= c
            fs += f
        result.append((coeff, fs))
    return result


def _is_ground(t):
    return t.i == t.j == t.space.GS


def _from_terms(raw_terms):
    """Normalize (coefficient, factors) pairs into the simplest expression."""
    collected = {}
    for coeff, factors in raw_terms:
        if coeff == 0:
            continue
        for c, fs in _normal_form(tuple(factors)):
            collected[fs] = collected.get(fs, sympy.S.Zero) + coeff * c
    terms = []
    for fs, coeff in collected.items():
        coeff = sympy.expand(coeff)
        if coeff != 0:
            terms.append(QMul(coeff, fs))
    if not terms:
        return sympy.S.Zero
    if len(terms) == 1:
        t = terms[0]
        if not t.factors:
            return t.coeff
        if t.coeff == 1 and len(t.factors) == 1:
            return t.factors[0]
        return t
    return QAdd(terms)


# ============================================================================
# GENERIC FUNCTIONS
# ============================================================================

def as_terms(x):
    """(coefficient, factors) pairs of an operator expression or scalar."""
    if isinstance(x, QNumber):
        return x.as_terms()
    if _is_scalar(x):
        return [(sympy.sympify(x), ())]
    raise TypeError(f"Cannot interpret {type(x)} as operator expression")


def simplify_operators(x):
    """Bring an operator expression into normal form."""
    if isinstance(x, (list, tuple)):
        return [simplify_operators(y) for y in x]
    if _is_scalar(x) and not isinstance(x, QNumber):
        return sympy.sympify(x)
    return _from_terms(as_terms(x))


def comm(A, B):
    """Compute commutator: [A, B] = AB - BA

    Args:
        A: First operator (leaf, QMul, QAdd or scalar)
        B: Second operator

    Returns:
        Commutator [A, B] in normal form
    """
    return simplify_operators(A * B - B * A)


def acomm(A, B):
    """Compute anticommutator: {A, B} = AB + BA

    Args:
        A: First operator (leaf, QMul, QAdd or scalar)
        B: Second operator

    Returns:
        Anticommutator {A, B} in normal form
    """
    return simplify_operators(A * B + B * A)


def adjoint(x):
    """Hermitian conjugate of an operator, average or scalar expression."""
    if isinstance(x, QNumber):
        return x.adjoint()
    if isinstance(x, (list, tuple)):
        return [adjoint(y) for y in x]
    if _is_scalar(x):
        return sympy.conjugate(sympy.sympify(x))
    raise TypeError(f"Cannot take adjoint of {type(x)}")


def acts_on(x):
    """Sorted list of acts-on indices an expression has support on."""
    if isinstance(x, BasicOperator):
        return [x.aon]
    aons = set()
    if isinstance(x, QNumber):
        for _, fs in x.as_terms():
            aons.update(f.aon for f in fs)
    elif isinstance(x, sympy.Basic):
        for avg in x.atoms(sympy.Symbol):
            aons.update(f.aon for f in getattr(avg, 'factors', ()))
    return sorted(aons, key=aon_key)


def get_order(x):
    """Number of leaf factors (maximum over terms and averages)."""
    if isinstance(x, BasicOperator):
        return 1
    if isinstance(x, QNumber):
        return max((len(fs) for _, fs in x.as_terms()), default=0)
    if isinstance(x, sympy.Basic):
        return max((len(s.factors) for s in x.atoms(sympy.Symbol) if hasattr(s, 'factors')),
                   default=0)
    return 0


def substitute_operators(x, mapping):
    """Replace leaf operators by other expressions.

    Args:
        x: Operator expression
        mapping: Dict from leaf operators to operator expressions or scalars

    Returns:
        Substituted expression in normal form
    """
    result = sympy.S.Zero
    for coeff, factors in as_terms(x):
        term = coeff
        for f in factors:
            term = term * mapping.get(f, f)
        result = result + term
    return simplify_operators(result)


def embed_operator(x, hilbert):
    """Move an operator expression onto another space with the same components."""
    if isinstance(x, BasicOperator):
        return x.embed(hilbert)
    if isinstance(x, QNumber):
        return _from_terms((c, tuple(f.embed(hilbert) for f in fs)) for c, fs in x.as_terms())
    return x


def operator_hilbert(x):
    """Hilbert space of the first leaf found in an expression (or None)."""
    if isinstance(x, BasicOperator):
        return x.hilbert
    if isinstance(x, QNumber):
        for _, fs in x.as_terms():
            if fs:
                return fs[0].hilbert
    if isinstance(x, (list, tuple)):
        for y in x:
            h = operator_hilbert(y)
            if h is not None:
                return h
    return None


# ============================================================================
# FACTORIES
# ============================================================================

def _cluster_or_single(hilbert, aon, build):
    if isinstance(hilbert, ProductSpace) and not isinstance(aon, ClusterAon):
        space = hilbert[aon]
        if isinstance(space, ClusterSpace):
            return [build(ClusterAon(aon, j)) for j in range(1, space.order + 1)]
    return build(aon)


def destroy(hilbert, name, aon=None):
    """Annihilation operator, or a list of member operators on a cluster.

    Example:
        >>> h = FockSpace('cavity') * ClusterSpace(FockSpace('mode'), N, 2)
        >>> a = destroy(h, 'a', 1)
        >>> b = destroy(h, 'b', 2)   # [b_1, b_2]
    """
    aon = _resolve_aon(hilbert, aon, FockSpace)
    return _cluster_or_single(hilbert, aon, lambda x: Destroy(hilbert, name, x))


def create(hilbert, name, aon=None):
    """Creation operator, or a list of member operators on a cluster."""
    aon = _resolve_aon(hilbert, aon, FockSpace)
    return _cluster_or_single(hilbert, aon, lambda x: Create(hilbert, name, x))


def transition(hilbert, name, i, j, aon=None):
    """Transition operator |i⟩⟨j|, or a list of member operators on a cluster.

    The projector on the ground state is returned in rewritten form
    1 - Σ σkk.
    """
    aon = _resolve_aon(hilbert, aon, NLevelSpace)

    def build(x):
        return simplify_operators(Transition(hilbert, name, i, j, x))

    return _cluster_or_single(hilbert, aon, build)
