"""
Hilbert-space components and their composition.

Components are immutable value objects shared by every operator and equation
derived within one model. A ProductSpace is an ordered tuple of components;
the 1-based position of a component is the acts-on index of operators living
on it. Operators on a member of a ClusterSpace act on a ClusterAon.
"""

from dataclasses import dataclass, field
from typing import Any, Tuple

import sympy

from .errors import ConfigurationError

__all__ = [
    'HilbertSpace', 'FockSpace', 'NLevelSpace', 'ClusterSpace', 'ProductSpace',
    'ClusterAon', 'tensor', 'levels', 'ground_state', 'component',
    'space_index', 'aon_key', 'cluster_aons'
]


# ============================================================================
# COMPONENTS
# ============================================================================

class HilbertSpace:
    """Base class of all Hilbert spaces."""

    def __mul__(self, other):
        """Tensor product: h1 * h2 = h1 ⊗ h2"""
        if isinstance(other, HilbertSpace):
            return tensor(self, other)
        return NotImplemented

    @property
    def spaces(self):
        return (self,)


@dataclass(frozen=True)
class FockSpace(HilbertSpace):
    """Bosonic mode with infinitely many levels."""
    name: str

    def __str__(self):
        return f"ℋ({self.name})"


@dataclass(frozen=True, init=False)
class NLevelSpace(HilbertSpace):
    """Discrete system with a finite set of levels.

    Attributes:
        name: Name of the space
        levels: Tuple of level labels
        GS: Ground-state level, eliminated via population conservation
    """
    name: str
    levels: Tuple[Any, ...]
    GS: Any

    def __init__(self, name, levels, ground_state=None):
        """Create discrete-level space.

        Args:
            name: Name of the space
            levels: Number of levels n (labels 1..n) or a sequence of labels
            ground_state: Ground-state level (default: first level)
        """
        if isinstance(levels, int):
            levels = tuple(range(1, levels + 1))
        else:
            levels = tuple(levels)
        if len(levels) < 2:
            raise ConfigurationError(f"NLevelSpace needs at least two levels, got {levels}")
        if len(set(levels)) != len(levels):
            raise ConfigurationError(f"Levels must be unique, got {levels}")
        if ground_state is None:
            ground_state = levels[0]
        if ground_state not in levels:
            raise ConfigurationError(f"Ground state {ground_state!r} not in levels {levels}")
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'levels', levels)
        object.__setattr__(self, 'GS', ground_state)

    def level_index(self, level):
        """Position of a level label in the level tuple."""
        return self.levels.index(level)

    def __str__(self):
        return f"ℋ({self.name})"


@dataclass(frozen=True, init=False)
class ClusterSpace(HilbertSpace):
    """N identical copies of a component, represented by M explicit members.

    The explicit members (M = order) are enough to express every average of
    up to M distinct members; the true cluster size N may stay symbolic.
    """
    original_space: HilbertSpace
    N: Any
    order: int

    def __init__(self, original_space, N, order):
        if isinstance(original_space, (ProductSpace, ClusterSpace)):
            raise ConfigurationError("ClusterSpace needs a single component as original space")
        if not isinstance(order, int) or order < 1:
            raise ConfigurationError(f"Cluster order must be a positive integer, got {order!r}")
        object.__setattr__(self, 'original_space', original_space)
        object.__setattr__(self, 'N', sympy.sympify(N))
        object.__setattr__(self, 'order', order)

    @property
    def name(self):
        return self.original_space.name

    def __str__(self):
        return f"ℋ({self.name})^{self.order}"


@dataclass(frozen=True)
class ProductSpace(HilbertSpace):
    """Ordered composition of components."""
    spaces: Tuple[HilbertSpace, ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(self, 'spaces', tuple(self.spaces))

    def __len__(self):
        return len(self.spaces)

    def __getitem__(self, aon):
        """Component at 1-based position aon."""
        return self.spaces[aon - 1]

    def __str__(self):
        return " ⊗ ".join(str(h) for h in self.spaces)


def tensor(*spaces):
    """Tensor product of Hilbert spaces, flattening nested products."""
    flat = []
    for h in spaces:
        if isinstance(h, ProductSpace):
            flat.extend(h.spaces)
        elif isinstance(h, (list, tuple)):
            flat.extend(tensor(*h).spaces)
        elif isinstance(h, HilbertSpace):
            flat.append(h)
        else:
            raise TypeError(f"Cannot tensor {type(h)} with a Hilbert space")
    return ProductSpace(tuple(flat))


# ============================================================================
# ACTS-ON INDICES
# ============================================================================

@dataclass(frozen=True, order=True)
class ClusterAon:
    """Member j (1-based) of the cluster at component position i (1-based)."""
    i: int
    j: int

    def __str__(self):
        return f"{self.i}:{self.j}"


def space_index(aon):
    """Component position of an acts-on index."""
    if isinstance(aon, ClusterAon):
        return aon.i
    return aon


def aon_key(aon):
    """Sort key ordering plain and cluster acts-on indices together."""
    if isinstance(aon, ClusterAon):
        return (aon.i, aon.j)
    return (aon, 0)


def component(h, aon):
    """The atomic component an operator with acts-on `aon` lives on."""
    if isinstance(h, ProductSpace):
        idx = space_index(aon)
        if not 1 <= idx <= len(h.spaces):
            raise ConfigurationError(f"Acts-on index {aon} out of range for {h}")
        h = h.spaces[idx - 1]
    elif space_index(aon) != 1:
        raise ConfigurationError(f"Acts-on index {aon} out of range for {h}")
    if isinstance(h, ClusterSpace):
        if not isinstance(aon, ClusterAon):
            raise ConfigurationError(f"Operators on {h} must act on a cluster member")
        if not 1 <= aon.j <= h.order:
            raise ConfigurationError(f"Cluster member {aon.j} out of range 1..{h.order}")
        return h.original_space
    if isinstance(aon, ClusterAon):
        raise ConfigurationError(f"{h} is not a ClusterSpace")
    return h


def levels(h, aon=1):
    """Level labels of the discrete component at `aon`."""
    comp = component(h, aon)
    if not isinstance(comp, NLevelSpace):
        raise ConfigurationError(f"{comp} has no discrete levels")
    return comp.levels


def ground_state(h, aon=1):
    """Ground-state level of the discrete component at `aon`."""
    comp = component(h, aon)
    if not isinstance(comp, NLevelSpace):
        raise ConfigurationError(f"{comp} has no ground state")
    return comp.GS


def cluster_aons(h):
    """All member acts-on indices of every cluster in `h`, grouped per cluster.

    Returns:
        Dict mapping component position to (ClusterSpace, [ClusterAon, ...])
    """
    clusters = {}
    for idx, space in enumerate(h.spaces, start=1):
        if isinstance(space, ClusterSpace):
            clusters[idx] = (space, [ClusterAon(idx, j) for j in range(1, space.order + 1)])
    return clusters
