"""
Shared models for the test suite.
"""

import pytest

from qumulants import (
    ClusterSpace, Create, Destroy, FockSpace, NLevelSpace, Transition, cnumbers,
    destroy, transition, tensor
)


def phase(avg):
    """Phase picked up under a → a e^{-iφ}, σ12 → σ12 e^{-iφ}."""
    total = 0
    for f in avg.factors:
        if isinstance(f, Destroy):
            total -= 1
        elif isinstance(f, Create):
            total += 1
        elif isinstance(f, Transition):
            if (f.i, f.j) in ((1, 2), (3, 2), ('g', 'e')):
                total -= 1
            elif (f.i, f.j) in ((2, 1), (2, 3), ('e', 'g')):
                total += 1
    return total


def phase_invariant(avg):
    return phase(avg) == 0


@pytest.fixture
def jaynes_cummings():
    """Driven cavity coupled to a single two-level atom."""
    h = FockSpace('cavity') * NLevelSpace('atom', ('g', 'e'))
    a = destroy(h, 'a')
    σ = lambda i, j: transition(h, 'σ', i, j)
    Δ, g, η, κ, γ = cnumbers("Δ g η κ γ")
    H = Δ * a.dag * a + g * (a.dag * σ('g', 'e') + a * σ('e', 'g')) + η * (a + a.dag)
    J = [a, σ('g', 'e')]
    rates = [κ, γ]
    values = {Δ: 0.3, g: 0.7, η: 0.2, κ: 0.5, γ: 0.25}
    return dict(h=h, a=a, σ=σ, H=H, J=J, rates=rates, values=values)


@pytest.fixture
def laser():
    """Cavity coupled to a cluster of incoherently pumped two-level atoms."""
    M = 2
    N, Δ, g, κ, γ, ν = cnumbers("N Δ g κ γ ν")
    h = tensor(FockSpace('cavity'), ClusterSpace(NLevelSpace('atom', ('g', 'e')), N, M))
    a = Destroy(h, 'a', 1)
    σ = lambda i, j: transition(h, 'σ', i, j, 2)
    H = Δ * a.dag * a + g * sum(a.dag * σ('g', 'e')[k] + a * σ('e', 'g')[k] for k in range(M))
    J = [a, σ('g', 'e'), σ('e', 'g')]
    rates = [κ, γ, ν]
    return dict(h=h, a=a, σ=σ, H=H, J=J, rates=rates, M=M, ps=(Δ, g, γ, κ, ν, N))
