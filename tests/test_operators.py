"""
Tests for Hilbert spaces and the operator algebra
"""

import pytest
import sympy

from qumulants import (
    Average, ClusterAon, ClusterSpace, ConfigurationError, Destroy, FockSpace,
    NLevelSpace, QAdd, QMul, Transition, acomm, acts_on, adjoint, average, cnumbers,
    comm, create, destroy, get_order, ground_state, levels, substitute_operators,
    tensor, transition
)


@pytest.fixture
def h():
    return FockSpace('cavity') * NLevelSpace('atom', ('g', 'e'))


class TestHilbertSpace:
    def test_tensor_flattens(self):
        h1 = FockSpace('a') * FockSpace('b')
        h = tensor(h1, NLevelSpace('c', 3))
        assert len(h) == 3
        assert h[3].levels == (1, 2, 3)

    def test_levels_and_ground_state(self, h):
        assert levels(h, 2) == ('g', 'e')
        assert ground_state(h, 2) == 'g'
        assert NLevelSpace('x', 3, ground_state=2).GS == 2

    def test_invalid_nlevel(self):
        with pytest.raises(ConfigurationError):
            NLevelSpace('x', 1)
        with pytest.raises(ConfigurationError):
            NLevelSpace('x', ('g', 'e'), ground_state='f')

    def test_cluster_order(self):
        with pytest.raises(ConfigurationError):
            ClusterSpace(FockSpace('b'), 10, 0)


class TestFactories:
    def test_resolve_component(self, h):
        a = destroy(h, 'a')
        assert a.aon == 1
        σ = transition(h, 'σ', 'e', 'g')
        assert σ.aon == 2

    def test_ambiguous_component(self):
        h = FockSpace('a') * FockSpace('b')
        with pytest.raises(ConfigurationError):
            destroy(h, 'a')
        assert destroy(h, 'b', 2).aon == 2

    def test_wrong_component_kind(self, h):
        with pytest.raises(ConfigurationError):
            Destroy(h, 'a', 2)
        with pytest.raises(ConfigurationError):
            Transition(h, 'σ', 'g', 'e', 1)

    def test_unknown_level(self, h):
        with pytest.raises(ConfigurationError):
            transition(h, 'σ', 'g', 'x')

    def test_cluster_members(self):
        N, = cnumbers("N")
        h = FockSpace('c') * ClusterSpace(FockSpace('b'), N, 3)
        b = destroy(h, 'b', 2)
        assert len(b) == 3
        assert [x.aon for x in b] == [ClusterAon(2, j) for j in (1, 2, 3)]
        assert str(b[1]) == "b_2"
        assert str(b[1].dag) == "b_2†"


class TestNormalForm:
    def test_bosonic_commutation(self, h):
        a = destroy(h, 'a')
        assert a * a.dag == a.dag * a + 1
        assert comm(a, a.dag) == 1
        assert comm(a.dag * a, a) == -a

    def test_normal_order_higher(self, h):
        a = destroy(h, 'a')
        # a a a† = a† a a + 2 a
        assert a * a * a.dag == a.dag * a * a + 2 * a

    def test_transition_merge(self, h):
        σ = lambda i, j: transition(h, 'σ', i, j)
        assert σ('e', 'g') * σ('g', 'e') == σ('e', 'e')
        assert σ('g', 'e') * σ('g', 'e') == 0

    def test_ground_state_rewrite(self, h):
        σ = lambda i, j: transition(h, 'σ', i, j)
        assert σ('g', 'g') == 1 - σ('e', 'e')
        assert σ('g', 'e') * σ('e', 'g') == 1 - σ('e', 'e')

    def test_three_level_rewrite(self):
        h = NLevelSpace('atom', 3)
        σ = lambda i, j: transition(h, 'σ', i, j)
        assert σ(1, 2) * σ(2, 1) == 1 - σ(2, 2) - σ(3, 3)
        assert σ(2, 3) * σ(3, 1) == σ(2, 1)

    def test_different_components_commute(self, h):
        a = destroy(h, 'a')
        σ = transition(h, 'σ', 'g', 'e')
        assert σ * a == a * σ
        assert comm(a, σ) == 0
        assert isinstance(σ * a, QMul)
        assert (σ * a).factors == (a, σ)

    def test_like_terms_collected(self, h):
        a = destroy(h, 'a')
        Δ, = cnumbers("Δ")
        x = Δ * a.dag * a + 2 * a.dag * a - Δ * a.dag * a
        assert x == 2 * a.dag * a
        assert a - a == 0

    def test_products_keep_sympy_coefficients(self, h):
        a = destroy(h, 'a')
        σ = transition(h, 'σ', 'g', 'e')
        g, = cnumbers("g")
        x = (g + sympy.I) * a.dag * σ
        assert isinstance(x.coeff, sympy.Expr)
        assert x.coeff == g + sympy.I
        assert x.factors == (a.dag, σ)
        assert x.adjoint().coeff == g - sympy.I

    def test_anticommutator(self, h):
        a = destroy(h, 'a')
        assert acomm(a, a.dag) == 2 * a.dag * a + 1

    def test_sum_of_products_is_qadd(self, h):
        a = destroy(h, 'a')
        assert isinstance(a + a.dag, QAdd)


class TestGenericFunctions:
    def test_adjoint(self, h):
        a = destroy(h, 'a')
        σ = lambda i, j: transition(h, 'σ', i, j)
        assert (a.dag * σ('g', 'e')).dag == a * σ('e', 'g')
        g, = cnumbers("g")
        assert adjoint(sympy.I * g * a) == -sympy.I * g * a.dag

    def test_acts_on_and_order(self, h):
        a = destroy(h, 'a')
        σ = transition(h, 'σ', 'g', 'e')
        assert acts_on(a.dag * σ) == [1, 2]
        assert acts_on(average(σ)) == [2]
        assert get_order(a.dag * a * σ) == 3
        assert get_order(a + a.dag * a) == 2
        assert get_order(average(a) * average(a.dag * σ)) == 2

    def test_substitute_operators(self, h):
        a = destroy(h, 'a')
        α, = cnumbers("α")
        assert substitute_operators(a.dag * a, {a: a + α}) == a.dag * a + α * a.dag

    def test_type_errors(self, h):
        a = destroy(h, 'a')
        with pytest.raises(TypeError):
            a * "b"


class TestAverage:
    def test_linearity(self, h):
        a = destroy(h, 'a')
        Δ, = cnumbers("Δ")
        expr = average(Δ * a.dag * a + 2)
        assert expr == Δ * Average(a.dag * a) + 2

    def test_conjugate(self, h):
        a = destroy(h, 'a')
        σ = transition(h, 'σ', 'g', 'e')
        assert sympy.conjugate(average(a.dag * σ)) == average(a * σ.dag)
        assert sympy.conjugate(average(a.dag * a)) == average(a.dag * a)

    def test_ground_state_average(self, h):
        σ = lambda i, j: transition(h, 'σ', i, j)
        assert average(σ('g', 'g')) == 1 - average(σ('e', 'e'))

    def test_equality_by_product(self, h):
        a = destroy(h, 'a')
        assert Average(a.dag * a) == Average((a.dag, a))
        assert Average(a) != Average(a.dag)
        assert Average(a).order == 1
        assert Average(a.dag * a).operator == a.dag * a
