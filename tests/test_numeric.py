"""
Tests for the numeric ODE functions, including integrated cluster models
"""

import numpy as np
import pytest
from scipy.integrate import solve_ivp

from conftest import phase_invariant
from qumulants import (
    Average, ClusterSpace, Destroy, FockSpace, MissingAverageError, NLevelSpace,
    average, build_ode, cnumbers, complete, destroy, find_missing, generate_ode,
    get_solution, heisenberg, tensor, transition
)


def integrate(f, u0, t_end, p, rtol=1e-10, atol=1e-12):
    sol = solve_ivp(f, (0.0, t_end), u0, method='DOP853', args=(p,), rtol=rtol, atol=atol)
    assert sol.success
    return sol


@pytest.fixture
def cavity():
    h = FockSpace('cavity')
    a = destroy(h, 'a')
    Δ, η, κ = cnumbers("Δ η κ")
    H = Δ * a.dag * a + η * (a + a.dag)
    he = complete(average(heisenberg([a, a.dag * a], H, [a], [κ]), 2))
    return a, he, (Δ, η, κ)


class TestODEFunction:
    def test_driven_cavity_steady_state(self, cavity):
        a, he, ps = cavity
        f = build_ode(he, ps)
        p = [0.5, 0.3, 1.0]
        sol = integrate(f, f.initial_state(), 60.0, p)
        α = -1j * 0.3 / (0.5 + 1j * 0.5)
        assert get_solution(a, sol, he)[-1] == pytest.approx(α, abs=1e-8)
        assert get_solution(a.dag * a, sol, he)[-1] == pytest.approx(abs(α) ** 2, abs=1e-8)

    def test_adjoint_lookup(self, cavity):
        a, he, ps = cavity
        f = build_ode(he, ps)
        u = np.array([0.1 + 0.2j, 0.7])
        assert get_solution(a.dag, [u], he)[0] == pytest.approx(0.1 - 0.2j)
        assert f.index(a.dag) == (0, True)
        assert f.index(Average(a.dag * a)) == (1, False)

    def test_variables_round_trip(self, cavity):
        a, he, ps = cavity
        states = np.random.default_rng(0).normal(size=(5, len(he))) + 0j
        for k, v in enumerate(he.lhs):
            assert np.allclose(get_solution(v, states, he), states[:, k])
            assert np.allclose(get_solution(v.operator, states, he), states[:, k])

    def test_expression_along_trajectory(self, cavity):
        a, he, ps = cavity
        states = np.array([[1 + 1j, 3.0], [0.5j, 2.0]])
        values = get_solution(average(a.dag * a) - average(a.dag) * average(a), states, he)
        assert np.allclose(values, [1.0, 1.75])

    def test_call_conventions(self, cavity):
        _, he, ps = cavity
        f = generate_ode(he, ps)
        u = np.array([0.3 - 0.1j, 0.4 + 0j])
        p = [0.5, 0.3, 1.0]
        du = f(0.0, u, p)
        out = np.zeros(2, dtype=complex)
        f.inplace(out, u, p, 0.0)
        assert np.allclose(du, out)
        Δ, η, κ = ps
        assert np.allclose(f(0.0, u, {Δ: 0.5, η: 0.3, κ: 1.0}), du)
        with pytest.raises(ValueError):
            f(0.0, u, p[:2])

    def test_initial_state(self, cavity):
        a, he, ps = cavity
        f = build_ode(he, ps)
        u0 = f.initial_state({a.dag: 2j, a.dag * a: 4})
        assert np.allclose(u0, [-2j, 4])

    def test_unknown_symbol(self, cavity):
        _, he, ps = cavity
        with pytest.raises(MissingAverageError):
            build_ode(he, ps[:2])

    def test_nested_parameters(self):
        h = FockSpace('a') * FockSpace('b')
        a, b = destroy(h, 'a', 1), destroy(h, 'b', 2)
        κ = cnumbers("κa κb")
        he = average(heisenberg([a, b], 0 * a, [a, b], list(κ)))
        f = build_ode(he, [κ])
        assert f.parameters == list(κ)
        assert np.allclose(f(0.0, np.ones(2, dtype=complex), [[2.0, 4.0]]), [-1.0, -2.0])
        assert f.parameter_vector({κ: [2.0, 4.0]}) == [2.0, 4.0]


class TestClusterModels:
    def test_three_level_cluster(self):
        order = 2
        Δc, κ, Γ2, Γ3, Γ23, η, ν3, ν2 = cnumbers("Δc κ Γ2 Γ3 Γ23 η ν3 ν2")
        Δ2, Δ3, Ω3, g, N = ([s] for s in cnumbers("Δ2_1 Δ3_1 Ω3_1 g_1 N_1"))
        h = tensor(FockSpace('cavity'), ClusterSpace(NLevelSpace('atoms1', 3), N[0], order))
        a = Destroy(h, 'a', 1)
        S = lambda i, j: transition(h, 'σ1', i, j, 2)

        H = (Δc * a.dag * a + Δ2[0] * sum(S(2, 2)) + Δ3[0] * sum(S(3, 3))
             + Ω3[0] * (sum(S(3, 1)) + sum(S(1, 3)))
             + g[0] * (a.dag * sum(S(1, 2)) + a * sum(S(2, 1))))
        J = [a, S(1, 2), S(1, 3), S(2, 3), S(3, 3), S(2, 2), a.dag * a]
        rates = [κ, Γ2, Γ3, Γ23, ν3, ν2, η]

        ops = [a.dag * a, S(2, 2)[0], a.dag * S(1, 2)[0]]
        he = average(heisenberg(ops, H, J, rates), 2)
        he = complete(he, filter_func=phase_invariant, order=order)
        assert len(he) == 9

        ps = [Δc, κ, Γ2, Γ3, Γ23, η, ν3, ν2, Δ2, Δ3, Ω3, g, N]
        f = build_ode(he, ps)
        p0 = [1.0] * 12 + [1000.0]
        sol = integrate(f, np.zeros(len(he), dtype=complex), 1.0, p0, rtol=1e-12, atol=1e-12)
        assert sol.y[0, -1].real == pytest.approx(0.0758608728203, rel=1e-6)

    def test_two_level_laser(self, laser):
        m = laser
        a, σ = m['a'], m['σ']
        he = heisenberg(a.dag * a, m['H'], m['J'], m['rates'])
        he = complete(average(he, 2), filter_func=phase_invariant)
        assert find_missing(he) == []
        assert find_missing(average(he, 2)) == []

        f = generate_ode(he, m['ps'])
        p0 = (0, 1.5, 0.25, 1, 4, 7)
        sol = integrate(f, np.zeros(len(he), dtype=complex), 50.0, p0)
        assert sol.y[0, -1].real == pytest.approx(12.601868534, rel=1e-6)
        n = get_solution(a.dag * a, sol, he)
        assert np.allclose(n.imag, 0, atol=1e-8)
        pe = get_solution(σ('e', 'e')[0], sol, he)[-1].real
        assert 0 < pe < 1

    def test_two_clusters(self):
        M = 2
        N = cnumbers("N_1 N_2")
        κ, = cnumbers("κ")
        ν, γ, Δ, g = (cnumbers(f"{s}_1 {s}_2") for s in ("ν", "γ", "Δ", "g"))
        atom = NLevelSpace('atom', ('g', 'e'))
        h = tensor(FockSpace('cavity'), *[ClusterSpace(atom, N[c], M) for c in range(2)])
        a = Destroy(h, 'a', 1)
        σ = lambda i, j, c: transition(h, f"σ_{c + 1}", i, j, c + 2)

        H = (sum(Δ[c] * σ('e', 'e', c)[k] for c in range(2) for k in range(M))
             + sum(g[c] * (a.dag * σ('g', 'e', c)[k] + a * σ('e', 'g', c)[k])
                   for k in range(M) for c in range(2)))
        J = [a] + [σ('g', 'e', c) for c in range(2)] + [σ('e', 'g', c) for c in range(2)]
        rates = [κ, *γ, *ν]

        he = average(heisenberg([a.dag * a], H, J, rates), 2)
        he = complete(he, filter_func=phase_invariant)
        assert find_missing(he) == []

        f = generate_ode(he, (κ, Δ, g, γ, ν, N))
        p0 = (1, 0, 0, 1.5, 1.5, 0.25, 0.25, 4, 4, 4, 3)
        sol = integrate(f, np.zeros(len(he), dtype=complex), 50.0, p0)
        assert sol.y[0, -1].real == pytest.approx(12.601868534, rel=1e-6)

    def test_holstein_closes(self):
        M = 2
        N, G, Δ, κ, γ, Ω = cnumbers("N G Δ κ γ Ω")
        h = tensor(FockSpace('cavity'), ClusterSpace(FockSpace('mode'), N, M))
        a = Destroy(h, 'a', 1)
        b = destroy(h, 'b', 2)

        H = Δ * a.dag * a + G * sum(b[i] + b[i].dag for i in range(M)) * a.dag * a + Ω * (a + a.dag)
        ops = [a, a.dag * a, a * a, b[0], a * b[0], a.dag * b[0], b[0].dag * b[0],
               b[0] * b[0], b[0].dag * b[1], b[0] * b[1]]
        he = average(heisenberg(ops, H, [a, b], [κ, γ]), 2)
        assert find_missing(he) == []

        f = generate_ode(he, (G, Δ, κ, γ, Ω, N))
        sol = integrate(f, np.zeros(len(he), dtype=complex), 1.0, [1.0] * 6, rtol=1e-8, atol=1e-10)
        assert np.all(np.isfinite(sol.y))
        assert abs(get_solution(a.dag * a, sol, he)[-1].imag) < 1e-8

    def test_molecule_closes(self):
        M = 2
        λ, ν, Γ, η, Δ, γ, N = cnumbers("λ ν Γ η Δ γ N")
        h = tensor(NLevelSpace('internal', 2), ClusterSpace(FockSpace('vib'), N, M))
        σ = lambda i, j: transition(h, 'σ', i, j)
        b = destroy(h, 'b')

        H0 = Δ * σ(2, 2) + ν * sum(b_.dag * b_ for b_ in b)
        H_holstein = -λ * sum(b_.dag + b_ for b_ in b) * σ(2, 2)
        Hl = η * (σ(1, 2) + σ(2, 1))
        H = H0 + H_holstein + Hl
        J = [σ(1, 2), b]
        rates = [γ, Γ]

        ops = [σ(2, 2), σ(1, 2), b[0], σ(1, 2) * b[0], σ(2, 1) * b[0], σ(2, 2) * b[0],
               b[0].dag * b[0], b[0] * b[0], b[0].dag * b[1], b[0] * b[1]]
        he = heisenberg(ops, H, J, rates)
        he_avg = average(he, 2)
        assert find_missing(he_avg) == []

        f = generate_ode(he_avg, (Δ, η, γ, λ, ν, Γ, N))
        p0 = [1.0] * 6 + [4.0]
        sol = integrate(f, np.zeros(len(he_avg), dtype=complex), 1.0, p0)
        bdb = get_solution(b[0].dag * b[0], sol, he)[-1]
        σ22 = get_solution(σ(2, 2), sol, he)[-1]
        σ11 = get_solution(σ(1, 1), sol, he)[-1]
        assert abs(bdb.imag) < 1e-8
        assert 0 < σ22.real < 1
        assert σ11 == pytest.approx(1 - σ22)
