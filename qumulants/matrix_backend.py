"""
Dense matrix representation of operators on truncated spaces.

Fock modes are truncated at `fock_dim` levels, discrete components use
their levels as basis and clusters are expanded into their M explicit
members. This gives exact expectation values and the exact Lindblad
right-hand side, which the symbolic equations can be checked against.
"""

from typing import Optional

import numpy as np
import sympy

from .average import average_symbols
from .hilbertspace import ClusterAon, ClusterSpace, FockSpace, NLevelSpace
from .equations import _flatten_jumps
from .operators import Create, Destroy, Transition, as_terms

__all__ = ['MatrixBackend']


class MatrixBackend:
    """Numerical backend for operator expressions on a product space.

    Args:
        hilbert: Hilbert space (single component or ProductSpace)
        fock_dim: Number of levels kept for every Fock mode

    Attributes:
        dims: Dimension of every tensor factor
        dim: Total dimension
    """

    def __init__(self, hilbert, fock_dim: int = 10):
        self.hilbert = hilbert
        self.fock_dim = fock_dim
        self._position = {}
        self._spaces = []
        for idx, space in enumerate(hilbert.spaces, start=1):
            if isinstance(space, ClusterSpace):
                for j in range(1, space.order + 1):
                    self._position[ClusterAon(idx, j)] = len(self._spaces)
                    self._spaces.append(space.original_space)
            else:
                self._position[idx] = len(self._spaces)
                self._spaces.append(space)
        self.dims = [self._local_dim(s) for s in self._spaces]
        self.dim = int(np.prod(self.dims))

    def _local_dim(self, space):
        if isinstance(space, FockSpace):
            return self.fock_dim
        if isinstance(space, NLevelSpace):
            return len(space.levels)
        raise TypeError(f"No matrix representation for {space}")

    def _local_matrix(self, op) -> np.ndarray:
        """Matrix of a leaf operator on its own tensor factor.

        a|n⟩ = √n |n-1⟩, σij = |i⟩⟨j|
        """
        d = self.dims[self._position[op.aon]]
        if isinstance(op, (Destroy, Create)):
            a = np.diag(np.sqrt(np.arange(1, d)), k=1).astype(complex)
            return a if isinstance(op, Destroy) else a.conj().T
        if isinstance(op, Transition):
            space = op.space
            m = np.zeros((d, d), dtype=complex)
            m[space.level_index(op.i), space.level_index(op.j)] = 1
            return m
        raise TypeError(f"No matrix representation for {type(op)}")

    def embed(self, local: np.ndarray, position: int) -> np.ndarray:
        """Kronecker product with identities on all other factors."""
        result = np.eye(1, dtype=complex)
        for k, d in enumerate(self.dims):
            result = np.kron(result, local if k == position else np.eye(d, dtype=complex))
        return result

    def leaf(self, op) -> np.ndarray:
        return self.embed(self._local_matrix(op), self._position[op.aon])

    def operator(self, x, values=None) -> np.ndarray:
        """Matrix of an operator expression.

        Args:
            x: Operator expression or scalar
            values: Dict symbol -> number for the coefficients
        """
        values = {k: sympy.sympify(v) for k, v in (values or {}).items()}
        result = np.zeros((self.dim, self.dim), dtype=complex)
        for coeff, factors in as_terms(x):
            term = complex(sympy.N(sympy.sympify(coeff).xreplace(values))) * np.eye(self.dim)
            for f in factors:
                term = term @ self.leaf(f)
            result += term
        return result

    def expect(self, x, rho: np.ndarray, values=None) -> complex:
        """Expectation value Tr(ρ X)."""
        return complex(np.trace(rho @ self.operator(x, values)))

    def evaluate(self, expr, rho: np.ndarray, values=None) -> complex:
        """Evaluate an expression in averages with exact expectation values."""
        expr = sympy.sympify(expr)
        mapping = {k: sympy.sympify(v) for k, v in (values or {}).items()}
        for avg in average_symbols(expr):
            mapping[avg] = sympy.sympify(self.expect(avg.operator, rho))
        return complex(sympy.N(expr.xreplace(mapping)))

    def lindblad(self, rho: np.ndarray, H, J=(), rates=(), values=None) -> np.ndarray:
        """Right-hand side of the master equation.

        dρ/dt = -i[H, ρ] + Σ γ (J ρ J† - ½{J†J, ρ})

        Jumps and rates are given as for heisenberg(); a list of cluster
        members shares one rate.
        """
        J, rates = _flatten_jumps(list(J), list(rates))
        Hm = self.operator(H, values)
        drho = -1j * (Hm @ rho - rho @ Hm)
        values = {k: sympy.sympify(v) for k, v in (values or {}).items()}
        for j, rate in zip(J, rates):
            Jm = self.operator(j, values)
            gamma = complex(sympy.N(sympy.sympify(rate).xreplace(values)))
            JdJ = Jm.conj().T @ Jm
            drho += gamma * (Jm @ rho @ Jm.conj().T - 0.5 * (JdJ @ rho + rho @ JdJ))
        return drho

    def random_density_matrix(self, support: Optional[int] = None,
                              seed: Optional[int] = None) -> np.ndarray:
        """Random mixed state, Fock modes restricted to levels below `support`.

        Keeping the state away from the truncation edge makes expectation
        values of normal-ordered products exact.
        """
        rng = np.random.default_rng(seed)
        mask = np.ones(1, dtype=bool)
        for space, d in zip(self._spaces, self.dims):
            local = np.ones(d, dtype=bool)
            if support is not None and isinstance(space, FockSpace):
                local[support:] = False
            mask = np.kron(mask, local).astype(bool)
        n = int(mask.sum())
        g = rng.normal(size=(n, n)) + 1j * rng.normal(size=(n, n))
        small = g @ g.conj().T
        small /= np.trace(small)
        rho = np.zeros((self.dim, self.dim), dtype=complex)
        idx = np.flatnonzero(mask)
        rho[np.ix_(idx, idx)] = small
        return rho
