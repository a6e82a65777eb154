"""
Heisenberg equations of motion under a Hamiltonian and Lindblad dissipator.

For an operator X the time derivative reads

    dX/dt = i[H, X] + Σ_m γ_m (J_m† X J_m - ½ {J_m† J_m, X})

The derivation is a pure function of its inputs; each seed operator can be
handled independently, which allows fanning it out over a thread pool.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import sympy

from .errors import ConfigurationError
from .hilbertspace import component
from .operators import (
    BasicOperator, QMul, acomm, as_terms, comm, operator_hilbert,
    simplify_operators
)

__all__ = ['HeisenbergEquation', 'heisenberg']

logger = logging.getLogger(__name__)


class HeisenbergEquation:
    """Set of equations d/dt lhs[k] = rhs[k].

    Left-hand sides are either operator products (operator-level equations)
    or averages. The Hamiltonian, jump operators and rates used for the
    derivation are kept so that the set can be extended later.

    Attributes:
        lhs: List of left-hand sides (no duplicates, up to adjoints)
        rhs: List of right-hand sides
        hamiltonian: Hamiltonian
        jumps: Flat list of jump operators
        rates: Flat list of rates, rates[m] belongs to jumps[m]
        hilbert: Hilbert space the operators live on
    """

    def __init__(self, lhs, rhs, hamiltonian, jumps, rates, hilbert=None):
        if len(lhs) != len(rhs):
            raise ConfigurationError(
                f"Got {len(lhs)} left-hand sides but {len(rhs)} right-hand sides"
            )
        self.lhs = list(lhs)
        self.rhs = list(rhs)
        self.hamiltonian = hamiltonian
        self.jumps = list(jumps)
        self.rates = list(rates)
        if hilbert is None:
            hilbert = operator_hilbert([hamiltonian] + self.jumps)
        if hilbert is None:
            hilbert = operator_hilbert([_lhs_operator(l) for l in self.lhs])
        self.hilbert = hilbert

    @property
    def is_averaged(self):
        from .average import Average
        return bool(self.lhs) and isinstance(self.lhs[0], Average)

    @property
    def operators(self):
        """Operators whose time evolution is described."""
        return [_lhs_operator(l) for l in self.lhs]

    def substitute(self, mapping):
        """New equation set with `mapping` substituted in every rhs."""
        mapping = dict(mapping)
        rhs = [r.xreplace(mapping) if isinstance(r, sympy.Basic) else r for r in self.rhs]
        return HeisenbergEquation(self.lhs, rhs, self.hamiltonian, self.jumps,
                                  self.rates, self.hilbert)

    def __len__(self):
        return len(self.lhs)

    def __iter__(self):
        return iter(zip(self.lhs, self.rhs))

    def __getitem__(self, index):
        if isinstance(index, slice):
            return HeisenbergEquation(self.lhs[index], self.rhs[index], self.hamiltonian,
                                      self.jumps, self.rates, self.hilbert)
        return self.lhs[index], self.rhs[index]

    def __str__(self):
        return "\n".join(f"d/dt {l} = {r}" for l, r in self)

    def __repr__(self):
        return f"HeisenbergEquation({len(self)} equations)"


def _lhs_operator(l):
    return l.operator if hasattr(l, 'operator') else l


def _flatten_jumps(J, rates):
    if rates is None:
        rates = [1] * len(J)
    if len(J) != len(rates):
        raise ConfigurationError(
            f"Got {len(J)} jump operators but {len(rates)} rates"
        )
    jumps, flat_rates = [], []
    for j, rate in zip(J, rates):
        if isinstance(j, (list, tuple)):
            jumps.extend(j)
            flat_rates.extend([rate] * len(j))
        else:
            jumps.append(j)
            flat_rates.append(rate)
    return jumps, [sympy.sympify(r) for r in flat_rates]


def _check_hilbert(ops, H, J):
    """Every factor must live on the model's space, on an existing component."""
    reference = operator_hilbert([H] + list(J))
    if reference is None:
        return operator_hilbert(ops)
    for op in [H] + list(J) + list(ops):
        for _, factors in as_terms(op):
            for f in factors:
                if f.hilbert != reference:
                    raise ConfigurationError(
                        f"Operator {f} acts on {f.hilbert}, not on the model space {reference}"
                    )
                component(reference, f.aon)
    return reference


def _as_product(op):
    op = simplify_operators(op)
    if isinstance(op, BasicOperator):
        return op
    if isinstance(op, QMul) and op.coeff == 1:
        return op
    raise ConfigurationError(
        f"Equations are derived for single operator products, got {op}"
    )


def _derive(op, H, jumps, rates):
    rhs = sympy.I * comm(H, op)
    for j, rate in zip(jumps, rates):
        jdag = j.adjoint()
        rhs = rhs + rate * (jdag * op * j - sympy.Rational(1, 2) * acomm(jdag * j, op))
    logger.debug("Derived equation for %s", op)
    return simplify_operators(rhs)


def heisenberg(ops, H, J=(), rates=None, multithread=False, max_workers=None):
    """Derive the Heisenberg equations of motion of operators.

    Args:
        ops: Operator product or list of operator products
        H: Hamiltonian (operator expression)
        J: Jump operators; a list entry may itself be a list of cluster
            members sharing one rate
        rates: Decay rates, one per entry of J (default: all 1)
        multithread: Derive the equations in a thread pool
        max_workers: Size of the thread pool

    Returns:
        HeisenbergEquation with operator-level lhs and rhs

    Raises:
        ConfigurationError: For mismatched J/rates or operators acting on
            components that are not part of the model

    Example:
        >>> he = heisenberg(a.dag * a, Δ*a.dag*a, [a], [κ])
    """
    if not isinstance(ops, (list, tuple)):
        ops = [ops]
    if not ops:
        raise ConfigurationError("Need at least one operator to derive equations for")
    J = list(J) if isinstance(J, (list, tuple)) else [J]
    jumps, flat_rates = _flatten_jumps(J, rates)
    hilbert = _check_hilbert(ops, H, jumps)
    lhs = [_as_product(op) for op in ops]

    if multithread and len(lhs) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            rhs = list(executor.map(lambda op: _derive(op, H, jumps, flat_rates), lhs))
    else:
        rhs = [_derive(op, H, jumps, flat_rates) for op in lhs]

    return HeisenbergEquation(lhs, rhs, H, jumps, flat_rates, hilbert)
