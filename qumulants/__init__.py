"""
qumulants: Cumulant expansions for open quantum systems

Symbolic Heisenberg-Lindblad equations for operator averages, closed by a
cumulant expansion, with cluster scaling for ensembles of identical
components and numeric right-hand sides for standard ODE solvers.
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

from .errors import (
    QumulantsError, ConfigurationError, ClosureDivergenceError, MissingAverageError
)
from .config import CompletionSettings, get_default_settings
from .hilbertspace import (
    HilbertSpace, FockSpace, NLevelSpace, ClusterSpace, ProductSpace, ClusterAon,
    tensor, levels, ground_state
)
from .operators import (
    Destroy, Create, Transition, QMul, QAdd, destroy, create, transition,
    comm, acomm, adjoint, acts_on, get_order, simplify_operators,
    substitute_operators
)
from .average import Average, average, cnumbers, cnumber
from .equations import HeisenbergEquation, heisenberg
from .cumulant import cumulant_expansion
from .scaling import substitute_redundants, lt_reference_order
from .completion import find_missing, unique_ops, complete
from .numeric import ODEFunction, build_ode, generate_ode, get_solution
from .correlation import CorrelationFunction, initial_values, Spectrum
from .matrix_backend import MatrixBackend

# Explicitly list main exports for clarity
__all__ = [
    # Errors and settings
    'QumulantsError', 'ConfigurationError', 'ClosureDivergenceError',
    'MissingAverageError', 'CompletionSettings', 'get_default_settings',

    # Hilbert spaces
    'HilbertSpace', 'FockSpace', 'NLevelSpace', 'ClusterSpace', 'ProductSpace',
    'ClusterAon', 'tensor', 'levels', 'ground_state',

    # Operators
    'Destroy', 'Create', 'Transition', 'QMul', 'QAdd',
    'destroy', 'create', 'transition', 'comm', 'acomm', 'adjoint', 'acts_on',
    'get_order', 'simplify_operators', 'substitute_operators',

    # Averages and equations
    'Average', 'average', 'cnumbers', 'cnumber',
    'HeisenbergEquation', 'heisenberg', 'cumulant_expansion',
    'substitute_redundants', 'lt_reference_order',
    'find_missing', 'unique_ops', 'complete',

    # Numerics
    'ODEFunction', 'build_ode', 'generate_ode', 'get_solution',
    'CorrelationFunction', 'initial_values', 'Spectrum', 'MatrixBackend'
]
