"""Public-facing objects."""

from . import exceptions, options
from .computation import (
    ShareDerivatives, compute_equilibrium_prices, compute_share_derivatives, compute_shares, simulate_blp,
    simulate_iv_logit
)
from .configurations.integration import Integration
from .configurations.iteration import Iteration
from .construction import build_id_data, build_ownership, data_to_dict, save_pickle, read_pickle
from .economies.blp_simulation import BLPSimulation
from .economies.iv_simulation import IVLogitSimulation
from .results.equilibrium_results import EquilibriumResults
from .results.simulation_results import BLPSimulationResults, IVLogitSimulationResults
from .utilities.basics import parallel
from .version import __version__

__all__ = [
    'exceptions', 'options', 'ShareDerivatives', 'compute_equilibrium_prices', 'compute_share_derivatives',
    'compute_shares', 'simulate_blp', 'simulate_iv_logit', 'Integration', 'Iteration', 'build_id_data',
    'build_ownership', 'data_to_dict', 'save_pickle', 'read_pickle', 'BLPSimulation', 'IVLogitSimulation',
    'EquilibriumResults', 'BLPSimulationResults', 'IVLogitSimulationResults', 'parallel', '__version__'
]
