"""Economy-level structuring of simulation results."""

from typing import Dict, Hashable, List, Tuple, TYPE_CHECKING

import numpy as np

from .results import Results
from .. import options
from ..utilities.basics import (
    Array, RecArray, SolverStats, format_number, format_seconds, format_table, structure_matrices
)


# only import objects that create import cycles when checking types
if TYPE_CHECKING:
    from ..economies.blp_simulation import BLPSimulation  # noqa
    from ..economies.iv_simulation import IVLogitSimulation  # noqa


def stack_products(array: Array) -> Array:
    """Stack a J x T matrix or a K x J x T array into rows of products ordered by market."""
    if array.ndim == 2:
        return array.T.flatten()
    K, J, T = array.shape
    return array.transpose(2, 1, 0).reshape(J * T, K)


def summarize_shares(shares: Array) -> Tuple[List[Tuple[str, str]], List[str]]:
    """Build the part of a results summary that describes simulated shares."""
    header = [
        ("Min", "Share"),
        ("Max", "Share"),
        ("Mean Outside", "Share"),
    ]
    values = [
        format_number(shares.min()),
        format_number(shares.max()),
        format_number(1 - shares.sum(axis=0).mean()),
    ]
    return header, values


class IVLogitSimulationResults(Results):
    r"""Results of a solved simulation of random coefficients logit data with endogenous characteristics.

    Attributes
    ----------
    simulation : `IVLogitSimulation`
        :class:`IVLogitSimulation` that created these results.
    product_data : `recarray`
        Simulated data, one row for each product in each market, ordered by market. Fields are ``market_ids``,
        ``product_ids``, ``shares``, ``characteristics`` (:math:`K` columns), ``instruments`` (:math:`L` columns), and
        ``xi``. The :func:`data_to_dict` function can be used to convert this into a more usable data type.
    x : `ndarray`
        The :math:`K \times J \times T` array of characteristics.
    z : `ndarray`
        The :math:`L \times J \times T` array of excluded instruments.
    shares : `ndarray`
        The :math:`J \times T` matrix of simulated shares, :math:`s`.
    nodes : `ndarray`
        The :math:`K \times S \times T` array of draws, :math:`\nu`.
    xi : `ndarray`
        The :math:`J \times T` matrix of demand shocks, :math:`\xi`.
    endogenous : `ndarray`
        The :math:`K \times T` matrix of market-level endogenous components.
    computation_time : `float`
        Number of seconds it took to compute shares.

    """

    simulation: 'IVLogitSimulation'
    product_data: RecArray
    x: Array
    z: Array
    shares: Array
    nodes: Array
    xi: Array
    endogenous: Array
    computation_time: float

    _default_attributes = ('product_data', 'x', 'z', 'shares', 'nodes', 'xi', 'endogenous', 'computation_time')

    def __init__(self, simulation: 'IVLogitSimulation', shares: Array, start_time: float, end_time: float) -> None:
        """Structure simulation results."""
        self.simulation = simulation
        self.x = simulation.x
        self.z = simulation.z
        self.shares = shares
        self.nodes = simulation.nodes
        self.xi = simulation.xi
        self.endogenous = simulation.endogenous
        self.computation_time = end_time - start_time
        self.product_data = structure_matrices({
            'market_ids': (np.repeat(simulation.unique_market_ids, simulation.J), np.object_),
            'product_ids': (np.tile(np.arange(simulation.J), simulation.T), np.object_),
            'shares': (stack_products(shares), options.dtype),
            'characteristics': (stack_products(self.x), options.dtype),
            'instruments': (stack_products(self.z), options.dtype),
            'xi': (stack_products(self.xi), options.dtype),
        })

    def __str__(self) -> str:
        """Format simulation results as a string."""
        header = [("Computation", "Time")]
        values = [format_seconds(self.computation_time)]
        shares_header, shares_values = summarize_shares(self.shares)
        header.extend(shares_header)
        values.extend(shares_values)
        return format_table(header, values, title="Simulation Results Summary")


class BLPSimulationResults(Results):
    r"""Results of a solved simulation of random coefficients logit data with equilibrium prices.

    Attributes
    ----------
    simulation : `BLPSimulation`
        :class:`BLPSimulation` that created these results.
    product_data : `recarray`
        Simulated data, one row for each product in each market, ordered by market. Fields are ``market_ids``,
        ``firm_ids``, ``prices``, ``shares``, ``characteristics`` (the :math:`K - 1` non-price characteristics),
        ``cost_shifters`` (:math:`L` columns), ``costs``, ``xi``, and ``omega``. The :func:`data_to_dict` function can
        be used to convert this into a more usable data type.
    x : `ndarray`
        The :math:`K \times J \times T` array of characteristics with equilibrium prices in the first row.
    w : `ndarray`
        The :math:`L \times J \times T` array of marginal cost shifters.
    prices : `ndarray`
        The :math:`J \times T` matrix of equilibrium prices, :math:`p`.
    shares : `ndarray`
        The :math:`J \times T` matrix of shares evaluated at equilibrium prices, :math:`s`.
    nodes : `ndarray`
        The :math:`K \times S \times T` array of draws, :math:`\nu`.
    xi : `ndarray`
        The :math:`J \times T` matrix of demand shocks, :math:`\xi`.
    omega : `ndarray`
        The :math:`J \times T` matrix of cost shocks, :math:`\omega`.
    costs : `ndarray`
        The :math:`J \times T` matrix of marginal costs, :math:`c`.
    computation_time : `float`
        Number of seconds it took to compute prices and shares.
    fp_converged : `ndarray`
        Flags for convergence of the iteration routine used to compute prices in each market.
    fp_iterations : `ndarray`
        Number of major iterations completed by the iteration routine used to compute prices in each market.
    contraction_evaluations : `ndarray`
        Number of times the contraction used to compute prices was evaluated in each market.
    foc_norms : `ndarray`
        Norm of the first order conditions from the last contraction evaluation in each market.
    step_norms : `ndarray`
        Norm of the last change in prices in each market.

    """

    simulation: 'BLPSimulation'
    product_data: RecArray
    x: Array
    w: Array
    prices: Array
    shares: Array
    nodes: Array
    xi: Array
    omega: Array
    costs: Array
    computation_time: float
    fp_converged: Array
    fp_iterations: Array
    contraction_evaluations: Array
    foc_norms: Array
    step_norms: Array

    _default_attributes = (
        'product_data', 'x', 'w', 'prices', 'shares', 'nodes', 'xi', 'omega', 'costs', 'computation_time',
        'fp_converged', 'fp_iterations', 'contraction_evaluations', 'foc_norms', 'step_norms'
    )

    def __init__(
            self, simulation: 'BLPSimulation', prices: Array, shares: Array, costs: Array, start_time: float,
            end_time: float, iteration_stats: Dict[Hashable, SolverStats], foc_norms: Dict[Hashable, float],
            step_norms: Dict[Hashable, float]) -> None:
        """Structure simulation results."""
        self.simulation = simulation
        self.x = np.concatenate([prices[None], simulation.x[1:]], axis=0)
        self.w = simulation.w
        self.prices = prices
        self.shares = shares
        self.nodes = simulation.nodes
        self.xi = simulation.xi
        self.omega = simulation.omega
        self.costs = costs
        self.computation_time = end_time - start_time
        market_ids = simulation.unique_market_ids
        self.fp_converged = np.array([iteration_stats[t].converged for t in market_ids], dtype=np.bool_)
        self.fp_iterations = np.array([iteration_stats[t].iterations for t in market_ids], dtype=np.int64)
        self.contraction_evaluations = np.array([iteration_stats[t].evaluations for t in market_ids], dtype=np.int64)
        self.foc_norms = np.array([foc_norms[t] for t in market_ids], dtype=options.dtype)
        self.step_norms = np.array([step_norms[t] for t in market_ids], dtype=options.dtype)
        self.product_data = structure_matrices({
            'market_ids': (np.repeat(market_ids, simulation.J), np.object_),
            'firm_ids': (np.tile(simulation.firm_ids, simulation.T), np.object_),
            'prices': (stack_products(prices), options.dtype),
            'shares': (stack_products(shares), options.dtype),
            'characteristics': (stack_products(self.x[1:]), options.dtype),
            'cost_shifters': (stack_products(self.w), options.dtype),
            'costs': (stack_products(costs), options.dtype),
            'xi': (stack_products(self.xi), options.dtype),
            'omega': (stack_products(self.omega), options.dtype),
        })

    def __str__(self) -> str:
        """Format simulation results as a string."""
        header = [
            ("Computation", "Time"),
            ("Fixed Point", "Failures"),
            ("Fixed Point", "Iterations"),
            ("Contraction", "Evaluations"),
            ("FOC Norms", "Max"),
        ]
        with np.errstate(invalid='ignore'):
            max_norm = np.nanmax(self.foc_norms) if np.isfinite(self.foc_norms).any() else np.nan
        values = [
            format_seconds(self.computation_time),
            (~self.fp_converged).sum(),
            self.fp_iterations.sum(),
            self.contraction_evaluations.sum(),
            format_number(max_norm),
        ]
        shares_header, shares_values = summarize_shares(self.shares)
        header.extend(shares_header)
        values.extend(shares_values)
        return format_table(header, values, title="Simulation Results Summary")
