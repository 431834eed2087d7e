"""Market-level simulation of synthetic data."""

from typing import List, Optional, Tuple

from .market import Market
from .. import exceptions
from ..configurations.iteration import Iteration
from ..utilities.basics import Array, Error, SolverStats, NumericalErrorHandler


class SimulationMarket(Market):
    """A market in a simulation of synthetic data."""

    def compute_endogenous(self, costs: Array, iteration: Iteration) -> (
            Tuple[Array, Array, SolverStats, float, float, List[Error]]):
        """Compute equilibrium prices and the shares associated with them, along with the final norms of the first order
        conditions and of the last change in prices.
        """
        errors: List[Error] = []
        prices, stats, foc_norm, step_norm, price_errors = self.safely_compute_equilibrium_prices(costs, iteration)
        shares, share_errors = self.safely_compute_shares(prices)
        errors.extend(price_errors + share_errors)
        return prices, shares, stats, foc_norm, step_norm, errors

    @NumericalErrorHandler(exceptions.SyntheticPricesNumericalError)
    def safely_compute_equilibrium_prices(self, costs: Array, iteration: Iteration) -> (
            Tuple[Array, SolverStats, float, float, List[Error]]):
        """Compute equilibrium prices by iterating over the zeta-markup equation, handling any numerical errors."""
        errors: List[Error] = []
        prices, stats, foc_norm, step_norm = self.compute_equilibrium_prices(costs, iteration)
        if not stats.converged:
            errors.append(exceptions.SyntheticPricesConvergenceError())
        return prices, stats, foc_norm, step_norm, errors

    @NumericalErrorHandler(exceptions.SyntheticSharesNumericalError)
    def safely_compute_shares(self, prices: Optional[Array] = None) -> Tuple[Array, List[Error]]:
        """Compute shares, which are associated with prices if they are specified, handling any numerical errors."""
        errors: List[Error] = []
        shares = self.compute_shares(prices=prices)
        return shares, errors
