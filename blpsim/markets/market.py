"""Market underlying the random coefficients logit model."""

from typing import Any, Optional, Tuple

import numpy as np

from .. import exceptions, options
from ..configurations.iteration import ContractionResults, Iteration, euclidean_norm
from ..utilities.algebra import identify_singular_diagonal
from ..utilities.basics import Array, SolverStats, format_number, format_table, output


class Market(object):
    """A single market of the random coefficients logit model.

    Characteristics are stored as a K x J matrix. When solving for prices, the first row of characteristics holds prices
    and is replaced by a copy whenever prices change. Draws are stored as a K x I matrix with equal integration weights.
    """

    t: Any
    J: int
    K: int
    I: int
    x: Array
    nodes: Array
    weights: Array
    sigma: Array
    beta: Optional[Array]
    xi: Array
    ownership_matrix: Array

    def __init__(
            self, x: Array, nodes: Array, sigma: Array, beta: Optional[Array] = None, xi: Optional[Array] = None,
            ownership_matrix: Optional[Array] = None, t: Any = 0) -> None:
        """Store market data and parameters."""
        self.t = t
        self.x = np.asarray(x, options.dtype)
        self.nodes = np.asarray(nodes, options.dtype)
        self.sigma = np.asarray(sigma, options.dtype).flatten()
        self.beta = None if beta is None else np.asarray(beta, options.dtype).flatten()

        # count dimensions
        self.K, self.J = self.x.shape
        self.I = self.nodes.shape[1]

        # validate dimensions
        if self.nodes.shape[0] != self.K:
            raise exceptions.DimensionMismatchError(
                f"nodes have {self.nodes.shape[0]} dimensions but there are {self.K} characteristics."
            )
        if self.sigma.size != self.K:
            raise exceptions.DimensionMismatchError(
                f"sigma has {self.sigma.size} elements but there are {self.K} characteristics."
            )
        if self.beta is not None and self.beta.size != self.K:
            raise exceptions.DimensionMismatchError(
                f"beta has {self.beta.size} elements but there are {self.K} characteristics."
            )

        # store demand shocks
        self.xi = np.zeros(self.J, options.dtype) if xi is None else np.asarray(xi, options.dtype).flatten()
        if self.xi.size != self.J:
            raise exceptions.DimensionMismatchError(f"xi has {self.xi.size} elements but there are {self.J} products.")

        # by default, each product is owned by a different firm
        self.ownership_matrix = np.eye(self.J, dtype=options.dtype)
        if ownership_matrix is not None:
            self.ownership_matrix = np.asarray(ownership_matrix, options.dtype)
            if self.ownership_matrix.shape != (self.J, self.J):
                raise exceptions.DimensionMismatchError(
                    f"The ownership matrix has shape {self.ownership_matrix.shape} but there are {self.J} products."
                )

        # draws are equally weighted
        self.weights = np.full(self.I, 1 / self.I, options.dtype)

    def update_x_with_prices(self, prices: Array) -> Array:
        """Stack prices on top of non-price characteristics without modifying the stored characteristics."""
        return np.vstack([np.asarray(prices, options.dtype).reshape(1, self.J), self.x[1:]])

    def compute_mu(self, x: Optional[Array] = None) -> Array:
        """Compute the J x I matrix of agent-specific utility deviations. By default, use unchanged characteristics."""
        if x is None:
            x = self.x
        return x.T @ (self.sigma[:, None] * self.nodes)

    def compute_delta(self, x: Optional[Array] = None) -> Array:
        """Compute mean utilities. By default, use unchanged characteristics."""
        assert self.beta is not None
        if x is None:
            x = self.x
        return x.T @ self.beta + self.xi

    def compute_probabilities(self, delta: Array, x: Optional[Array] = None) -> Array:
        """Compute the J x I matrix of choice probabilities. Utilities are scaled by the exponential of negative the
        maximum utility for each agent, bounded from below by zero, which is the utility of the outside good.
        """
        utilities = np.asarray(delta, options.dtype).reshape(self.J, 1) + self.compute_mu(x)
        utility_reduction = np.clip(utilities.max(axis=0, keepdims=True), 0, None)
        exp_utilities = np.exp(utilities - utility_reduction)
        return exp_utilities / (np.exp(-utility_reduction) + exp_utilities.sum(axis=0, keepdims=True))

    def compute_shares(self, delta: Optional[Array] = None, prices: Optional[Array] = None) -> Array:
        """Compute shares by integrating over draws. By default, use mean utilities implied by unchanged
        characteristics, optionally updated with prices.
        """
        x = None if prices is None else self.update_x_with_prices(prices)
        if delta is None:
            delta = self.compute_delta(x)
        return self.compute_probabilities(delta, x) @ self.weights

    def compute_price_coefficients(self) -> Array:
        """Compute each agent's coefficient on prices, which are the first characteristic."""
        assert self.beta is not None
        return self.beta[0] + self.sigma[0] * self.nodes[0]

    def compute_capital_lamda_gamma(self, probabilities: Array) -> Tuple[Array, Array]:
        """Compute the diagonal of the capital lambda matrix and the dense capital gamma matrix used to decompose the
        Jacobian of market shares with respect to prices.
        """
        probability_utility_derivatives = probabilities * self.compute_price_coefficients()
        capital_lamda_diagonal = probability_utility_derivatives @ self.weights
        capital_gamma = probabilities @ (self.weights[:, None] * probability_utility_derivatives.T)
        return capital_lamda_diagonal, capital_gamma

    def compute_share_derivatives(self, prices: Optional[Array] = None) -> Tuple[Array, Array, Array, Array]:
        """Compute shares, their Jacobian with respect to prices, and the capital lambda and capital gamma matrices into
        which the Jacobian decomposes. By default, use unchanged prices.
        """
        x = self.x if prices is None else self.update_x_with_prices(prices)
        probabilities = self.compute_probabilities(self.compute_delta(x), x)
        shares = probabilities @ self.weights
        capital_lamda_diagonal, capital_gamma = self.compute_capital_lamda_gamma(probabilities)
        capital_lamda = np.diag(capital_lamda_diagonal)
        return shares, capital_lamda - capital_gamma, capital_lamda, capital_gamma

    def compute_equilibrium_prices(
            self, costs: Array, iteration: Iteration, prices: Optional[Array] = None) -> (
            Tuple[Array, SolverStats, float, float]):
        """Compute equilibrium prices by iterating over the zeta-markup equation. By default, start at prices that are
        ten percent above marginal costs. Also return the final norms of the first order conditions and of the last
        change in prices.
        """
        costs = np.asarray(costs, options.dtype).flatten()
        if costs.size != self.J:
            raise exceptions.DimensionMismatchError(
                f"costs have {costs.size} elements but there are {self.J} products."
            )
        if prices is None:
            prices = 1.1 * costs
        prices = np.asarray(prices, options.dtype).flatten()

        # add padding around the universal display
        if iteration._universal_display:
            output("")

        # keep track of norms from the most recent evaluation
        foc_norm = step_norm = np.nan
        displayed_evaluations = 0

        def universal_display(iterations: int, evaluations: int) -> None:
            """Format and output a universal display of iteration progress. The first row includes the header."""
            nonlocal displayed_evaluations
            if not iteration._universal_display or displayed_evaluations == evaluations:
                return
            header = [
                ("", "Market"),
                ("Contraction", "Iterations"),
                ("Contraction", "Evaluations"),
                ("FOC", "Norm"),
                ("Step", "Norm"),
            ]
            values = [
                str(self.t),
                str(iterations),
                str(evaluations),
                format_number(foc_norm),
                format_number(step_norm),
            ]
            include_header = displayed_evaluations == 0
            output(format_table(header, values, include_border=False, include_header=include_header))
            displayed_evaluations = evaluations

        def contraction(x: Array, iterations: int, evaluations: int) -> ContractionResults:
            """Compute the next equilibrium prices."""
            nonlocal foc_norm, step_norm

            # update probabilities and shares
            updated = self.update_x_with_prices(x)
            probabilities = self.compute_probabilities(self.compute_delta(updated), updated)
            shares = probabilities @ self.weights

            # compute zeta
            capital_lamda_diagonal, capital_gamma = self.compute_capital_lamda_gamma(probabilities)
            if identify_singular_diagonal(capital_lamda_diagonal):
                raise exceptions.SingularOwnEffectError(capital_lamda_diagonal)
            capital_gamma_tilde = self.ownership_matrix * capital_gamma
            margin = x - costs
            zeta = (capital_gamma_tilde.T @ margin - shares) / capital_lamda_diagonal

            # weight by the diagonal of capital lambda so that termination is based on the first order conditions
            updated_x = costs + zeta
            weights = np.abs(capital_lamda_diagonal)
            foc_norm = euclidean_norm(capital_lamda_diagonal * (margin - zeta))
            step_norm = euclidean_norm(updated_x - x)

            # output progress on evaluations 1, 101, 201, and so on
            if evaluations % 100 == 1:
                universal_display(iterations, evaluations)
            return updated_x, weights

        # solve the fixed point problem
        prices, stats = iteration._iterate(prices, contraction)

        # always display the final evaluation
        if stats.evaluations > 0:
            universal_display(stats.iterations, stats.evaluations)
        if iteration._universal_display:
            output("")

        return prices, stats, foc_norm, step_norm
