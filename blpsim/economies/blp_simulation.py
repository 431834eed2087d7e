"""Economy-level simulation of random coefficients logit data with equilibrium prices."""

import time
from typing import Any, Dict, Hashable, List, Optional, Tuple

import numpy as np
import scipy.special

from .economy import Economy
from .. import exceptions, options
from ..configurations.integration import Integration
from ..configurations.iteration import Iteration
from ..construction import build_ownership
from ..markets.simulation_market import SimulationMarket
from ..results.simulation_results import BLPSimulationResults
from ..utilities.basics import Array, Error, SolverStats, format_seconds, generate_items, output, output_progress


class BLPSimulation(Economy):
    r"""Simulation of random coefficients logit data in which prices are set by Bertrand-Nash competition.

    The first of the :math:`K` characteristics is price, :math:`p`. Remaining characteristics are drawn from the
    standard uniform distribution, as are the :math:`L` marginal cost shifters, :math:`w`. Demand and cost shocks,
    :math:`\xi` and :math:`\omega`, are independent mean-zero normals. Marginal costs are log-linear:

    .. math:: c_{jt} = \exp(w_{jt}'\gamma + \omega_{jt}).

    Draws, :math:`\nu`, are built according to an :class:`Integration` configuration. Draws for the first
    characteristic are transformed with the negative of the standard normal CDF, :math:`-\Phi(\nu_1)`, so that they are
    negative and bounded. Every simulated consumer's coefficient on prices, :math:`\alpha_i = \beta_1 + \sigma_1
    \nu_{1i}`, must be negative, otherwise the firms' pricing problem is not well-defined.

    Equilibrium prices and the shares associated with them are computed by :meth:`BLPSimulation.replace_endogenous`.

    Parameters
    ----------
    J : `int`
        Number of products in each market.
    T : `int`
        Number of markets.
    beta : `array-like`
        Vector of :math:`K` mean tastes, :math:`\beta`. The first element is the mean coefficient on prices.
    sigma : `array-like`
        Vector of :math:`K` taste standard deviations, :math:`\sigma`.
    gamma : `array-like`
        Vector of :math:`L` marginal cost coefficients, :math:`\gamma`.
    integration : `Integration`
        :class:`Integration` configuration for how to build draws, :math:`\nu`. If it does not configure a seed, draws
        are built with this simulation's random number generator.
    xi_variance : `float, optional`
        Variance of :math:`\xi`. The default value is ``1.0``.
    omega_variance : `float, optional`
        Variance of :math:`\omega`. The default value is ``1.0``.
    firm_ids : `array-like, optional`
        IDs that associate each of the :math:`J` products with firms, which are the same in every market. By default,
        each product is produced by a different firm. The :func:`build_id_data` function can be used to build IDs for
        multi-product firms.
    seed : `int, optional`
        Passed to :class:`numpy.random.RandomState` to seed the random number generator before data are simulated. By
        default, a seed is not passed to the random number generator.

    Attributes
    ----------
    T : `int`
        Number of markets, :math:`T`.
    J : `int`
        Number of products in each market, :math:`J`.
    K : `int`
        Number of characteristics, including prices, :math:`K`.
    L : `int`
        Number of marginal cost shifters, :math:`L`.
    S : `int`
        Number of draws in each market, :math:`S`.
    beta : `ndarray`
        Mean tastes, :math:`\beta`.
    sigma : `ndarray`
        Taste standard deviations, :math:`\sigma`.
    gamma : `ndarray`
        Marginal cost coefficients, :math:`\gamma`.
    firm_ids : `ndarray`
        Firm IDs of the :math:`J` products.
    ownership : `ndarray`
        The :math:`J \times J` ownership matrix built from ``firm_ids``.
    integration : `Integration`
        :class:`Integration` configuration used to build draws.
    x : `ndarray`
        The :math:`K \times J \times T` array of characteristics. The first row holds placeholders for prices until
        they are replaced in :attr:`BLPSimulationResults.x`.
    w : `ndarray`
        The :math:`L \times J \times T` array of marginal cost shifters.
    xi : `ndarray`
        The :math:`J \times T` array of demand shocks, :math:`\xi`.
    omega : `ndarray`
        The :math:`J \times T` array of cost shocks, :math:`\omega`.
    nodes : `ndarray`
        The :math:`K \times S \times T` array of draws, :math:`\nu`.

    Examples
    --------
    .. code-block:: python

       simulation = blpsim.BLPSimulation(
           J=5,
           T=20,
           beta=[-1, 1, 1],
           sigma=[0.5, 0.5, 0.5],
           gamma=[0.5, 0.5],
           integration=blpsim.Integration('monte_carlo', 500),
           seed=0
       )
       results = simulation.replace_endogenous()

    """

    gamma: Array
    firm_ids: Array
    ownership: Array
    xi_variance: float
    omega_variance: float
    x: Array
    w: Array
    xi: Array
    omega: Array
    nodes: Array

    def __init__(
            self, J: int, T: int, beta: Any, sigma: Any, gamma: Any, integration: Integration,
            xi_variance: float = 1.0, omega_variance: float = 1.0, firm_ids: Optional[Any] = None,
            seed: Optional[int] = None) -> None:
        """Validate parameters and simulate all data except for prices and shares."""

        # keep track of long it takes to initialize the simulation
        output("Initializing the simulation ...")
        start_time = time.time()

        # initialize the underlying economy
        self.gamma = self._coerce_vector(gamma, "gamma")
        super().__init__(T, J, self.gamma.size, beta, sigma, integration)
        self.xi_variance = self._coerce_variance(xi_variance, "xi_variance")
        self.omega_variance = self._coerce_variance(omega_variance, "omega_variance")

        # validate or construct firm IDs
        if firm_ids is None:
            self.firm_ids = np.arange(J)
        else:
            self.firm_ids = np.asarray(firm_ids).flatten()
            if self.firm_ids.size != J:
                raise exceptions.DimensionMismatchError(
                    f"firm_ids has {self.firm_ids.size} elements but there are {J} products."
                )
        self.ownership = build_ownership(self.firm_ids)

        # simulate exogenous data
        state = np.random.RandomState(seed)
        self.x = state.uniform(size=(self.K, J, T)).astype(options.dtype)
        self.xi = np.sqrt(self.xi_variance) * state.normal(size=(J, T)).astype(options.dtype)
        self.w = state.uniform(size=(self.L, J, T)).astype(options.dtype)

        # build draws, bounding those for prices between negative one and zero
        self.nodes = integration._build_many(self.K, T, state).astype(options.dtype)
        self.nodes[0] = -scipy.special.ndtr(self.nodes[0])

        # simulate cost shocks
        self.omega = np.sqrt(self.omega_variance) * state.normal(size=(J, T)).astype(options.dtype)

        # every simulated consumer must dislike higher prices
        alpha = self.beta[0] + self.sigma[0] * self.nodes[0]
        if not (alpha < 0).all():
            raise ValueError(
                "beta and sigma must imply a negative coefficient on prices for every draw, but the largest one is "
                f"{alpha.max()}."
            )

        # output information about the initialized simulation
        output(f"Initialized the simulation after {format_seconds(time.time() - start_time)}.")
        output("")
        output(self)

    def _get_parameter_items(self) -> List[Tuple[str, Array]]:
        """Supplement taste parameters with marginal cost parameters."""
        return super()._get_parameter_items() + [("Gamma", self.gamma)]

    def compute_costs(self) -> Array:
        r"""Compute the :math:`J \times T` matrix of marginal costs, :math:`c = \exp(w'\gamma + \omega)`."""
        return np.exp(np.einsum('ljt,l->jt', self.w, self.gamma) + self.omega)

    def replace_endogenous(
            self, iteration: Optional[Iteration] = None, error_behavior: str = 'warn') -> BLPSimulationResults:
        r"""Compute equilibrium prices and shares that are consistent with true parameters.

        Prices are computed in each market by iterating over the :math:`\zeta`-markup contraction of Morrow and Skerlos
        (2011),

        .. math:: p \leftarrow c + \zeta(p), \quad \zeta(p) = \Lambda^{-1}(O \odot \Gamma)'(p - c) - \Lambda^{-1}s,

        starting from prices ten percent above marginal costs. Shares are then computed at the final prices, which are
        stacked on top of the non-price characteristics in :attr:`BLPSimulationResults.x`.

        .. note::

           This method supports :func:`parallel` processing. If multiprocessing is used, market-by-market computation of
           prices and shares will be distributed among the processes.

        Parameters
        ----------
        iteration : `Iteration, optional`
            :class:`Iteration` configuration for how to solve the fixed point problem in each market. By default,
            ``Iteration('simple')`` is used, which terminates when both the norm of the change in prices and the norm
            of the first order conditions are below the square root of machine epsilon, or after ``10000`` evaluations.
        error_behavior : `str, optional`
            How to handle errors when computing prices and shares. For example, the fixed point routine may not converge
            if the effects of nonlinear parameters on price overwhelm the linear parameter on price, which should be
            sufficiently negative. The following behaviors are supported:

                - ``'raise'`` - Raise an exception.

                - ``'warn'`` (default) - Output information about the errors and use the last computed prices and the
                  shares associated with them.

        Returns
        -------
        `BLPSimulationResults`
            :class:`BLPSimulationResults` of the solved simulation.

        """
        errors: List[Error] = []

        # validate settings
        iteration = self._coerce_optional_prices_iteration(iteration)
        self._validate_error_behavior(error_behavior)

        # keep track of long it takes to replace endogenous variables
        output("Replacing prices and shares ...")
        start_time = time.time()

        # compute marginal costs
        costs = self.compute_costs()

        def market_factory(t: Hashable) -> Tuple[SimulationMarket, Array, Iteration]:
            """Build a market along with arguments used to compute prices and shares."""
            assert iteration is not None
            market_t = SimulationMarket(
                self.x[:, :, t], self.nodes[:, :, t], self.sigma, self.beta, self.xi[:, t], self.ownership, t
            )
            return market_t, costs[:, t], iteration

        # compute prices and market shares market-by-market
        prices_mapping: Dict[Hashable, Array] = {}
        shares_mapping: Dict[Hashable, Array] = {}
        iteration_stats: Dict[Hashable, SolverStats] = {}
        foc_norms: Dict[Hashable, float] = {}
        step_norms: Dict[Hashable, float] = {}
        generator = generate_items(self.unique_market_ids, market_factory, SimulationMarket.compute_endogenous)
        generator = output_progress(generator, self.T, start_time)
        for t, (prices_t, shares_t, stats_t, foc_norm_t, step_norm_t, errors_t) in generator:
            prices_mapping[t] = prices_t
            shares_mapping[t] = shares_t
            iteration_stats[t] = stats_t
            foc_norms[t] = foc_norm_t
            step_norms[t] = step_norm_t
            errors.extend(errors_t)

        # structure the results
        self._handle_errors(errors, error_behavior)
        prices = np.column_stack([prices_mapping[t] for t in self.unique_market_ids])
        shares = np.column_stack([shares_mapping[t] for t in self.unique_market_ids])
        results = BLPSimulationResults(
            self, prices, shares, costs, start_time, time.time(), iteration_stats, foc_norms, step_norms
        )
        output(f"Replaced prices and shares after {format_seconds(results.computation_time)}.")
        output("")
        output(results)
        return results
