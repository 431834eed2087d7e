"""Economy-level simulation of random coefficients logit data with endogenous characteristics."""

import time
from typing import Any, Dict, Hashable, List, Optional, Tuple

import numpy as np

from .economy import Economy
from .. import exceptions, options
from ..configurations.integration import Integration
from ..markets.simulation_market import SimulationMarket
from ..results.simulation_results import IVLogitSimulationResults
from ..utilities.basics import Array, Error, format_seconds, generate_items, output, output_progress, warn


class IVLogitSimulation(Economy):
    r"""Simulation of random coefficients logit data in which characteristics are correlated with demand shocks.

    Each of the :math:`K` characteristics of product :math:`j` in market :math:`t` is generated from a first stage
    linear in :math:`L` excluded instruments plus a market-level endogenous component,

    .. math:: x_{jt} = \pi_j' z_{jt} + e_t,

    in which instruments :math:`z_{jt}` and endogenous components :math:`e_t` are standard normal. Demand shocks load on
    the endogenous component of the first characteristic,

    .. math:: \xi_{jt} = \sigma_\xi \left(\rho e_{1t} + \sqrt{1 - \rho^2} \epsilon_{jt}\right),

    with fresh standard normal :math:`\epsilon_{jt}`, so that :math:`\rho` governs the strength of endogeneity. Draws
    are built according to an :class:`Integration` configuration, and shares are computed by
    :meth:`IVLogitSimulation.replace_endogenous`.

    Parameters
    ----------
    T : `int`
        Number of markets.
    beta : `array-like`
        Vector of :math:`K` mean tastes, :math:`\beta`.
    sigma : `array-like`
        Vector of :math:`K` taste standard deviations, :math:`\sigma`.
    pi : `array-like`
        The :math:`L \times K \times J` array of first stage coefficients, :math:`\pi`. Its last dimension determines
        the number of products in each market.
    rho : `float`
        Strength of endogeneity, :math:`\rho`, which must be between ``-1`` and ``1``.
    integration : `Integration`
        :class:`Integration` configuration for how to build draws, :math:`\nu`. If it does not configure a seed, draws
        are built with this simulation's random number generator.
    xi_variance : `float, optional`
        Variance of :math:`\xi`. The default value is ``1.0``.
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
        Number of characteristics, :math:`K`.
    L : `int`
        Number of excluded instruments, :math:`L`.
    S : `int`
        Number of draws in each market, :math:`S`.
    beta : `ndarray`
        Mean tastes, :math:`\beta`.
    sigma : `ndarray`
        Taste standard deviations, :math:`\sigma`.
    pi : `ndarray`
        First stage coefficients, :math:`\pi`.
    rho : `float`
        Strength of endogeneity, :math:`\rho`.
    integration : `Integration`
        :class:`Integration` configuration used to build draws.
    x : `ndarray`
        The :math:`K \times J \times T` array of characteristics.
    z : `ndarray`
        The :math:`L \times J \times T` array of excluded instruments.
    endogenous : `ndarray`
        The :math:`K \times T` array of market-level endogenous components, :math:`e`.
    xi : `ndarray`
        The :math:`J \times T` array of demand shocks, :math:`\xi`.
    nodes : `ndarray`
        The :math:`K \times S \times T` array of draws, :math:`\nu`.

    Examples
    --------
    .. code-block:: python

       simulation = blpsim.IVLogitSimulation(
           T=100,
           beta=[1, -1],
           sigma=[0.5, 0.5],
           pi=np.ones((3, 2, 5)),
           rho=0.5,
           integration=blpsim.Integration('monte_carlo', 200),
           seed=0
       )
       results = simulation.replace_endogenous()

    """

    pi: Array
    rho: float
    xi_variance: float
    x: Array
    z: Array
    endogenous: Array
    xi: Array
    nodes: Array

    def __init__(
            self, T: int, beta: Any, sigma: Any, pi: Any, rho: float, integration: Integration,
            xi_variance: float = 1.0, seed: Optional[int] = None) -> None:
        """Validate parameters and simulate all data except for shares."""

        # keep track of long it takes to initialize the simulation
        output("Initializing the simulation ...")
        start_time = time.time()

        # validate first stage coefficients
        self.pi = np.asarray(pi, options.dtype)
        if self.pi.ndim != 3:
            raise ValueError("pi must be a three-dimensional L x K x J array.")
        L, K, J = self.pi.shape

        # initialize the underlying economy
        super().__init__(T, J, L, beta, sigma, integration)
        if K != self.K:
            raise exceptions.DimensionMismatchError(
                f"pi has {K} characteristics in its second dimension but beta has {self.K} elements."
            )

        # warn if some characteristics do not depend on any instrument
        irrelevant = ~np.any(self.pi != 0, axis=(0, 2))
        if irrelevant.any():
            warn(
                f"The first stage coefficients on all instruments are zero for the characteristics with the following "
                f"indices: {np.flatnonzero(irrelevant).tolist()}. Excluded instruments carry no information about "
                f"these characteristics."
            )

        # validate the strength of endogeneity and the variance of demand shocks
        if not isinstance(rho, (int, float)) or not np.isfinite(rho):
            raise TypeError("rho must be a float.")
        if abs(rho) > 1:
            raise ValueError("rho must be between -1 and 1.")
        self.rho = float(rho)
        self.xi_variance = self._coerce_variance(xi_variance, "xi_variance")

        # simulate instruments and endogenous components
        state = np.random.RandomState(seed)
        self.z = state.normal(size=(L, J, T)).astype(options.dtype)
        self.endogenous = state.normal(size=(K, T)).astype(options.dtype)

        # simulate characteristics and demand shocks product by product
        self.x = np.zeros((K, J, T), options.dtype)
        self.xi = np.zeros((J, T), options.dtype)
        for j in range(J):
            self.x[:, j, :] = self.pi[:, :, j].T @ self.z[:, j, :] + self.endogenous
            shocks = state.normal(size=T)
            self.xi[j] = np.sqrt(self.xi_variance) * (
                self.rho * self.endogenous[0] + np.sqrt(1 - self.rho**2) * shocks
            )

        # build draws
        self.nodes = integration._build_many(K, T, state).astype(options.dtype)

        # output information about the initialized simulation
        output(f"Initialized the simulation after {format_seconds(time.time() - start_time)}.")
        output("")
        output(self)

    def _get_parameter_items(self) -> List[Tuple[str, Array]]:
        """Supplement taste parameters with the strength of endogeneity."""
        return super()._get_parameter_items() + [("Rho", np.array([self.rho]))]

    def replace_endogenous(self, error_behavior: str = 'warn') -> IVLogitSimulationResults:
        r"""Compute shares that are consistent with true parameters.

        In each market :math:`t`, mean utilities are :math:`\delta_t = x_t'\beta + \xi_t` and shares are the average
        over draws of logit choice probabilities, which include an outside good with utility normalized to zero.

        .. note::

           This method supports :func:`parallel` processing. If multiprocessing is used, market-by-market computation of
           shares will be distributed among the processes.

        Parameters
        ----------
        error_behavior : `str, optional`
            How to handle numerical errors when computing shares. The following behaviors are supported:

                - ``'raise'`` - Raise an exception.

                - ``'warn'`` (default) - Output information about the errors and return the computed shares.

        Returns
        -------
        `IVLogitSimulationResults`
            :class:`IVLogitSimulationResults` of the solved simulation.

        """
        errors: List[Error] = []
        self._validate_error_behavior(error_behavior)

        # keep track of long it takes to compute shares
        output("Computing shares ...")
        start_time = time.time()

        def market_factory(t: Hashable) -> Tuple[SimulationMarket]:
            """Build a market."""
            market_t = SimulationMarket(
                self.x[:, :, t], self.nodes[:, :, t], self.sigma, self.beta, self.xi[:, t], t=t
            )
            return market_t,

        # compute shares market-by-market
        shares_mapping: Dict[Hashable, Array] = {}
        generator = generate_items(self.unique_market_ids, market_factory, SimulationMarket.safely_compute_shares)
        generator = output_progress(generator, self.T, start_time)
        for t, (shares_t, errors_t) in generator:
            shares_mapping[t] = shares_t
            errors.extend(errors_t)

        # structure the results
        self._handle_errors(errors, error_behavior)
        shares = np.column_stack([shares_mapping[t] for t in self.unique_market_ids])
        results = IVLogitSimulationResults(self, shares, start_time, time.time())
        output(f"Computed shares after {format_seconds(results.computation_time)}.")
        output("")
        output(results)
        return results
