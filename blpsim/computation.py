"""Market-level computation of shares, share derivatives, and equilibrium prices, along with simulation shortcuts."""

import time
from typing import Any, NamedTuple, Optional

import numpy as np

from . import exceptions, options
from .configurations.integration import Integration
from .configurations.iteration import Iteration
from .construction import build_ownership
from .economies.blp_simulation import BLPSimulation
from .economies.economy import Economy
from .economies.iv_simulation import IVLogitSimulation
from .markets.market import Market
from .results.equilibrium_results import EquilibriumResults
from .results.simulation_results import BLPSimulationResults, IVLogitSimulationResults
from .utilities.basics import Array


class ShareDerivatives(NamedTuple):
    """Shares along with their Jacobian with respect to prices and its decomposition, :math:`\\Lambda - \\Gamma`."""

    shares: Array
    jacobian: Array
    capital_lamda: Array
    capital_gamma: Array


def compute_shares(delta: Any, sigma: Any, x: Any, nodes: Any) -> Array:
    r"""Compute random coefficients logit shares in a single market.

    The utility that agent :math:`i` gets from product :math:`j` is

    .. math:: u_{ij} = \delta_j + \sum_k \sigma_k \nu_{ki} x_{kj} + \epsilon_{ij},

    in which :math:`\epsilon_{ij}` is Type I Extreme Value and the outside good has utility :math:`\epsilon_{i0}`.
    Shares are averages of logit choice probabilities over draws. Utilities are scaled by each agent's largest utility
    before they are exponentiated, so large utilities do not overflow.

    Parameters
    ----------
    delta : `array-like`
        Mean utilities, :math:`\delta`, of the :math:`J` products.
    sigma : `array-like`
        Taste standard deviations, :math:`\sigma`, for the :math:`K` characteristics.
    x : `array-like`
        The :math:`K \times J` matrix of characteristics.
    nodes : `array-like`
        The :math:`K \times S` matrix of draws, :math:`\nu`.

    Returns
    -------
    `ndarray`
        Shares of the :math:`J` products.

    Examples
    --------
    .. code-block:: python

       shares = blpsim.compute_shares(delta=[1, 2], sigma=[0.5], x=[[1, 2]], nodes=np.random.normal(size=(1, 100)))

    """
    market = Market(x, nodes, sigma)
    delta = np.asarray(delta, options.dtype).flatten()
    if delta.size != market.J:
        raise exceptions.DimensionMismatchError(f"delta has {delta.size} elements but there are {market.J} products.")
    return market.compute_shares(delta)


def compute_share_derivatives(beta: Any, sigma: Any, prices: Any, x: Any, nodes: Any, xi: Any) -> ShareDerivatives:
    r"""Compute shares and their Jacobian with respect to prices in a single market.

    Prices are the first characteristic. They are stacked on top of the non-price characteristics to form a new matrix
    of characteristics, and mean utilities are :math:`\delta = x'\beta + \xi`. With :math:`\alpha_i = \beta_1 +
    \sigma_1 \nu_{1i}`, the Jacobian decomposes exactly into

    .. math:: \frac{\partial s}{\partial p} = \Lambda - \Gamma,

    in which :math:`\Lambda` is diagonal with :math:`\Lambda_{jj} = \frac{1}{S}\sum_i \alpha_i s_{ij}` and
    :math:`\Gamma_{jk} = \frac{1}{S}\sum_i \alpha_i s_{ij} s_{ik}`.

    Parameters
    ----------
    beta : `array-like`
        Mean tastes, :math:`\beta`, for the :math:`K` characteristics, including prices.
    sigma : `array-like`
        Taste standard deviations, :math:`\sigma`, for the :math:`K` characteristics, including prices.
    prices : `array-like`
        Prices, :math:`p`, of the :math:`J` products.
    x : `array-like`
        The :math:`(K - 1) \times J` matrix of non-price characteristics.
    nodes : `array-like`
        The :math:`K \times S` matrix of draws, :math:`\nu`.
    xi : `array-like`
        Demand shocks, :math:`\xi`, of the :math:`J` products.

    Returns
    -------
    `ShareDerivatives`
        Named tuple of ``shares``, their ``jacobian`` with respect to prices, and the ``capital_lamda`` and
        ``capital_gamma`` matrices into which the Jacobian decomposes.

    """
    market = Market(stack_prices(prices, x), nodes, sigma, beta, xi)
    return ShareDerivatives(*market.compute_share_derivatives())


def compute_equilibrium_prices(
        costs: Any, beta: Any, sigma: Any, xi: Any, x: Any, nodes: Any, firm_ids: Optional[Any] = None,
        iteration: Optional[Iteration] = None, prices: Optional[Any] = None) -> EquilibriumResults:
    r"""Compute Bertrand-Nash equilibrium prices in a single market.

    Prices are computed by iterating over the :math:`\zeta`-markup contraction of Morrow and Skerlos (2011),

    .. math:: p \leftarrow c + \zeta(p), \quad \zeta(p) = \Lambda^{-1}(O \odot \Gamma)'(p - c) - \Lambda^{-1}s,

    in which :math:`\Lambda` and :math:`\Gamma` are evaluated at current prices as in
    :func:`compute_share_derivatives` and :math:`O` is the ownership matrix built from ``firm_ids``. By default,
    iteration terminates when both the norm of the change in prices and the norm of the first order conditions,
    :math:`\|\Lambda(p - c - \zeta)\|`, are within tolerance.

    Parameters
    ----------
    costs : `array-like`
        Marginal costs, :math:`c`, of the :math:`J` products.
    beta : `array-like`
        Mean tastes, :math:`\beta`, for the :math:`K` characteristics, including prices.
    sigma : `array-like`
        Taste standard deviations, :math:`\sigma`, for the :math:`K` characteristics, including prices.
    xi : `array-like`
        Demand shocks, :math:`\xi`, of the :math:`J` products.
    x : `array-like`
        The :math:`(K - 1) \times J` matrix of non-price characteristics.
    nodes : `array-like`
        The :math:`K \times S` matrix of draws, :math:`\nu`.
    firm_ids : `array-like, optional`
        IDs that associate products with firms. By default, each product is produced by a different firm.
    iteration : `Iteration, optional`
        :class:`Iteration` configuration for how to solve the fixed point problem. By default, ``Iteration('simple')``
        is used.
    prices : `array-like, optional`
        Prices at which the iteration routine starts. By default, prices are ten percent above marginal costs.

    Returns
    -------
    `EquilibriumResults`
        :class:`EquilibriumResults` of the computed prices, which include whether the routine converged.

    Examples
    --------
    .. code-block:: python

       results = blpsim.compute_equilibrium_prices(
           costs=[1, 1],
           beta=[-1, 1],
           sigma=[0.5, 0.5],
           xi=[0, 0],
           x=[[1, 2]],
           nodes=np.random.normal(size=(2, 500)),
           firm_ids=[0, 0]
       )

    """
    start_time = time.time()
    iteration = Economy._coerce_optional_prices_iteration(iteration)
    costs = np.asarray(costs, options.dtype).flatten()
    if firm_ids is None:
        firm_ids = np.arange(costs.size)
    ownership = build_ownership(firm_ids)
    market = Market(stack_prices(1.1 * costs, x), nodes, sigma, beta, xi, ownership)
    if prices is not None:
        prices = np.asarray(prices, options.dtype).flatten()
        if prices.size != market.J:
            raise exceptions.DimensionMismatchError(
                f"prices have {prices.size} elements but there are {market.J} products."
            )
    prices, stats, foc_norm, step_norm = market.compute_equilibrium_prices(costs, iteration, prices)
    shares = market.compute_shares(prices=prices)
    return EquilibriumResults(prices, shares, costs, stats, foc_norm, step_norm, start_time, time.time())


def stack_prices(prices: Any, x: Any) -> Array:
    """Stack prices on top of non-price characteristics, validating that there are as many prices as products."""
    prices = np.asarray(prices, options.dtype).flatten()
    x = np.asarray(x, options.dtype)
    if x.size == 0:
        x = x.reshape(0, prices.size)
    if x.ndim != 2:
        raise ValueError("x must be a matrix of non-price characteristics.")
    if x.shape[1] != prices.size:
        raise exceptions.DimensionMismatchError(
            f"x has {x.shape[1]} products but there are {prices.size} prices."
        )
    return np.vstack([prices[None], x])


def simulate_iv_logit(
        T: int, beta: Any, sigma: Any, pi: Any, rho: float, S: int, xi_variance: float = 1.0,
        seed: Optional[int] = None) -> IVLogitSimulationResults:
    r"""Simulate random coefficients logit data with endogenous characteristics using Monte Carlo draws.

    This is a shortcut for initializing an :class:`IVLogitSimulation` with ``Integration('monte_carlo', S)`` and
    calling :meth:`IVLogitSimulation.replace_endogenous`. Draws are built with the simulation's random number generator,
    so ``seed`` determines all simulated data.

    Parameters
    ----------
    T : `int`
        Number of markets.
    beta : `array-like`
        Vector of :math:`K` mean tastes, :math:`\beta`.
    sigma : `array-like`
        Vector of :math:`K` taste standard deviations, :math:`\sigma`.
    pi : `array-like`
        The :math:`L \times K \times J` array of first stage coefficients, :math:`\pi`.
    rho : `float`
        Strength of endogeneity, :math:`\rho`, which must be between ``-1`` and ``1``.
    S : `int`
        Number of draws in each market.
    xi_variance : `float, optional`
        Variance of :math:`\xi`. The default value is ``1.0``.
    seed : `int, optional`
        Seed for the random number generator.

    Returns
    -------
    `IVLogitSimulationResults`
        :class:`IVLogitSimulationResults` of the solved simulation.

    """
    integration = Integration('monte_carlo', S)
    simulation = IVLogitSimulation(T, beta, sigma, pi, rho, integration, xi_variance, seed)
    return simulation.replace_endogenous()


def simulate_blp(
        J: int, T: int, beta: Any, sigma: Any, gamma: Any, S: int, xi_variance: float = 1.0,
        omega_variance: float = 1.0, firm_ids: Optional[Any] = None, seed: Optional[int] = None) -> (
        BLPSimulationResults):
    r"""Simulate random coefficients logit data with equilibrium prices using Monte Carlo draws.

    This is a shortcut for initializing a :class:`BLPSimulation` with ``Integration('monte_carlo', S)`` and calling
    :meth:`BLPSimulation.replace_endogenous` with the default :class:`Iteration` configuration. Draws are built with the
    simulation's random number generator, so ``seed`` determines all simulated data.

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
    S : `int`
        Number of draws in each market.
    xi_variance : `float, optional`
        Variance of :math:`\xi`. The default value is ``1.0``.
    omega_variance : `float, optional`
        Variance of :math:`\omega`. The default value is ``1.0``.
    firm_ids : `array-like, optional`
        IDs that associate each of the :math:`J` products with firms. By default, each product is produced by a
        different firm.
    seed : `int, optional`
        Seed for the random number generator.

    Returns
    -------
    `BLPSimulationResults`
        :class:`BLPSimulationResults` of the solved simulation.

    """
    integration = Integration('monte_carlo', S)
    simulation = BLPSimulation(J, T, beta, sigma, gamma, integration, xi_variance, omega_variance, firm_ids, seed)
    return simulation.replace_endogenous()
