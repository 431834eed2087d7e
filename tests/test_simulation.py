"""Tests of simulation of synthetic markets."""

import numpy as np
import pytest

from blpsim import (
    BLPSimulation, Integration, IVLogitSimulation, Iteration, compute_shares, parallel, simulate_blp,
    simulate_iv_logit
)
from blpsim.exceptions import DimensionMismatchError, Error
from .conftest import SimulationFixture


def test_blp_results(blp_simulation: SimulationFixture) -> None:
    """Test that a solved simulation has converged equilibrium prices that are stacked on top of unchanged non-price
    characteristics, along with reasonable shares and structured product data.
    """
    simulation, results = blp_simulation
    assert str(simulation) and str(results)
    assert results.fp_converged.all()
    assert (results.contraction_evaluations > 0).all()
    assert (results.foc_norms < 1e-6).all()
    assert results.prices.shape == results.shares.shape == (simulation.J, simulation.T)
    assert (results.prices > results.costs).all()
    assert (results.shares > 0).all() and (results.shares.sum(axis=0) < 1).all()
    costs = np.exp(np.einsum('ljt,l->jt', simulation.w, simulation.gamma) + simulation.omega)
    np.testing.assert_allclose(results.costs, costs, rtol=0, atol=1e-14)

    # prices are stacked on a copy of the characteristics
    np.testing.assert_array_equal(results.x[0], results.prices)
    np.testing.assert_array_equal(results.x[1:], simulation.x[1:])
    assert not np.array_equal(simulation.x[0], results.prices)

    # product data are ordered by market
    product_data = results.product_data
    assert product_data.shape == (simulation.J * simulation.T,)
    np.testing.assert_array_equal(product_data.prices.flatten()[:simulation.J], results.prices[:, 0])
    np.testing.assert_array_equal(product_data.characteristics[simulation.J], results.x[1:, 0, 1])
    assert product_data.market_ids.flatten()[-1] == simulation.T - 1


def test_price_coefficients(blp_simulation: SimulationFixture) -> None:
    """Test that draws for prices are bounded between negative one and zero and that every implied coefficient on
    prices is negative.
    """
    simulation, _ = blp_simulation
    assert simulation.nodes.shape == (simulation.K, simulation.S, simulation.T)
    assert (simulation.nodes[0] < 0).all() and (simulation.nodes[0] > -1).all()
    assert (simulation.beta[0] + simulation.sigma[0] * simulation.nodes[0] < 0).all()
    with pytest.raises(ValueError):
        BLPSimulation(2, 2, [0.5, 1], [0.1, 1], [1], Integration('monte_carlo', 10), seed=0)


def test_seeded_reproducibility() -> None:
    """Test that the same seed gives rise to identical simulated data and that a different seed does not."""
    arguments = dict(J=3, T=2, beta=[-2, 1], sigma=[0.5, 0.5], gamma=[0.2], S=50)
    results1 = simulate_blp(**arguments, seed=1)
    results2 = simulate_blp(**arguments, seed=1)
    results3 = simulate_blp(**arguments, seed=2)
    for key in ['x', 'w', 'nodes', 'xi', 'omega', 'costs', 'prices', 'shares']:
        np.testing.assert_array_equal(getattr(results1, key), getattr(results2, key), err_msg=key)
    assert not np.allclose(results1.prices, results3.prices)


def test_ownership(blp_simulation: SimulationFixture) -> None:
    """Test that merging all products into one firm weakly raises every price."""
    simulation, results = blp_simulation
    merged = BLPSimulation(
        simulation.J, simulation.T, simulation.beta, simulation.sigma, simulation.gamma, simulation.integration,
        xi_variance=0.5, omega_variance=0.1, firm_ids=np.zeros(simulation.J), seed=0
    ).replace_endogenous()
    np.testing.assert_array_equal(merged.costs, results.costs)
    assert merged.fp_converged.all()
    assert (merged.prices >= results.prices).all()


@pytest.mark.parametrize('use_pathos', [pytest.param(False, id="multiprocessing"), pytest.param(True, id="pathos")])
def test_parallel(blp_simulation: SimulationFixture, use_pathos: bool) -> None:
    """Test that solving markets in parallel gives rise to the same results as solving them serially."""
    simulation, results = blp_simulation
    with parallel(2, use_pathos=use_pathos):
        parallel_results = simulation.replace_endogenous()
    np.testing.assert_array_equal(parallel_results.prices, results.prices)
    np.testing.assert_array_equal(parallel_results.shares, results.shares)
    np.testing.assert_array_equal(parallel_results.contraction_evaluations, results.contraction_evaluations)


def test_error_behavior(blp_simulation: SimulationFixture) -> None:
    """Test that failures to converge are either raised or reported along with the last computed prices."""
    simulation, _ = blp_simulation
    iteration = Iteration('simple', {'max_evaluations': 1})
    with pytest.raises(Error):
        simulation.replace_endogenous(iteration, error_behavior='raise')
    results = simulation.replace_endogenous(iteration, error_behavior='warn')
    assert not results.fp_converged.any()
    assert (results.contraction_evaluations == 1).all()
    assert np.isfinite(results.prices).all()
    with pytest.raises(ValueError):
        simulation.replace_endogenous(error_behavior='ignore')


def test_blp_dimension_mismatches() -> None:
    """Test that inconsistent dimensions raise errors before any data are simulated."""
    integration = Integration('monte_carlo', 10)
    with pytest.raises(DimensionMismatchError):
        BLPSimulation(2, 2, [-1, 1], [0.5], [1], integration)
    with pytest.raises(DimensionMismatchError):
        BLPSimulation(2, 2, [-1, 1], [0.5, 0.5], [1], integration, firm_ids=[0, 1, 2])


def test_iv_data() -> None:
    """Test that characteristics are generated by the first stage and that the correlation between demand shocks and
    the first endogenous component is close to the strength of endogeneity in a large number of markets.
    """
    rho = 0.6
    pi = np.arange(12, dtype=np.float64).reshape(2, 3, 2) / 10
    simulation = IVLogitSimulation(
        20000, [1, -1, 0.5], [0.5, 0.5, 0.5], pi, rho, Integration('monte_carlo', 2), xi_variance=2.0, seed=0
    )
    assert (simulation.L, simulation.K, simulation.J) == pi.shape
    for j in range(simulation.J):
        expected = pi[:, :, j].T @ simulation.z[:, j, :] + simulation.endogenous
        np.testing.assert_allclose(simulation.x[:, j, :], expected, rtol=0, atol=1e-14)
        correlation = np.corrcoef(simulation.xi[j], simulation.endogenous[0])[0, 1]
        np.testing.assert_allclose(correlation, rho, rtol=0, atol=0.03)
        np.testing.assert_allclose(simulation.xi[j].var(), 2.0, rtol=0.05, atol=0)


@pytest.mark.parametrize('rho', [pytest.param(0.0, id="exogenous"), pytest.param(-1.0, id="perfectly endogenous")])
def test_iv_shares(rho: float) -> None:
    """Test that simulated shares are consistent with the share engine in each market."""
    pi = np.ones((1, 2, 3))
    results = simulate_iv_logit(4, [0.5, -0.5], [0.2, 0.3], pi, rho, S=100, seed=0)
    simulation = results.simulation
    assert str(results)
    assert results.shares.shape == (3, 4)
    assert (results.shares > 0).all() and (results.shares.sum(axis=0) < 1).all()
    assert results.product_data.shape == (12,)
    for t in range(4):
        delta = simulation.x[:, :, t].T @ simulation.beta + simulation.xi[:, t]
        expected = compute_shares(delta, simulation.sigma, simulation.x[:, :, t], simulation.nodes[:, :, t])
        np.testing.assert_allclose(results.shares[:, t], expected, rtol=0, atol=1e-14)


def test_iv_validation() -> None:
    """Test that invalid strengths of endogeneity and inconsistent dimensions raise errors."""
    integration = Integration('monte_carlo', 10)
    with pytest.raises(ValueError):
        IVLogitSimulation(2, [1, 1], [1, 1], np.ones((1, 2, 2)), 1.5, integration)
    with pytest.raises(DimensionMismatchError):
        IVLogitSimulation(2, [1, 1], [1, 1], np.ones((1, 3, 2)), 0.5, integration)
    with pytest.raises(ValueError):
        IVLogitSimulation(2, [1, 1], [1, 1], np.ones((2, 2)), 0.5, integration)


def test_irrelevant_instruments() -> None:
    """Test that first stage coefficients that are all zero for a characteristic give rise to a warning."""
    pi = np.ones((2, 2, 3))
    pi[:, 1] = 0
    with pytest.warns(UserWarning, match=r"\[1\]"):
        IVLogitSimulation(2, [1, 1], [1, 1], pi, 0.5, Integration('monte_carlo', 10), seed=0)
