"""Tests of shares and their derivatives with respect to prices."""

import numpy as np
import pytest

from blpsim import compute_share_derivatives, compute_shares
from blpsim.exceptions import DimensionMismatchError
from .conftest import MarketFixture


def test_share_bounds(market: MarketFixture) -> None:
    """Test that shares are positive and that the outside good always has positive mass."""
    x = np.vstack([market['prices'], market['x']])
    delta = x.T @ market['beta'] + market['xi']
    shares = compute_shares(delta, market['sigma'], x, market['nodes'])
    assert shares.shape == (3,)
    assert (shares > 0).all()
    assert shares.sum() < 1


def test_plain_logit() -> None:
    """Test that without taste heterogeneity, shares are the closed-form logit ones regardless of the draws."""
    delta = np.array([0.5, -1.0, 2.0, 0.0])
    x = np.arange(8, dtype=np.float64).reshape(2, 4)
    nodes = np.random.RandomState(1).normal(size=(2, 25))
    shares = compute_shares(delta, np.zeros(2), x, nodes)
    expected = np.exp(delta) / (1 + np.exp(delta).sum())
    np.testing.assert_allclose(shares, expected, rtol=0, atol=1e-14)


def test_large_utilities() -> None:
    """Test that very large utilities do not overflow and give rise to shares that almost exhaust the market."""
    delta = np.array([800.0, 801.0])
    with np.errstate(under='ignore'):
        shares = compute_shares(delta, np.zeros(1), np.ones((1, 2)), np.zeros((1, 5)))
    assert np.isfinite(shares).all()
    np.testing.assert_allclose(shares.sum(), 1, rtol=0, atol=1e-14)
    np.testing.assert_allclose(shares[0] / shares[1], np.exp(-1), rtol=1e-12, atol=0)


def test_monte_carlo_error() -> None:
    """Test that the variance of simulated shares across sets of draws shrinks as the number of draws grows."""
    delta = np.array([1.0, 0.5])
    sigma = np.array([2.0, 1.0])
    x = np.array([[1.0, 2.0], [0.5, 1.5]])
    variances = []
    for size in [10, 1000]:
        simulated = [
            compute_shares(delta, sigma, x, np.random.RandomState(seed).normal(size=(2, size))) for seed in range(30)
        ]
        variances.append(np.var(simulated, axis=0))
    assert (variances[1] < variances[0]).all()


def test_derivatives(market: MarketFixture) -> None:
    """Test that the Jacobian of shares with respect to prices decomposes exactly into capital lambda minus capital
    gamma and that it is close to a finite difference approximation.
    """
    arguments = (market['beta'], market['sigma'], market['prices'], market['x'], market['nodes'], market['xi'])
    derivatives = compute_share_derivatives(*arguments)

    # test the decomposition
    np.testing.assert_array_equal(derivatives.jacobian, derivatives.capital_lamda - derivatives.capital_gamma)
    np.testing.assert_array_equal(
        derivatives.capital_lamda, np.diag(np.diag(derivatives.capital_lamda))
    )
    np.testing.assert_allclose(derivatives.capital_gamma, derivatives.capital_gamma.T, rtol=0, atol=1e-14)

    # test signs of own and cross effects
    assert (np.diag(derivatives.jacobian) < 0).all()
    assert (derivatives.jacobian[~np.eye(3, dtype=bool)] > 0).all()

    # test against central finite differences
    compute_prices_shares = lambda p: compute_share_derivatives(
        market['beta'], market['sigma'], p, market['x'], market['nodes'], market['xi']
    ).shares
    change = np.sqrt(np.finfo(np.float64).eps)
    approximated = np.zeros_like(derivatives.jacobian)
    for k, perturbation in enumerate(np.eye(market['prices'].size) * change / 2):
        differences = compute_prices_shares(market['prices'] + perturbation) - compute_prices_shares(
            market['prices'] - perturbation
        )
        approximated[:, k] = differences / change
    np.testing.assert_allclose(derivatives.jacobian, approximated, rtol=0, atol=1e-6)

    # test that shares are consistent with the share engine
    x = np.vstack([market['prices'], market['x']])
    delta = x.T @ market['beta'] + market['xi']
    np.testing.assert_allclose(
        derivatives.shares, compute_shares(delta, market['sigma'], x, market['nodes']), rtol=0, atol=1e-14
    )


def test_inputs_unchanged(market: MarketFixture) -> None:
    """Test that computing derivatives does not modify any of the inputs."""
    copies = {k: v.copy() for k, v in market.items()}
    compute_share_derivatives(
        market['beta'], market['sigma'], market['prices'], market['x'], market['nodes'], market['xi']
    )
    for key, value in market.items():
        np.testing.assert_array_equal(value, copies[key])


@pytest.mark.parametrize(['delta', 'sigma', 'x', 'nodes'], [
    pytest.param(np.zeros(3), np.ones(2), np.ones((2, 2)), np.ones((2, 5)), id="delta"),
    pytest.param(np.zeros(2), np.ones(3), np.ones((2, 2)), np.ones((2, 5)), id="sigma"),
    pytest.param(np.zeros(2), np.ones(2), np.ones((2, 2)), np.ones((3, 5)), id="nodes"),
])
def test_dimension_mismatches(delta: np.ndarray, sigma: np.ndarray, x: np.ndarray, nodes: np.ndarray) -> None:
    """Test that inconsistent dimensions raise errors before any computation."""
    with pytest.raises(DimensionMismatchError):
        compute_shares(delta, sigma, x, nodes)
