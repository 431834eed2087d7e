"""Tests of construction of draws for integration."""

import numpy as np
import pytest

from blpsim import Integration


@pytest.mark.parametrize(['dimensions', 'specification', 'size'], [
    pytest.param(1, 'monte_carlo', 100000, id="1D Monte Carlo"),
    pytest.param(2, 'monte_carlo', 150000, id="2D Monte Carlo"),
    pytest.param(1, 'halton', 50000, id="1D Halton"),
    pytest.param(2, 'halton', 100000, id="2D Halton"),
    pytest.param(1, 'lhs', 100000, id="1D LHS"),
    pytest.param(3, 'lhs', 200000, id="3D LHS"),
    pytest.param(1, 'mlhs', 50000, id="1D MLHS"),
    pytest.param(3, 'mlhs', 100000, id="3D MLHS"),
])
def test_hermite_integral(dimensions: int, specification: str, size: int) -> None:
    """Test if approximations of a simple Gauss-Hermite integral (product of squared variables of integration with
    respect to the standard normal density) are reasonably correct when draws are equally weighted.
    """
    nodes = Integration(specification, size, {'seed': 0})._build_many(dimensions, 1)[:, :, 0]
    simulated = (nodes**2).prod(axis=0).mean()
    np.testing.assert_allclose(simulated, 1, rtol=0, atol=0.01)


@pytest.mark.parametrize('dimensions', [
    pytest.param(1, id="1D"),
    pytest.param(2, id="2D"),
    pytest.param(3, id="3D"),
    pytest.param(6, id="6D"),
])
@pytest.mark.parametrize(['specification', 'size'], [
    pytest.param('monte_carlo', 100, id="small Monte Carlo"),
    pytest.param('monte_carlo', 300, id="large Monte Carlo"),
    pytest.param('halton', 10, id="small Halton"),
    pytest.param('halton', 20, id="large Halton"),
    pytest.param('lhs', 10, id="small LHS"),
    pytest.param('mlhs', 20, id="large MLHS"),
])
def test_draws_and_formatting(dimensions: int, specification: str, size: int) -> None:
    """Test that draws are finite and distinct within a market and that the configurations can be formatted."""
    integration = Integration(specification, size)
    assert str(integration)
    nodes = integration._build_many(dimensions, 2, np.random.RandomState(0))
    assert nodes.shape == (dimensions, size, 2)
    assert np.isfinite(nodes).all()
    assert np.unique(nodes[..., 0], axis=1).shape[1] == size


@pytest.mark.parametrize('specification', [
    pytest.param('monte_carlo', id="Monte Carlo"),
    pytest.param('halton', id="Halton"),
    pytest.param('mlhs', id="MLHS"),
])
def test_market_draws(specification: str) -> None:
    """Test that draws for many markets have the expected shape, are built with a specified random number generator
    when there is no configured seed, and differ across markets.
    """
    integration = Integration(specification, 50)
    nodes1 = integration._build_many(3, 4, np.random.RandomState(0))
    nodes2 = integration._build_many(3, 4, np.random.RandomState(0))
    assert nodes1.shape == (3, 50, 4)
    np.testing.assert_array_equal(nodes1, nodes2)
    assert not np.allclose(nodes1[..., 0], nodes1[..., 1])


def test_configured_seed() -> None:
    """Test that a configured seed takes precedence over a specified random number generator."""
    integration = Integration('monte_carlo', 20, {'seed': 1})
    nodes1 = integration._build_many(2, 3, np.random.RandomState(0))
    nodes2 = integration._build_many(2, 3, np.random.RandomState(2))
    np.testing.assert_array_equal(nodes1, nodes2)
    np.testing.assert_array_equal(nodes1[..., 0], np.random.RandomState(1).normal(size=(20, 2)).T)


@pytest.mark.parametrize(['specification', 'size', 'specification_options'], [
    pytest.param('unknown', 10, None, id="unknown specification"),
    pytest.param('monte_carlo', 0, None, id="nonpositive size"),
    pytest.param('monte_carlo', 10, {'seed': 1.5}, id="non-integer seed"),
    pytest.param('halton', 10, {'discard': -1}, id="negative discard"),
])
def test_invalid_configurations(specification: str, size: int, specification_options: dict) -> None:
    """Test that invalid configurations raise errors."""
    with pytest.raises(ValueError):
        Integration(specification, size, specification_options)
