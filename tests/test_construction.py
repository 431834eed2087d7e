"""Tests of data construction and of converting and saving results."""

from pathlib import Path

import numpy as np
import pytest

from blpsim import build_id_data, build_ownership, data_to_dict, read_pickle, save_pickle
from .conftest import SimulationFixture


@pytest.mark.parametrize(['kappa_specification', 'expected'], [
    pytest.param(None, [[1, 1, 0], [1, 1, 0], [0, 0, 1]], id="default"),
    pytest.param('monopoly', [[1, 1, 1], [1, 1, 1], [1, 1, 1]], id="monopoly"),
    pytest.param('single', [[1, 0, 0], [0, 1, 0], [0, 0, 1]], id="single"),
    pytest.param(lambda f, g: 1 if f == g else 0.5, [[1, 1, 0.5], [1, 1, 0.5], [0.5, 0.5, 1]], id="partial"),
])
def test_ownership(kappa_specification: object, expected: list) -> None:
    """Test that ownership matrices are built according to cooperation matrix specifications."""
    ownership = build_ownership(['a', 'a', 'b'], kappa_specification)
    np.testing.assert_array_equal(ownership, expected)


def test_invalid_ownership() -> None:
    """Test that unsupported specifications and firm ID matrices raise errors."""
    with pytest.raises(ValueError):
        build_ownership([0, 1], 'duopoly')
    with pytest.raises(ValueError):
        build_ownership(np.zeros((2, 2)))


def test_id_data() -> None:
    """Test that IDs form a balanced panel in which firms with smaller IDs produce excess products."""
    id_data = build_id_data(T=2, J=5, F=2)
    assert id_data.shape == (10,)
    np.testing.assert_array_equal(id_data.market_ids.flatten(), [0] * 5 + [1] * 5)
    np.testing.assert_array_equal(id_data.firm_ids[:5].flatten(), [0, 0, 0, 1, 1])
    with pytest.raises(ValueError):
        build_id_data(T=2, J=1, F=2)
    with pytest.raises(ValueError):
        build_id_data(T=0, J=5, F=2)


def test_data_to_dict(blp_simulation: SimulationFixture) -> None:
    """Test that matrices in simulated product data are split into one column for each field."""
    simulation, results = blp_simulation
    mapping = data_to_dict(results.product_data)
    assert {'market_ids', 'firm_ids', 'prices', 'shares', 'costs', 'xi', 'omega'} <= set(mapping)
    assert {f'characteristics{k}' for k in range(simulation.K - 1)} <= set(mapping)
    assert {f'cost_shifters{l}' for l in range(simulation.L)} <= set(mapping)
    assert 'characteristics' not in mapping
    for values in mapping.values():
        assert values.shape == (simulation.J * simulation.T,)
    np.testing.assert_array_equal(mapping['characteristics1'][:simulation.J], simulation.x[2, :, 0])
    with pytest.raises(TypeError):
        data_to_dict({'prices': results.prices})


def test_results_dict(blp_simulation: SimulationFixture) -> None:
    """Test that results can be converted into dictionaries of their documented attributes."""
    _, results = blp_simulation
    mapping = results.to_dict()
    assert 'simulation' not in mapping
    np.testing.assert_array_equal(mapping['prices'], results.prices)
    assert set(results.to_dict(['prices', 'costs'])) == {'prices', 'costs'}


def test_pickles(blp_simulation: SimulationFixture, tmp_path: Path) -> None:
    """Test that pickled results can be read back into memory."""
    _, results = blp_simulation
    results_path = tmp_path / 'results.pickle'
    results.to_pickle(results_path)
    loaded = read_pickle(results_path)
    np.testing.assert_array_equal(loaded.prices, results.prices)
    np.testing.assert_array_equal(loaded.product_data.shares, results.product_data.shares)

    # arbitrary objects can be saved too
    mapping_path = tmp_path / 'mapping.pickle'
    save_pickle({'costs': results.costs}, mapping_path)
    np.testing.assert_array_equal(read_pickle(mapping_path)['costs'], results.costs)
