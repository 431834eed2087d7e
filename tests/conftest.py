"""Fixtures used by tests."""

import os
from typing import cast, Any, Dict, Iterator, Tuple

import numpy as np
import pytest

from blpsim import BLPSimulation, BLPSimulationResults, Integration, options
from blpsim.utilities.basics import Array


# define common types
MarketFixture = Dict[str, Array]
SimulationFixture = Tuple[BLPSimulation, BLPSimulationResults]


@pytest.fixture(scope='session', autouse=True)
def configure() -> Iterator[None]:
    """Configure NumPy so that it raises all warnings as exceptions. Next, if a DTYPE environment variable is set in
    this testing environment that is different from the default data type, use it for all numeric calculations.
    """

    # configure NumPy so that it raises all warnings as exceptions
    old_error = np.seterr(all='raise')

    # use any different data type for all numeric calculations
    old_dtype = options.dtype
    dtype_string = os.environ.get('DTYPE')
    if dtype_string:
        options.dtype = cast(Any, np.dtype(dtype_string))
        if np.finfo(options.dtype).dtype == old_dtype:
            pytest.skip(f"The {dtype_string} data type is the same as the default one in this environment.")

    # run tests before reverting all changes
    yield
    options.dtype = old_dtype
    np.seterr(**old_error)


@pytest.fixture
def market() -> MarketFixture:
    """Build data for a single market with three products, two characteristics (the first of which is price), and a
    moderate number of draws. Every drawn coefficient on prices is negative.
    """
    state = np.random.RandomState(0)
    nodes = state.normal(size=(2, 300))
    nodes[0] = -np.abs(nodes[0])
    return {
        'beta': np.array([-1.0, 1.0]),
        'sigma': np.array([0.5, 0.5]),
        'prices': np.array([1.5, 2.0, 2.5]),
        'x': np.array([[0.5, 1.0, 1.5]]),
        'xi': np.array([0.1, -0.2, 0.3]),
        'costs': np.array([1.0, 1.2, 1.4]),
        'nodes': nodes,
    }


@pytest.fixture(scope='session')
def blp_simulation() -> SimulationFixture:
    """Solve a small simulation with single-product firms, three characteristics (the first of which is price), and
    two cost shifters.
    """
    simulation = BLPSimulation(
        J=4,
        T=5,
        beta=[-2, 1, 1],
        sigma=[0.5, 0.5, 0.5],
        gamma=[0.5, 0.5],
        integration=Integration('monte_carlo', 200),
        xi_variance=0.5,
        omega_variance=0.1,
        seed=0
    )
    return simulation, simulation.replace_endogenous()
