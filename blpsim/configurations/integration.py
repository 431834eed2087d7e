"""Construction of simulation draws for integration over heterogeneous tastes."""

import functools
from typing import Optional

import numpy as np
import scipy.stats

from ..utilities.basics import Array, Options, StringRepresentation, format_options


class Integration(StringRepresentation):
    r"""Configuration for building simulation draws, :math:`\nu`.

    Shares are averages of logit choice probabilities over draws of individual taste deviations, each of which counts
    equally. Every market gets the same number of draws, ``size``. More draws make simulated shares more accurate but
    make shares and their derivatives more costly to compute.

    Parameters
    ----------
    specification : `str`
        Which kind of draws to build:

            - ``'monte_carlo'`` - Pseudo-random standard normal draws.

            - ``'halton'`` - Standard normal transformations of Halton sequences, with the prime 2 as the base of the
              first dimension, 3 as the base of the second, and so on. By default, the start of each sequence is
              discarded and the digits of sequences are randomly permuted, as in Owen (2017), which lessens
              correlation between dimensions.

            - ``'lhs'`` - Standard normal transformations of Latin Hypercube Sampling (LHS), which draws once from each
              of ``size`` equally likely strata in each dimension.

            - ``'mlhs'`` - Like ``'lhs'``, except that the uniform position within strata is drawn once for each
              dimension, which is the Modified Latin Hypercube Sampling (MLHS) of Hess, Train, and Polak (2004).

    size : `int`
        Number of draws in each market, :math:`S`.
    specification_options : `dict, optional`
        Options for building draws. Any specification accepts a **seed** (`int`), which seeds a
        :class:`numpy.random.RandomState` before draws are built. Without one, a simulation builds draws with its own
        random number generator, so its seed determines the draws. Unscrambled Halton sequences ignore the seed.

        Halton sequences are also configured by:

            - **discard** : (`int`) - Number of leading values to drop from the sequence in every dimension. The default
              value is ``1000``. Draws for each market continue the sequence where the previous market's left off.

            - **scramble** : (`bool`) - Whether to randomly permute digits. The default value is ``True``.

    Examples
    --------
    .. code-block:: python

       integration = blpsim.Integration('monte_carlo', 1000, {'seed': 0})

    """

    _size: int
    _specification: str
    _description: str
    _builder: functools.partial
    _specification_options: Options

    def __init__(self, specification: str, size: int, specification_options: Optional[Options] = None) -> None:
        """Identify the builder of draws, then fill in and validate options."""
        builders = {
            'monte_carlo': (monte_carlo, {}, "with Monte Carlo simulation"),
            'halton': (halton, {}, "with Halton sequences"),
            'lhs': (lhs, {}, "with Latin Hypercube Sampling (LHS)"),
            'mlhs': (lhs, {'modified': True}, "with Modified Latin Hypercube Sampling (MLHS)"),
        }
        if specification not in builders:
            raise ValueError(f"specification must be one of {list(builders)}.")
        if not isinstance(size, int) or size < 1:
            raise ValueError("size must be a positive integer.")
        if specification_options is not None and not isinstance(specification_options, dict):
            raise ValueError("specification_options must be None or a dict.")

        builder, keywords, self._description = builders[specification]
        self._builder = functools.partial(builder, **keywords)
        self._specification = specification
        self._size = size

        # configured options override the defaults
        defaults = {'discard': 1000, 'scramble': True} if specification == 'halton' else {}
        self._specification_options = {**defaults, **(specification_options or {})}
        seed = self._specification_options.get('seed')
        if seed is not None and not isinstance(seed, int):
            raise ValueError("The seed option must be an integer.")
        discard = self._specification_options.get('discard', 0)
        if not isinstance(discard, int) or discard < 0:
            raise ValueError("The discard option must be a nonnegative integer.")

    def __str__(self) -> str:
        """Format the configuration as a string."""
        return (
            f"Configured to construct {self._size} draws {self._description} with options "
            f"{format_options(self._specification_options)}."
        )

    def _get_state(self, state: Optional[np.random.RandomState] = None) -> np.random.RandomState:
        """Seed a random number generator, deferring to a specified one if there is no configured seed."""
        if state is not None and 'seed' not in self._specification_options:
            return state
        return np.random.RandomState(self._specification_options.get('seed'))

    def _build_many(self, dimensions: int, markets: int, state: Optional[np.random.RandomState] = None) -> Array:
        """Build a dimensions x size x markets array of draws. Markets share one random number generator and Halton
        sequences pick up where the previous market's draws left off, so draws differ across markets.
        """
        state = self._get_state(state)
        draws = np.zeros((dimensions, self._size, markets))
        for t in range(markets):
            draws[:, :, t] = self._build_market(dimensions, t * self._size, state).T
        return draws

    def _build_market(self, dimensions: int, offset: int, state: np.random.RandomState) -> Array:
        """Build a size x dimensions matrix of draws for one market, given how many draws preceded it."""
        if self._specification != 'halton':
            return self._builder(dimensions, self._size, state=state)
        start = self._specification_options['discard'] + offset
        return self._builder(dimensions, self._size, start, self._specification_options['scramble'], state=state)


def monte_carlo(dimensions: int, size: int, state: np.random.RandomState) -> Array:
    """Draw from a pseudo-random standard multivariate normal distribution."""
    return state.normal(size=(size, dimensions))


def halton(dimensions: int, size: int, start: int, scramble: bool, state: np.random.RandomState) -> Array:
    """Transform a Halton sequence, optionally with randomly permuted digits, into standard normal draws."""
    uniform = np.zeros((size, dimensions))
    for dimension in range(dimensions):
        base = get_prime(dimension)
        indices = np.arange(start, start + size)
        factor = 1 / base

        # accumulate radical inverse digits until they no longer change the sequence
        while 1 - factor < 1:
            indices, digits = np.divmod(indices, base)
            if scramble:
                digits = state.permutation(base)[digits]
            uniform[:, dimension] += factor * digits
            factor /= base

    return scipy.stats.norm.ppf(uniform)


def get_prime(dimension: int) -> int:
    """Return the prime base of a Halton sequence in a dimension."""
    primes = [
        2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47, 53, 59, 61, 67, 71, 73, 79, 83, 89, 97, 101, 103, 107,
        109, 113, 127, 131, 137, 139, 149, 151, 157, 163, 167, 173, 179, 181, 191, 193, 197, 199, 211, 223, 227, 229
    ]
    if dimension >= len(primes):
        raise ValueError(f"Halton sequences are only supported for up to {len(primes)} dimensions.")
    return primes[dimension]


def lhs(dimensions: int, size: int, state: np.random.RandomState, modified: bool = False) -> Array:
    """Transform Latin Hypercube samples into standard normal draws. In the modified version, the same uniform shift is
    applied to every stratum in a dimension.
    """
    uniform = np.zeros((size, dimensions))
    for dimension in range(dimensions):
        shifts = state.uniform(size=1 if modified else size)
        uniform[:, dimension] = state.permutation(np.arange(size) + shifts) / size
    return scipy.stats.norm.ppf(uniform)
