"""Data construction."""

from pathlib import Path
import pickle
from typing import Any, Callable, Dict, Optional, Union

import numpy as np

from . import options
from .utilities.basics import Array, RecArray, structure_matrices


def build_id_data(T: int, J: int, F: int) -> RecArray:
    r"""Build a balanced panel of market and firm IDs.

    Parameters
    ----------
    T : `int`
        Number of markets.
    J : `int`
        Number of products in each market.
    F : `int`
        Number of firms. If ``J`` is divisible by ``F``, firms produce ``J / F`` products in each market. Otherwise,
        firms with smaller IDs will produce excess products.

    Returns
    -------
    `recarray`
        IDs that associate products with markets and firms. Each of the ``T * J`` rows corresponds to a product. Fields:

            - **market_ids** : (`object`) - Market IDs that take on values from ``0`` to ``T - 1``.

            - **firm_ids** : (`object`) - Firm IDs that take on values from ``0`` to ``F - 1``.

    Examples
    --------
    .. code-block:: python

       id_data = blpsim.build_id_data(T=50, J=20, F=10)
       firm_ids = id_data.firm_ids[:20].flatten()

    """
    if not isinstance(T, int) or not isinstance(F, int) or T < 1 or F < 1:
        raise ValueError("Both T and F must be positive ints.")
    if not isinstance(J, int) or J < F:
        raise ValueError("J must be an int that is at least F.")
    return structure_matrices({
        'market_ids': (np.repeat(np.arange(T), J).astype(np.int64), np.object_),
        'firm_ids': (np.floor(np.tile(np.arange(J), T) * F / J).astype(np.int64), np.object_)
    })


def build_ownership(
        firm_ids: Any, kappa_specification: Optional[Union[str, Callable[[Any, Any], float]]] = None) -> Array:
    r"""Build an ownership matrix, :math:`O`, for a single market.

    Ownership matrices are defined by their cooperation matrix counterparts, :math:`\kappa`. For products :math:`j` and
    :math:`k` produced by firms :math:`f` and :math:`g`, :math:`O_{jk} = \kappa_{fg}`. The ownership matrix masks the
    capital gamma matrix in the :math:`\zeta`-markup equation, so it determines which products each firm prices jointly.

    Parameters
    ----------
    firm_ids : `array-like`
        IDs that associate each of the market's :math:`J` products with firms. If ``kappa_specification`` is one of the
        special cases, only the number of IDs is used.
    kappa_specification : `str or callable, optional`
        Specification for the cooperation matrix, :math:`\kappa`, which can either be a general function or a string
        that implements a special case. The general function is of the following form::

            kappa(f, g) -> value

        where ``value`` is :math:`O_{jk}` and both ``f`` and ``g`` are firm IDs from ``firm_ids``.

        The default specification, ``lambda f, g: int(f == g)``, constructs traditional ownership matrices. That is,
        :math:`\kappa = I`, the identity matrix, implies that :math:`O_{jk}` is :math:`1` if the same firm produces
        products :math:`j` and :math:`k`, and is :math:`0` otherwise.

        The following special cases are also supported:

            - ``'monopoly'`` - Monopoly ownership matrices are all ones: :math:`O_{jk} = 1` for all :math:`j` and
              :math:`k`.

            - ``'single'`` - Single product firm ownership matrices are identity matrices: :math:`O_{jk} = 1` if
              :math:`j = k` and :math:`0` otherwise.

    Returns
    -------
    `ndarray`
        The :math:`J \times J` ownership matrix, :math:`O`.

    Examples
    --------
    .. code-block:: python

       ownership = blpsim.build_ownership([0, 0, 1])

    """

    # validate or use the default kappa specification
    if kappa_specification is None:
        kappa_specification = lambda f, g: np.where(f == g, 1, 0).astype(options.dtype)
    elif callable(kappa_specification):
        kappa_specification = np.vectorize(kappa_specification, [options.dtype])
    elif kappa_specification not in {'monopoly', 'single'}:
        raise ValueError("kappa_specification must be None, callable, 'monopoly', or 'single'.")

    # validate IDs
    firm_ids = np.asarray(firm_ids)
    if firm_ids.ndim > 1 and firm_ids.shape[1] > 1:
        raise ValueError("firm_ids must be one-dimensional.")
    firm_ids = firm_ids.flatten()
    J = firm_ids.size

    # construct the ownership matrix
    if kappa_specification == 'monopoly':
        return np.ones((J, J), options.dtype)
    if kappa_specification == 'single':
        return np.eye(J, dtype=options.dtype)
    assert callable(kappa_specification)
    tiled_ids = np.tile(np.c_[firm_ids], J)
    return np.asarray(kappa_specification(tiled_ids, tiled_ids.T), options.dtype)


def data_to_dict(data: RecArray, ignore_empty: bool = True) -> Dict[str, Array]:
    r"""Convert a NumPy record array into a dictionary.

    Simulated data are structured as NumPy record arrays (e.g., :attr:`BLPSimulationResults.product_data`), which can be
    cumbersome to work with when working with data types that can't represent matrices, such as the
    :class:`pandas.DataFrame`.

    This function converts record arrays into dictionaries that map field names to one-dimensional arrays. Matrices in
    the original record array (e.g., ``characteristics``) are split into as many fields as there are columns (e.g.,
    ``characteristics0``, ``characteristics1``, and so on).

    Parameters
    ----------
    data : `recarray`
        Record array of simulated data.
    ignore_empty : `bool, optional`
        Whether to ignore matrices with zero size. By default, these are ignored.

    Returns
    -------
    `dict`
        The data re-structured as a dictionary.

    """
    if not isinstance(data, np.recarray):
        raise TypeError("data must be a NumPy record array.")

    mapping: Dict[str, Array] = {}
    for key in data.dtype.names:
        if len(data[key].shape) > 2:
            raise ValueError("Arrays with more than two dimensions are not supported.")
        if ignore_empty and data[key].size == 0:
            continue
        if len(data[key].shape) == 1 or data[key].shape[1] == 1 or data[key].size == 0:
            mapping[key] = data[key].flatten()
            continue
        for index in range(data[key].shape[1]):
            new_key = f'{key}{index}'
            if new_key in data.dtype.names:
                raise KeyError(f"'{key}' cannot be split into columns because '{new_key}' is already a field.")
            mapping[new_key] = data[key][:, index].flatten()

    return mapping


def save_pickle(x: object, path: Union[str, Path]) -> None:
    """Save an object as a pickle file.

    This is a simple wrapper around `pickle.dump`.

    Parameters
    ----------
    x : `object`
        Object to be pickled.
    path : `str or Path`
        File path to which the object will be saved.

    """
    with open(path, 'wb') as handle:
        pickle.dump(x, handle)


def read_pickle(path: Union[str, Path]) -> object:
    """Load a pickled object into memory.

    This is a simple wrapper around `pickle.load`.

    Parameters
    ----------
    path : `str or Path`
        File path of a pickled object.

    Returns
    -------
    `object`
        The unpickled object.

    """
    with open(path, 'rb') as handle:
        return pickle.load(handle)
