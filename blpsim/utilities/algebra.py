"""Algebraic routines."""

import numpy as np

from .basics import Array


def identify_singular_diagonal(diagonal: Array) -> bool:
    """Identify whether a diagonal matrix, represented by its diagonal, cannot be inverted. Since inversion is an
    elementwise division, this is only the case when there are zero or non-finite elements.
    """
    return bool((diagonal == 0).any() or not np.isfinite(diagonal).all())
