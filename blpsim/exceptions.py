"""Simulation-specific exceptions."""

import collections
from typing import Any, List, Sequence

import numpy as np

from .utilities.basics import Array, Error, NumericalError


class MultipleErrors(Error):
    """Multiple errors that occurred around the same time."""

    _errors: List[Error]

    def __new__(cls, errors: Sequence[Error]) -> Any:
        """Defer to the class of a singular error."""
        if len(errors) == 1:
            return next(iter(errors))
        return super().__new__(cls)

    def __init__(self, errors: Sequence[Error]) -> None:
        """Store distinct errors."""
        self._errors = list(collections.OrderedDict.fromkeys(errors))

    def __str__(self) -> str:
        """Combine all the error messages."""
        return "\n".join(str(e) for e in self._errors)


class DimensionMismatchError(ValueError):
    """Inputs have dimensions that are inconsistent with one another.

    This is raised before any simulation work begins so that mismatched numbers of characteristics, products,
    instruments, or cost shifters never give rise to silently wrong broadcasts.

    """

    def __init__(self, message: str) -> None:
        """Store the description of the mismatch."""
        super().__init__(f"Dimension mismatch: {message}")


class SingularOwnEffectError(Error):
    r"""Encountered a singular own-effect matrix, :math:`\Lambda`, when iterating over the :math:`\zeta`-markup
    equation.

    The diagonal of :math:`\Lambda` is made up of agent-weighted price derivatives of own utilities. This problem is
    usually due to shares that underflow to zero, which can sometimes be mitigated by rescaling data or choosing
    parameters that imply a more reasonable price coefficient.

    """

    _indices: List[int]

    def __init__(self, capital_lamda_diagonal: Array) -> None:
        """Store the indices of products with zero or non-finite own effects."""
        super().__init__()
        bad = (capital_lamda_diagonal == 0) | ~np.isfinite(capital_lamda_diagonal)
        self._indices = np.flatnonzero(bad).tolist()

    def __str__(self) -> str:
        """Supplement the error with the offending products."""
        return f"{super().__str__()} Products with zero or non-finite own effects: {self._indices}."


class SyntheticPricesConvergenceError(Error):
    r"""The fixed point computation of synthetic equilibrium prices failed to converge.

    The returned prices are the last iterate of the :math:`\zeta`-markup contraction. This problem can sometimes be
    mitigated by increasing the maximum number of fixed point iterations, increasing the fixed point tolerance, or by
    choosing more reasonable parameter values. For example, the parameter on prices should imply a downward sloping
    demand curve for every simulated consumer.

    """


class SyntheticPricesNumericalError(NumericalError):
    """Encountered a numerical error when computing synthetic prices.

    This problem is often due to prior problems or overflow and can sometimes be mitigated by making sure that the
    specified parameters are reasonable. For example, the parameters on prices should generally imply a downward sloping
    demand curve.

    """


class SyntheticSharesNumericalError(NumericalError):
    """Encountered a numerical error when computing synthetic shares.

    This problem is often due to prior problems or overflow and can sometimes be mitigated by making sure that the
    specified parameters are reasonable. For example, the parameters on prices should generally imply a downward sloping
    demand curve.

    """
