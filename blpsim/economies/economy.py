"""Economy of markets under the random coefficients logit model."""

import abc
from typing import Any, List, Optional, Tuple

import numpy as np

from .. import exceptions, options
from ..configurations.integration import Integration
from ..configurations.iteration import Iteration
from ..utilities.basics import Array, Error, StringRepresentation, format_number, format_table, output


class Economy(StringRepresentation):
    """An abstract economy of independent markets under the random coefficients logit model."""

    T: int
    J: int
    K: int
    L: int
    S: int
    beta: Array
    sigma: Array
    integration: Integration
    unique_market_ids: Array

    @abc.abstractmethod
    def __init__(self, T: int, J: int, L: int, beta: Any, sigma: Any, integration: Integration) -> None:
        """Validate and store dimensions, taste parameters, and the integration configuration."""
        if not isinstance(T, int) or T < 1:
            raise ValueError("T must be a positive int.")
        if not isinstance(J, int) or J < 1:
            raise ValueError("J must be a positive int.")
        if not isinstance(integration, Integration):
            raise TypeError("integration must be an Integration instance.")

        # validate taste parameters
        self.beta = self._coerce_vector(beta, "beta")
        self.sigma = self._coerce_vector(sigma, "sigma")
        if self.sigma.size != self.beta.size:
            raise exceptions.DimensionMismatchError(
                f"sigma has {self.sigma.size} elements but beta has {self.beta.size}."
            )

        # store dimensions
        self.T = T
        self.J = J
        self.K = self.beta.size
        self.L = L
        self.S = integration._size
        self.integration = integration
        self.unique_market_ids = np.arange(T)

    def __str__(self) -> str:
        """Format economy information as a string."""
        return "\n\n".join([self._format_dimensions(), self._format_parameters()])

    def _format_dimensions(self) -> str:
        """Format information about the nonzero dimensions of the economy as a string."""
        header: List[str] = []
        values: List[str] = []
        for key in ['T', 'J', 'K', 'L', 'S']:
            value = getattr(self, key)
            if value > 0:
                header.append(f" {key} ")
                values.append(str(value))

        return format_table(header, values, title="Dimensions")

    def _format_parameters(self) -> str:
        """Format the true parameter values as a string, one row for each parameter."""
        items = self._get_parameter_items()
        columns = max(v.size for _, v in items)
        header = [""] + [str(i) for i in range(columns)]
        data = [[name] + [format_number(v) for v in values.flatten()] for name, values in items]
        return format_table(header, *data, title="True Values")

    def _get_parameter_items(self) -> List[Tuple[str, Array]]:
        """Collect names and values of the parameters displayed in the true values table."""
        return [("Beta", self.beta), ("Sigma", self.sigma)]

    @staticmethod
    def _coerce_vector(vector: Any, name: str) -> Array:
        """Coerce an array-like parameter into a non-empty vector and validate it."""
        vector = np.asarray(vector, options.dtype)
        if vector.ndim > 1:
            raise ValueError(f"{name} must be a vector.")
        vector = vector.flatten()
        if vector.size == 0:
            raise ValueError(f"{name} must have at least one element.")
        if not np.isfinite(vector).all():
            raise ValueError(f"{name} must have finite elements.")
        return vector

    @staticmethod
    def _coerce_variance(variance: Any, name: str) -> float:
        """Validate a nonnegative variance."""
        if not isinstance(variance, (int, float)) or not np.isfinite(variance) or variance < 0:
            raise ValueError(f"{name} must be a nonnegative float.")
        return float(variance)

    @staticmethod
    def _handle_errors(errors: List[Error], error_behavior: str = 'raise') -> None:
        """Either raise or output information about any errors."""
        if errors:
            if error_behavior == 'raise':
                raise exceptions.MultipleErrors(errors)
            output("")
            output(exceptions.MultipleErrors(errors))
            output("")

    @staticmethod
    def _validate_error_behavior(error_behavior: str) -> None:
        """Validate that a specified error behavior is supported."""
        if error_behavior not in {'raise', 'warn'}:
            raise ValueError("error_behavior must be 'raise' or 'warn'.")

    @staticmethod
    def _coerce_optional_prices_iteration(iteration: Optional[Iteration]) -> Iteration:
        """Validate or choose a default configuration for iteration over prices."""
        if iteration is None:
            iteration = Iteration('simple')
        elif not isinstance(iteration, Iteration):
            raise TypeError("iteration must be None or an Iteration instance.")
        return iteration
