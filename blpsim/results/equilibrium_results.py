"""Structuring of equilibrium prices in a single market."""

import numpy as np

from .results import Results
from ..utilities.basics import Array, SolverStats, format_number, format_seconds, format_table


class EquilibriumResults(Results):
    r"""Results of computing Bertrand-Nash equilibrium prices in a single market.

    Non-convergence of the :math:`\zeta`-markup contraction is not an error. Instead, prices from the last iteration are
    returned and :attr:`EquilibriumResults.converged` is ``False``.

    Attributes
    ----------
    prices : `ndarray`
        Equilibrium prices, :math:`p`.
    shares : `ndarray`
        Shares evaluated at equilibrium prices, :math:`s(p)`.
    costs : `ndarray`
        Marginal costs, :math:`c`.
    converged : `bool`
        Whether the iteration routine converged.
    iterations : `int`
        Number of major iterations completed by the iteration routine.
    evaluations : `int`
        Number of times the :math:`\zeta`-markup contraction was evaluated.
    foc_norm : `float`
        Norm of the first order conditions, :math:`\|\Lambda(p - c - \zeta)\|`, from the last contraction evaluation.
    step_norm : `float`
        Norm of the change in prices from the last contraction evaluation.
    computation_time : `float`
        Number of seconds it took to compute prices.

    """

    prices: Array
    shares: Array
    costs: Array
    converged: bool
    iterations: int
    evaluations: int
    foc_norm: float
    step_norm: float
    computation_time: float

    _default_attributes = (
        'prices', 'shares', 'costs', 'converged', 'iterations', 'evaluations', 'foc_norm', 'step_norm',
        'computation_time'
    )

    def __init__(
            self, prices: Array, shares: Array, costs: Array, stats: SolverStats, foc_norm: float, step_norm: float,
            start_time: float, end_time: float) -> None:
        """Structure equilibrium results."""
        self.prices = prices
        self.shares = shares
        self.costs = costs
        self.converged = bool(stats.converged)
        self.iterations = stats.iterations
        self.evaluations = stats.evaluations
        self.foc_norm = float(foc_norm)
        self.step_norm = float(step_norm)
        self.computation_time = end_time - start_time

    def __str__(self) -> str:
        """Format equilibrium results as a string."""
        header = [
            ("Computation", "Time"),
            ("Fixed Point", "Converged"),
            ("Fixed Point", "Iterations"),
            ("Contraction", "Evaluations"),
            ("FOC", "Norm"),
            ("Step", "Norm"),
            ("Mean", "Markup"),
        ]
        with np.errstate(all='ignore'):
            markup = np.mean((self.prices - self.costs) / self.prices)
        values = [
            format_seconds(self.computation_time),
            "Yes" if self.converged else "No",
            self.iterations,
            self.evaluations,
            format_number(self.foc_norm),
            format_number(self.step_norm),
            format_number(markup),
        ]
        return format_table(header, values, title="Equilibrium Results Summary")
