"""Fixed point iteration routines."""

import functools
from typing import Any, Callable, Optional, Tuple, Union

import numpy as np
import scipy.optimize

from .. import options
from ..utilities.basics import Array, Options, SolverStats, StringRepresentation, format_options


# define contraction function types
ContractionResults = Tuple[Array, Optional[Array]]
ContractionFunction = Callable[[Array, int, int], ContractionResults]
ContractionWrapper = Callable[[Array], ContractionResults]

# root finding methods in scipy.optimize.root that can solve fixed point problems, with their descriptions
SCIPY_METHODS = {
    'broyden1': "Broyden's good method",
    'broyden2': "Broyden's bad method",
    'anderson': "Anderson's method",
    'diagbroyden': "Broyden's diagonal method",
    'krylov': "a Krylov approximation for the inverse Jacobian",
    'df-sane': "the derivative-free spectral method",
    'hybr': "a modification of the Powell hybrid method in MINIPACK",
    'lm': "a modification of the Levenberg-Marquardt algorithm in MINIPACK",
}


class Iteration(StringRepresentation):
    r"""Configuration for solving fixed point problems.

    When solving for equilibrium prices, the fixed point is that of the :math:`\zeta`-markup contraction of Morrow and
    Skerlos (2011). The default configuration, ``Iteration('simple')``, evaluates this contraction over and over until
    successive prices and first order conditions are both close enough to zero, giving up after ``10000`` evaluations.

    Parameters
    ----------
    method : `str or callable`
        Name of a supported routine, or a custom one. Supported names are:

            - ``'simple'`` - Evaluate the contraction at its last output, without any acceleration.

            - ``'squarem'`` - Accelerate iteration with the SQUAREM method of Varadhan and Roland (2008), which
              extrapolates along the difference between two successive steps.

            - ``'broyden1'``, ``'broyden2'``, ``'anderson'``, ``'diagbroyden'``, ``'krylov'``, ``'df-sane'``,
              ``'hybr'``, or ``'lm'`` - Find a root of the difference between values and their image under the
              contraction with the method of the same name in :func:`scipy.optimize.root`.

            - ``'return'`` - Do no iteration at all, treating the initial values as the solution.

        A custom routine should be a callable of the form::

            method(initial, contraction, callback, **options) -> (final, converged)

        It receives a vector of ``initial`` values, a ``contraction`` that maps a vector of values ``x0`` to a tuple
        ``(x1, weights)``, a ``callback`` to call without arguments once each major iteration is done, and the
        configured ``options``. It should return the ``final`` vector and whether it ``converged``. Contraction
        ``weights`` are either ``None`` or a vector that scales the step ``x1 - x0``. For equilibrium prices, they are
        the diagonal of :math:`\Lambda`, which turns the weighted step into the first order conditions.

        If the contraction ever gives rise to non-finite values, supported routines stop and return the last finite
        values along with a failure to converge.

    method_options : `dict, optional`
        Options for the routine. Those configured for SciPy routines are passed to the ``options`` argument of
        :func:`scipy.optimize.root`. Unless otherwise specified, SciPy routines other than ``'hybr'`` and ``'lm'``
        measure convergence with a Euclidean norm that is scaled by the absolute value of the latest weights. The other
        two routines use these same absolute weights as ``diag`` scaling factors.

        Both ``'simple'`` and ``'squarem'`` support the following options:

            - **max_evaluations** : (`int`) - How many times the contraction can be evaluated. The default value is
              ``10000``.

            - **atol** : (`float`) - Absolute tolerance. The default value is the square root of the machine epsilon
              of ``options.dtype``. Set this to zero to use only a relative tolerance.

            - **rtol** : (`float`) - Relative tolerance, which is multiplied by the norm of the latest values. The
              default value is zero.

            - **norm** : (`callable`) - Function that maps an array of differences to a scalar. The default is the
              Euclidean norm.

        These routines stop once the norms of both the step ``x1 - x0`` and the weighted step are no larger than the
        tolerance.

        Options that are specific to ``'squarem'`` follow the R package SQUAREM by Ravi Varadhan. Step lengths are
        the negative of :math:`\alpha` in Varadhan and Roland (2008):

            - **scheme** : (`int`) - Which of the step length schemes S1, S2, or S3 of Varadhan and Roland (2008) to
              use. The default value is ``3``.

            - **step_min** : (`float`) - Starting lower bound for step lengths. The default value is ``1.0``.

            - **step_max** : (`float`) - Starting upper bound for step lengths. The default value is ``1.0``.

            - **step_factor** : (`float`) - Each time a step length is truncated at ``step_max``, this bound is
              multiplied by this factor. The same happens to a negative ``step_min``. The default value is ``4.0``.

    universal_display : `bool, optional`
        Whether to display iteration progress in the same format for every routine. By default, nothing is displayed.
        When solving for equilibrium prices, a row is displayed on evaluations ``1``, ``101``, ``201``, and so on, and
        on the final evaluation. What is displayed has no effect on what is computed.

    Examples
    --------
    .. code-block:: python

       iteration = blpsim.Iteration('squarem', {'atol': 1e-12, 'max_evaluations': 1000})

    """

    _iterator: functools.partial
    _description: str
    _method_options: Options
    _universal_display: bool

    def __init__(self, method: Union[str, Callable], method_options: Optional[Options] = None,
                 universal_display: bool = False) -> None:
        """Identify the routine, then fill in and validate its options."""
        if method_options is not None and not isinstance(method_options, dict):
            raise ValueError("method_options must be None or a dict.")
        self._universal_display = universal_display

        # custom routines receive exactly what was configured
        if callable(method):
            self._iterator = functools.partial(method)
            self._description = "a custom method"
            self._method_options = method_options or {}
            return

        if method == 'simple':
            self._iterator = functools.partial(simple_iterator)
            self._description = "no acceleration"
        elif method == 'squarem':
            self._iterator = functools.partial(squarem_iterator)
            self._description = "the SQUAREM acceleration method"
        elif method == 'return':
            self._iterator = functools.partial(return_iterator)
            self._description = "a trivial routine that returns the initial values"
        elif method in SCIPY_METHODS:
            self._iterator = functools.partial(scipy_iterator, method=method)
            self._description = f"{SCIPY_METHODS[method]} implemented in SciPy"
        else:
            supported = ['simple', 'squarem', *SCIPY_METHODS, 'return']
            raise ValueError(f"method must be one of {supported} or a callable object.")

        # configured options override the defaults
        self._method_options = {}
        if method in {'simple', 'squarem'}:
            self._method_options.update(
                atol=float(np.sqrt(np.finfo(options.dtype).eps)), rtol=0, max_evaluations=10000, norm=euclidean_norm
            )
        if method == 'squarem':
            self._method_options.update(scheme=3, step_min=1.0, step_max=1.0, step_factor=4.0)
        if method in SCIPY_METHODS and method not in {'hybr', 'lm'}:
            self._method_options['fnorm' if method == 'df-sane' else 'tol_norm'] = euclidean_norm
        self._method_options.update(method_options or {})

        if method == 'return' and self._method_options:
            raise ValueError("The return method does not support any options.")
        if method in {'simple', 'squarem'}:
            validate_stopping_options(self._method_options)
        if method == 'squarem':
            validate_step_options(self._method_options)

    def __str__(self) -> str:
        """Format the configuration as a string."""
        return f"Configured to iterate using {self._description} with options {format_options(self._method_options)}."

    def _iterate(self, initial: Array, contraction: ContractionFunction) -> Tuple[Array, SolverStats]:
        """Solve a fixed point problem that starts from initial values of any shape. Routines work with flat vectors
        of 64-bit floats, whereas the contraction receives values with the shape and type of the initial ones, along
        with the number of major iterations and contraction evaluations so far.
        """
        stats = SolverStats(converged=False)

        def count_iteration() -> None:
            """Record that a major iteration is done."""
            stats.iterations += 1

        def evaluate(flat: Any) -> ContractionResults:
            """Evaluate the contraction at a flat vector, returning flat vectors of the same type."""
            stats.evaluations += 1
            flat = np.asarray(flat)
            values = flat.reshape(initial.shape).astype(initial.dtype, copy=False)
            values, weights = contraction(values, stats.iterations, stats.evaluations)
            if weights is not None:
                weights = weights.astype(flat.dtype, copy=False).reshape(flat.shape)
            return values.astype(flat.dtype, copy=False).reshape(flat.shape), weights

        start = initial.astype(np.float64, copy=False).flatten()
        flat_final, stats.converged = self._iterator(start, evaluate, count_iteration, **self._method_options)
        final = np.asarray(flat_final).astype(initial.dtype, copy=False).reshape(initial.shape)
        return final, stats


def validate_stopping_options(method_options: Options) -> None:
    """Validate the tolerances, evaluation limit, and norm used by the simple and SQUAREM routines."""
    for key in ['atol', 'rtol']:
        if not isinstance(method_options[key], (float, int)) or method_options[key] < 0:
            raise ValueError(f"The iteration option {key} must be a nonnegative float.")
    if method_options['atol'] == method_options['rtol'] == 0:
        raise ValueError("atol and rtol cannot both be zero.")
    max_evaluations = method_options['max_evaluations']
    if not isinstance(max_evaluations, int) or max_evaluations < 1:
        raise ValueError("The iteration option max_evaluations must be a positive int.")
    if not callable(method_options['norm']):
        raise ValueError("The iteration option norm must be callable.")


def validate_step_options(method_options: Options) -> None:
    """Validate the scheme and step length bounds used by the SQUAREM routine."""
    if method_options['scheme'] not in {1, 2, 3}:
        raise ValueError("The iteration option scheme must be 1, 2, or 3.")
    for key in ['step_min', 'step_max', 'step_factor']:
        if not isinstance(method_options[key], float):
            raise ValueError(f"The iteration option {key} must be a float.")
    if method_options['step_max'] <= 0 or method_options['step_factor'] <= 0:
        raise ValueError("The iteration options step_max and step_factor must be positive.")
    if method_options['step_min'] > method_options['step_max']:
        raise ValueError("The iteration option step_min must be smaller than step_max.")


def euclidean_norm(x: Array) -> float:
    """Compute the Euclidean norm of a vector."""
    return np.sqrt((x**2).sum())


def return_iterator(initial: Array, *_: Any, **__: Any) -> Tuple[Array, bool]:
    """Treat the initial values as the solution."""
    return initial, True


def scipy_iterator(
        initial: Array, contraction: ContractionWrapper, iteration_callback: Callable[[], None], method: str,
        **scipy_options: Any) -> Tuple[Array, bool]:
    """Find a root of the difference between values and their image under the contraction with a SciPy routine."""
    scale = np.ones_like(initial)
    scipy_options = scipy_options.copy()

    # the hybr and lm routines do not support callbacks or norms but can scale variables instead
    supports_callback = method not in {'hybr', 'lm'}
    if supports_callback:
        norm_key = 'fnorm' if method == 'df-sane' else 'tol_norm'
        norm = scipy_options.get(norm_key, euclidean_norm)
        scipy_options[norm_key] = lambda residual: norm(scale * residual)
    else:
        scipy_options['diag'] = scale

    failed = False

    def compute_residual(x: Array) -> Array:
        """Evaluate the contraction, replacing non-finite images with the values themselves."""
        nonlocal failed
        image, weights = contraction(x)
        if not all_finite(image, weights):
            image, weights = x, None
            failed = True
        if weights is not None:
            scale[:] = np.abs(weights)
        if not supports_callback:
            iteration_callback()
        return x - image

    callback = (lambda *_: iteration_callback()) if supports_callback else None
    results = scipy.optimize.root(compute_residual, initial, method=method, callback=callback, options=scipy_options)
    return results.x, results.success and not failed


class FixedPointTracker(object):
    """Contraction evaluations made by the simple and SQUAREM routines, which keep track of the latest finite values
    and of whether iteration has failed, converged, or run out of evaluations.
    """

    values: Array
    evaluations: int
    converged: bool
    failed: bool

    def __init__(
            self, initial: Array, contraction: ContractionWrapper, max_evaluations: int, atol: float, rtol: float,
            norm: Callable[[Array], float]) -> None:
        """Start from the initial values."""
        self.values = initial
        self.evaluations = 0
        self.converged = self.failed = False
        self._contraction = contraction
        self._max_evaluations = max_evaluations
        self._atol = atol
        self._rtol = rtol
        self._norm = norm

    def step(self, x: Array) -> bool:
        """Evaluate the contraction at some values and return whether iteration should stop. Non-finite output leaves
        the latest values unchanged.
        """
        image, weights = self._contraction(x)
        if not all_finite(image, weights):
            self.failed = True
            return True
        self.values = image
        self.evaluations += 1
        self.converged = termination_check(image, image - x, weights, self._atol, self._rtol, self._norm)
        return self.converged or self.evaluations >= self._max_evaluations

    def succeeded(self) -> bool:
        """Whether iteration converged without running into non-finite values."""
        return self.converged and not self.failed


def simple_iterator(
        initial: Array, contraction: ContractionWrapper, iteration_callback: Callable[[], None], max_evaluations: int,
        atol: float, rtol: float, norm: Callable[[Array], float]) -> Tuple[Array, bool]:
    """Evaluate the contraction at its last output until termination, with each evaluation a major iteration."""
    tracker = FixedPointTracker(initial, contraction, max_evaluations, atol, rtol, norm)
    stop = False
    while not stop:
        stop = tracker.step(tracker.values)
        if not tracker.failed:
            iteration_callback()
    return tracker.values, tracker.succeeded()


def squarem_iterator(
        initial: Array, contraction: ContractionWrapper, iteration_callback: Callable[[], None], max_evaluations: int,
        atol: float, rtol: float, norm: Callable[[Array], float], scheme: int, step_min: float, step_max: float,
        step_factor: float) -> Tuple[Array, bool]:
    """Accelerate iteration with SQUAREM. Each major iteration is made up of two contraction steps followed by a step
    from an extrapolation along the two, and termination is checked after each of the three evaluations.
    """
    tracker = FixedPointTracker(initial, contraction, max_evaluations, atol, rtol, norm)
    while True:
        x0 = tracker.values
        if tracker.step(x0):
            break
        x1 = tracker.values
        if tracker.step(x1):
            break

        # bound the step length, loosening whichever bound was hit
        r = x1 - x0
        v = tracker.values - x1 - r
        step = np.clip(compute_step_length(r, v, scheme), step_min, step_max)
        if step == step_max:
            step_max *= step_factor
        if step == step_min and step_min < 0:
            step_min *= step_factor

        stop = tracker.step(x0 + 2 * step * r + step**2 * v)
        if not tracker.failed:
            iteration_callback()
        if stop:
            break

    return tracker.values, tracker.succeeded()


def compute_step_length(r: Array, v: Array, scheme: int) -> float:
    """Compute an unbounded SQUAREM step length from the first difference and the change in differences."""
    with np.errstate(divide='ignore', invalid='ignore'):
        if scheme == 1:
            return -(r @ v) / (v @ v)
        if scheme == 2:
            return -(r @ r) / (r @ v)
        return np.sqrt((r @ r) / (v @ v))


def all_finite(*arrays: Optional[Array]) -> bool:
    """Validate that multiple arrays are either None or all finite."""
    return all(a is None or np.isfinite(a).all() for a in arrays)


def termination_check(
        x: Array, residual: Array, weights: Optional[Array], atol: float, rtol: float,
        norm: Callable[[Array], float]) -> bool:
    """Check whether the norms of both the residual and the weighted residual are within tolerance."""
    tol = atol + rtol * norm(x) if rtol > 0 else atol
    return norm(residual) <= tol and (weights is None or norm(weights * residual) <= tol)
