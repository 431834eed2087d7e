"""Basic functionality shared by markets, economies, and results."""

import contextlib
import functools
import inspect
import multiprocessing.pool
import re
import sys
import time
import traceback
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Type
import warnings

import numpy as np

from .. import options


# define common types
Array = Any
RecArray = Any
Options = Dict[str, Any]

# process pool that is open inside a parallel context and used by generate_items
pool: Any = None


@contextlib.contextmanager
def parallel(processes: int, use_pathos: bool = False) -> Iterator[None]:
    r"""Context manager used for parallel processing in a ``with`` statement context.

    Inside the context, methods that loop over markets (for example, :meth:`BLPSimulation.replace_endogenous`) hand
    each market to a pool of Python processes. The pool is terminated when the context ends, after which the same
    methods go back to solving markets one after another.

    Markets never read each other's outputs, so results are the same as with serial processing. Parallelization only
    pays off when the work done in each market outweighs the overhead of passing market data between processes, which
    is usually the case when solving for equilibrium prices with many simulation draws.

    Arguments
    ---------
    processes : `int`
        Number of Python processes in the pool. There must be at least two.
    use_pathos : `bool, optional`
        Whether to use the ``ProcessPool`` of `pathos <https://pathos.readthedocs.io/en/latest/>`_, which serializes
        with ``dill`` and so also supports lambda functions, instead of the built-in :mod:`multiprocessing` module.

    Examples
    --------
    .. code-block:: python

       with blpsim.parallel(4):
           results = simulation.replace_endogenous()

    """
    if not isinstance(processes, int):
        raise TypeError("processes must be an int.")
    if processes < 2:
        raise ValueError("processes must be at least 2.")

    global pool
    output(f"Starting a pool of {processes} processes ...")
    start_time = time.time()
    if use_pathos:
        try:
            from pathos.multiprocessing import ProcessPool
        except ImportError as exception:
            if "pathos" not in str(exception):
                raise
            raise ImportError("pathos must be installed when use_pathos is True.") from exception
        pool = ProcessPool(nodes=processes)
        closers = [pool.close, pool.join, pool.clear]
    else:
        pool = multiprocessing.pool.Pool(processes)
        closers = [pool.terminate, pool.join]

    try:
        output(f"Started the process pool after {format_seconds(time.time() - start_time)}.")
        yield
    except AttributeError as exception:
        # the built-in module cannot serialize lambda functions
        if use_pathos or "pickle" not in str(exception) or "<lambda>" not in str(exception):
            raise
        raise RuntimeError(
            "The built-in multiprocessing module does not support lambda functions. Consider setting use_pathos to "
            "True."
        ) from exception
    finally:
        output(f"Terminating the pool of {processes} processes ...")
        terminate_time = time.time()
        for close in closers:
            close()
        pool = None
        output(f"Terminated the process pool after {format_seconds(time.time() - terminate_time)}.")


def generate_items(keys: Iterable, factory: Callable[[Any], tuple], method: Callable) -> Iterator:
    """Generate (key, method(*factory(key))) tuples for each key, in which the first element built by the factory is the
    instance to which the method is bound. Items are computed by the open process pool, if there is one, in which case
    they are not necessarily generated in the same order as the keys.
    """
    arguments = ((k, factory(k), method) for k in keys)
    if pool is None:
        return map(call_method, arguments)
    if hasattr(pool, 'uimap'):
        return pool.uimap(call_method, arguments)
    return pool.imap_unordered(call_method, arguments)


def call_method(arguments: Tuple[Any, tuple, Callable]) -> Tuple[Any, Any]:
    """Call an unbound method with an instance and any other arguments, keeping track of the associated key."""
    key, (instance, *method_arguments), method = arguments
    return key, method(instance, *method_arguments)


def structure_matrices(mapping: Mapping[str, Tuple[Array, Any]]) -> RecArray:
    """Structure a mapping from field names to (array, type) tuples as a record array with one row for each row of the
    arrays. Vectors become single-column fields so that every field is at least two-dimensional.
    """
    columns = {k: (np.c_[a], t) for k, (a, t) in mapping.items()}
    rows = {m.shape[0] for m, _ in columns.values()}
    if len(rows) != 1:
        raise ValueError(f"Cannot structure arrays with different numbers of rows: {sorted(rows)}.")
    structured: RecArray = np.recarray(rows.pop(), [(k, t, m.shape[1:]) for k, (m, t) in columns.items()])
    for key, (matrix, _) in columns.items():
        structured[key] = matrix
    return structured


def warn(message: Any) -> None:
    """Emit a warning that is formatted as only its message."""
    formatwarning = warnings.formatwarning
    warnings.formatwarning = lambda m, *_, **__: f"{m}\n"
    try:
        warnings.warn(message)
    finally:
        warnings.formatwarning = formatwarning


def output(message: Any) -> None:
    """Pass a message to the configured output function if verbosity is turned on."""
    if not options.verbose:
        return
    if not callable(options.verbose_output):
        raise TypeError("options.verbose_output should be callable.")
    options.verbose_output(str(message))
    if options.flush_output:
        sys.stdout.flush()


def output_progress(iterable: Iterable, length: int, start_time: float) -> Iterator:
    """Yield from an iterable, outputting how many of its items have been yielded at most once each minute."""
    last_minute = int((time.time() - start_time) // 60)
    for count, item in enumerate(iterable, start=1):
        yield item
        elapsed = time.time() - start_time
        if int(elapsed // 60) > last_minute:
            last_minute = int(elapsed // 60)
            output(f"Finished {count} out of {length} after {format_seconds(elapsed)}.")


def format_seconds(seconds: float) -> str:
    """Format a number of seconds as HH:MM:SS."""
    minutes, seconds = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    return f'{hours:02}:{minutes:02}:{seconds:02}'


def format_number(number: Any) -> str:
    """Format a number in centered scientific notation with the configured number of digits."""
    if not isinstance(options.digits, int):
        raise TypeError("options.digits must be an int.")
    formatted = f'{float(number):^+{options.digits + 6}.{options.digits - 1}E}'
    return formatted.replace("+NAN", " NAN")


def format_options(mapping: Options) -> str:
    """Format a mapping of configuration options, displaying functions by their qualified names."""
    def format_value(value: Any) -> str:
        """Format a single option value."""
        if callable(value):
            return f'{value.__module__}.{value.__qualname__}'
        if isinstance(value, float):
            return format_number(value)
        return str(value)

    joined = ', '.join(f'{k}: {format_value(v)}' for k, v in mapping.items())
    return f'{{{joined}}}'


def format_table(
        header: Sequence, *data: Sequence, title: Optional[str] = None, include_border: bool = True,
        include_header: bool = True) -> str:
    """Format a table with fixed-width centered columns. Header cells can be strings or tuples of strings, which are
    stacked so that their last elements share the bottom header row.
    """
    cells = [(c,) if isinstance(c, str) else tuple(c) for c in header]
    depth = max(len(c) for c in cells)
    header_rows = [[c[i - depth + len(c)] if i >= depth - len(c) else "" for c in cells] for i in range(depth)]
    data_rows = [[str(v) for v in r] + [""] * (len(cells) - len(r)) for r in data]

    # every column is as wide as its widest cell
    widths = [max(len(r[i]) for r in header_rows + data_rows) for i in range(len(cells))]
    format_row = lambda r: "  ".join(v.center(w) for v, w in zip(r, widths))
    border = "=" * len(format_row([""] * len(widths)))

    lines = [] if title is None else [f"{title}:"]
    if include_border:
        lines.append(border)
    if include_header:
        lines.extend(format_row(r) for r in header_rows)
        lines.append(format_row(["-" * w for w in widths]))
    lines.extend(format_row(r) for r in data_rows)
    if include_border:
        lines.append(border)
    return "\n".join(lines)


class SolverStats(object):
    """Convergence status and counts of iterations and evaluations returned by an iteration routine."""

    converged: bool
    iterations: int
    evaluations: int

    def __init__(self, converged: bool = True, iterations: int = 0, evaluations: int = 0) -> None:
        """Store the statistics."""
        self.converged = converged
        self.iterations = iterations
        self.evaluations = evaluations


class StringRepresentation(object):
    """Object whose representation is its formatted string."""

    def __repr__(self) -> str:
        """Defer to the string representation."""
        return str(self)


class Error(Exception):
    """Error whose message is its class docstring with markup stripped out. Errors with the same type and message are
    considered equal, so duplicates from different markets collapse in sets.
    """

    stack: Optional[str]

    def __init__(self) -> None:
        """Keep the current traceback if full tracebacks are turned on."""
        self.stack = ''.join(traceback.format_stack()) if options.verbose_tracebacks else None

    def __eq__(self, other: Any) -> bool:
        """Compare by type and message."""
        return hash(self) == hash(other)

    def __hash__(self) -> int:
        """Hash by type and message."""
        return hash((type(self).__name__, str(self)))

    def __repr__(self) -> str:
        """Defer to the string representation."""
        return str(self)

    def __str__(self) -> str:
        """Turn the docstring into plain text."""
        doc = inspect.getdoc(self)
        assert doc is not None

        # render math as lowercase words, for example :math:`\Lambda` as lambda
        render_math = lambda m: re.sub(r'\s+', ' ', re.sub(r'[\\{}]', ' ', m.group(1))).strip().lower()
        doc = re.sub(r':math:`([^`]+)`', render_math, doc)

        # drop remaining roles and backticks before collapsing whitespace
        doc = re.sub(r'\s+', ' ', re.sub(r':[a-z\-]+:|`', '', doc)).strip()
        if self.stack is not None:
            doc = f"{doc} Traceback:\n\n{self.stack}\n"
        return doc


class NumericalError(Error):
    """Floating point issues."""

    _messages: Set[str]

    def __init__(self) -> None:
        super().__init__()
        self._messages = set()

    def __str__(self) -> str:
        """Supplement the error with the floating point messages reported by NumPy."""
        return f"{super().__str__()} Errors encountered: {', '.join(sorted(self._messages))}."


class NumericalErrorHandler(object):
    """Decorator for functions that return a list of errors as their last element. Floating point problems other than
    underflow that occur when calling the function are collected into a single error of the configured type, which is
    appended to this list.
    """

    error: Type[NumericalError]

    def __init__(self, error: Type[NumericalError]) -> None:
        """Store the type of error that will be appended."""
        self.error = error

    def __call__(self, decorated: Callable) -> Callable:
        """Wrap the function."""
        @functools.wraps(decorated)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            """Call the function with NumPy configured to report floating point problems."""
            messages: List[str] = []
            collect = lambda message, _: messages.append(message)
            with np.errstate(divide='call', over='call', under='ignore', invalid='call', call=collect):
                returned = decorated(*args, **kwargs)
            if messages:
                error = self.error()
                error._messages.update(messages)
                returned[-1].append(error)
            return returned

        return wrapper
