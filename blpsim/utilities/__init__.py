"""General functionality."""

from .basics import (
    parallel, generate_items, output, output_progress, format_seconds, format_number, format_options, format_table,
    SolverStats
)
from .algebra import identify_singular_diagonal
