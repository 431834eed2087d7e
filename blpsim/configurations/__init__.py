"""Configuration classes."""

from .iteration import Iteration
from .integration import Integration
