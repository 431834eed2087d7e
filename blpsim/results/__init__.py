"""Structured results of equilibrium computation and market simulation."""
