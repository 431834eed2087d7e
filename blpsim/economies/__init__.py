"""Economy-level simulation of synthetic markets."""
