"""Market-level computation of shares, share derivatives, and equilibrium prices."""
