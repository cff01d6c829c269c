"""
Coupled current flow and heating of a field-emitting conductor.

The electric potential and the temperature of the conductor are solved with
linear triangles in a lagged (Picard-style) time loop; the emission current
and the Nottingham heat at the vacuum interface come from tabulated data.
"""
__version__ = "0.1.0"
