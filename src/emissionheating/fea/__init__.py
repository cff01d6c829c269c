"""
FEM Solver Engine
=================
The core implementation of the coupled current/heat analysis.

Why is this file needed?
------------------------
1. Pre: material tables, interpolation and the mesh (``pre``).
2. Analysis: elements, boundary values and the field state (``analysis``).
3. Solvers: assembly, linear solves and the time loop (``solvers``).
4. Post: export of the fields and the run history (``post``).

Note: This package is pure Python/NumPy/SciPy and has no GUI dependencies.
"""
