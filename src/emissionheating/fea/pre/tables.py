"""
Readers and writers of the tabulated property files.

Supported formats:
    - compact grid: ``xmin xmax xnum`` / ``ymin ymax ynum`` header lines followed
      by one value per line in row-major order;
    - spreadsheet grid: one ``x y z`` triple per line, y varying fastest;
    - scalar table: two whitespace separated columns (temperature, resistivity).

Lines starting with ``%`` and blank lines are ignored in every format; any other
line must hold finite numbers.
A file that cannot be opened is logged and reported by returning ``None``
(``False`` for writers); malformed numbers raise ``TableFormatError``.
"""
from __future__ import annotations

import logging
import os

import numpy as np

from emissionheating.fea.pre.interpolation import InterpolationGrid, ScalarTable

logger = logging.getLogger(__name__)

COMMENT_PREFIX = "%"


class TableFormatError(ValueError):
    """Raised when a table file contains content that is not a valid number."""


def _is_data_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith(COMMENT_PREFIX)


def _read_data_lines(filepath: str | os.PathLike) -> list[tuple[int, list[str]]] | None:
    """Return (line number, tokens) of every data line, or None if the file can't be opened."""
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except OSError as e:
        logger.error(f"Couldn't open '{filepath}': {e}")
        return None

    return [
        (number, line.split())
        for number, line in enumerate(lines, start=1)
        if _is_data_line(line)
    ]


def _parse_floats(filepath: str | os.PathLike, number: int, tokens: list[str], count: int) -> list[float]:
    if len(tokens) < count:
        raise TableFormatError(
            f"{filepath}:{number}: expected {count} numbers, got {len(tokens)} ({' '.join(tokens)!r})."
        )
    try:
        values = [float(token) for token in tokens[:count]]
    except ValueError as e:
        raise TableFormatError(f"{filepath}:{number}: {e}") from e
    if not all(np.isfinite(values)):
        raise TableFormatError(f"{filepath}:{number}: non-finite value in {' '.join(tokens[:count])!r}.")
    return values


def _parse_count(filepath: str | os.PathLike, number: int, value: float) -> int:
    if value != int(value) or value < 2:
        raise TableFormatError(f"{filepath}:{number}: sample count must be an integer >= 2, got {value}.")
    return int(value)


def load_compact_grid(filepath: str | os.PathLike) -> InterpolationGrid | None:
    """
    Load an interpolation grid stored in the compact format.

    Args:
        filepath: Path to the grid file.

    Returns:
        The loaded grid, or None if the file couldn't be opened.

    Raises:
        TableFormatError: If the header or a value is not a valid number, or the
            number of values does not match the header.
    """
    data_lines = _read_data_lines(filepath)
    if data_lines is None:
        return None
    if len(data_lines) < 2:
        raise TableFormatError(f"{filepath}: missing grid header lines.")

    (x_line, x_tokens), (y_line, y_tokens) = data_lines[0], data_lines[1]
    xmin, xmax, xnum = _parse_floats(filepath, x_line, x_tokens, 3)
    ymin, ymax, ynum = _parse_floats(filepath, y_line, y_tokens, 3)

    values = [
        _parse_floats(filepath, number, tokens, 1)[0]
        for number, tokens in data_lines[2:]
    ]

    try:
        grid = InterpolationGrid(
            xmin=xmin, xmax=xmax, xnum=_parse_count(filepath, x_line, xnum),
            ymin=ymin, ymax=ymax, ynum=_parse_count(filepath, y_line, ynum),
            values=np.array(values, dtype=np.float64),
        )
    except TableFormatError:
        raise
    except ValueError as e:
        raise TableFormatError(f"{filepath}: {e}") from e

    logger.debug(f"Loaded {grid.xnum}x{grid.ynum} compact grid from '{filepath}'.")
    return grid


def load_spreadsheet_grid(filepath: str | os.PathLike) -> InterpolationGrid | None:
    """
    Load an interpolation grid stored as ``x y z`` rows.

    The bounds come from the first and last rows, the number of y samples from
    the row at which x changes for the first time.

    Returns:
        The loaded grid, or None if the file couldn't be opened.
    """
    data_lines = _read_data_lines(filepath)
    if data_lines is None:
        return None
    if not data_lines:
        raise TableFormatError(f"{filepath}: no data rows.")

    rows = np.array(
        [_parse_floats(filepath, number, tokens, 3) for number, tokens in data_lines],
        dtype=np.float64,
    )
    x, y, z = rows[:, 0], rows[:, 1], rows[:, 2]

    transitions = np.flatnonzero(x[1:] != x[:-1])
    if transitions.size == 0:
        raise TableFormatError(f"{filepath}: x never changes, the grid has a single row.")
    ynum = int(transitions[0]) + 1

    if z.size % ynum != 0:
        raise TableFormatError(f"{filepath}: {z.size} values do not fill rows of {ynum} samples.")

    try:
        grid = InterpolationGrid(
            xmin=float(x[0]), xmax=float(x[-1]), xnum=z.size // ynum,
            ymin=float(y[0]), ymax=float(y[-1]), ynum=ynum,
            values=z,
        )
    except ValueError as e:
        raise TableFormatError(f"{filepath}: {e}") from e

    logger.debug(f"Loaded {grid.xnum}x{grid.ynum} spreadsheet grid from '{filepath}'.")
    return grid


def load_scalar_table(filepath: str | os.PathLike) -> ScalarTable | None:
    """
    Load a two-column table, e.g. resistivity versus temperature.

    Returns:
        The loaded table, or None if the file couldn't be opened.
    """
    data_lines = _read_data_lines(filepath)
    if data_lines is None:
        return None

    pairs = [_parse_floats(filepath, number, tokens, 2) for number, tokens in data_lines]
    try:
        table = ScalarTable.from_pairs(pairs)
    except ValueError as e:
        raise TableFormatError(f"{filepath}: {e}") from e

    logger.debug(f"Loaded {len(table)} point table from '{filepath}'.")
    return table


def save_compact_grid(filepath: str | os.PathLike, grid: InterpolationGrid, comment: str | None = None) -> bool:
    """
    Write a grid in the compact format.

    Floats are written with ``repr`` so that reloading reproduces them exactly.

    Returns:
        True on success, False if the file couldn't be opened.
    """
    lines: list[str] = []
    if comment:
        lines.extend(f"{COMMENT_PREFIX} {line}" for line in comment.splitlines())
    lines.append(f"{float(grid.xmin)!r} {float(grid.xmax)!r} {grid.xnum}")
    lines.append(f"{float(grid.ymin)!r} {float(grid.ymax)!r} {grid.ynum}")
    lines.extend(repr(float(value)) for value in grid.values)

    try:
        with open(filepath, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
    except OSError as e:
        logger.error(f"Couldn't write '{filepath}': {e}")
        return False
    return True
