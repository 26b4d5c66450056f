"""Sector grid geometry shared by cases and karts."""

from __future__ import annotations

import math
import re
import string
from typing import Iterator, Optional

from kartqueue.enterprise.config.settings import GridSettings
from kartqueue.enterprise.core import GridCell, InvalidLocation

_SECTOR_PATTERN = re.compile(r"^([A-Z])([1-9][0-9]*)$")


def parse_sector(name: str, grid: Optional[GridSettings] = None) -> GridCell:
    """Map a sector name such as ``B2`` to its ``(x, y)`` cell.

    The letter selects the row (``A`` is ``y=0``) and the number the column
    (``1`` is ``x=0``). When ``grid`` is given the cell must fall inside it.
    """

    match = _SECTOR_PATTERN.match(name.strip().upper()) if isinstance(name, str) else None
    if match is None:
        raise InvalidLocation(f"Malformed sector name {name!r}")
    row, column = match.groups()
    cell = GridCell(x=int(column) - 1, y=string.ascii_uppercase.index(row))
    if grid is not None and not (cell.x < grid.columns and cell.y < grid.rows):
        raise InvalidLocation(f"Sector {name!r} is outside the {grid.rows}x{grid.columns} grid")
    return cell


def sector_name(cell: GridCell) -> str:
    return f"{string.ascii_uppercase[cell.y]}{cell.x + 1}"


def euclidean(a: GridCell, b: GridCell) -> float:
    return round(math.sqrt((b.x - a.x) ** 2 + (b.y - a.y) ** 2), 2)


def grid_distance(a: str, b: str) -> float:
    """Euclidean distance between two sectors, rounded to two decimals."""

    return euclidean(parse_sector(a), parse_sector(b))


def iter_sectors(grid: GridSettings) -> Iterator[str]:
    for y in range(grid.rows):
        for x in range(grid.columns):
            yield sector_name(GridCell(x=x, y=y))
