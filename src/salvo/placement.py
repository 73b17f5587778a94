"""Fleet placement rules.

Pure helpers over a :class:`~salvo.models.Grid`; nothing in here mutates
its arguments except :func:`build_grid`, which works on a grid it creates
itself.

House rule: ships may not touch, not even diagonally.  A candidate cell is
rejected when any of its 8 neighbours is already occupied.  Neighbours
that fall off the board are ignored.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence

from .models import SHIPS, Grid, Orientation, ShipPlacement

Coord = tuple[int, int]

_OFFSETS: tuple[Coord, ...] = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1),           (0, 1),
    (1, -1),  (1, 0),  (1, 1),
)


class PlacementError(ValueError):
    """Raised when a submitted fleet breaks a placement rule."""


def neighbours(x: int, y: int) -> list[Coord]:
    """The 8 coordinates around (*x*, *y*), including off-board ones."""
    return [(x + dx, y + dy) for dx, dy in _OFFSETS]


def compute_footprint(x: int, y: int, size: int, orientation: Orientation, grid_size: int) -> list[Coord]:
    """Cells covered by a ship anchored at (*x*, *y*).

    Returns an empty list when any cell would fall outside ``[0, grid_size)``.
    """
    if orientation is Orientation.HORIZONTAL:
        cells = [(x, y + i) for i in range(size)]
    else:
        cells = [(x + i, y) for i in range(size)]
    if size <= 0 or any(not (0 <= cx < grid_size and 0 <= cy < grid_size) for cx, cy in cells):
        return []
    return cells


def is_contiguous_line(cells: Sequence[Coord]) -> bool:
    """True if *cells* form one unbroken horizontal or vertical run."""
    if not cells:
        return False
    same_row = all(cx == cells[0][0] for cx, _ in cells)
    same_col = all(cy == cells[0][1] for _, cy in cells)
    if not same_row and not same_col:
        return False
    axis = [cy for _, cy in cells] if same_row else [cx for cx, _ in cells]
    axis.sort()
    return all(b == a + 1 for a, b in zip(axis, axis[1:]))


def touches_fleet(grid: Grid, cells: Iterable[Coord]) -> bool:
    """True if any 8-neighbour of *cells* is an occupied cell of *grid*."""
    for cx, cy in cells:
        for nx, ny in neighbours(cx, cy):
            if grid.in_bounds(nx, ny) and grid.cells[nx][ny].occupied:
                return True
    return False


def is_legal_placement(grid: Grid, footprint: Sequence[Coord], size: int) -> bool:
    """Return ``True`` if *footprint* may be added to *grid* as a ship of *size*.

    The footprint may be an arbitrary cell selection (e.g. picked by hand in
    a client), so it is checked for length, straightness and contiguity as
    well as for overlap and contact with ships already on the grid.
    """
    if len(footprint) != size:
        return False
    if not all(grid.in_bounds(cx, cy) for cx, cy in footprint):
        return False
    if not is_contiguous_line(footprint):
        return False
    if any(grid.cells[cx][cy].occupied for cx, cy in footprint):
        return False
    return not touches_fleet(grid, footprint)


def orientation_of(cells: Sequence[Coord]) -> Orientation:
    """Orientation of a contiguous selection; single cells count as horizontal."""
    if len(cells) < 2 or cells[0][0] == cells[1][0]:
        return Orientation.HORIZONTAL
    return Orientation.VERTICAL


def build_grid(fleet: Sequence[ShipPlacement], grid_size: int) -> Grid:
    """Re-validate a submitted fleet and return the grid it occupies.

    Checks the fleet against the ship catalog (each ship exactly once, with
    its catalog size) and places the ships one by one under the same rules
    a client has to follow.  Raises :class:`PlacementError` on the first
    violation.
    """
    expected = Counter((s.name, s.size) for s in SHIPS)
    got = Counter((p.ship_type, p.size) for p in fleet)
    if got != expected:
        raise PlacementError("fleet does not match the ship catalog")

    grid = Grid.empty(grid_size)
    for ship in fleet:
        footprint = compute_footprint(ship.x, ship.y, ship.size, ship.orientation, grid_size)
        if not footprint:
            raise PlacementError(f"{ship.ship_type} is out of bounds")
        if not is_legal_placement(grid, footprint, ship.size):
            raise PlacementError(f"{ship.ship_type} overlaps or touches another ship")
        grid.mark_occupied(footprint)
    return grid
