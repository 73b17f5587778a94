"""Core data structures shared by the registry, validator and session.

Contains:
 - Cell / Grid: one player's board, ``cells[x][y]``
 - SHIPS: the fixed five-ship catalog
 - ShipPlacement: anchor cell + size + orientation (footprint is derived)
 - Player: identity, volatile connection id, board, fleet and lifecycle state

Every model converts to and from the dict shape used on the wire
(``to_dict`` / ``from_dict``).  Malformed wire data raises
:class:`ModelError`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable

from . import config as _cfg

BOARD_SIZE = _cfg.BOARD_SIZE


class ModelError(ValueError):
    """Raised when wire data cannot be converted into a model object."""


class Orientation(str, enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"

    def toggled(self) -> "Orientation":
        if self is Orientation.HORIZONTAL:
            return Orientation.VERTICAL
        return Orientation.HORIZONTAL


class PlayerState(str, enum.Enum):
    """Per-player lifecycle: placing ships, fleet submitted, match running."""

    PLACEMENT = "placement"
    READY = "ready"
    IN_TURN = "in-turn"


@dataclass(frozen=True, slots=True)
class ShipSpec:
    name: str
    size: int


# Standard ship roster, in placement order.
SHIPS: tuple[ShipSpec, ...] = (
    ShipSpec("Frigate", 2),
    ShipSpec("Destroyer", 3),
    ShipSpec("Submarine", 3),
    ShipSpec("Battleship", 4),
    ShipSpec("Carrier", 5),
)

FLEET_SIZE = len(SHIPS)


@dataclass(slots=True)
class Cell:
    id: int
    occupied: bool = False
    hit: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "occupied": self.occupied, "hit": self.hit}

    @classmethod
    def from_dict(cls, raw: Any) -> "Cell":
        if not isinstance(raw, dict):
            raise ModelError(f"cell must be an object, got {type(raw).__name__}")
        occupied = raw.get("occupied", False)
        hit = raw.get("hit", False)
        if not isinstance(occupied, bool) or not isinstance(hit, bool):
            raise ModelError(f"cell flags must be booleans: {raw!r}")
        try:
            return cls(id=int(raw["id"]), occupied=occupied, hit=hit)
        except (KeyError, TypeError, ValueError) as exc:
            raise ModelError(f"malformed cell: {raw!r}") from exc


@dataclass(slots=True)
class Grid:
    """
    A single square board.

    ``cells[x][y]`` holds the :class:`Cell` at row *x*, column *y*.  Cell ids
    are assigned row-major (``x * size + y``).  ``occupied`` is set during
    placement and never cleared; ``hit`` is set once an attack lands and
    never cleared.
    """

    size: int
    cells: list[list[Cell]]

    @classmethod
    def empty(cls, size: int = BOARD_SIZE) -> "Grid":
        """Return a fresh *size*×*size* grid with no ships and no hits."""
        cells = [[Cell(id=x * size + y) for y in range(size)] for x in range(size)]
        return cls(size=size, cells=cells)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size

    def cell(self, x: int, y: int) -> Cell | None:
        """Return the cell at (*x*, *y*) or ``None`` when off the board."""
        if not self.in_bounds(x, y):
            return None
        return self.cells[x][y]

    def occupied_cells(self) -> set[tuple[int, int]]:
        return {(x, y) for x, row in enumerate(self.cells) for y, c in enumerate(row) if c.occupied}

    def mark_occupied(self, coords: Iterable[tuple[int, int]]) -> None:
        for x, y in coords:
            self.cells[x][y].occupied = True

    def rows(self) -> list[str]:
        """ASCII rows: ``S`` ship, ``X`` hit ship, ``o`` miss, ``.`` water."""
        out = []
        for row in self.cells:
            chars = []
            for c in row:
                if c.occupied:
                    chars.append("X" if c.hit else "S")
                else:
                    chars.append("o" if c.hit else ".")
            out.append(" ".join(chars))
        return out

    def to_dict(self) -> dict[str, Any]:
        return {"size": self.size, "cells": [[c.to_dict() for c in row] for row in self.cells]}

    @classmethod
    def from_dict(cls, raw: Any) -> "Grid":
        if not isinstance(raw, dict):
            raise ModelError("grid must be an object")
        cells_raw = raw.get("cells")
        try:
            size = int(raw.get("size", len(cells_raw or [])))
        except (TypeError, ValueError) as exc:
            raise ModelError("grid size must be an integer") from exc
        if not isinstance(cells_raw, list) or len(cells_raw) != size:
            raise ModelError(f"grid must have {size} rows")
        cells = []
        for row in cells_raw:
            if not isinstance(row, list) or len(row) != size:
                raise ModelError(f"grid rows must have {size} cells")
            cells.append([Cell.from_dict(c) for c in row])
        return cls(size=size, cells=cells)


@dataclass(slots=True)
class ShipPlacement:
    """One placed ship; the covered cells are derived via :meth:`footprint`."""

    x: int
    y: int
    ship_type: str
    size: int
    orientation: Orientation

    def footprint(self) -> list[tuple[int, int]]:
        """Cells covered by this ship, without any bounds check."""
        if self.orientation is Orientation.HORIZONTAL:
            return [(self.x, self.y + i) for i in range(self.size)]
        return [(self.x + i, self.y) for i in range(self.size)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "shipType": self.ship_type,
            "size": self.size,
            "orientation": self.orientation.value,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "ShipPlacement":
        if not isinstance(raw, dict):
            raise ModelError("ship placement must be an object")
        try:
            return cls(
                x=int(raw["x"]),
                y=int(raw["y"]),
                ship_type=str(raw["shipType"]),
                size=int(raw["size"]),
                orientation=Orientation(raw["orientation"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ModelError(f"malformed ship placement: {raw!r}") from exc


def fleet_from_list(raw: Any) -> list[ShipPlacement]:
    if not isinstance(raw, list):
        raise ModelError("fleet must be a list")
    return [ShipPlacement.from_dict(item) for item in raw]


def fleet_summary(fleet: Iterable[ShipPlacement]) -> str:
    """One line per ship, for debug logs."""
    return "\n".join(
        f"Ship: {s.ship_type}, Size: {s.size}, Position: ({s.x}, {s.y}), Orientation: {s.orientation.value}"
        for s in fleet
    )


@dataclass(slots=True)
class Player:
    """A seat in the session.

    ``player_id`` is stable and chosen by the client; ``connection_id``
    changes every time the client reconnects.
    """

    player_id: str
    connection_id: str
    grid: Grid = field(default_factory=Grid.empty)
    fleet: list[ShipPlacement] = field(default_factory=list)
    state: PlayerState = PlayerState.PLACEMENT

    def snapshot(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "state": self.state.value,
            "grid": self.grid.to_dict(),
            "fleet": [s.to_dict() for s in self.fleet],
        }
