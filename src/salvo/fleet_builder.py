# fleet_builder.py
"""
Step-by-step fleet placement helper.

Walks through the ship catalog in order, one ship at a time:
    builder = FleetBuilder()
    builder.rotate()                       # toggle the current ship's orientation
    cells = builder.preview(3, 4)          # footprint for the current ship, or []
    builder.place(cells)                   # False if the selection is illegal
    ...
    builder.is_complete()
    payload = builder.payload(player_id)   # data for a placeFleet message

random_fleet() places a whole fleet at random positions under the same rules.
"""

from __future__ import annotations

import random
from typing import Any, Sequence

from .models import SHIPS, BOARD_SIZE, Grid, Orientation, ShipPlacement, ShipSpec
from .placement import Coord, compute_footprint, is_legal_placement, orientation_of

# Random placement restarts from an empty grid after this many failed draws.
_MAX_DRAWS = 500


class FleetBuilder:
    """Build a legal fleet ship by ship, tracking the current ship's orientation."""

    def __init__(self, size: int = BOARD_SIZE) -> None:
        self.size = size
        self.grid = Grid.empty(size)
        self.fleet: list[ShipPlacement] = []
        self.orientation = Orientation.HORIZONTAL

    def current_ship(self) -> ShipSpec | None:
        if self.is_complete():
            return None
        return SHIPS[len(self.fleet)]

    def is_complete(self) -> bool:
        return len(self.fleet) >= len(SHIPS)

    def rotate(self) -> Orientation:
        self.orientation = self.orientation.toggled()
        return self.orientation

    def preview(self, x: int, y: int) -> list[Coord]:
        """Footprint of the current ship anchored at (*x*, *y*); [] if off-board."""
        ship = self.current_ship()
        if ship is None:
            return []
        return compute_footprint(x, y, ship.size, self.orientation, self.size)

    def place(self, cells: Sequence[Coord]) -> bool:
        """Place the current ship on *cells* (manual selection or a preview)."""
        ship = self.current_ship()
        if ship is None or not is_legal_placement(self.grid, cells, ship.size):
            return False
        ordered = sorted(cells)
        self.grid.mark_occupied(ordered)
        anchor_x, anchor_y = ordered[0]
        self.fleet.append(ShipPlacement(anchor_x, anchor_y, ship.name, ship.size, orientation_of(ordered)))
        return True

    def place_at(self, x: int, y: int) -> bool:
        return self.place(self.preview(x, y))

    def reset(self) -> None:
        self.grid = Grid.empty(self.size)
        self.fleet = []
        self.orientation = Orientation.HORIZONTAL

    def payload(self, player_id: str) -> dict[str, Any]:
        """Data of a ``placeFleet`` message for this fleet."""
        return {
            "playerId": player_id,
            "grid": self.grid.to_dict(),
            "fleet": [s.to_dict() for s in self.fleet],
        }


def random_fleet(size: int = BOARD_SIZE, rng: random.Random | None = None) -> FleetBuilder:
    """Return a completed :class:`FleetBuilder` with every ship placed at random."""
    rng = rng or random.Random()
    builder = FleetBuilder(size)
    draws = 0
    while not builder.is_complete():
        if draws >= _MAX_DRAWS:
            builder.reset()
            draws = 0
        draws += 1
        builder.orientation = rng.choice((Orientation.HORIZONTAL, Orientation.VERTICAL))
        builder.place_at(rng.randrange(size), rng.randrange(size))
    return builder
