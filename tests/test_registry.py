import random

import pytest

from salvo.models import PlayerState
from salvo.registry import PlayerRegistry, RegistryFullError

from conftest import known_fleet


def _registry_with_two():
    reg = PlayerRegistry(rng=random.Random(7))
    reg.add_player("A", "c1")
    reg.add_player("B", "c2")
    return reg


def test_at_most_two_players():
    reg = PlayerRegistry()
    assert not reg.is_full()
    reg.add_player("A", "c1")
    assert not reg.is_full()
    reg.add_player("B", "c2")
    assert reg.is_full()
    with pytest.raises(RegistryFullError):
        reg.add_player("C", "c3")
    assert [p.player_id for p in reg.players] == ["A", "B"]


def test_lookups():
    reg = _registry_with_two()
    assert reg.find_by_player_id("B").connection_id == "c2"
    assert reg.find_by_connection_id("c1").player_id == "A"
    assert reg.find_by_player_id("Z") is None
    assert reg.find_by_connection_id("c9") is None
    assert reg.opponent_of("A").player_id == "B"
    assert reg.opponent_of("B").player_id == "A"


def test_rebind_keeps_grid_fleet_and_state():
    reg = _registry_with_two()
    player = reg.find_by_player_id("A")
    fleet = known_fleet()
    player.grid, player.fleet, player.state = fleet.grid, fleet.fleet, PlayerState.READY

    rebound = reg.rebind_connection("A", "c1-again")
    assert rebound is player
    assert len(reg.players) == 2
    assert player.connection_id == "c1-again"
    assert player.grid is fleet.grid
    assert player.fleet is fleet.fleet
    assert player.state is PlayerState.READY
    assert reg.find_by_connection_id("c1") is None
    assert reg.rebind_connection("nobody", "c5") is None


def test_remove_by_connection_id():
    reg = _registry_with_two()
    assert reg.remove_by_connection_id("c1")
    assert not reg.remove_by_connection_id("c1")
    assert [p.player_id for p in reg.players] == ["B"]
    assert reg.opponent_of("B") is None


def test_readiness_and_first_turn():
    reg = _registry_with_two()
    assert not reg.all_ready()
    reg.players[0].state = PlayerState.READY
    assert not reg.all_ready()
    reg.players[1].state = PlayerState.READY
    assert reg.all_ready()
    reg.set_all_in_turn()
    assert all(p.state is PlayerState.IN_TURN for p in reg.players)
    first = reg.pick_random_first_turn()
    assert first in (0, 1)
    assert reg.current_player() is reg.players[first]


def test_first_turn_is_not_fixed():
    seen = set()
    for seed in range(20):
        reg = PlayerRegistry(rng=random.Random(seed))
        reg.add_player("A", "c1")
        reg.add_player("B", "c2")
        seen.add(reg.pick_random_first_turn())
    assert seen == {0, 1}


def test_advance_turn_alternates():
    reg = _registry_with_two()
    reg.current_turn_index = 0
    assert [reg.advance_turn() for _ in range(4)] == [1, 0, 1, 0]


def test_all_ships_sunk_needs_every_cell_hit():
    reg = _registry_with_two()
    player = reg.find_by_player_id("B")
    fleet = known_fleet()
    player.grid, player.fleet = fleet.grid, fleet.fleet
    cells = [c for ship in player.fleet for c in ship.footprint()]

    # misses never count
    player.grid.cells[0][0].hit = True
    for x, y in cells[:-1]:
        player.grid.cells[x][y].hit = True
        assert not reg.all_ships_sunk(player)
    last_x, last_y = cells[-1]
    player.grid.cells[last_x][last_y].hit = True
    assert reg.all_ships_sunk(player)
