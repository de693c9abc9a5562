"""Tests for the track step.

This module tests the Tracker:
- Tile-lay entitlements and whether an entity may lay
- Laying and upgrading tiles, costs and payment
- Abilities: free lays, teleports, reachability, hex blocks
- Borders, token fallout and tile income
- Rotation legality and track-usage restrictions
- All-or-nothing behaviour of rejected lays
"""

import pytest

from core.abilities import (
    BlocksHexesAbility,
    TeleportAbility,
    TileDiscountAbility,
    TileIncomeAbility,
    TileLayAbility,
)
from core.constants import NOT_IF_UPGRADED, TIME_SPECIAL_TRACK, TileColor, TrackRestriction
from core.entities import Bank, Company, Corporation, Player
from core.errors import GameError
from data.loader import load_map, load_tile_manifest
from engine.actions import LayTile
from engine.game import BaseGame, Phase
from engine.tracker import TileLay, Tracker


# =============================================================================
# Fixtures
# =============================================================================

# Pointy map, two rows:
#   A1  A3  A5  A7  A9
#     B2  B4  B6  B8
# A1 is PRR's home, with track toward A3. A water border separates A5 and
# A7. B2 has two trackless cities, B4 a yellow OO tile, B6 a mountain.
MAP = {
    "layout": "pointy",
    "hexes": [
        {"id": "A1", "color": "yellow", "tile": "HOME", "code": "city=revenue:20;path=a:4,b:_0"},
        {"id": "A3"},
        {"id": "A5", "code": "border=edge:4,type:water,cost:40"},
        {"id": "A7", "code": "border=edge:1,type:water,cost:40"},
        {"id": "A9"},
        {"id": "B2", "code": "city;city;label=OO"},
        {
            "id": "B4",
            "color": "yellow",
            "code": "city=revenue:30;city=revenue:30;path=a:1,b:_0;path=a:4,b:_1;label=OO",
        },
        {"id": "B6", "code": "upgrade=cost:80,terrain:mountain"},
        {"id": "B8"},
    ],
}

TILES = [
    {"name": "9", "color": "yellow", "unlimited": True, "code": "path=a:0,b:3"},
    {"name": "7", "color": "yellow", "count": 1, "code": "path=a:0,b:1"},
    {"name": "24", "color": "green", "count": 2, "code": "path=a:0,b:3;path=a:0,b:2"},
    {"name": "59", "color": "yellow", "count": 1,
     "code": "city=revenue:40;city=revenue:40;path=a:0,b:_0;path=a:2,b:_1;label=OO"},
    {"name": "X1", "color": "green", "count": 1,
     "code": "city=revenue:30,slots:2;path=a:1,b:_0;path=a:4,b:_0;label=OO"},
    {"name": "X2", "color": "green", "count": 1,
     "code": "city=revenue:40,slots:2;path=a:1,b:_0;path=a:4,b:_0;label=OO"},
]


class TwoLayGame(BaseGame):
    """A new lay or upgrade, then a second new lay for 20 if nothing was upgraded."""

    TILE_LAYS = (
        {"lay": True, "upgrade": True},
        {"lay": NOT_IF_UPGRADED, "upgrade": False, "cost": 20},
    )


def make_game(game_class=BaseGame) -> BaseGame:
    alice = Player(name="Alice")
    bob = Player(name="Bob")
    hex_map = load_map(MAP)
    prr = Corporation(sym="PRR", cash=500, owner=alice, coordinates="A1")
    prr.add_tokens(3)
    prr.tokens[0].place(hex_map.hex_by_id("A1").tile.cities[0])
    return game_class(
        hex_map,
        tiles=load_tile_manifest(TILES),
        corporations=[prr],
        players=[alice, bob],
        bank=Bank(cash=10000),
    )


@pytest.fixture
def game() -> BaseGame:
    return make_game()


@pytest.fixture
def tracker(game: BaseGame) -> Tracker:
    return Tracker(game)


@pytest.fixture
def prr(game: BaseGame) -> Corporation:
    return game.corporation_by_id("PRR")


def take(game: BaseGame, name: str):
    """First tile with this name in the supply."""
    return next(tile for tile in game.tiles if tile.name == name)


def make_action(game: BaseGame, entity, hex_id: str, name: str, rotation: int, **kwargs) -> LayTile:
    return LayTile(
        entity=entity,
        hex=game.hex_by_id(hex_id),
        tile=take(game, name),
        rotation=rotation,
        **kwargs,
    )


def lay(tracker: Tracker, entity, hex_id: str, name: str, rotation: int, **kwargs) -> LayTile:
    action = make_action(tracker.game, entity, hex_id, name, rotation, **kwargs)
    tracker.lay_tile(action)
    return action


def company_for(game: BaseGame, owner, sym: str, *abilities) -> Company:
    company = Company(sym=sym, abilities=list(abilities))
    owner.add_company(company)
    game.companies.append(company)
    return company


# =============================================================================
# Entitlement Tests
# =============================================================================


class TestEntitlements:
    """Tests for get_tile_lay and lay_tile_action bookkeeping."""

    def test_default_single_lay(self, tracker: Tracker, prr: Corporation):
        assert tracker.get_tile_lay(prr) == TileLay(lay=True, upgrade=True)

    def test_upgrade_cost_defaults_to_cost(self):
        tracker = Tracker(make_game(TwoLayGame))
        prr = tracker.game.corporation_by_id("PRR")
        tracker.round.num_laid_track = 1

        tile_lay = tracker.get_tile_lay(prr)

        assert tile_lay.cost == 20
        assert tile_lay.upgrade_cost == 20
        assert not tile_lay.cannot_reuse_same_hex

    def test_nth_lay_uses_nth_entitlement(self):
        game = make_game(TwoLayGame)
        tracker = Tracker(game)
        prr = game.corporation_by_id("PRR")

        lay_action = make_action(game, prr, "A3", "9", 1)
        tracker.lay_tile_action(lay_action)

        assert tracker.get_tile_lay(prr) == TileLay(lay=True, upgrade=False, cost=20, upgrade_cost=20)

        tracker.lay_tile_action(make_action(game, prr, "A5", "9", 1))

        assert tracker.get_tile_lay(prr) is None
        assert not tracker.can_lay_tile(prr)

    def test_not_if_upgraded_after_upgrade(self):
        """After an upgrade the second entitlement allows neither a lay nor an upgrade."""
        game = make_game(TwoLayGame)
        tracker = Tracker(game)
        prr = game.corporation_by_id("PRR")
        prr.tokens[1].place(game.hex_by_id("B4").tile.cities[0])

        tracker.lay_tile_action(make_action(game, prr, "B4", "X2", 0))
        tile_lay = tracker.get_tile_lay(prr)

        assert tracker.round.upgraded_track
        assert not tile_lay.lay
        assert not tile_lay.upgrade

        with pytest.raises(GameError, match="Cannot lay a yellow now"):
            tracker.lay_tile_action(make_action(game, prr, "A3", "9", 1))
        with pytest.raises(GameError, match="Cannot lay an upgrade now"):
            tracker.lay_tile_action(make_action(game, prr, "A1", "24", 4))

    def test_company_uses_owner_schedule(self):
        game = make_game(TwoLayGame)
        tracker = Tracker(game)
        prr = game.corporation_by_id("PRR")
        company = company_for(game, prr, "CS")
        tracker.round.num_laid_track = 1

        assert tracker.get_tile_lay(company).cost == 20

    def test_lay_action_records_round_state(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        """One lay adds exactly one laid hex and one count; no upgrade flag for yellow."""
        action = make_action(game, prr, "A3", "9", 1)

        tracker.lay_tile_action(action)

        assert tracker.round.num_laid_track == 1
        assert tracker.round.laid_hexes == [action.hex]
        assert not tracker.round.upgraded_track

    def test_upgrade_sets_upgrade_flag(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        prr.tokens[1].place(game.hex_by_id("B4").tile.cities[0])

        tracker.lay_tile_action(make_action(game, prr, "B4", "X2", 0))

        assert tracker.round.num_laid_track == 1
        assert tracker.round.upgraded_track

    def test_surcharge_charged(self):
        game = make_game(TwoLayGame)
        tracker = Tracker(game)
        prr = game.corporation_by_id("PRR")
        tracker.lay_tile_action(make_action(game, prr, "A3", "9", 1))

        tracker.lay_tile_action(make_action(game, prr, "A5", "9", 1))

        assert prr.cash == 480
        assert game.bank.cash == 10020
        assert game.log[-1] == "PRR spends $20 and lays tile #9 with rotation 1 on A5"

    def test_cannot_reuse_same_hex(self):
        class ReuseGame(BaseGame):
            TILE_LAYS = (
                {"lay": True, "upgrade": True},
                {"lay": True, "upgrade": True, "cannot_reuse_same_hex": True},
            )

        game = make_game(ReuseGame)
        tracker = Tracker(game)
        prr = game.corporation_by_id("PRR")
        tracker.lay_tile_action(make_action(game, prr, "A3", "9", 1))

        with pytest.raises(GameError, match="already laid on this turn"):
            tracker.lay_tile_action(make_action(game, prr, "A3", "24", 4))

        assert tracker.round.num_laid_track == 1

    def test_setup_starts_new_turn(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        tracker.lay_tile_action(make_action(game, prr, "A3", "9", 1))

        tracker.setup()

        assert tracker.round.num_laid_track == 0
        assert tracker.get_tile_lay(prr) is not None


# =============================================================================
# can_lay_tile Tests
# =============================================================================


class TestCanLayTile:
    """Tests for whether an entity may still lay track."""

    def test_fresh_turn(self, tracker: Tracker, prr: Corporation):
        assert tracker.can_lay_tile(prr)

    def test_needs_placed_token(self, game: BaseGame, tracker: Tracker):
        nyc = Corporation(sym="NYC", cash=500)
        game.corporations.append(nyc)
        assert not tracker.can_lay_tile(nyc)

    def test_needs_money_for_surcharge(self):
        game = make_game(TwoLayGame)
        tracker = Tracker(game)
        prr = game.corporation_by_id("PRR")
        tracker.lay_tile_action(make_action(game, prr, "A3", "9", 1))

        prr.cash = 10

        assert not tracker.can_lay_tile(prr)

    def test_non_consuming_ability_keeps_step_open(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company_for(game, prr, "CS", TileLayAbility(hexes=["B6"]))
        tracker.round.num_laid_track = 1

        assert tracker.tile_lay_abilities_should_block(prr)
        assert tracker.can_lay_tile(prr)

    def test_consuming_ability_does_not_block(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company_for(game, prr, "CS", TileLayAbility(hexes=["B6"], consume_tile_lay=True))
        assert not tracker.tile_lay_abilities_should_block(prr)

    def test_ability_time_window(self, game: BaseGame, prr: Corporation):
        """Abilities restricted to another window are invisible to this step."""
        company_for(game, prr, "CS", TileLayAbility(hexes=["B6"], when=(TIME_SPECIAL_TRACK,)))

        assert not Tracker(game).tile_lay_abilities_should_block(prr)
        assert Tracker(game, time=TIME_SPECIAL_TRACK).tile_lay_abilities_should_block(prr)

    def test_can_buy_tile_laying_company(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        bob = game.players[1]
        company = company_for(game, bob, "TLC", TileLayAbility(hexes=["B6"]))
        company.min_price = 20
        tracker.round.num_laid_track = 1
        game.current_entity = prr

        assert not tracker.can_lay_tile(prr)

        game.phase = Phase(name="3", status=("can_buy_companies",))

        assert tracker.can_buy_tile_laying_company(prr, time=tracker.time)
        assert tracker.can_lay_tile(prr)

        prr.cash = 10

        assert not tracker.can_buy_tile_laying_company(prr, time=tracker.time)

    def test_can_buy_requires_current_entity(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company_for(game, game.players[1], "TLC", TileLayAbility())
        game.phase = Phase(name="3", status=("can_buy_companies",))

        assert not tracker.can_buy_tile_laying_company(prr, time=tracker.time)


# =============================================================================
# Laying Tiles
# =============================================================================


class TestLayTile:
    """Tests for the lay itself."""

    def test_lay_new_tile(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        action = lay(tracker, prr, "A3", "9", 1)

        assert action.hex.tile is action.tile
        assert action.tile.rotation == 1
        assert prr.cash == 500
        assert game.log[-1] == "PRR lays tile #9 with rotation 1 on A3"
        assert game.hex_by_id("A5") in game.graph.connected_hexes(prr)

    def test_unlimited_tile_replenished(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        action = lay(tracker, prr, "A3", "9", 1)

        assert game.tiles.count("9") == 1
        assert action.tile not in game.tiles
        assert take(game, "9").index == 1

    def test_limited_tile_leaves_supply(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        lay(tracker, prr, "A3", "7", 0)
        assert game.tiles.count("7") == 0

    def test_preprinted_tile_not_returned(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        lay(tracker, prr, "A3", "9", 1)
        assert "A3" not in game.tiles.names

    def test_upgraded_tile_returned(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        first = lay(tracker, prr, "A3", "9", 1)

        second = lay(tracker, prr, "A3", "24", 4)

        assert second.hex.tile is second.tile
        assert first.tile in game.tiles
        assert first.tile.rotation == 0
        assert game.tiles.count("24") == 1

    def test_not_upgradeable(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        with pytest.raises(GameError, match="A3 is not upgradeable to 24"):
            lay(tracker, prr, "A3", "24", 4)

    def test_label_must_match(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        with pytest.raises(GameError, match="not upgradeable"):
            lay(tracker, prr, "A3", "59", 1)

    def test_illegal_rotation(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        with pytest.raises(GameError, match="A3 is not legally rotated for 9"):
            lay(tracker, prr, "A3", "9", 0)

    def test_unconnected_hex(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        with pytest.raises(GameError, match="not legally rotated"):
            lay(tracker, prr, "A9", "9", 1)

    def test_rotation_skipped_while_loading(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        game.loading = True
        action = lay(tracker, prr, "A9", "7", 0)
        assert action.hex.tile is action.tile

    def test_terrain_cost(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        prr.tokens[1].place(game.hex_by_id("B4").tile.cities[0])
        lay(tracker, prr, "B4", "X2", 0)

        lay(tracker, prr, "B6", "9", 1)

        assert prr.cash == 420
        assert game.log[-1] == "PRR spends $80 and lays tile #9 with rotation 1 on B6"

    def test_caller_cost_added(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        lay(tracker, prr, "A3", "9", 1, cost=15)
        assert prr.cash == 485

    def test_lay_action_str(self, game: BaseGame, prr: Corporation):
        action = make_action(game, prr, "A3", "9", 1)
        assert str(action) == "LayTile(PRR, tile=9, hex=A3, rotation=1)"


# =============================================================================
# Atomicity Tests
# =============================================================================


class TestRejectedLays:
    """A rejected lay must leave no trace."""

    def test_unaffordable_lay_rolled_back(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        lay(tracker, prr, "A3", "9", 1)
        lay(tracker, prr, "A5", "9", 1)
        a5 = game.hex_by_id("A5")
        a7 = game.hex_by_id("A7")
        old_tile = a7.tile
        supply = list(game.tiles)
        messages = len(game.log)
        prr.cash = 10

        with pytest.raises(GameError, match=r"PRR cannot afford \$40"):
            lay(tracker, prr, "A7", "9", 1)

        assert a7.tile is old_tile
        assert len(old_tile.borders) == 1
        assert len(a5.tile.borders) == 1
        assert list(game.tiles) == supply
        assert prr.cash == 10
        assert len(game.log) == messages
        assert a7 not in game.graph.reachable_hexes(prr)

    def test_track_restriction_rolled_back(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        b4 = game.hex_by_id("B4")
        old_tile = b4.tile
        token = prr.tokens[1]
        token.place(old_tile.cities[0])
        new_tile = take(game, "X1")

        with pytest.raises(GameError, match="Must use new track or change city value"):
            lay(tracker, prr, "B4", "X1", 0)

        assert b4.tile is old_tile
        assert old_tile.cities[0].tokens == [token]
        assert token.city is old_tile.cities[0]
        assert new_tile.cities[0].tokens == [None, None]
        assert new_tile in game.tiles


# =============================================================================
# Ability Tests
# =============================================================================


class TestAbilities:
    """Tests for tile-lay, teleport and hex-blocking abilities."""

    def test_free_lay_charges_only_surcharge(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        """A free lay ignores terrain cost but still charges the ability surcharge."""
        company = company_for(game, prr, "FREE", TileLayAbility(hexes=["B6"], free=True, cost=10))

        lay(tracker, company, "B6", "9", 1, spender=prr)

        assert prr.cash == 490
        assert game.log[-1] == "PRR (FREE) spends $10 and lays tile #9 with rotation 1 on B6"

    def test_ability_discount(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company = company_for(game, prr, "DSC", TileLayAbility(hexes=["B6"], discount=30))

        lay(tracker, company, "B6", "9", 1, spender=prr)

        assert prr.cash == 450

    def test_ability_used_up_closes_company(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        ability = TileLayAbility(hexes=["B6"], free=True, count=1, closed_when_used_up=True)
        company = company_for(game, prr, "ONE", ability)

        lay(tracker, company, "B6", "9", 1, spender=prr)

        assert ability.used_up
        assert company.closed
        assert company not in prr.companies

    def test_company_needs_matching_ability(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company = company_for(game, prr, "NOP", TileLayAbility(hexes=["B8"]))
        game.loading = True

        with pytest.raises(GameError, match="NOP does not have an ability"):
            lay(tracker, company, "A3", "9", 1, spender=prr)

        assert game.hex_by_id("A3").tile.name == "A3"

    def test_ability_tiles_restriction(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company = company_for(game, prr, "CS", TileLayAbility(hexes=["B6"], tiles=["7"]))
        game.loading = True

        with pytest.raises(GameError, match="does not have an ability"):
            lay(tracker, company, "B6", "9", 1, spender=prr)

    def test_reachable_ability(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company = company_for(game, prr, "RCH", TileLayAbility(hexes=["A3"], reachable=True))

        action = lay(tracker, company, "A3", "9", 1, spender=prr)

        assert action.hex.tile is action.tile

    def test_reachable_ability_unconnected_hex(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company = company_for(game, prr, "RCH", TileLayAbility(hexes=["A9"], reachable=True))

        with pytest.raises(GameError, match="A9 is not legally rotated for 7"):
            lay(tracker, company, "A9", "7", 0, spender=prr)

    def test_unreachable_ability_lays_anywhere(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company = company_for(game, prr, "ANY", TileLayAbility(hexes=["A9"]))

        action = lay(tracker, company, "A9", "7", 0, spender=prr)

        assert action.hex.tile is action.tile

    def test_teleport(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        """A free teleport charges exactly its own cost on an unreachable hex."""
        ability = TeleportAbility(hexes=["B6"], free_tile_lay=True, cost=50, count=1)
        prr.add_ability(ability)

        action = lay(tracker, prr, "B6", "9", 1)

        assert action.hex.tile is action.tile
        assert prr.cash == 450
        assert game.bank.cash == 10050
        assert game.log[-2] == "PRR (PRR) spends $50 and teleports to B6"
        assert game.log[-1] == "PRR lays tile #9 with rotation 1 on B6"
        assert ability.used_up

    def test_teleport_limited_to_other_tiles(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        """A teleport for other tiles does not open an unconnected hex."""
        ability = TeleportAbility(hexes=["B6"], tiles=["7"], cost=50)
        prr.add_ability(ability)

        with pytest.raises(GameError, match="B6 is not legally rotated for 9"):
            lay(tracker, prr, "B6", "9", 1)

        assert game.hex_by_id("B6").tile.name == "B6"
        assert prr.cash == 500
        assert not ability.used_up

    def test_hex_neighbors_scoped_by_tile(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        prr.add_ability(TeleportAbility(hexes=["B6"], tiles=["7"], cost=50))
        b6 = game.hex_by_id("B6")

        assert tracker.hex_neighbors(prr, b6) == set(b6.neighbors)
        assert tracker.hex_neighbors(prr, b6, take(game, "7")) == set(b6.neighbors)
        assert not tracker.hex_neighbors(prr, b6, take(game, "9"))

    def test_special_lay_cannot_strand_tokens(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        """A special lay may skip upgrade rules but never drops a token."""
        b2 = game.hex_by_id("B2")
        token = prr.tokens[1]
        token.place(b2.tile.cities[0])
        company = company_for(game, prr, "SPC", TileLayAbility(hexes=["B2"], special=True))

        with pytest.raises(GameError, match="7 has no city for the tokens on B2"):
            lay(tracker, company, "B2", "7", 3, spender=prr)

        assert b2.tile.name == "B2"
        assert token.city is b2.tile.cities[0]
        assert prr.cash == 500

    def test_teleport_must_be_affordable(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        prr.add_ability(TeleportAbility(hexes=["B6"], free_tile_lay=True, cost=50))
        prr.cash = 40

        with pytest.raises(GameError, match="cannot afford"):
            lay(tracker, prr, "B6", "9", 1)

        assert game.hex_by_id("B6").tile.name == "B6"

    def test_hex_blocked_by_company(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company_for(game, game.players[1], "BLK", BlocksHexesAbility(hexes=["A3"]))

        with pytest.raises(GameError, match="A3 is blocked by BLK"):
            lay(tracker, prr, "A3", "9", 1)

    def test_owner_not_blocked(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company_for(game, game.players[0], "BLK", BlocksHexesAbility(hexes=["A3"]))

        action = lay(tracker, prr, "A3", "9", 1)

        assert action.hex.tile is action.tile

    def test_closed_company_does_not_block(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company = company_for(game, game.players[1], "BLK", BlocksHexesAbility(hexes=["A3"]))
        company.close()

        lay(tracker, prr, "A3", "9", 1)


# =============================================================================
# Border Tests
# =============================================================================


class TestBorders:
    """Tests for building across terrain borders."""

    def test_border_removed_from_both_sides_and_charged_once(
        self, game: BaseGame, tracker: Tracker, prr: Corporation
    ):
        lay(tracker, prr, "A3", "9", 1)
        lay(tracker, prr, "A5", "9", 1)
        a5 = game.hex_by_id("A5")
        a7 = game.hex_by_id("A7")

        assert prr.cash == 500
        assert len(a5.tile.borders) == 1

        lay(tracker, prr, "A7", "9", 1)

        assert a5.tile.borders == []
        assert a7.tile.borders == []
        assert prr.cash == 460
        assert game.log[-1] == "PRR spends $40 and lays tile #9 with rotation 1 on A7"

    def test_border_discount(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        company_for(game, prr, "DSC", TileDiscountAbility(discount=20, terrain="water"))
        lay(tracker, prr, "A3", "9", 1)
        lay(tracker, prr, "A5", "9", 1)

        lay(tracker, prr, "A7", "9", 1)

        assert prr.cash == 480
        assert "PRR receives a discount of $20 from DSC" in game.log

    def test_border_with_one_side_open_not_removed(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        lay(tracker, prr, "A3", "9", 1)
        lay(tracker, prr, "A5", "9", 1)

        cost, types = tracker.remove_border_calculate_cost(game.hex_by_id("A5").tile, prr)

        assert cost == 0
        assert types == []
        assert len(game.hex_by_id("A5").tile.borders) == 1


# =============================================================================
# Token Fallout Tests
# =============================================================================


class TestTokenFallout:
    """Tests for tokens lifted when a multi-city hex first gets track."""

    def test_tokens_lifted_for_reselection(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        b2 = game.hex_by_id("B2")
        token = prr.tokens[1]
        token.place(b2.tile.cities[0])

        action = lay(tracker, prr, "B2", "59", 2)

        assert not token.used
        assert action.tile.cities[0].tokens == [None]
        assert len(tracker.round.pending_tokens) == 1
        pending = tracker.round.pending_tokens[0]
        assert pending.entity is prr
        assert pending.token is token
        assert pending.hexes == [b2]
        assert "PRR must choose city for token" in game.log

    def test_single_city_keeps_token(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        b4 = game.hex_by_id("B4")
        token = prr.tokens[1]
        token.place(b4.tile.cities[0])

        action = lay(tracker, prr, "B4", "X2", 0)

        assert token.used
        assert token.city is action.tile.cities[0]
        assert tracker.round.pending_tokens == []


# =============================================================================
# Tile Income Tests
# =============================================================================


class TestTileIncome:
    """Tests for companies paid when track is laid."""

    def test_flat_income_every_lay(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        bob = game.players[1]
        company_for(game, bob, "INC", TileIncomeAbility(income=5))

        lay(tracker, prr, "A3", "9", 1)

        assert bob.cash == 5
        assert game.log[-1] == "Bob earns $5 for the tile built by INC"

    def test_terrain_income_per_border(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        bob = game.players[1]
        company_for(game, bob, "INC", TileIncomeAbility(income=10, terrain="water"))
        lay(tracker, prr, "A3", "9", 1)
        lay(tracker, prr, "A5", "9", 1)

        assert bob.cash == 0

        lay(tracker, prr, "A7", "9", 1)

        assert bob.cash == 10
        assert game.log[-1] == "Bob earns $10 for the water tile built by INC"

    def test_owner_only_income(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        bob = game.players[1]
        company_for(game, bob, "INC", TileIncomeAbility(income=10, terrain="water", owner_only=True))
        lay(tracker, prr, "A3", "9", 1)
        lay(tracker, prr, "A5", "9", 1)

        lay(tracker, prr, "A7", "9", 1)

        assert bob.cash == 0


# =============================================================================
# Rotation Legality Tests
# =============================================================================


class TestRotationLegality:
    """Tests for legal_tile_rotation and tile listing."""

    def test_upgrade_must_keep_old_track(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        lay(tracker, prr, "A3", "9", 1)
        a3 = game.hex_by_id("A3")
        green = take(game, "24")

        assert tracker.legal_tile_rotations(prr, a3, green) == [4]

    def test_dropping_a_path_is_illegal(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        """The curve from the yellow tile is not on the green tile at this rotation."""
        lay(tracker, prr, "A3", "7", 0)
        a3 = game.hex_by_id("A3")
        green = take(game, "24")

        green.rotate(4)

        assert not tracker.legal_tile_rotation(prr, a3, green)

    def test_exits_need_neighbors(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        tile = take(game, "7")
        tile.rotate(1)
        assert not tracker.legal_tile_rotation(prr, game.hex_by_id("A3"), tile)

    def test_city_merge_rotations(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        """Both OO cities fold into the single green city either way round."""
        prr.tokens[1].place(game.hex_by_id("B4").tile.cities[0])
        merged = take(game, "X2")

        assert tracker.legal_tile_rotations(prr, game.hex_by_id("B4"), merged) == [0, 3]

    def test_game_rotation_hook_consulted(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        game.legal_tile_rotation = lambda entity, hex, tile: False
        tile = take(game, "9")
        tile.rotate(1)

        assert not tracker.legal_tile_rotation(prr, game.hex_by_id("A3"), tile)

    def test_potential_tiles(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        tiles = tracker.potential_tiles(prr, game.hex_by_id("A3"))
        assert [tile.name for tile in tiles] == ["9", "7"]

    def test_potential_tiles_follow_phase(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        lay(tracker, prr, "A3", "9", 1)
        a3 = game.hex_by_id("A3")

        assert tracker.potential_tiles(prr, a3) == []

        game.phase = Phase(name="3", tiles=(TileColor.YELLOW, TileColor.GREEN))

        assert [tile.name for tile in tracker.potential_tiles(prr, a3)] == ["24"]

    def test_upgradeable_tiles(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        tiles = tracker.upgradeable_tiles(prr, game.hex_by_id("A3"))

        assert [(tile.name, tile.legal_rotations, tile.rotation) for tile in tiles] == [
            ("9", [1, 4], 1),
            ("7", [0], 0),
        ]

    def test_tracker_available_hex(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        assert tracker.tracker_available_hex(prr, game.hex_by_id("A3")) == {1}
        assert tracker.tracker_available_hex(prr, game.hex_by_id("A9")) is None

    def test_tracker_available_hex_without_upgrade(self):
        game = make_game(TwoLayGame)
        tracker = Tracker(game)
        prr = game.corporation_by_id("PRR")
        tracker.lay_tile_action(make_action(game, prr, "A3", "9", 1))

        assert tracker.tracker_available_hex(prr, game.hex_by_id("A3")) is None
        assert tracker.tracker_available_hex(prr, game.hex_by_id("A5")) == {1}


# =============================================================================
# Track Restriction Tests
# =============================================================================


class TestTrackRestrictions:
    """Tests for the track-usage restriction policies."""

    @pytest.fixture
    def merge_setup(self, game: BaseGame, prr: Corporation):
        """PRR holds the west city of the B4 OO tile."""
        prr.tokens[1].place(game.hex_by_id("B4").tile.cities[0])
        return game

    def test_semi_restrictive_rejects_pure_merge(self, merge_setup, tracker: Tracker, prr: Corporation):
        with pytest.raises(GameError, match="Must use new track or change city value"):
            lay(tracker, prr, "B4", "X1", 0)

    def test_semi_restrictive_accepts_revenue_change(self, merge_setup, tracker: Tracker, prr: Corporation):
        action = lay(tracker, prr, "B4", "X2", 0)
        assert action.hex.tile is action.tile

    def test_restrictive_requires_new_track(self, merge_setup, tracker: Tracker, prr: Corporation):
        merge_setup.TRACK_RESTRICTION = TrackRestriction.RESTRICTIVE

        with pytest.raises(GameError, match="Must use new track"):
            lay(tracker, prr, "B4", "X2", 0)

    def test_city_permissive_accepts_city_tile(self, merge_setup, tracker: Tracker, prr: Corporation):
        merge_setup.TRACK_RESTRICTION = TrackRestriction.CITY_PERMISSIVE
        lay(tracker, prr, "B4", "X1", 0)

    def test_permissive(self, merge_setup, tracker: Tracker, prr: Corporation):
        merge_setup.TRACK_RESTRICTION = TrackRestriction.PERMISSIVE
        lay(tracker, prr, "B4", "X1", 0)

    def test_new_track_always_allowed(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        game.TRACK_RESTRICTION = TrackRestriction.RESTRICTIVE
        lay(tracker, prr, "A3", "9", 1)
        lay(tracker, prr, "A3", "24", 4)

    def test_unknown_policy_is_configuration_error(self, game: BaseGame, tracker: Tracker, prr: Corporation):
        game.TRACK_RESTRICTION = "bogus"
        a3 = game.hex_by_id("A3")

        with pytest.raises(ValueError):
            tracker.check_track_restrictions(prr, a3.tile, take(game, "9"))

    def test_companies_not_restricted(self, merge_setup, tracker: Tracker, prr: Corporation):
        company = company_for(merge_setup, prr, "CS")
        b4 = merge_setup.hex_by_id("B4")
        tracker.check_track_restrictions(company, b4.tile, take(merge_setup, "X1"))
