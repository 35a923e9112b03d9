import pytest

from ronnied.errors import AlreadyRolledError, InvalidStateError, PlayerNotInGameError, ValidationError
from ronnied.models.dc_models import DrinkReason, Game, GameStatus, ParticipantStatus, RollOffType


async def tied_at_both_ends(service, roll_all, active_game):
    """[6, 6, 3, 1, 1] with both critical hits handed to carol."""
    game = await active_game("alice", "bob", "carol", "dave", "erin")
    await roll_all(game.id, {"alice": 6, "bob": 6, "carol": 3, "dave": 1, "erin": 1})
    await service.assign_drink(game.id, "alice", "carol")
    outcome = await service.assign_drink(game.id, "bob", "carol")
    return game, outcome.end_game


class TestEndGameTies:
    @pytest.mark.asyncio
    async def test_ties_at_both_ends_spawn_two_roll_offs(self, service, roll_all, active_game, game_store, ledger_store):
        game, end = await tied_at_both_ends(service, roll_all, active_game)

        assert end.needs_roll_off
        assert not end.completed
        assert end.highest_roll_off.player_ids == ["alice", "bob"]
        assert end.lowest_roll_off.player_ids == ["dave", "erin"]
        assert end.lowest_roll_drink is None

        root = await game_store.get(game.id)
        assert root.status == GameStatus.roll_off
        assert root.highest_roll_off_game_id == end.highest_roll_off.game_id
        assert root.lowest_roll_off_game_id == end.lowest_roll_off.game_id

        for spawn in end.spawned():
            child = await game_store.get(spawn.game_id)
            assert child.parent_game_id == game.id
            assert child.status == GameStatus.roll_off
            assert child.roll_off_type == spawn.roll_off_type
            assert all(p.status == ParticipantStatus.waiting_to_roll for p in child.participants)
            assert all(p.roll_time is None and p.roll_value == 0 for p in child.participants)

        reasons = [r.reason for r in await ledger_store.list_for_game(game.id)]
        assert reasons.count(DrinkReason.critical_fail) == 2
        assert DrinkReason.lowest_roll not in reasons

    @pytest.mark.asyncio
    async def test_players_follow_the_roll_off_tree(self, service, roll_all, active_game, player_store):
        game, end = await tied_at_both_ends(service, roll_all, active_game)
        assert (await player_store.get("alice")).current_game_id == end.highest_roll_off.game_id
        assert (await player_store.get("dave")).current_game_id == end.lowest_roll_off.game_id
        assert (await player_store.get("carol")).current_game_id == game.id

    @pytest.mark.asyncio
    async def test_full_resolution_through_nested_roll_off(
        self, service, roll_all, active_game, game_store, ledger_store, player_store
    ):
        game, end = await tied_at_both_ends(service, roll_all, active_game)

        # rolls through the root id are redirected into the roll-off waiting on the player
        outcomes = await roll_all(game.id, {"alice": 5, "bob": 2})
        assert outcomes[0].redirected
        assert outcomes[0].game_id == end.highest_roll_off.game_id
        assert outcomes[0].is_roll_off_roll
        highest = outcomes[-1].end_game
        assert highest.completed
        assert highest.winner_player_id == "alice"
        assert highest.lowest_roll_drink is None
        assert (await game_store.get(game.id)).status == GameStatus.roll_off

        outcomes = await roll_all(game.id, {"dave": 4, "erin": 4})
        nested = outcomes[-1].end_game
        assert nested.lowest_roll_off.player_ids == ["dave", "erin"]
        nested_game = await game_store.get(nested.lowest_roll_off.game_id)
        assert nested_game.parent_game_id == end.lowest_roll_off.game_id

        outcomes = await roll_all(game.id, {"dave": 2, "erin": 3})
        assert outcomes[0].game_id == nested_game.id
        final = outcomes[-1].end_game
        assert final.loser_player_id == "dave"
        assert final.completed_game_ids == [nested_game.id, end.lowest_roll_off.game_id, game.id]

        root = await game_store.get(game.id)
        assert root.status == GameStatus.completed
        lowest = [r for r in await ledger_store.list_for_game(game.id) if r.reason == DrinkReason.lowest_roll]
        assert len(lowest) == 1
        assert lowest[0].to_player_id == "dave"
        assert lowest[0].game_id == game.id
        assert lowest[0].source_game_id == nested_game.id
        for player_id in ("alice", "dave", "erin"):
            assert (await player_store.get(player_id)).current_game_id == game.id

    @pytest.mark.asyncio
    async def test_roll_off_rolls_are_not_critical(self, service, roll_all, active_game, ledger_store):
        game, end = await tied_at_both_ends(service, roll_all, active_game)
        before = len(await ledger_store.list_for_game(game.id))
        outcomes = await roll_all(game.id, {"alice": 6, "bob": 1})
        assert not outcomes[0].is_critical_hit
        assert not outcomes[1].is_critical_fail
        assert outcomes[-1].end_game.winner_player_id == "alice"
        assert len(await ledger_store.list_for_game(game.id)) == before

    @pytest.mark.asyncio
    async def test_player_outside_roll_off_already_rolled(self, service, roller, roll_all, active_game):
        game, end = await tied_at_both_ends(service, roll_all, active_game)
        roller.script(4)
        with pytest.raises(AlreadyRolledError):
            await service.roll_dice(game.id, "carol")

    @pytest.mark.asyncio
    async def test_lowest_roll_off_picks_the_loser(self, service, roll_all, active_game, game_store, ledger_store):
        game = await active_game("alice", "bob", "carol", "dave")
        outcomes = await roll_all(game.id, {"alice": 5, "bob": 2, "carol": 2, "dave": 2})
        end = outcomes[-1].end_game
        assert end.highest_roll_off is None
        assert end.winner_player_id == "alice"
        assert end.lowest_roll_off.player_ids == ["bob", "carol", "dave"]

        outcomes = await roll_all(game.id, {"bob": 5, "carol": 3, "dave": 4})
        final = outcomes[-1].end_game
        assert final.loser_player_id == "carol"
        assert not final.needs_roll_off
        assert final.completed
        child = await game_store.get(end.lowest_roll_off.game_id)
        assert child.status == GameStatus.completed
        assert (await game_store.get(game.id)).status == GameStatus.completed
        lowest = [r for r in await ledger_store.list_for_game(game.id) if r.reason == DrinkReason.lowest_roll]
        assert [(r.to_player_id, r.game_id) for r in lowest] == [("carol", game.id)]

    @pytest.mark.asyncio
    async def test_all_tied_spawns_a_single_roll_off(self, service, roll_all, active_game, game_store):
        game = await active_game("alice", "bob")
        outcomes = await roll_all(game.id, {"alice": 3, "bob": 3})
        end = outcomes[-1].end_game
        assert end.highest_roll_off is None
        assert end.lowest_roll_off.player_ids == ["alice", "bob"]
        assert len(await game_store.list_children(game.id)) == 1

    @pytest.mark.asyncio
    async def test_tied_roll_off_nests_once(self, service, roll_all, active_game, game_store):
        game = await active_game("alice", "bob")
        outcomes = await roll_all(game.id, {"alice": 3, "bob": 3})
        first = outcomes[-1].end_game.lowest_roll_off

        outcomes = await roll_all(game.id, {"alice": 4, "bob": 4})
        nested = outcomes[-1].end_game.lowest_roll_off
        children = await game_store.list_children(first.game_id)
        assert [child.id for child in children] == [nested.game_id]
        nested_game = children[0]
        assert sorted(p.player_id for p in nested_game.participants) == ["alice", "bob"]
        assert all(p.status == ParticipantStatus.waiting_to_roll for p in nested_game.participants)
        assert all(p.roll_time is None for p in nested_game.participants)

    @pytest.mark.asyncio
    async def test_top_tie_still_charges_the_lowest_roller(self, service, roll_all, active_game, game_store, ledger_store):
        game = await active_game("alice", "bob", "carol")
        outcomes = await roll_all(game.id, {"alice": 5, "bob": 5, "carol": 2})
        end = outcomes[-1].end_game
        assert end.highest_roll_off.player_ids == ["alice", "bob"]
        assert end.lowest_roll_drink.to_player_id == "carol"
        assert (await game_store.get(game.id)).status == GameStatus.roll_off

        outcomes = await roll_all(game.id, {"alice": 2, "bob": 4})
        assert outcomes[-1].end_game.winner_player_id == "bob"
        assert (await game_store.get(game.id)).status == GameStatus.completed
        reasons = [r.reason for r in await ledger_store.list_for_game(game.id)]
        assert reasons == [DrinkReason.lowest_roll]


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_end_game_after_completion_writes_nothing(self, service, roll_all, active_game, ledger_store):
        game = await active_game("alice", "bob", "carol")
        await roll_all(game.id, {"alice": 5, "bob": 2, "carol": 4})
        before = await ledger_store.list_for_game(game.id)

        again = await service.end_game(game.id)
        assert again.completed
        assert again.completed_game_ids == []
        assert again.lowest_roll_drink.id == before[-1].id
        assert await ledger_store.list_for_game(game.id) == before

    @pytest.mark.asyncio
    async def test_retried_completion_does_not_respawn(self, service, roll_all, active_game, game_store):
        game, end = await tied_at_both_ends(service, roll_all, active_game)
        again = await service.check_round_completion(game.id)
        assert again.highest_roll_off.game_id == end.highest_roll_off.game_id
        assert again.lowest_roll_off.game_id == end.lowest_roll_off.game_id
        assert len(await game_store.list_children(game.id)) == 2

    @pytest.mark.asyncio
    async def test_retried_top_tie_charges_once(self, service, roll_all, active_game, ledger_store):
        game = await active_game("alice", "bob", "carol")
        await roll_all(game.id, {"alice": 5, "bob": 5, "carol": 2})
        await service.end_game(game.id)
        lowest = [r for r in await ledger_store.list_for_game(game.id) if r.reason == DrinkReason.lowest_roll]
        assert len(lowest) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("archive", [True, False])
    async def test_tab_reset_does_not_recharge_the_lowest_roller(
        self, service, roll_all, active_game, game_store, ledger_store, archive
    ):
        """The charge is remembered on the game, so wiping the tab cannot replay it."""
        game = await active_game("alice", "bob", "carol")
        await roll_all(game.id, {"alice": 5, "bob": 5, "carol": 2})
        assert (await game_store.get(game.id)).lowest_roll_charged_to == "carol"

        await service.ledger.reset_tab(game.id, "alice", archive=archive)
        again = await service.check_round_completion(game.id)

        assert again.lowest_roll_drink is None
        lowest = [r for r in await ledger_store.list_for_game(game.id) if r.reason == DrinkReason.lowest_roll]
        assert len(lowest) == (1 if archive else 0)
        assert all(r.archived for r in lowest)

        await roll_all(game.id, {"alice": 2, "bob": 4})
        assert (await game_store.get(game.id)).status == GameStatus.completed
        lowest = [r for r in await ledger_store.list_for_game(game.id) if r.reason == DrinkReason.lowest_roll]
        assert len(lowest) == (1 if archive else 0)

    @pytest.mark.asyncio
    async def test_charge_recorded_before_the_marker_is_not_repeated(
        self, service, roll_all, active_game, game_store, ledger_store
    ):
        game = await active_game("alice", "bob", "carol")
        await roll_all(game.id, {"alice": 5, "bob": 5, "carol": 2})
        stored = await game_store.get(game.id)
        stored.lowest_roll_charged_to = None
        await game_store.put(stored)

        await service.ledger.reset_tab(game.id, "alice", archive=True)
        await service.end_game(game.id)
        lowest = [r for r in await ledger_store.list_for_game(game.id) if r.reason == DrinkReason.lowest_roll]
        assert len(lowest) == 1


class TestAbandon:
    @pytest.mark.asyncio
    async def test_abandon_closes_the_whole_tree(self, service, roll_all, active_game, game_store, player_store):
        game, end = await tied_at_both_ends(service, roll_all, active_game)
        await roll_all(game.id, {"dave": 4, "erin": 4})

        abandoned = await service.abandon_game(game.id)
        assert abandoned.status == GameStatus.completed
        queue = [game.id]
        while queue:
            current = queue.pop()
            children = await game_store.list_children(current)
            for child in children:
                assert child.status == GameStatus.completed
                queue.append(child.id)
        for player_id in ("alice", "bob", "carol", "dave", "erin"):
            assert (await player_store.get(player_id)).current_game_id is None

    @pytest.mark.asyncio
    async def test_abandon_waiting_game(self, service, game_store):
        game = await service.create_game("channel-1", "alice", "Alice")
        await service.abandon_game(game.id)
        assert (await game_store.get(game.id)).status == GameStatus.completed


class TestRollOffLookup:
    @pytest.mark.asyncio
    async def test_direct_children_are_checked_before_grandchildren(self, service, roll_all, active_game):
        game, end = await tied_at_both_ends(service, roll_all, active_game)
        found = await service.roll_offs.find_active_roll_off("erin", game.id)
        assert found.id == end.lowest_roll_off.game_id

        await roll_all(game.id, {"dave": 4, "erin": 4})
        found = await service.roll_offs.find_active_roll_off("erin", game.id)
        assert found.parent_game_id == end.lowest_roll_off.game_id

    @pytest.mark.asyncio
    async def test_no_roll_off_for_player(self, service, active_game):
        game = await active_game("alice", "bob")
        assert await service.roll_offs.find_active_roll_off("alice", game.id) is None

    @pytest.mark.asyncio
    async def test_get_game_lists_open_roll_offs(self, service, roll_all, active_game):
        game, end = await tied_at_both_ends(service, roll_all, active_game)
        view = await service.get_game(game.id)
        assert [g.id for g in view.active_roll_offs] == [
            end.highest_roll_off.game_id,
            end.lowest_roll_off.game_id,
        ]


class TestStartRollOff:
    @pytest.mark.asyncio
    async def test_needs_two_players(self, service, active_game):
        game = await active_game("alice", "bob")
        with pytest.raises(ValidationError):
            await service.start_roll_off(game.id, ["alice"], RollOffType.highest)

    @pytest.mark.asyncio
    async def test_unsupported_type(self, service, active_game):
        game = await active_game("alice", "bob")
        with pytest.raises(ValidationError):
            await service.start_roll_off(game.id, ["alice", "bob"], "sideways")

    @pytest.mark.asyncio
    async def test_players_must_be_in_parent(self, service, active_game):
        game = await active_game("alice", "bob")
        with pytest.raises(PlayerNotInGameError):
            await service.start_roll_off(game.id, ["alice", "mallory"], RollOffType.lowest)

    @pytest.mark.asyncio
    async def test_parent_must_be_in_play(self, service):
        game = await service.create_game("channel-1", "alice", "Alice")
        await service.join_game(game.id, "bob", "Bob")
        with pytest.raises(InvalidStateError):
            await service.start_roll_off(game.id, ["alice", "bob"], RollOffType.lowest)

    @pytest.mark.asyncio
    async def test_spawns_linked_child(self, service, active_game, game_store):
        game = await active_game("alice", "bob", "carol")
        child = await service.start_roll_off(game.id, ["alice", "carol"], RollOffType.highest)
        assert isinstance(child, Game)
        parent = await game_store.get(game.id)
        assert parent.highest_roll_off_game_id == child.id
        assert parent.status == GameStatus.roll_off
        assert [p.player_id for p in child.participants] == ["alice", "carol"]
