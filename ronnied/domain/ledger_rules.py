"""Drink accounting rules: leaderboards, per-game stats and player tabs."""

from typing import Dict, Iterable, List

from ronnied.models.dc_models import DrinkRecord, Participant
from ronnied.models.result_models import LeaderboardEntry, PlayerStats, PlayerTab, PlayerTabEntry

UNKNOWN_PLAYER = "Unknown Player"


def live_records(records: Iterable[DrinkRecord]) -> List[DrinkRecord]:
    """Drop records archived by a tab reset."""
    return [record for record in records if not record.archived]


def build_leaderboard(
    records: Iterable[DrinkRecord],
    names: Dict[str, str],
    player_ids: Iterable[str] = (),
) -> List[LeaderboardEntry]:
    """Group records by recipient and rank by total drinks, most first.

    Args:
        records: Ledger records to count.
        names: Player id to display name.
        player_ids: Players listed even without drinks (game participants).

    Returns:
        List[LeaderboardEntry]: Sorted descending by drink count. Equal counts keep
        the order in which players were first seen.
    """
    entries: Dict[str, LeaderboardEntry] = {}
    for player_id in player_ids:
        entries.setdefault(
            player_id,
            LeaderboardEntry(player_id=player_id, player_name=names.get(player_id, UNKNOWN_PLAYER)),
        )
    for record in records:
        entry = entries.setdefault(
            record.to_player_id,
            LeaderboardEntry(
                player_id=record.to_player_id,
                player_name=names.get(record.to_player_id, UNKNOWN_PLAYER),
            ),
        )
        entry.drink_count += 1
        if record.paid:
            entry.paid_count += 1
    # sorted() is stable, so first-seen order survives among equal counts
    return sorted(entries.values(), key=lambda entry: entry.drink_count, reverse=True)


def build_player_stats(participants: List[Participant], records: Iterable[DrinkRecord]) -> List[PlayerStats]:
    stats = {
        participant.player_id: PlayerStats(
            player_id=participant.player_id,
            player_name=participant.player_name,
            last_roll=participant.roll_value,
            last_roll_time=participant.roll_time,
        )
        for participant in participants
    }
    for record in records:
        if record.from_player_id in stats:
            stats[record.from_player_id].drinks_assigned += 1
        if record.to_player_id in stats:
            stats[record.to_player_id].drinks_received += 1
    return list(stats.values())


def find_latest_unpaid(records: Iterable[DrinkRecord], player_id: str) -> DrinkRecord | None:
    """Most recently created unpaid record owed by player_id.

    Records with the same timestamp are ordered by their position in the ledger.
    """
    latest = None
    for record in records:
        if record.to_player_id != player_id or record.paid or record.archived:
            continue
        if latest is None or record.timestamp >= latest.timestamp:
            latest = record
    return latest


def build_player_tab(
    player_id: str,
    player_name: str,
    records: Iterable[DrinkRecord],
    names: Dict[str, str],
) -> PlayerTab:
    tab = PlayerTab(player_id=player_id, player_name=player_name)
    for record in records:
        if record.to_player_id != player_id and record.from_player_id != player_id:
            continue
        entry = PlayerTabEntry(
            from_player_id=record.from_player_id,
            from_player_name=names.get(record.from_player_id, UNKNOWN_PLAYER)
            if record.from_player_id
            else "The Game",
            to_player_id=record.to_player_id,
            to_player_name=names.get(record.to_player_id, UNKNOWN_PLAYER),
            reason=record.reason,
            timestamp=record.timestamp,
            paid=record.paid,
        )
        if record.to_player_id == player_id:
            tab.drinks_owed.append(entry)
            if not record.paid:
                tab.total_owed += 1
        if record.from_player_id == player_id:
            tab.drinks_assigned.append(entry)
            if not record.paid:
                tab.total_assigned += 1
    tab.net_drinks = tab.total_owed - tab.total_assigned
    return tab
