from datetime import datetime, timezone

from ronnied.models.dc_models import (
    DrinkReason,
    DrinkRecord,
    Game,
    GameStatus,
    Participant,
    ParticipantStatus,
    Player,
    RollOffType,
    Session,
)
from ronnied.models.schemas import (
    DrinkRecordRow,
    GameRow,
    ParticipantRow,
    PlayerRow,
    SessionRow,
)


def to_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DataConverter:
    """This class is used to convert data between the ORM rows and the domain models."""

    def convert_gamerow_to_game(self, row: GameRow) -> Game:
        """Convert the GameRow read from the database to the Game model

        Args:
            row (GameRow): Game row with its participants loaded

        Returns:
            Game: The game aggregate used by the engine
        """
        return Game(
            id=row.id,
            channel_id=row.channel_id,
            creator_id=row.creator_id,
            status=GameStatus(row.status),
            participants=[self.convert_participantrow_to_participant(p) for p in row.participants],
            parent_game_id=row.parent_game_id,
            highest_roll_off_game_id=row.highest_roll_off_game_id,
            lowest_roll_off_game_id=row.lowest_roll_off_game_id,
            roll_off_type=RollOffType(row.roll_off_type) if row.roll_off_type else None,
            lowest_roll_charged_to=row.lowest_roll_charged_to,
            created_at=to_utc(row.created_at),
            updated_at=to_utc(row.updated_at),
        )

    def copy_game_to_gamerow(self, game: Game, row: GameRow) -> GameRow:
        """Write the game columns and participants onto row.

        Existing participant rows are updated in place, new ones are appended
        and the ones no longer in the game are dropped.
        """
        row.id = game.id
        row.channel_id = game.channel_id
        row.creator_id = game.creator_id
        row.status = game.status.value
        row.parent_game_id = game.parent_game_id
        row.highest_roll_off_game_id = game.highest_roll_off_game_id
        row.lowest_roll_off_game_id = game.lowest_roll_off_game_id
        row.roll_off_type = game.roll_off_type.value if game.roll_off_type else None
        row.lowest_roll_charged_to = game.lowest_roll_charged_to
        row.created_at = to_utc(game.created_at)
        row.updated_at = to_utc(game.updated_at)

        existing = {p.id: p for p in row.participants}
        participant_rows = []
        for position, participant in enumerate(game.participants):
            participant_row = existing.get(participant.id) or ParticipantRow(id=participant.id)
            participant_row.game_id = game.id
            participant_row.position = position
            participant_row.player_id = participant.player_id
            participant_row.player_name = participant.player_name
            participant_row.status = participant.status.value
            participant_row.roll_value = participant.roll_value
            participant_row.roll_time = to_utc(participant.roll_time)
            participant_rows.append(participant_row)
        row.participants = participant_rows
        return row

    def convert_participantrow_to_participant(self, row: ParticipantRow) -> Participant:
        return Participant(
            id=row.id,
            game_id=row.game_id,
            player_id=row.player_id,
            player_name=row.player_name,
            status=ParticipantStatus(row.status),
            roll_value=row.roll_value or 0,
            roll_time=to_utc(row.roll_time),
        )

    def convert_playerrow_to_player(self, row: PlayerRow) -> Player:
        return Player(
            id=row.id,
            name=row.name,
            current_game_id=row.current_game_id,
            last_roll=row.last_roll or 0,
            last_roll_time=to_utc(row.last_roll_time),
        )

    def copy_player_to_playerrow(self, player: Player, row: PlayerRow) -> PlayerRow:
        row.id = player.id
        row.name = player.name
        row.current_game_id = player.current_game_id
        row.last_roll = player.last_roll
        row.last_roll_time = to_utc(player.last_roll_time)
        return row

    def convert_drinkrecordrow_to_drinkrecord(self, row: DrinkRecordRow) -> DrinkRecord:
        return DrinkRecord(
            id=row.id,
            game_id=row.game_id,
            session_id=row.session_id,
            source_game_id=row.source_game_id,
            from_player_id=row.from_player_id,
            to_player_id=row.to_player_id,
            reason=DrinkReason(row.reason),
            timestamp=to_utc(row.timestamp),
            paid=bool(row.paid),
            paid_at=to_utc(row.paid_at),
            archived=bool(row.archived),
            archived_at=to_utc(row.archived_at),
        )

    def convert_drinkrecord_to_drinkrecordrow(self, record: DrinkRecord) -> DrinkRecordRow:
        return DrinkRecordRow(
            id=record.id,
            game_id=record.game_id,
            session_id=record.session_id,
            source_game_id=record.source_game_id,
            from_player_id=record.from_player_id,
            to_player_id=record.to_player_id,
            reason=record.reason.value,
            timestamp=to_utc(record.timestamp),
            paid=record.paid,
            paid_at=to_utc(record.paid_at),
            archived=record.archived,
            archived_at=to_utc(record.archived_at),
        )

    def convert_sessionrow_to_session(self, row: SessionRow) -> Session:
        return Session(
            id=row.id,
            channel_id=row.channel_id,
            created_by=row.created_by,
            created_at=to_utc(row.created_at),
            active=bool(row.active),
        )
