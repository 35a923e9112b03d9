from sqlalchemy import ForeignKey
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.schema import Column
from sqlalchemy.types import Boolean, DateTime, Integer, String


class Base(DeclarativeBase):
    pass


class GameRow(Base):
    __tablename__ = "games"
    id = Column(String, primary_key=True)
    channel_id = Column(String, index=True)
    creator_id = Column(String)
    status = Column(String)
    parent_game_id = Column(String, nullable=True, index=True)
    highest_roll_off_game_id = Column(String, nullable=True)
    lowest_roll_off_game_id = Column(String, nullable=True)
    roll_off_type = Column(String, nullable=True)
    lowest_roll_charged_to = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))

    participants = relationship(
        "ParticipantRow",
        back_populates="game",
        cascade="all, delete-orphan",
        order_by="ParticipantRow.position",
        lazy="selectin",
    )


class ParticipantRow(Base):
    __tablename__ = "participants"
    id = Column(String, primary_key=True)
    game_id = Column(String, ForeignKey("games.id", ondelete="CASCADE"), index=True)
    position = Column(Integer)  # join order within the game
    player_id = Column(String)
    player_name = Column(String)
    status = Column(String)
    roll_value = Column(Integer, default=0)
    roll_time = Column(DateTime(timezone=True), nullable=True)

    game = relationship("GameRow", back_populates="participants")


class PlayerRow(Base):
    __tablename__ = "players"
    id = Column(String, primary_key=True)
    name = Column(String)
    current_game_id = Column(String, nullable=True)
    last_roll = Column(Integer, default=0)
    last_roll_time = Column(DateTime(timezone=True), nullable=True)


class DrinkRecordRow(Base):
    __tablename__ = "drink_ledger"
    id = Column(String, primary_key=True)
    game_id = Column(String, index=True)
    session_id = Column(String, nullable=True, index=True)
    source_game_id = Column(String, nullable=True)
    from_player_id = Column(String, nullable=True)
    to_player_id = Column(String)
    reason = Column(String)
    timestamp = Column(DateTime(timezone=True))
    paid = Column(Boolean, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    archived = Column(Boolean, default=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)


class SessionRow(Base):
    __tablename__ = "drink_sessions"
    id = Column(String, primary_key=True)
    channel_id = Column(String, index=True)
    created_by = Column(String)
    created_at = Column(DateTime(timezone=True))
    active = Column(Boolean, default=True)
