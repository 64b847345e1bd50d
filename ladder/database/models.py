from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, JSON,
    ForeignKey, Enum as SQLEnum, Index, UniqueConstraint, text
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum
from typing import Optional, List

from ladder.utils.scores import SetScore

Base = declarative_base()

class SeasonStatus(Enum):
    ACTIVE = "active"
    PLAYOFFS = "playoffs"
    COMPLETED = "completed"

class ChallengeStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    WITHDRAWN = "withdrawn"
    FORFEITED = "forfeited"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def active_statuses(cls) -> List["ChallengeStatus"]:
        """Statuses that lock both players out of other challenges"""
        return [cls.PENDING, cls.ACCEPTED]

class MatchType(Enum):
    CHALLENGE = "challenge"
    QUARTERFINAL = "quarterfinal"
    SEMIFINAL = "semifinal"
    FINAL = "final"
    THIRD_PLACE = "third_place"

    @property
    def is_playoff(self) -> bool:
        return self != MatchType.CHALLENGE

class FinalSetType(Enum):
    TIEBREAK = "tiebreak"
    FULL_SET = "full_set"

class LadderChangeReason(Enum):
    MATCH_RESULT = "match_result"
    PLAYER_JOINED = "player_joined"
    PLAYER_WITHDREW = "player_withdrew"
    ADMIN_ADJUSTMENT = "admin_adjustment"

class PlayoffFormat(Enum):
    FINAL = "final"
    SEMIS = "semis"
    QUARTERS = "quarters"

class DisputeAction(Enum):
    CONFIRM = "confirm"
    REVERSE = "reverse"

class NotificationType(Enum):
    CHALLENGE_RECEIVED = "challenge_received"
    CHALLENGE_ACCEPTED = "challenge_accepted"
    CHALLENGE_REJECTED = "challenge_rejected"
    CHALLENGE_WITHDRAWN = "challenge_withdrawn"
    SCORE_SUBMITTED = "score_submitted"
    SCORE_DISPUTED = "score_disputed"
    DISPUTE_RESOLVED = "dispute_resolved"
    PLAYOFF_STARTED = "playoff_started"
    PLAYOFF_ADVANCED = "playoff_advanced"
    PLAYOFF_ELIMINATED = "playoff_eliminated"
    PLAYOFF_CHAMPION = "playoff_champion"

class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, default=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}')>"

class Admin(Base):
    __tablename__ = 'admins'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, unique=True)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User")

    def __repr__(self):
        return f"<Admin(user_id={self.user_id})>"

class Season(Base):
    __tablename__ = 'seasons'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime)
    is_active = Column(Boolean, default=False)
    status = Column(SQLEnum(SeasonStatus), default=SeasonStatus.ACTIVE, nullable=False)
    wildcards_per_player = Column(Integer, default=1, nullable=False)

    # Playoffs
    playoff_format = Column(SQLEnum(PlayoffFormat))
    playoff_started_at = Column(DateTime)
    playoff_winner_id = Column(Integer, ForeignKey('users.id'))
    playoff_completed_at = Column(DateTime)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Season(id={self.id}, name='{self.name}', status={self.status.value if self.status else None})>"

class LadderPosition(Base):
    __tablename__ = 'ladder_positions'

    id = Column(Integer, primary_key=True)
    season_id = Column(Integer, ForeignKey('seasons.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    position = Column(Integer, nullable=False)
    # Soft delete: inactive rows keep their last position for history
    is_active = Column(Boolean, default=True, nullable=False)

    joined_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User")

    # Active rows hold unique positive positions; sentinel rows are excluded so
    # several may be parked at the same time inside one transaction.
    __table_args__ = (
        Index(
            'uq_ladder_active_position', 'season_id', 'position', unique=True,
            sqlite_where=text('is_active = 1 AND position > 0'),
            postgresql_where=text('is_active AND position > 0'),
        ),
        Index(
            'uq_ladder_active_user', 'season_id', 'user_id', unique=True,
            sqlite_where=text('is_active = 1'),
            postgresql_where=text('is_active'),
        ),
    )

    def __repr__(self):
        return f"<LadderPosition(season={self.season_id}, user={self.user_id}, position={self.position}, active={self.is_active})>"

class LadderHistory(Base):
    __tablename__ = 'ladder_history'

    id = Column(Integer, primary_key=True)
    season_id = Column(Integer, ForeignKey('seasons.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    previous_position = Column(Integer)  # None when joining
    new_position = Column(Integer)       # None when leaving
    change_reason = Column(SQLEnum(LadderChangeReason), nullable=False)
    match_id = Column(Integer, ForeignKey('matches.id'))
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return (f"<LadderHistory(user={self.user_id}, {self.previous_position} -> {self.new_position}, "
                f"reason={self.change_reason.value})>")

class Challenge(Base):
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True)
    season_id = Column(Integer, ForeignKey('seasons.id'), nullable=False, index=True)
    challenger_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    challenged_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    is_wildcard = Column(Boolean, default=False, nullable=False)
    status = Column(SQLEnum(ChallengeStatus), default=ChallengeStatus.PENDING, nullable=False)

    # Scheduling
    proposed_date = Column(DateTime, nullable=False)
    proposed_location = Column(String(200), nullable=False)
    accepted_date = Column(DateTime)
    accepted_location = Column(String(200))

    # Timestamps
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    forfeited_at = Column(DateTime)
    completed_at = Column(DateTime)

    @property
    def is_active(self) -> bool:
        return self.status in ChallengeStatus.active_statuses()

    def involves(self, user_id: int) -> bool:
        return user_id in (self.challenger_id, self.challenged_id)

    def __repr__(self):
        return (f"<Challenge(id={self.id}, {self.challenger_id} -> {self.challenged_id}, "
                f"status={self.status.value if self.status else None})>")

class WildcardUsage(Base):
    __tablename__ = 'wildcard_usage'

    id = Column(Integer, primary_key=True)
    season_id = Column(Integer, ForeignKey('seasons.id'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=False)
    used_at = Column(DateTime, default=func.now())

    __table_args__ = (UniqueConstraint('challenge_id'),)

class Match(Base):
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=True, unique=True)
    season_id = Column(Integer, ForeignKey('seasons.id'), nullable=False, index=True)
    player1_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    player2_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    match_type = Column(SQLEnum(MatchType), default=MatchType.CHALLENGE, nullable=False)
    match_date = Column(DateTime)
    location = Column(String(200))

    # Scores, up to three sets
    set1_player1_score = Column(Integer)
    set1_player2_score = Column(Integer)
    set2_player1_score = Column(Integer)
    set2_player2_score = Column(Integer)
    set3_player1_score = Column(Integer)
    set3_player2_score = Column(Integer)
    final_set_type = Column(SQLEnum(FinalSetType))

    # Outcome
    winner_id = Column(Integer, ForeignKey('users.id'))
    submitted_by_user_id = Column(Integer, ForeignKey('users.id'))

    # Disputes
    is_disputed = Column(Boolean, default=False, nullable=False)
    disputed_by_user_id = Column(Integer, ForeignKey('users.id'))
    dispute_resolved_by_admin_id = Column(Integer, ForeignKey('admins.id'))

    # Playoff bracket placement
    round_number = Column(Integer)
    bracket_position = Column(Integer)
    player1_seed = Column(Integer)
    player2_seed = Column(Integer)

    # Timestamps
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime)

    challenge = relationship("Challenge")

    @property
    def is_complete(self) -> bool:
        return self.winner_id is not None

    @property
    def sets(self) -> List[SetScore]:
        """Recorded sets in playing order"""
        raw = [
            (self.set1_player1_score, self.set1_player2_score),
            (self.set2_player1_score, self.set2_player2_score),
            (self.set3_player1_score, self.set3_player2_score),
        ]
        return [SetScore(p1, p2) for p1, p2 in raw if p1 is not None and p2 is not None]

    @property
    def loser_id(self) -> Optional[int]:
        if self.winner_id is None:
            return None
        return self.player2_id if self.winner_id == self.player1_id else self.player1_id

    def involves(self, user_id: int) -> bool:
        return user_id in (self.player1_id, self.player2_id)

    def apply_sets(self, sets: List[SetScore], final_set_type: Optional[FinalSetType] = None) -> None:
        """Overwrite all three set columns from a score list"""
        padded = list(sets) + [None] * (3 - len(sets))
        self.set1_player1_score, self.set1_player2_score = _split(padded[0])
        self.set2_player1_score, self.set2_player2_score = _split(padded[1])
        self.set3_player1_score, self.set3_player2_score = _split(padded[2])
        self.final_set_type = final_set_type if len(sets) == 3 else None

    def __repr__(self):
        return (f"<Match(id={self.id}, type={self.match_type.value if self.match_type else None}, "
                f"{self.player1_id} vs {self.player2_id}, winner={self.winner_id})>")

def _split(set_score: Optional[SetScore]):
    if set_score is None:
        return None, None
    return set_score.player1, set_score.player2

class PlayoffBracket(Base):
    __tablename__ = 'playoff_brackets'

    id = Column(Integer, primary_key=True)
    season_id = Column(Integer, ForeignKey('seasons.id'), nullable=False, unique=True)
    format = Column(SQLEnum(PlayoffFormat), nullable=False)
    # Whole bracket document; always reassigned, never mutated in place
    bracket_data = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<PlayoffBracket(season={self.season_id}, format={self.format.value})>"
