from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, JSON,
    ForeignKey, Float, BigInteger, Enum as SQLEnum, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict

from ladder.config import Config

Base = declarative_base()

class PlayerLevel(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    PROFESSIONAL = "professional"

    @property
    def order(self) -> int:
        """1-based position of the level, beginner lowest"""
        return LEVEL_ORDER[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()

LEVEL_ORDER = {
    PlayerLevel.BEGINNER: 1,
    PlayerLevel.INTERMEDIATE: 2,
    PlayerLevel.ADVANCED: 3,
    PlayerLevel.PROFESSIONAL: 4,
}

class Gender(Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

class ChallengeStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    AWAITING_VALIDATION = "awaiting_validation"
    COMPLETED = "completed"

# Statuses that block a second challenge between the same pair
LIVE_CHALLENGE_STATUSES = (
    ChallengeStatus.PENDING,
    ChallengeStatus.ACCEPTED,
    ChallengeStatus.AWAITING_VALIDATION,
)

class MatchStatus(Enum):
    """Status of a reported result on its way to settlement"""
    PENDING_VALIDATION = "pending_validation"  # Filed, waiting on the designated loser
    VALIDATED = "validated"                    # Confirmed or auto-validated, points settled
    DISPUTED = "disputed"                      # Loser rejected the result, needs an admin
    REJECTED = "rejected"                      # Voided by an admin

class PointsChangeReason(Enum):
    MATCH_WIN = "match_win"
    MATCH_LOSS = "match_loss"
    DECLINE_PENALTY = "decline_penalty"
    DECLINE_COMPENSATION = "decline_compensation"

class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    discord_id = Column(BigInteger, unique=True, nullable=True, index=True)
    name = Column(String(100), nullable=False)

    # Profile data used for ranking categories
    gender = Column(SQLEnum(Gender), nullable=False, default=Gender.OTHER)
    region = Column(String(100), nullable=False, default='')
    level = Column(SQLEnum(PlayerLevel), nullable=False, default=PlayerLevel.BEGINNER)

    # Authoritative score and record
    points = Column(Integer, nullable=False, default=1000)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    win_streak = Column(Integer, nullable=False, default=0)
    best_streak = Column(Integer, nullable=False, default=0)

    # Ladder positions, derived from points by the ranking recompute
    ranking_general = Column(Integer, nullable=True)
    ranking_by_gender = Column(Integer, nullable=True)
    ranking_by_region = Column(Integer, nullable=True)
    ranking_by_level = Column(Integer, nullable=True)

    # Provisional phase
    provisional = Column(Boolean, nullable=False, default=True)
    provisional_matches_played = Column(Integer, nullable=False, default=0)

    # Anti-abuse counters
    active_challenge_count = Column(Integer, nullable=False, default=0)
    monthly_decline_count = Column(Integer, nullable=False, default=0)
    decline_counter_month = Column(String(7), nullable=True)  # "YYYY-MM"

    # Metadata
    registered_at = Column(DateTime, default=func.now())
    last_active = Column(DateTime, default=func.now())
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint('points >= 0', name='ck_players_points_non_negative'),
        CheckConstraint('active_challenge_count >= 0', name='ck_players_active_challenges_non_negative'),
    )

    points_history = relationship(
        "PointsHistory", back_populates="player",
        cascade="all, delete-orphan", foreign_keys="PointsHistory.player_id"
    )

    @property
    def matches_played(self) -> int:
        return (self.wins or 0) + (self.losses or 0)

    @property
    def win_rate(self) -> float:
        if self.matches_played == 0:
            return 0.0
        return (self.wins / self.matches_played) * 100

    def ranking_snapshot(self) -> Dict[str, Optional[int]]:
        """Audit snapshot of position and points, stored on matches"""
        return {'ranking': self.ranking_general, 'points': self.points}

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.name}', points={self.points}, level={self.level.value if self.level else None})>"

class Challenge(Base):
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True)
    challenger_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    challenged_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    status = Column(SQLEnum(ChallengeStatus), nullable=False, default=ChallengeStatus.PENDING, index=True)

    message = Column(Text)
    proposed_date = Column(DateTime)

    # Standing of both players when the challenge was issued
    challenger_ranking = Column(Integer)
    challenged_ranking = Column(Integer)

    # Timestamps
    created_at = Column(DateTime, default=func.now())
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime)
    match_deadline = Column(DateTime)
    responded_at = Column(DateTime)
    completed_at = Column(DateTime)

    challenger = relationship("Player", foreign_keys=[challenger_id])
    challenged = relationship("Player", foreign_keys=[challenged_id])
    match = relationship("Match", back_populates="challenge", uselist=False)

    @classmethod
    def open(cls, challenger: Player, challenged: Player, now: datetime,
             message: Optional[str] = None, proposed_date: Optional[datetime] = None) -> 'Challenge':
        """Build a pending challenge with its expiry derived from the creation time"""
        return cls(
            challenger_id=challenger.id,
            challenged_id=challenged.id,
            status=ChallengeStatus.PENDING,
            message=message,
            proposed_date=proposed_date,
            challenger_ranking=challenger.ranking_general,
            challenged_ranking=challenged.ranking_general,
            created_at=now,
            expires_at=now + timedelta(hours=Config.CHALLENGE_EXPIRY_HOURS),
        )

    @staticmethod
    def acceptance_values(now: datetime) -> dict:
        """Column values for the pending -> accepted transition"""
        return {
            'status': ChallengeStatus.ACCEPTED,
            'accepted_at': now,
            'responded_at': now,
            'match_deadline': now + timedelta(days=Config.MATCH_DEADLINE_DAYS),
        }

    @staticmethod
    def decline_values(now: datetime) -> dict:
        """Column values for the pending -> declined transition"""
        return {
            'status': ChallengeStatus.DECLINED,
            'responded_at': now,
        }

    def involves(self, player_id: int) -> bool:
        return player_id in (self.challenger_id, self.challenged_id)

    def opponent_of(self, player_id: int) -> int:
        return self.challenged_id if player_id == self.challenger_id else self.challenger_id

    def __repr__(self):
        return f"<Challenge(id={self.id}, challenger={self.challenger_id}, challenged={self.challenged_id}, status={self.status.value})>"

class Match(Base):
    """
    Result reported against an accepted challenge.

    Points are only settled once the designated loser confirms the result
    or the validation deadline passes unanswered.
    """
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=False, unique=True)

    player1_id = Column(Integer, ForeignKey('players.id'), nullable=False)  # Challenger
    player2_id = Column(Integer, ForeignKey('players.id'), nullable=False)  # Challenged
    winner_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    loser_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    reported_by_id = Column(Integer, ForeignKey('players.id'), nullable=False)

    # Result details
    score = Column(String(100), nullable=False)
    sets = Column(JSON)  # [[6, 4], [3, 6], [7, 6]] from the reporter's score string
    match_date = Column(DateTime)
    location = Column(String(200))
    duration_minutes = Column(Integer)
    notes = Column(Text)

    # Validation workflow
    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING_VALIDATION, index=True)
    validation_deadline = Column(DateTime, nullable=False, index=True)
    validated_by_id = Column(Integer, ForeignKey('players.id'), nullable=True)  # Null when auto-validated
    validated_at = Column(DateTime)
    auto_validated = Column(Boolean, nullable=False, default=False)
    dispute_reason = Column(Text)
    disputed_at = Column(DateTime)

    # Settlement audit
    points_winner = Column(Integer)
    points_loser = Column(Integer)
    points_multiplier = Column(Float)
    ranking_before = Column(JSON)  # {"player1": {"ranking": 3, "points": 1040}, "player2": {...}}
    ranking_after = Column(JSON)

    created_at = Column(DateTime, default=func.now())

    challenge = relationship("Challenge", back_populates="match")
    player1 = relationship("Player", foreign_keys=[player1_id])
    player2 = relationship("Player", foreign_keys=[player2_id])
    winner = relationship("Player", foreign_keys=[winner_id])
    loser = relationship("Player", foreign_keys=[loser_id])
    reported_by = relationship("Player", foreign_keys=[reported_by_id])

    @classmethod
    def file_result(cls, challenge: Challenge, reporter_id: int, winner_id: int,
                    score: str, now: datetime, **details) -> 'Match':
        """Build a pending-validation match; the loser is whichever player did not win"""
        loser_id = challenge.opponent_of(winner_id)
        return cls(
            challenge_id=challenge.id,
            player1_id=challenge.challenger_id,
            player2_id=challenge.challenged_id,
            winner_id=winner_id,
            loser_id=loser_id,
            reported_by_id=reporter_id,
            score=score,
            status=MatchStatus.PENDING_VALIDATION,
            created_at=now,
            validation_deadline=now + timedelta(hours=Config.VALIDATION_WINDOW_HOURS),
            **details
        )

    @property
    def points_awarded(self) -> Optional[Dict[str, object]]:
        if self.points_winner is None:
            return None
        return {
            'winner': self.points_winner,
            'loser': self.points_loser,
            'multiplier': self.points_multiplier,
        }

    def validation_expired(self, now: datetime) -> bool:
        return self.validation_deadline < now

    def __repr__(self):
        return f"<Match(id={self.id}, challenge={self.challenge_id}, winner={self.winner_id}, status={self.status.value})>"

class PointsHistory(Base):
    __tablename__ = 'points_history'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)

    old_points = Column(Integer, nullable=False)
    new_points = Column(Integer, nullable=False)
    points_change = Column(Integer, nullable=False)
    reason = Column(SQLEnum(PointsChangeReason), nullable=False)

    # Context: a settled match or a declined challenge
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=True)
    opponent_id = Column(Integer, ForeignKey('players.id'))
    multiplier = Column(Float, nullable=False, default=1.0)

    recorded_at = Column(DateTime, default=func.now())

    player = relationship("Player", foreign_keys=[player_id], back_populates="points_history")
    opponent = relationship("Player", foreign_keys=[opponent_id])
    match = relationship("Match")
    challenge = relationship("Challenge")

    def __repr__(self):
        return f"<PointsHistory(player_id={self.player_id}, change={self.points_change}, new_points={self.new_points})>"

class ActivityType(Enum):
    CHALLENGE_CREATED = "challenge_created"
    CHALLENGE_ACCEPTED = "challenge_accepted"
    CHALLENGE_DECLINED = "challenge_declined"
    MATCH_COMPLETED = "match_completed"
    PLAYER_JOINED = "player_joined"

class Activity(Base):
    """Public feed entry, written in the same transaction as the event it describes"""
    __tablename__ = 'activities'

    id = Column(Integer, primary_key=True)
    type = Column(SQLEnum(ActivityType), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)

    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    opponent_id = Column(Integer, ForeignKey('players.id'), nullable=True, index=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=True)
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=func.now(), index=True)

    player = relationship("Player", foreign_keys=[player_id])
    opponent = relationship("Player", foreign_keys=[opponent_id])

    def __repr__(self):
        return f"<Activity(id={self.id}, type={self.type.value}, player={self.player_id})>"
