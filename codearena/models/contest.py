"""Contest and participant models"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from codearena.core.clock import utcnow
from codearena.core.database import Base


class Contest(Base):
    """Contest window. Lifecycle status is derived from the clock, never stored."""

    __tablename__ = "contests"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    max_participants = Column(Integer, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    problems = relationship("Problem", back_populates="contest", order_by="Problem.id")
    participants = relationship("ContestParticipant", back_populates="contest", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_contests_start_time', 'start_time'),
        CheckConstraint('end_time > start_time', name='chk_contest_window'),
    )

    def status_at(self, now: Optional[datetime] = None) -> str:
        """upcoming | active | ended"""
        now = now or utcnow()
        if now < self.start_time:
            return "upcoming"
        if now > self.end_time:
            return "ended"
        return "active"

    def __repr__(self):
        return f"<Contest(id={self.id}, title='{self.title}')>"


class ContestParticipant(Base):
    """
    Per-user, per-contest running aggregate.

    ``score`` and ``problems_solved`` are only ever changed by atomic
    increments from the scoring engine or by an explicit admin
    re-aggregation; ``rank`` is written by the leaderboard service.
    """

    __tablename__ = "contest_participants"

    id = Column(Integer, primary_key=True, index=True)
    contest_id = Column(Integer, ForeignKey("contests.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    score = Column(Integer, default=0, nullable=False)
    problems_solved = Column(Integer, default=0, nullable=False)
    rank = Column(Integer, default=0, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    contest = relationship("Contest", back_populates="participants")
    user = relationship("User", back_populates="participations")

    __table_args__ = (
        UniqueConstraint('contest_id', 'user_id', name='uq_contest_participant'),
        Index('idx_participants_contest_score', 'contest_id', 'score'),
        CheckConstraint('score >= 0', name='chk_participant_score'),
        CheckConstraint('problems_solved >= 0', name='chk_participant_solved'),
    )

    def __repr__(self):
        return (
            f"<ContestParticipant(contest_id={self.contest_id}, user_id={self.user_id}, "
            f"score={self.score}, rank={self.rank})>"
        )
