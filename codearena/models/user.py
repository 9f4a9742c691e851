"""User model"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from sqlalchemy.orm import relationship

from codearena.core.clock import utcnow
from codearena.core.database import Base


class User(Base):
    """User model for authentication and authorization"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default="participant", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_login = Column(DateTime)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime)

    # Relationships
    submissions = relationship("Submission", back_populates="user")
    participations = relationship("ContestParticipant", back_populates="user")

    __table_args__ = (
        Index('idx_users_username', 'username'),
        Index('idx_users_role', 'role'),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
