"""Profile model for contributors and reviewers."""

from sqlalchemy import Column, String, DateTime, Integer, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Profile(Base):
    """Author/reviewer identity, keyed by the auth provider's user id."""

    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    username = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    locale = Column(String, nullable=True)
    contribution_count = Column(Integer, nullable=False, default=0)
    verification_count = Column(Integer, nullable=False, default=0)
    trust_score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    stories = relationship("Story", back_populates="author")
    remedies = relationship("Remedy", back_populates="author")
