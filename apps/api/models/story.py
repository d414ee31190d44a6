"""Story model and its child records."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Story(Base):
    """Crowdsourced historical story pinned to a place."""

    __tablename__ = "stories"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    author_id = Column(String, ForeignKey("profiles.id"), nullable=True, index=True)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True, index=True)
    location_id = Column(String, ForeignKey("locations.id"), nullable=True, index=True)
    time_period = Column(String, nullable=True)
    historical_figures = Column(JSON, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    status = Column(String, nullable=False, default="published", index=True)  # draft, published, under_review, archived
    trust_level = Column(Integer, nullable=False, default=0)
    verification_count = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    author = relationship("Profile", back_populates="stories")
    category = relationship("Category")
    location = relationship("Location")
    images = relationship("StoryImage", back_populates="story", order_by="StoryImage.order_index")
    sources = relationship("StorySource", back_populates="story", order_by="StorySource.created_at")
    verifications = relationship(
        "StoryVerification",
        back_populates="story",
        order_by="StoryVerification.created_at.desc()",
    )


class StoryImage(Base):
    __tablename__ = "story_images"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    story_id = Column(String, ForeignKey("stories.id"), nullable=False, index=True)
    image_url = Column(String, nullable=False)
    caption = Column(String, nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    story = relationship("Story", back_populates="images")


class StorySource(Base):
    __tablename__ = "story_sources"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    story_id = Column(String, ForeignKey("stories.id"), nullable=False, index=True)
    source_type = Column(String, nullable=False)
    source_title = Column(String, nullable=True)
    source_author = Column(String, nullable=True)
    source_url = Column(String, nullable=True)
    source_description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    story = relationship("Story", back_populates="sources")


class StoryVerification(Base):
    """Informal community attestation for a story."""

    __tablename__ = "story_verifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    story_id = Column(String, ForeignKey("stories.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    verification_type = Column(String, nullable=False)
    evidence_text = Column(Text, nullable=True)
    evidence_url = Column(String, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    story = relationship("Story", back_populates="verifications")
    user = relationship("Profile")
