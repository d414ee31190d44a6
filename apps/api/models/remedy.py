"""Remedy model and its ordered child collections."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Remedy(Base):
    """Traditional remedy recipe."""

    __tablename__ = "remedies"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    subtitle = Column(String, nullable=True)
    description = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    author_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    category_id = Column(String, ForeignKey("remedy_categories.id"), nullable=False, index=True)
    location_id = Column(String, ForeignKey("locations.id"), nullable=True)
    region = Column(String, nullable=True, index=True)
    origin_story = Column(Text, nullable=True)
    preparation_time = Column(Integer, nullable=True)  # minutes
    cooking_time = Column(Integer, nullable=True)  # minutes
    servings = Column(Integer, nullable=True)
    difficulty = Column(String, nullable=False, default="Sedang")
    safety_warnings = Column(Text, nullable=True)
    contraindications = Column(Text, nullable=True)
    featured = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default="published", index=True)  # draft, published, under_review, archived
    trust_level = Column(Integer, nullable=False, default=0)
    verification_count = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    author = relationship("Profile", back_populates="remedies")
    category = relationship("RemedyCategory")
    location = relationship("Location")
    ingredients = relationship("RemedyIngredient", back_populates="remedy", order_by="RemedyIngredient.order_index")
    steps = relationship("RemedyStep", back_populates="remedy", order_by="RemedyStep.step_number")
    benefits = relationship("RemedyBenefit", back_populates="remedy", order_by="RemedyBenefit.order_index")
    images = relationship("RemedyImage", back_populates="remedy", order_by="RemedyImage.order_index")
    testimonials = relationship(
        "RemedyTestimonial",
        back_populates="remedy",
        order_by="RemedyTestimonial.created_at.desc()",
    )
    verifications = relationship(
        "RemedyVerification",
        back_populates="remedy",
        order_by="RemedyVerification.created_at.desc()",
    )


class RemedyIngredient(Base):
    __tablename__ = "remedy_ingredients"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    remedy_id = Column(String, ForeignKey("remedies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    amount = Column(String, nullable=True)
    unit = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    is_main_ingredient = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False)

    remedy = relationship("Remedy", back_populates="ingredients")


class RemedyStep(Base):
    __tablename__ = "remedy_steps"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    remedy_id = Column(String, ForeignKey("remedies.id"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    instruction = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    tips = Column(Text, nullable=True)

    remedy = relationship("Remedy", back_populates="steps")


class RemedyBenefit(Base):
    __tablename__ = "remedy_benefits"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    remedy_id = Column(String, ForeignKey("remedies.id"), nullable=False, index=True)
    benefit = Column(String, nullable=False)
    category = Column(String, nullable=True)
    order_index = Column(Integer, nullable=False)

    remedy = relationship("Remedy", back_populates="benefits")


class RemedyImage(Base):
    __tablename__ = "remedy_images"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    remedy_id = Column(String, ForeignKey("remedies.id"), nullable=False, index=True)
    image_url = Column(String, nullable=False)
    caption = Column(String, nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False)

    remedy = relationship("Remedy", back_populates="images")


class RemedyTestimonial(Base):
    """User review of a remedy; unique per (user, remedy)."""

    __tablename__ = "remedy_testimonials"
    __table_args__ = (UniqueConstraint("user_id", "remedy_id", name="uq_testimonial_user_remedy"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    remedy_id = Column(String, ForeignKey("remedies.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    name = Column(String, nullable=True)
    location = Column(String, nullable=True)
    testimonial = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    usage_duration = Column(String, nullable=True)
    health_condition = Column(String, nullable=True)
    results_experienced = Column(Text, nullable=True)
    would_recommend = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    remedy = relationship("Remedy", back_populates="testimonials")
    user = relationship("Profile")


class RemedyVerification(Base):
    """Typed attestation for a remedy; unique per (user, remedy, type)."""

    __tablename__ = "remedy_verifications"
    __table_args__ = (
        UniqueConstraint("user_id", "remedy_id", "verification_type", name="uq_verification_user_remedy_type"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    remedy_id = Column(String, ForeignKey("remedies.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    verification_type = Column(String, nullable=False)
    evidence_text = Column(Text, nullable=False)
    evidence_url = Column(String, nullable=True)
    confidence_level = Column(Integer, nullable=True)
    is_positive = Column(Boolean, nullable=False, default=True)
    expertise_area = Column(String, nullable=True)
    years_of_experience = Column(Integer, nullable=True)
    location_context = Column(String, nullable=True)
    additional_notes = Column(Text, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    remedy = relationship("Remedy", back_populates="verifications")
    user = relationship("Profile")
