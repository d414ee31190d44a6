"""JSON payload builders shared by the remedy and story services."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from models.category import RemedyCategory
from models.location import Location
from models.profile import Profile
from models.remedy import (
    Remedy,
    RemedyBenefit,
    RemedyIngredient,
    RemedyStep,
    RemedyTestimonial,
    RemedyVerification,
)
from models.story import Story, StorySource, StoryVerification


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def review_status(is_verified: Optional[bool]) -> str:
    return "verified" if is_verified else "pending_review"


def category_payload(category: Optional[Any]) -> Optional[Dict[str, Any]]:
    if category is None:
        return None
    payload = {
        "id": category.id,
        "name": category.name,
        "icon": category.icon,
        "description": category.description,
    }
    if isinstance(category, RemedyCategory):
        payload["color"] = category.color
    return payload


def location_payload(location: Optional[Location]) -> Optional[Dict[str, Any]]:
    if location is None:
        return None
    return {
        "id": location.id,
        "name": location.name,
        "type": location.type,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "parent_id": location.parent_id,
    }


def author_payload(profile: Optional[Profile], include_bio: bool = False) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    payload = {
        "id": profile.id,
        "full_name": profile.full_name,
        "username": profile.username,
        "avatar_url": profile.avatar_url,
    }
    if include_bio:
        payload["bio"] = profile.bio
    return payload


def image_payload(image: Any) -> Dict[str, Any]:
    return {
        "id": image.id,
        "image_url": image.image_url,
        "caption": image.caption,
        "is_primary": bool(image.is_primary),
        "order_index": image.order_index,
    }


def primary_image_url(images: Sequence[Any]) -> Optional[str]:
    """Image flagged primary, else the first one."""
    if not images:
        return None
    for image in images:
        if image.is_primary:
            return image.image_url
    return images[0].image_url


def ingredient_payload(ingredient: RemedyIngredient) -> Dict[str, Any]:
    return {
        "id": ingredient.id,
        "name": ingredient.name,
        "amount": ingredient.amount,
        "unit": ingredient.unit,
        "notes": ingredient.notes,
        "is_main_ingredient": bool(ingredient.is_main_ingredient),
        "order_index": ingredient.order_index,
    }


def step_payload(step: RemedyStep) -> Dict[str, Any]:
    return {
        "id": step.id,
        "step_number": step.step_number,
        "instruction": step.instruction,
        "duration_minutes": step.duration_minutes,
        "tips": step.tips,
    }


def benefit_payload(benefit: RemedyBenefit) -> Dict[str, Any]:
    return {
        "id": benefit.id,
        "benefit": benefit.benefit,
        "category": benefit.category,
        "order_index": benefit.order_index,
    }


def testimonial_payload(testimonial: RemedyTestimonial) -> Dict[str, Any]:
    return {
        "id": testimonial.id,
        "remedy_id": testimonial.remedy_id,
        "user_id": testimonial.user_id,
        "name": testimonial.name,
        "location": testimonial.location,
        "testimonial": testimonial.testimonial,
        "rating": testimonial.rating,
        "usage_duration": testimonial.usage_duration,
        "health_condition": testimonial.health_condition,
        "results_experienced": testimonial.results_experienced,
        "would_recommend": bool(testimonial.would_recommend),
        "is_verified": bool(testimonial.is_verified),
        "review_status": review_status(testimonial.is_verified),
        "user": author_payload(testimonial.user),
        "created_at": _iso(testimonial.created_at),
        "updated_at": _iso(testimonial.updated_at),
    }


def remedy_verification_payload(verification: RemedyVerification) -> Dict[str, Any]:
    return {
        "id": verification.id,
        "remedy_id": verification.remedy_id,
        "user_id": verification.user_id,
        "verification_type": verification.verification_type,
        "evidence_text": verification.evidence_text,
        "evidence_url": verification.evidence_url,
        "confidence_level": verification.confidence_level,
        "is_positive": bool(verification.is_positive),
        "expertise_area": verification.expertise_area,
        "years_of_experience": verification.years_of_experience,
        "location_context": verification.location_context,
        "additional_notes": verification.additional_notes,
        "is_verified": bool(verification.is_verified),
        "review_status": review_status(verification.is_verified),
        "user": author_payload(verification.user),
        "created_at": _iso(verification.created_at),
        "updated_at": _iso(verification.updated_at),
    }


def story_verification_payload(verification: StoryVerification) -> Dict[str, Any]:
    return {
        "id": verification.id,
        "story_id": verification.story_id,
        "user_id": verification.user_id,
        "verification_type": verification.verification_type,
        "evidence_text": verification.evidence_text,
        "evidence_url": verification.evidence_url,
        "is_verified": bool(verification.is_verified),
        "review_status": review_status(verification.is_verified),
        "user": author_payload(verification.user),
        "created_at": _iso(verification.created_at),
    }


def source_payload(source: StorySource) -> Dict[str, Any]:
    return {
        "id": source.id,
        "source_type": source.source_type,
        "source_title": source.source_title,
        "source_author": source.source_author,
        "source_url": source.source_url,
        "source_description": source.source_description,
    }


def remedy_payload(remedy: Remedy, include_bio: bool = False) -> Dict[str, Any]:
    return {
        "id": remedy.id,
        "title": remedy.title,
        "subtitle": remedy.subtitle,
        "description": remedy.description,
        "summary": remedy.summary,
        "author_id": remedy.author_id,
        "category_id": remedy.category_id,
        "location_id": remedy.location_id,
        "region": remedy.region,
        "origin_story": remedy.origin_story,
        "preparation_time": remedy.preparation_time,
        "cooking_time": remedy.cooking_time,
        "servings": remedy.servings,
        "difficulty": remedy.difficulty,
        "safety_warnings": remedy.safety_warnings,
        "contraindications": remedy.contraindications,
        "featured": bool(remedy.featured),
        "status": remedy.status,
        "trust_level": int(remedy.trust_level or 0),
        "verification_count": int(remedy.verification_count or 0),
        "view_count": int(remedy.view_count or 0),
        "category": category_payload(remedy.category),
        "location": location_payload(remedy.location),
        "author": author_payload(remedy.author, include_bio=include_bio),
        "created_at": _iso(remedy.created_at),
        "updated_at": _iso(remedy.updated_at),
    }


def story_payload(story: Story) -> Dict[str, Any]:
    return {
        "id": story.id,
        "title": story.title,
        "content": story.content,
        "summary": story.summary,
        "author_id": story.author_id,
        "category_id": story.category_id,
        "location_id": story.location_id,
        "time_period": story.time_period,
        "historical_figures": list(story.historical_figures or []),
        "latitude": story.latitude,
        "longitude": story.longitude,
        "metadata": story.metadata_json if isinstance(story.metadata_json, dict) else {},
        "status": story.status,
        "trust_level": int(story.trust_level or 0),
        "verification_count": int(story.verification_count or 0),
        "view_count": int(story.view_count or 0),
        "category": category_payload(story.category),
        "location": location_payload(story.location),
        "author": author_payload(story.author),
        "created_at": _iso(story.created_at),
        "updated_at": _iso(story.updated_at),
    }

