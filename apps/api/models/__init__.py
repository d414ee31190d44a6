"""Models package."""

from .profile import Profile
from .location import Location
from .category import Category, RemedyCategory
from .story import Story, StoryImage, StorySource, StoryVerification
from .remedy import (
    Remedy,
    RemedyIngredient,
    RemedyStep,
    RemedyBenefit,
    RemedyImage,
    RemedyTestimonial,
    RemedyVerification,
)
