"""Routers package."""

from . import (
    health,
    auth,
    remedies,
    remedy_categories,
    search,
    testimonials,
    remedy_verifications,
    stories,
    locations,
    moderation,
)
