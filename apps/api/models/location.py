"""Location model for named places on the map."""

import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, String
from sqlalchemy.sql import func

from database import Base


class Location(Base):
    """Named place (country down to landmark) with a point coordinate."""

    __tablename__ = "locations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)  # country, province, regency, city, district, village, landmark
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    parent_id = Column(String, ForeignKey("locations.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
