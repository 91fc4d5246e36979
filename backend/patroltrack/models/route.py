"""
Modèle SQLAlchemy pour les rondes (suite ordonnée de checkpoints).
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, UUID

from patroltrack.database import Base

VALID_PRIORITIES = ("low", "medium", "high", "urgent")


class Route(Base):
    __tablename__ = "routes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Ordre de passage prescrit ; l'appartenance n'est pas revalidée si un checkpoint est désactivé ensuite
    checkpoint_ids = Column(ARRAY(UUID(as_uuid=True)), nullable=False, default=list)
    police_station_id = Column(Integer, nullable=False)
    priority = Column(String(10), nullable=False, default="medium")  # low, medium, high, urgent
    estimated_duration = Column(Integer, nullable=True)  # Minutes (0–1440)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def total_checkpoints(self) -> int:
        return len(self.checkpoint_ids or [])
