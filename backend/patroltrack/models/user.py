"""
Modèle SQLAlchemy pour les agents de patrouille.
Version minimale, l'authentification est gérée par un service externe.
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from patroltrack.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(30), unique=True, nullable=True)
    full_name = Column(String(200), nullable=True)
    rank = Column(String(50), nullable=True)
    role = Column(String(50), nullable=False, default="OFFICER")  # OFFICER, SUPERVISOR, ADMIN
    police_station_id = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def display_name(self) -> str:
        return self.username or f"User_{self.id}"
