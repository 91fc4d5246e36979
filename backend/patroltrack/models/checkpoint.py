"""
Modèle SQLAlchemy pour les checkpoints (points de contrôle géolocalisés).

Les coordonnées sont stockées sous forme d'une chaîne "lat,lng" (lat_long)
mais manipulées partout ailleurs comme un GeoPoint.
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from patroltrack.database import Base
from patroltrack.services.geo import GeoPoint, parse_lat_long


class Checkpoint(Base):
    """Point de contrôle identifié par un QR code et protégé par une géofence."""
    __tablename__ = "checkpoints"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    lat_long = Column(String(64), nullable=False)          # Ex: "19.110273,74.546165"
    address = Column(String(500), nullable=True)
    scan_radius = Column(Integer, nullable=False, default=100)  # Mètres
    qr_code = Column(String(64), unique=True, nullable=False)   # Ex: "CP_1718000000000_9F3A01BC"
    qr_code_url = Column(Text, nullable=True)              # Data URL PNG
    police_station_id = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)              # Suppression logique

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def coordinates(self) -> GeoPoint:
        """Centre de la géofence."""
        return parse_lat_long(self.lat_long)
