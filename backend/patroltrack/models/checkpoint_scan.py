"""
Modèle SQLAlchemy pour les scans de checkpoints.

Journal d'audit append-only : une ligne par scan accepté, jamais modifiée
ni supprimée.
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from patroltrack.database import Base


class CheckpointScan(Base):
    __tablename__ = "checkpoint_scans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    checkpoint_id = Column(UUID(as_uuid=True), ForeignKey("checkpoints.id"), nullable=False)
    route_id = Column(UUID(as_uuid=True), ForeignKey("routes.id"), nullable=False)
    route_assignment_id = Column(UUID(as_uuid=True), ForeignKey("route_assignments.id"), nullable=False)

    scan_time = Column(DateTime(timezone=True), nullable=False)
    user_lat_long = Column(String(64), nullable=False)  # Position de l'agent au moment du scan
    distance = Column(Float, nullable=True)             # Mètres depuis le centre du checkpoint
    notes = Column(Text, nullable=True)

    images = Column(JSONB, default=list)   # URIs S3
    videos = Column(JSONB, default=list)
    audios = Column(JSONB, default=list)
    metadata_ = Column("metadata", JSONB, default=dict)  # "metadata" est réservé par SQLAlchemy

    is_valid = Column(Boolean, default=True)  # distance ≤ rayon au moment du scan
    created_at = Column(DateTime, server_default=func.now())
