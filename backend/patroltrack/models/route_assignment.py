"""
Modèle SQLAlchemy pour les affectations de rondes aux agents.

Cycle de vie : assigned → in_progress → completed | cancelled.
completed et cancelled sont terminaux.

Les deux index uniques partiels garantissent au niveau PostgreSQL :
- une seule affectation active (assigned / in_progress) par ronde
- pas de doublon (agent, ronde) parmi les affectations actives
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import ARRAY, UUID

from patroltrack.database import Base

STATUS_ASSIGNED = "assigned"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

ACTIVE_STATUSES = (STATUS_ASSIGNED, STATUS_IN_PROGRESS)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

_ACTIVE_WHERE = text("is_active AND status IN ('assigned', 'in_progress')")


class RouteAssignment(Base):
    """Liaison d'une ronde à un agent pour un cycle de patrouille."""
    __tablename__ = "route_assignments"
    __table_args__ = (
        Index("idx_route_assignments_active_route", "route_id", unique=True, postgresql_where=_ACTIVE_WHERE),
        Index(
            "idx_route_assignments_active_user_route",
            "user_id", "route_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    route_id = Column(UUID(as_uuid=True), ForeignKey("routes.id"), nullable=False)
    police_station_id = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default=STATUS_ASSIGNED)
    start_date = Column(DateTime(timezone=True), nullable=True)  # Affectation, puis début effectif
    end_date = Column(DateTime(timezone=True), nullable=True)    # NULL tant que non terminale
    # Ensemble des checkpoints scannés (ordre d'arrivée, sans doublon)
    completed_checkpoints = Column(ARRAY(UUID(as_uuid=True)), nullable=False, default=list)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)  # Suppression logique

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
