"""
Schémas Pydantic pour les affectations de rondes et leur progression.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator


class AssignmentCreate(BaseModel):
    """Corps de requête pour affecter une ronde à un agent."""
    user_id: uuid.UUID
    route_id: uuid.UUID
    police_station_id: Optional[int] = None


class AssignmentStart(BaseModel):
    notes: Optional[str] = None


class AssignmentComplete(BaseModel):
    force_complete: bool = False  # Clôture administrative malgré des checkpoints non scannés
    notes: Optional[str] = None


class AssignmentCancel(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class AssignmentResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    route_id: uuid.UUID
    police_station_id: Optional[int]
    status: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    completed_checkpoints: List[uuid.UUID]
    notes: Optional[str]
    is_active: bool

    model_config = {"from_attributes": True}


class CheckpointProgressItem(BaseModel):
    """Statut d'un checkpoint dans la ronde, dans l'ordre prescrit."""
    id: uuid.UUID
    order: int
    name: Optional[str] = None      # None si le checkpoint a disparu de la base
    lat_long: Optional[str] = None
    scan_radius: Optional[int] = None
    is_active: Optional[bool] = None
    is_completed: bool
    is_pending: bool
    is_next: bool


class ProgressSummary(BaseModel):
    total: int
    completed: int
    pending: int
    percentage: int
    remaining_checkpoint_ids: List[uuid.UUID]
    next_checkpoint_id: Optional[uuid.UUID] = None
    last_completed_id: Optional[uuid.UUID] = None


class AssignmentActions(BaseModel):
    can_start: bool
    can_scan_checkpoint: bool
    can_complete: bool
    can_cancel: bool
    recommended_action: str  # start_route, scan_next_checkpoint, complete_route, none


class AssignmentProgress(BaseModel):
    """Vue de lecture d'une affectation : ronde + checkpoints + actions possibles."""
    assignment: AssignmentResponse
    route_name: Optional[str]
    priority: Optional[str]
    checkpoints: List[CheckpointProgressItem]
    progress: ProgressSummary
    actions: AssignmentActions


class AssignmentCounts(BaseModel):
    total: int
    active: int
    assigned: int
    in_progress: int
    completed: int
    cancelled: int


class AssignmentCapacity(BaseModel):
    max_allowed: int
    active: int
    remaining_slots: int


class UserAssignmentsOverview(BaseModel):
    user_id: uuid.UUID
    assignments: List[AssignmentProgress]
    counts: AssignmentCounts
    capacity: AssignmentCapacity


class RouteHolder(BaseModel):
    """Affectation active qui occupe actuellement une ronde."""
    assignment_id: uuid.UUID
    user_id: uuid.UUID
    username: Optional[str]
    status: str
    assigned_at: Optional[datetime]


class RouteAvailability(BaseModel):
    route_id: uuid.UUID
    route_name: str
    is_active: bool
    is_available: bool
    current_assignment: Optional[RouteHolder] = None
