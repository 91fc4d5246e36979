"""
Routers pour les affectations de rondes aux agents.

Cycle de vie : affectation → démarrage → (scans) → clôture ou annulation.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from patroltrack.database import get_db
from patroltrack.exceptions import PatrolError
from patroltrack.schemas.route_assignment import (
    AssignmentCancel,
    AssignmentComplete,
    AssignmentCreate,
    AssignmentProgress,
    AssignmentResponse,
    AssignmentStart,
    UserAssignmentsOverview,
)
from patroltrack.services import assignment_service, progress_service

# /api/v1/assignments
router = APIRouter(prefix="/api/v1/assignments", tags=["Affectations"])

# /api/v1/users/{user_id}/assignments
users_router = APIRouter(prefix="/api/v1/users", tags=["Affectations"])


@router.post("", response_model=AssignmentResponse, status_code=201, summary="Affecter une ronde")
def assign_route(data: AssignmentCreate, db: Session = Depends(get_db)):
    """
    Affecte une ronde active à un agent (statut assigned).

    Retourne 409 si la ronde est déjà détenue par un autre agent ou par celui-ci,
    400 si l'agent a atteint sa limite de rondes actives.
    """
    try:
        return assignment_service.assign_route(db, data.user_id, data.route_id, data.police_station_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{assignment_id}/start", response_model=AssignmentResponse, summary="Démarrer une ronde")
def start_route(assignment_id: uuid.UUID, data: AssignmentStart = None, db: Session = Depends(get_db)):
    """assigned → in_progress. La date de début devient l'heure de démarrage effectif."""
    notes = data.notes if data else None
    try:
        return assignment_service.start_route(db, assignment_id, notes)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{assignment_id}/complete", response_model=AssignmentResponse, summary="Terminer une ronde")
def complete_route(assignment_id: uuid.UUID, data: AssignmentComplete = None, db: Session = Depends(get_db)):
    """
    Termine la ronde. S'il reste des checkpoints à scanner, la requête est
    refusée sauf avec force_complete=true (clôture administrative).
    """
    data = data or AssignmentComplete()
    try:
        return assignment_service.complete_route(db, assignment_id, data.force_complete, data.notes)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{assignment_id}/cancel", response_model=AssignmentResponse, summary="Annuler une affectation")
def cancel_assignment(assignment_id: uuid.UUID, data: AssignmentCancel = None, db: Session = Depends(get_db)):
    data = data or AssignmentCancel()
    try:
        return assignment_service.cancel_assignment(db, assignment_id, data.reason, data.notes)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete("/{assignment_id}", status_code=204, summary="Supprimer une affectation")
def delete_assignment(assignment_id: uuid.UUID, db: Session = Depends(get_db)):
    """Suppression logique. Une affectation en cours doit d'abord être annulée."""
    try:
        assignment_service.delete_assignment(db, assignment_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{assignment_id}/progress",
    response_model=AssignmentProgress,
    summary="Progression d'une affectation",
)
def get_assignment_progress(assignment_id: uuid.UUID, db: Session = Depends(get_db)):
    """Checkpoints dans l'ordre de la ronde, prochain checkpoint et actions possibles."""
    try:
        return progress_service.get_assignment_progress(db, assignment_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@users_router.get(
    "/{user_id}/assignments",
    response_model=UserAssignmentsOverview,
    summary="Affectations d'un agent",
)
def get_user_assignments(user_id: uuid.UUID, active_only: bool = False, db: Session = Depends(get_db)):
    """Affectations de l'agent avec progression, compteurs par statut et places restantes."""
    return progress_service.get_user_assignments_overview(db, user_id, active_only=active_only)
