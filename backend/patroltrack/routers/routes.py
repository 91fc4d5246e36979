"""
Router pour les rondes (suites ordonnées de checkpoints).
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from patroltrack.database import get_db
from patroltrack.exceptions import PatrolError
from patroltrack.schemas.route import (
    CheckpointIdsValidation,
    CheckpointIdsValidationRequest,
    RouteCreate,
    RouteResponse,
    RouteUpdate,
)
from patroltrack.schemas.route_assignment import RouteAvailability
from patroltrack.services import progress_service, route_service

router = APIRouter(prefix="/api/v1/routes", tags=["Rondes"])


@router.post("", response_model=RouteResponse, status_code=201, summary="Créer une ronde")
def create_route(data: RouteCreate, db: Session = Depends(get_db)):
    """
    Crée une ronde à partir d'une liste ordonnée de 1 à 50 checkpoints actifs.
    Le nom doit être unique parmi les rondes actives du commissariat.
    """
    try:
        return route_service.create_route(db, data)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/validate-checkpoints",
    response_model=CheckpointIdsValidation,
    summary="Valider une liste de checkpoints",
)
def validate_checkpoints(data: CheckpointIdsValidationRequest, db: Session = Depends(get_db)):
    """Contrôle à blanc d'une liste de checkpoints avant création d'une ronde."""
    return route_service.validate_checkpoint_ids(db, data.checkpoint_ids)


@router.get("/{route_id}", response_model=RouteResponse, summary="Détail d'une ronde")
def get_route(route_id: uuid.UUID, db: Session = Depends(get_db)):
    try:
        route = route_service.get_route(db, route_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return route_service.to_response(route)


@router.put("/{route_id}", response_model=RouteResponse, summary="Modifier une ronde")
def update_route(route_id: uuid.UUID, data: RouteUpdate, db: Session = Depends(get_db)):
    """Seuls les champs fournis sont modifiés ; une nouvelle liste de checkpoints est revalidée."""
    try:
        return route_service.update_route(db, route_id, data)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete("/{route_id}", status_code=204, summary="Désactiver une ronde")
def delete_route(route_id: uuid.UUID, db: Session = Depends(get_db)):
    """Suppression logique : la ronde ne peut plus être affectée."""
    try:
        route_service.delete_route(db, route_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{route_id}/availability",
    response_model=RouteAvailability,
    summary="Disponibilité d'une ronde",
)
def check_route_availability(route_id: uuid.UUID, db: Session = Depends(get_db)):
    """Indique si la ronde peut être affectée et, sinon, à quel agent elle l'est déjà."""
    try:
        return progress_service.check_route_availability(db, route_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
