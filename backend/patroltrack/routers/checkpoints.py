"""
Router pour les checkpoints (points de contrôle géolocalisés).
CRUD administrateur et récupération du QR code à imprimer.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from patroltrack.database import get_db
from patroltrack.exceptions import PatrolError
from patroltrack.schemas.checkpoint import (
    CheckpointCreate,
    CheckpointQrResponse,
    CheckpointResponse,
    CheckpointUpdate,
)
from patroltrack.services import checkpoint_service

router = APIRouter(prefix="/api/v1/checkpoints", tags=["Checkpoints"])


@router.post("", response_model=CheckpointResponse, status_code=201, summary="Créer un checkpoint")
def create_checkpoint(data: CheckpointCreate, db: Session = Depends(get_db)):
    """
    Crée un checkpoint actif et génère son QR code.
    Le rayon de scan vaut 100 m s'il n'est pas précisé.
    """
    try:
        return checkpoint_service.create_checkpoint(db, data)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/{checkpoint_id}", response_model=CheckpointResponse, summary="Détail d'un checkpoint")
def get_checkpoint(checkpoint_id: uuid.UUID, db: Session = Depends(get_db)):
    try:
        checkpoint = checkpoint_service.get_checkpoint(db, checkpoint_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return checkpoint_service.to_response(checkpoint)


@router.put("/{checkpoint_id}", response_model=CheckpointResponse, summary="Modifier un checkpoint")
def update_checkpoint(checkpoint_id: uuid.UUID, data: CheckpointUpdate, db: Session = Depends(get_db)):
    """
    Met à jour les champs fournis.
    L'identifiant du QR code ne change pas : les QR déjà imprimés restent valides.
    """
    try:
        return checkpoint_service.update_checkpoint(db, checkpoint_id, data)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete("/{checkpoint_id}", status_code=204, summary="Désactiver un checkpoint")
def delete_checkpoint(checkpoint_id: uuid.UUID, db: Session = Depends(get_db)):
    """Suppression logique : le checkpoint n'est plus scannable."""
    try:
        checkpoint_service.delete_checkpoint(db, checkpoint_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{checkpoint_id}/qr-code",
    response_model=CheckpointQrResponse,
    summary="QR code d'un checkpoint",
)
def get_checkpoint_qr(checkpoint_id: uuid.UUID, db: Session = Depends(get_db)):
    """Retourne le contenu JSON encodé dans le QR code et son image PNG (data URL)."""
    try:
        return checkpoint_service.get_checkpoint_qr(db, checkpoint_id)
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
