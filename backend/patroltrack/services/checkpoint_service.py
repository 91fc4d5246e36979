"""
Service métier pour les checkpoints.
Création, mise à jour et suppression logique par un administrateur,
et lecture pour le scan et la progression des rondes.
"""

import uuid
import logging
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from patroltrack.config import settings
from patroltrack.database import transaction
from patroltrack.exceptions import CheckpointNotFoundError
from patroltrack.models.checkpoint import Checkpoint
from patroltrack.schemas.checkpoint import (
    CheckpointCreate,
    CheckpointQrResponse,
    CheckpointResponse,
    CheckpointUpdate,
)
from patroltrack.services import qr_service

logger = logging.getLogger(__name__)

# Champs dont la modification impose de régénérer l'image du QR code
QR_RELEVANT_FIELDS = {"name", "lat_long", "police_station_id"}

# Champs qu'une mise à jour peut remettre à NULL
NULLABLE_FIELDS = {"description", "address"}


def create_checkpoint(db: Session, data: CheckpointCreate) -> CheckpointResponse:
    """
    Crée un checkpoint actif et génère son QR code.

    Le QR code encode l'identifiant unique (CP_...), le nom, les coordonnées
    et le commissariat. Le rayon de scan prend la valeur par défaut de la
    configuration s'il n'est pas fourni.
    """
    qr_code = qr_service.generate_qr_code_id()
    qr_data = qr_service.encode_checkpoint_payload(
        qr_code, data.name, data.lat_long, data.police_station_id
    )

    checkpoint = Checkpoint(
        id=uuid.uuid4(),
        name=data.name,
        description=data.description,
        lat_long=data.lat_long,
        address=data.address,
        police_station_id=data.police_station_id,
        scan_radius=data.scan_radius if data.scan_radius is not None else settings.DEFAULT_SCAN_RADIUS_M,
        qr_code=qr_code,
        qr_code_url=qr_service.render_qr_data_url(qr_data),
        is_active=True,
    )
    with transaction(db):
        db.add(checkpoint)
    db.refresh(checkpoint)

    logger.info("Checkpoint créé : %s (%s), QR %s", checkpoint.name, checkpoint.id, qr_code)
    return to_response(checkpoint)


def get_checkpoint(db: Session, checkpoint_id: uuid.UUID) -> Checkpoint:
    """Retourne un checkpoint actif ou lève CheckpointNotFoundError."""
    checkpoint = db.get(Checkpoint, checkpoint_id)
    if checkpoint is None or not checkpoint.is_active:
        raise CheckpointNotFoundError(
            f"Checkpoint {checkpoint_id} introuvable.", checkpoint_id=str(checkpoint_id)
        )
    return checkpoint


def get_active_checkpoint_by_qr_code(db: Session, qr_code: str) -> Optional[Checkpoint]:
    """Retourne le checkpoint actif portant cet identifiant QR, ou None."""
    return db.execute(
        select(Checkpoint).where(
            Checkpoint.qr_code == qr_code,
            Checkpoint.is_active.is_(True),
        )
    ).scalar()


def get_checkpoints_by_ids(db: Session, checkpoint_ids: Iterable[uuid.UUID]) -> List[Checkpoint]:
    """Retourne les checkpoints existants (actifs ou non) parmi les IDs donnés."""
    ids = list(checkpoint_ids)
    if not ids:
        return []
    return db.execute(select(Checkpoint).where(Checkpoint.id.in_(ids))).scalars().all()


def update_checkpoint(db: Session, checkpoint_id: uuid.UUID, data: CheckpointUpdate) -> CheckpointResponse:
    """
    Met à jour les champs fournis d'un checkpoint.

    L'identifiant QR est conservé : les QR codes déjà imprimés restent valides.
    Seule l'image est régénérée si le nom, les coordonnées ou le commissariat changent.
    """
    checkpoint = get_checkpoint(db, checkpoint_id)

    update_data = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_FIELDS
    }
    regenerate_qr = bool(QR_RELEVANT_FIELDS & update_data.keys())

    with transaction(db):
        for field, value in update_data.items():
            setattr(checkpoint, field, value)

        if regenerate_qr:
            qr_data = qr_service.encode_checkpoint_payload(
                checkpoint.qr_code, checkpoint.name, checkpoint.lat_long, checkpoint.police_station_id
            )
            checkpoint.qr_code_url = qr_service.render_qr_data_url(qr_data)
    db.refresh(checkpoint)

    logger.info(
        "Checkpoint %s mis à jour (%s)%s",
        checkpoint.id, ", ".join(sorted(update_data)) or "aucun champ",
        ", QR régénéré" if regenerate_qr else "",
    )
    return to_response(checkpoint)


def delete_checkpoint(db: Session, checkpoint_id: uuid.UUID) -> None:
    """
    Suppression logique (is_active = False).
    Les rondes qui référencent ce checkpoint ne sont pas modifiées.
    """
    checkpoint = get_checkpoint(db, checkpoint_id)
    with transaction(db):
        checkpoint.is_active = False
    logger.info("Checkpoint %s désactivé", checkpoint_id)


def get_checkpoint_qr(db: Session, checkpoint_id: uuid.UUID) -> CheckpointQrResponse:
    """Retourne le contenu encodé et l'image du QR code d'un checkpoint actif."""
    checkpoint = get_checkpoint(db, checkpoint_id)
    return CheckpointQrResponse(
        checkpoint_id=checkpoint.id,
        name=checkpoint.name,
        lat_long=checkpoint.lat_long,
        police_station_id=checkpoint.police_station_id,
        qr_code=checkpoint.qr_code,
        qr_data=qr_service.encode_checkpoint_payload(
            checkpoint.qr_code, checkpoint.name, checkpoint.lat_long, checkpoint.police_station_id
        ),
        qr_code_url=checkpoint.qr_code_url,
    )


def to_response(checkpoint: Checkpoint) -> CheckpointResponse:
    """Construit le schéma de réponse avec les coordonnées extraites."""
    point = checkpoint.coordinates
    return CheckpointResponse(
        id=checkpoint.id,
        name=checkpoint.name,
        description=checkpoint.description,
        lat_long=checkpoint.lat_long,
        latitude=point.latitude,
        longitude=point.longitude,
        address=checkpoint.address,
        scan_radius=checkpoint.scan_radius,
        qr_code=checkpoint.qr_code,
        police_station_id=checkpoint.police_station_id,
        is_active=checkpoint.is_active,
        created_at=checkpoint.created_at,
    )
