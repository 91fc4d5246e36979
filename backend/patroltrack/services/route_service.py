"""
Service métier pour les rondes.

Une ronde est une liste ordonnée de checkpoints (1 à 50, sans doublon), tous
existants et actifs au moment de la création ou de la mise à jour. Si un
checkpoint est désactivé plus tard, la ronde n'est pas revalidée.
"""

import uuid
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from patroltrack.database import transaction
from patroltrack.exceptions import (
    CheckpointValidationError,
    DuplicateRouteNameError,
    RouteNotFoundError,
)
from patroltrack.models.route import Route
from patroltrack.schemas.route import (
    MAX_CHECKPOINTS,
    CheckpointIdsValidation,
    RouteCreate,
    RouteResponse,
    RouteUpdate,
)
from patroltrack.services.checkpoint_service import get_checkpoints_by_ids

logger = logging.getLogger(__name__)

NULLABLE_FIELDS = {"description", "estimated_duration"}


def validate_checkpoint_ids(db: Session, checkpoint_ids: List[uuid.UUID]) -> CheckpointIdsValidation:
    """
    Vérifie qu'une liste de checkpoints peut former une ronde.

    Contrôles, dans l'ordre :
    1. Entre 1 et 50 checkpoints
    2. Aucun doublon
    3. Tous les IDs existent en base
    4. Tous les checkpoints sont actifs
    """
    total = len(checkpoint_ids)
    if total == 0 or total > MAX_CHECKPOINTS:
        return CheckpointIdsValidation(
            valid=False,
            message=f"Une ronde doit contenir entre 1 et {MAX_CHECKPOINTS} checkpoints.",
            total_provided=total,
        )

    seen = set()
    duplicates = []
    for cid in checkpoint_ids:
        if cid in seen and cid not in duplicates:
            duplicates.append(cid)
        seen.add(cid)
    if duplicates:
        return CheckpointIdsValidation(
            valid=False,
            message="Checkpoints en double : un checkpoint ne peut apparaître qu'une fois dans une ronde.",
            total_provided=total,
            duplicate_ids=duplicates,
        )

    found = {cp.id: cp for cp in get_checkpoints_by_ids(db, checkpoint_ids)}

    invalid_ids = [cid for cid in checkpoint_ids if cid not in found]
    if invalid_ids:
        return CheckpointIdsValidation(
            valid=False,
            message="Checkpoint(s) introuvable(s) en base.",
            total_provided=total,
            invalid_ids=invalid_ids,
        )

    inactive_ids = [cid for cid in checkpoint_ids if not found[cid].is_active]
    if inactive_ids:
        return CheckpointIdsValidation(
            valid=False,
            message="Les checkpoints inactifs ne peuvent pas être utilisés dans une ronde.",
            total_provided=total,
            inactive_ids=inactive_ids,
        )

    return CheckpointIdsValidation(
        valid=True,
        message=f"{total} checkpoint(s) validé(s).",
        total_provided=total,
        valid_ids=list(checkpoint_ids),
    )


def create_route(db: Session, data: RouteCreate) -> RouteResponse:
    """
    Crée une ronde après validation de ses checkpoints.

    Lève CheckpointValidationError si la liste est invalide,
    DuplicateRouteNameError si une ronde active du même commissariat porte déjà ce nom.
    """
    _ensure_valid_checkpoints(db, data.checkpoint_ids)
    _ensure_unique_name(db, data.name, data.police_station_id)

    route = Route(
        id=uuid.uuid4(),
        name=data.name,
        description=data.description.strip() if data.description else None,
        checkpoint_ids=list(data.checkpoint_ids),
        police_station_id=data.police_station_id,
        priority=data.priority,
        estimated_duration=data.estimated_duration,
        created_by=data.created_by,
        is_active=True,
    )
    with transaction(db):
        db.add(route)
    db.refresh(route)

    logger.info(
        "Ronde créée : %s (%s), %d checkpoints, commissariat %s",
        route.name, route.id, route.total_checkpoints, route.police_station_id,
    )
    return to_response(route)


def get_route(db: Session, route_id: uuid.UUID, active_only: bool = True) -> Route:
    """Retourne une ronde ou lève RouteNotFoundError."""
    route = db.get(Route, route_id)
    if route is None or (active_only and not route.is_active):
        raise RouteNotFoundError(route_id)
    return route


def update_route(db: Session, route_id: uuid.UUID, data: RouteUpdate) -> RouteResponse:
    """
    Met à jour les champs fournis d'une ronde active.
    Une nouvelle liste de checkpoints est revalidée ; les affectations en cours
    ne sont pas modifiées (leurs checkpoints déjà scannés restent acquis).
    """
    route = get_route(db, route_id)

    update_data = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_FIELDS
    }

    if "checkpoint_ids" in update_data:
        _ensure_valid_checkpoints(db, update_data["checkpoint_ids"])

    new_name = update_data.get("name", route.name)
    new_station = update_data.get("police_station_id", route.police_station_id)
    if new_name != route.name or new_station != route.police_station_id:
        _ensure_unique_name(db, new_name, new_station, exclude_id=route.id)

    with transaction(db):
        for field, value in update_data.items():
            setattr(route, field, value)
    db.refresh(route)

    logger.info("Ronde %s mise à jour (%s)", route.id, ", ".join(sorted(update_data)) or "aucun champ")
    return to_response(route)


def delete_route(db: Session, route_id: uuid.UUID) -> None:
    """Suppression logique d'une ronde (is_active = False)."""
    route = get_route(db, route_id)
    with transaction(db):
        route.is_active = False
    logger.info("Ronde %s désactivée", route_id)


def to_response(route: Route) -> RouteResponse:
    return RouteResponse(
        id=route.id,
        name=route.name,
        description=route.description,
        checkpoint_ids=list(route.checkpoint_ids or []),
        total_checkpoints=route.total_checkpoints,
        police_station_id=route.police_station_id,
        priority=route.priority,
        estimated_duration=route.estimated_duration,
        is_active=route.is_active,
        created_at=route.created_at,
        updated_at=route.updated_at,
    )


def _ensure_valid_checkpoints(db: Session, checkpoint_ids: List[uuid.UUID]) -> None:
    validation = validate_checkpoint_ids(db, checkpoint_ids)
    if not validation.valid:
        raise CheckpointValidationError(
            validation.message,
            duplicate_ids=[str(i) for i in validation.duplicate_ids],
            invalid_ids=[str(i) for i in validation.invalid_ids],
            inactive_ids=[str(i) for i in validation.inactive_ids],
        )


def _ensure_unique_name(
    db: Session,
    name: str,
    police_station_id: int,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    query = select(Route).where(
        Route.name == name,
        Route.police_station_id == police_station_id,
        Route.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.where(Route.id != exclude_id)

    if db.execute(query).scalar():
        raise DuplicateRouteNameError(name, police_station_id)
