"""
Machine à états des affectations de rondes.

    assigned ──start──▶ in_progress ──scan du dernier checkpoint──▶ completed
        │                   │  └──────────complete (force)────────▶ completed
        └──────cancel───────┴──────────────────────────────────────▶ cancelled

completed et cancelled sont terminaux ; aucune transition ne revient en arrière.
Ce module est le seul à modifier status, start_date, end_date et
completed_checkpoints d'une RouteAssignment.

Concurrence :
- assign_route verrouille la ligne de l'agent puis celle de la ronde
  (SELECT … FOR UPDATE, toujours dans cet ordre) avant ses contrôles ; l'index
  unique partiel sur route_id sert de dernier rempart contre les doubles affectations.
- record_checkpoint_completion s'exécute dans la transaction du scan, sur la
  ligne d'affectation déjà verrouillée par le vérificateur de scan.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from patroltrack.config import settings
from patroltrack.database import transaction
from patroltrack.exceptions import (
    AlreadyCompletedError,
    AssignmentNotFoundError,
    CannotDeleteInProgressError,
    DuplicateUserRouteAssignmentError,
    IncompleteCheckpointsError,
    InvalidStateTransitionError,
    MaxAssignmentsReachedError,
    RouteAlreadyAssignedError,
    RouteInactiveError,
    RouteNotFoundError,
    UserNotFoundError,
)
from patroltrack.models.route import Route
from patroltrack.models.route_assignment import (
    ACTIVE_STATUSES,
    STATUS_ASSIGNED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    RouteAssignment,
)
from patroltrack.models.user import User
from patroltrack.schemas.route_assignment import AssignmentResponse

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _stamp() -> str:
    return _now().strftime("%d/%m/%Y %H:%M")


# ----------------------------------------------------------------
# Requêtes de conflit
# ----------------------------------------------------------------

def find_route_holder(db: Session, route_id: uuid.UUID) -> Optional[RouteAssignment]:
    """Affectation active (assigned / in_progress) qui occupe la ronde, ou None."""
    return db.execute(
        select(RouteAssignment).where(
            RouteAssignment.route_id == route_id,
            RouteAssignment.is_active.is_(True),
            RouteAssignment.status.in_(ACTIVE_STATUSES),
        )
    ).scalar()


def find_user_route_assignment(
    db: Session, user_id: uuid.UUID, route_id: uuid.UUID
) -> Optional[RouteAssignment]:
    """Affectation active de cette ronde à cet agent, ou None."""
    return db.execute(
        select(RouteAssignment).where(
            RouteAssignment.user_id == user_id,
            RouteAssignment.route_id == route_id,
            RouteAssignment.is_active.is_(True),
            RouteAssignment.status.in_(ACTIVE_STATUSES),
        )
    ).scalar()


def count_user_active_assignments(db: Session, user_id: uuid.UUID) -> int:
    """Nombre d'affectations actives (assigned / in_progress) de l'agent."""
    return db.execute(
        select(func.count())
        .select_from(RouteAssignment)
        .where(
            RouteAssignment.user_id == user_id,
            RouteAssignment.is_active.is_(True),
            RouteAssignment.status.in_(ACTIVE_STATUSES),
        )
    ).scalar() or 0


def _route_already_assigned(db: Session, route: Route, holder: RouteAssignment) -> RouteAlreadyAssignedError:
    holder_user = db.get(User, holder.user_id)
    return RouteAlreadyAssignedError(
        f"La ronde « {route.name} » est déjà affectée à un autre agent.",
        route_id=str(route.id),
        route_name=route.name,
        assignment_id=str(holder.id),
        assigned_to={
            "id": str(holder.user_id),
            "username": holder_user.display_name if holder_user else None,
        },
        status=holder.status,
        assigned_at=holder.start_date.isoformat() if holder.start_date else None,
    )


# ----------------------------------------------------------------
# Transitions
# ----------------------------------------------------------------

def assign_route(
    db: Session,
    user_id: uuid.UUID,
    route_id: uuid.UUID,
    police_station_id: Optional[int] = None,
    max_active_assignments: Optional[int] = None,
) -> AssignmentResponse:
    """
    Affecte une ronde à un agent (statut initial : assigned).

    Validations, dans l'ordre :
    1. L'agent existe
    2. La ronde existe et est active
    3. La ronde n'est pas déjà occupée par une affectation active
    4. L'agent n'a pas déjà cette ronde
    5. L'agent a moins de max_active_assignments affectations actives

    Les contrôles et l'insertion forment une seule transaction, sous verrou
    des lignes agent et ronde.
    """
    max_allowed = max_active_assignments
    if max_allowed is None:
        max_allowed = settings.MAX_ACTIVE_ASSIGNMENTS_PER_USER

    with transaction(db):
        user = db.get(User, user_id, with_for_update=True)
        if user is None:
            raise UserNotFoundError(user_id)

        route = db.get(Route, route_id, with_for_update=True)
        if route is None:
            raise RouteNotFoundError(route_id)
        if not route.is_active:
            raise RouteInactiveError(route_id)

        holder = find_route_holder(db, route_id)
        if holder is not None and holder.user_id != user_id:
            logger.warning("Ronde %s déjà affectée (affectation %s)", route_id, holder.id)
            raise _route_already_assigned(db, route, holder)

        duplicate = holder if holder is not None else find_user_route_assignment(db, user_id, route_id)
        if duplicate is not None:
            raise DuplicateUserRouteAssignmentError(
                "L'agent a déjà cette ronde en cours d'affectation.",
                assignment_id=str(duplicate.id),
                status=duplicate.status,
            )

        active_count = count_user_active_assignments(db, user_id)
        if active_count >= max_allowed:
            raise MaxAssignmentsReachedError(active_count, max_allowed)

        assignment = RouteAssignment(
            id=uuid.uuid4(),
            user_id=user_id,
            route_id=route_id,
            police_station_id=police_station_id if police_station_id is not None else route.police_station_id,
            status=STATUS_ASSIGNED,
            start_date=_now(),
            completed_checkpoints=[],
            notes=f"Ronde affectée le {_stamp()}",
            is_active=True,
        )
        db.add(assignment)

        # L'index unique partiel détecte une affectation concurrente passée entre nos contrôles
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            holder = find_route_holder(db, route_id)
            logger.warning("Conflit d'affectation concurrente sur la ronde %s", route_id)
            if holder is not None and holder.user_id == user_id:
                raise DuplicateUserRouteAssignmentError(
                    "L'agent a déjà cette ronde en cours d'affectation.",
                    assignment_id=str(holder.id),
                    status=holder.status,
                )
            if holder is not None:
                raise _route_already_assigned(db, route, holder)
            raise RouteAlreadyAssignedError(
                "La ronde vient d'être affectée à un autre agent.", route_id=str(route_id)
            )

    logger.info(
        "Ronde %s affectée à l'agent %s (affectation %s), %d/%d rondes actives",
        route_id, user_id, assignment.id, active_count + 1, max_allowed,
    )
    return AssignmentResponse.model_validate(assignment)


def get_assignment(db: Session, assignment_id: uuid.UUID, for_update: bool = False) -> RouteAssignment:
    """Retourne une affectation active (non supprimée) ou lève AssignmentNotFoundError."""
    assignment = db.get(RouteAssignment, assignment_id, with_for_update=True if for_update else None)
    if assignment is None or not assignment.is_active:
        raise AssignmentNotFoundError(assignment_id)
    return assignment


def start_route(db: Session, assignment_id: uuid.UUID, notes: Optional[str] = None) -> AssignmentResponse:
    """
    Démarre la ronde : assigned → in_progress.

    start_date est écrasée par l'heure de début effectif de la patrouille.
    """
    with transaction(db):
        assignment = get_assignment(db, assignment_id, for_update=True)
        if assignment.status != STATUS_ASSIGNED:
            raise InvalidStateTransitionError(assignment_id, assignment.status, STATUS_IN_PROGRESS)

        assignment.status = STATUS_IN_PROGRESS
        assignment.start_date = _now()
        assignment.notes = notes or f"Ronde démarrée le {_stamp()}"

    logger.info("Affectation %s démarrée", assignment_id)
    return AssignmentResponse.model_validate(assignment)


def record_checkpoint_completion(
    db: Session,
    assignment_id: uuid.UUID,
    checkpoint_id: uuid.UUID,
) -> RouteAssignment:
    """
    Ajoute un checkpoint aux checkpoints scannés et termine l'affectation si
    tous les checkpoints de la ronde sont couverts.

    Appelé uniquement par le vérificateur de scan, dans sa transaction et après
    ses propres contrôles (appartenance à la ronde, pas de double scan) :
    aucun dédoublonnage n'est refait ici et aucun commit n'est émis.
    """
    assignment = get_assignment(db, assignment_id, for_update=True)
    route = db.get(Route, assignment.route_id)

    # Nouvelle liste : la colonne ARRAY n'est pas suivie en mutation sur place
    completed = list(assignment.completed_checkpoints or []) + [checkpoint_id]
    assignment.completed_checkpoints = completed

    route_ids = set(route.checkpoint_ids or []) if route is not None else set()
    if route_ids and route_ids <= set(completed):
        assignment.status = STATUS_COMPLETED
        assignment.end_date = _now()
        assignment.notes = f"Ronde terminée le {_stamp()}"
        logger.info("Affectation %s terminée automatiquement (%d checkpoints)", assignment_id, len(completed))

    db.flush()
    return assignment


def complete_route(
    db: Session,
    assignment_id: uuid.UUID,
    force_complete: bool = False,
    notes: Optional[str] = None,
) -> AssignmentResponse:
    """
    Termine une affectation.

    Lève AlreadyCompletedError si elle est déjà terminée,
    InvalidStateTransitionError si elle est annulée,
    IncompleteCheckpointsError s'il reste des checkpoints et que force_complete est faux.
    """
    with transaction(db):
        assignment = get_assignment(db, assignment_id, for_update=True)
        if assignment.status == STATUS_COMPLETED:
            raise AlreadyCompletedError(assignment_id)
        if assignment.status == STATUS_CANCELLED:
            raise InvalidStateTransitionError(assignment_id, assignment.status, STATUS_COMPLETED)

        route = db.get(Route, assignment.route_id)
        total = route.total_checkpoints if route is not None else 0
        completed = len(assignment.completed_checkpoints or [])

        if completed < total and not force_complete:
            raise IncompleteCheckpointsError(total, completed)

        forced = completed < total
        assignment.status = STATUS_COMPLETED
        assignment.end_date = _now()
        assignment.notes = (notes or f"Ronde terminée le {_stamp()}") + (" (clôture forcée)" if forced else "")

    logger.info(
        "Affectation %s terminée%s, %d/%d checkpoints",
        assignment_id, " (clôture forcée)" if forced else "", completed, total,
    )
    return AssignmentResponse.model_validate(assignment)


def cancel_assignment(
    db: Session,
    assignment_id: uuid.UUID,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> AssignmentResponse:
    """Annule une affectation assigned ou in_progress."""
    with transaction(db):
        assignment = get_assignment(db, assignment_id, for_update=True)
        if assignment.status not in ACTIVE_STATUSES:
            raise InvalidStateTransitionError(assignment_id, assignment.status, STATUS_CANCELLED)

        assignment.status = STATUS_CANCELLED
        assignment.end_date = _now()
        assignment.notes = notes or (
            f"Affectation annulée le {_stamp()}. Motif : {reason or 'non précisé'}"
        )

    logger.info("Affectation %s annulée, motif : %s", assignment_id, reason or "non précisé")
    return AssignmentResponse.model_validate(assignment)


def delete_assignment(db: Session, assignment_id: uuid.UUID) -> None:
    """
    Suppression logique (is_active = False).
    Refusée pour une affectation in_progress : il faut l'annuler d'abord.
    """
    with transaction(db):
        assignment = get_assignment(db, assignment_id, for_update=True)
        if assignment.status == STATUS_IN_PROGRESS:
            raise CannotDeleteInProgressError(assignment_id)
        assignment.is_active = False

    logger.info("Affectation %s supprimée", assignment_id)
