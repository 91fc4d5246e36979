"""
Lecture de la progression des affectations (aucune écriture).

L'ordre des checkpoints de la ronde fait foi : le « prochain » checkpoint est
le premier non scanné dans cet ordre, même si l'agent a scanné dans le désordre.
"""

import math
import uuid
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from patroltrack.config import settings
from patroltrack.exceptions import RouteNotFoundError
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
from patroltrack.schemas.route_assignment import (
    AssignmentActions,
    AssignmentCapacity,
    AssignmentCounts,
    AssignmentProgress,
    AssignmentResponse,
    CheckpointProgressItem,
    ProgressSummary,
    RouteAvailability,
    RouteHolder,
    UserAssignmentsOverview,
)
from patroltrack.services import assignment_service
from patroltrack.services.checkpoint_service import get_checkpoints_by_ids


def completion_percentage(completed: int, total: int) -> int:
    """Pourcentage arrondi à l'entier le plus proche (0 pour une ronde vide)."""
    if total <= 0:
        return 0
    return int(math.floor(completed * 100 / total + 0.5))


def build_progress_summary(
    route_checkpoint_ids: Sequence[uuid.UUID],
    completed_checkpoints: Sequence[uuid.UUID],
) -> ProgressSummary:
    """Totaux de progression d'une affectation à partir de ses checkpoints scannés."""
    done = set(completed_checkpoints)
    remaining = [cid for cid in route_checkpoint_ids if cid not in done]
    total = len(route_checkpoint_ids)
    completed = total - len(remaining)

    return ProgressSummary(
        total=total,
        completed=completed,
        pending=len(remaining),
        percentage=completion_percentage(completed, total),
        remaining_checkpoint_ids=remaining,
        next_checkpoint_id=remaining[0] if remaining else None,
        last_completed_id=completed_checkpoints[-1] if completed_checkpoints else None,
    )


def build_actions(status: str, pending: int) -> AssignmentActions:
    """
    Actions possibles sur une affectation et action recommandée :
    - assigned                   → start_route
    - in_progress, reste à faire → scan_next_checkpoint
    - in_progress, tout scanné   → complete_route
    - terminale                  → none
    """
    if status == STATUS_ASSIGNED:
        recommended = "start_route"
    elif status == STATUS_IN_PROGRESS and pending > 0:
        recommended = "scan_next_checkpoint"
    elif status == STATUS_IN_PROGRESS:
        recommended = "complete_route"
    else:
        recommended = "none"

    return AssignmentActions(
        can_start=status == STATUS_ASSIGNED,
        can_scan_checkpoint=status == STATUS_IN_PROGRESS and pending > 0,
        can_complete=status == STATUS_IN_PROGRESS and pending == 0,
        can_cancel=status in ACTIVE_STATUSES,
        recommended_action=recommended,
    )


def _build_assignment_progress(db: Session, assignment: RouteAssignment) -> AssignmentProgress:
    route = db.get(Route, assignment.route_id)
    route_ids: List[uuid.UUID] = list(route.checkpoint_ids or []) if route is not None else []
    completed_ids: List[uuid.UUID] = list(assignment.completed_checkpoints or [])

    summary = build_progress_summary(route_ids, completed_ids)
    done = set(completed_ids)
    checkpoints = {cp.id: cp for cp in get_checkpoints_by_ids(db, route_ids)}

    items = []
    for order, cid in enumerate(route_ids, start=1):
        cp = checkpoints.get(cid)
        items.append(
            CheckpointProgressItem(
                id=cid,
                order=order,
                name=cp.name if cp else None,
                lat_long=cp.lat_long if cp else None,
                scan_radius=cp.scan_radius if cp else None,
                is_active=cp.is_active if cp else None,
                is_completed=cid in done,
                is_pending=cid not in done,
                is_next=cid == summary.next_checkpoint_id,
            )
        )

    return AssignmentProgress(
        assignment=AssignmentResponse.model_validate(assignment),
        route_name=route.name if route else None,
        priority=route.priority if route else None,
        checkpoints=items,
        progress=summary,
        actions=build_actions(assignment.status, summary.pending),
    )


def get_assignment_progress(db: Session, assignment_id: uuid.UUID) -> AssignmentProgress:
    """Progression détaillée d'une affectation (lève AssignmentNotFoundError)."""
    assignment = assignment_service.get_assignment(db, assignment_id)
    return _build_assignment_progress(db, assignment)


def get_user_assignments_overview(
    db: Session,
    user_id: uuid.UUID,
    active_only: bool = False,
    max_active_assignments: Optional[int] = None,
) -> UserAssignmentsOverview:
    """
    Affectations d'un agent avec leur progression, les compteurs par statut
    et la capacité restante avant la limite de rondes actives.

    Les compteurs portent toujours sur toutes les affectations (non supprimées),
    même si active_only restreint la liste renvoyée.
    """
    max_allowed = max_active_assignments
    if max_allowed is None:
        max_allowed = settings.MAX_ACTIVE_ASSIGNMENTS_PER_USER

    assignments = db.execute(
        select(RouteAssignment)
        .where(
            RouteAssignment.user_id == user_id,
            RouteAssignment.is_active.is_(True),
        )
        .order_by(RouteAssignment.start_date.desc())
    ).scalars().all()

    by_status = {s: 0 for s in (STATUS_ASSIGNED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED)}
    for a in assignments:
        by_status[a.status] = by_status.get(a.status, 0) + 1
    active = by_status[STATUS_ASSIGNED] + by_status[STATUS_IN_PROGRESS]

    listed = [a for a in assignments if a.status in ACTIVE_STATUSES] if active_only else assignments

    return UserAssignmentsOverview(
        user_id=user_id,
        assignments=[_build_assignment_progress(db, a) for a in listed],
        counts=AssignmentCounts(
            total=len(assignments),
            active=active,
            assigned=by_status[STATUS_ASSIGNED],
            in_progress=by_status[STATUS_IN_PROGRESS],
            completed=by_status[STATUS_COMPLETED],
            cancelled=by_status[STATUS_CANCELLED],
        ),
        capacity=AssignmentCapacity(
            max_allowed=max_allowed,
            active=active,
            remaining_slots=max(0, max_allowed - active),
        ),
    )


def check_route_availability(db: Session, route_id: uuid.UUID) -> RouteAvailability:
    """Indique si une ronde peut être affectée et, sinon, qui la détient."""
    route = db.get(Route, route_id)
    if route is None:
        raise RouteNotFoundError(route_id)

    holder = assignment_service.find_route_holder(db, route_id)
    current = None
    if holder is not None:
        holder_user = db.get(User, holder.user_id)
        current = RouteHolder(
            assignment_id=holder.id,
            user_id=holder.user_id,
            username=holder_user.display_name if holder_user else None,
            status=holder.status,
            assigned_at=holder.start_date,
        )

    return RouteAvailability(
        route_id=route.id,
        route_name=route.name,
        is_active=bool(route.is_active),
        is_available=bool(route.is_active) and holder is None,
        current_assignment=current,
    )
