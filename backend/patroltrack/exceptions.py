"""
Erreurs métier de PatrolTrack.

Toutes les erreurs attendues (géofence, conflits d'affectation, transitions
d'état interdites…) héritent de PatrolError. Elles portent un code stable,
le statut HTTP à renvoyer et les données nécessaires au client pour décider
de la suite (distance mesurée, détenteur actuel d'une ronde, etc.).

InfrastructureError n'hérite pas de PatrolError : c'est la seule erreur
que l'appelant peut rejouer.
"""

from typing import Any, Dict


class PatrolError(ValueError):
    """Erreur métier de base."""

    code = "PATROL_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_detail(self) -> Dict[str, Any]:
        """Corps JSON renvoyé au client."""
        return {"error": self.code, "message": self.message, "data": self.details}


class InfrastructureError(Exception):
    """Panne transitoire de la persistance ou du stockage (rejouable)."""

    code = "INFRASTRUCTURE_ERROR"
    status_code = 503


# ----------------------------------------------------------------
# Coordonnées et QR codes
# ----------------------------------------------------------------

class InvalidCoordinateError(PatrolError):
    code = "INVALID_COORDINATE"


class InvalidPositionError(PatrolError):
    code = "INVALID_POSITION"


class MalformedQRCodeError(PatrolError):
    code = "MALFORMED_QR_CODE"


# ----------------------------------------------------------------
# Introuvables
# ----------------------------------------------------------------

class CheckpointNotFoundError(PatrolError):
    code = "CHECKPOINT_NOT_FOUND"
    status_code = 404


class RouteNotFoundError(PatrolError):
    code = "ROUTE_NOT_FOUND"
    status_code = 404

    def __init__(self, route_id: Any):
        super().__init__(f"Ronde {route_id} introuvable.", route_id=str(route_id))


class UserNotFoundError(PatrolError):
    code = "USER_NOT_FOUND"
    status_code = 404

    def __init__(self, user_id: Any):
        super().__init__(f"Agent {user_id} introuvable.", user_id=str(user_id))


class AssignmentNotFoundError(PatrolError):
    code = "ASSIGNMENT_NOT_FOUND"
    status_code = 404

    def __init__(self, assignment_id: Any):
        super().__init__(f"Affectation {assignment_id} introuvable.", assignment_id=str(assignment_id))


class NoActiveAssignmentError(PatrolError):
    code = "NO_ACTIVE_ASSIGNMENT"
    status_code = 404

    def __init__(self, assignment_id: Any):
        super().__init__(
            "Aucune affectation en cours trouvée. Démarrez d'abord votre ronde.",
            assignment_id=str(assignment_id),
        )


# ----------------------------------------------------------------
# Scan
# ----------------------------------------------------------------

class OutOfRangeError(PatrolError):
    code = "OUT_OF_RANGE"

    def __init__(self, distance: float, required_radius: float, **details: Any):
        super().__init__(
            f"Vous êtes à {round(distance)} mètres. "
            f"Rapprochez-vous à moins de {required_radius} mètres pour scanner.",
            distance=round(distance, 2),
            required_radius=required_radius,
            **details,
        )
        self.distance = distance
        self.required_radius = required_radius


class CheckpointNotInRouteError(PatrolError):
    code = "CHECKPOINT_NOT_IN_ROUTE"

    def __init__(self, checkpoint_id: Any, route_id: Any):
        super().__init__(
            "Ce checkpoint ne fait pas partie de la ronde affectée.",
            checkpoint_id=str(checkpoint_id),
            route_id=str(route_id),
        )


class AlreadyScannedError(PatrolError):
    code = "ALREADY_SCANNED"

    def __init__(self, checkpoint_id: Any, assignment_id: Any):
        super().__init__(
            "Ce checkpoint a déjà été scanné.",
            checkpoint_id=str(checkpoint_id),
            assignment_id=str(assignment_id),
        )


class MediaUploadFailedError(PatrolError):
    code = "MEDIA_UPLOAD_FAILED"
    status_code = 502


# ----------------------------------------------------------------
# Affectations
# ----------------------------------------------------------------

class RouteInactiveError(PatrolError):
    code = "ROUTE_INACTIVE"

    def __init__(self, route_id: Any):
        super().__init__("La ronde n'est pas active.", route_id=str(route_id))


class RouteAlreadyAssignedError(PatrolError):
    code = "ROUTE_ALREADY_ASSIGNED"
    status_code = 409


class DuplicateUserRouteAssignmentError(PatrolError):
    code = "USER_ROUTE_DUPLICATE"
    status_code = 409


class MaxAssignmentsReachedError(PatrolError):
    code = "MAX_ROUTES_REACHED"

    def __init__(self, current: int, max_allowed: int):
        super().__init__(
            f"L'agent a atteint la limite de {max_allowed} rondes actives.",
            current_active_routes=current,
            max_allowed=max_allowed,
        )


class InvalidStateTransitionError(PatrolError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, assignment_id: Any, current: str, target: str):
        super().__init__(
            f"Transition impossible : {current} → {target}.",
            assignment_id=str(assignment_id),
            current_status=current,
            target_status=target,
        )


class AlreadyCompletedError(PatrolError):
    code = "ALREADY_COMPLETED"

    def __init__(self, assignment_id: Any):
        super().__init__("L'affectation est déjà terminée.", assignment_id=str(assignment_id))


class IncompleteCheckpointsError(PatrolError):
    code = "INCOMPLETE_CHECKPOINTS"

    def __init__(self, total: int, completed: int):
        remaining = total - completed
        super().__init__(
            f"Impossible de terminer la ronde : {remaining} checkpoint(s) restant(s).",
            total_checkpoints=total,
            completed_checkpoints=completed,
            remaining_checkpoints=remaining,
            can_force_complete=True,
        )
        self.remaining = remaining


class CannotDeleteInProgressError(PatrolError):
    code = "CANNOT_DELETE_IN_PROGRESS"

    def __init__(self, assignment_id: Any):
        super().__init__(
            "Impossible de supprimer une affectation en cours. Annulez-la d'abord.",
            assignment_id=str(assignment_id),
        )


# ----------------------------------------------------------------
# Validation des checkpoints et rondes
# ----------------------------------------------------------------

class CheckpointValidationError(PatrolError):
    code = "CHECKPOINT_VALIDATION_FAILED"


class DuplicateRouteNameError(PatrolError):
    code = "DUPLICATE_ROUTE_NAME"
    status_code = 409

    def __init__(self, name: str, police_station_id: int):
        super().__init__(
            f"Une ronde nommée '{name}' existe déjà pour le commissariat {police_station_id}.",
            name=name,
            police_station_id=police_station_id,
        )

