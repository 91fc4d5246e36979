"""
Vérification et enregistrement du scan d'un checkpoint par un agent.

Contrôles, dans l'ordre (le premier échec interrompt la requête, rien n'est écrit) :
1. Position GPS de l'agent valide                   → InvalidPositionError
2. Contenu du QR code décodable                     → MalformedQRCodeError
3. Checkpoint existant et actif                     → CheckpointNotFoundError
4. Agent dans le rayon de scan du checkpoint        → OutOfRangeError
5. Affectation de l'agent, sur cette ronde, en cours → NoActiveAssignmentError
6. Ronde existante                                  → RouteNotFoundError
7. Checkpoint présent dans la ronde                 → CheckpointNotInRouteError
8. Checkpoint pas encore scanné                     → AlreadyScannedError

Puis : contrôle des médias joints (type, nombre, taille), envoi des médias,
ligne d'audit CheckpointScan, ajout du checkpoint aux checkpoints scannés
(et clôture automatique si la ronde est couverte), le tout dans une seule
transaction.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from patroltrack.config import settings
from patroltrack.database import transaction
from patroltrack.exceptions import (
    AlreadyScannedError,
    CheckpointNotFoundError,
    CheckpointNotInRouteError,
    InvalidCoordinateError,
    InvalidPositionError,
    MediaUploadFailedError,
    NoActiveAssignmentError,
    OutOfRangeError,
    RouteNotFoundError,
)
from patroltrack.models.checkpoint_scan import CheckpointScan
from patroltrack.models.route import Route
from patroltrack.models.route_assignment import STATUS_COMPLETED, STATUS_IN_PROGRESS, RouteAssignment
from patroltrack.schemas.scan import MediaFile, ScanProgress, ScanRequest, ScanResult
from patroltrack.services import assignment_service, geo
from patroltrack.services.checkpoint_service import get_active_checkpoint_by_qr_code
from patroltrack.services.progress_service import build_progress_summary
from patroltrack.services.qr_service import decode_checkpoint_payload
from patroltrack.services.storage_service import MEDIA_KINDS, MediaStorage, media_kind, media_limits

logger = logging.getLogger(__name__)


def verify_and_record_scan(
    db: Session,
    storage: MediaStorage,
    data: ScanRequest,
    media: Optional[List[MediaFile]] = None,
    user_agent: Optional[str] = None,
) -> ScanResult:
    """
    Vérifie un scan de checkpoint et l'enregistre.

    La ligne d'affectation est verrouillée (FOR UPDATE) du contrôle 5 jusqu'au
    commit : deux scans simultanés sur la même affectation sont sérialisés.
    Si l'écriture en base échoue après l'envoi des médias, ceux-ci sont supprimés.
    """
    media = media or []

    # 1. Position de l'agent
    try:
        position = geo.parse_lat_long(data.user_lat_long)
    except InvalidCoordinateError as exc:
        raise InvalidPositionError(
            "Position GPS invalide. Activez la localisation et réessayez.",
            user_lat_long=data.user_lat_long,
            **exc.details,
        )

    # 2. QR code
    payload = decode_checkpoint_payload(data.qr_data)

    # 3. Checkpoint
    checkpoint = get_active_checkpoint_by_qr_code(db, payload.id)
    if checkpoint is None:
        raise CheckpointNotFoundError(
            "Checkpoint introuvable ou inactif. Le QR code est peut-être obsolète.",
            qr_code=payload.id,
        )

    # 4. Géofence
    scan_radius = checkpoint.scan_radius
    if scan_radius is None:
        scan_radius = settings.DEFAULT_SCAN_RADIUS_M
    distance = geo.haversine_distance(position, checkpoint.coordinates)
    if distance > scan_radius:
        logger.warning(
            "Scan hors zone : agent %s à %.2f m du checkpoint %s (rayon %s m)",
            data.user_id, distance, checkpoint.id, scan_radius,
        )
        raise OutOfRangeError(distance, scan_radius, checkpoint_id=str(checkpoint.id))

    stored: List[str] = []
    try:
        with transaction(db):
            # 5. Affectation (verrouillée jusqu'au commit)
            assignment = db.get(RouteAssignment, data.assignment_id, with_for_update=True)
            if (
                assignment is None
                or not assignment.is_active
                or assignment.user_id != data.user_id
                or assignment.route_id != data.route_id
                or assignment.status != STATUS_IN_PROGRESS
            ):
                raise NoActiveAssignmentError(data.assignment_id)

            # 6. Ronde
            route = db.get(Route, assignment.route_id)
            if route is None:
                raise RouteNotFoundError(assignment.route_id)

            # 7. Appartenance à la ronde
            if checkpoint.id not in (route.checkpoint_ids or []):
                raise CheckpointNotInRouteError(checkpoint.id, route.id)

            # 8. Double scan
            if checkpoint.id in (assignment.completed_checkpoints or []):
                raise AlreadyScannedError(checkpoint.id, assignment.id)

            _validate_media(media)

            scanned_at = datetime.now(timezone.utc)
            uploaded = _store_media(
                storage,
                media,
                {
                    "user_id": str(data.user_id),
                    "checkpoint_id": str(checkpoint.id),
                    "assignment_id": str(assignment.id),
                },
                stored,
            )

            scan = CheckpointScan(
                id=uuid.uuid4(),
                user_id=data.user_id,
                checkpoint_id=checkpoint.id,
                route_id=route.id,
                route_assignment_id=assignment.id,
                scan_time=scanned_at,
                user_lat_long=geo.format_lat_long(position),
                distance=distance,
                notes=data.notes,
                images=uploaded["images"],
                videos=uploaded["videos"],
                audios=uploaded["audios"],
                metadata_={
                    **data.metadata,
                    "scan_radius": scan_radius,
                    "police_station_id": checkpoint.police_station_id,
                    "scanned_at": scanned_at.isoformat(),
                    "user_agent": user_agent,
                },
                is_valid=True,
            )
            db.add(scan)

            assignment = assignment_service.record_checkpoint_completion(db, assignment.id, checkpoint.id)
    except Exception:
        if stored:
            _discard_media(storage, stored)
        raise

    summary = build_progress_summary(list(route.checkpoint_ids or []), list(assignment.completed_checkpoints))
    logger.info(
        "Checkpoint %s scanné par l'agent %s (%.2f m), affectation %s : %d/%d",
        checkpoint.id, data.user_id, distance, assignment.id, summary.completed, summary.total,
    )

    return ScanResult(
        scan_id=scan.id,
        checkpoint_id=checkpoint.id,
        checkpoint_name=checkpoint.name,
        distance=round(distance, 2),
        scan_radius=scan_radius,
        assignment_id=assignment.id,
        assignment_status=assignment.status,
        progress=ScanProgress(
            total_checkpoints=summary.total,
            completed_checkpoints=summary.completed,
            percentage=summary.percentage,
            is_completed=assignment.status == STATUS_COMPLETED,
            remaining_checkpoints=summary.remaining_checkpoint_ids,
        ),
        media=uploaded,
        scanned_at=scanned_at,
    )


def _validate_media(media: List[MediaFile]) -> None:
    """Types MIME acceptés, nombre de fichiers par catégorie et taille maximale."""
    limits = media_limits()
    counts = {kind: 0 for kind in MEDIA_KINDS}

    for item in media:
        kind = media_kind(item.content_type)
        counts[kind] += 1
        if len(item.data) > settings.MEDIA_MAX_FILE_SIZE:
            raise MediaUploadFailedError(
                f"Fichier trop volumineux : {item.filename}.",
                filename=item.filename,
                size=len(item.data),
                max_size=settings.MEDIA_MAX_FILE_SIZE,
            )

    for kind, count in counts.items():
        if count > limits[kind]:
            raise MediaUploadFailedError(
                f"Trop de fichiers ({kind}) : {count} pour un maximum de {limits[kind]}.",
                kind=kind,
                count=count,
                max_allowed=limits[kind],
            )


def _store_media(
    storage: MediaStorage,
    media: List[MediaFile],
    owner_context: Dict[str, str],
    stored: List[str],
) -> Dict[str, List[str]]:
    """Envoie les médias un par un ; chaque URI obtenue est ajoutée à stored."""
    uploaded: Dict[str, List[str]] = {kind: [] for kind in MEDIA_KINDS}
    for item in media:
        uri = storage.store(item.data, item.content_type, owner_context)
        stored.append(uri)
        uploaded[media_kind(item.content_type)].append(uri)
    return uploaded


def _discard_media(storage: MediaStorage, uris: List[str]) -> None:
    """Supprime les médias d'un scan non enregistré (au mieux : l'échec est journalisé)."""
    try:
        storage.delete(uris)
    except Exception as exc:
        logger.error("Médias orphelins non supprimés (%d) : %s", len(uris), exc, exc_info=True)
    else:
        logger.info("%d média(s) d'un scan non enregistré supprimé(s)", len(uris))
