"""
Router pour le scan des checkpoints depuis l'app mobile.

Requête multipart : champs du formulaire + fichiers joints optionnels
(images, videos, audios).
"""

import json
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from patroltrack.database import get_db
from patroltrack.exceptions import PatrolError
from patroltrack.schemas.scan import MediaFile, ScanRequest, ScanResult
from patroltrack.services import scan_service
from patroltrack.services.storage_service import MediaStorage, get_media_storage

router = APIRouter(prefix="/api/v1/scans", tags=["Scans"])


async def _read_files(files: Optional[List[UploadFile]]) -> List[MediaFile]:
    media = []
    for f in files or []:
        media.append(
            MediaFile(
                filename=f.filename or "media",
                content_type=f.content_type or "application/octet-stream",
                data=await f.read(),
            )
        )
    return media


@router.post("", response_model=ScanResult, status_code=201, summary="Scanner un checkpoint")
async def scan_checkpoint(
    request: Request,
    user_id: uuid.UUID = Form(...),
    qr_data: str = Form(...),
    user_lat_long: str = Form(...),
    assignment_id: uuid.UUID = Form(...),
    route_id: uuid.UUID = Form(...),
    notes: Optional[str] = Form(None),
    metadata: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    videos: Optional[List[UploadFile]] = File(None),
    audios: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    storage: MediaStorage = Depends(get_media_storage),
):
    """
    Vérifie et enregistre le scan d'un checkpoint.

    Refus possibles : position invalide, QR illisible, checkpoint introuvable,
    agent hors du rayon (distance et rayon requis renvoyés), pas de ronde en
    cours, checkpoint hors ronde ou déjà scanné, échec d'envoi des médias.
    `metadata` est un objet JSON optionnel (infos appareil, version de l'app…).
    """
    try:
        extra = json.loads(metadata) if metadata else {}
    except ValueError:
        raise HTTPException(status_code=400, detail="metadata doit être un objet JSON.")
    if not isinstance(extra, dict):
        raise HTTPException(status_code=400, detail="metadata doit être un objet JSON.")

    data = ScanRequest(
        user_id=user_id,
        qr_data=qr_data,
        user_lat_long=user_lat_long,
        assignment_id=assignment_id,
        route_id=route_id,
        notes=notes,
        metadata=extra,
    )

    media = (await _read_files(images)) + (await _read_files(videos)) + (await _read_files(audios))

    try:
        # Requêtes SQL et envois S3 bloquants : hors de la boucle d'événements
        return await run_in_threadpool(
            scan_service.verify_and_record_scan,
            db, storage, data, media, user_agent=request.headers.get("user-agent"),
        )
    except PatrolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
