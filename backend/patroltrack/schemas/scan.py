"""
Schémas Pydantic pour le scan d'un checkpoint par un agent.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ScanRequest(BaseModel):
    """Champs du formulaire de scan (hors fichiers joints)."""
    user_id: uuid.UUID
    qr_data: str                  # Contenu brut lu dans le QR code
    user_lat_long: str            # Position GPS de l'agent "lat,lng" (validée par le service)
    assignment_id: uuid.UUID
    route_id: uuid.UUID
    notes: Optional[str] = None
    metadata: Dict[str, Any] = {}  # Infos appareil, version de l'app…


class MediaFile(BaseModel):
    """Fichier joint à un scan, déjà lu en mémoire."""
    filename: str
    content_type: str
    data: bytes


class ScanProgress(BaseModel):
    total_checkpoints: int
    completed_checkpoints: int
    percentage: int
    is_completed: bool
    remaining_checkpoints: List[uuid.UUID]


class ScanResult(BaseModel):
    """Réponse renvoyée après un scan accepté."""
    scan_id: uuid.UUID
    checkpoint_id: uuid.UUID
    checkpoint_name: str
    distance: float
    scan_radius: int
    assignment_id: uuid.UUID
    assignment_status: str
    progress: ScanProgress
    media: Dict[str, List[str]]
    scanned_at: datetime
