"""
Schémas Pydantic pour les checkpoints.
Création et mise à jour par un administrateur.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from patroltrack.services.geo import parse_lat_long

MAX_SCAN_RADIUS_M = 10_000


def _check_lat_long(v: str) -> str:
    # InvalidCoordinateError hérite de ValueError : pydantic la transforme en 422
    point = parse_lat_long(v)
    return f"{point.latitude},{point.longitude}"


class CheckpointCreate(BaseModel):
    """Données nécessaires pour créer un checkpoint."""
    name: str
    lat_long: str
    police_station_id: int
    description: Optional[str] = None
    address: Optional[str] = None
    scan_radius: Optional[int] = None  # Rayon par défaut de la configuration si absent

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom du checkpoint ne peut pas être vide.")
        return v.strip()

    @field_validator("lat_long")
    @classmethod
    def valid_lat_long(cls, v: str) -> str:
        return _check_lat_long(v)

    @field_validator("police_station_id")
    @classmethod
    def positive_station(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("police_station_id doit être un entier positif.")
        return v

    @field_validator("scan_radius")
    @classmethod
    def valid_radius(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= MAX_SCAN_RADIUS_M:
            raise ValueError(f"Le rayon de scan doit être compris entre 1 et {MAX_SCAN_RADIUS_M} mètres.")
        return v


class CheckpointUpdate(BaseModel):
    """Champs modifiables d'un checkpoint. Les champs absents ne sont pas modifiés."""
    name: Optional[str] = None
    description: Optional[str] = None
    lat_long: Optional[str] = None
    address: Optional[str] = None
    scan_radius: Optional[int] = None
    police_station_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Le nom du checkpoint ne peut pas être vide.")
        return v.strip() if v is not None else v

    @field_validator("lat_long")
    @classmethod
    def valid_lat_long(cls, v: Optional[str]) -> Optional[str]:
        return _check_lat_long(v) if v is not None else v

    @field_validator("police_station_id")
    @classmethod
    def positive_station(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("police_station_id doit être un entier positif.")
        return v

    @field_validator("scan_radius")
    @classmethod
    def valid_radius(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= MAX_SCAN_RADIUS_M:
            raise ValueError(f"Le rayon de scan doit être compris entre 1 et {MAX_SCAN_RADIUS_M} mètres.")
        return v


class CheckpointResponse(BaseModel):
    """Réponse renvoyée après création ou lecture d'un checkpoint."""
    id: uuid.UUID
    name: str
    description: Optional[str]
    lat_long: str
    latitude: float
    longitude: float
    address: Optional[str]
    scan_radius: int
    qr_code: str
    police_station_id: int
    is_active: bool
    created_at: Optional[datetime] = None


class CheckpointQrResponse(BaseModel):
    """QR code d'un checkpoint : contenu encodé et image PNG (data URL)."""
    checkpoint_id: uuid.UUID
    name: str
    lat_long: str
    police_station_id: int
    qr_code: str
    qr_data: str
    qr_code_url: Optional[str]
