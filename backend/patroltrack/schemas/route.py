"""
Schémas Pydantic pour les rondes.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from patroltrack.models.route import VALID_PRIORITIES

MIN_CHECKPOINTS = 1
MAX_CHECKPOINTS = 50
MAX_ESTIMATED_DURATION = 1440  # 24 heures


def _check_checkpoint_list(v: List[uuid.UUID]) -> List[uuid.UUID]:
    if len(v) < MIN_CHECKPOINTS:
        raise ValueError("Une ronde doit contenir au moins un checkpoint.")
    if len(v) > MAX_CHECKPOINTS:
        raise ValueError(f"Une ronde ne peut pas contenir plus de {MAX_CHECKPOINTS} checkpoints.")
    return v


def _check_name(v: str) -> str:
    v = v.strip()
    if len(v) < 3:
        raise ValueError("Le nom de la ronde doit contenir au moins 3 caractères.")
    if len(v) > 255:
        raise ValueError("Le nom de la ronde ne peut pas dépasser 255 caractères.")
    return v


class RouteCreate(BaseModel):
    name: str
    checkpoint_ids: List[uuid.UUID]
    police_station_id: int
    description: Optional[str] = None
    priority: str = "medium"
    estimated_duration: Optional[int] = None  # Minutes
    created_by: Optional[uuid.UUID] = None

    @field_validator("name")
    @classmethod
    def valid_name(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("checkpoint_ids")
    @classmethod
    def valid_checkpoint_count(cls, v: List[uuid.UUID]) -> List[uuid.UUID]:
        return _check_checkpoint_list(v)

    @field_validator("police_station_id")
    @classmethod
    def positive_station(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("police_station_id doit être un entier positif.")
        return v

    @field_validator("priority")
    @classmethod
    def valid_priority(cls, v: str) -> str:
        if v not in VALID_PRIORITIES:
            raise ValueError(f"Priorité invalide. Valeurs acceptées : {VALID_PRIORITIES}")
        return v

    @field_validator("estimated_duration")
    @classmethod
    def valid_duration(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= MAX_ESTIMATED_DURATION:
            raise ValueError(f"La durée estimée doit être comprise entre 0 et {MAX_ESTIMATED_DURATION} minutes.")
        return v


class RouteUpdate(BaseModel):
    """Champs modifiables d'une ronde. Les champs absents ne sont pas modifiés."""
    name: Optional[str] = None
    checkpoint_ids: Optional[List[uuid.UUID]] = None
    police_station_id: Optional[int] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    estimated_duration: Optional[int] = None

    @field_validator("name")
    @classmethod
    def valid_name(cls, v: Optional[str]) -> Optional[str]:
        return _check_name(v) if v is not None else v

    @field_validator("checkpoint_ids")
    @classmethod
    def valid_checkpoint_count(cls, v: Optional[List[uuid.UUID]]) -> Optional[List[uuid.UUID]]:
        return _check_checkpoint_list(v) if v is not None else v

    @field_validator("police_station_id")
    @classmethod
    def positive_station(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("police_station_id doit être un entier positif.")
        return v

    @field_validator("priority")
    @classmethod
    def valid_priority(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_PRIORITIES:
            raise ValueError(f"Priorité invalide. Valeurs acceptées : {VALID_PRIORITIES}")
        return v

    @field_validator("estimated_duration")
    @classmethod
    def valid_duration(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= MAX_ESTIMATED_DURATION:
            raise ValueError(f"La durée estimée doit être comprise entre 0 et {MAX_ESTIMATED_DURATION} minutes.")
        return v


class CheckpointIdsValidationRequest(BaseModel):
    checkpoint_ids: List[uuid.UUID]


class CheckpointIdsValidation(BaseModel):
    """Résultat de la validation d'une liste de checkpoints pour une ronde."""
    valid: bool
    message: str
    total_provided: int
    duplicate_ids: List[uuid.UUID] = []
    invalid_ids: List[uuid.UUID] = []
    inactive_ids: List[uuid.UUID] = []
    valid_ids: List[uuid.UUID] = []


class RouteResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str]
    checkpoint_ids: List[uuid.UUID]
    total_checkpoints: int
    police_station_id: int
    priority: str
    estimated_duration: Optional[int]
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
