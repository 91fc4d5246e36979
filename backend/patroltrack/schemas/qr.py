"""
Schéma du contenu encodé dans le QR code d'un checkpoint.

Champs obligatoires : id (identifiant QR du checkpoint) et type = "checkpoint".
Les autres clés (nom, coordonnées, commissariat…) sont informatives et les
clés inconnues sont conservées telles quelles.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

QR_TYPE_CHECKPOINT = "checkpoint"


class CheckpointQrPayload(BaseModel):
    """Contenu JSON d'un QR code de checkpoint."""

    id: str
    type: Literal["checkpoint"]
    name: Optional[str] = None
    lat_long: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    police_station_id: Optional[int] = Field(default=None, alias="policeStationId")

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("L'identifiant du QR code ne peut pas être vide.")
        return v.strip()
