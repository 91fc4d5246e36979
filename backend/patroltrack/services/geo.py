"""
Calculs géographiques : distance de Haversine et conversion des coordonnées
"lat,lng" stockées en base vers un GeoPoint.
"""

import math
from dataclasses import dataclass

from patroltrack.exceptions import InvalidCoordinateError

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class GeoPoint:
    """Couple latitude / longitude en degrés décimaux."""

    latitude: float
    longitude: float


def validate_point(latitude: float, longitude: float) -> GeoPoint:
    """Construit un GeoPoint après contrôle des bornes (−90..90, −180..180)."""
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise InvalidCoordinateError(
            "Latitude ou longitude invalide.",
            latitude=str(latitude),
            longitude=str(longitude),
        )
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise InvalidCoordinateError(
            "La latitude doit être comprise entre -90 et 90, la longitude entre -180 et 180.",
            latitude=latitude,
            longitude=longitude,
        )
    return GeoPoint(latitude=latitude, longitude=longitude)


def parse_lat_long(value: str) -> GeoPoint:
    """
    Convertit une chaîne "latitude,longitude" en GeoPoint.

    Lève InvalidCoordinateError si le format ou les bornes sont invalides.
    """
    if not isinstance(value, str):
        raise InvalidCoordinateError("lat_long doit être une chaîne de caractères.")

    parts = value.split(",")
    if len(parts) != 2:
        raise InvalidCoordinateError(
            'lat_long doit être au format "latitude,longitude".',
            lat_long=value,
        )

    try:
        latitude = float(parts[0].strip())
        longitude = float(parts[1].strip())
    except ValueError:
        raise InvalidCoordinateError("Latitude ou longitude invalide.", lat_long=value)

    return validate_point(latitude, longitude)


def format_lat_long(point: GeoPoint) -> str:
    """Forme persistée d'un GeoPoint."""
    return f"{point.latitude},{point.longitude}"


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Distance orthodromique en mètres entre deux points (formule de Haversine)."""
    for point in (a, b):
        if math.isnan(point.latitude) or math.isnan(point.longitude):
            raise InvalidCoordinateError("Coordonnée NaN dans le calcul de distance.")

    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    delta_phi = math.radians(b.latitude - a.latitude)
    delta_lambda = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    h = min(1.0, h)  # Arrondi flottant pour des points antipodaux
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c
