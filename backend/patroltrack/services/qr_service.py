"""
Codec des QR codes de checkpoints.

- encode_checkpoint_payload : checkpoint → chaîne JSON imprimée dans le QR
- decode_checkpoint_payload : chaîne lue par l'app → CheckpointQrPayload
- render_qr_data_url       : image PNG du QR en data URL (stockée sur le checkpoint)
"""

import base64
import io
import json
import secrets
import time

import qrcode
from pydantic import ValidationError

from patroltrack.config import settings
from patroltrack.exceptions import MalformedQRCodeError
from patroltrack.schemas.qr import QR_TYPE_CHECKPOINT, CheckpointQrPayload
from patroltrack.services.geo import parse_lat_long


def generate_qr_code_id() -> str:
    """Génère l'identifiant unique d'un QR code de checkpoint (format : CP_<epoch ms>_XXXXXXXX)."""
    return f"CP_{int(time.time() * 1000)}_{secrets.token_hex(4).upper()}"


def encode_checkpoint_payload(
    qr_code: str,
    name: str,
    lat_long: str,
    police_station_id: int,
) -> str:
    """Sérialise la référence d'un checkpoint pour l'impression dans le QR code."""
    point = parse_lat_long(lat_long)
    payload = CheckpointQrPayload(
        id=qr_code,
        type=QR_TYPE_CHECKPOINT,
        name=name,
        lat_long=lat_long,
        latitude=point.latitude,
        longitude=point.longitude,
        police_station_id=police_station_id,
    )
    return payload.model_dump_json(by_alias=True)


def decode_checkpoint_payload(raw: str) -> CheckpointQrPayload:
    """
    Décode le contenu d'un QR code scanné.

    Lève MalformedQRCodeError si le contenu n'est pas un objet JSON portant
    un identifiant et le type "checkpoint".
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise MalformedQRCodeError("Format de QR code invalide.")

    if not isinstance(data, dict):
        raise MalformedQRCodeError("Format de QR code invalide.")

    try:
        return CheckpointQrPayload.model_validate(data)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise MalformedQRCodeError("QR code de checkpoint invalide.", invalid_fields=fields)


def render_qr_data_url(qr_data: str) -> str:
    """Génère l'image PNG du QR code et la renvoie sous forme de data URL."""
    qr = qrcode.QRCode(version=None, box_size=settings.QR_BOX_SIZE, border=settings.QR_BORDER)
    qr.add_data(qr_data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
