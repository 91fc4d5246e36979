"""
Stockage des médias joints aux scans (photos, vidéos, audios) sur S3.

Le cœur métier ne dépend que du contrat MediaStorage :
    store(data, content_type, owner_context) → URI
    delete(uris)
Toute erreur de stockage est remontée en MediaUploadFailedError.
"""

import logging
import mimetypes
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from patroltrack.config import settings
from patroltrack.exceptions import MediaUploadFailedError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: Dict[str, str] = {
    # Images
    "image/jpeg": "images",
    "image/jpg": "images",
    "image/png": "images",
    "image/gif": "images",
    "image/webp": "images",
    # Vidéos
    "video/mp4": "videos",
    "video/mpeg": "videos",
    "video/quicktime": "videos",
    "video/x-msvideo": "videos",
    "video/webm": "videos",
    # Audio
    "audio/mpeg": "audios",
    "audio/wav": "audios",
    "audio/mp4": "audios",
    "audio/ogg": "audios",
    "audio/webm": "audios",
}

MEDIA_KINDS = ("images", "videos", "audios")


class MediaStorage(Protocol):
    def store(self, data: bytes, content_type: str, owner_context: Dict[str, str]) -> str: ...

    def delete(self, uris: List[str]) -> None: ...


def media_kind(content_type: str) -> str:
    """Catégorie (images / videos / audios) d'un type MIME accepté."""
    kind = ALLOWED_MIME_TYPES.get(content_type)
    if kind is None:
        raise MediaUploadFailedError(
            f"Type de fichier non supporté : {content_type}.",
            content_type=content_type,
        )
    return kind


def media_limits() -> Dict[str, int]:
    """Nombre maximum de fichiers par catégorie et par scan."""
    return {
        "images": settings.MEDIA_MAX_IMAGES,
        "videos": settings.MEDIA_MAX_VIDEOS,
        "audios": settings.MEDIA_MAX_AUDIOS,
    }


def build_object_key(content_type: str, owner_context: Dict[str, str]) -> str:
    """
    Clé S3 d'un média :
    checkpoint-scans/<catégorie>/<AAAA-MM-JJ>/<agent>-<checkpoint>-<uuid><ext>
    """
    kind = media_kind(content_type)
    ext = mimetypes.guess_extension(content_type) or ""
    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    user_id = owner_context.get("user_id", "anonymous")
    checkpoint_id = owner_context.get("checkpoint_id", "unknown")
    return f"checkpoint-scans/{kind}/{day}/{user_id}-{checkpoint_id}-{uuid.uuid4().hex}{ext}"


class S3MediaStorage:
    """Implémentation S3 (boto3) du stockage des médias."""

    def __init__(self, bucket: str = None, region: str = None):
        self.bucket = bucket or settings.AWS_S3_BUCKET_NAME
        self.region = region or settings.AWS_REGION

    @property
    def is_configured(self) -> bool:
        return bool(settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY and self.bucket)

    def _get_client(self):
        """Crée le client boto3 S3."""
        import boto3

        return boto3.client(
            "s3",
            region_name=self.region,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )

    def _url_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _key_from_url(self, url: str) -> str:
        return url.split(".amazonaws.com/", 1)[-1]

    def store(self, data: bytes, content_type: str, owner_context: Dict[str, str]) -> str:
        if not self.is_configured:
            raise MediaUploadFailedError("Le stockage S3 n'est pas configuré.")

        if len(data) > settings.MEDIA_MAX_FILE_SIZE:
            raise MediaUploadFailedError(
                "Fichier trop volumineux.",
                size=len(data),
                max_size=settings.MEDIA_MAX_FILE_SIZE,
            )

        key = build_object_key(content_type, owner_context)
        try:
            self._get_client().put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata={k: str(v) for k, v in owner_context.items()},
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Échec upload S3 %s : %s", key, exc)
            raise MediaUploadFailedError("Échec de l'envoi des fichiers médias.", reason=str(exc)) from exc

        logger.info("Média envoyé sur S3 : %s", key)
        return self._url_for(key)

    def delete(self, uris: List[str]) -> None:
        if not uris:
            return
        if not self.is_configured:
            raise MediaUploadFailedError("Le stockage S3 n'est pas configuré.")

        objects = [{"Key": self._key_from_url(u)} for u in uris]
        try:
            self._get_client().delete_objects(Bucket=self.bucket, Delete={"Objects": objects, "Quiet": True})
        except (BotoCoreError, ClientError) as exc:
            logger.error("Échec suppression S3 (%d objets) : %s", len(objects), exc)
            raise MediaUploadFailedError("Échec de la suppression des fichiers médias.", reason=str(exc)) from exc

        logger.info("%d média(s) supprimé(s) de S3", len(objects))


def get_media_storage() -> MediaStorage:
    """Dépendance FastAPI : stockage des médias."""
    return S3MediaStorage()
