"""
Tests unitaires pour la vérification des scans de checkpoints.
Couverture : ordre des contrôles, géofence (bornes incluses), appartenance à la
ronde, double scan, clôture automatique, médias et métadonnées.
"""

import json
import math
import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from patroltrack.exceptions import (
    AlreadyScannedError,
    CheckpointNotFoundError,
    CheckpointNotInRouteError,
    InfrastructureError,
    InvalidPositionError,
    MalformedQRCodeError,
    MediaUploadFailedError,
    NoActiveAssignmentError,
    OutOfRangeError,
    RouteNotFoundError,
)
from patroltrack.models.checkpoint import Checkpoint
from patroltrack.models.checkpoint_scan import CheckpointScan
from patroltrack.models.route import Route
from patroltrack.models.route_assignment import RouteAssignment
from patroltrack.schemas.scan import MediaFile, ScanRequest
from patroltrack.services import geo
from patroltrack.services.scan_service import verify_and_record_scan

SERVICE = "patroltrack.services.scan_service"
CP_POSITION = "19.110273,74.546165"


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------

def make_checkpoint(lat_long=CP_POSITION, scan_radius=100):
    return Checkpoint(
        id=uuid.uuid4(),
        name="Gare centrale",
        lat_long=lat_long,
        scan_radius=scan_radius,
        qr_code=f"CP_1718000000000_{uuid.uuid4().hex[:8].upper()}",
        police_station_id=12,
        is_active=True,
    )


class Scenario:
    """Une ronde de trois checkpoints affectée et démarrée par un agent."""

    def __init__(self, status="in_progress", completed_indexes=()):
        self.user_id = uuid.uuid4()
        self.checkpoints = [make_checkpoint() for _ in range(3)]
        self.route = Route(
            id=uuid.uuid4(),
            name="Ronde de la gare",
            checkpoint_ids=[cp.id for cp in self.checkpoints],
            police_station_id=12,
            priority="high",
            is_active=True,
        )
        self.assignment = RouteAssignment(
            id=uuid.uuid4(),
            user_id=self.user_id,
            route_id=self.route.id,
            police_station_id=12,
            status=status,
            start_date=datetime(2020, 1, 6, 8, 0, tzinfo=timezone.utc),
            completed_checkpoints=[self.checkpoints[i].id for i in completed_indexes],
            is_active=True,
        )
        self.db = MagicMock()
        objects = {Route: self.route, RouteAssignment: self.assignment}
        self.db.get.side_effect = lambda model, ident, **kw: objects.get(model)

    def request(self, checkpoint, **kwargs):
        return ScanRequest(
            user_id=kwargs.get("user_id", self.user_id),
            qr_data=kwargs.get("qr_data", json.dumps({"id": checkpoint.qr_code, "type": "checkpoint"})),
            user_lat_long=kwargs.get("user_lat_long", checkpoint.lat_long),
            assignment_id=kwargs.get("assignment_id", self.assignment.id),
            route_id=kwargs.get("route_id", self.route.id),
            notes=kwargs.get("notes"),
            metadata=kwargs.get("metadata", {}),
        )

    def scan(self, checkpoint, storage=None, media=None, user_agent=None, **kwargs):
        with patch(f"{SERVICE}.get_active_checkpoint_by_qr_code", return_value=checkpoint):
            return verify_and_record_scan(
                self.db, storage or make_storage(), self.request(checkpoint, **kwargs), media, user_agent
            )

    def added_scan(self):
        rows = [c.args[0] for c in self.db.add.call_args_list if isinstance(c.args[0], CheckpointScan)]
        assert len(rows) == 1
        return rows[0]


def make_storage():
    storage = MagicMock()
    counter = iter(range(1, 100))
    storage.store.side_effect = lambda data, content_type, ctx: f"https://bucket.s3/{next(counter)}"
    return storage


def image(name="photo.jpg"):
    return MediaFile(filename=name, content_type="image/jpeg", data=b"\xff\xd8\xff")


def pdf():
    return MediaFile(filename="doc.pdf", content_type="application/pdf", data=b"%PDF")


def north_of_origin(meters):
    """Position à `meters` mètres plein nord du point 0,0."""
    return f"{math.degrees(meters / geo.EARTH_RADIUS_M)!r},0.0"


# ----------------------------------------------------------------
# Scans acceptés
# ----------------------------------------------------------------

class TestScanAccepte:
    def test_premier_scan(self):
        s = Scenario()
        cp = s.checkpoints[0]

        result = s.scan(cp)

        assert result.checkpoint_id == cp.id
        assert result.distance == 0.0
        assert result.assignment_status == "in_progress"
        assert result.progress.total_checkpoints == 3
        assert result.progress.completed_checkpoints == 1
        assert result.progress.percentage == 33
        assert result.progress.is_completed is False
        assert result.progress.remaining_checkpoints == [s.checkpoints[1].id, s.checkpoints[2].id]
        assert s.assignment.completed_checkpoints == [cp.id]
        s.db.commit.assert_called_once()

    def test_ligne_audit_valide(self):
        s = Scenario()
        cp = s.checkpoints[0]

        s.scan(cp, notes="RAS")

        row = s.added_scan()
        assert row.is_valid is True
        assert row.checkpoint_id == cp.id
        assert row.route_id == s.route.id
        assert row.route_assignment_id == s.assignment.id
        assert row.user_lat_long == CP_POSITION
        assert row.distance == 0.0
        assert row.notes == "RAS"
        assert row.images == [] and row.videos == [] and row.audios == []

    def test_ordre_libre(self):
        """Le troisième checkpoint peut être scanné en premier."""
        s = Scenario()
        result = s.scan(s.checkpoints[2])
        assert result.progress.remaining_checkpoints == [s.checkpoints[0].id, s.checkpoints[1].id]

    def test_ronde_parcourue_dans_le_desordre(self):
        s = Scenario()
        a, b, c = s.checkpoints

        s.scan(c)
        s.scan(a)
        result = s.scan(b)

        assert result.assignment_status == "completed"
        assert result.progress.percentage == 100
        assert s.assignment.status == "completed"
        assert set(s.assignment.completed_checkpoints) == {a.id, b.id, c.id}
        assert len(s.assignment.completed_checkpoints) == 3

    def test_dernier_scan_cloture_la_ronde(self):
        s = Scenario(completed_indexes=(2, 0))

        result = s.scan(s.checkpoints[1])

        assert result.assignment_status == "completed"
        assert result.progress.is_completed is True
        assert result.progress.percentage == 100
        assert result.progress.remaining_checkpoints == []
        assert s.assignment.end_date is not None

    def test_distance_egale_au_rayon_acceptee(self):
        s = Scenario()
        with patch(f"{SERVICE}.geo.haversine_distance", return_value=100.0):
            result = s.scan(s.checkpoints[0])
        assert result.distance == 100.0
        assert result.scan_radius == 100

    def test_metadonnees_fusionnees(self):
        s = Scenario()
        cp = s.checkpoints[0]

        s.scan(cp, metadata={"app_version": "2.1.0", "device": "Pixel 7"}, user_agent="PatrolApp/2.1")

        meta = s.added_scan().metadata_
        assert meta["app_version"] == "2.1.0"
        assert meta["device"] == "Pixel 7"
        assert meta["scan_radius"] == 100
        assert meta["police_station_id"] == 12
        assert meta["user_agent"] == "PatrolApp/2.1"
        assert "scanned_at" in meta


# ----------------------------------------------------------------
# Refus, dans l'ordre des contrôles
# ----------------------------------------------------------------

class TestScanRefuse:
    def test_position_invalide(self):
        s = Scenario()
        with pytest.raises(InvalidPositionError):
            s.scan(s.checkpoints[0], user_lat_long="pas,une position")
        s.db.add.assert_not_called()

    def test_position_hors_bornes(self):
        s = Scenario()
        with pytest.raises(InvalidPositionError):
            s.scan(s.checkpoints[0], user_lat_long="91,10")

    def test_position_verifiee_avant_le_qr(self):
        s = Scenario()
        with pytest.raises(InvalidPositionError):
            s.scan(s.checkpoints[0], user_lat_long="abc", qr_data="pas du json")

    def test_qr_illisible(self):
        s = Scenario()
        with pytest.raises(MalformedQRCodeError):
            s.scan(s.checkpoints[0], qr_data="pas du json")

    def test_qr_mauvais_type(self):
        s = Scenario()
        with pytest.raises(MalformedQRCodeError):
            s.scan(s.checkpoints[0], qr_data='{"id": "CP_1", "type": "student"}')

    def test_checkpoint_introuvable(self):
        s = Scenario()
        with patch(f"{SERVICE}.get_active_checkpoint_by_qr_code", return_value=None):
            with pytest.raises(CheckpointNotFoundError):
                verify_and_record_scan(s.db, make_storage(), s.request(s.checkpoints[0]))

    def test_hors_zone(self):
        s = Scenario()
        with patch(f"{SERVICE}.geo.haversine_distance", return_value=100.1):
            with pytest.raises(OutOfRangeError) as exc_info:
                s.scan(s.checkpoints[0])

        assert exc_info.value.details["distance"] == 100.1
        assert exc_info.value.details["required_radius"] == 100
        s.db.add.assert_not_called()
        assert s.assignment.completed_checkpoints == []

    def test_hors_zone_position_reelle(self):
        """Environ 1 km au nord du checkpoint."""
        s = Scenario()
        with pytest.raises(OutOfRangeError) as exc_info:
            s.scan(s.checkpoints[0], user_lat_long="19.119273,74.546165")
        assert 990 < exc_info.value.distance < 1010

    def test_hors_zone_verifie_avant_affectation(self):
        s = Scenario(status="assigned")
        with patch(f"{SERVICE}.geo.haversine_distance", return_value=500.0):
            with pytest.raises(OutOfRangeError):
                s.scan(s.checkpoints[0])

    def test_affectation_non_demarree(self):
        s = Scenario(status="assigned")
        with pytest.raises(NoActiveAssignmentError):
            s.scan(s.checkpoints[0])
        s.db.rollback.assert_called_once()

    @pytest.mark.parametrize("status", ["completed", "cancelled"])
    def test_affectation_terminale(self, status):
        s = Scenario(status=status)
        with pytest.raises(NoActiveAssignmentError):
            s.scan(s.checkpoints[0])

    def test_affectation_d_un_autre_agent(self):
        s = Scenario()
        with pytest.raises(NoActiveAssignmentError):
            s.scan(s.checkpoints[0], user_id=uuid.uuid4())

    def test_affectation_sur_une_autre_ronde(self):
        s = Scenario()
        with pytest.raises(NoActiveAssignmentError):
            s.scan(s.checkpoints[0], route_id=uuid.uuid4())

    def test_affectation_supprimee(self):
        s = Scenario()
        s.assignment.is_active = False
        with pytest.raises(NoActiveAssignmentError):
            s.scan(s.checkpoints[0])

    def test_affectation_verrouillee(self):
        s = Scenario()
        s.scan(s.checkpoints[0])
        first = s.db.get.call_args_list[0]
        assert first.args[0] is RouteAssignment
        assert first.kwargs["with_for_update"] is True

    def test_ronde_introuvable(self):
        s = Scenario()
        s.db.get.side_effect = lambda model, ident, **kw: s.assignment if model is RouteAssignment else None
        with pytest.raises(RouteNotFoundError):
            s.scan(s.checkpoints[0])

    def test_checkpoint_hors_ronde(self):
        s = Scenario()
        with pytest.raises(CheckpointNotInRouteError):
            s.scan(make_checkpoint())
        s.db.add.assert_not_called()

    def test_double_scan(self):
        s = Scenario(completed_indexes=(0,))
        with pytest.raises(AlreadyScannedError):
            s.scan(s.checkpoints[0])
        assert s.assignment.completed_checkpoints == [s.checkpoints[0].id]
        s.db.add.assert_not_called()

    def test_second_scan_identique_refuse(self):
        s = Scenario()
        s.scan(s.checkpoints[0])
        with pytest.raises(AlreadyScannedError):
            s.scan(s.checkpoints[0])
        assert s.assignment.completed_checkpoints == [s.checkpoints[0].id]


# ----------------------------------------------------------------
# Médias
# ----------------------------------------------------------------

class TestScanMedias:
    def test_medias_envoyes_et_references(self):
        s = Scenario()
        storage = make_storage()
        media = [
            image("a.jpg"),
            MediaFile(filename="note.mp3", content_type="audio/mpeg", data=b"ID3"),
        ]

        result = s.scan(s.checkpoints[0], storage=storage, media=media)

        assert storage.store.call_count == 2
        ctx = storage.store.call_args_list[0].args[2]
        assert ctx["checkpoint_id"] == str(s.checkpoints[0].id)
        assert result.media["images"] == ["https://bucket.s3/1"]
        assert result.media["audios"] == ["https://bucket.s3/2"]
        assert s.added_scan().images == ["https://bucket.s3/1"]

    def test_echec_upload_aucune_ecriture(self):
        s = Scenario()
        storage = make_storage()
        storage.store.side_effect = [
            "https://bucket.s3/1",
            MediaUploadFailedError("Échec de l'envoi des fichiers médias."),
        ]

        with pytest.raises(MediaUploadFailedError):
            s.scan(s.checkpoints[0], storage=storage, media=[image("a.jpg"), image("b.jpg")])

        s.db.add.assert_not_called()
        s.db.commit.assert_not_called()
        assert s.assignment.completed_checkpoints == []
        storage.delete.assert_called_once_with(["https://bucket.s3/1"])

    def test_echec_bdd_supprime_les_medias(self):
        s = Scenario()
        s.db.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection lost"))
        storage = make_storage()

        with pytest.raises(InfrastructureError):
            s.scan(s.checkpoints[0], storage=storage, media=[image()])

        storage.delete.assert_called_once_with(["https://bucket.s3/1"])

    def test_echec_suppression_journalise_sans_masquer_l_erreur(self):
        s = Scenario()
        s.db.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection lost"))
        storage = make_storage()
        storage.delete.side_effect = MediaUploadFailedError("S3 indisponible")

        with pytest.raises(InfrastructureError):
            s.scan(s.checkpoints[0], storage=storage, media=[image()])

    def test_trop_d_images(self):
        s = Scenario()
        storage = make_storage()

        with pytest.raises(MediaUploadFailedError) as exc_info:
            s.scan(s.checkpoints[0], storage=storage, media=[image(f"{i}.jpg") for i in range(6)])

        assert exc_info.value.details["kind"] == "images"
        storage.store.assert_not_called()

    def test_type_non_supporte(self):
        s = Scenario()
        storage = make_storage()
        with pytest.raises(MediaUploadFailedError, match="non supporté"):
            s.scan(s.checkpoints[0], storage=storage, media=[pdf()])

        storage.store.assert_not_called()
        s.db.add.assert_not_called()

    def test_medias_non_envoyes_si_controle_echoue(self):
        s = Scenario(completed_indexes=(0,))
        storage = make_storage()

        with pytest.raises(AlreadyScannedError):
            s.scan(s.checkpoints[0], storage=storage, media=[image()])

        storage.store.assert_not_called()
        storage.delete.assert_not_called()

    def test_medias_controles_apres_l_affectation(self):
        s = Scenario(status="assigned")
        storage = make_storage()

        with pytest.raises(NoActiveAssignmentError):
            s.scan(s.checkpoints[0], storage=storage, media=[pdf()])

        storage.store.assert_not_called()

    def test_medias_controles_apres_appartenance_a_la_ronde(self):
        s = Scenario()

        with pytest.raises(CheckpointNotInRouteError):
            s.scan(make_checkpoint(), media=[image(f"{i}.jpg") for i in range(6)])

    def test_medias_controles_apres_double_scan(self):
        s = Scenario(completed_indexes=(0,))

        with pytest.raises(AlreadyScannedError):
            s.scan(s.checkpoints[0], media=[pdf()])

    def test_echec_suppression_inattendu_ne_masque_pas_l_erreur(self):
        s = Scenario()
        s.db.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection lost"))
        storage = make_storage()
        storage.delete.side_effect = RuntimeError("client S3 cassé")

        with pytest.raises(InfrastructureError):
            s.scan(s.checkpoints[0], storage=storage, media=[image()])

        storage.delete.assert_called_once_with(["https://bucket.s3/1"])


# ----------------------------------------------------------------
# Géofence, distances calculées sans patch
# ----------------------------------------------------------------

class TestGeofence:
    def _scenario(self):
        s = Scenario()
        s.checkpoints[0].lat_long = "0.0,0.0"
        return s

    def test_position_au_bord_du_rayon_acceptee(self):
        s = self._scenario()
        position = north_of_origin(99.9999)

        result = s.scan(s.checkpoints[0], user_lat_long=position)

        assert result.distance == 100.0
        assert result.scan_radius == 100

    def test_position_juste_hors_du_rayon_refusee(self):
        s = self._scenario()

        with pytest.raises(OutOfRangeError) as exc_info:
            s.scan(s.checkpoints[0], user_lat_long=north_of_origin(100.1))

        assert exc_info.value.details["distance"] == 100.1
        assert exc_info.value.details["required_radius"] == 100
        s.db.add.assert_not_called()
