"""
Tests unitaires pour le service checkpoint.
Couverture : création, lecture, mise à jour (QR conservé), suppression logique.
"""

import json
import uuid
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from patroltrack.exceptions import CheckpointNotFoundError
from patroltrack.models.checkpoint import Checkpoint
from patroltrack.schemas.checkpoint import CheckpointCreate, CheckpointUpdate
from patroltrack.services.checkpoint_service import (
    create_checkpoint,
    delete_checkpoint,
    get_active_checkpoint_by_qr_code,
    get_checkpoint,
    get_checkpoint_qr,
    update_checkpoint,
)


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------

def make_checkpoint(**kwargs):
    return Checkpoint(
        id=kwargs.get("id", uuid.uuid4()),
        name=kwargs.get("name", "Gare centrale"),
        description=kwargs.get("description", None),
        lat_long=kwargs.get("lat_long", "19.110273,74.546165"),
        address=kwargs.get("address", None),
        scan_radius=kwargs.get("scan_radius", 100),
        qr_code=kwargs.get("qr_code", "CP_1718000000000_9F3A01BC"),
        qr_code_url=kwargs.get("qr_code_url", "data:image/png;base64,AAAA"),
        police_station_id=kwargs.get("police_station_id", 12),
        is_active=kwargs.get("is_active", True),
    )


# ----------------------------------------------------------------
# Schémas
# ----------------------------------------------------------------

class TestCheckpointSchemas:
    def test_lat_long_normalise(self):
        data = CheckpointCreate(name="CP", lat_long=" 19.5 , 74.25 ", police_station_id=1)
        assert data.lat_long == "19.5,74.25"

    def test_lat_long_hors_bornes_refuse(self):
        with pytest.raises(ValidationError, match="comprise entre"):
            CheckpointCreate(name="CP", lat_long="95,10", police_station_id=1)

    def test_nom_vide_refuse(self):
        with pytest.raises(ValidationError):
            CheckpointCreate(name="   ", lat_long="19.5,74.25", police_station_id=1)

    def test_rayon_hors_bornes_refuse(self):
        with pytest.raises(ValidationError, match="rayon"):
            CheckpointCreate(name="CP", lat_long="19.5,74.25", police_station_id=1, scan_radius=0)

    def test_commissariat_negatif_refuse(self):
        with pytest.raises(ValidationError):
            CheckpointCreate(name="CP", lat_long="19.5,74.25", police_station_id=-3)


# ----------------------------------------------------------------
# create_checkpoint
# ----------------------------------------------------------------

class TestCreateCheckpoint:
    def test_creation_genere_qr_et_rayon_par_defaut(self):
        db = MagicMock()
        data = CheckpointCreate(name="Gare centrale", lat_long="19.110273,74.546165", police_station_id=12)

        result = create_checkpoint(db, data)

        db.add.assert_called_once()
        db.commit.assert_called_once()
        added = db.add.call_args[0][0]
        assert added.scan_radius == 100
        assert added.is_active is True
        assert added.qr_code.startswith("CP_")
        assert added.qr_code_url.startswith("data:image/png;base64,")
        assert result.qr_code == added.qr_code
        assert result.latitude == pytest.approx(19.110273)
        assert result.longitude == pytest.approx(74.546165)

    def test_creation_avec_rayon_personnalise(self):
        db = MagicMock()
        data = CheckpointCreate(name="Parc", lat_long="48.85,2.35", police_station_id=3, scan_radius=250)

        result = create_checkpoint(db, data)

        assert result.scan_radius == 250

    def test_rollback_si_commit_echoue(self):
        db = MagicMock()
        db.commit.side_effect = RuntimeError("boom")
        data = CheckpointCreate(name="Parc", lat_long="48.85,2.35", police_station_id=3)

        with pytest.raises(RuntimeError):
            create_checkpoint(db, data)
        db.rollback.assert_called_once()


# ----------------------------------------------------------------
# Lecture
# ----------------------------------------------------------------

class TestGetCheckpoint:
    def test_checkpoint_introuvable(self):
        db = MagicMock()
        db.get.return_value = None
        with pytest.raises(CheckpointNotFoundError):
            get_checkpoint(db, uuid.uuid4())

    def test_checkpoint_inactif_traite_comme_introuvable(self):
        db = MagicMock()
        db.get.return_value = make_checkpoint(is_active=False)
        with pytest.raises(CheckpointNotFoundError) as exc_info:
            get_checkpoint(db, uuid.uuid4())
        assert exc_info.value.status_code == 404

    def test_checkpoint_actif(self):
        cp = make_checkpoint()
        db = MagicMock()
        db.get.return_value = cp
        assert get_checkpoint(db, cp.id) is cp

    def test_recherche_par_qr_code(self):
        cp = make_checkpoint()
        db = MagicMock()
        db.execute.return_value.scalar.return_value = cp
        assert get_active_checkpoint_by_qr_code(db, cp.qr_code) is cp


# ----------------------------------------------------------------
# update_checkpoint
# ----------------------------------------------------------------

class TestUpdateCheckpoint:
    def test_mise_a_jour_description_sans_regenerer_qr(self):
        cp = make_checkpoint()
        db = MagicMock()
        db.get.return_value = cp

        with patch("patroltrack.services.checkpoint_service.qr_service.render_qr_data_url") as render:
            result = update_checkpoint(db, cp.id, CheckpointUpdate(description="Entrée nord"))

        render.assert_not_called()
        assert result.description == "Entrée nord"
        assert cp.qr_code_url == "data:image/png;base64,AAAA"
        db.commit.assert_called_once()

    def test_changement_coordonnees_regenere_image_et_garde_identifiant(self):
        cp = make_checkpoint()
        db = MagicMock()
        db.get.return_value = cp

        with patch(
            "patroltrack.services.checkpoint_service.qr_service.render_qr_data_url",
            return_value="data:image/png;base64,NEW",
        ) as render:
            result = update_checkpoint(db, cp.id, CheckpointUpdate(lat_long="19.2,74.6"))

        render.assert_called_once()
        encoded = json.loads(render.call_args[0][0])
        assert encoded["id"] == "CP_1718000000000_9F3A01BC"
        assert encoded["lat_long"] == "19.2,74.6"
        assert cp.qr_code == "CP_1718000000000_9F3A01BC"
        assert cp.qr_code_url == "data:image/png;base64,NEW"
        assert result.latitude == pytest.approx(19.2)

    def test_nom_none_ignore(self):
        """Un champ obligatoire envoyé à null n'est pas écrasé."""
        cp = make_checkpoint(name="Gare")
        db = MagicMock()
        db.get.return_value = cp

        update_checkpoint(db, cp.id, CheckpointUpdate(name=None, address=None))

        assert cp.name == "Gare"
        assert cp.address is None

    def test_checkpoint_inactif_refuse(self):
        db = MagicMock()
        db.get.return_value = make_checkpoint(is_active=False)
        with pytest.raises(CheckpointNotFoundError):
            update_checkpoint(db, uuid.uuid4(), CheckpointUpdate(name="X"))


# ----------------------------------------------------------------
# delete_checkpoint / get_checkpoint_qr
# ----------------------------------------------------------------

class TestDeleteCheckpoint:
    def test_suppression_logique(self):
        cp = make_checkpoint()
        db = MagicMock()
        db.get.return_value = cp

        delete_checkpoint(db, cp.id)

        assert cp.is_active is False
        db.delete.assert_not_called()
        db.commit.assert_called_once()

    def test_suppression_checkpoint_introuvable(self):
        db = MagicMock()
        db.get.return_value = None
        with pytest.raises(CheckpointNotFoundError):
            delete_checkpoint(db, uuid.uuid4())


class TestCheckpointQr:
    def test_qr_contient_payload_et_image(self):
        cp = make_checkpoint()
        db = MagicMock()
        db.get.return_value = cp

        result = get_checkpoint_qr(db, cp.id)

        payload = json.loads(result.qr_data)
        assert payload["id"] == cp.qr_code
        assert payload["type"] == "checkpoint"
        assert payload["policeStationId"] == 12
        assert result.qr_code_url == cp.qr_code_url
