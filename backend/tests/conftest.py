"""
Configuration partagée pour tous les tests.
Override les dépendances get_db et get_media_storage pour éviter toute
connexion réelle à PostgreSQL ou à S3.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from patroltrack.database import get_db
from patroltrack.main import app
from patroltrack.services.storage_service import get_media_storage


@pytest.fixture
def mock_storage():
    """Stockage média factice : renvoie une URI par fichier envoyé."""
    storage = MagicMock()
    storage.store.side_effect = lambda data, content_type, ctx: f"s3://test/{len(storage.store.call_args_list)}"
    return storage


@pytest.fixture
def client(mock_storage):
    """Client HTTP de test avec la BDD et le stockage mockés."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_media_storage] = lambda: mock_storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
