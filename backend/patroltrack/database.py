"""
Configuration de la connexion à la base de données PostgreSQL.
Utilise SQLAlchemy avec un moteur synchrone et des sessions par requête.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from patroltrack.config import settings
from patroltrack.exceptions import InfrastructureError

logger = logging.getLogger(__name__)

# pool_pre_ping : une connexion coupée par PostgreSQL est détectée avant usage
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Délimite une unité de travail atomique sur la session.

    - Commit si le bloc se termine normalement
    - Rollback sur toute exception, qui est ensuite propagée
    - Les pannes de connexion (OperationalError, InterfaceError) sont converties
      en InfrastructureError, seule catégorie que l'appelant peut rejouer
    """
    try:
        yield db
        db.commit()
    except (OperationalError, InterfaceError) as exc:
        db.rollback()
        logger.error("Erreur d'infrastructure BDD : %s", exc, exc_info=True)
        raise InfrastructureError("La base de données est momentanément indisponible.") from exc
    except Exception:
        db.rollback()
        raise
