"""
Point d'entrée principal de l'API PatrolTrack.
Démarrage : uvicorn patroltrack.main:app --reload  (depuis backend/)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import patroltrack.models  # noqa: F401 (enregistre tous les modèles dans Base.metadata avant les routers)
from patroltrack.config import settings
from patroltrack.exceptions import InfrastructureError
from patroltrack.routers import assignments, checkpoints, routes, scans

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="PatrolTrack API",
    description="API de gestion des rondes de patrouille : checkpoints géolocalisés, affectations et scans QR",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS : tous les ports localhost en développement (à restreindre en production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(checkpoints.router)
app.include_router(routes.router)
app.include_router(assignments.router)
app.include_router(assignments.users_router)
app.include_router(scans.router)


@app.exception_handler(InfrastructureError)
async def infrastructure_exception_handler(request: Request, exc: InfrastructureError) -> JSONResponse:
    """Panne transitoire (base de données, stockage) : le client peut rejouer la requête."""
    logger.error("Erreur d'infrastructure sur %s %s : %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": {
                "error": exc.code,
                "message": str(exc) or "Service momentanément indisponible.",
                "retryable": True,
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "PatrolTrack API", "version": "0.1.0"}
