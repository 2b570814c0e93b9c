import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.endpoints import auth
from app.api.endpoints import dashboard
from app.api.endpoints import missions
from app.api.endpoints import projects

from app.core.config import FRONTEND_ORIGINS
from app.core.security_middleware import setup_security_middlewares
from app.core.database import Base, engine

# Configuration du logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gère les événements de démarrage et d'arrêt de l'application FastAPI.
    """
    # Crée les tables de la base de données au démarrage de l'application
    Base.metadata.create_all(bind=engine)
    logger.info("Tables de la base de données vérifiées/créées.")

    yield

    logger.info("Arrêt de l'application FastAPI...")
    engine.dispose()

app = FastAPI(
    title="ONEE Bons de Mission API",
    description="API de création, soumission et validation des bons de mission.",
    version="1.0.0",
    lifespan=lifespan
)

# Configuration CORS (Cross-Origin Resource Sharing)
app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configuration des middlewares de sécurité personnalisés
app = setup_security_middlewares(app)

app.include_router(auth.router)
app.include_router(missions.router)
app.include_router(projects.router)
app.include_router(dashboard.router)

@app.get("/")
async def root():
    """Endpoint racine de l'API."""
    return {"message": "Welcome to ONEE Bons de Mission API!"}
