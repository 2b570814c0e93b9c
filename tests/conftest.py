"""Shared fixtures: in-memory SQLite database, users with roles, API client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.core.database import Base, SessionLocal, engine, get_db
from app.core.security import JWTManager, PasswordManager
from app.main import app
from app.models.models import Project, UserRole, Utilisateur
from app.schemas.schemas import ExpenseInput, MissionCreate
from app.services.mission_service import MissionService
from app.workflow.engine import Actor

PASSWORD = "Secret123"
# Un seul hachage bcrypt pour toute la session de tests
PASSWORD_HASH = PasswordManager.get_password_hash(PASSWORD)

USER_ROLES = {
    "agent": ["agent"],
    "agent2": ["agent"],
    "chef": ["agent", "chef_service"],
    "directeur": ["directeur"],
    "directeur2": ["directeur"],
    "finance": ["finance"],
    "admin": ["admin"],
    "cumul": ["chef_service", "directeur"],
}


def make_user(db, login: str, roles: list, actif: bool = True) -> Utilisateur:
    user = Utilisateur(
        login=login,
        motDePasse=PASSWORD_HASH,
        nom_complet=login.capitalize(),
        email=f"{login}@onee.test",
        departement="DSI",
        actif=actif,
    )
    user.roles = [UserRole(role=role) for role in roles]
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def actor_for(user: Utilisateur) -> Actor:
    return Actor.from_role_names(user.id, user.role_names)


def auth_headers(user: Utilisateur) -> dict:
    token = JWTManager.create_access_token(
        {"sub": user.login, "user_id": user.id, "roles": user.role_names}
    )
    return {"Authorization": f"Bearer {token}"}


def make_mission_data(**overrides) -> MissionCreate:
    data = {
        "title": "Inspection poste source",
        "description": "Visite technique trimestrielle",
        "destination": "Kaolack",
        "start_date": date(2024, 3, 4),
        "end_date": date(2024, 3, 6),
        "expenses": ExpenseInput(
            per_diem_days=Decimal("3"),
            per_diem_rate=Decimal("10000"),
            accommodation_days=Decimal("2"),
            accommodation_unit_price=Decimal("15000"),
        ),
    }
    data.update(overrides)
    return MissionCreate(**data)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def users(db) -> dict:
    return {login: make_user(db, login, roles) for login, roles in USER_ROLES.items()}


@pytest.fixture
def actors(users) -> dict:
    return {login: actor_for(user) for login, user in users.items()}


@pytest.fixture
def project(db) -> Project:
    project = Project(
        code="PRJ-001",
        name="Électrification rurale",
        total_budget=Decimal("1000000.00"),
        spent_budget=Decimal("750000.00"),
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def service(db) -> MissionService:
    return MissionService(db)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
