# app/endpoints/auth.py

from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from app.core.database import get_db
from app.core.security import (
    JWTManager,
    PasswordManager,
    SecurityConfig,
    SecurityUtils,
    RolePermissions
)
from app.core.auth_dependencies import (
    get_current_active_user,
    get_current_actor
)
from app.models.models import Utilisateur
from app.schemas.auth_schemas import (
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    TokenResponse,
    UserInfoResponse,
    PermissionsResponse
)
from app.services.mission_repository import MissionRepository
from app.workflow.engine import Actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentification"])

@router.post("/login", response_model=LoginResponse, summary="Authentification de l'utilisateur")
async def login(
    login_data: LoginRequest,
    db: Annotated[Session, Depends(get_db)]
):
    """Authentification par login / mot de passe, retourne un couple de tokens JWT"""
    username = SecurityUtils.sanitize_input(login_data.username)

    user = db.query(Utilisateur).filter(Utilisateur.login == username).first()

    if not user or not PasswordManager.verify_password(login_data.password, user.motDePasse):
        logger.warning(f"Échec de connexion pour '{username}'")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Nom d'utilisateur ou mot de passe incorrect",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.actif:
        logger.warning(f"Connexion refusée pour le compte désactivé '{username}'")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Compte utilisateur désactivé",
        )

    roles = MissionRepository(db).get_roles(user.id)
    token_data = {
        "sub": user.login,
        "user_id": user.id,
        "roles": roles
    }

    access_token = JWTManager.create_access_token(token_data)
    refresh_token = JWTManager.create_refresh_token(token_data)

    logger.info(f"Authentification réussie pour '{username}' (rôles: {', '.join(roles) or 'aucun'})")

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=SecurityConfig.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user_info={
            "id": user.id,
            "login": user.login,
            "nom_complet": user.nom_complet,
            "roles": roles
        }
    )

@router.post("/refresh", response_model=TokenResponse, summary="Rafraîchir le token d'accès")
async def refresh_token(refresh_data: RefreshTokenRequest):
    access_token = JWTManager.refresh_access_token(refresh_data.refresh_token)
    return TokenResponse(
        access_token=access_token,
        expires_in=SecurityConfig.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )

@router.get("/me", response_model=UserInfoResponse, summary="Informations de l'utilisateur connecté")
async def get_current_user_info(
    current_user: Annotated[Utilisateur, Depends(get_current_active_user)],
    actor: Annotated[Actor, Depends(get_current_actor)]
):
    return UserInfoResponse(
        id=current_user.id,
        login=current_user.login,
        nom_complet=current_user.nom_complet,
        email=current_user.email,
        departement=current_user.departement,
        roles=sorted(role.value for role in actor.roles),
        created_at=current_user.created_at
    )

@router.get("/permissions", response_model=PermissionsResponse, summary="Permissions de l'utilisateur connecté")
async def get_user_permissions(actor: Annotated[Actor, Depends(get_current_actor)]):
    """Union des permissions accordées par l'ensemble des rôles détenus"""
    roles = sorted(role.value for role in actor.roles)
    return PermissionsResponse(
        roles=roles,
        permissions=RolePermissions.get_user_permissions(roles)
    )
