# app/core/auth_dependencies.py
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.core.security import JWTManager, TokenData, RolePermissions
from app.models.models import Utilisateur
from app.services.mission_repository import MissionRepository
from app.workflow.engine import Actor

# Configuration du security scheme
security = HTTPBearer()

async def get_current_user_token(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> TokenData:
    """Extraire et valider le token JWT"""
    return JWTManager.verify_token(credentials.credentials)

async def get_current_user(
    token_data: Annotated[TokenData, Depends(get_current_user_token)],
    db: Annotated[Session, Depends(get_db)]
) -> Utilisateur:
    """Obtenir l'utilisateur actuel depuis la base de données"""
    user = db.query(Utilisateur).filter(
        Utilisateur.login == token_data.username
    ).first()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Utilisateur non trouvé",
        )

    return user

async def get_current_active_user(
    current_user: Annotated[Utilisateur, Depends(get_current_user)]
) -> Utilisateur:
    """Obtenir l'utilisateur actuel s'il est actif"""
    if not current_user.actif:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Compte utilisateur désactivé",
        )
    return current_user

async def get_current_actor(
    current_user: Annotated[Utilisateur, Depends(get_current_active_user)],
    db: Annotated[Session, Depends(get_db)]
) -> Actor:
    """
    Acteur transmis au moteur de validation.
    Les rôles sont relus en base à chaque requête, jamais depuis le token.
    """
    role_names = MissionRepository(db).get_roles(current_user.id)
    return Actor.from_role_names(current_user.id, role_names)

# Fonctions de création de dépendances pour les permissions
def require_permission(permission: str):
    """Créer une dépendance qui vérifie une permission spécifique"""
    async def permission_dependency(
        actor: Annotated[Actor, Depends(get_current_actor)]
    ) -> Actor:
        role_names = [role.value for role in actor.roles]
        if not RolePermissions.has_permission(role_names, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission requise: {permission}",
            )
        return actor

    return permission_dependency
