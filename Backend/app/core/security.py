# app/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, status
from pydantic import BaseModel
import secrets
import os

class SecurityConfig:
    """Configuration de sécurité centralisée"""

    # JWT Configuration
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
    REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

    # Password Configuration
    PWD_CONTEXT = CryptContext(schemes=["bcrypt"], deprecated="auto")

    # Security Headers
    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "X-XSS-Protection": "1; mode=block",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "Content-Security-Policy": "default-src 'self'",
        "Referrer-Policy": "strict-origin-when-cross-origin"
    }

    # Rate Limiting
    RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes")
    RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "900"))  # 15 minutes
    LOGIN_RATE_LIMIT_REQUESTS = int(os.getenv("LOGIN_RATE_LIMIT_REQUESTS", "10"))

class TokenData(BaseModel):
    """Modèle pour les données du token"""
    username: Optional[str] = None
    user_id: Optional[int] = None
    # Indicatif seulement: les rôles font foi en base à chaque décision
    roles: List[str] = []

class PasswordManager:
    """Gestionnaire des mots de passe"""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Vérifier un mot de passe"""
        try:
            return SecurityConfig.PWD_CONTEXT.verify(plain_password, hashed_password)
        except ValueError:
            return False

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Hasher un mot de passe"""
        return SecurityConfig.PWD_CONTEXT.hash(password)

class JWTManager:
    """Gestionnaire des tokens JWT"""

    @staticmethod
    def _encode(data: dict, expire: datetime, token_type: str) -> str:
        to_encode = data.copy()
        to_encode.update({
            "exp": expire,
            "iat": datetime.now(timezone.utc),
            "type": token_type
        })
        return jwt.encode(to_encode, SecurityConfig.SECRET_KEY, algorithm=SecurityConfig.ALGORITHM)

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Créer un token d'accès"""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=SecurityConfig.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        return JWTManager._encode(data, expire, "access")

    @staticmethod
    def create_refresh_token(data: dict) -> str:
        """Créer un token de rafraîchissement"""
        expire = datetime.now(timezone.utc) + timedelta(days=SecurityConfig.REFRESH_TOKEN_EXPIRE_DAYS)
        return JWTManager._encode(data, expire, "refresh")

    @staticmethod
    def verify_token(token: str, token_type: str = "access") -> TokenData:
        """Vérifier et décoder un token"""
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(token, SecurityConfig.SECRET_KEY, algorithms=[SecurityConfig.ALGORITHM])
        except JWTError:
            raise credentials_exception

        # Vérifier le type de token
        if payload.get("type") != token_type:
            raise credentials_exception

        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception

        return TokenData(
            username=username,
            user_id=payload.get("user_id"),
            roles=payload.get("roles") or []
        )

    @staticmethod
    def refresh_access_token(refresh_token: str) -> str:
        """Rafraîchir un token d'accès"""
        token_data = JWTManager.verify_token(refresh_token, "refresh")

        # Créer un nouveau token d'accès avec les mêmes données
        new_token_data = {
            "sub": token_data.username,
            "user_id": token_data.user_id,
            "roles": token_data.roles
        }

        return JWTManager.create_access_token(new_token_data)



class RolePermissions:
    """Gestion des rôles et permissions"""

    # Définition des rôles
    AGENT = "agent"
    CHEF_SERVICE = "chef_service"
    DIRECTEUR = "directeur"
    FINANCE = "finance"
    ADMIN = "admin"

    # Permissions par rôle
    PERMISSIONS = {
        AGENT: [
            "mission:create", "mission:read:own", "mission:update", "mission:delete",
            "project:read",
        ],
        CHEF_SERVICE: [
            "mission:read", "mission:validate",
            "project:read", "stats:read",
        ],
        DIRECTEUR: [
            "mission:read", "mission:validate",
            "project:read", "stats:read", "budget:read",
        ],
        FINANCE: [
            "mission:read", "mission:validate", "mission:pay",
            "project:read", "stats:read", "budget:read",
        ],
        ADMIN: [
            "mission:read", "mission:pay",
            "project:read", "stats:read", "budget:read",
            "user:read",
        ]
    }

    @staticmethod
    def has_permission(roles: Iterable[str], permission: str) -> bool:
        """Vérifier si l'un des rôles détenus accorde la permission"""
        return any(permission in RolePermissions.PERMISSIONS.get(role, []) for role in roles)

    @staticmethod
    def get_user_permissions(roles: Iterable[str]) -> list:
        """Obtenir l'union des permissions des rôles détenus"""
        permissions = []
        for role in roles:
            for permission in RolePermissions.PERMISSIONS.get(role, []):
                if permission not in permissions:
                    permissions.append(permission)
        return permissions

class SecurityUtils:
    """Utilitaires de sécurité"""

    @staticmethod
    def sanitize_input(input_string: str) -> str:
        """Nettoyer les entrées utilisateur"""
        if not isinstance(input_string, str):
            return str(input_string)

        # Supprimer les caractères dangereux
        dangerous_chars = ['<', '>', '"', "'", '&', 'script', 'javascript:', 'onload=']
        cleaned = input_string

        for char in dangerous_chars:
            cleaned = cleaned.replace(char, '')

        return cleaned.strip()
