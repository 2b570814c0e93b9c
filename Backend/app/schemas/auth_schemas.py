# app/schemas/auth_schemas.py
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime

class LoginRequest(BaseModel):
    """Schéma de requête de connexion"""
    username: str = Field(..., min_length=3, max_length=100, description="Nom d'utilisateur")
    password: str = Field(..., min_length=1, description="Mot de passe")

    class Config:
        json_schema_extra = {
            "example": {
                "username": "chef.service",
                "password": "monmotdepasse123"
            }
        }

class LoginResponse(BaseModel):
    """Schéma de réponse de connexion"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # en secondes
    user_info: Dict[str, Any]

    class Config:
        json_schema_extra = {
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "refresh_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "bearer",
                "expires_in": 1800,
                "user_info": {
                    "id": 1,
                    "login": "chef.service",
                    "nom_complet": "Awa Diallo",
                    "roles": ["agent", "chef_service"]
                }
            }
        }

class RefreshTokenRequest(BaseModel):
    """Schéma de requête de rafraîchissement de token"""
    refresh_token: str = Field(..., description="Token de rafraîchissement")

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int

class UserInfoResponse(BaseModel):
    """Schéma de réponse d'informations utilisateur"""
    id: int
    login: str
    nom_complet: str
    email: Optional[str] = None
    departement: Optional[str] = None
    roles: List[str]
    created_at: Optional[datetime] = None

class PermissionsResponse(BaseModel):
    roles: List[str]
    permissions: List[str]
