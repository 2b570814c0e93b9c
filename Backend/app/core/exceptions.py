# app/core/exceptions.py
from typing import Any, Optional

from fastapi import HTTPException, status


class WorkflowError(HTTPException):
    """Erreur de base du circuit de validation des bons de mission"""

    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code_default, detail=detail, headers=headers)


class AuthorizationError(WorkflowError):
    """L'utilisateur ne détient pas le rôle exigé (ou n'est pas le propriétaire)"""

    status_code_default = status.HTTP_403_FORBIDDEN


class InvalidStateError(WorkflowError):
    """Le statut actuel du bon ne permet pas l'action demandée"""

    status_code_default = status.HTTP_400_BAD_REQUEST


class MissionValidationError(WorkflowError):
    """Données invalides: motif de rejet absent, dates incohérentes, montant négatif"""

    status_code_default = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConflictError(WorkflowError):
    """Le statut a changé entre la lecture et l'écriture (transition concurrente)"""

    status_code_default = status.HTTP_409_CONFLICT


class NotFoundError(WorkflowError):
    status_code_default = status.HTTP_404_NOT_FOUND
